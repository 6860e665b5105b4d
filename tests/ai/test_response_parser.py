"""
Tests for parsing raw model output into a GeneratedSchedule.
Covers extraction strategies, rejection reasons and the bounded failure log.
"""
import json
import pytest

from app.services.ai.response_parser import (
    MAX_STORED_FAILURES,
    FailureLog,
    ScheduleParseError,
    ScheduleResponseParser,
    extract_json_candidate,
    extract_schedule,
    is_conversational,
    parse_schedule_response,
)
from app.services.ai.types import GeneratedSchedule

from conftest import make_schedule_payload, make_shift


class TestConversationalDetection:

    @pytest.mark.parametrize("text", [
        "I need more information about the employees.",
        "Let me create the schedule for you.",
        "I'll start with Milan.",
        "What shift windows should I use?",
        "could you confirm the bureaus?",
        "  Before I begin, a question.",
        "To create this schedule I need...",
        "Here is the schedule:",
        "Here's what I came up with",
        "Based on the roster, these are the shifts",
        "Looking at the preferences first",
        "Thank you for the details.",
        "However, one note first",  # prefix match, "How" counts
        "If needed, adjust weekends",
        "Ideas: none",
    ])
    def test_detects_openers(self, text):
        assert is_conversational(text) is True

    @pytest.mark.parametrize("text", [
        '{"shifts": []}',
        "```json\n{}\n```",
        "Schedule attached",
        "[]",
    ])
    def test_ignores_non_openers(self, text):
        assert is_conversational(text) is False

    def test_conversational_rejected_even_with_json_later(self, failure_log):
        text = "I have prepared this:\n" + json.dumps(make_schedule_payload())
        assert parse_schedule_response(text, log=failure_log) is None
        assert failure_log.latest().error == "Model returned conversational response instead of JSON"

    @pytest.mark.parametrize("opener", ["Here is the schedule:", "Based on the roster:"])
    def test_opener_before_fenced_json_rejected(self, opener, failure_log):
        text = f"{opener}\n```json\n{json.dumps(make_schedule_payload())}\n```"
        assert parse_schedule_response(text, log=failure_log) is None
        assert len(failure_log) == 1


class TestExtraction:

    def test_markdown_block_preferred(self):
        payload = json.dumps({"shifts": [make_shift()]})
        text = f"Schedule below.\n```json\n{payload}\n```\ntrailing {{not json}}"
        assert extract_json_candidate(text) == payload

    def test_markdown_block_without_object_falls_through(self):
        text = "```json\nnothing here\n```\n{\"shifts\": []}"
        assert extract_json_candidate(text) == '{"shifts": []}'

    def test_greedy_object_spans_outer_braces(self):
        text = 'prefix {"a": {"b": 1}} suffix'
        assert extract_json_candidate(text) == '{"a": {"b": 1}}'

    def test_no_candidate(self):
        assert extract_json_candidate("no braces at all") is None


class TestParseSuccess:

    def test_markdown_wrapped_fourteen_shifts(self, failure_log):
        payload = make_schedule_payload(days=7, slots_per_day=2)
        text = "```json\n" + json.dumps(payload, indent=2) + "\n```"

        schedule = parse_schedule_response(text, log=failure_log)

        assert isinstance(schedule, GeneratedSchedule)
        assert len(schedule.shifts) == 14
        assert len(failure_log) == 0

    def test_plain_json(self, schedule_json, failure_log):
        schedule = parse_schedule_response(schedule_json, log=failure_log)
        assert schedule is not None
        assert schedule.shifts[0].assigned_to == "Marco Rossi"
        assert schedule.fairness_metrics.preference_satisfaction_rate == 0.8
        assert schedule.recommendations == ("Rotate weekend cover next month",)

    def test_missing_optional_sections_defaulted(self, failure_log):
        text = json.dumps({"shifts": [make_shift(reasoning=None, role_level=None)]})
        schedule = parse_schedule_response(text, log=failure_log)

        assert schedule.fairness_metrics.total_shifts_per_person == {}
        assert schedule.fairness_metrics.preference_satisfaction_rate == 0.0
        assert schedule.recommendations == ()
        assert schedule.shifts[0].reasoning == ""

    def test_parsing_is_deterministic(self, schedule_json, failure_log):
        first = parse_schedule_response(schedule_json, log=failure_log)
        second = parse_schedule_response(schedule_json, log=failure_log)
        assert first == second

    def test_metrics_are_read_only(self, schedule_json, failure_log):
        schedule = parse_schedule_response(schedule_json, log=failure_log)
        totals = schedule.fairness_metrics.total_shifts_per_person

        with pytest.raises(TypeError):
            totals["Marco Rossi"] = 99

        assert hash(schedule) == hash(parse_schedule_response(schedule_json, log=failure_log))
        exported = schedule.to_dict()["fairness_metrics"]["total_shifts_per_person"]
        exported["Marco Rossi"] = 99
        assert totals["Marco Rossi"] != 99

    def test_extra_keys_ignored(self, failure_log):
        text = json.dumps({"shifts": [make_shift(color="blue")], "notes": "x"})
        schedule = parse_schedule_response(text, log=failure_log)
        assert schedule is not None
        assert not hasattr(schedule.shifts[0], "color")


class TestParseRejections:

    def _reason(self, text):
        with pytest.raises(ScheduleParseError) as exc:
            extract_schedule(text)
        return exc.value.reason

    def test_empty_shifts(self):
        assert self._reason('{"shifts": []}') == "Empty shifts array in parsed JSON"

    def test_missing_shifts(self):
        assert self._reason('{"fairness_metrics": {}}') == "Missing or invalid shifts array in parsed JSON"

    def test_shifts_not_a_list(self):
        assert self._reason('{"shifts": "none"}') == "Missing or invalid shifts array in parsed JSON"

    def test_missing_required_field_names_index(self):
        shifts = [make_shift(), make_shift()]
        del shifts[1]["assigned_to"]
        reason = self._reason(json.dumps({"shifts": shifts}))
        assert reason.startswith("Missing required fields in shift 1")
        assert "assigned_to" in reason

    @pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_numbers_rejected(self, constant, failure_log):
        text = (
            '{"shifts": [' + json.dumps(make_shift()) + '], '
            '"fairness_metrics": {"total_shifts_per_person": {"Marco Rossi": ' + constant + '}}}'
        )

        assert parse_schedule_response(text, log=failure_log) is None
        assert failure_log.latest().error.startswith("JSON parse exception")

    def test_deeply_nested_json_rejected(self, failure_log):
        text = "[" * 100000 + "]" * 100000
        text = '{"shifts": ' + text + "}"
        assert parse_schedule_response(text, log=failure_log) is None
        assert len(failure_log) == 1

    def test_huge_counts_kept(self, failure_log):
        payload = make_schedule_payload(days=1)
        payload["fairness_metrics"]["total_shifts_per_person"] = {"Marco Rossi": 10 ** 400}
        schedule = parse_schedule_response(json.dumps(payload), log=failure_log)
        assert schedule.fairness_metrics.total_shifts_per_person["Marco Rossi"] == 10 ** 400

    def test_no_json(self):
        assert self._reason("Sure thing, schedule attached.") == (
            "No JSON found in response with any extraction strategy"
        )

    def test_truncated_output(self):
        full = json.dumps(make_schedule_payload())
        truncated = full[: len(full) // 2]
        reason = self._reason(truncated + "}")
        assert reason.startswith("JSON parse exception")

    def test_truncated_without_closing_brace(self):
        full = json.dumps(make_schedule_payload())
        reason = self._reason(full[:-40])
        assert reason.startswith("JSON parse exception")

    def test_non_string_input_is_rejected_not_raised(self, failure_log):
        assert parse_schedule_response(None, log=failure_log) is None
        assert failure_log.latest().response == ""


class TestFailureLog:

    def test_records_context_and_preview(self, failure_log):
        context = {"bureau": "Milan", "employeeCount": 4, "existingShiftCount": 0, "period": {"type": "week"}}
        text = "x" * 3000

        ScheduleResponseParser(failure_log).parse(text, context)

        entry = failure_log.latest()
        assert entry.response_length == 3000
        summary = entry.to_summary()
        assert len(summary["responsePreview"]["first1000"]) == 1000
        assert len(summary["responsePreview"]["last500"]) == 500
        assert summary["requestConfig"]["bureau"] == "Milan"
        assert summary["requestConfig"]["employeeCount"] == 4

    def test_capacity_evicts_oldest(self):
        log = FailureLog()
        parser = ScheduleResponseParser(log)
        for i in range(MAX_STORED_FAILURES + 2):
            parser.parse(f"no json {i}")

        entries = log.entries()
        assert len(entries) == MAX_STORED_FAILURES
        assert entries[0].response == "no json 2"
        assert entries[-1].response == f"no json {MAX_STORED_FAILURES + 1}"

    def test_success_does_not_record(self, schedule_json, failure_log):
        ScheduleResponseParser(failure_log).parse(schedule_json)
        assert len(failure_log) == 0

    def test_parse_or_raise_records_then_raises(self, failure_log):
        parser = ScheduleResponseParser(failure_log)
        with pytest.raises(ScheduleParseError):
            parser.parse_or_raise('{"shifts": []}')
        assert failure_log.latest().error == "Empty shifts array in parsed JSON"
