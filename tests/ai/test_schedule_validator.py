import pytest

from app.services.ai.response_parser import schedule_from_dict
from app.services.ai.schedule_validator import (
    check_date_time_formats,
    check_distribution,
    check_durations,
    check_locations,
    check_overlaps,
    check_preference_rate,
    check_weekend_distribution,
    count_weekend_shifts_per_person,
    find_schedule_conflicts,
    parse_clock,
    validate_schedule,
)
from app.services.ai.types import ShiftCandidate

from conftest import make_schedule_payload, make_shift


def candidate(**overrides) -> ShiftCandidate:
    return ShiftCandidate(**make_shift(**overrides))


def schedule_of(*shifts):
    return schedule_from_dict({"shifts": list(shifts)})


class TestParseClock:

    def test_midnight_end(self):
        assert parse_clock("00:00", is_end=True) == 24 * 60
        assert parse_clock("24:00", is_end=True) == 24 * 60

    def test_midnight_start(self):
        assert parse_clock("00:00") == 0
        assert parse_clock("24:00") is None

    def test_bad_values(self):
        assert parse_clock("8:00") is None
        assert parse_clock("12:75") is None


class TestOverlaps:

    def test_same_day_overlap(self):
        shifts = [
            candidate(start_time="08:00", end_time="16:00"),
            candidate(start_time="14:00", end_time="22:00"),
        ]
        assert check_overlaps(shifts) == ["Marco Rossi has overlapping shifts on 2025-01-06"]

    def test_back_to_back_is_not_overlap(self):
        shifts = [
            candidate(start_time="08:00", end_time="16:00"),
            candidate(start_time="16:00", end_time="00:00"),
        ]
        assert check_overlaps(shifts) == []

    def test_different_people(self):
        shifts = [
            candidate(start_time="08:00", end_time="16:00"),
            candidate(start_time="08:00", end_time="16:00", assigned_to="Sara Neri"),
        ]
        assert check_overlaps(shifts) == []


class TestDurations:

    def test_eight_hours_allowed(self):
        assert check_durations([candidate(start_time="16:00", end_time="00:00")]) == []

    def test_over_eight_hours(self):
        violations = check_durations([candidate(start_time="08:00", end_time="18:00")])
        assert violations == ["Shift exceeds 8 hours: Marco Rossi on 2025-01-06"]


class TestDistribution:

    def test_balanced_counts(self):
        counts = {"A": 10, "B": 9, "C": 10, "D": 11}
        assert check_distribution(counts) == []

    def test_skewed_counts(self):
        counts = {"A": 20, "B": 5, "C": 6, "D": 4}
        violations = check_distribution(counts)
        assert len(violations) == 1
        assert violations[0].startswith("Unfair shift distribution detected")

    def test_empty(self):
        assert check_distribution({}) == []

    def test_weekend_spread(self):
        assert check_weekend_distribution({"A": 0, "B": 2}) == []
        assert check_weekend_distribution({"A": 0, "B": 3}) == ["Unfair weekend distribution (range: 0-3)"]

    def test_weekend_counts_include_zero(self):
        shifts = [
            candidate(date="2025-01-11"),  # Saturday
            candidate(date="2025-01-06", assigned_to="Sara Neri"),
        ]
        assert count_weekend_shifts_per_person(shifts) == {"Marco Rossi": 1, "Sara Neri": 0}


class TestFormatsAndRate:

    def test_bad_date_and_time(self):
        errors = check_date_time_formats([candidate(date="06/01/2025", start_time="8am")])
        assert "Invalid date format at shift 0: 06/01/2025" in errors
        assert "Invalid start_time format at shift 0: 8am" in errors

    def test_impossible_date(self):
        assert check_date_time_formats([candidate(date="2025-02-30")]) == [
            "Invalid date at shift 0: 2025-02-30"
        ]

    @pytest.mark.parametrize("rate,expected", [(0.0, 0), (1.0, 0), (1.2, 1), (-0.1, 1)])
    def test_rate_range(self, rate, expected):
        assert len(check_preference_rate(rate)) == expected


class TestLocations:

    def test_unknown_bureau(self):
        errors = check_locations([candidate(bureau="Naples")], ["Milan"])
        assert errors == ["Invalid bureau at shift 0: Naples"]

    def test_single_date_needs_no_full_coverage(self):
        shifts = [candidate(), candidate(assigned_to="Sara Neri", start_time="16:00", end_time="00:00")]
        assert check_locations(shifts, ["Milan", "Rome"]) == []

    def test_multi_date_missing_bureau(self):
        shifts = [candidate(), candidate(date="2025-01-07")]
        assert check_locations(shifts, ["Milan", "Rome"]) == ["No coverage for Rome bureau"]


class TestValidateSchedule:

    def test_clean_schedule(self):
        schedule = schedule_from_dict(make_schedule_payload())
        assert validate_schedule(schedule, ["Milan"]) == []

    def test_counts_recomputed_from_shifts(self):
        payload = make_schedule_payload()
        # model claims a perfectly fair split that the shifts don't support
        payload["fairness_metrics"]["total_shifts_per_person"] = {"Marco Rossi": 1}
        for shift in payload["shifts"][:8]:
            shift["assigned_to"] = "Marco Rossi"
        schedule = schedule_from_dict(payload)

        warnings = validate_schedule(schedule, ["Milan"])
        assert any(w.startswith("Unfair shift distribution") for w in warnings)

    def test_idempotent(self):
        schedule = schedule_from_dict(make_schedule_payload())
        assert validate_schedule(schedule, ["Milan", "Rome"]) == validate_schedule(schedule, ["Milan", "Rome"])

    def test_defaults_to_configured_bureaus(self):
        schedule = schedule_from_dict(make_schedule_payload())
        assert "No coverage for Rome bureau" in validate_schedule(schedule)


class TestScheduleConflicts:

    def test_clean(self):
        schedule = schedule_from_dict(make_schedule_payload())
        assert find_schedule_conflicts(schedule) == []

    def test_double_booking(self):
        schedule = schedule_of(
            make_shift(start_time="08:00", end_time="16:00"),
            make_shift(start_time="12:00", end_time="20:00"),
        )
        conflicts = find_schedule_conflicts(schedule)
        assert [c.type for c in conflicts] == ["Double Booking"]
        assert conflicts[0].employee == "Marco Rossi"

    def test_short_rest_across_midnight(self):
        schedule = schedule_of(
            make_shift(date="2025-01-06", start_time="16:00", end_time="00:00", shift_type="Afternoon"),
            make_shift(date="2025-01-07", start_time="08:00", end_time="16:00"),
        )
        conflicts = find_schedule_conflicts(schedule)
        assert len(conflicts) == 1
        assert conflicts[0].type == "Rest Period Violation"
        assert "8h rest" in conflicts[0].description
        assert conflicts[0].to_dict()["shift1"]["date"] == "2025-01-06"

    def test_eleven_hours_is_enough(self):
        schedule = schedule_of(
            make_shift(date="2025-01-06", start_time="08:00", end_time="16:00"),
            make_shift(date="2025-01-07", start_time="03:00", end_time="11:00", shift_type="Night"),
        )
        assert find_schedule_conflicts(schedule) == []
