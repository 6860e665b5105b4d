"""
Parsing of raw model output into a GeneratedSchedule.

Model output is untrusted free text. The parser either returns an accepted,
immutable GeneratedSchedule or rejects the text and records why in a bounded
FailureLog for operators. It never raises for malformed input.

Rejection order:
    1. conversational opener (model is asking or narrating instead of answering)
    2. no JSON candidate found by any extraction strategy
    3. candidate is not valid JSON (includes truncated output)
    4. shifts missing / not a list / empty
    5. a shift is missing one of the required fields
"""

import json
import logging
import math
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .types import (
    FairnessMetrics,
    GeneratedSchedule,
    ShiftCandidate,
    REQUIRED_SHIFT_FIELDS,
)


logger = logging.getLogger(__name__)

MAX_STORED_FAILURES = 5

# Plain prefix match, no word boundary: "If" and "However" are openers too.
CONVERSATIONAL_PATTERNS = [
    re.compile(r"^(I|Let me|I'll|I can|I would|I need|To create|Before)", re.IGNORECASE),
    re.compile(r"^(What|Which|How|Could you|Can you|Would you)", re.IGNORECASE),
    re.compile(r"^(Thank you|Here's|Here is|Based on|Looking at)", re.IGNORECASE),
]

MARKDOWN_JSON_BLOCK = re.compile(r"```json\s*([\s\S]*?)\s*```")
GREEDY_OBJECT = re.compile(r"\{[\s\S]*\}")
TRAILING_OBJECT = re.compile(r"\{[\s\S]*?\}\s*$")


class ScheduleParseError(Exception):
    """Model output was rejected. `reason` is human readable."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class FailureRecord:
    timestamp: datetime
    response: str
    response_length: int
    error: str
    request_context: dict = field(default_factory=dict)

    def to_summary(self) -> dict:
        """Truncated view for the debug endpoint; full text stays server-side."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "responseLength": self.response_length,
            "error": self.error,
            "requestConfig": {
                "period": self.request_context.get("period"),
                "bureau": self.request_context.get("bureau"),
                "employeeCount": self.request_context.get("employeeCount"),
                "existingShiftCount": self.request_context.get("existingShiftCount"),
            },
            "responsePreview": {
                "first1000": self.response[:1000],
                "last500": self.response[-500:],
            },
        }


class FailureLog:
    """Bounded FIFO of recent parse failures. Oldest entries are evicted at capacity."""

    def __init__(self, capacity: int = MAX_STORED_FAILURES):
        self._entries: deque[FailureRecord] = deque(maxlen=capacity)

    def record(self, response: str, error: str, request_context: Optional[dict] = None) -> FailureRecord:
        entry = FailureRecord(
            timestamp=datetime.now(timezone.utc),
            response=response,
            response_length=len(response),
            error=error,
            request_context=dict(request_context or {}),
        )
        self._entries.append(entry)
        return entry

    def entries(self) -> list[FailureRecord]:
        return list(self._entries)

    def latest(self) -> Optional[FailureRecord]:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# Process-wide log, created at import. Tests and isolated callers pass their own.
failure_log = FailureLog()


def get_last_failed_responses() -> list[FailureRecord]:
    return failure_log.entries()


def is_conversational(text: str) -> bool:
    stripped = text.strip()
    return any(p.match(stripped) for p in CONVERSATIONAL_PATTERNS)


def extract_json_candidate(text: str) -> Optional[str]:
    """Try each extraction strategy in order; return the first candidate found."""
    match = MARKDOWN_JSON_BLOCK.search(text)
    if match:
        extracted = match.group(1).strip()
        if extracted.startswith("{") or extracted.startswith("["):
            logger.debug("Extracted JSON from markdown code block")
            return extracted

    match = GREEDY_OBJECT.search(text)
    if match:
        logger.debug("Extracted JSON with greedy match")
        return match.group(0)

    match = TRAILING_OBJECT.search(text)
    if match:
        logger.debug("Extracted JSON with non-greedy end match")
        return match.group(0)

    return None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


def _reject_constant(name: str):
    raise ValueError(f"non-finite number {name} is not valid JSON")


def _count_map(value: Any) -> dict[str, int]:
    if not isinstance(value, dict):
        return {}
    counts = {}
    for name, count in value.items():
        if _is_number(count):
            counts[str(name)] = int(count)
    return counts


def _string_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value)


def _build_metrics(raw: Any) -> FairnessMetrics:
    if not isinstance(raw, dict):
        logger.warning("Missing fairness_metrics, using defaults")
        return FairnessMetrics()

    rate = raw.get("preference_satisfaction_rate")
    if not _is_number(rate):
        rate = 0.0

    return FairnessMetrics(
        total_shifts_per_person=_count_map(raw.get("total_shifts_per_person")),
        weekend_shifts_per_person=_count_map(raw.get("weekend_shifts_per_person")),
        night_shifts_per_person=_count_map(raw.get("night_shifts_per_person")),
        preference_satisfaction_rate=float(rate),
        hard_constraint_violations=_string_list(raw.get("hard_constraint_violations")),
    )


def _build_shift(index: int, raw: Any) -> ShiftCandidate:
    if not isinstance(raw, dict):
        raise ScheduleParseError(f"Missing required fields in shift {index}: {', '.join(REQUIRED_SHIFT_FIELDS)}")

    missing = [f for f in REQUIRED_SHIFT_FIELDS if raw.get(f) in (None, "")]
    if missing:
        raise ScheduleParseError(f"Missing required fields in shift {index}: {', '.join(missing)}")

    return ShiftCandidate(
        date=str(raw["date"]),
        start_time=str(raw["start_time"]),
        end_time=str(raw["end_time"]),
        bureau=str(raw["bureau"]),
        assigned_to=str(raw["assigned_to"]),
        shift_type=str(raw["shift_type"]),
        reasoning=str(raw.get("reasoning") or ""),
        role_level=str(raw.get("role_level") or ""),
    )


def schedule_from_dict(data: Any) -> GeneratedSchedule:
    """Shape and field checks over already-decoded data, then defaulting."""
    if not isinstance(data, dict) or not isinstance(data.get("shifts"), list):
        raise ScheduleParseError("Missing or invalid shifts array in parsed JSON")

    if len(data["shifts"]) == 0:
        raise ScheduleParseError("Empty shifts array in parsed JSON")

    shifts = tuple(_build_shift(i, s) for i, s in enumerate(data["shifts"]))

    return GeneratedSchedule(
        shifts=shifts,
        fairness_metrics=_build_metrics(data.get("fairness_metrics")),
        recommendations=_string_list(data.get("recommendations")),
    )


def extract_schedule(response: str) -> GeneratedSchedule:
    """Strict variant of parsing: raises ScheduleParseError instead of recording."""
    if is_conversational(response):
        raise ScheduleParseError("Model returned conversational response instead of JSON")

    candidate = extract_json_candidate(response)
    if candidate is None:
        raise ScheduleParseError("No JSON found in response with any extraction strategy")

    if "}" not in candidate[-50:]:
        logger.warning("JSON might be truncated - no closing brace in last 50 chars")

    try:
        data = json.loads(candidate, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        raise ScheduleParseError(f"JSON parse exception: {e}") from e

    return schedule_from_dict(data)


class ScheduleResponseParser:
    """Parses model output and records rejections into a FailureLog."""

    def __init__(self, log: Optional[FailureLog] = None):
        self.failure_log = log if log is not None else failure_log

    def _record(self, error: str, response: str, request_context: Optional[dict]) -> None:
        logger.error(f"[Parse Error] {error}")
        logger.error(f"[Parse Error] Response length: {len(response)}")
        logger.error(f"[Parse Error] First 1000 chars: {response[:1000]}")
        logger.error(f"[Parse Error] Last 500 chars: {response[-500:]}")
        self.failure_log.record(response, error, request_context)

    def parse_or_raise(self, response: str, request_context: Optional[dict] = None) -> GeneratedSchedule:
        if not isinstance(response, str):
            response = "" if response is None else str(response)
        logger.info(f"[AI Response] Processing response, length {len(response)} chars")
        try:
            schedule = extract_schedule(response)
        except ScheduleParseError as e:
            self._record(e.reason, response, request_context)
            raise
        logger.info(f"[Parse Success] Parsed {len(schedule.shifts)} shifts")
        return schedule

    def parse(self, response: str, request_context: Optional[dict] = None) -> Optional[GeneratedSchedule]:
        try:
            return self.parse_or_raise(response, request_context)
        except ScheduleParseError:
            return None


def parse_schedule_response(
    response: str,
    request_context: Optional[dict] = None,
    log: Optional[FailureLog] = None,
) -> Optional[GeneratedSchedule]:
    """Return a GeneratedSchedule, or None after recording the rejection."""
    return ScheduleResponseParser(log).parse(response, request_context)
