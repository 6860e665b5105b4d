"""
Constraint and fairness checks for generated schedules.
Pure functions: every check returns a list of violation strings, empty means clean.
Nothing here rejects a schedule; callers decide what blocks a save.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from itertools import combinations
from typing import Iterable, Mapping, Optional, Sequence

from app.core.config import settings

from .types import GeneratedSchedule, ShiftCandidate


logger = logging.getLogger(__name__)

MAX_SHIFT_HOURS = 8
MIN_REST_HOURS = 11
DISTRIBUTION_TOLERANCE = 0.5
MAX_WEEKEND_SPREAD = 2
MINUTES_PER_DAY = 24 * 60

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^\d{2}:\d{2}$")


def parse_date(value: str) -> Optional[date]:
    if not DATE_RE.match(value or ""):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_clock(value: str, is_end: bool = False) -> Optional[int]:
    """Minutes since midnight. End times of 00:00 / 24:00 mean midnight at day end."""
    if not TIME_RE.match(value or ""):
        return None
    hours, minutes = int(value[:2]), int(value[3:])
    if is_end and value in ("00:00", "24:00"):
        return MINUTES_PER_DAY
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def shift_bounds(shift: ShiftCandidate) -> Optional[tuple[datetime, datetime]]:
    """Absolute start/end; an end at or before the start rolls into the next day."""
    day = parse_date(shift.date)
    start = parse_clock(shift.start_time)
    end = parse_clock(shift.end_time, is_end=True)
    if day is None or start is None or end is None:
        return None
    if end <= start:
        end += MINUTES_PER_DAY
    base = datetime.combine(day, datetime.min.time())
    return base + timedelta(minutes=start), base + timedelta(minutes=end)


def group_by_employee(shifts: Iterable[ShiftCandidate]) -> dict[str, list[ShiftCandidate]]:
    grouped: dict[str, list[ShiftCandidate]] = {}
    for shift in shifts:
        grouped.setdefault(shift.assigned_to, []).append(shift)
    return grouped


def check_overlaps(shifts: Sequence[ShiftCandidate]) -> list[str]:
    """Same-day double bookings per employee."""
    violations = []
    for employee, own in group_by_employee(shifts).items():
        for a, b in combinations(own, 2):
            if a.date != b.date:
                continue
            start1, end1 = parse_clock(a.start_time), parse_clock(a.end_time, is_end=True)
            start2, end2 = parse_clock(b.start_time), parse_clock(b.end_time, is_end=True)
            if None in (start1, end1, start2, end2):
                continue
            if start1 < end2 and end1 > start2:
                violations.append(f"{employee} has overlapping shifts on {a.date}")
    return violations


def check_durations(shifts: Sequence[ShiftCandidate], max_hours: int = MAX_SHIFT_HOURS) -> list[str]:
    violations = []
    for shift in shifts:
        start = parse_clock(shift.start_time)
        end = parse_clock(shift.end_time, is_end=True)
        if start is None or end is None:
            continue
        if end - start > max_hours * 60:
            violations.append(f"Shift exceeds {max_hours} hours: {shift.assigned_to} on {shift.date}")
    return violations


def check_distribution(counts: Mapping[str, int], tolerance: float = DISTRIBUTION_TOLERANCE) -> list[str]:
    """Flag when anyone's total deviates from the mean by more than tolerance * mean."""
    values = list(counts.values())
    if not values:
        return []
    avg = sum(values) / len(values)
    max_deviation = max(abs(v - avg) for v in values)
    if avg > 0 and max_deviation > avg * tolerance:
        return [
            f"Unfair shift distribution detected "
            f"(max deviation: {max_deviation:.1f} from average {avg:.1f})"
        ]
    return []


def check_weekend_distribution(counts: Mapping[str, int], max_spread: int = MAX_WEEKEND_SPREAD) -> list[str]:
    values = list(counts.values())
    if not values:
        return []
    low, high = min(values), max(values)
    if high - low > max_spread:
        return [f"Unfair weekend distribution (range: {low}-{high})"]
    return []


def check_preference_rate(rate: float) -> list[str]:
    if rate < 0 or rate > 1:
        return [f"Invalid preference satisfaction rate: {rate}"]
    return []


def check_date_time_formats(shifts: Sequence[ShiftCandidate]) -> list[str]:
    errors = []
    for index, shift in enumerate(shifts):
        if not DATE_RE.match(shift.date):
            errors.append(f"Invalid date format at shift {index}: {shift.date}")
        elif parse_date(shift.date) is None:
            errors.append(f"Invalid date at shift {index}: {shift.date}")

        for label, value in (("start_time", shift.start_time), ("end_time", shift.end_time)):
            if not TIME_RE.match(value):
                errors.append(f"Invalid {label} format at shift {index}: {value}")
            elif parse_clock(value, is_end=(label == "end_time")) is None:
                errors.append(f"Invalid {label} value at shift {index}: {value}")
    return errors


def check_locations(shifts: Sequence[ShiftCandidate], locations: Sequence[str]) -> list[str]:
    """Unknown bureaus, plus bureaus with no shifts when the schedule spans several dates."""
    errors = []
    for index, shift in enumerate(shifts):
        if shift.bureau not in locations:
            errors.append(f"Invalid bureau at shift {index}: {shift.bureau}")

    covered = {s.bureau for s in shifts}
    if len({s.date for s in shifts}) > 1:
        for bureau in locations:
            if bureau not in covered:
                errors.append(f"No coverage for {bureau} bureau")
    return errors


def count_shifts_per_person(shifts: Iterable[ShiftCandidate]) -> dict[str, int]:
    return dict(Counter(s.assigned_to for s in shifts))


def count_weekend_shifts_per_person(shifts: Sequence[ShiftCandidate]) -> dict[str, int]:
    """Weekend counts for every assignee, zero included."""
    counts = {s.assigned_to: 0 for s in shifts}
    for shift in shifts:
        day = parse_date(shift.date)
        if day is not None and day.weekday() >= 5:
            counts[shift.assigned_to] += 1
    return counts


def validate_schedule(schedule: GeneratedSchedule, locations: Optional[Sequence[str]] = None) -> list[str]:
    """
    Run every check over an accepted schedule.

    Fairness counts are recomputed from the shifts themselves; the model's own
    fairness_metrics are advisory and only their satisfaction rate is range-checked.
    """
    if locations is None:
        locations = settings.BUREAUS
    shifts = list(schedule.shifts)

    violations = []
    violations += check_date_time_formats(shifts)
    violations += check_overlaps(shifts)
    violations += check_durations(shifts)
    violations += check_distribution(count_shifts_per_person(shifts))
    violations += check_weekend_distribution(count_weekend_shifts_per_person(shifts))
    violations += check_preference_rate(schedule.fairness_metrics.preference_satisfaction_rate)
    violations += check_locations(shifts, locations)

    logger.info(f"[Validation] Checked {len(shifts)} shifts, found {len(violations)} issue(s)")
    return violations


@dataclass(frozen=True)
class ScheduleConflict:
    type: str  # "Double Booking" | "Rest Period Violation"
    severity: str
    employee: str
    description: str
    shift1: dict
    shift2: dict

    def to_dict(self) -> dict:
        return asdict(self)


def _shift_ref(shift: ShiftCandidate) -> dict:
    return {"date": shift.date, "start": shift.start_time, "end": shift.end_time}


def find_schedule_conflicts(schedule: GeneratedSchedule, min_rest_hours: int = MIN_REST_HOURS) -> list[ScheduleConflict]:
    """
    Pre-save conflict check across dates: double bookings and short rest periods.
    Shifts whose date or times cannot be parsed are skipped here.
    """
    conflicts = []
    min_rest = timedelta(hours=min_rest_hours)

    for employee, own in group_by_employee(schedule.shifts).items():
        timed = [(shift_bounds(s), s) for s in own]
        timed = sorted(((b, s) for b, s in timed if b is not None), key=lambda item: item[0][0])

        for (b1, s1), (b2, s2) in combinations(timed, 2):
            if b1[0] < b2[1] and b1[1] > b2[0]:
                conflicts.append(ScheduleConflict(
                    type="Double Booking",
                    severity="high",
                    employee=employee,
                    description=f"{employee} has overlapping shifts",
                    shift1=_shift_ref(s1),
                    shift2=_shift_ref(s2),
                ))

        for (b1, s1), (b2, s2) in zip(timed, timed[1:]):
            gap = b2[0] - b1[1]
            if timedelta(0) <= gap < min_rest:
                hours = int(gap.total_seconds() // 3600)
                conflicts.append(ScheduleConflict(
                    type="Rest Period Violation",
                    severity="high",
                    employee=employee,
                    description=f"{employee} has only {hours}h rest between shifts (minimum {min_rest_hours}h required)",
                    shift1=_shift_ref(s1),
                    shift2=_shift_ref(s2),
                ))

    logger.info(f"[Validation] Checked {len(schedule.shifts)} shifts, found {len(conflicts)} conflicts")
    return conflicts
