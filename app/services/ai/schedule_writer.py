"""
Persists an accepted GeneratedSchedule as Shifts + ShiftAssignments.

Resolve bureaus -> resolve employees by name -> insert shifts -> flush ->
insert assignments -> commit. All inside one session transaction: any failure
rolls back everything written so far.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models.bureaus import Bureaus
from app.db.models.shift_assignments import ShiftAssignments, AssignmentStatus
from app.db.models.shifts import Shifts, ShiftStatus
from app.db.models.users import Users

from .schedule_validator import parse_date, parse_clock
from .types import GeneratedSchedule, ShiftCandidate


logger = logging.getLogger(__name__)


class ScheduleSaveError(Exception):
    pass


class LocationNotFound(ScheduleSaveError):
    pass


class EmployeeNotFound(ScheduleSaveError):
    pass


class InvalidShiftData(ScheduleSaveError):
    pass


class StorageError(ScheduleSaveError):
    pass


@dataclass
class SaveResult:
    success: bool
    created_ids: list[int] = field(default_factory=list)
    error: Optional[str] = None


def _storage_message(exc: SQLAlchemyError) -> str:
    """The driver's own message when there is one."""
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def shift_datetimes(shift: ShiftCandidate) -> tuple[datetime, datetime]:
    """
    Absolute start/end for a candidate at the configured UTC offset.
    An end of 00:00 / 24:00, or any end at or before the start, falls on the next day.
    """
    day = parse_date(shift.date)
    start = parse_clock(shift.start_time)
    end = parse_clock(shift.end_time, is_end=True)
    if day is None or start is None or end is None:
        raise InvalidShiftData(
            f"Invalid date/time for {shift.assigned_to}: {shift.date} {shift.start_time}-{shift.end_time}"
        )
    if end <= start:
        end += 24 * 60

    tz = datetime.strptime(settings.SCHEDULE_UTC_OFFSET, "%z").tzinfo
    base = datetime(day.year, day.month, day.day, tzinfo=tz)
    return base + timedelta(minutes=start), base + timedelta(minutes=end)


def resolve_bureaus(db: Session, names: list[str]) -> dict[str, int]:
    rows = db.execute(select(Bureaus).where(Bureaus.name.in_(names))).scalars().all()
    found = {b.name: b.id for b in rows}
    for name in names:
        if name not in found:
            raise LocationNotFound(f"Bureau not found: {name}")
    return found


def resolve_employees(db: Session, names: list[str]) -> dict[str, int]:
    """Display name -> user id. Every unresolved name is listed in the error."""
    rows = db.execute(select(Users).where(Users.full_name.in_(names))).scalars().all()
    found = {}
    for user in rows:
        found.setdefault(user.full_name, user.id)

    missing = [n for n in names if n not in found]
    if missing:
        raise EmployeeNotFound(f"Employee(s) not found: {', '.join(missing)}")
    return found


def write_schedule(db: Session, schedule: GeneratedSchedule, actor_id: Optional[int]) -> list[int]:
    """Insert all rows and commit. Raises ScheduleSaveError; the caller owns rollback."""
    bureau_ids = resolve_bureaus(db, schedule.bureaus)
    user_ids = resolve_employees(db, schedule.assignees)

    shifts = []
    for candidate in schedule.shifts:
        start, end = shift_datetimes(candidate)
        shifts.append(Shifts(
            bureau_id=bureau_ids[candidate.bureau],
            start_time=start,
            end_time=end,
            status=ShiftStatus.PUBLISHED,
            required_staff=1,
            notes=f"AI Generated: {candidate.reasoning}",
        ))

    try:
        db.add_all(shifts)
        db.flush()

        assignments = [
            ShiftAssignments(
                shift_id=row.id,
                user_id=user_ids[candidate.assigned_to],
                status=AssignmentStatus.ASSIGNED,
                assigned_by=actor_id,
                notes=candidate.reasoning or None,
            )
            for row, candidate in zip(shifts, schedule.shifts)
        ]
        db.add_all(assignments)
        db.commit()
    except SQLAlchemyError as e:
        raise StorageError(_storage_message(e)) from e

    return [row.id for row in shifts]


def save_schedule(db: Session, schedule: GeneratedSchedule, actor_id: Optional[int]) -> SaveResult:
    """
    Persist a schedule for `actor_id`.
    Returns SaveResult; nothing is written unless every step succeeds.
    """
    logger.info(f"[Save Schedule] Saving {len(schedule.shifts)} shifts for user {actor_id}")
    try:
        created = write_schedule(db, schedule, actor_id)
    except ScheduleSaveError as e:
        db.rollback()
        logger.error(f"[Save Schedule] {e.__class__.__name__}: {e}")
        return SaveResult(success=False, error=str(e))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[Save Schedule] Lookup failed: {e}")
        return SaveResult(success=False, error=_storage_message(e))

    logger.info(f"[Save Schedule] Successfully saved {len(created)} shifts")
    return SaveResult(success=True, created_ids=created)
