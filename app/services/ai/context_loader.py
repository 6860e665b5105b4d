"""
Context loader for schedule generation.
Fetches roster, preferences, time off, history and existing shifts from the
database and converts them to the internal types used by the prompt builder.
"""

import logging
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import select, and_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.models.bureaus import Bureaus
from app.db.models.shift_assignments import ShiftAssignments
from app.db.models.shift_preferences import ShiftPreferences as ShiftPreferencesRow
from app.db.models.shifts import Shifts
from app.db.models.time_off_requests import TimeOffRequests, TimeOffStatus
from app.db.models.users import Users, UserStatus

from .types import (
    ALL_BUREAUS,
    EmployeeProfile,
    ExistingShift,
    GenerationRequest,
    PreferenceConfirmation,
    RecentHistory,
    ShiftPreferences,
)


logger = logging.getLogger(__name__)

# month-day -> name
ITALIAN_HOLIDAYS = {
    "01-01": "New Year's Day",
    "01-06": "Epiphany",
    "04-25": "Liberation Day",
    "05-01": "Labour Day",
    "06-02": "Republic Day",
    "08-15": "Ferragosto",
    "11-01": "All Saints' Day",
    "12-08": "Immaculate Conception",
    "12-25": "Christmas",
    "12-26": "Santo Stefano",
}

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# time-off in these states never blocks a date
INACTIVE_TIME_OFF = (TimeOffStatus.REJECTED, TimeOffStatus.CANCELLED)


def get_shift_type(hour: int) -> str:
    """Classify a shift by its start hour."""
    if 8 <= hour < 16:
        return "Morning"
    if 16 <= hour < 24:
        return "Afternoon"
    return "Night"


def daterange(start: date, end: date) -> list[date]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def get_italian_holidays(start_date: date, end_date: date) -> list[date]:
    """Fixed national holidays falling inside [start_date, end_date], every year spanned."""
    holidays = []
    for year in range(start_date.year, end_date.year + 1):
        for month_day in ITALIAN_HOLIDAYS:
            month, day = (int(p) for p in month_day.split("-"))
            holiday = date(year, month, day)
            if start_date <= holiday <= end_date:
                holidays.append(holiday)
    return sorted(holidays)


def unavailable_from_notes(notes: Optional[str], window: list[date]) -> list[date]:
    """Day names mentioned in free-text notes, expanded to dates in the window."""
    if not notes:
        return []
    lowered = notes.lower()
    weekdays = {i for i, name in enumerate(DAY_NAMES) if name in lowered}
    return [d for d in window if d.weekday() in weekdays]


def load_time_off_dates(
    db: Session,
    user_ids: list[int],
    start_date: date,
    end_date: date,
) -> dict[int, list[date]]:
    """Time-off dates per user, clipped to the window."""
    if not user_ids:
        return {}

    stmt = select(TimeOffRequests).where(
        and_(
            TimeOffRequests.user_id.in_(user_ids),
            TimeOffRequests.status.not_in(INACTIVE_TIME_OFF),
            TimeOffRequests.end_date >= start_date,
            TimeOffRequests.start_date <= end_date,
        )
    )
    rows = db.execute(stmt).scalars().all()

    result: dict[int, list[date]] = {}
    for r in rows:
        first = max(r.start_date, start_date)
        last = min(r.end_date, end_date)
        result.setdefault(r.user_id, []).extend(daterange(first, last))
    return result


def load_recent_history(
    db: Session,
    user_ids: list[int],
    before: date,
    window_days: Optional[int] = None,
) -> dict[int, RecentHistory]:
    """Weekend / night / total shift counts per user over the trailing window, one query."""
    if not user_ids:
        return {}
    if window_days is None:
        window_days = settings.HISTORY_WINDOW_DAYS

    since = datetime.combine(before - timedelta(days=window_days), time.min)
    until = datetime.combine(before, time.min)

    stmt = (
        select(ShiftAssignments.user_id, Shifts.start_time)
        .join(Shifts, Shifts.id == ShiftAssignments.shift_id)
        .where(
            and_(
                ShiftAssignments.user_id.in_(user_ids),
                Shifts.start_time >= since,
                Shifts.start_time < until,
            )
        )
    )
    rows = db.execute(stmt).all()

    counts = {uid: [0, 0, 0] for uid in user_ids}  # weekend, night, total
    for user_id, start in rows:
        c = counts[user_id]
        if start.weekday() >= 5:
            c[0] += 1
        if start.hour < 8:
            c[1] += 1
        c[2] += 1

    return {
        uid: RecentHistory(weekend_shifts=w, night_shifts=n, total_shifts=t)
        for uid, (w, n, t) in counts.items()
    }


def _build_preferences(row: Optional[ShiftPreferencesRow], unavailable: list[date]) -> ShiftPreferences:
    unavailable_days = tuple(d.isoformat() for d in sorted(set(unavailable)))
    if row is None:
        return ShiftPreferences(unavailable_days=unavailable_days)

    confirmation = None
    if row.confirmed:
        confirmation = PreferenceConfirmation(
            confirmed=True,
            confirmed_by=row.confirmed_by,
            confirmed_at=row.confirmed_at,
        )

    return ShiftPreferences(
        preferred_days=tuple(row.preferred_days or ()),
        preferred_shifts=tuple(row.preferred_shifts or ()),
        unavailable_days=unavailable_days,
        max_shifts_per_week=row.max_shifts_per_week or 5,
        notes=row.notes or "",
        confirmation=confirmation,
    )


def load_roster(
    db: Session,
    start_date: date,
    end_date: date,
    bureau: str = ALL_BUREAUS,
) -> list[EmployeeProfile]:
    """Active members of the scheduling team with preferences, unavailability and history."""
    bureau_names = {b.id: b.name for b in db.execute(select(Bureaus)).scalars().all()}

    stmt = select(Users).where(
        and_(
            Users.team == settings.SCHEDULING_TEAM,
            Users.status == UserStatus.ACTIVE,
        )
    )
    if bureau != ALL_BUREAUS:
        stmt = stmt.join(Bureaus, Bureaus.id == Users.bureau_id).where(Bureaus.name == bureau)
    users = db.execute(stmt.order_by(Users.id)).scalars().all()

    user_ids = [u.id for u in users]
    if not user_ids:
        logger.warning(f"No active {settings.SCHEDULING_TEAM} employees for bureau {bureau}")
        return []

    pref_rows = db.execute(
        select(ShiftPreferencesRow).where(ShiftPreferencesRow.user_id.in_(user_ids))
    ).scalars().all()
    prefs_by_user = {p.user_id: p for p in pref_rows}

    time_off = load_time_off_dates(db, user_ids, start_date, end_date)
    history = load_recent_history(db, user_ids, start_date)
    window = daterange(start_date, end_date)

    roster = []
    for user in users:
        pref_row = prefs_by_user.get(user.id)
        unavailable = unavailable_from_notes(pref_row.notes if pref_row else None, window)
        unavailable += time_off.get(user.id, [])

        roster.append(EmployeeProfile(
            id=user.id,
            full_name=user.full_name,
            title=user.title or "",
            shift_role=user.shift_role.value,
            bureau=bureau_names.get(user.bureau_id, "Unknown"),
            email=user.email,
            preferences=_build_preferences(pref_row, unavailable),
            recent_history=history.get(user.id),
        ))

    logger.info(f"Loaded {len(roster)} employees for bureau {bureau}")
    return roster


def load_existing_shifts(db: Session, start_date: date, end_date: date) -> list[ExistingShift]:
    """Assigned shifts starting inside the window. The first assignee stands for the shift."""
    since = datetime.combine(start_date, time.min)
    until = datetime.combine(end_date + timedelta(days=1), time.min)

    stmt = (
        select(Shifts.id, Shifts.start_time, Users.full_name)
        .join(ShiftAssignments, ShiftAssignments.shift_id == Shifts.id)
        .join(Users, Users.id == ShiftAssignments.user_id)
        .where(and_(Shifts.start_time >= since, Shifts.start_time < until))
        .order_by(Shifts.start_time, Shifts.id, ShiftAssignments.id)
    )

    seen = set()
    existing = []
    for shift_id, start, full_name in db.execute(stmt).all():
        if shift_id in seen:
            continue
        seen.add(shift_id)
        existing.append(ExistingShift(
            date=start.date(),
            employee_name=full_name,
            shift_type=get_shift_type(start.hour),
        ))
    return existing


def build_generation_request(
    db: Session,
    start_date: date,
    end_date: date,
    period_type: str = "week",
    bureau: str = ALL_BUREAUS,
    preserve_existing: bool = False,
    save_to_database: bool = False,
) -> GenerationRequest:
    """Validate the window, then load everything the prompt needs."""
    request = GenerationRequest(
        start_date=start_date,
        end_date=end_date,
        period_type=period_type,
        bureau=bureau,
        preserve_existing=preserve_existing,
        save_to_database=save_to_database,
    )

    roster = load_roster(db, start_date, end_date, bureau)
    existing = load_existing_shifts(db, start_date, end_date) if preserve_existing else []

    return replace(
        request,
        roster=tuple(roster),
        existing_shifts=tuple(existing),
        holidays=tuple(get_italian_holidays(start_date, end_date)),
    )
