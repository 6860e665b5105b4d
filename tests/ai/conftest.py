import json
import pytest
from datetime import date, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.database import Base
from app.db import models  # noqa: F401  registers tables on Base
from app.db.models import Bureaus, Users, ShiftRole, UserStatus
from app.services.ai.llm_provider import BaseLLMProvider, LLMResponse
from app.services.ai.response_parser import FailureLog
from app.services.ai.types import (
    EmployeeProfile,
    GenerationRequest,
    PreferenceConfirmation,
    RecentHistory,
    ShiftPreferences,
)


SHIFT_SLOTS = [
    ("08:00", "16:00", "Morning"),
    ("16:00", "00:00", "Afternoon"),
    ("00:00", "08:00", "Night"),
]


def get_test_monday() -> date:
    # fixed Monday for deterministic tests
    return date(2025, 1, 6)


def make_shift(**overrides) -> dict:
    shift = {
        "date": get_test_monday().isoformat(),
        "start_time": "08:00",
        "end_time": "16:00",
        "bureau": "Milan",
        "assigned_to": "Marco Rossi",
        "role_level": "senior",
        "shift_type": "Morning",
        "reasoning": "Sr-AM",
    }
    shift.update(overrides)
    return shift


def make_schedule_payload(
    days: int = 7,
    slots_per_day: int = 2,
    names: tuple = ("Marco Rossi", "Giulia Bianchi", "Luca Verdi", "Sara Neri"),
    bureau: str = "Milan",
    start: date = None,
) -> dict:
    """Synthetic well-formed schedule: names rotate over consecutive slots."""
    start = start or get_test_monday()
    shifts = []
    for day in range(days):
        for slot in range(slots_per_day):
            begin, end, shift_type = SHIFT_SLOTS[slot % len(SHIFT_SLOTS)]
            shifts.append(make_shift(
                date=(start + timedelta(days=day)).isoformat(),
                start_time=begin,
                end_time=end,
                shift_type=shift_type,
                bureau=bureau,
                assigned_to=names[len(shifts) % len(names)],
            ))

    totals = {}
    for s in shifts:
        totals[s["assigned_to"]] = totals.get(s["assigned_to"], 0) + 1

    return {
        "shifts": shifts,
        "fairness_metrics": {
            "weekend_shifts_per_person": {n: 0 for n in totals},
            "night_shifts_per_person": {n: 0 for n in totals},
            "total_shifts_per_person": totals,
            "preference_satisfaction_rate": 0.8,
            "hard_constraint_violations": [],
        },
        "recommendations": ["Rotate weekend cover next month"],
    }


def make_employee(
    id: int,
    full_name: str,
    bureau: str = "Milan",
    shift_role: str = "correspondent",
    confirmed: bool = False,
    **pref_overrides,
) -> EmployeeProfile:
    prefs = dict(
        preferred_days=("Monday", "Tuesday"),
        preferred_shifts=("Morning",),
        max_shifts_per_week=5,
    )
    prefs.update(pref_overrides)
    if confirmed:
        prefs["confirmation"] = PreferenceConfirmation(confirmed=True, confirmed_by=1)
    return EmployeeProfile(
        id=id,
        full_name=full_name,
        title="Correspondent",
        shift_role=shift_role,
        bureau=bureau,
        email=f"user{id}@example.com",
        preferences=ShiftPreferences(**prefs),
        recent_history=RecentHistory(weekend_shifts=1, night_shifts=2, total_shifts=12),
    )


def make_request(roster=None, **overrides) -> GenerationRequest:
    monday = get_test_monday()
    fields = dict(
        start_date=monday,
        end_date=monday + timedelta(days=6),
        period_type="week",
        bureau="Milan",
        roster=tuple(roster if roster is not None else []),
    )
    fields.update(overrides)
    return GenerationRequest(**fields)


class FakeProvider(BaseLLMProvider):
    """
    Scripted provider. Each outcome is either a str (returned as raw text)
    or an exception instance (raised). Calls are recorded.
    """

    def __init__(self, outcomes, model_name: str = "claude-haiku-4-5"):
        super().__init__(model_name, timeout=1.0)
        self.outcomes = list(outcomes)
        self.calls = []

    def provider_name(self) -> str:
        return f"fake/{self.model_name}"

    def _build_request(self, system_prompt, user_prompt, max_tokens):
        raise NotImplementedError

    def _extract_text(self, data):
        raise NotImplementedError

    async def generate(self, system_prompt, user_prompt, max_tokens):
        self.calls.append({"system": system_prompt, "user": user_prompt, "max_tokens": max_tokens})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return LLMResponse(raw_text=outcome, model_used=self.provider_name(), max_tokens=self.cap_tokens(max_tokens))


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def milan_roster() -> list[EmployeeProfile]:
    return [
        make_employee(1, "Marco Rossi", shift_role="senior", confirmed=True),
        make_employee(2, "Giulia Bianchi"),
        make_employee(3, "Luca Verdi", shift_role="editor"),
        make_employee(4, "Sara Neri"),
    ]


@pytest.fixture
def both_roster(milan_roster) -> list[EmployeeProfile]:
    return milan_roster + [
        make_employee(5, "Paolo Conti", bureau="Rome", shift_role="senior", confirmed=True),
        make_employee(6, "Anna Ricci", bureau="Rome"),
    ]


@pytest.fixture
def failure_log() -> FailureLog:
    return FailureLog()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def schedule_json() -> str:
    return json.dumps(make_schedule_payload())


@pytest.fixture()
def db():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def seeded_db(db):
    """Two bureaus, four Milan and two Rome team members, one inactive user."""
    milan = Bureaus(name="Milan", code="MIL")
    rome = Bureaus(name="Rome", code="ROM")
    db.add_all([milan, rome])
    db.flush()

    people = [
        ("Marco Rossi", milan, ShiftRole.SENIOR),
        ("Giulia Bianchi", milan, ShiftRole.CORRESPONDENT),
        ("Luca Verdi", milan, ShiftRole.EDITOR),
        ("Sara Neri", milan, ShiftRole.CORRESPONDENT),
        ("Paolo Conti", rome, ShiftRole.SENIOR),
        ("Anna Ricci", rome, ShiftRole.CORRESPONDENT),
    ]
    for i, (name, bureau, role) in enumerate(people, start=1):
        db.add(Users(
            email=f"user{i}@example.com",
            full_name=name,
            title="Correspondent",
            shift_role=role,
            bureau_id=bureau.id,
            team="Breaking News",
            status=UserStatus.ACTIVE,
        ))
    db.add(Users(
        email="former@example.com",
        full_name="Former Staff",
        shift_role=ShiftRole.CORRESPONDENT,
        bureau_id=milan.id,
        team="Breaking News",
        status=UserStatus.INACTIVE,
    ))
    db.commit()
    return db


def user_by_name(db, name: str) -> Users:
    return db.query(Users).filter(Users.full_name == name).first()
