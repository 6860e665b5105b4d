"""
Internal data types for AI schedule generation.
Decoupled from SQLAlchemy models so the pipeline can run without a database.
"""

from dataclasses import dataclass, field, asdict, replace
from datetime import date, datetime
from types import MappingProxyType
from typing import Mapping, Optional


PERIOD_TYPES = ("week", "month", "quarter")
ALL_BUREAUS = "both"
SHIFT_TYPES = ("Morning", "Afternoon", "Evening", "Night")
REQUIRED_SHIFT_FIELDS = (
    "date",
    "start_time",
    "end_time",
    "bureau",
    "assigned_to",
    "shift_type",
)
COUNT_FIELDS = (
    "total_shifts_per_person",
    "weekend_shifts_per_person",
    "night_shifts_per_person",
)


class InvalidRequest(ValueError):
    """Raised when a generation request cannot be turned into a prompt."""


@dataclass(frozen=True)
class PreferenceConfirmation:
    confirmed: bool
    confirmed_by: Optional[int] = None
    confirmed_at: Optional[datetime] = None


@dataclass(frozen=True)
class ShiftPreferences:
    preferred_days: tuple[str, ...] = ()
    preferred_shifts: tuple[str, ...] = ()
    unavailable_days: tuple[str, ...] = ()  # YYYY-MM-DD
    max_shifts_per_week: int = 5
    notes: str = ""
    confirmation: Optional[PreferenceConfirmation] = None  # None = pending

    @property
    def is_confirmed(self) -> bool:
        return self.confirmation is not None and self.confirmation.confirmed


@dataclass(frozen=True)
class RecentHistory:
    weekend_shifts: int = 0
    night_shifts: int = 0
    total_shifts: int = 0


@dataclass(frozen=True)
class EmployeeProfile:
    id: int
    full_name: str
    title: str
    shift_role: str  # editor | senior | correspondent
    bureau: str
    email: str = ""
    preferences: ShiftPreferences = field(default_factory=ShiftPreferences)
    recent_history: Optional[RecentHistory] = None


@dataclass(frozen=True)
class ExistingShift:
    """A shift already in the store that the model must leave untouched."""
    date: date
    employee_name: str
    shift_type: str


@dataclass(frozen=True)
class GenerationRequest:
    start_date: date
    end_date: date
    period_type: str = "week"
    bureau: str = ALL_BUREAUS
    roster: tuple[EmployeeProfile, ...] = ()
    existing_shifts: tuple[ExistingShift, ...] = ()
    holidays: tuple[date, ...] = ()
    preserve_existing: bool = False
    save_to_database: bool = False

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise InvalidRequest(
                f"end_date {self.end_date} is before start_date {self.start_date}"
            )
        if self.period_type not in PERIOD_TYPES:
            raise InvalidRequest(f"type must be one of: {', '.join(PERIOD_TYPES)}")
        if not self.bureau:
            raise InvalidRequest("bureau is required")

    @property
    def day_count(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def for_bureau(self, bureau: str) -> "GenerationRequest":
        """Narrow a multi-bureau request to one bureau's roster."""
        roster = tuple(e for e in self.roster if e.bureau == bureau)
        names = {e.full_name for e in roster}
        existing = tuple(s for s in self.existing_shifts if s.employee_name in names)
        return replace(self, bureau=bureau, roster=roster, existing_shifts=existing)

    def debug_context(self) -> dict:
        """Summary kept alongside parse failures for operators."""
        return {
            "period": {
                "start_date": self.start_date.isoformat(),
                "end_date": self.end_date.isoformat(),
                "type": self.period_type,
            },
            "bureau": self.bureau,
            "employeeCount": len(self.roster),
            "existingShiftCount": len(self.existing_shifts),
        }


@dataclass(frozen=True)
class ShiftCandidate:
    """One shift proposed by the model. Assignee is a display name, resolved on save."""
    date: str
    start_time: str
    end_time: str
    bureau: str
    assigned_to: str
    shift_type: str
    reasoning: str = ""
    role_level: str = ""


@dataclass(frozen=True)
class FairnessMetrics:
    # Count maps are stored read-only and left out of the hash.
    total_shifts_per_person: Mapping[str, int] = field(default_factory=dict, hash=False)
    weekend_shifts_per_person: Mapping[str, int] = field(default_factory=dict, hash=False)
    night_shifts_per_person: Mapping[str, int] = field(default_factory=dict, hash=False)
    preference_satisfaction_rate: float = 0.0
    hard_constraint_violations: tuple[str, ...] = ()

    def __post_init__(self):
        for name in COUNT_FIELDS:
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def to_dict(self) -> dict:
        data = {name: dict(getattr(self, name)) for name in COUNT_FIELDS}
        data["preference_satisfaction_rate"] = self.preference_satisfaction_rate
        data["hard_constraint_violations"] = list(self.hard_constraint_violations)
        return data


@dataclass(frozen=True)
class GeneratedSchedule:
    shifts: tuple[ShiftCandidate, ...]
    fairness_metrics: FairnessMetrics = field(default_factory=FairnessMetrics)
    recommendations: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.shifts:
            raise ValueError("GeneratedSchedule requires at least one shift")

    @property
    def bureaus(self) -> list[str]:
        return sorted({s.bureau for s in self.shifts})

    @property
    def assignees(self) -> list[str]:
        seen = []
        for s in self.shifts:
            if s.assigned_to not in seen:
                seen.append(s.assigned_to)
        return seen

    def to_dict(self) -> dict:
        return {
            "shifts": [asdict(s) for s in self.shifts],
            "fairness_metrics": self.fairness_metrics.to_dict(),
            "recommendations": list(self.recommendations),
        }


@dataclass
class GenerationResult:
    """Output of one orchestrated generation call."""
    success: bool
    schedule: Optional[GeneratedSchedule] = None
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    model_used: Optional[str] = None
    max_tokens: Optional[int] = None  # effective cap after provider ceiling
    attempts: int = 0
