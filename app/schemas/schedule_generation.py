from pydantic import BaseModel, Field, field_validator
from datetime import date
from typing import List, Optional

from app.services.ai.types import ALL_BUREAUS


class GenerateScheduleRequest(BaseModel):
    start_date: date
    end_date: date
    type: str = "week"
    bureau: str = ALL_BUREAUS
    preserve_existing: bool = False
    save_to_database: bool = False


class ShiftPayload(BaseModel):
    date: str
    start_time: str
    end_time: str
    bureau: str
    assigned_to: str
    shift_type: str
    role_level: Optional[str] = ""
    reasoning: Optional[str] = ""


class FairnessMetricsPayload(BaseModel):
    weekend_shifts_per_person: dict[str, int] = Field(default_factory=dict)
    night_shifts_per_person: dict[str, int] = Field(default_factory=dict)
    total_shifts_per_person: dict[str, int] = Field(default_factory=dict)
    preference_satisfaction_rate: float = 0.0
    hard_constraint_violations: List[str] = Field(default_factory=list)


class SchedulePayload(BaseModel):
    shifts: List[ShiftPayload]
    fairness_metrics: FairnessMetricsPayload = Field(default_factory=FairnessMetricsPayload)
    recommendations: List[str] = Field(default_factory=list)

    @field_validator("shifts")
    @classmethod
    def shifts_not_empty(cls, v):
        if not v:
            raise ValueError("Schedule has no shifts to save")
        return v


class SaveScheduleRequest(BaseModel):
    schedule: SchedulePayload
    skip_conflict_check: bool = False


class GenerateScheduleResponse(BaseModel):
    success: bool
    schedule: SchedulePayload
    warnings: List[str] = Field(default_factory=list)
    model_used: Optional[str] = None
    max_tokens: Optional[int] = None
    saved: bool = False
    shift_ids: List[int] = Field(default_factory=list)


class SaveScheduleResponse(BaseModel):
    success: bool
    saved_shifts: int
    shift_ids: List[int]


class AIStatusResponse(BaseModel):
    ai_enabled: bool
    provider: str
    model: str
    bureaus: List[str]
    configuration_status: str
