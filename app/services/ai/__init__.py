"""
AI schedule generation package.

Usage:
    from datetime import date
    from app.services.ai import build_generation_request, generate_schedule, save_schedule

    request = build_generation_request(db, date(2025, 1, 6), date(2025, 1, 12), bureau="Milan")
    result = await generate_schedule(request)
    if result.success:
        save_schedule(db, result.schedule, actor_id=user.id)
"""

from .types import (
    EmployeeProfile,
    ExistingShift,
    FairnessMetrics,
    GeneratedSchedule,
    GenerationRequest,
    GenerationResult,
    InvalidRequest,
    ShiftCandidate,
)
from .context_loader import build_generation_request
from .response_parser import parse_schedule_response, get_last_failed_responses
from .schedule_generator import generate_schedule, GenerationFailed
from .schedule_validator import validate_schedule, find_schedule_conflicts
from .schedule_writer import save_schedule, SaveResult

__all__ = [
    # Types
    "EmployeeProfile",
    "ExistingShift",
    "FairnessMetrics",
    "GeneratedSchedule",
    "GenerationRequest",
    "GenerationResult",
    "ShiftCandidate",
    "SaveResult",
    # Errors
    "InvalidRequest",
    "GenerationFailed",
    # Main entry points
    "build_generation_request",
    "generate_schedule",
    "save_schedule",
    # Lower-level functions
    "parse_schedule_response",
    "get_last_failed_responses",
    "validate_schedule",
    "find_schedule_conflicts",
]
