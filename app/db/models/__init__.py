from app.db.database import Base

# Import models
from app.db.models.bureaus import Bureaus
from app.db.models.users import Users, ShiftRole, UserStatus
from app.db.models.shift_preferences import ShiftPreferences
from app.db.models.shifts import Shifts, ShiftStatus
from app.db.models.shift_assignments import ShiftAssignments, AssignmentStatus
from app.db.models.time_off_requests import TimeOffRequests, TimeOffStatus

__all__ = [
    "Base",
    # Models
    "Bureaus",
    "Users",
    "ShiftPreferences",
    "Shifts",
    "ShiftAssignments",
    "TimeOffRequests",
    # Enums
    "ShiftRole",
    "UserStatus",
    "ShiftStatus",
    "AssignmentStatus",
    "TimeOffStatus",
]
