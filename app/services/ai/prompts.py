"""
Prompt construction for schedule generation.
Builds the system and user prompts from a GenerationRequest. Pure and deterministic.
"""

import json
from datetime import date

from app.core.config import settings

from .types import GenerationRequest, EmployeeProfile, InvalidRequest, ALL_BUREAUS, SHIFT_TYPES


CONFIRMED_TAG = "CONFIRMED"
PENDING_TAG = "PENDING (not yet approved)"

SHIFT_WINDOWS = {
    "Morning": ("08:00", "16:00"),
    "Afternoon": ("16:00", "00:00"),
    "Night": ("00:00", "08:00"),
}

OUTPUT_SCHEMA = {
    "shifts": [
        {
            "date": "YYYY-MM-DD",
            "start_time": "HH:MM",
            "end_time": "HH:MM",
            "bureau": "one of the bureaus listed above",
            "assigned_to": "Employee full name, exactly as given",
            "role_level": "editor | senior | correspondent",
            "shift_type": " | ".join(SHIFT_TYPES),
            "reasoning": "max 10 chars, e.g. Sr-AM or Fair-rot",
        }
    ],
    "fairness_metrics": {
        "weekend_shifts_per_person": {"Employee Name": 2},
        "night_shifts_per_person": {"Employee Name": 1},
        "total_shifts_per_person": {"Employee Name": 10},
        "preference_satisfaction_rate": 0.85,
        "hard_constraint_violations": [],
    },
    "recommendations": ["Specific actionable suggestion"],
}


def build_system_prompt(bureaus: list[str]) -> str:
    """System prompt: role, hard constraints, fairness rules and the output contract."""
    windows = "\n".join(
        f"- {name}: {start} - {end}" for name, (start, end) in SHIFT_WINDOWS.items()
    )

    return f"""You are a JSON API that generates shift schedules for the {settings.SCHEDULING_TEAM} team.
Do not ask questions, do not explain, do not wrap the output in markdown.
Your response starts with {{ and ends with }}.

Bureaus: {", ".join(bureaus)}

HARD CONSTRAINTS (never violate):
1. No employee has overlapping shifts.
2. At least 11 hours rest between consecutive shifts of one employee.
3. At least one senior correspondent or editor on every shift.
4. Employees only work in their own bureau.
5. Never schedule an employee on an unavailable date.
6. No regular shifts on public holidays; holiday cover is at most Morning + Afternoon.
7. No more than 48 hours per week per employee.

SOFT PREFERENCES (in priority order):
1. Preferred days and shift types. CONFIRMED preferences outrank PENDING ones;
   PENDING preferences are hints that may still change.
2. Rotate nights, weekends and holidays fairly, using recent history.
3. Keep total shifts per person balanced.

SHIFT WINDOWS (8 hours each, 3 per day for 24/7 cover):
{windows}

METRICS:
- preference_satisfaction_rate = shifts matching preferred days/shifts / total shifts, between 0.0 and 1.0.
- List any unavoidable violations in hard_constraint_violations.

OUTPUT FORMAT (all keys required):
{json.dumps(OUTPUT_SCHEMA, indent=2)}

Use employee names exactly as provided. Make reasonable assumptions instead of asking."""


def _format_preferences(emp: EmployeeProfile) -> list[str]:
    prefs = emp.preferences
    status = CONFIRMED_TAG if prefs.is_confirmed else PENDING_TAG
    lines = [
        f"- Preference Status: {status}",
        f"- Preferred Days: {', '.join(prefs.preferred_days) or 'No preference'}",
        f"- Preferred Shifts: {', '.join(prefs.preferred_shifts) or 'No preference'}",
        f"- Unavailable: {', '.join(prefs.unavailable_days) or 'None'}",
        f"- Max Shifts/Week: {prefs.max_shifts_per_week}",
    ]
    if prefs.notes:
        lines.append(f"- Notes: {prefs.notes}")
    return lines


def _format_employee(emp: EmployeeProfile) -> str:
    lines = [
        f"### {emp.full_name} - {emp.title}",
        f"- Bureau: {emp.bureau}",
        f"- Role Level: {emp.shift_role}",
    ]
    if emp.email:
        lines.append(f"- Email: {emp.email}")
    lines.append("Preferences:")
    lines.extend(_format_preferences(emp))
    if emp.recent_history:
        h = emp.recent_history
        lines.append("Recent History (last month):")
        lines.append(f"- Weekend Shifts: {h.weekend_shifts}")
        lines.append(f"- Night Shifts: {h.night_shifts}")
        lines.append(f"- Total Shifts: {h.total_shifts}")
    return "\n".join(lines)


def _format_holidays(holidays: tuple[date, ...]) -> str:
    if not holidays:
        return "None in this period"
    return "\n".join(f"- {d.isoformat()}" for d in holidays)


def build_user_prompt(request: GenerationRequest) -> str:
    """User prompt: period, roster with preferences, holidays and preserved shifts."""
    roster = "\n\n".join(_format_employee(e) for e in request.roster)

    sections = [
        f"Generate a schedule for the {settings.SCHEDULING_TEAM} team.",
        "",
        "## SCHEDULE PERIOD",
        f"- Start Date: {request.start_date.isoformat()}",
        f"- End Date: {request.end_date.isoformat()}",
        f"- Type: {request.period_type}",
        f"- Bureau: {request.bureau}",
        "",
        f"## TEAM ROSTER ({len(request.roster)} employees)",
        "",
        roster,
        "",
        "## HOLIDAYS IN PERIOD",
        _format_holidays(request.holidays),
    ]

    if request.preserve_existing and request.existing_shifts:
        sections += ["", "## EXISTING SHIFTS (DO NOT MODIFY)"]
        sections += [
            f"- {s.date.isoformat()}: {s.employee_name} ({s.shift_type})"
            for s in request.existing_shifts
        ]

    sections += [
        "",
        "Generate the complete schedule now. Respond with the JSON object only.",
    ]
    return "\n".join(sections)


def build_prompts(request: GenerationRequest) -> tuple[str, str]:
    """Return (system_prompt, user_prompt) for a request."""
    if not isinstance(request, GenerationRequest):
        raise InvalidRequest("Expected a GenerationRequest")
    if not request.roster:
        raise InvalidRequest("No employees found for scheduling")

    if request.bureau == ALL_BUREAUS:
        bureaus = list(settings.BUREAUS)
    else:
        bureaus = [request.bureau]

    return build_system_prompt(bureaus), build_user_prompt(request)
