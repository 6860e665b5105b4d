import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_current_user
from app.core.config import settings, is_ai_configured
from app.db.models.users import Users
from app.schemas.schedule_generation import (
    AIStatusResponse,
    GenerateScheduleRequest,
    GenerateScheduleResponse,
    SaveScheduleRequest,
    SaveScheduleResponse,
)
from app.services.ai import (
    InvalidRequest,
    build_generation_request,
    find_schedule_conflicts,
    generate_schedule,
    get_last_failed_responses,
    save_schedule,
)
from app.services.ai.response_parser import ScheduleParseError, schedule_from_dict
from app.services.ai.types import ALL_BUREAUS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


def _ensure_configured():
    if not is_ai_configured():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI features are disabled. Set the provider API key to enable.",
        )


@router.post("/generate-schedule", response_model=GenerateScheduleResponse)
async def generate_schedule_endpoint(
    payload: GenerateScheduleRequest,
    db: Session = Depends(get_db),
    current_user: Users = Depends(get_current_user),
):
    """Generate a schedule for a period, optionally saving it straight away."""
    allowed = [*settings.BUREAUS, ALL_BUREAUS]
    if payload.bureau not in allowed:
        raise HTTPException(status_code=400, detail=f"bureau must be one of: {', '.join(allowed)}")

    _ensure_configured()

    try:
        request = await run_in_threadpool(
            build_generation_request,
            db,
            payload.start_date,
            payload.end_date,
            payload.type,
            payload.bureau,
            payload.preserve_existing,
            payload.save_to_database,
        )
    except InvalidRequest as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await generate_schedule(request)
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error or "Failed to generate schedule")

    schedule_data = result.schedule.to_dict()
    shift_ids = []
    if payload.save_to_database:
        conflicts = find_schedule_conflicts(result.schedule)
        if conflicts:
            return JSONResponse(
                status_code=207,
                content={
                    "warning": "Schedule generated but failed to save to database",
                    "schedule": schedule_data,
                    "save_error": f"Schedule has {len(conflicts)} conflict(s)",
                    "conflicts": [c.to_dict() for c in conflicts],
                },
            )

        saved = await run_in_threadpool(save_schedule, db, result.schedule, current_user.id)
        if not saved.success:
            return JSONResponse(
                status_code=207,
                content={
                    "warning": "Schedule generated but failed to save to database",
                    "schedule": schedule_data,
                    "save_error": saved.error,
                },
            )
        shift_ids = saved.created_ids

    return GenerateScheduleResponse(
        success=True,
        schedule=schedule_data,
        warnings=result.warnings,
        model_used=result.model_used,
        max_tokens=result.max_tokens,
        saved=payload.save_to_database,
        shift_ids=shift_ids,
    )


@router.post("/save-schedule", response_model=SaveScheduleResponse)
def save_schedule_endpoint(
    payload: SaveScheduleRequest,
    db: Session = Depends(get_db),
    current_user: Users = Depends(get_current_user),
):
    """Save a previously generated schedule without regenerating it."""
    try:
        schedule = schedule_from_dict(payload.schedule.model_dump())
    except ScheduleParseError as e:
        raise HTTPException(status_code=400, detail=e.reason)

    if not payload.skip_conflict_check:
        conflicts = find_schedule_conflicts(schedule)
        if conflicts:
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content={
                    "error": f"Schedule has {len(conflicts)} conflict(s). "
                             f"Use skip_conflict_check: true to save anyway.",
                    "conflicts": [c.to_dict() for c in conflicts],
                    "conflict_count": len(conflicts),
                },
            )

    result = save_schedule(db, schedule, current_user.id)
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error or "Failed to save schedule")

    return SaveScheduleResponse(
        success=True,
        saved_shifts=len(result.created_ids),
        shift_ids=result.created_ids,
    )


@router.get("/debug-last-response")
def debug_last_response(current_user: Users = Depends(get_current_user)):
    """Recent parse failures. Previews only, full text stays in the server logs."""
    failures = [f.to_summary() for f in get_last_failed_responses()]
    if not failures:
        return {"success": True, "message": "No recent failures", "failures": []}

    return {
        "success": True,
        "count": len(failures),
        "failures": failures,
        "note": "Response previews are truncated. Full responses are logged server-side.",
    }


@router.get("/status", response_model=AIStatusResponse)
def ai_status(current_user: Users = Depends(get_current_user)):
    configured = is_ai_configured()
    return AIStatusResponse(
        ai_enabled=configured,
        provider=settings.LLM_PROVIDER,
        model=settings.LLM_MODEL,
        bureaus=settings.BUREAUS,
        configuration_status=(
            "AI features are enabled and ready to use"
            if configured
            else "AI features are disabled. Set the provider API key to enable."
        ),
    )
