"""
Schedule generation - main orchestration layer.
Prompt building -> model call (with retries) -> parsing -> validation.

Transport failures classified as retryable are retried with exponential
backoff. Content rejections from the parser are terminal for the call and
are never retried. Each call owns its own retry state, so several calls
(e.g. one per bureau) can run concurrently.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from app.core.config import settings

from .llm_provider import BaseLLMProvider, LLMResponse, ModelClientError, get_llm_provider
from .prompts import build_prompts
from .response_parser import ScheduleParseError, ScheduleResponseParser, FailureLog
from .schedule_validator import validate_schedule
from .types import (
    ALL_BUREAUS,
    FairnessMetrics,
    GeneratedSchedule,
    GenerationRequest,
    GenerationResult,
    InvalidRequest,
)


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class GenerationFailed(Exception):
    def __init__(self, reason: str, detail: Optional[str] = None, attempts: int = 0):
        message = f"{reason}: {detail}" if detail else reason
        super().__init__(message)
        self.reason = reason
        self.detail = detail
        self.attempts = attempts


def backoff_delay_ms(attempt: int, base_delay_ms: int) -> int:
    """Delay before retrying after a failed attempt (1-based): base * 2^(attempt-1)."""
    return base_delay_ms * 2 ** (attempt - 1)


async def invoke_with_retry(
    provider: BaseLLMProvider,
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    max_retries: Optional[int] = None,
    base_delay_ms: Optional[int] = None,
    sleep: Sleep = asyncio.sleep,
) -> tuple[LLMResponse, int]:
    """
    Call the provider until it succeeds, fails fatally, or runs out of retries.

    Returns (response, attempts used). Raises GenerationFailed otherwise.
    """
    if max_retries is None:
        max_retries = settings.LLM_MAX_RETRIES
    if base_delay_ms is None:
        base_delay_ms = settings.LLM_RETRY_BASE_DELAY_MS
    total_attempts = max_retries + 1

    attempt = 0
    while True:
        attempt += 1
        try:
            response = await provider.generate(system_prompt, user_prompt, max_tokens)
            return response, attempt
        except ModelClientError as e:
            if not e.retryable:
                logger.error(f"[Retry] Fatal {e.kind} on attempt {attempt}/{total_attempts}: {e}")
                raise GenerationFailed(e.kind, str(e), attempts=attempt) from e
            if attempt >= total_attempts:
                logger.error(f"[Retry] Giving up after {attempt} attempts, last error {e.kind}: {e}")
                raise GenerationFailed("max retries exceeded", f"{e.kind}: {e}", attempts=attempt) from e

            delay_ms = backoff_delay_ms(attempt, base_delay_ms)
            logger.warning(
                f"[Retry] Attempt {attempt}/{total_attempts} failed with {e.kind}, retrying in {delay_ms}ms"
            )
            await sleep(delay_ms / 1000)


def merge_schedules(schedules: list[GeneratedSchedule]) -> GeneratedSchedule:
    """Combine per-bureau schedules into one."""
    shifts, recommendations, violations = [], [], []
    totals, weekends, nights = {}, {}, {}
    rates = []

    for schedule in schedules:
        metrics = schedule.fairness_metrics
        shifts.extend(schedule.shifts)
        recommendations.extend(schedule.recommendations)
        violations.extend(metrics.hard_constraint_violations)
        totals.update(metrics.total_shifts_per_person)
        weekends.update(metrics.weekend_shifts_per_person)
        nights.update(metrics.night_shifts_per_person)
        rates.append(metrics.preference_satisfaction_rate)

    return GeneratedSchedule(
        shifts=tuple(shifts),
        fairness_metrics=FairnessMetrics(
            total_shifts_per_person=totals,
            weekend_shifts_per_person=weekends,
            night_shifts_per_person=nights,
            preference_satisfaction_rate=sum(rates) / len(rates) if rates else 0.0,
            hard_constraint_violations=tuple(violations),
        ),
        recommendations=tuple(recommendations),
    )


class ScheduleGenerator:
    """
    Entry point for "generate a schedule".

    Holds no per-call state; provider, parser log and sleep are injectable so
    tests can run without a network or real delays.
    """

    def __init__(
        self,
        provider: Optional[BaseLLMProvider] = None,
        failure_log: Optional[FailureLog] = None,
        sleep: Sleep = asyncio.sleep,
        max_tokens: Optional[int] = None,
        max_retries: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        bureaus: Optional[list[str]] = None,
    ):
        self.provider = provider
        self.parser = ScheduleResponseParser(failure_log)
        self.sleep = sleep
        self.max_tokens = max_tokens if max_tokens is not None else settings.GENERATION_MAX_TOKENS
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.bureaus = list(bureaus) if bureaus is not None else list(settings.BUREAUS)

    def _provider(self) -> BaseLLMProvider:
        if self.provider is None:
            self.provider = get_llm_provider()
        return self.provider

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        if request.bureau == ALL_BUREAUS:
            return await self._generate_all_bureaus(request)

        result = await self._generate_single(request)
        if result.success:
            result.warnings = validate_schedule(result.schedule, [request.bureau])
        return result

    async def _generate_all_bureaus(self, request: GenerationRequest) -> GenerationResult:
        logger.info(f"[Parallel] Generating schedules for {', '.join(self.bureaus)} simultaneously")
        started = time.monotonic()

        results = await asyncio.gather(
            *(self._generate_single(request.for_bureau(b)) for b in self.bureaus)
        )

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"[Parallel] All bureaus completed in {elapsed_ms}ms")

        attempts = sum(r.attempts for r in results)
        for bureau, result in zip(self.bureaus, results):
            if not result.success:
                return GenerationResult(
                    success=False,
                    error=f"{bureau}: {result.error}",
                    model_used=result.model_used,
                    max_tokens=result.max_tokens,
                    attempts=attempts,
                )

        merged = merge_schedules([r.schedule for r in results])
        return GenerationResult(
            success=True,
            schedule=merged,
            warnings=validate_schedule(merged, self.bureaus),
            model_used=results[0].model_used,
            max_tokens=results[0].max_tokens,
            attempts=attempts,
        )

    async def _generate_single(self, request: GenerationRequest) -> GenerationResult:
        try:
            system_prompt, user_prompt = build_prompts(request)
        except InvalidRequest as e:
            return GenerationResult(success=False, error=str(e))

        provider = self._provider()
        logger.info(f"Calling {provider.provider_name()} for {request.bureau} schedule generation")

        try:
            response, attempts = await invoke_with_retry(
                provider,
                system_prompt,
                user_prompt,
                self.max_tokens,
                max_retries=self.max_retries,
                base_delay_ms=self.base_delay_ms,
                sleep=self.sleep,
            )
        except GenerationFailed as e:
            return GenerationResult(
                success=False,
                error=str(e),
                model_used=provider.provider_name(),
                max_tokens=provider.cap_tokens(self.max_tokens),
                attempts=e.attempts,
            )

        failure = None
        schedule = None
        try:
            schedule = self.parser.parse_or_raise(response.raw_text, request.debug_context())
        except ScheduleParseError as e:
            failure = GenerationFailed("parse error", e.reason, attempts=attempts)

        if schedule is not None:
            limit = request.day_count * 24
            if len(schedule.shifts) > limit:
                logger.error(
                    f"[Validation Error] Model generated {len(schedule.shifts)} shifts, "
                    f"exceeds limit of {limit} for {request.day_count} days"
                )
                failure = GenerationFailed(
                    "too many shifts",
                    f"model generated {len(schedule.shifts)} shifts, limit is {limit} "
                    f"for {request.day_count} days",
                    attempts=attempts,
                )

        if failure is not None:
            return GenerationResult(
                success=False,
                error=str(failure),
                model_used=response.model_used,
                max_tokens=response.max_tokens,
                attempts=attempts,
            )

        logger.info(f"[Validation Success] {len(schedule.shifts)} shifts for {request.day_count} days")
        return GenerationResult(
            success=True,
            schedule=schedule,
            model_used=response.model_used,
            max_tokens=response.max_tokens,
            attempts=attempts,
        )


async def generate_schedule(
    request: GenerationRequest,
    provider: Optional[BaseLLMProvider] = None,
    failure_log: Optional[FailureLog] = None,
    sleep: Sleep = asyncio.sleep,
) -> GenerationResult:
    """Generate a schedule for a request. See ScheduleGenerator."""
    generator = ScheduleGenerator(provider=provider, failure_log=failure_log, sleep=sleep)
    return await generator.generate(request)
