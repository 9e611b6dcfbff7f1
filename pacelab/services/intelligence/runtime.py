"""Daily decision orchestration.

Per (athlete, day): NO_DECISION -> COMPUTING -> CACHED, and on forced
refresh CACHED -> COMPUTING -> CACHED (overwrite).

The orchestrator holds no state between calls except the per-key locks
that keep one process from computing the same decision twice at once.
"""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any

from loguru import logger
from pydantic import ValidationError

from pacelab.coach.capability import DecisionCapability, get_decision_capability
from pacelab.coach.errors import DecisionCapabilityError, DecisionPersistenceError, DecisionUnavailableError, InputValidationError
from pacelab.coach.schemas.context import DailyContext, ManualWellness
from pacelab.coach.schemas.decision import DailyDecisionResult, DecisionPayload
from pacelab.config.settings import settings
from pacelab.db.models import DailyDecision
from pacelab.integrations.weather.client import WeatherClient
from pacelab.services.intelligence.context_builder import build_daily_context, compute_context_hash
from pacelab.services.intelligence.store import DecisionStore


def parse_manual_wellness(raw: ManualWellness | dict[str, Any] | None) -> ManualWellness | None:
    """Validate a manual check-in payload.

    Raises:
        InputValidationError: If the payload is malformed
    """
    if raw is None or isinstance(raw, ManualWellness):
        return raw
    try:
        return ManualWellness.model_validate(raw)
    except ValidationError as e:
        raise InputValidationError("Invalid manual wellness payload", errors=e.errors(include_url=False, include_context=False)) from e


class DailyDecisionOrchestrator:
    """Produces at most one cached decision per athlete per day."""

    def __init__(
        self,
        capability: DecisionCapability | None = None,
        store: DecisionStore | None = None,
        weather_client: WeatherClient | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.capability = capability or get_decision_capability()
        self.store = store or DecisionStore()
        self.weather_client = weather_client
        self.timeout_seconds = timeout_seconds or settings.decision_timeout_seconds
        self._locks: dict[tuple[str, date], asyncio.Lock] = {}

    def _lock_for(self, athlete_id: str, decision_date: date) -> asyncio.Lock:
        key = (athlete_id, decision_date)
        # Past days are no longer requested concurrently
        for stale in [k for k, v in self._locks.items() if k[1] < decision_date and not v.locked()]:
            del self._locks[stale]
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @staticmethod
    def _cached_result(row: DailyDecision) -> DailyDecisionResult:
        return DailyDecisionResult(
            athlete_id=row.athlete_id,
            decision_date=row.decision_date.isoformat(),
            payload=DecisionPayload.model_validate(row.decision_data),
            cached=True,
            persisted=True,
            decision_id=row.id,
            capability=row.capability_name,
        )

    async def get_daily_decision(
        self,
        athlete_id: str,
        decision_date: date,
        manual_wellness: ManualWellness | dict[str, Any] | None = None,
        force_refresh: bool = False,
    ) -> DailyDecisionResult:
        """Return the athlete's decision for the day, computing it on a cache miss.

        Args:
            athlete_id: Athlete ID
            decision_date: Calendar day
            manual_wellness: Optional check-in that replaces device wellness
            force_refresh: Recompute even when a decision is cached

        Returns:
            DailyDecisionResult, cached=True when served from the store

        Raises:
            InputValidationError: Malformed manual wellness; nothing is read or written
            DecisionUnavailableError: The capability failed; nothing is written
            DecisionPersistenceError: Computed but not stored; carries the result
        """
        manual = parse_manual_wellness(manual_wellness)

        if not force_refresh:
            row = await asyncio.to_thread(self.store.get_decision, athlete_id, decision_date)
            if row is not None:
                logger.info(f"Returning cached daily decision: athlete_id={athlete_id}, date={decision_date.isoformat()}")
                return self._cached_result(row)

        lock = self._lock_for(athlete_id, decision_date)
        async with lock:
            if not force_refresh:
                row = await asyncio.to_thread(self.store.get_decision, athlete_id, decision_date)
                if row is not None:
                    logger.info(f"Decision computed by a concurrent request: athlete_id={athlete_id}, date={decision_date.isoformat()}")
                    return self._cached_result(row)
            return await self._compute(athlete_id, decision_date, manual)

    async def _compute(self, athlete_id: str, decision_date: date, manual: ManualWellness | None) -> DailyDecisionResult:
        context = await build_daily_context(athlete_id, decision_date, manual_wellness=manual, weather_client=self.weather_client)
        context_doc = context.model_dump(mode="json")

        try:
            payload = await self._run_capability(context, context_doc)
        except DecisionCapabilityError as e:
            last = await asyncio.to_thread(self.store.get_latest_decision_before, athlete_id, decision_date)
            raise DecisionUnavailableError(
                athlete_id,
                decision_date,
                last_decision_date=last.decision_date if last else None,
                reason=e.message,
            ) from e

        result = DailyDecisionResult(
            athlete_id=athlete_id,
            decision_date=decision_date.isoformat(),
            payload=payload,
            cached=False,
            persisted=True,
            capability=self.capability.name,
        )

        try:
            row = await asyncio.to_thread(
                self.store.upsert_decision,
                athlete_id,
                decision_date,
                payload,
                context_doc["planned_session"],
                compute_context_hash(context_doc),
                self.capability.name,
                manual is not None,
            )
        except Exception as e:
            logger.exception(f"Failed to store daily decision (athlete_id={athlete_id}, date={decision_date.isoformat()})")
            raise DecisionPersistenceError(result.model_copy(update={"persisted": False}), cause=e) from e

        return result.model_copy(update={"decision_id": row.id})

    async def _run_capability(self, context: DailyContext, context_doc: dict[str, Any]) -> DecisionPayload:
        name = self.capability.name
        logger.info(f"Invoking decision capability: capability={name}, athlete_id={context.athlete_id}, date={context.context_date.isoformat()}")
        try:
            raw = await asyncio.wait_for(self.capability.decide(context_doc), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error(f"Decision capability timed out after {self.timeout_seconds}s: capability={name}")
            raise DecisionCapabilityError(name, f"timed out after {self.timeout_seconds}s") from e
        except DecisionCapabilityError:
            raise
        except Exception as e:
            logger.exception(f"Decision capability raised: capability={name}")
            raise DecisionCapabilityError(name, f"{type(e).__name__}: {e}") from e

        try:
            payload = DecisionPayload.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Decision capability returned a malformed document: capability={name}, errors={e.error_count()}")
            raise DecisionCapabilityError(name, f"malformed decision: {e}") from e

        logger.info(
            f"Decision produced: capability={name}, action={payload.decision.action}, "
            f"score={payload.recovery_assessment.overall_score}, warning={payload.warning_ui.warning_level}"
        )
        return payload


_orchestrator: DailyDecisionOrchestrator | None = None


def get_orchestrator() -> DailyDecisionOrchestrator:
    """Process-wide orchestrator so the per-key locks are shared between requests."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DailyDecisionOrchestrator()
    return _orchestrator
