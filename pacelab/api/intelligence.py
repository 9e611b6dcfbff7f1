"""API endpoints for the daily decision and the weekly adaptation loop.

Never expose prompts or internal context.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from pacelab.api.dependencies.auth import get_current_athlete_id
from pacelab.coach.errors import DecisionPersistenceError, DecisionUnavailableError, InputValidationError, PhilosophyTransitionError
from pacelab.coach.schemas.decision import DailyDecisionResult
from pacelab.metrics.baselines import recompute_baseline
from pacelab.services.adaptation.loop import AdaptationLoop
from pacelab.services.athlete_data import AthleteDataStore
from pacelab.services.intelligence.failures import IntelligenceFailureHandler
from pacelab.services.intelligence.runtime import DailyDecisionOrchestrator, get_orchestrator
from pacelab.services.intelligence.store import DecisionStore

router = APIRouter(prefix="/intelligence", tags=["intelligence"])

store = DecisionStore()
failure_handler = IntelligenceFailureHandler()

BOTTLENECK_LABELS = {
    "weak_aerobic_base": "Aerobic base",
    "weak_lactate_threshold": "Lactate threshold",
    "poor_race_specific_endurance": "Race-specific endurance",
    "overtraining_risk": "Accumulated fatigue",
    "performance_plateau": "Performance plateau",
    "injury_risk_high": "Injury risk",
    "insufficient_volume": "Training volume",
    "pre_race_peak": "Race taper",
    "balanced_fitness": "Balanced fitness",
}


def _today() -> date:
    return datetime.now(timezone.utc).date()


class TodayRequest(BaseModel):
    decision_date: date | None = None
    manual_wellness: dict[str, Any] | None = None
    force_refresh: bool = False


class ModificationRequest(BaseModel):
    decision_date: date | None = None
    choice: Literal["accepted", "declined", "modified"]
    modified_type: str | None = None
    modified_distance_km: float | None = Field(default=None, ge=0)
    modified_pace: str | None = None
    reason: str | None = None


class WellnessIngestRequest(BaseModel):
    sample_date: date
    hrv_ms: float | None = Field(default=None, gt=0)
    resting_hr: float | None = Field(default=None, gt=0)
    sleep_score: float | None = Field(default=None, ge=0, le=100)
    sleep_duration_seconds: int | None = Field(default=None, ge=0)
    sleep_deep_seconds: int | None = Field(default=None, ge=0)
    sleep_rem_seconds: int | None = Field(default=None, ge=0)
    vo2max: float | None = Field(default=None, gt=0)
    source: str = "wearable"


def get_decision_orchestrator() -> DailyDecisionOrchestrator:
    return get_orchestrator()


@router.post("/today", response_model=DailyDecisionResult)
async def post_today_decision(
    body: TodayRequest,
    athlete_id: str = Depends(get_current_athlete_id),
    orchestrator: DailyDecisionOrchestrator = Depends(get_decision_orchestrator),
):
    """Get today's decision, computing it on a cache miss.

    Returns 422 for a malformed manual check-in, 503 when no decision could
    be produced and 500 with the computed decision when it could not be stored.
    """
    day = body.decision_date or _today()
    logger.info(f"Daily decision requested: athlete_id={athlete_id}, date={day.isoformat()}, force_refresh={body.force_refresh}")
    try:
        return await orchestrator.get_daily_decision(
            athlete_id,
            day,
            manual_wellness=body.manual_wellness,
            force_refresh=body.force_refresh,
        )
    except InputValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail={"message": e.message, "errors": e.errors}) from e
    except DecisionUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=failure_handler.unavailable(e)) from e
    except DecisionPersistenceError as e:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=failure_handler.not_persisted(e))


@router.get("/today", response_model=DailyDecisionResult)
def get_today_decision(day: date | None = None, athlete_id: str = Depends(get_current_athlete_id)):
    """Get the cached decision for a day without computing one."""
    day = day or _today()
    row = store.get_decision(athlete_id, day)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No decision for {day.isoformat()}")
    return DailyDecisionOrchestrator._cached_result(row)


@router.post("/today/modifications", status_code=status.HTTP_201_CREATED)
def post_session_modification(body: ModificationRequest, athlete_id: str = Depends(get_current_athlete_id)):
    """Record whether the athlete accepted, declined or changed the recommendation."""
    day = body.decision_date or _today()
    decision = store.get_decision(athlete_id, day)
    if decision is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No decision for {day.isoformat()}")
    modification = store.record_session_modification(
        decision,
        body.choice,
        modified_type=body.modified_type,
        modified_distance_km=body.modified_distance_km,
        modified_pace=body.modified_pace,
        reason=body.reason,
    )
    return {
        "id": modification.id,
        "decision_id": decision.id,
        "choice": modification.choice,
        "modified_type": modification.modified_type,
        "modified_distance_km": modification.modified_distance_km,
    }


@router.post("/wellness", status_code=status.HTTP_201_CREATED)
def post_wellness(body: WellnessIngestRequest, athlete_id: str = Depends(get_current_athlete_id)):
    """Store a day's wellness reading and refresh the athlete's baselines."""
    values = body.model_dump(exclude={"sample_date"})
    AthleteDataStore.upsert_wellness_sample(athlete_id, body.sample_date, **values)
    baseline = recompute_baseline(athlete_id, _today())
    return {
        "sample_date": body.sample_date.isoformat(),
        "baseline_ready": baseline is not None,
        "baseline_days_used": baseline.days_used if baseline else None,
    }


@router.post("/adaptation/run")
def run_adaptation(athlete_id: str = Depends(get_current_athlete_id)):
    """Run the weekly adaptation loop for the current athlete now."""
    try:
        record = AdaptationLoop().run_for_athlete(athlete_id, _today())
    except PhilosophyTransitionError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message) from e
    if record is None:
        return {"skipped": True, "reason": "A later week has already been reviewed"}
    return {
        "skipped": False,
        "week_start": record.week_start.isoformat(),
        "outcome": record.outcome,
        "action_taken": record.action_taken,
        "adaptation_ratio": record.adaptation_ratio,
        "volume_adjustment_percent": record.volume_adjustment_percent,
        "sessions_adjusted": record.sessions_adjusted,
        "philosophy_changed": record.philosophy_changed,
        "explanation": record.explanation,
    }


@router.get("/coaching-summary")
def get_coaching_summary(athlete_id: str = Depends(get_current_athlete_id)):
    """Current bottleneck, philosophy and the latest weekly review."""
    data = AthleteDataStore()
    bottleneck = data.get_latest_bottleneck(athlete_id)
    philosophy = data.get_open_philosophy(athlete_id)
    adaptation = data.get_latest_adaptation(athlete_id)

    return {
        "bottleneck": {
            "type": bottleneck.primary_bottleneck,
            "label": BOTTLENECK_LABELS.get(bottleneck.primary_bottleneck, bottleneck.primary_bottleneck),
            "confidence": bottleneck.confidence,
            "coaching_note": bottleneck.coaching_note,
            "evidence": bottleneck.evidence,
            "assessed_at": bottleneck.assessed_at.isoformat(),
        }
        if bottleneck
        else None,
        "philosophy": {
            "mode": philosophy.mode,
            "volume_target_km": philosophy.volume_target_km,
            "intensity_split": [
                philosophy.intensity_easy_percent,
                philosophy.intensity_moderate_percent,
                philosophy.intensity_hard_percent,
            ],
            "key_workout_types": philosophy.key_workout_types,
            "forbidden_workout_types": philosophy.forbidden_workout_types,
            "success_metric": philosophy.success_metric,
            "started_at": philosophy.started_at.isoformat(),
        }
        if philosophy
        else None,
        "latest_adaptation": {
            "week_start": adaptation.week_start.isoformat(),
            "outcome": adaptation.outcome,
            "action_taken": adaptation.action_taken,
            "explanation": adaptation.explanation,
        }
        if adaptation
        else None,
    }
