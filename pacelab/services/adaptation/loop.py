"""Weekly adaptation loop.

Once per closed week: compare planned against actual volume, classify the
outcome, adjust what is left of the current week's plan, then reassess the
bottleneck and switch philosophy when it changed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from pacelab.config.policy import (
    DEFAULT_PROGRESSION_PERCENT,
    DELOAD_MODES,
    INTENSITY_SESSION_TYPES,
    MIN_ADJUSTED_DISTANCE_KM,
    MIN_COMPLETION_RATE,
    ON_TARGET_MIN_RATIO,
    OVERREACH_INTENSITY_ADJUSTMENT,
    OVERREACH_RATIO,
    OVERREACH_VOLUME_ADJUSTMENT,
    SEVERE_OVERREACH_RATIO,
    SEVERE_UNDERTRAINING_RATIO,
)
from pacelab.db.models import AdaptationRecord, PlannedSession, TrainingPlan
from pacelab.db.session import get_session
from pacelab.metrics.derivation import week_start
from pacelab.services.adaptation.bottleneck import detect_bottleneck
from pacelab.services.adaptation.philosophy import select_philosophy, transition_philosophy
from pacelab.services.athlete_data import AthleteDataStore


@dataclass(frozen=True)
class AdaptationDecision:
    outcome: str  # on_target, overreached, undertrained, recovering, neutral
    action: str  # continue, hold, reduce
    volume_adjustment_percent: float = 0.0
    intensity_adjustment_percent: float = 0.0


def classify_adaptation(
    ratio: float | None,
    completion_rate: float | None,
    philosophy_mode: str | None = None,
    progression_rate: float | None = None,
) -> AdaptationDecision:
    """Classify a closed week from its actual/planned volume ratio.

    Args:
        ratio: Actual km over planned km, None when nothing was planned
        completion_rate: Completed over planned sessions
        philosophy_mode: Mode of the open philosophy period, if any
        progression_rate: Weekly progression of that philosophy, in percent

    Returns:
        AdaptationDecision with the adjustments to apply to the current week
    """
    if ratio is None:
        return AdaptationDecision("neutral", "hold")
    if ratio > OVERREACH_RATIO:
        intensity = OVERREACH_INTENSITY_ADJUSTMENT if ratio > SEVERE_OVERREACH_RATIO else 0.0
        return AdaptationDecision("overreached", "reduce", OVERREACH_VOLUME_ADJUSTMENT, intensity)
    if ratio < ON_TARGET_MIN_RATIO and philosophy_mode in DELOAD_MODES:
        return AdaptationDecision("recovering", "hold")
    if ratio < SEVERE_UNDERTRAINING_RATIO:
        return AdaptationDecision("undertrained", "reduce", OVERREACH_VOLUME_ADJUSTMENT)
    if ratio < ON_TARGET_MIN_RATIO or (completion_rate is not None and completion_rate < MIN_COMPLETION_RATE):
        return AdaptationDecision("undertrained", "hold")
    progression = progression_rate if progression_rate is not None else DEFAULT_PROGRESSION_PERCENT
    return AdaptationDecision("on_target", "continue", progression)


def explain(decision: AdaptationDecision, planned_km: float, actual_km: float, completion_rate: float | None) -> str:
    completion = f"{completion_rate * 100:.0f}%" if completion_rate is not None else "n/a"
    summary = f"Ran {actual_km:.1f}km of {planned_km:.1f}km planned, {completion} of sessions completed."
    if decision.outcome == "neutral":
        return f"{summary} No volume was planned, holding the plan as is."
    if decision.outcome == "overreached":
        tail = " Hard sessions swapped for easy running." if decision.intensity_adjustment_percent < 0 else ""
        return f"{summary} Volume well above plan: reducing this week by {abs(decision.volume_adjustment_percent):.0f}%.{tail}"
    if decision.outcome == "recovering":
        return f"{summary} Lower volume is expected in a deload block, holding the plan."
    if decision.outcome == "undertrained" and decision.action == "reduce":
        return f"{summary} Plan was far out of reach: reducing this week by {abs(decision.volume_adjustment_percent):.0f}%."
    if decision.outcome == "undertrained":
        return f"{summary} Below plan, holding volume until consistency returns."
    return f"{summary} On target: progressing this week by {decision.volume_adjustment_percent:.0f}%."


class AdaptationLoop:
    """Runs the weekly planned-vs-actual review for one athlete."""

    def __init__(self, store: AthleteDataStore | None = None) -> None:
        self.store = store or AthleteDataStore()

    def run_for_athlete(self, athlete_id: str, today: date) -> AdaptationRecord | None:
        """Review the last closed week and adjust the current one.

        Idempotent per week: a second run for the same week returns the
        stored record without touching the plan, finishing the bottleneck
        reassessment first if an earlier run failed before completing it.

        Returns:
            The week's AdaptationRecord, or None when a later week was already reviewed
        """
        target_start = week_start(today) - timedelta(days=7)
        target_end = target_start + timedelta(days=6)

        with get_session() as session:
            existing = session.execute(
                select(AdaptationRecord).where(
                    AdaptationRecord.athlete_id == athlete_id,
                    AdaptationRecord.week_start >= target_start,
                )
                .order_by(AdaptationRecord.week_start.desc())
            ).scalars().all()
        for record in existing:
            if record.week_start == target_start:
                if record.reassessed_at is None:
                    logger.info(f"Resuming reassessment for recorded week: athlete_id={athlete_id}, week_start={target_start.isoformat()}")
                    return self._reassess(athlete_id, today, record)
                logger.info(f"Adaptation already recorded: athlete_id={athlete_id}, week_start={target_start.isoformat()}")
                return record
        if existing:
            logger.info(f"Skipping adaptation, a later week is already reviewed: athlete_id={athlete_id}, week_start={target_start.isoformat()}")
            return None

        planned = [s for s in self.store.get_sessions_between(athlete_id, target_start, target_end) if s.type != "rest"]
        runs = self.store.get_training_records(athlete_id, target_start, target_end)
        run_dates = {r.started_at.date() for r in runs}

        planned_km = round(sum(s.distance_km or 0.0 for s in planned), 2)
        actual_km = round(sum(r.distance_meters for r in runs) / 1000, 2)
        completed = sum(1 for s in planned if s.status == "completed" or s.session_date in run_dates)
        completion_rate = round(completed / len(planned), 2) if planned else None
        ratio = round(actual_km / planned_km, 4) if planned_km > 0 else None

        philosophy = self.store.get_open_philosophy(athlete_id)
        decision = classify_adaptation(
            ratio,
            completion_rate,
            philosophy.mode if philosophy else None,
            philosophy.progression_rate_percent if philosophy is not None else None,
        )
        explanation = explain(decision, planned_km, actual_km, completion_rate)

        try:
            with get_session() as session:
                adjusted = self._adjust_current_week(session, athlete_id, today, decision)
                record = AdaptationRecord(
                    athlete_id=athlete_id,
                    week_start=target_start,
                    week_end=target_end,
                    planned_km=planned_km,
                    actual_km=actual_km,
                    planned_sessions=len(planned),
                    completed_sessions=completed,
                    completion_rate=completion_rate,
                    adaptation_ratio=ratio,
                    outcome=decision.outcome,
                    action_taken=decision.action,
                    volume_adjustment_percent=decision.volume_adjustment_percent,
                    intensity_adjustment_percent=decision.intensity_adjustment_percent,
                    sessions_adjusted=adjusted,
                    explanation=explanation,
                )
                session.add(record)
                session.flush()
        except IntegrityError:
            # Another worker reviewed the same week first; its adjustments stand
            logger.warning(f"Concurrent adaptation run detected: athlete_id={athlete_id}, week_start={target_start.isoformat()}")
            with get_session() as session:
                return session.execute(
                    select(AdaptationRecord).where(
                        AdaptationRecord.athlete_id == athlete_id,
                        AdaptationRecord.week_start == target_start,
                    )
                ).scalar_one_or_none()

        logger.info(
            f"Adaptation recorded: athlete_id={athlete_id}, week_start={target_start.isoformat()}, ratio={ratio}, "
            f"outcome={decision.outcome}, action={decision.action}, sessions_adjusted={adjusted}"
        )

        return self._reassess(athlete_id, today, record)

    @staticmethod
    def _adjust_current_week(session, athlete_id: str, today: date, decision: AdaptationDecision) -> int:
        """Apply the adjustment to the active plan's remaining sessions this week."""
        if not decision.volume_adjustment_percent and not decision.intensity_adjustment_percent:
            return 0
        sessions = session.execute(
            select(PlannedSession)
            .join(TrainingPlan, PlannedSession.plan_id == TrainingPlan.id)
            .where(
                PlannedSession.athlete_id == athlete_id,
                TrainingPlan.is_active.is_(True),
                PlannedSession.session_date >= today,
                PlannedSession.session_date <= week_start(today) + timedelta(days=6),
                PlannedSession.status == "planned",
                PlannedSession.type != "rest",
            )
        ).scalars().all()

        factor = 1 + decision.volume_adjustment_percent / 100
        for planned in sessions:
            reasons = []
            if planned.distance_km is not None and decision.volume_adjustment_percent:
                planned.distance_km = max(MIN_ADJUSTED_DISTANCE_KM, round(planned.distance_km * factor, 1))
                reasons.append(f"volume {decision.volume_adjustment_percent:+.0f}%")
            if decision.intensity_adjustment_percent < 0 and planned.type in INTENSITY_SESSION_TYPES:
                reasons.append(f"{planned.type} replaced with easy running")
                planned.type = "easy"
                planned.structure = None
            if reasons:
                planned.modification_reason = f"Weekly adaptation ({decision.outcome}): {', '.join(reasons)}"
        return len(sessions)

    def _reassess(self, athlete_id: str, today: date, record: AdaptationRecord) -> AdaptationRecord:
        """Detect the bottleneck and open a new philosophy when it changed.

        The record is marked reassessed only after both steps succeed, so a
        failed run is picked up again by the next one.
        """
        assessment = detect_bottleneck(athlete_id, today, self.store)
        open_period = self.store.get_open_philosophy(athlete_id)
        changed = open_period is None or open_period.bottleneck != assessment.primary_bottleneck
        if changed:
            self._transition(athlete_id, today, assessment.primary_bottleneck)

        with get_session() as session:
            stored = session.get(AdaptationRecord, record.id)
            stored.philosophy_changed = changed
            stored.reassessed_at = datetime.now(timezone.utc)
        return stored

    def _transition(self, athlete_id: str, today: date, bottleneck: str) -> None:
        profile = self.store.get_profile(athlete_id)
        weeks_to_race = None
        if profile is not None and profile.race_date is not None and profile.race_date >= today:
            weeks_to_race = -(-(profile.race_date - today).days // 7)
        this_week = week_start(today)
        runs = self.store.get_training_records(athlete_id, this_week - timedelta(weeks=4), this_week - timedelta(days=1))
        base_volume = round(sum(r.distance_meters for r in runs) / 1000 / 4, 1) or None

        transition_philosophy(athlete_id, select_philosophy(bottleneck, base_volume, weeks_to_race))
