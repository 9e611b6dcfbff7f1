"""Read and write access to athlete telemetry, training history and plans.

Every method opens its own session so independent reads can run
concurrently on worker threads.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from loguru import logger
from sqlalchemy import select

from pacelab.db.models import (
    AdaptationRecord,
    AthleteProfile,
    Baseline,
    BottleneckAssessment,
    PhilosophyPeriod,
    PlannedSession,
    TrainingPlan,
    TrainingRecord,
    WellnessSample,
)
from pacelab.db.session import get_session


def _day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    return datetime.combine(start, time.min), datetime.combine(end + timedelta(days=1), time.min)


class AthleteDataStore:
    """Store for athlete-facing data the engine reads and the ingest path writes."""

    # ------------------------------------------------------------------
    # Wellness
    # ------------------------------------------------------------------

    @staticmethod
    def get_wellness_history(athlete_id: str, start: date, end: date) -> list[WellnessSample]:
        """Wellness samples in [start, end], oldest first."""
        with get_session() as session:
            return list(
                session.execute(
                    select(WellnessSample)
                    .where(
                        WellnessSample.athlete_id == athlete_id,
                        WellnessSample.sample_date >= start,
                        WellnessSample.sample_date <= end,
                    )
                    .order_by(WellnessSample.sample_date.asc())
                )
                .scalars()
                .all()
            )

    @staticmethod
    def upsert_wellness_sample(athlete_id: str, sample_date: date, **values: Any) -> WellnessSample:
        """Insert or replace the athlete's wellness reading for one day."""
        with get_session() as session:
            sample = session.execute(
                select(WellnessSample).where(
                    WellnessSample.athlete_id == athlete_id,
                    WellnessSample.sample_date == sample_date,
                )
            ).scalar_one_or_none()
            if sample is None:
                sample = WellnessSample(athlete_id=athlete_id, sample_date=sample_date)
                session.add(sample)
            for field in (
                "hrv_ms",
                "resting_hr",
                "sleep_score",
                "sleep_duration_seconds",
                "sleep_deep_seconds",
                "sleep_rem_seconds",
                "vo2max",
            ):
                setattr(sample, field, values.get(field))
            sample.manual_input = bool(values.get("manual_input", False))
            sample.source = values.get("source") or ("manual" if sample.manual_input else "wearable")
        logger.debug(f"Wellness sample stored: athlete_id={athlete_id}, date={sample_date.isoformat()}")
        return sample

    @staticmethod
    def get_baseline(athlete_id: str) -> Baseline | None:
        with get_session() as session:
            return session.get(Baseline, athlete_id)

    # ------------------------------------------------------------------
    # Training history
    # ------------------------------------------------------------------

    @staticmethod
    def get_training_records(athlete_id: str, start: date, end: date) -> list[TrainingRecord]:
        """Non-deleted runs started in [start, end], newest first."""
        range_start, range_end = _day_bounds(start, end)
        with get_session() as session:
            return list(
                session.execute(
                    select(TrainingRecord)
                    .where(
                        TrainingRecord.athlete_id == athlete_id,
                        TrainingRecord.deleted_at.is_(None),
                        TrainingRecord.started_at >= range_start,
                        TrainingRecord.started_at < range_end,
                    )
                    .order_by(TrainingRecord.started_at.desc())
                )
                .scalars()
                .all()
            )

    @staticmethod
    def add_training_record(athlete_id: str, started_at: datetime, **values: Any) -> TrainingRecord:
        with get_session() as session:
            record = TrainingRecord(athlete_id=athlete_id, started_at=started_at, **values)
            session.add(record)
        return record

    @staticmethod
    def soft_delete_training_record(record_id: str) -> bool:
        """Mark a run deleted. Returns False when it does not exist or is already deleted."""
        with get_session() as session:
            record = session.get(TrainingRecord, record_id)
            if record is None or record.deleted_at is not None:
                return False
            record.deleted_at = datetime.now(timezone.utc)
        logger.info(f"Training record soft-deleted: record_id={record_id}")
        return True

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    @staticmethod
    def get_planned_session(athlete_id: str, day: date) -> tuple[PlannedSession, TrainingPlan] | None:
        """The active plan's session for the day, with its plan."""
        with get_session() as session:
            row = session.execute(
                select(PlannedSession, TrainingPlan)
                .join(TrainingPlan, PlannedSession.plan_id == TrainingPlan.id)
                .where(
                    PlannedSession.athlete_id == athlete_id,
                    PlannedSession.session_date == day,
                    TrainingPlan.is_active.is_(True),
                )
                .order_by(PlannedSession.created_at.asc())
            ).first()
            if row is None:
                return None
            return row[0], row[1]

    @staticmethod
    def get_upcoming_sessions(athlete_id: str, day: date, limit: int) -> list[PlannedSession]:
        """The next `limit` sessions of the active plan after day."""
        with get_session() as session:
            return list(
                session.execute(
                    select(PlannedSession)
                    .join(TrainingPlan, PlannedSession.plan_id == TrainingPlan.id)
                    .where(
                        PlannedSession.athlete_id == athlete_id,
                        PlannedSession.session_date > day,
                        TrainingPlan.is_active.is_(True),
                    )
                    .order_by(PlannedSession.session_date.asc())
                    .limit(limit)
                )
                .scalars()
                .all()
            )

    @staticmethod
    def get_sessions_between(athlete_id: str, start: date, end: date) -> list[PlannedSession]:
        """All of the athlete's planned sessions in [start, end], any plan."""
        with get_session() as session:
            return list(
                session.execute(
                    select(PlannedSession)
                    .where(
                        PlannedSession.athlete_id == athlete_id,
                        PlannedSession.session_date >= start,
                        PlannedSession.session_date <= end,
                    )
                    .order_by(PlannedSession.session_date.asc())
                )
                .scalars()
                .all()
            )

    # ------------------------------------------------------------------
    # Profile and coaching state
    # ------------------------------------------------------------------

    @staticmethod
    def get_profile(athlete_id: str) -> AthleteProfile | None:
        with get_session() as session:
            return session.get(AthleteProfile, athlete_id)

    @staticmethod
    def get_open_philosophy(athlete_id: str) -> PhilosophyPeriod | None:
        with get_session() as session:
            return session.execute(
                select(PhilosophyPeriod)
                .where(
                    PhilosophyPeriod.athlete_id == athlete_id,
                    PhilosophyPeriod.ended_at.is_(None),
                )
                .order_by(PhilosophyPeriod.started_at.desc())
            ).scalars().first()

    @staticmethod
    def get_latest_bottleneck(athlete_id: str) -> BottleneckAssessment | None:
        with get_session() as session:
            return session.execute(
                select(BottleneckAssessment)
                .where(BottleneckAssessment.athlete_id == athlete_id)
                .order_by(BottleneckAssessment.assessed_at.desc())
            ).scalars().first()

    @staticmethod
    def list_athletes_with_active_plan() -> list[str]:
        with get_session() as session:
            return list(
                session.execute(select(TrainingPlan.athlete_id).where(TrainingPlan.is_active.is_(True)).distinct())
                .scalars()
                .all()
            )

    @staticmethod
    def get_latest_adaptation(athlete_id: str) -> AdaptationRecord | None:
        with get_session() as session:
            return session.execute(
                select(AdaptationRecord)
                .where(AdaptationRecord.athlete_id == athlete_id)
                .order_by(AdaptationRecord.week_start.desc())
            ).scalars().first()
