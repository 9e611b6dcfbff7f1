from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class AthleteProfile(Base):
    """Athlete profile used to personalise the daily decision.

    Stores goal and race information, pace zones, heart-rate thresholds and
    the location used for weather lookups.
    """

    __tablename__ = "athlete_profiles"

    athlete_id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    goal: Mapped[str | None] = mapped_column(String, nullable=True)  # e.g. "sub-3:30 marathon"
    race_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    race_distance: Mapped[str | None] = mapped_column(String, nullable=True)  # 5k, 10k, half, marathon, ultra
    runner_level: Mapped[str | None] = mapped_column(String, nullable=True)

    # Pace zones (min/km, stored as strings like "4:45")
    threshold_pace: Mapped[str | None] = mapped_column(String, nullable=True)
    easy_pace_min: Mapped[str | None] = mapped_column(String, nullable=True)
    easy_pace_max: Mapped[str | None] = mapped_column(String, nullable=True)
    recovery_pace: Mapped[str | None] = mapped_column(String, nullable=True)

    aerobic_threshold_hr: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lactate_threshold_hr: Mapped[int | None] = mapped_column(Integer, nullable=True)
    weekly_volume_baseline_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    vo2max: Mapped[float | None] = mapped_column(Float, nullable=True)
    injury_history: Mapped[list | None] = mapped_column(JSON, nullable=True)
    weaknesses: Mapped[list | None] = mapped_column(JSON, nullable=True)

    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class WellnessSample(Base):
    """One wellness reading per athlete per calendar day.

    Device syncs and manual check-ins both land here; a later write for the
    same day replaces the earlier one.
    """

    __tablename__ = "wellness_samples"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    athlete_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    sample_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    hrv_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    resting_hr: Mapped[float | None] = mapped_column(Float, nullable=True)
    sleep_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    sleep_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sleep_deep_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sleep_rem_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    vo2max: Mapped[float | None] = mapped_column(Float, nullable=True)

    manual_input: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source: Mapped[str] = mapped_column(String, nullable=False, default="wearable")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (UniqueConstraint("athlete_id", "sample_date", name="uq_wellness_athlete_date"),)


class Baseline(Base):
    """Rolling personal baselines, one row per athlete, recomputed in place."""

    __tablename__ = "baselines"

    athlete_id: Mapped[str] = mapped_column(String, primary_key=True)

    hrv_baseline_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    hrv_baseline_std: Mapped[float | None] = mapped_column(Float, nullable=True)
    hrv_7day_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    rhr_baseline_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    rhr_baseline_std: Mapped[float | None] = mapped_column(Float, nullable=True)
    rhr_7day_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    sleep_baseline_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    sleep_deep_percent_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    sleep_duration_avg_hours: Mapped[float | None] = mapped_column(Float, nullable=True)

    days_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calculated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class TrainingRecord(Base):
    """A completed run. Append-only; removal is a soft delete."""

    __tablename__ = "training_records"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    athlete_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    distance_meters: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_hr: Mapped[float | None] = mapped_column(Float, nullable=True)
    training_stress: Mapped[float | None] = mapped_column(Float, nullable=True)
    session_type: Mapped[str] = mapped_column(String, nullable=False, default="easy")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (Index("idx_training_records_athlete_started", "athlete_id", "started_at"),)


class TrainingPlan(Base):
    """A generated training plan. At most one active plan per athlete."""

    __tablename__ = "training_plans"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    athlete_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    goal: Mapped[str | None] = mapped_column(String, nullable=True)
    race_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    race_distance: Mapped[str | None] = mapped_column(String, nullable=True)
    phase: Mapped[str | None] = mapped_column(String, nullable=True)  # base, build, peak, taper
    total_weeks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    generated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index(
            "uq_training_plans_one_active",
            "athlete_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )


class PlannedSession(Base):
    """A session scheduled by the active plan for one calendar day."""

    __tablename__ = "planned_sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    plan_id: Mapped[str] = mapped_column(String, ForeignKey("training_plans.id"), nullable=False, index=True)
    athlete_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    session_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    type: Mapped[str] = mapped_column(String, nullable=False)  # easy, tempo, intervals, long, rest, ...
    distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    structure: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_pace_min: Mapped[str | None] = mapped_column(String, nullable=True)
    target_pace_max: Mapped[str | None] = mapped_column(String, nullable=True)
    target_hr_zone: Mapped[str | None] = mapped_column(String, nullable=True)
    estimated_load: Mapped[float | None] = mapped_column(Float, nullable=True)
    coach_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    importance: Mapped[str | None] = mapped_column(String, nullable=True)  # key, supporting, optional
    status: Mapped[str] = mapped_column(String, nullable=False, default="planned")  # planned, completed, skipped
    modification_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("idx_planned_sessions_athlete_date", "athlete_id", "session_date"),)


class DailyDecision(Base):
    """The cached daily decision for one athlete and calendar day.

    Metadata fields for fast queries, decision_data for the full validated
    payload. A forced refresh overwrites the row in place.
    """

    __tablename__ = "daily_decisions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    athlete_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    decision_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    action: Mapped[str] = mapped_column(String, nullable=False)  # proceed, modify, replace, rest
    recovery_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recovery_status: Mapped[str | None] = mapped_column(String, nullable=True)
    show_warning: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    decision_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    planned_session: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    context_hash: Mapped[str | None] = mapped_column(String, nullable=True)
    capability_name: Mapped[str | None] = mapped_column(String, nullable=True)
    manual_input: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (UniqueConstraint("athlete_id", "decision_date", name="uq_daily_decision_athlete_date"),)


class SessionModification(Base):
    """Audit row recording what the athlete did with a daily decision. Append-only."""

    __tablename__ = "session_modifications"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    athlete_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    decision_id: Mapped[str] = mapped_column(String, ForeignKey("daily_decisions.id"), nullable=False, index=True)
    modification_date: Mapped[date] = mapped_column(Date, nullable=False)

    choice: Mapped[str] = mapped_column(String, nullable=False)  # accepted, declined, modified
    original_type: Mapped[str | None] = mapped_column(String, nullable=True)
    original_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    original_pace: Mapped[str | None] = mapped_column(String, nullable=True)
    modified_type: Mapped[str | None] = mapped_column(String, nullable=True)
    modified_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    modified_pace: Mapped[str | None] = mapped_column(String, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    recovery_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class BottleneckAssessment(Base):
    """One bottleneck classification. The latest row per athlete is current."""

    __tablename__ = "bottleneck_assessments"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    athlete_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    primary_bottleneck: Mapped[str] = mapped_column(String, nullable=False)
    strength: Mapped[float] = mapped_column(Float, nullable=False)
    confidence: Mapped[str] = mapped_column(String, nullable=False)  # high, medium, low
    evidence: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    coaching_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    secondary_signals: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    previous_bottleneck: Mapped[str | None] = mapped_column(String, nullable=True)
    bottleneck_changed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    assessed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, index=True)


class PhilosophyPeriod(Base):
    """A coaching philosophy period. At most one open period per athlete."""

    __tablename__ = "philosophy_periods"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    athlete_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    mode: Mapped[str] = mapped_column(String, nullable=False)
    bottleneck: Mapped[str | None] = mapped_column(String, nullable=True)
    volume_target_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    volume_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    intensity_easy_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=80)
    intensity_moderate_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    intensity_hard_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    progression_rate_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    key_workout_types: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    forbidden_workout_types: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    success_metric: Mapped[str | None] = mapped_column(Text, nullable=True)
    rationale: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index(
            "uq_philosophy_periods_one_open",
            "athlete_id",
            unique=True,
            sqlite_where=text("ended_at IS NULL"),
            postgresql_where=text("ended_at IS NULL"),
        ),
    )


class AdaptationRecord(Base):
    """Planned-vs-actual outcome for one closed ISO week."""

    __tablename__ = "adaptation_records"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    athlete_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    week_end: Mapped[date] = mapped_column(Date, nullable=False)

    planned_km: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    actual_km: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    planned_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    adaptation_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)

    outcome: Mapped[str] = mapped_column(String, nullable=False)  # on_target, overreached, undertrained, recovering, neutral
    action_taken: Mapped[str] = mapped_column(String, nullable=False)  # continue, hold, reduce
    volume_adjustment_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    intensity_adjustment_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    sessions_adjusted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    philosophy_changed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Set once the bottleneck and philosophy were reassessed for this week
    reassessed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (UniqueConstraint("athlete_id", "week_start", name="uq_adaptation_athlete_week"),)
