from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Trend = Literal["up", "down", "stable"]
RunningConditions = Literal["ideal", "good", "acceptable", "challenging", "poor", "unknown"]


class ManualWellness(BaseModel):
    """Athlete's own morning check-in, used instead of wearable data.

    Ordinal scales: sleep_quality and energy 1 (worst) to 5 (best),
    soreness 1 (none) to 4 (severe).
    """

    model_config = ConfigDict(extra="forbid")

    sleep_quality: int | None = Field(default=None, ge=1, le=5)
    energy: int | None = Field(default=None, ge=1, le=5)
    soreness: int | None = Field(default=None, ge=1, le=4)

    @model_validator(mode="after")
    def _at_least_one(self) -> ManualWellness:
        if self.sleep_quality is None and self.energy is None and self.soreness is None:
            raise ValueError("manual wellness needs at least one of sleep_quality, energy, soreness")
        return self


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class HealthSignals(_Frozen):
    data_source: Literal["wearable", "manual"]

    hrv_today: float | None
    hrv_baseline: float | None
    hrv_deviation_percent: float | None
    hrv_trend_7d: Trend
    hrv_days_below_baseline: int

    resting_hr_today: float | None
    resting_hr_baseline: float | None
    resting_hr_deviation_percent: float | None
    resting_hr_trend_7d: Trend
    resting_hr_days_above_baseline: int

    sleep_score_today: float | None
    sleep_baseline: float | None
    sleep_hours: float | None
    sleep_deep_percent: float | None
    sleep_rem_percent: float | None
    sleep_trend_7d: Trend
    consecutive_poor_sleep: int | None

    soreness: int | None = None


class TrainingLoadSignals(_Frozen):
    load_yesterday: float | None
    load_7d_total: float
    load_7d_avg: float
    km_this_week: float
    km_last_week: float
    km_4_week_avg: float
    planned_km_this_week: float | None
    hard_sessions_7d: int
    hard_sessions_14d: int
    days_since_last_hard_session: int | None
    days_since_last_rest: int | None
    consecutive_run_days: int
    week_over_week_change_percent: float | None
    acute_chronic_ratio: float | None


class RecentRun(_Frozen):
    run_date: date
    days_ago: int
    session_type: str
    distance_km: float
    avg_pace: str | None
    avg_hr: float | None
    training_stress: float


class PlannedSessionContext(_Frozen):
    session_id: str
    type: str
    distance_km: float | None
    structure: str | None
    target_pace_min: str | None
    target_pace_max: str | None
    target_hr_zone: str | None
    estimated_load: float | None
    coach_notes: str | None
    importance: str | None
    plan_phase: str | None
    week_number: int | None
    total_weeks: int | None


class UpcomingSession(_Frozen):
    session_date: date
    days_ahead: int
    type: str
    distance_km: float | None
    importance: str | None


class ProfileContext(_Frozen):
    goal: str | None
    race_date: date | None
    race_distance: str | None
    weeks_to_race: int | None
    runner_level: str | None
    threshold_pace: str | None
    easy_pace_min: str | None
    easy_pace_max: str | None
    recovery_pace: str | None
    aerobic_threshold_hr: int | None
    lactate_threshold_hr: int | None
    weekly_volume_baseline_km: float | None


class WeatherConditions(_Frozen):
    temperature_c: float | None
    feels_like_c: float | None
    humidity_pct: float | None
    wind_speed_kmh: float | None
    rain_probability_pct: float | None
    description: str | None
    source: str


class PhilosophyContext(_Frozen):
    mode: str
    bottleneck: str | None
    volume_multiplier: float
    key_workout_types: list[str]
    forbidden_workout_types: list[str]
    started_on: date


class BottleneckContext(_Frozen):
    primary_bottleneck: str
    confidence: str
    coaching_note: str | None
    assessed_on: date


class DailyContext(_Frozen):
    """Immutable snapshot of everything known about an athlete on one day."""

    athlete_id: str
    context_date: date
    day_of_week: str

    health: HealthSignals | None
    training_load: TrainingLoadSignals | None
    recent_runs: list[RecentRun]
    planned_session: PlannedSessionContext | None
    upcoming_sessions: list[UpcomingSession]
    profile: ProfileContext | None
    weather: WeatherConditions | None
    running_conditions_score: RunningConditions

    current_philosophy: PhilosophyContext | None
    current_bottleneck: BottleneckContext | None

    insufficient_baseline_data: bool
    days_of_data: int
    data_gaps: list[str] = Field(default_factory=list)
