"""Daily context aggregation.

Collects wellness, baselines, training history, plan, profile, coaching
state and weather into one immutable DailyContext for an athlete and day.

Independent reads fan out on worker threads and join once. A failed read
degrades to None and is named in data_gaps; it never fails the aggregation.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import math
from collections.abc import Callable
from datetime import date, timedelta
from typing import Any

from loguru import logger

from pacelab.coach.schemas.context import (
    BottleneckContext,
    DailyContext,
    HealthSignals,
    ManualWellness,
    PhilosophyContext,
    PlannedSessionContext,
    ProfileContext,
    RecentRun,
    TrainingLoadSignals,
    UpcomingSession,
    WeatherConditions,
)
from pacelab.config.policy import (
    BASELINE_STALE_DAYS,
    CHRONIC_LOAD_WEEKS,
    HISTORY_DAYS,
    MANUAL_DEFAULT_LEVEL,
    MANUAL_HRV_MS,
    MANUAL_RESTING_HR,
    MANUAL_SLEEP_HOURS,
    MANUAL_SLEEP_SCORE,
    RECENT_RUN_DAYS,
    TREND_WINDOW_DAYS,
    UPCOMING_SESSION_COUNT,
)
from pacelab.config.settings import settings
from pacelab.db.models import AthleteProfile, Baseline, PlannedSession, TrainingPlan, TrainingRecord, WellnessSample
from pacelab.integrations.weather.client import WeatherClient, get_weather_client
from pacelab.metrics.conditions import running_conditions_score
from pacelab.metrics.derivation import (
    acute_chronic_ratio,
    consecutive_poor_sleep,
    consecutive_run_days,
    count_hard_sessions,
    days_above_baseline,
    days_below_baseline,
    days_since_last_hard_session,
    days_since_last_rest,
    deviation_percent,
    hours_from_seconds,
    percent_of,
    trend,
    week_over_week_load_change,
    week_start,
)
from pacelab.metrics.training_stress import estimate_training_stress, format_pace, pace_seconds_per_km
from pacelab.services.athlete_data import AthleteDataStore

# ---------------------------------------------------------------------------
# Manual wellness
# ---------------------------------------------------------------------------


def manual_to_wellness(manual: ManualWellness) -> dict[str, Any]:
    """Map a manual check-in onto synthetic device-equivalent values."""
    sleep_level = manual.sleep_quality or MANUAL_DEFAULT_LEVEL
    energy_level = manual.energy or MANUAL_DEFAULT_LEVEL
    return {
        "sleep_score": float(MANUAL_SLEEP_SCORE[sleep_level]),
        "sleep_hours": MANUAL_SLEEP_HOURS[sleep_level],
        "hrv_ms": MANUAL_HRV_MS[energy_level],
        "resting_hr": MANUAL_RESTING_HR[energy_level],
        "soreness": manual.soreness,
    }


# ---------------------------------------------------------------------------
# Block builders (PURE FUNCTIONS)
# ---------------------------------------------------------------------------


def _series(by_date: dict[date, float | None], end: date, days: int) -> list[float | None]:
    """Values for the `days` days ending at end, oldest first, None for gaps."""
    return [by_date.get(end - timedelta(days=offset)) for offset in range(days - 1, -1, -1)]


def build_health_signals(
    samples: list[WellnessSample],
    baseline: Baseline | None,
    day: date,
    manual: ManualWellness | None = None,
) -> HealthSignals | None:
    """Health block for the day.

    With a manual check-in every same-day value comes from the check-in;
    device values for that date are not read at all. Prior days keep their
    device history for trends and streaks.
    """
    history = [s for s in samples if s.sample_date < day]
    today_sample = next((s for s in samples if s.sample_date == day), None)

    if manual is not None:
        synthetic = manual_to_wellness(manual)
        hrv_today = synthetic["hrv_ms"]
        rhr_today = synthetic["resting_hr"]
        sleep_today = synthetic["sleep_score"]
        sleep_hours = synthetic["sleep_hours"]
        deep_percent = None
        rem_percent = None
        soreness = synthetic["soreness"]
        data_source = "manual"
    elif today_sample is not None:
        hrv_today = today_sample.hrv_ms
        rhr_today = today_sample.resting_hr
        sleep_today = today_sample.sleep_score
        sleep_hours = hours_from_seconds(today_sample.sleep_duration_seconds)
        deep_percent = percent_of(today_sample.sleep_deep_seconds, today_sample.sleep_duration_seconds)
        rem_percent = percent_of(today_sample.sleep_rem_seconds, today_sample.sleep_duration_seconds)
        soreness = None
        data_source = "manual" if today_sample.manual_input else "wearable"
    else:
        return None

    hrv_by_date: dict[date, float | None] = {s.sample_date: s.hrv_ms for s in history}
    rhr_by_date: dict[date, float | None] = {s.sample_date: s.resting_hr for s in history}
    sleep_by_date: dict[date, float | None] = {s.sample_date: s.sleep_score for s in history}
    hrv_by_date[day] = hrv_today
    rhr_by_date[day] = rhr_today
    sleep_by_date[day] = sleep_today

    hrv_week = _series(hrv_by_date, day, TREND_WINDOW_DAYS)
    rhr_week = _series(rhr_by_date, day, TREND_WINDOW_DAYS)
    sleep_week = _series(sleep_by_date, day, TREND_WINDOW_DAYS)
    sleep_newest_first = list(reversed(_series(sleep_by_date, day, HISTORY_DAYS)))

    hrv_baseline = baseline.hrv_baseline_avg if baseline else None
    rhr_baseline = baseline.rhr_baseline_avg if baseline else None
    sleep_baseline = baseline.sleep_baseline_avg if baseline else None

    return HealthSignals(
        data_source=data_source,
        hrv_today=hrv_today,
        hrv_baseline=hrv_baseline,
        hrv_deviation_percent=deviation_percent(hrv_today, hrv_baseline),
        hrv_trend_7d=trend(hrv_week, newest_first=False),
        hrv_days_below_baseline=days_below_baseline(hrv_week, hrv_baseline),
        resting_hr_today=rhr_today,
        resting_hr_baseline=rhr_baseline,
        resting_hr_deviation_percent=deviation_percent(rhr_today, rhr_baseline),
        resting_hr_trend_7d=trend(rhr_week, newest_first=False),
        resting_hr_days_above_baseline=days_above_baseline(rhr_week, rhr_baseline),
        sleep_score_today=sleep_today,
        sleep_baseline=sleep_baseline,
        sleep_hours=sleep_hours,
        sleep_deep_percent=deep_percent,
        sleep_rem_percent=rem_percent,
        sleep_trend_7d=trend(sleep_week, newest_first=False),
        consecutive_poor_sleep=consecutive_poor_sleep(sleep_newest_first, sleep_baseline),
        soreness=soreness,
    )


def _record_day(record: TrainingRecord) -> date:
    return record.started_at.date()


def _km(records: list[TrainingRecord], start: date, end: date) -> float:
    return round(sum(r.distance_meters for r in records if start <= _record_day(r) <= end) / 1000, 2)


def build_training_load(
    records: list[TrainingRecord],
    day: date,
    week_sessions: list[PlannedSession] | None,
    threshold_pace: str | None = None,
) -> TrainingLoadSignals:
    """Training-load block from runs (any order) anchored on day."""
    this_week = week_start(day)
    last_week = this_week - timedelta(days=7)
    chronic_start = this_week - timedelta(weeks=CHRONIC_LOAD_WEEKS)
    yesterday = day - timedelta(days=1)
    week_ago = day - timedelta(days=6)

    def stress(record: TrainingRecord) -> float:
        return estimate_training_stress(record.training_stress, record.duration_seconds, record.distance_meters, threshold_pace)

    load_yesterday = sum(stress(r) for r in records if _record_day(r) == yesterday)
    load_7d = sum(stress(r) for r in records if week_ago <= _record_day(r) <= day)

    km_this_week = _km(records, this_week, day)
    km_last_week = _km(records, last_week, this_week - timedelta(days=1))
    km_chronic = _km(records, chronic_start, this_week - timedelta(days=1))
    km_4_week_avg = round(km_chronic / CHRONIC_LOAD_WEEKS, 2)
    km_last_7_days = _km(records, week_ago, day)

    planned_km = None
    if week_sessions:
        planned_km = round(sum(s.distance_km or 0.0 for s in week_sessions if s.type != "rest"), 2)

    run_dates = [_record_day(r) for r in records if _record_day(r) <= day]
    typed = [(_record_day(r), r.session_type) for r in records]

    return TrainingLoadSignals(
        load_yesterday=round(load_yesterday, 1),
        load_7d_total=round(load_7d, 1),
        load_7d_avg=round(load_7d / 7, 1),
        km_this_week=km_this_week,
        km_last_week=km_last_week,
        km_4_week_avg=km_4_week_avg,
        planned_km_this_week=planned_km,
        hard_sessions_7d=count_hard_sessions(typed, day, 7),
        hard_sessions_14d=count_hard_sessions(typed, day, 14),
        days_since_last_hard_session=days_since_last_hard_session(typed, day),
        days_since_last_rest=days_since_last_rest(run_dates, day),
        consecutive_run_days=consecutive_run_days(run_dates, day),
        week_over_week_change_percent=week_over_week_load_change(km_this_week, km_last_week),
        acute_chronic_ratio=acute_chronic_ratio(km_last_7_days, km_4_week_avg),
    )


def build_recent_runs(records: list[TrainingRecord], day: date, threshold_pace: str | None = None) -> list[RecentRun]:
    cutoff = day - timedelta(days=RECENT_RUN_DAYS - 1)
    runs = []
    for record in sorted(records, key=lambda r: r.started_at, reverse=True):
        run_day = _record_day(record)
        if not cutoff <= run_day <= day:
            continue
        runs.append(
            RecentRun(
                run_date=run_day,
                days_ago=(day - run_day).days,
                session_type=record.session_type,
                distance_km=round(record.distance_meters / 1000, 2),
                avg_pace=format_pace(pace_seconds_per_km(record.distance_meters, record.duration_seconds)),
                avg_hr=record.avg_hr,
                training_stress=estimate_training_stress(
                    record.training_stress, record.duration_seconds, record.distance_meters, threshold_pace
                ),
            )
        )
    return runs


def build_planned_session(planned: tuple[PlannedSession, TrainingPlan] | None, day: date) -> PlannedSessionContext | None:
    if planned is None:
        return None
    session, plan = planned
    return PlannedSessionContext(
        session_id=session.id,
        type=session.type,
        distance_km=session.distance_km,
        structure=session.structure,
        target_pace_min=session.target_pace_min,
        target_pace_max=session.target_pace_max,
        target_hr_zone=session.target_hr_zone,
        estimated_load=session.estimated_load,
        coach_notes=session.coach_notes,
        importance=session.importance,
        plan_phase=plan.phase,
        week_number=(day - plan.start_date).days // 7 + 1 if plan.start_date <= day else None,
        total_weeks=plan.total_weeks,
    )


def build_profile(profile: AthleteProfile | None, day: date) -> ProfileContext | None:
    if profile is None:
        return None
    weeks_to_race = None
    if profile.race_date is not None and profile.race_date >= day:
        weeks_to_race = math.ceil((profile.race_date - day).days / 7)
    return ProfileContext(
        goal=profile.goal,
        race_date=profile.race_date,
        race_distance=profile.race_distance,
        weeks_to_race=weeks_to_race,
        runner_level=profile.runner_level,
        threshold_pace=profile.threshold_pace,
        easy_pace_min=profile.easy_pace_min,
        easy_pace_max=profile.easy_pace_max,
        recovery_pace=profile.recovery_pace,
        aerobic_threshold_hr=profile.aerobic_threshold_hr,
        lactate_threshold_hr=profile.lactate_threshold_hr,
        weekly_volume_baseline_km=profile.weekly_volume_baseline_km,
    )


def baseline_is_insufficient(baseline: Baseline | None, day: date) -> bool:
    if baseline is None:
        return True
    return (day - baseline.calculated_at.date()).days > BASELINE_STALE_DAYS


def compute_context_hash(context: dict[str, Any]) -> str:
    """Stable hash of a serialized context."""
    context_str = json.dumps(context, sort_keys=True, default=str)
    return hashlib.sha256(context_str.encode()).hexdigest()


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


async def _gather_reads(reads: dict[str, tuple[Callable[..., Any], tuple[Any, ...]]]) -> tuple[dict[str, Any], list[str]]:
    names = list(reads)
    outcomes = await asyncio.gather(
        *(asyncio.to_thread(fn, *args) for fn, args in reads.values()),
        return_exceptions=True,
    )
    results: dict[str, Any] = {}
    gaps: list[str] = []
    for name, outcome in zip(names, outcomes, strict=True):
        if isinstance(outcome, Exception):
            logger.warning(f"Context source '{name}' unavailable: {type(outcome).__name__}: {outcome}")
            results[name] = None
            gaps.append(name)
        else:
            results[name] = outcome
    return results, gaps


async def build_daily_context(
    athlete_id: str,
    day: date,
    manual_wellness: ManualWellness | None = None,
    weather_client: WeatherClient | None = None,
    store: AthleteDataStore | None = None,
) -> DailyContext:
    """Aggregate everything known about an athlete on a day.

    Args:
        athlete_id: Athlete ID
        day: Calendar day the context describes
        manual_wellness: Optional check-in replacing device wellness for the day
        weather_client: Weather client; defaults to the configured one
        store: Data store; defaults to AthleteDataStore

    Returns:
        Frozen DailyContext
    """
    store = store or AthleteDataStore()
    this_week = week_start(day)
    history_start = min(day - timedelta(days=HISTORY_DAYS - 1), this_week - timedelta(weeks=CHRONIC_LOAD_WEEKS))

    reads: dict[str, tuple[Callable[..., Any], tuple[Any, ...]]] = {
        "wellness": (store.get_wellness_history, (athlete_id, day - timedelta(days=HISTORY_DAYS - 1), day)),
        "baseline": (store.get_baseline, (athlete_id,)),
        "training_history": (store.get_training_records, (athlete_id, history_start, day)),
        "planned_session": (store.get_planned_session, (athlete_id, day)),
        "upcoming_sessions": (store.get_upcoming_sessions, (athlete_id, day, UPCOMING_SESSION_COUNT)),
        "week_plan": (store.get_sessions_between, (athlete_id, this_week, this_week + timedelta(days=6))),
        "profile": (store.get_profile, (athlete_id,)),
        "philosophy": (store.get_open_philosophy, (athlete_id,)),
        "bottleneck": (store.get_latest_bottleneck, (athlete_id,)),
    }
    results, gaps = await _gather_reads(reads)

    profile: AthleteProfile | None = results["profile"]
    baseline: Baseline | None = results["baseline"]
    threshold_pace = profile.threshold_pace if profile else None

    # Location comes from the profile, so weather follows the fan-out
    weather = None
    lat = profile.latitude if profile and profile.latitude is not None else settings.default_latitude
    lon = profile.longitude if profile and profile.longitude is not None else settings.default_longitude
    try:
        client = weather_client or get_weather_client()
        weather = await asyncio.to_thread(client.fetch_current_conditions, lat, lon)
    except Exception as e:
        logger.warning(f"Context source 'weather' unavailable: {type(e).__name__}: {e}")
        gaps.append("weather")

    health = None
    if results["wellness"] is not None:
        health = build_health_signals(results["wellness"], baseline, day, manual_wellness)
    elif manual_wellness is not None:
        health = build_health_signals([], baseline, day, manual_wellness)

    records: list[TrainingRecord] | None = results["training_history"]
    training_load = None
    recent_runs: list[RecentRun] = []
    if records is not None:
        training_load = build_training_load(records, day, results["week_plan"], threshold_pace)
        recent_runs = build_recent_runs(records, day, threshold_pace)

    upcoming = [
        UpcomingSession(
            session_date=s.session_date,
            days_ahead=(s.session_date - day).days,
            type=s.type,
            distance_km=s.distance_km,
            importance=s.importance,
        )
        for s in results["upcoming_sessions"] or []
    ]

    philosophy = results["philosophy"]
    bottleneck = results["bottleneck"]

    context = DailyContext(
        athlete_id=athlete_id,
        context_date=day,
        day_of_week=day.strftime("%A"),
        health=health,
        training_load=training_load,
        recent_runs=recent_runs,
        planned_session=build_planned_session(results["planned_session"], day),
        upcoming_sessions=upcoming,
        profile=build_profile(profile, day),
        weather=WeatherConditions(**weather) if weather else None,
        running_conditions_score=running_conditions_score(weather),
        current_philosophy=PhilosophyContext(
            mode=philosophy.mode,
            bottleneck=philosophy.bottleneck,
            volume_multiplier=philosophy.volume_multiplier,
            key_workout_types=list(philosophy.key_workout_types or []),
            forbidden_workout_types=list(philosophy.forbidden_workout_types or []),
            started_on=philosophy.started_at.date(),
        )
        if philosophy
        else None,
        current_bottleneck=BottleneckContext(
            primary_bottleneck=bottleneck.primary_bottleneck,
            confidence=bottleneck.confidence,
            coaching_note=bottleneck.coaching_note,
            assessed_on=bottleneck.assessed_at.date(),
        )
        if bottleneck
        else None,
        insufficient_baseline_data=baseline_is_insufficient(baseline, day),
        days_of_data=baseline.days_used if baseline else 0,
        data_gaps=gaps,
    )

    logger.info(
        f"Daily context built: athlete_id={athlete_id}, date={day.isoformat()}, "
        f"health={'yes' if health else 'no'}, planned={'yes' if context.planned_session else 'no'}, "
        f"conditions={context.running_conditions_score}, gaps={gaps}"
    )
    return context
