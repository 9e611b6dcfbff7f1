"""Bottleneck detection.

Classifies the athlete's primary limiting factor from a snapshot of their
recent training and recovery.

Signals:
- weak_aerobic_base: more than 30% of recent runs are hard
- weak_lactate_threshold: no hard session in 14 days with no race inside 8 weeks
- poor_race_specific_endurance: longest run in 28 days short of the race minimum
- overtraining_risk: 2+ fatigue flags (4+ is critical)
- performance_plateau: flat volume across consistent, on-target weeks
- injury_risk_high: acute:chronic volume ratio above 1.3 (1.5 critical)
- insufficient_volume: fresh athlete running under 80% of VO2max-supported volume
- pre_race_peak: race within 3 weeks
- balanced_fitness: nothing else fired

Primary: critical overtraining, then critical injury risk, then pre-race
peak, then the highest score.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from loguru import logger
from sqlalchemy import select

from pacelab.config.policy import (
    ACWR_CRITICAL,
    ACWR_ELEVATED,
    FATIGUE_FLAGS_CRITICAL,
    FATIGUE_FLAGS_FOR_RISK,
    HARD_SHARE_LIMIT,
    LOAD_SPIKE_PERCENT,
    MIN_LONG_RUN_KM,
    PRE_RACE_PEAK_WEEKS,
    RHR_ELEVATION_BPM,
    TSB_FATIGUE_FLOOR,
    VOLUME_FLOOR_RATIO,
)
from pacelab.db.models import AdaptationRecord, BottleneckAssessment
from pacelab.db.session import get_session
from pacelab.metrics.derivation import (
    acute_chronic_ratio,
    consecutive_poor_sleep,
    consecutive_run_days,
    count_hard_sessions,
    is_hard_session,
    trend,
    week_over_week_load_change,
    week_start,
)
from pacelab.metrics.training_stress import estimate_training_stress
from pacelab.services.athlete_data import AthleteDataStore


@dataclass
class AthleteSnapshot:
    """What the detector knows about an athlete on one day."""

    today: date
    runs_28d: int = 0
    hard_runs_28d: int = 0
    hard_sessions_14d: int = 0
    longest_run_28d_km: float = 0.0
    weekly_km_4wk: list[float] = field(default_factory=list)  # oldest first
    acute_load_7d: float = 0.0
    chronic_load_28d: float = 0.0
    acwr: float | None = None
    load_increase_percent: float | None = None
    consecutive_run_days: int = 0
    hrv_days_suppressed: int | None = None
    rhr_above_baseline_bpm: float | None = None
    poor_sleep_nights: int | None = None
    race_distance: str | None = None
    weeks_to_race: int | None = None
    vo2max: float | None = None
    recent_outcomes: list[str] = field(default_factory=list)  # newest first

    @property
    def tsb(self) -> float:
        return self.chronic_load_28d - self.acute_load_7d

    @property
    def hard_share(self) -> float | None:
        if not self.runs_28d:
            return None
        return self.hard_runs_28d / self.runs_28d


@dataclass
class Signal:
    type: str
    strength: str  # weak, moderate, strong, critical
    score: float
    evidence: str
    coaching_note: str


# ---------------------------------------------------------------------------
# Detection (PURE FUNCTIONS)
# ---------------------------------------------------------------------------


def _fatigue_flags(snapshot: AthleteSnapshot) -> list[str]:
    flags = []
    if snapshot.runs_28d and snapshot.tsb < TSB_FATIGUE_FLOOR:
        flags.append(f"Training stress balance {snapshot.tsb:.1f} (deep fatigue)")
    if snapshot.hrv_days_suppressed is not None and snapshot.hrv_days_suppressed >= 3:
        flags.append(f"HRV suppressed {snapshot.hrv_days_suppressed} consecutive days")
    if snapshot.rhr_above_baseline_bpm is not None and snapshot.rhr_above_baseline_bpm > RHR_ELEVATION_BPM:
        flags.append(f"Resting HR {snapshot.rhr_above_baseline_bpm:.0f} bpm above baseline")
    if snapshot.load_increase_percent is not None and snapshot.load_increase_percent > LOAD_SPIKE_PERCENT:
        flags.append(f"Weekly volume up {snapshot.load_increase_percent:.0f}%")
    if snapshot.poor_sleep_nights is not None and snapshot.poor_sleep_nights >= 3:
        flags.append(f"{snapshot.poor_sleep_nights} consecutive poor sleep nights")
    if snapshot.consecutive_run_days >= 5:
        flags.append(f"{snapshot.consecutive_run_days} consecutive run days")
    return flags


def detect_signals(snapshot: AthleteSnapshot) -> list[Signal]:
    signals: list[Signal] = []

    hard_share = snapshot.hard_share
    if hard_share is not None and hard_share > HARD_SHARE_LIMIT:
        signals.append(
            Signal(
                "weak_aerobic_base",
                "moderate",
                55,
                f"{hard_share * 100:.0f}% of recent runs are hard, above an 80/20 distribution",
                "Polarize training: more easy running, less moderate effort.",
            )
        )

    if snapshot.runs_28d and snapshot.hard_sessions_14d < 1 and (snapshot.weeks_to_race is None or snapshot.weeks_to_race > 8):
        signals.append(
            Signal(
                "weak_lactate_threshold",
                "moderate",
                50,
                "No quality sessions in 14 days; threshold fitness may be declining",
                "Schedule at least one tempo or threshold session per week.",
            )
        )

    required = MIN_LONG_RUN_KM.get(snapshot.race_distance or "", 0.0)
    if required and snapshot.longest_run_28d_km < required:
        gap = required - snapshot.longest_run_28d_km
        strong = gap > 10
        signals.append(
            Signal(
                "poor_race_specific_endurance",
                "strong" if strong else "moderate",
                80 if strong else 55,
                f"Longest recent run {snapshot.longest_run_28d_km:.1f}km, need {required:.0f}km+ for {snapshot.race_distance}",
                "Progressive long run build is the priority. Add race-pace segments to long runs.",
            )
        )

    flags = _fatigue_flags(snapshot)
    if len(flags) >= FATIGUE_FLAGS_FOR_RISK:
        critical = len(flags) >= FATIGUE_FLAGS_CRITICAL
        signals.append(
            Signal(
                "overtraining_risk",
                "critical" if critical else "strong",
                100 if critical else 85,
                " | ".join(flags),
                "Force a recovery week: 65% volume, no hard sessions."
                if critical
                else "Accumulated fatigue detected. Reduce intensity this week, prioritize recovery.",
            )
        )

    weekly = snapshot.weekly_km_4wk
    if (
        len(weekly) >= 4
        and all(km > 0 for km in weekly)
        and trend(weekly, newest_first=False) == "stable"
        and len(snapshot.recent_outcomes) >= 3
        and all(outcome == "on_target" for outcome in snapshot.recent_outcomes[:3])
    ):
        signals.append(
            Signal(
                "performance_plateau",
                "moderate",
                50,
                "Volume flat for 4 weeks with consistent completion; the current stimulus may be stale",
                "Vary workout types: add hill work, fartlek or change session composition.",
            )
        )

    if snapshot.acwr is not None and snapshot.acwr > ACWR_CRITICAL:
        signals.append(
            Signal(
                "injury_risk_high",
                "critical",
                95,
                f"Acute:chronic volume ratio {snapshot.acwr:.2f}, well above the safe range",
                "Reduce volume 30%, remove high-impact sessions, focus on recovery.",
            )
        )
    elif snapshot.acwr is not None and snapshot.acwr > ACWR_ELEVATED:
        signals.append(
            Signal(
                "injury_risk_high",
                "strong",
                75,
                f"Acute:chronic volume ratio {snapshot.acwr:.2f}, approaching the danger zone",
                "Cap volume at the current level and keep rest days.",
            )
        )

    if snapshot.vo2max and weekly:
        expected = snapshot.vo2max * VOLUME_FLOOR_RATIO
        current_km = weekly[-1]
        fresh = not flags and snapshot.tsb > 5
        if current_km < expected and fresh:
            signals.append(
                Signal(
                    "insufficient_volume",
                    "moderate",
                    45,
                    f"Running {current_km:.0f}km/week but fitness supports {expected:.0f}km+",
                    "Increase weekly volume 8-10% per week toward fitness capacity.",
                )
            )

    if snapshot.weeks_to_race is not None and 0 < snapshot.weeks_to_race <= PRE_RACE_PEAK_WEEKS:
        signals.append(
            Signal(
                "pre_race_peak",
                "critical",
                100,
                f"{snapshot.weeks_to_race} weeks to race, taper window active",
                f"Begin {'final' if snapshot.weeks_to_race <= 1 else 'progressive'} taper. Reduce volume, keep sharpness.",
            )
        )

    if not signals:
        signals.append(
            Signal(
                "balanced_fitness",
                "weak",
                0,
                "No significant bottleneck detected",
                "Continue current training with gradual progression.",
            )
        )
    return signals


def select_primary(signals: list[Signal]) -> Signal:
    for signal_type in ("overtraining_risk", "injury_risk_high"):
        for signal in signals:
            if signal.type == signal_type and signal.strength == "critical":
                return signal
    for signal in signals:
        if signal.type == "pre_race_peak":
            return signal
    return max(signals, key=lambda s: s.score)


def confidence_for(primary: Signal, signals: list[Signal]) -> str:
    notable = sum(1 for s in signals if s.score > 40)
    if primary.score >= 80 and notable <= 2:
        return "high"
    if primary.score >= 50:
        return "medium"
    return "low"


# ---------------------------------------------------------------------------
# Snapshot and persistence
# ---------------------------------------------------------------------------


def build_snapshot(athlete_id: str, today: date, store: AthleteDataStore | None = None) -> AthleteSnapshot:
    """Read the store and summarize the athlete's last four weeks."""
    store = store or AthleteDataStore()
    snapshot = AthleteSnapshot(today=today)

    profile = store.get_profile(athlete_id)
    threshold_pace = profile.threshold_pace if profile else None
    window_start = today - timedelta(days=27)
    this_week = week_start(today)
    # The four full weeks before this one reach further back than 28 days
    history = store.get_training_records(athlete_id, min(window_start, this_week - timedelta(weeks=4)), today)
    records = [r for r in history if r.started_at.date() >= window_start]

    typed = [(r.started_at.date(), r.session_type) for r in records]
    run_dates = [d for d, _ in typed]
    snapshot.runs_28d = len(records)
    snapshot.hard_runs_28d = sum(1 for _, t in typed if is_hard_session(t))
    snapshot.hard_sessions_14d = count_hard_sessions(typed, today, 14)
    snapshot.longest_run_28d_km = round(max((r.distance_meters for r in records), default=0.0) / 1000, 2)
    snapshot.consecutive_run_days = consecutive_run_days(run_dates, today)

    def stress(days: int) -> float:
        start = today - timedelta(days=days - 1)
        return sum(
            estimate_training_stress(r.training_stress, r.duration_seconds, r.distance_meters, threshold_pace)
            for r in records
            if r.started_at.date() >= start
        )

    snapshot.acute_load_7d = round(stress(7), 1)
    snapshot.chronic_load_28d = round(stress(28) / 4, 1)

    weekly = []
    for offset in range(4, 0, -1):
        start = this_week - timedelta(weeks=offset)
        end = start + timedelta(days=6)
        weekly.append(round(sum(r.distance_meters for r in history if start <= r.started_at.date() <= end) / 1000, 2))
    snapshot.weekly_km_4wk = weekly
    last_7_km = sum(r.distance_meters for r in records if r.started_at.date() > today - timedelta(days=7)) / 1000
    snapshot.acwr = acute_chronic_ratio(last_7_km, sum(weekly) / 4 if weekly else None)
    snapshot.load_increase_percent = week_over_week_load_change(weekly[-1], weekly[-2])

    baseline = store.get_baseline(athlete_id)
    wellness = store.get_wellness_history(athlete_id, today - timedelta(days=13), today)
    by_date = {s.sample_date: s for s in wellness}
    newest_first = [by_date.get(today - timedelta(days=i)) for i in range(14)]
    if baseline is not None:
        if baseline.hrv_baseline_avg is not None:
            suppressed = 0
            for sample in newest_first:
                if sample is None or sample.hrv_ms is None or sample.hrv_ms >= baseline.hrv_baseline_avg:
                    break
                suppressed += 1
            snapshot.hrv_days_suppressed = suppressed
        if baseline.rhr_baseline_avg is not None and baseline.rhr_7day_avg is not None:
            snapshot.rhr_above_baseline_bpm = round(baseline.rhr_7day_avg - baseline.rhr_baseline_avg, 1)
        snapshot.poor_sleep_nights = consecutive_poor_sleep(
            [s.sleep_score if s else None for s in newest_first], baseline.sleep_baseline_avg
        )

    if profile is not None:
        snapshot.race_distance = profile.race_distance
        if profile.race_date is not None and profile.race_date >= today:
            snapshot.weeks_to_race = -(-(profile.race_date - today).days // 7)
        snapshot.vo2max = profile.vo2max
    if snapshot.vo2max is None:
        snapshot.vo2max = next((s.vo2max for s in reversed(wellness) if s.vo2max), None)

    with get_session() as session:
        snapshot.recent_outcomes = list(
            session.execute(
                select(AdaptationRecord.outcome)
                .where(AdaptationRecord.athlete_id == athlete_id)
                .order_by(AdaptationRecord.week_start.desc())
                .limit(3)
            )
            .scalars()
            .all()
        )
    return snapshot


def detect_bottleneck(athlete_id: str, today: date, store: AthleteDataStore | None = None) -> BottleneckAssessment:
    """Detect and store the athlete's current bottleneck."""
    store = store or AthleteDataStore()
    snapshot = build_snapshot(athlete_id, today, store)
    signals = detect_signals(snapshot)
    primary = select_primary(signals)
    secondary = sorted((s for s in signals if s.type != primary.type), key=lambda s: s.score, reverse=True)[:2]

    previous = store.get_latest_bottleneck(athlete_id)
    previous_type = previous.primary_bottleneck if previous else None

    with get_session() as session:
        assessment = BottleneckAssessment(
            athlete_id=athlete_id,
            primary_bottleneck=primary.type,
            strength=primary.score,
            confidence=confidence_for(primary, signals),
            evidence=[primary.evidence],
            coaching_note=primary.coaching_note,
            secondary_signals=[{"type": s.type, "strength": s.strength, "score": s.score, "evidence": s.evidence} for s in secondary],
            previous_bottleneck=previous_type,
            bottleneck_changed=previous_type is not None and previous_type != primary.type,
        )
        session.add(assessment)

    logger.info(
        f"Bottleneck assessed: athlete_id={athlete_id}, primary={primary.type}, score={primary.score}, "
        f"confidence={assessment.confidence}, previous={previous_type}"
    )
    return assessment
