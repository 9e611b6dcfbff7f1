"""Coaching philosophy selection and transitions.

A philosophy period sets the volume target, intensity split and session
types allowed while a bottleneck is being addressed. At most one period is
open per athlete; a transition closes the open period and opens the next
in a single transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import func, select

from pacelab.coach.errors import PhilosophyTransitionError
from pacelab.config.policy import DEFAULT_BASE_VOLUME_KM
from pacelab.db.models import PhilosophyPeriod
from pacelab.db.session import get_session


@dataclass(frozen=True)
class PhilosophyConfig:
    mode: str
    volume_multiplier: float
    intensity_easy: int
    intensity_moderate: int
    intensity_hard: int
    progression_rate: float
    key_workout_types: tuple[str, ...]
    forbidden_workout_types: tuple[str, ...]
    success_metric: str


PHILOSOPHIES: dict[str, PhilosophyConfig] = {
    "base_building": PhilosophyConfig(
        "base_building", 1.08, 82, 8, 10, 8.0,
        ("easy", "long", "recovery"), ("threshold", "tempo", "race"),
        "Easy pace drops at the same heart rate",
    ),
    "threshold_development": PhilosophyConfig(
        "threshold_development", 1.05, 75, 15, 10, 5.0,
        ("tempo", "threshold", "easy"), (),
        "Threshold pace improves or holds for longer",
    ),
    "race_specific": PhilosophyConfig(
        "race_specific", 1.1, 70, 20, 10, 10.0,
        ("long", "progression", "tempo"), ("intervals",),
        "Long runs completed with race-pace segments",
    ),
    "recovery_mode": PhilosophyConfig(
        "recovery_mode", 0.65, 95, 5, 0, 0.0,
        ("recovery", "easy"), ("tempo", "intervals", "threshold", "progression", "race"),
        "HRV and resting HR back to baseline",
    ),
    "mixed_stimulus": PhilosophyConfig(
        "mixed_stimulus", 1.0, 72, 12, 16, 3.0,
        ("fartlek", "hills", "intervals", "easy"), (),
        "Key session paces improve after the stimulus change",
    ),
    "peaking": PhilosophyConfig(
        "peaking", 0.75, 70, 15, 15, 0.0,
        ("race_pace", "easy", "strides"), (),
        "Arrive at race day fresh and sharp",
    ),
    "injury_prevention": PhilosophyConfig(
        "injury_prevention", 0.7, 90, 10, 0, 0.0,
        ("easy", "recovery"), ("intervals", "tempo", "threshold", "race"),
        "Acute:chronic ratio back under 1.3 with no pain reported",
    ),
    "volume_building": PhilosophyConfig(
        "volume_building", 1.1, 80, 10, 10, 10.0,
        ("easy", "long"), ("intervals", "race"),
        "Weekly volume grows without fatigue flags",
    ),
    "maintenance": PhilosophyConfig(
        "maintenance", 1.03, 78, 12, 10, 3.0,
        ("easy", "tempo", "long"), (),
        "Consistent completion with stable recovery markers",
    ),
}

BOTTLENECK_TO_MODE = {
    "weak_aerobic_base": "base_building",
    "weak_lactate_threshold": "threshold_development",
    "poor_race_specific_endurance": "race_specific",
    "overtraining_risk": "recovery_mode",
    "performance_plateau": "mixed_stimulus",
    "pre_race_peak": "peaking",
    "injury_risk_high": "injury_prevention",
    "insufficient_volume": "volume_building",
    "balanced_fitness": "maintenance",
}


@dataclass(frozen=True)
class PhilosophySelection:
    config: PhilosophyConfig
    bottleneck: str
    volume_multiplier: float
    volume_target_km: float
    rationale: str


def select_philosophy(bottleneck: str, base_volume_km: float | None, weeks_to_race: int | None = None) -> PhilosophySelection:
    """Map a bottleneck to the philosophy that addresses it.

    Args:
        bottleneck: Primary bottleneck type
        base_volume_km: Recent average weekly volume; a default is used when unknown
        weeks_to_race: Weeks until race day, sharpens the taper when peaking

    Returns:
        PhilosophySelection with the volume target resolved
    """
    config = PHILOSOPHIES[BOTTLENECK_TO_MODE.get(bottleneck, "maintenance")]
    multiplier = config.volume_multiplier
    if config.mode == "peaking" and weeks_to_race is not None:
        if weeks_to_race <= 1:
            multiplier = 0.40
        elif weeks_to_race <= 2:
            multiplier = 0.60

    base = base_volume_km if base_volume_km else DEFAULT_BASE_VOLUME_KM
    target = round(base * multiplier, 1)
    rationale = (
        f"Primary bottleneck {bottleneck}: {config.mode} at {multiplier:.2f}x volume "
        f"({target}km/week), {config.intensity_easy}/{config.intensity_moderate}/{config.intensity_hard} intensity split"
    )
    return PhilosophySelection(config, bottleneck, multiplier, target, rationale)


def transition_philosophy(athlete_id: str, selection: PhilosophySelection) -> PhilosophyPeriod:
    """Close the athlete's open philosophy period and open a new one.

    Raises:
        PhilosophyTransitionError: The transaction failed and was rolled back
    """
    config = selection.config
    try:
        with get_session() as session:
            now = datetime.now(timezone.utc)
            previous = session.execute(
                select(PhilosophyPeriod).where(
                    PhilosophyPeriod.athlete_id == athlete_id,
                    PhilosophyPeriod.ended_at.is_(None),
                )
            ).scalars().all()
            for period in previous:
                period.ended_at = now
            # Closed rows must reach the database before the new open row
            session.flush()

            period = PhilosophyPeriod(
                athlete_id=athlete_id,
                mode=config.mode,
                bottleneck=selection.bottleneck,
                volume_target_km=selection.volume_target_km,
                volume_multiplier=selection.volume_multiplier,
                intensity_easy_percent=config.intensity_easy,
                intensity_moderate_percent=config.intensity_moderate,
                intensity_hard_percent=config.intensity_hard,
                progression_rate_percent=config.progression_rate,
                key_workout_types=list(config.key_workout_types),
                forbidden_workout_types=list(config.forbidden_workout_types),
                success_metric=config.success_metric,
                rationale=selection.rationale,
                started_at=now,
            )
            session.add(period)
            session.flush()
    except Exception as e:
        logger.error(f"Philosophy transition failed: athlete_id={athlete_id}, target_mode={config.mode}, error={e}")
        raise PhilosophyTransitionError(athlete_id, config.mode, f"{type(e).__name__}: {e}") from e

    logger.info(
        f"Philosophy transition: athlete_id={athlete_id}, closed={[p.mode for p in previous]}, "
        f"opened={config.mode}, volume_target_km={selection.volume_target_km}"
    )
    return period


def count_open_periods(athlete_id: str) -> int:
    with get_session() as session:
        return session.execute(
            select(func.count())
            .select_from(PhilosophyPeriod)
            .where(PhilosophyPeriod.athlete_id == athlete_id, PhilosophyPeriod.ended_at.is_(None))
        ).scalar_one()
