"""Personal baseline computation from wellness history.

Baselines need at least MIN_BASELINE_DAYS samples inside the lookback window.
Long-window averages use the most recent BASELINE_WINDOW_DAYS samples, short
averages the most recent 7.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

from loguru import logger
from sqlalchemy import select

from pacelab.config.policy import BASELINE_LOOKBACK_DAYS, BASELINE_WINDOW_DAYS, MIN_BASELINE_DAYS
from pacelab.db.models import Baseline, WellnessSample
from pacelab.db.session import get_session
from pacelab.metrics.derivation import mean_or_none, std_or_none


def _round2(value: float | None) -> float | None:
    return round(value, 2) if value is not None else None


def compute_baseline_values(samples: list[WellnessSample]) -> dict[str, Any] | None:
    """Compute baseline fields from wellness samples ordered oldest first.

    Returns:
        Mapping of Baseline column name to value, or None when there are
        fewer than MIN_BASELINE_DAYS samples.
    """
    if len(samples) < MIN_BASELINE_DAYS:
        return None

    hrv = [s.hrv_ms for s in samples]
    rhr = [s.resting_hr for s in samples]
    sleep = [s.sleep_score for s in samples]
    durations = [s.sleep_duration_seconds / 3600 if s.sleep_duration_seconds is not None else None for s in samples]
    deep_percent = [
        s.sleep_deep_seconds / s.sleep_duration_seconds * 100
        if s.sleep_duration_seconds and s.sleep_deep_seconds is not None
        else None
        for s in samples
    ]

    window = slice(-BASELINE_WINDOW_DAYS, None)
    week = slice(-7, None)
    return {
        "hrv_baseline_avg": _round2(mean_or_none(hrv[window])),
        "hrv_baseline_std": _round2(std_or_none(hrv[window])),
        "hrv_7day_avg": _round2(mean_or_none(hrv[week])),
        "rhr_baseline_avg": _round2(mean_or_none(rhr[window])),
        "rhr_baseline_std": _round2(std_or_none(rhr[window])),
        "rhr_7day_avg": _round2(mean_or_none(rhr[week])),
        "sleep_baseline_avg": _round2(mean_or_none(sleep[window])),
        "sleep_deep_percent_avg": _round2(mean_or_none(deep_percent)),
        "sleep_duration_avg_hours": _round2(mean_or_none(durations)),
        "days_used": len(samples),
    }


def recompute_baseline(athlete_id: str, today: date) -> Baseline | None:
    """Recompute and upsert the athlete's baseline.

    Args:
        athlete_id: Athlete ID
        today: Anchor date for the lookback window

    Returns:
        The stored Baseline, or None when there is not enough history
        (any existing baseline is left untouched).
    """
    window_start = today - timedelta(days=BASELINE_LOOKBACK_DAYS)
    with get_session() as session:
        samples = list(
            session.execute(
                select(WellnessSample)
                .where(
                    WellnessSample.athlete_id == athlete_id,
                    WellnessSample.sample_date >= window_start,
                    WellnessSample.sample_date <= today,
                )
                .order_by(WellnessSample.sample_date.asc())
            )
            .scalars()
            .all()
        )

        values = compute_baseline_values(samples)
        if values is None:
            logger.info(f"Not enough wellness history for baseline: athlete_id={athlete_id}, days_available={len(samples)}")
            return None

        baseline = session.get(Baseline, athlete_id)
        if baseline is None:
            baseline = Baseline(athlete_id=athlete_id)
            session.add(baseline)
        for field, value in values.items():
            setattr(baseline, field, value)
        baseline.calculated_at = datetime.now(timezone.utc)

    logger.info(
        f"Baseline recomputed: athlete_id={athlete_id}, days_used={values['days_used']}, "
        f"hrv_avg={values['hrv_baseline_avg']}, sleep_avg={values['sleep_baseline_avg']}"
    )
    return baseline
