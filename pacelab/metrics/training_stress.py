"""Training stress and pace helpers for individual runs."""

from __future__ import annotations

from pacelab.config.policy import FALLBACK_STRESS_PER_HOUR


def pace_seconds_per_km(distance_meters: float | None, duration_seconds: float | None) -> float | None:
    if not distance_meters or not duration_seconds:
        return None
    return duration_seconds / (distance_meters / 1000)


def format_pace(seconds_per_km: float | None) -> str | None:
    """Render seconds-per-km as m:ss."""
    if seconds_per_km is None:
        return None
    minutes, seconds = divmod(round(seconds_per_km), 60)
    return f"{minutes}:{seconds:02d}"


def parse_pace(pace: str | None) -> float | None:
    """Parse an m:ss pace string into seconds per km."""
    if not pace:
        return None
    try:
        minutes, seconds = pace.strip().split(":")
        return int(minutes) * 60 + int(seconds)
    except ValueError:
        return None


def threshold_stress(duration_seconds: float, pace_sec_per_km: float, threshold_pace_sec_per_km: float) -> float:
    """Pace-based training stress: hours x intensity factor squared x 100."""
    if not duration_seconds or not pace_sec_per_km or not threshold_pace_sec_per_km:
        return 0.0
    intensity_factor = threshold_pace_sec_per_km / pace_sec_per_km
    return round(duration_seconds / 3600 * intensity_factor * intensity_factor * 100, 2)


def estimate_training_stress(
    training_stress: float | None,
    duration_seconds: float | None,
    distance_meters: float | None = None,
    threshold_pace: str | None = None,
) -> float:
    """Stress for one run, falling back to estimates when none was recorded.

    Order of preference: the recorded value, a pace-based score when the
    athlete has a threshold pace, then a flat per-hour estimate.
    """
    if training_stress:
        return float(training_stress)
    if not duration_seconds:
        return 0.0
    threshold_sec = parse_pace(threshold_pace)
    pace_sec = pace_seconds_per_km(distance_meters, duration_seconds)
    if threshold_sec and pace_sec:
        return threshold_stress(duration_seconds, pace_sec, threshold_sec)
    return float(round(duration_seconds / 3600 * FALLBACK_STRESS_PER_HOUR))
