"""Metric derivation over wellness and training time series.

Pure functions, no I/O. Every function that consumes an ordered series
takes the ordering as an explicit keyword.

Missing data is None. None is never coerced to 0: "no data" and "zero"
mean different things to the decision layer.
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from typing import Literal

from pacelab.config.policy import HARD_SESSION_TYPES, POOR_SLEEP_RATIO, TREND_CHANGE_PERCENT

Trend = Literal["up", "down", "stable"]


# ---------------------------------------------------------------------------
# Series statistics
# ---------------------------------------------------------------------------


def _present(values: Iterable[float | None]) -> list[float]:
    return [float(v) for v in values if v is not None]


def mean_or_none(values: Iterable[float | None]) -> float | None:
    """Mean of the non-null values, or None when there are none."""
    present = _present(values)
    if not present:
        return None
    return statistics.fmean(present)


def std_or_none(values: Iterable[float | None]) -> float | None:
    """Population standard deviation of the non-null values.

    None with fewer than two samples.
    """
    present = _present(values)
    if len(present) < 2:
        return None
    return statistics.pstdev(present)


def trend(values: Sequence[float | None], *, newest_first: bool) -> Trend:
    """Direction of a series from the mean of its older half to its newer half.

    On odd-length windows the middle sample belongs to both halves.

    Args:
        values: Series samples; None entries are dropped.
        newest_first: True when values[0] is the most recent sample.

    Returns:
        "up" when the newer half is more than TREND_CHANGE_PERCENT above the
        older half, "down" when more than TREND_CHANGE_PERCENT below, else
        "stable". Fewer than 2 samples is "stable".
    """
    present = _present(values)
    if len(present) < 2:
        return "stable"
    if newest_first:
        present.reverse()

    half = math.ceil(len(present) / 2)
    older = statistics.fmean(present[:half])
    newer = statistics.fmean(present[-half:])
    if older == 0:
        return "stable"

    change = (newer - older) / abs(older) * 100
    if change > TREND_CHANGE_PERCENT:
        return "up"
    if change < -TREND_CHANGE_PERCENT:
        return "down"
    return "stable"


def deviation_percent(current: float | None, baseline: float | None) -> float | None:
    """Signed percent deviation of current from baseline, one decimal."""
    if current is None or baseline is None or baseline == 0:
        return None
    return round((current - baseline) / baseline * 100, 1)


def percent_of(part: float | None, total: float | None) -> float | None:
    """part as a whole-number percentage of total."""
    if part is None or total is None or total == 0:
        return None
    return float(round(part / total * 100))


def days_below_baseline(values: Iterable[float | None], baseline: float | None) -> int:
    """Count samples strictly below baseline. 0 without a baseline."""
    if baseline is None:
        return 0
    return sum(1 for v in values if v is not None and v < baseline)


def days_above_baseline(values: Iterable[float | None], baseline: float | None) -> int:
    """Count samples strictly above baseline. 0 without a baseline."""
    if baseline is None:
        return 0
    return sum(1 for v in values if v is not None and v > baseline)


def consecutive_poor_sleep(scores_newest_first: Sequence[float | None], baseline: float | None) -> int | None:
    """Count leading nights scored strictly below POOR_SLEEP_RATIO x baseline.

    The count stops at the first night at or above the threshold, or the
    first missing night.

    Examples (baseline 100, threshold 85):
        [60, 50, 90] -> 2
        [90, 88, 40, 95] -> 0

    Returns:
        The streak length, or None when there is no baseline to compare to.
    """
    if baseline is None:
        return None
    threshold = baseline * POOR_SLEEP_RATIO
    count = 0
    for score in scores_newest_first:
        if score is None or score >= threshold:
            break
        count += 1
    return count


# ---------------------------------------------------------------------------
# Training history streaks (anchored on "today")
# ---------------------------------------------------------------------------


def consecutive_run_days(run_dates: Iterable[date], today: date) -> int:
    """Length of the unbroken run streak ending today.

    If there is no run today yet, the streak ending yesterday counts.
    """
    days = set(run_dates)
    if not days:
        return 0
    cursor = today if today in days else today - timedelta(days=1)
    count = 0
    while cursor in days:
        count += 1
        cursor -= timedelta(days=1)
    return count


def days_since_last_hard_session(sessions: Iterable[tuple[date, str]], today: date) -> int | None:
    """Days since the most recent hard session on or before today, or None."""
    hard_days = [d for d, session_type in sessions if d <= today and is_hard_session(session_type)]
    if not hard_days:
        return None
    return (today - max(hard_days)).days


def days_since_last_rest(run_dates: Iterable[date], today: date) -> int | None:
    """Days since the most recent day without a run, looking back from yesterday.

    Returns None when there is no training history at all.
    """
    days = set(run_dates)
    if not days:
        return None
    cursor = today - timedelta(days=1)
    while cursor in days:
        cursor -= timedelta(days=1)
    return (today - cursor).days


def count_hard_sessions(sessions: Iterable[tuple[date, str]], today: date, days: int) -> int:
    """Hard sessions within the `days`-day window ending today (inclusive)."""
    window_start = today - timedelta(days=days - 1)
    return sum(1 for d, session_type in sessions if window_start <= d <= today and is_hard_session(session_type))


def is_hard_session(session_type: str | None) -> bool:
    return (session_type or "").lower() in HARD_SESSION_TYPES


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def week_over_week_load_change(this_week_km: float | None, last_week_km: float | None) -> float | None:
    """Percent change in weekly volume; None when last week had no volume."""
    if this_week_km is None or last_week_km is None or last_week_km <= 0:
        return None
    return round((this_week_km - last_week_km) / last_week_km * 100, 1)


def acute_chronic_ratio(acute_km: float | None, chronic_weekly_km: float | None) -> float | None:
    """This week's volume over the chronic weekly average."""
    if acute_km is None or chronic_weekly_km is None or chronic_weekly_km <= 0:
        return None
    return round(acute_km / chronic_weekly_km, 2)


def week_start(day: date) -> date:
    """Monday of the ISO week containing day."""
    return day - timedelta(days=day.weekday())


def hours_from_seconds(seconds: float | None) -> float | None:
    if seconds is None:
        return None
    return round(seconds / 3600, 2)
