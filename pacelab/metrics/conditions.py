"""Qualitative running-conditions tier from current weather."""

from __future__ import annotations

from typing import Any

from pacelab.config.policy import (
    CONDITIONS_ACCEPTABLE,
    CONDITIONS_CHALLENGING,
    CONDITIONS_POOR,
    IDEAL_MAX_RAIN,
    IDEAL_MAX_WIND,
    IDEAL_TEMP_RANGE,
)


def _breaches(tier: dict[str, float], temp: float, wind: float, rain: float) -> bool:
    return temp > tier["temp_above"] or temp < tier["temp_below"] or wind > tier["wind_above"] or rain > tier["rain_above"]


def running_conditions_score(weather: dict[str, Any] | None) -> str:
    """Classify weather into ideal, good, acceptable, challenging, poor or unknown.

    Missing wind or rain readings count as calm and dry. Missing temperature,
    or no weather at all, is "unknown".
    """
    if not weather or weather.get("temperature_c") is None:
        return "unknown"

    temp = float(weather["temperature_c"])
    wind = float(weather.get("wind_speed_kmh") or 0.0)
    rain = float(weather.get("rain_probability_pct") or 0.0)

    if _breaches(CONDITIONS_POOR, temp, wind, rain):
        return "poor"
    if _breaches(CONDITIONS_CHALLENGING, temp, wind, rain):
        return "challenging"
    if _breaches(CONDITIONS_ACCEPTABLE, temp, wind, rain):
        return "acceptable"
    low, high = IDEAL_TEMP_RANGE
    if low <= temp <= high and wind <= IDEAL_MAX_WIND and rain <= IDEAL_MAX_RAIN:
        return "ideal"
    return "good"
