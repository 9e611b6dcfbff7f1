import pytest

from pacelab.metrics.conditions import running_conditions_score


@pytest.mark.parametrize(
    ("weather", "expected"),
    [
        ({"temperature_c": 15, "wind_speed_kmh": 5, "rain_probability_pct": 0}, "ideal"),
        ({"temperature_c": 23, "wind_speed_kmh": 5, "rain_probability_pct": 0}, "good"),
        ({"temperature_c": 25, "wind_speed_kmh": 5, "rain_probability_pct": 0}, "acceptable"),
        ({"temperature_c": 15, "wind_speed_kmh": 30, "rain_probability_pct": 0}, "challenging"),
        ({"temperature_c": 34, "wind_speed_kmh": 5, "rain_probability_pct": 0}, "poor"),
        ({"temperature_c": 15, "wind_speed_kmh": 5, "rain_probability_pct": 80}, "poor"),
        ({"temperature_c": -20, "wind_speed_kmh": 0, "rain_probability_pct": 0}, "poor"),
    ],
)
def test_running_conditions_tiers(weather, expected):
    assert running_conditions_score(weather) == expected


def test_missing_wind_and_rain_count_as_calm():
    assert running_conditions_score({"temperature_c": 18}) == "ideal"


def test_no_weather_is_unknown():
    assert running_conditions_score(None) == "unknown"
    assert running_conditions_score({"temperature_c": None, "wind_speed_kmh": 3}) == "unknown"
