"""Weather API client for current running conditions.

Providers:
- OpenWeatherMap current weather (when OPENWEATHER_API_KEY is set)
- Open-Meteo forecast (free fallback, no API key)

Every failure is a "no data" outcome: the client returns None and never raises.
"""

from __future__ import annotations

import httpx
from loguru import logger

from pacelab.config.settings import settings

_OPENMETEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
_OWM_CURRENT_URL = "https://api.openweathermap.org/data/2.5/weather"
_MPS_TO_KMH = 3.6


def _fetch_openmeteo(lat: float, lon: float) -> dict[str, float | str | None] | None:
    """Fetch current conditions from Open-Meteo (free, no API key)."""
    try:
        params = {
            "latitude": lat,
            "longitude": lon,
            "current": "temperature_2m,apparent_temperature,relative_humidity_2m,wind_speed_10m,weather_code",
            "hourly": "precipitation_probability",
            "forecast_days": 1,
            "timezone": "UTC",
        }
        with httpx.Client(timeout=10.0) as client:
            response = client.get(_OPENMETEO_FORECAST_URL, params=params)
            response.raise_for_status()
            data = response.json()
    except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
        logger.warning(f"Open-Meteo request failed for {lat}, {lon}: {e}")
        return None

    current = data.get("current")
    if not isinstance(current, dict):
        return None

    rain_probability = None
    hourly = data.get("hourly")
    if isinstance(hourly, dict):
        probabilities = [p for p in hourly.get("precipitation_probability") or [] if p is not None]
        if probabilities:
            rain_probability = float(max(probabilities))

    def _num(name: str) -> float | None:
        value = current.get(name)
        return float(value) if value is not None else None

    return {
        "temperature_c": _num("temperature_2m"),
        "feels_like_c": _num("apparent_temperature"),
        "humidity_pct": _num("relative_humidity_2m"),
        "wind_speed_kmh": _num("wind_speed_10m"),
        "rain_probability_pct": rain_probability,
        "description": None,
        "source": "openmeteo",
    }


class WeatherClient:
    """Client for current weather at the athlete's location.

    Uses OpenWeatherMap when OPENWEATHER_API_KEY is set; otherwise
    Open-Meteo (free, no key).
    """

    def __init__(self, api_key: str | None = None, enabled: bool | None = None) -> None:
        """Initialize weather client.

        Args:
            api_key: OpenWeatherMap API key. If not provided, reads from settings.
                     When empty, Open-Meteo (free) is used.
            enabled: Whether lookups happen at all. Defaults to WEATHER_ENABLED.
        """
        self.api_key = (api_key if api_key is not None else settings.openweather_api_key).strip()
        self.enabled = settings.weather_enabled if enabled is None else enabled
        self._use_openmeteo = not bool(self.api_key)

    def fetch_current_conditions(self, lat: float | None, lon: float | None) -> dict[str, float | str | None] | None:
        """Fetch current conditions for a location.

        Args:
            lat: Latitude
            lon: Longitude

        Returns:
            Dictionary with:
            - temperature_c, feels_like_c: Celsius
            - humidity_pct: Relative humidity
            - wind_speed_kmh: Wind speed in km/h
            - rain_probability_pct: Precipitation likelihood (0-100) or None
            - description: Provider text, when available
            - source: Data source identifier

            Returns None when disabled, when no location is known, or if the
            provider call fails.
        """
        if not self.enabled:
            logger.debug("Weather lookups disabled")
            return None
        if lat is None or lon is None:
            logger.debug("No location for weather lookup")
            return None

        if self._use_openmeteo:
            return _fetch_openmeteo(lat, lon)

        try:
            params = {
                "lat": lat,
                "lon": lon,
                "appid": self.api_key,
                "units": "metric",
            }
            with httpx.Client(timeout=10.0) as client:
                response = client.get(_OWM_CURRENT_URL, params=params)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
            logger.warning(f"OpenWeatherMap request failed for {lat}, {lon}: {e}")
            return None

        main = data.get("main")
        if not isinstance(main, dict):
            logger.warning(f"No weather data in OWM response for {lat}, {lon}")
            return None

        wind = data.get("wind") or {}
        wind_mps = wind.get("speed")
        weather = data.get("weather") or [{}]
        # OWM current weather has no probability; any rain in the last hour reads as certain
        rain = data.get("rain") or {}
        rain_probability = 100.0 if rain.get("1h") else 0.0

        return {
            "temperature_c": float(main["temp"]) if main.get("temp") is not None else None,
            "feels_like_c": float(main["feels_like"]) if main.get("feels_like") is not None else None,
            "humidity_pct": float(main["humidity"]) if main.get("humidity") is not None else None,
            "wind_speed_kmh": round(float(wind_mps) * _MPS_TO_KMH, 1) if wind_mps is not None else None,
            "rain_probability_pct": rain_probability,
            "description": weather[0].get("description"),
            "source": "openweathermap",
        }


def get_weather_client() -> WeatherClient:
    """Get a configured weather client instance."""
    return WeatherClient()
