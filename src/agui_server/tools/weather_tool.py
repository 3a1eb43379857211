from __future__ import annotations

import httpx
from langchain_core.tools import tool

from ..config import get_settings

_WEATHER_CONDITIONS = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Slight snow fall",
    73: "Moderate snow fall",
    75: "Heavy snow fall",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}


def describe_weather_code(code: int | None) -> str:
    return _WEATHER_CONDITIONS.get(code, "Unknown") if code is not None else "Unknown"


@tool
def get_weather(location: str) -> dict:
    """Get current weather for a city.

    Args:
        location: City name, in English.

    Raises:
        ValueError: If the location cannot be geocoded.
    """

    settings = get_settings()
    name = location.strip()
    with httpx.Client(timeout=settings.weather_timeout_seconds) as client:
        geo = client.get(settings.weather_geocoding_url, params={"name": name, "count": 1})
        geo.raise_for_status()
        results = geo.json().get("results") or []
        if not results:
            raise ValueError(f"Location '{location}' not found")
        place = results[0]

        forecast = client.get(
            settings.weather_forecast_url,
            params={
                "latitude": place["latitude"],
                "longitude": place["longitude"],
                "current": "temperature_2m,apparent_temperature,relative_humidity_2m,"
                "wind_speed_10m,wind_gusts_10m,weather_code",
                "wind_speed_unit": "ms",
            },
        )
        forecast.raise_for_status()
        current = forecast.json().get("current") or {}

    return {
        "location": place.get("name", name),
        "temperatureC": current.get("temperature_2m"),
        "feelsLikeC": current.get("apparent_temperature"),
        "humidityPct": current.get("relative_humidity_2m"),
        "windMs": current.get("wind_speed_10m"),
        "windGustMs": current.get("wind_gusts_10m"),
        "status": describe_weather_code(current.get("weather_code")),
    }
