"""Weather connector with interchangeable provider backends."""

from typing import Any, Dict, Optional
import logging

from integration_engine.connectors.base import BaseConnector
from integration_engine.connectors.registry import ConnectorRegistry
from integration_engine.core.exceptions import ConfigurationError, ParseError
from integration_engine.delivery import Message, render_template
from integration_engine.models import IntegrationType

logger = logging.getLogger(__name__)

OPENWEATHERMAP_URL = "https://api.openweathermap.org/data/2.5/weather"
OPEN_METEO_GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
OPEN_METEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

CONDITIONS = {
    "clear": "Clear sky",
    "partly_cloudy": "Partly cloudy",
    "cloudy": "Cloudy",
    "fog": "Fog",
    "drizzle": "Drizzle",
    "rain": "Rain",
    "freezing_rain": "Freezing rain",
    "snow": "Snow",
    "thunderstorm": "Thunderstorm",
    "unknown": "Unknown",
}

COMPASS_POINTS = [
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
]


def compass_direction(degrees: Optional[float]) -> Optional[str]:
    if degrees is None:
        return None
    return COMPASS_POINTS[int((degrees % 360) / 22.5 + 0.5) % 16]


def _openweathermap_condition(code: int) -> str:
    if 200 <= code < 300:
        return "thunderstorm"
    if 300 <= code < 400:
        return "drizzle"
    if code == 511:
        return "freezing_rain"
    if 500 <= code < 600:
        return "rain"
    if code in (611, 612, 613, 615, 616):
        return "freezing_rain"
    if 600 <= code < 700:
        return "snow"
    if 700 <= code < 800:
        return "fog"
    if code == 800:
        return "clear"
    if code in (801, 802):
        return "partly_cloudy"
    if code in (803, 804):
        return "cloudy"
    return "unknown"


_WMO_CONDITIONS = {
    0: "clear",
    1: "partly_cloudy",
    2: "partly_cloudy",
    3: "cloudy",
    45: "fog",
    48: "fog",
    51: "drizzle",
    53: "drizzle",
    55: "drizzle",
    56: "freezing_rain",
    57: "freezing_rain",
    61: "rain",
    63: "rain",
    65: "rain",
    66: "freezing_rain",
    67: "freezing_rain",
    71: "snow",
    73: "snow",
    75: "snow",
    77: "snow",
    80: "rain",
    81: "rain",
    82: "rain",
    85: "snow",
    86: "snow",
    95: "thunderstorm",
    96: "thunderstorm",
    99: "thunderstorm",
}


def normalize_openweathermap(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Map an OpenWeatherMap current-weather response (metric units)."""
    try:
        main = payload["main"]
        condition = (payload.get("weather") or [{}])[0]
        wind = payload.get("wind") or {}
        code = _openweathermap_condition(int(condition.get("id", 0)))
        return {
            "location": payload.get("name"),
            "temperature_c": main["temp"],
            "feels_like_c": main.get("feels_like", main["temp"]),
            "humidity": main.get("humidity"),
            # m/s to km/h
            "wind_speed_kmh": round(wind.get("speed", 0) * 3.6, 1),
            "wind_direction": compass_direction(wind.get("deg")),
            "description": condition.get("description") or CONDITIONS[code],
            "condition_code": code,
        }
    except (KeyError, TypeError, ValueError) as e:
        raise ParseError(f"Unexpected OpenWeatherMap response: {e}") from e


def normalize_open_meteo(payload: Dict[str, Any], location: str) -> Dict[str, Any]:
    """Map an Open-Meteo forecast response with ``current`` conditions."""
    try:
        current = payload["current"]
        code = _WMO_CONDITIONS.get(int(current.get("weather_code", -1)), "unknown")
        return {
            "location": location,
            "temperature_c": current["temperature_2m"],
            "feels_like_c": current.get("apparent_temperature", current["temperature_2m"]),
            "humidity": current.get("relative_humidity_2m"),
            "wind_speed_kmh": current.get("wind_speed_10m", 0),
            "wind_direction": compass_direction(current.get("wind_direction_10m")),
            "description": CONDITIONS[code],
            "condition_code": code,
        }
    except (KeyError, TypeError, ValueError) as e:
        raise ParseError(f"Unexpected Open-Meteo response: {e}") from e


@ConnectorRegistry.register(IntegrationType.WEATHER)
class WeatherConnector(BaseConnector):
    """Current conditions for a configured location.

    ``provider`` picks the backend: ``openweathermap`` needs an ``api_key``
    credential, ``open-meteo`` needs none.
    """

    async def fetch(self) -> Dict[str, Any]:
        location = self.require("location", "city")
        provider = self.config.get("provider") or self.integration.provider or "open-meteo"

        if provider == "openweathermap":
            return await self._fetch_openweathermap(location)
        if provider in ("open-meteo", "openmeteo"):
            return await self._fetch_open_meteo(location)
        raise ConfigurationError(f"Unknown weather provider: {provider}")

    async def _fetch_openweathermap(self, location: str) -> Dict[str, Any]:
        api_key = self.credentials().get("api_key") or self.config.get("api_key")
        if not api_key:
            raise ConfigurationError("OpenWeatherMap requires an api_key credential")

        response = await self.make_request(
            "GET",
            self.config.get("api_url", OPENWEATHERMAP_URL),
            params={"q": location, "appid": api_key, "units": "metric"},
            ok_statuses=(404,),
        )
        if response.status_code == 404:
            raise ConfigurationError(f"Location not found: {location}")
        return normalize_openweathermap(self.parse_json(response, dict))

    async def _fetch_open_meteo(self, location: str) -> Dict[str, Any]:
        geocoding = await self.make_request(
            "GET",
            OPEN_METEO_GEOCODING_URL,
            params={"name": location, "count": 1, "format": "json"},
        )
        results = self.parse_json(geocoding, dict).get("results") or []
        if not results:
            raise ConfigurationError(f"Location not found: {location}")
        place = results[0] if isinstance(results, list) else None
        if not isinstance(place, dict) or "latitude" not in place or "longitude" not in place:
            raise ParseError(f"Unexpected Open-Meteo geocoding response for {location}")

        forecast = await self.make_request(
            "GET",
            OPEN_METEO_FORECAST_URL,
            params={
                "latitude": place["latitude"],
                "longitude": place["longitude"],
                "current": ",".join([
                    "temperature_2m",
                    "apparent_temperature",
                    "relative_humidity_2m",
                    "wind_speed_10m",
                    "wind_direction_10m",
                    "weather_code",
                ]),
                "wind_speed_unit": "kmh",
            },
        )
        return normalize_open_meteo(self.parse_json(forecast, dict), place.get("name", location))

    def format(self, data: Any) -> Message:
        if self.integration.message_template or self.integration.embed_template:
            return super().format(data)
        if not isinstance(data, dict) or "temperature_c" not in data:
            return super().format(data)
        return render_template(
            "**Weather in {location}:** {description}\n"
            "Temperature: {temperature_c}°C (feels like {feels_like_c}°C)\n"
            "Humidity: {humidity}% | Wind: {wind_speed_kmh} km/h {wind_direction}",
            data,
        )

    def summarize(self, result: Any, delivered: bool) -> Dict[str, Any]:
        return {
            "location": result.get("location"),
            "condition_code": result.get("condition_code"),
            "delivered": delivered,
        }
