"""Open-Meteo API client."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
from prometheus_client import Counter, Histogram

from weather_dashboard.api.schemas import DailyForecast
from weather_dashboard.config import Settings

# Request order mirrors the fields of CurrentConditions and DailyForecast
CURRENT_VARIABLES = (
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "is_day",
    "precipitation",
    "rain",
    "showers",
    "snowfall",
    "wind_speed_10m",
    "weather_code",
)
DAILY_VARIABLES = (
    "temperature_2m_max",
    "temperature_2m_min",
    "weather_code",
    "precipitation_sum",
)
DAILY_INTERVAL_SECONDS = 86400


class OpenMeteoError(Exception):
    """Base exception for Open-Meteo client errors."""


class OpenMeteoTimeoutError(OpenMeteoError):
    """Raised when upstream request times out."""


class OpenMeteoAPIError(OpenMeteoError):
    """Raised when upstream returns an error."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


# Metrics
upstream_requests = Counter(
    "upstream_requests_total",
    "Total upstream API requests",
    ["status"],
)
upstream_duration = Histogram(
    "upstream_request_duration_seconds",
    "Upstream request duration in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0],
)


@dataclass(frozen=True)
class CurrentConditions:
    """Current observation block."""

    time: datetime
    temperature_2m: float
    relative_humidity_2m: float
    apparent_temperature: float
    is_day: int
    precipitation: float
    rain: float
    showers: float
    snowfall: float
    wind_speed_10m: float
    weather_code: int


@dataclass(frozen=True)
class WeatherSnapshot:
    """Normalized current conditions plus the daily forecast."""

    current: CurrentConditions
    daily: DailyForecast


def _to_instant(timestamp: float, utc_offset_seconds: int) -> datetime:
    return datetime.fromtimestamp(timestamp + utc_offset_seconds, tz=UTC)


class OpenMeteoClient:
    """HTTP client for Open-Meteo Forecast API."""

    def __init__(self, settings: Settings) -> None:
        """Initialize client with settings."""
        self._base_url = settings.upstream_url
        self._timeout = settings.upstream_timeout_seconds
        self._forecast_days = settings.forecast_days

    async def get_forecast(self, lat: float, lon: float) -> WeatherSnapshot:
        """Fetch current conditions and the daily forecast for coordinates.

        Args:
            lat: Latitude (-90 to 90)
            lon: Longitude (-180 to 180)

        Returns:
            Normalized weather snapshot

        Raises:
            OpenMeteoTimeoutError: If request times out
            OpenMeteoAPIError: If upstream returns an error
            OpenMeteoError: If the request fails or the body is malformed
        """
        params: dict[str, str | float | int] = {
            "latitude": lat,
            "longitude": lon,
            "current": ",".join(CURRENT_VARIABLES),
            "daily": ",".join(DAILY_VARIABLES),
            "timezone": "auto",
            "forecast_days": self._forecast_days,
            "timeformat": "unixtime",
        }

        with upstream_duration.time():
            try:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self._base_url, params=params)

                if response.status_code != 200:
                    upstream_requests.labels(status="error").inc()
                    raise OpenMeteoAPIError(
                        f"Open-Meteo API returned {response.status_code}: {response.text}",
                        response.status_code,
                    )

                upstream_requests.labels(status="success").inc()
                return self._parse_response(response.json())

            except httpx.TimeoutException as e:
                upstream_requests.labels(status="timeout").inc()
                raise OpenMeteoTimeoutError(
                    f"Open-Meteo API request timed out after {self._timeout}s"
                ) from e

            except httpx.RequestError as e:
                upstream_requests.labels(status="error").inc()
                raise OpenMeteoError(f"Open-Meteo API request failed: {e}") from e

            except ValueError as e:
                upstream_requests.labels(status="error").inc()
                raise OpenMeteoError(f"Open-Meteo API returned invalid JSON: {e}") from e

    def _parse_response(self, data: Any) -> WeatherSnapshot:
        """Parse Open-Meteo API response.

        Raises:
            OpenMeteoError: If required fields are missing from response
        """
        if not isinstance(data, dict):
            raise OpenMeteoError(f"Expected a JSON object in response, got {type(data).__name__}")

        current = data.get("current")
        if not current:
            raise OpenMeteoError("Missing 'current' field in response")
        if not isinstance(current, dict):
            raise OpenMeteoError("Field 'current' in response is not an object")

        daily = data.get("daily")
        if not daily:
            raise OpenMeteoError("Missing 'daily' field in response")
        if not isinstance(daily, dict):
            raise OpenMeteoError("Field 'daily' in response is not an object")

        missing = [name for name in ("time", *CURRENT_VARIABLES) if current.get(name) is None]
        if missing:
            raise OpenMeteoError(
                f"Missing required weather data in 'current' field: {', '.join(missing)}"
            )

        missing = [name for name in ("time", *DAILY_VARIABLES) if daily.get(name) is None]
        if missing:
            raise OpenMeteoError(
                f"Missing required forecast data in 'daily' field: {', '.join(missing)}"
            )

        try:
            utc_offset = int(data.get("utc_offset_seconds", 0))
            return WeatherSnapshot(
                current=self._parse_current(current, utc_offset),
                daily=self._parse_daily(daily, utc_offset),
            )
        except (TypeError, ValueError) as e:
            raise OpenMeteoError(f"Malformed weather data in response: {e}") from e

    def _parse_current(self, current: dict[str, Any], utc_offset: int) -> CurrentConditions:
        return CurrentConditions(
            time=_to_instant(current["time"], utc_offset),
            temperature_2m=float(current["temperature_2m"]),
            relative_humidity_2m=float(current["relative_humidity_2m"]),
            apparent_temperature=float(current["apparent_temperature"]),
            is_day=int(current["is_day"]),
            precipitation=float(current["precipitation"]),
            rain=float(current["rain"]),
            showers=float(current["showers"]),
            snowfall=float(current["snowfall"]),
            wind_speed_10m=float(current["wind_speed_10m"]),
            weather_code=int(current["weather_code"]),
        )

    def _parse_daily(self, daily: dict[str, Any], utc_offset: int) -> DailyForecast:
        times = daily["time"]
        if not times:
            raise OpenMeteoError("Empty 'daily.time' in response")

        # Step from the first day in fixed intervals, like the provider's own SDK
        start = int(times[0])
        end = start + len(times) * DAILY_INTERVAL_SECONDS
        steps = (end - start) // DAILY_INTERVAL_SECONDS

        for name in DAILY_VARIABLES:
            if len(daily[name]) != steps:
                raise OpenMeteoError(
                    f"Daily variable '{name}' has {len(daily[name])} values, expected {steps}"
                )

        return DailyForecast(
            time=[
                _to_instant(start + i * DAILY_INTERVAL_SECONDS, utc_offset) for i in range(steps)
            ],
            temperature_2m_max=daily["temperature_2m_max"],
            temperature_2m_min=daily["temperature_2m_min"],
            weather_code=daily["weather_code"],
            precipitation_sum=daily["precipitation_sum"],
        )
