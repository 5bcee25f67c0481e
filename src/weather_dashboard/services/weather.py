"""Weather service orchestrating caches, the city store and the upstream client."""

import asyncio
import math
from collections.abc import Sequence

import structlog

from weather_dashboard.api.schemas import CityCoordinates, FormattedCity
from weather_dashboard.services.cache import WeatherCaches, formatted_city_key, raw_weather_key
from weather_dashboard.services.conditions import DEFAULT_WEATHER_TYPE, UNKNOWN_CONDITION, translate
from weather_dashboard.services.open_meteo import OpenMeteoClient, OpenMeteoError, WeatherSnapshot
from weather_dashboard.services.store import UNIQUE_VIOLATION, CityStore, StoreError

logger = structlog.get_logger()

DEGRADED_ICON = "mdi-cloud-question"


class MissingIdentifierError(ValueError):
    """Raised when a user id or city id is missing."""


class CityAlreadySavedError(Exception):
    """Raised when a user saves a city that is already in their list."""


def degraded_city(city: CityCoordinates, error: str) -> FormattedCity:
    """Build a zeroed city record that carries an error message."""
    return FormattedCity(
        id=city.id,
        name=city.name,
        country=city.country,
        lat=city.lat,
        lon=city.lon,
        temperature=0,
        feels_like=0,
        humidity=0,
        wind_speed=0,
        condition=UNKNOWN_CONDITION,
        icon=DEGRADED_ICON,
        weather_type=DEFAULT_WEATHER_TYPE,
        daily=None,
        loading=False,
        error=error,
    )


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def format_city(city: CityCoordinates, snapshot: WeatherSnapshot) -> FormattedCity:
    """Combine a catalog entry with its weather snapshot."""
    current = snapshot.current
    details = translate(current.weather_code, current.is_day == 1)
    return FormattedCity(
        id=city.id,
        name=city.name,
        country=city.country,
        lat=city.lat,
        lon=city.lon,
        temperature=round_half_up(current.temperature_2m),
        feels_like=round_half_up(current.apparent_temperature),
        humidity=round_half_up(current.relative_humidity_2m),
        wind_speed=round_half_up(current.wind_speed_10m),
        condition=details.condition,
        icon=details.icon,
        weather_type=details.weather_type,
        daily=snapshot.daily,
        loading=False,
        error=None,
    )


class WeatherService:
    """Service for fetching city weather with two-tier caching."""

    def __init__(self, caches: WeatherCaches, client: OpenMeteoClient, store: CityStore) -> None:
        """Initialize service with caches, upstream client and store."""
        self._caches = caches
        self._client = client
        self._store = store

    async def fetch_snapshot(self, lat: float, lon: float) -> WeatherSnapshot:
        """Get the raw weather snapshot for coordinates.

        Checks the raw weather cache first and fetches from upstream on a miss.
        Concurrent misses for the same key each go upstream.

        Raises:
            OpenMeteoError: If the upstream request fails
        """
        key = raw_weather_key(lat, lon)
        cached = self._caches.raw.get(key)
        if cached is not None:
            logger.debug("Cache hit for raw weather", key=key, cache_hit=True)
            return cached.payload

        logger.info("Cache miss, fetching from upstream", key=key, cache_hit=False)

        snapshot = await self._client.get_forecast(lat, lon)

        self._caches.raw.set(key, snapshot)
        self._caches.raw.maybe_sweep()

        return snapshot

    async def resolve_city(self, city_id: int) -> FormattedCity | None:
        """Get the formatted weather record for a catalog city.

        Returns None when the city does not exist. Upstream failures yield a
        degraded record that is not cached, so the next call retries.
        """
        key = formatted_city_key(city_id)
        cached = self._caches.formatted.get(key)
        if cached is not None:
            logger.debug("Cache hit for formatted city", key=key, cache_hit=True)
            return cached.payload

        try:
            city = await self._store.get_city(city_id)
        except StoreError as e:
            logger.warning(
                "City lookup failed, treating as not found", city_id=city_id, error=str(e)
            )
            return None

        if city is None:
            logger.info("City not found", city_id=city_id)
            return None

        try:
            snapshot = await self.fetch_snapshot(city.lat, city.lon)
        except OpenMeteoError as e:
            logger.error("Weather fetch failed", city_id=city_id, city=city.name, error=str(e))
            return degraded_city(city, f"Failed to load weather data: {e}")

        formatted = format_city(city, snapshot)
        self._caches.formatted.set(key, formatted)
        return formatted

    async def _resolve_many(self, cities: Sequence[CityCoordinates]) -> list[FormattedCity]:
        """Resolve cities concurrently, keeping source order."""
        results = await asyncio.gather(
            *(self.resolve_city(city.id) for city in cities),
            return_exceptions=True,
        )

        resolved: list[FormattedCity] = []
        for city, result in zip(cities, results, strict=True):
            if isinstance(result, FormattedCity):
                resolved.append(result)
                continue
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(
                    "City resolution raised",
                    city_id=city.id,
                    city=city.name,
                    error=repr(result),
                )
            resolved.append(degraded_city(city, f"Failed to load weather data for {city.name}"))
        return resolved

    async def get_all_cities_weather(self) -> list[FormattedCity]:
        """Get weather for every city in the catalog, in catalog order."""
        cities = await self._store.list_cities()
        return await self._resolve_many(cities)

    async def get_saved_cities_weather(self, user_id: str) -> list[FormattedCity]:
        """Get weather for a user's saved cities, most recently saved first."""
        if not user_id:
            return []
        cities = await self._store.list_saved_cities(user_id)
        return await self._resolve_many(cities)

    async def list_cities(self) -> list[CityCoordinates]:
        """Return the city catalog."""
        return await self._store.list_cities()

    async def search_cities(self, query: str) -> list[CityCoordinates]:
        """Search the catalog by name."""
        return await self._store.search_cities(query)

    async def add_saved_city(self, user_id: str, city_id: int) -> None:
        """Add a city to a user's saved list.

        Raises:
            MissingIdentifierError: If user_id or city_id is missing
            CityAlreadySavedError: If the city is already saved
            StoreError: If the insert fails for another reason
        """
        if not user_id or not city_id:
            raise MissingIdentifierError("User ID and City ID are required to save a city.")
        try:
            await self._store.add_saved_city(user_id, city_id)
        except StoreError as e:
            if e.code == UNIQUE_VIOLATION:
                raise CityAlreadySavedError("This city is already in your saved list.") from e
            logger.error("Saving city failed", user_id=user_id, city_id=city_id, error=str(e))
            raise StoreError(f"Failed to save city: {e}", code=e.code) from e
        logger.info("City saved", user_id=user_id, city_id=city_id)

    async def remove_saved_city(self, user_id: str, city_id: int) -> None:
        """Remove a city from a user's saved list.

        Raises:
            MissingIdentifierError: If user_id or city_id is missing
            StoreError: If the delete fails
        """
        if not user_id or not city_id:
            raise MissingIdentifierError("User ID and City ID are required to remove a city.")
        try:
            await self._store.remove_saved_city(user_id, city_id)
        except StoreError as e:
            logger.error("Removing city failed", user_id=user_id, city_id=city_id, error=str(e))
            raise StoreError(f"Failed to remove city: {e}", code=e.code) from e
        logger.info("City removed", user_id=user_id, city_id=city_id)
