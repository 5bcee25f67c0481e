"""Test fixtures."""

import asyncio
from datetime import UTC, datetime
from typing import Any

import pytest
from fastapi.testclient import TestClient

from weather_dashboard.api.dependencies import get_auth_client, get_city_store, reset_singletons
from weather_dashboard.api.schemas import AuthSession, AuthUser, CityCoordinates, DailyForecast
from weather_dashboard.config import Settings, get_settings
from weather_dashboard.main import create_app
from weather_dashboard.services.auth import AuthError
from weather_dashboard.services.cache import WeatherCaches
from weather_dashboard.services.open_meteo import (
    CurrentConditions,
    OpenMeteoAPIError,
    OpenMeteoClient,
    WeatherSnapshot,
)
from weather_dashboard.services.store import UNIQUE_VIOLATION, StoreError

START_TIME = 1_700_000_000.0
UTC_OFFSET = 3600
# 2023-11-15 00:00 local time for a UTC+1 location, as Open-Meteo reports it
DAILY_START = 1_700_006_400 - UTC_OFFSET

LONDON = CityCoordinates(id=1, name="London", country="United Kingdom", lat=51.5074, lon=-0.1278)
LAGOS = CityCoordinates(id=2, name="Lagos", country="Nigeria", lat=6.5244, lon=3.3792)
ABERDEEN = CityCoordinates(id=3, name="Aberdeen", country="United Kingdom", lat=57.1497, lon=-2.0943)


class FakeClock:
    """Manually advanced timer for cache tests."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_forecast_payload(
    temperature: float = 15.4,
    apparent_temperature: float = 13.6,
    humidity: float = 71.0,
    wind_speed: float = 12.5,
    weather_code: int = 2,
    is_day: int = 1,
    days: int = 7,
) -> dict[str, Any]:
    """Build an Open-Meteo forecast response in unixtime format."""
    return {
        "latitude": 51.5,
        "longitude": -0.12,
        "utc_offset_seconds": UTC_OFFSET,
        "timezone": "Europe/London",
        "current": {
            "time": DAILY_START + 12 * 3600,
            "interval": 900,
            "temperature_2m": temperature,
            "relative_humidity_2m": humidity,
            "apparent_temperature": apparent_temperature,
            "is_day": is_day,
            "precipitation": 0.0,
            "rain": 0.0,
            "showers": 0.0,
            "snowfall": 0.0,
            "wind_speed_10m": wind_speed,
            "weather_code": weather_code,
        },
        "daily": {
            "time": [DAILY_START + i * 86400 for i in range(days)],
            "temperature_2m_max": [16.0 + i for i in range(days)],
            "temperature_2m_min": [8.0 + i for i in range(days)],
            "weather_code": [2] * days,
            "precipitation_sum": [0.4] * days,
        },
    }


def make_snapshot(
    temperature: float = 15.4,
    apparent_temperature: float = 13.6,
    humidity: float = 71.0,
    wind_speed: float = 12.5,
    weather_code: int = 2,
    is_day: int = 1,
) -> WeatherSnapshot:
    """Build a parsed snapshot without going through the client."""
    return WeatherSnapshot(
        current=CurrentConditions(
            time=datetime(2023, 11, 15, 12, tzinfo=UTC),
            temperature_2m=temperature,
            relative_humidity_2m=humidity,
            apparent_temperature=apparent_temperature,
            is_day=is_day,
            precipitation=0.0,
            rain=0.0,
            showers=0.0,
            snowfall=0.0,
            wind_speed_10m=wind_speed,
            weather_code=weather_code,
        ),
        daily=DailyForecast(
            time=[datetime(2023, 11, 15 + i, tzinfo=UTC) for i in range(7)],
            temperature_2m_max=[16.0] * 7,
            temperature_2m_min=[8.0] * 7,
            weather_code=[2.0] * 7,
            precipitation_sum=[0.4] * 7,
        ),
    )


class FakeOpenMeteoClient:
    """Upstream stand-in that counts calls and yields to the event loop."""

    def __init__(self, snapshot: WeatherSnapshot | None = None) -> None:
        self.snapshot = snapshot or make_snapshot()
        self.calls: list[tuple[float, float]] = []
        self.failing: set[tuple[float, float]] = set()

    async def get_forecast(self, lat: float, lon: float) -> WeatherSnapshot:
        self.calls.append((lat, lon))
        await asyncio.sleep(0)
        if (lat, lon) in self.failing:
            raise OpenMeteoAPIError("Open-Meteo API returned 500: boom", 500)
        return self.snapshot


class FakeCityStore:
    """In-memory city catalog and saved-city table."""

    def __init__(self, cities: list[CityCoordinates] | None = None) -> None:
        self.cities = {city.id: city for city in (cities or [])}
        self.saved: list[tuple[str, int]] = []
        self.broken_ids: set[int] = set()
        self.fail_writes = False
        self.fail_listing = False
        self.calls: list[str] = []

    async def list_cities(self) -> list[CityCoordinates]:
        self.calls.append("list_cities")
        if self.fail_listing:
            raise StoreError("connection refused")
        return list(self.cities.values())

    async def get_city(self, city_id: int) -> CityCoordinates | None:
        self.calls.append("get_city")
        if city_id in self.broken_ids:
            raise StoreError("connection reset")
        return self.cities.get(city_id)

    async def search_cities(self, query: str) -> list[CityCoordinates]:
        self.calls.append("search_cities")
        query = query.strip().lower()
        if len(query) < 2:
            return []
        return [city for city in self.cities.values() if query in city.name.lower()][:10]

    async def list_saved_cities(self, user_id: str) -> list[CityCoordinates]:
        self.calls.append("list_saved_cities")
        if self.fail_listing:
            raise StoreError("connection refused")
        return [
            self.cities[city_id]
            for saved_user, city_id in reversed(self.saved)
            if saved_user == user_id and city_id in self.cities
        ]

    async def add_saved_city(self, user_id: str, city_id: int) -> None:
        self.calls.append("add_saved_city")
        if self.fail_writes:
            raise StoreError("permission denied", code="42501")
        if (user_id, city_id) in self.saved:
            raise StoreError(
                'duplicate key value violates unique constraint "user_saved_cities_pkey"',
                code=UNIQUE_VIOLATION,
            )
        self.saved.append((user_id, city_id))

    async def remove_saved_city(self, user_id: str, city_id: int) -> None:
        self.calls.append("remove_saved_city")
        if self.fail_writes:
            raise StoreError("permission denied", code="42501")
        self.saved = [entry for entry in self.saved if entry != (user_id, city_id)]

    async def ping(self) -> bool:
        return True


class FakeAuthClient:
    """Auth provider stand-in accepting a single token."""

    VALID_TOKEN = "valid-token"
    USER = AuthUser(id="user-1", email="ada@example.com")

    def __init__(self) -> None:
        self.signed_out: list[str] = []

    async def get_user(self, access_token: str) -> AuthUser:
        if access_token != self.VALID_TOKEN:
            raise AuthError("invalid JWT", 401)
        return self.USER

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        if password != "correct-horse":
            raise AuthError("Invalid login credentials", 400)
        return AuthSession(access_token=self.VALID_TOKEN, token_type="bearer", user=self.USER)

    async def sign_up(self, email: str, password: str) -> AuthSession:
        return AuthSession(user=AuthUser(id="user-2", email=email))

    async def sign_out(self, access_token: str) -> None:
        self.signed_out.append(access_token)

    def oauth_url(self, provider: str, redirect_to: str | None = None) -> str:
        return f"https://auth.example.com/authorize?provider={provider}"


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        upstream_timeout_seconds=1.0,
        cache_ttl_seconds=3600,
        cache_sweep_probability=0.1,
        supabase_url="http://supabase.test",
        supabase_key="anon-key",
        log_level="DEBUG",
        log_format="text",
    )


@pytest.fixture
def clock() -> FakeClock:
    """Create a controllable timer."""
    return FakeClock()


@pytest.fixture
def caches(settings: Settings, clock: FakeClock) -> WeatherCaches:
    """Create both cache tiers on the fake clock."""
    return WeatherCaches(settings, timer=clock)


@pytest.fixture
def open_meteo_client(settings: Settings) -> OpenMeteoClient:
    """Create test Open-Meteo client."""
    return OpenMeteoClient(settings)


@pytest.fixture
def city_store() -> FakeCityStore:
    """Create an in-memory store with three cities."""
    return FakeCityStore([LONDON, LAGOS, ABERDEEN])


@pytest.fixture
def auth_client() -> FakeAuthClient:
    """Create a fake auth provider."""
    return FakeAuthClient()


@pytest.fixture
def app(city_store: FakeCityStore, auth_client: FakeAuthClient):
    """Create test application."""
    # Reset singletons before each test
    reset_singletons()
    # Clear settings cache
    get_settings.cache_clear()
    application = create_app()
    application.dependency_overrides[get_city_store] = lambda: city_store
    application.dependency_overrides[get_auth_client] = lambda: auth_client
    return application


@pytest.fixture
def client(app) -> TestClient:
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authorization header for the fake signed-in user."""
    return {"Authorization": f"Bearer {FakeAuthClient.VALID_TOKEN}"}
