"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from weather_dashboard.api.schemas import AuthUser, ErrorDetail, ErrorResponse
from weather_dashboard.config import Settings, get_settings
from weather_dashboard.services.auth import AuthClient, AuthError
from weather_dashboard.services.cache import WeatherCaches
from weather_dashboard.services.open_meteo import OpenMeteoClient
from weather_dashboard.services.store import CityStore
from weather_dashboard.services.weather import WeatherService

# Singleton instances for services
_weather_caches: WeatherCaches | None = None
_open_meteo_client: OpenMeteoClient | None = None
_city_store: CityStore | None = None
_auth_client: AuthClient | None = None


def get_weather_caches(settings: Annotated[Settings, Depends(get_settings)]) -> WeatherCaches:
    """Get the cache tiers (singleton)."""
    global _weather_caches
    if _weather_caches is None:
        _weather_caches = WeatherCaches(settings)
    return _weather_caches


def get_open_meteo_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> OpenMeteoClient:
    """Get Open-Meteo client instance (singleton)."""
    global _open_meteo_client
    if _open_meteo_client is None:
        _open_meteo_client = OpenMeteoClient(settings)
    return _open_meteo_client


def get_city_store(settings: Annotated[Settings, Depends(get_settings)]) -> CityStore:
    """Get city store instance (singleton)."""
    global _city_store
    if _city_store is None:
        _city_store = CityStore(settings)
    return _city_store


def get_auth_client(settings: Annotated[Settings, Depends(get_settings)]) -> AuthClient:
    """Get auth client instance (singleton)."""
    global _auth_client
    if _auth_client is None:
        _auth_client = AuthClient(settings)
    return _auth_client


def get_weather_service(
    caches: Annotated[WeatherCaches, Depends(get_weather_caches)],
    client: Annotated[OpenMeteoClient, Depends(get_open_meteo_client)],
    store: Annotated[CityStore, Depends(get_city_store)],
) -> WeatherService:
    """Get weather service instance."""
    return WeatherService(caches, client, store)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=ErrorResponse(error=ErrorDetail(code="UNAUTHORIZED", message=message)).model_dump(),
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_access_token(authorization: Annotated[str | None, Header()] = None) -> str:
    """Extract the bearer token from the Authorization header."""
    if not authorization:
        raise _unauthorized("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise _unauthorized("Authorization header must use the Bearer scheme")
    return token


async def get_current_user(
    token: Annotated[str, Depends(get_access_token)],
    auth: Annotated[AuthClient, Depends(get_auth_client)],
) -> AuthUser:
    """Resolve the signed-in user from the access token."""
    try:
        return await auth.get_user(token)
    except AuthError as e:
        raise _unauthorized(f"Invalid session: {e}") from e


# Type aliases for dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]
CachesDep = Annotated[WeatherCaches, Depends(get_weather_caches)]
StoreDep = Annotated[CityStore, Depends(get_city_store)]
AuthClientDep = Annotated[AuthClient, Depends(get_auth_client)]
AccessTokenDep = Annotated[str, Depends(get_access_token)]
CurrentUserDep = Annotated[AuthUser, Depends(get_current_user)]
WeatherServiceDep = Annotated[WeatherService, Depends(get_weather_service)]


def reset_singletons() -> None:
    """Reset singleton instances (for testing)."""
    global _weather_caches, _open_meteo_client, _city_store, _auth_client
    _weather_caches = None
    _open_meteo_client = None
    _city_store = None
    _auth_client = None
