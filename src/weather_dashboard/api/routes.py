"""API route definitions."""

from typing import Annotated

import structlog
from fastapi import APIRouter, HTTPException, Query, Response, status

from weather_dashboard.api.dependencies import (
    AccessTokenDep,
    AuthClientDep,
    CachesDep,
    CurrentUserDep,
    StoreDep,
    WeatherServiceDep,
)
from weather_dashboard.api.schemas import (
    AuthSession,
    CityCoordinates,
    Credentials,
    ErrorDetail,
    ErrorResponse,
    FormattedCity,
    HealthResponse,
    OAuthRedirect,
    ReadinessResponse,
    SaveCityRequest,
)
from weather_dashboard.services.auth import AuthError
from weather_dashboard.services.store import StoreError
from weather_dashboard.services.weather import CityAlreadySavedError, MissingIdentifierError

logger = structlog.get_logger()

# API router for catalog and weather endpoints
api_router = APIRouter(prefix="/api/v1", tags=["weather"])

# Saved cities of the signed-in user
me_router = APIRouter(prefix="/api/v1/me", tags=["saved cities"])

# Auth router proxying the auth provider
auth_router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

# Health router for health checks
health_router = APIRouter(prefix="/health", tags=["health"])


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
    )


def _store_error(e: StoreError) -> HTTPException:
    return _error(status.HTTP_502_BAD_GATEWAY, "STORE_ERROR", str(e))


@api_router.get(
    "/cities",
    response_model=list[CityCoordinates],
    responses={502: {"model": ErrorResponse, "description": "Database error"}},
)
async def list_cities(weather_service: WeatherServiceDep) -> list[CityCoordinates]:
    """List every city in the catalog."""
    try:
        return await weather_service.list_cities()
    except StoreError as e:
        logger.error("Listing cities failed", error=str(e))
        raise _store_error(e) from e


@api_router.get(
    "/cities/search",
    response_model=list[CityCoordinates],
    responses={502: {"model": ErrorResponse, "description": "Database error"}},
)
async def search_cities(
    weather_service: WeatherServiceDep,
    q: Annotated[str, Query(max_length=100, description="Part of a city name")] = "",
) -> list[CityCoordinates]:
    """Search cities by name (at most 10 results, queries under 2 characters match nothing)."""
    try:
        return await weather_service.search_cities(q)
    except StoreError as e:
        logger.error("City search failed", query=q, error=str(e))
        raise _store_error(e) from e


@api_router.get(
    "/weather",
    response_model=list[FormattedCity],
    responses={502: {"model": ErrorResponse, "description": "Database error"}},
)
async def get_all_weather(weather_service: WeatherServiceDep) -> list[FormattedCity]:
    """Get weather cards for every catalog city.

    Cities whose weather cannot be loaded come back with ``error`` set.
    """
    try:
        return await weather_service.get_all_cities_weather()
    except StoreError as e:
        logger.error("Listing cities failed", error=str(e))
        raise _store_error(e) from e


@api_router.get(
    "/weather/{city_id}",
    response_model=FormattedCity,
    responses={404: {"model": ErrorResponse, "description": "Unknown city"}},
)
async def get_city_weather(city_id: int, weather_service: WeatherServiceDep) -> FormattedCity:
    """Get the weather card for one city. Results are cached for an hour."""
    city = await weather_service.resolve_city(city_id)
    if city is None:
        raise _error(status.HTTP_404_NOT_FOUND, "CITY_NOT_FOUND", f"City {city_id} not found")
    return city


@me_router.get(
    "/cities",
    response_model=list[FormattedCity],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        502: {"model": ErrorResponse, "description": "Database error"},
    },
)
async def get_saved_weather(
    user: CurrentUserDep,
    weather_service: WeatherServiceDep,
) -> list[FormattedCity]:
    """Get weather cards for the signed-in user's saved cities, newest first."""
    try:
        return await weather_service.get_saved_cities_weather(user.id)
    except StoreError as e:
        logger.error("Listing saved cities failed", user_id=user.id, error=str(e))
        raise _store_error(e) from e


@me_router.post(
    "/cities",
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Missing identifier"},
        401: {"model": ErrorResponse, "description": "Not signed in"},
        409: {"model": ErrorResponse, "description": "City already saved"},
        502: {"model": ErrorResponse, "description": "Database error"},
    },
)
async def save_city(
    body: SaveCityRequest,
    user: CurrentUserDep,
    weather_service: WeatherServiceDep,
) -> Response:
    """Add a city to the signed-in user's saved list."""
    try:
        await weather_service.add_saved_city(user.id, body.city_id)
    except MissingIdentifierError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "MISSING_IDENTIFIER", str(e)) from e
    except CityAlreadySavedError as e:
        raise _error(status.HTTP_409_CONFLICT, "ALREADY_SAVED", str(e)) from e
    except StoreError as e:
        raise _store_error(e) from e
    return Response(status_code=status.HTTP_201_CREATED)


@me_router.delete(
    "/cities/{city_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"model": ErrorResponse, "description": "Missing identifier"},
        401: {"model": ErrorResponse, "description": "Not signed in"},
        502: {"model": ErrorResponse, "description": "Database error"},
    },
)
async def remove_city(
    city_id: int,
    user: CurrentUserDep,
    weather_service: WeatherServiceDep,
) -> Response:
    """Remove a city from the signed-in user's saved list."""
    try:
        await weather_service.remove_saved_city(user.id, city_id)
    except MissingIdentifierError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "MISSING_IDENTIFIER", str(e)) from e
    except StoreError as e:
        raise _store_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _auth_error(e: AuthError) -> HTTPException:
    status_code = e.status_code if e.status_code and 400 <= e.status_code < 500 else 502
    return _error(status_code, "AUTH_ERROR", str(e))


@auth_router.post("/signin", response_model=AuthSession)
async def sign_in(credentials: Credentials, auth: AuthClientDep) -> AuthSession:
    """Sign in with email and password."""
    try:
        return await auth.sign_in_with_password(credentials.email, credentials.password)
    except AuthError as e:
        logger.warning("Sign-in failed", error=str(e))
        raise _auth_error(e) from e


@auth_router.post("/signup", response_model=AuthSession, status_code=status.HTTP_201_CREATED)
async def sign_up(credentials: Credentials, auth: AuthClientDep) -> AuthSession:
    """Create an account with email and password."""
    try:
        return await auth.sign_up(credentials.email, credentials.password)
    except AuthError as e:
        logger.warning("Sign-up failed", error=str(e))
        raise _auth_error(e) from e


@auth_router.post("/signout", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(token: AccessTokenDep, auth: AuthClientDep) -> Response:
    """Sign out the session behind the bearer token."""
    try:
        await auth.sign_out(token)
    except AuthError as e:
        logger.warning("Sign-out failed", error=str(e))
        raise _auth_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@auth_router.get("/oauth/{provider}", response_model=OAuthRedirect)
async def oauth_redirect(
    provider: str,
    auth: AuthClientDep,
    redirect_to: Annotated[str | None, Query(description="Where to land after sign-in")] = None,
) -> OAuthRedirect:
    """Return the authorize URL for a federated provider."""
    return OAuthRedirect(url=auth.oauth_url(provider, redirect_to))


@health_router.get("/live", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    """Liveness probe - checks if the service is running."""
    return HealthResponse(status="ok")


@health_router.get("/ready", response_model=ReadinessResponse)
async def readiness(caches: CachesDep, store: StoreDep) -> ReadinessResponse:
    """Readiness probe - checks if the service is ready to accept traffic."""
    checks = {
        "cache": "ok" if caches.is_healthy() else "unhealthy",
        "database": "ok" if await store.ping() else "unhealthy",
    }

    overall_status = "ok" if all(value == "ok" for value in checks.values()) else "unhealthy"

    response = ReadinessResponse(status=overall_status, checks=checks)

    if overall_status != "ok":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=response.model_dump(),
        )

    return response
