"""API request and response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CityCoordinates(BaseModel):
    """Catalog entry for a city."""

    id: int = Field(..., description="Catalog id")
    name: str = Field(..., description="City name")
    country: str = Field(..., description="Country name")
    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lon: float = Field(..., ge=-180, le=180, description="Longitude")


class DailyForecast(BaseModel):
    """Daily forecast as parallel per-day sequences."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    time: list[datetime] = Field(default_factory=list, description="Start of each day")
    temperature_2m_max: list[float | None] = Field(default_factory=list)
    temperature_2m_min: list[float | None] = Field(default_factory=list)
    weather_code: list[float | None] = Field(default_factory=list)
    precipitation_sum: list[float | None] = Field(default_factory=list)


class FormattedCity(CityCoordinates):
    """City weather card as shown by the dashboard."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    temperature: int = Field(..., description="Temperature in Celsius")
    feels_like: int = Field(..., description="Apparent temperature in Celsius")
    humidity: int = Field(..., description="Relative humidity in percent")
    wind_speed: int = Field(..., description="Wind speed in km/h")
    condition: str = Field(..., description="Human-readable condition")
    icon: str = Field(..., description="Material Design icon name")
    weather_type: str = Field(..., description="Weather category")
    daily: DailyForecast | None = Field(default=None, description="Daily forecast")
    loading: bool = Field(default=False, description="Whether data is still loading")
    error: str | None = Field(default=None, description="Failure message, if any")


class SaveCityRequest(BaseModel):
    """Request body for saving a city."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    city_id: int = Field(..., description="Catalog id of the city to save")


class Credentials(BaseModel):
    """Email and password credentials."""

    email: str = Field(..., min_length=3, description="Account email")
    password: str = Field(..., min_length=6, description="Account password")


class AuthUser(BaseModel):
    """Authenticated user as reported by the auth provider."""

    id: str = Field(..., description="Stable user identifier")
    email: str | None = Field(default=None, description="Account email")
    user_metadata: dict[str, object] = Field(default_factory=dict)


class AuthSession(BaseModel):
    """Session issued by the auth provider."""

    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str | None = None
    user: AuthUser | None = None


class OAuthRedirect(BaseModel):
    """Authorize URL for a federated sign-in."""

    url: str


class ErrorDetail(BaseModel):
    """Error detail."""

    code: str = Field(..., description="Error code")
    message: str = Field(..., description="Error message")


class ErrorResponse(BaseModel):
    """Error response."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Health status")


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: str = Field(..., description="Readiness status")
    checks: dict[str, str] = Field(default_factory=dict, description="Component checks")
