"""Supabase auth (GoTrue) client."""

from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from weather_dashboard.api.schemas import AuthSession, AuthUser
from weather_dashboard.config import Settings

logger = structlog.get_logger()


class AuthError(Exception):
    """Raised when the auth provider rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthClient:
    """Sign-in, sign-up, sign-out and session lookup against Supabase auth."""

    def __init__(self, settings: Settings) -> None:
        """Initialize client with settings."""
        self._auth_url = f"{settings.supabase_url.rstrip('/')}/auth/v1"
        self._api_key = settings.supabase_key
        self._timeout = settings.store_timeout_seconds

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token or self._api_key}",
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(
                    method,
                    f"{self._auth_url}{path}",
                    params=params,
                    json=json,
                    headers=headers,
                )
        except httpx.RequestError as e:
            raise AuthError(f"Auth request failed: {e}") from e

        if response.is_error:
            raise AuthError(self._error_message(response), response.status_code)
        return response

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if not isinstance(body, dict):
            return response.text
        for key in ("msg", "error_description", "message", "error"):
            if body.get(key):
                return str(body[key])
        return response.text

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Exchange email and password for a session."""
        response = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return AuthSession.model_validate(response.json())

    async def sign_up(self, email: str, password: str) -> AuthSession:
        """Register a new account.

        When email confirmation is enabled the provider returns only the user,
        so the session carries no tokens.
        """
        response = await self._request(
            "POST",
            "/signup",
            json={"email": email, "password": password},
        )
        body = response.json()
        if "access_token" in body:
            return AuthSession.model_validate(body)
        return AuthSession(user=AuthUser.model_validate(body))

    async def sign_out(self, access_token: str) -> None:
        """Revoke the session behind an access token."""
        await self._request("POST", "/logout", token=access_token)

    async def get_user(self, access_token: str) -> AuthUser:
        """Resolve the user that owns an access token."""
        response = await self._request("GET", "/user", token=access_token)
        return AuthUser.model_validate(response.json())

    def oauth_url(self, provider: str, redirect_to: str | None = None) -> str:
        """Build the authorize URL for a federated provider such as google."""
        params = {"provider": provider}
        if redirect_to:
            params["redirect_to"] = redirect_to
        return f"{self._auth_url}/authorize?{urlencode(params)}"
