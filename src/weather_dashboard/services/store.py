"""Supabase (PostgREST) client for the city catalog and saved cities."""

from typing import Any

import httpx
import structlog
from prometheus_client import Counter, Histogram
from pydantic import ValidationError

from weather_dashboard.api.schemas import CityCoordinates
from weather_dashboard.config import Settings

logger = structlog.get_logger()

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 10
UNIQUE_VIOLATION = "23505"


class StoreError(Exception):
    """Raised when a database request fails."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


# Metrics
store_requests = Counter(
    "store_requests_total",
    "Total database API requests",
    ["table", "status"],
)
store_duration = Histogram(
    "store_request_duration_seconds",
    "Database API request duration in seconds",
    ["table"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)


class CityStore:
    """Queries over the ``cities`` and ``user_saved_cities`` tables."""

    def __init__(self, settings: Settings) -> None:
        """Initialize store with settings."""
        self._rest_url = f"{settings.supabase_url.rstrip('/')}/rest/v1"
        self._timeout = settings.store_timeout_seconds
        self._headers = {
            "apikey": settings.supabase_key,
            "Authorization": f"Bearer {settings.supabase_key}",
        }

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str | int] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        with store_duration.labels(table=table).time():
            try:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(
                        method,
                        f"{self._rest_url}/{table}",
                        params=params,
                        json=json,
                        headers={**self._headers, **(headers or {})},
                    )
            except httpx.TimeoutException as e:
                store_requests.labels(table=table, status="timeout").inc()
                raise StoreError(f"Request to '{table}' timed out after {self._timeout}s") from e
            except httpx.RequestError as e:
                store_requests.labels(table=table, status="error").inc()
                raise StoreError(f"Request to '{table}' failed: {e}") from e

        if response.is_error:
            store_requests.labels(table=table, status="error").inc()
            raise self._error_from(response)

        store_requests.labels(table=table, status="success").inc()
        return response

    def _error_from(self, response: httpx.Response) -> StoreError:
        """Build a StoreError from a PostgREST error body."""
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or response.text or f"HTTP {response.status_code}"
        return StoreError(message, code=body.get("code"))

    def _rows(self, response: httpx.Response, table: str) -> list[Any]:
        """Decode a PostgREST result set.

        Raises:
            StoreError: If the body is not a JSON array
        """
        try:
            rows = response.json()
        except ValueError as e:
            raise StoreError(f"Response from '{table}' is not valid JSON: {e}") from e
        if not isinstance(rows, list):
            raise StoreError(f"Response from '{table}' is not a list of rows")
        return rows

    def _parse_cities(self, rows: list[Any], table: str) -> list[CityCoordinates]:
        """Validate city rows, skipping malformed ones."""
        cities: list[CityCoordinates] = []
        for row in rows:
            try:
                cities.append(CityCoordinates.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed city row",
                    table=table,
                    row=row,
                    errors=e.error_count(),
                )
        return cities

    async def list_cities(self) -> list[CityCoordinates]:
        """Return the full city catalog."""
        response = await self._request("GET", "cities", params={"select": "*"})
        return self._parse_cities(self._rows(response, "cities"), "cities")

    async def get_city(self, city_id: int) -> CityCoordinates | None:
        """Return a single city by id, or None when it does not exist.

        Raises:
            StoreError: If the request fails or the row is malformed
        """
        response = await self._request(
            "GET",
            "cities",
            params={"select": "*", "id": f"eq.{city_id}", "limit": 1},
        )
        rows = self._rows(response, "cities")
        if not rows:
            return None
        try:
            return CityCoordinates.model_validate(rows[0])
        except ValidationError as e:
            raise StoreError(f"Malformed row for city {city_id}: {e}") from e

    async def search_cities(self, query: str) -> list[CityCoordinates]:
        """Case-insensitive substring search on city names.

        Queries shorter than two characters return no results without a request.
        """
        query = query.strip()
        if len(query) < SEARCH_MIN_LENGTH:
            return []
        response = await self._request(
            "GET",
            "cities",
            params={"select": "*", "name": f"ilike.*{query}*", "limit": SEARCH_LIMIT},
        )
        return self._parse_cities(self._rows(response, "cities"), "cities")

    async def list_saved_cities(self, user_id: str) -> list[CityCoordinates]:
        """Return a user's saved cities, most recently saved first."""
        response = await self._request(
            "GET",
            "user_saved_cities",
            params={
                "select": "city_id,cities(id,name,country,lat,lon)",
                "user_id": f"eq.{user_id}",
                "order": "created_at.desc",
            },
        )
        # Rows whose catalog entry was deleted come back with a null join
        joined = [
            row["cities"]
            for row in self._rows(response, "user_saved_cities")
            if isinstance(row, dict) and row.get("cities") is not None
        ]
        return self._parse_cities(joined, "user_saved_cities")

    async def add_saved_city(self, user_id: str, city_id: int) -> None:
        """Insert a favorite. Duplicates surface as a StoreError with code 23505."""
        await self._request(
            "POST",
            "user_saved_cities",
            json={"user_id": user_id, "city_id": city_id},
            headers={"Prefer": "return=minimal"},
        )

    async def remove_saved_city(self, user_id: str, city_id: int) -> None:
        """Delete a favorite by its composite key."""
        await self._request(
            "DELETE",
            "user_saved_cities",
            params={"user_id": f"eq.{user_id}", "city_id": f"eq.{city_id}"},
        )

    async def ping(self) -> bool:
        """Check that the catalog table answers."""
        try:
            await self._request("GET", "cities", params={"select": "id", "limit": 1})
        except StoreError as e:
            logger.warning("Database ping failed", error=str(e))
            return False
        return True
