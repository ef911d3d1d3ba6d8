"""Async HTTP client for the StormHaven API.

Mirrors what the browser views fetch: searches, the dashboard analytics, the
PropertyCard (property plus its disasters) and the Favorites list. The
multi-fetch views run their requests concurrently and tolerate individual
failures: a failed fetch is logged and left out, the rest still render.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import settings
from .favorites import Favorite, FavoritesSnapshot
from .formatting import format_date

logger = logging.getLogger(__name__)

ANALYTICS_ENDPOINTS = (
    "frequent-disaster-high-price-properties",
    "recently-unimpacted-high-risk-areas",
    "safest-cities-per-state",
    "properties-with-significant-disasters",
    "most-affected-properties",
    "affected-properties-past-two-years",
    "disaster-trends",
)


class StormHavenAPIError(Exception):
    """The API answered with an error status or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass
class PropertyCard:
    """Everything the property detail view shows.

    `listing` is the /search_properties row, or None if it could not be fetched.
    """

    property_id: int
    listing: dict[str, Any] | None = None
    disasters: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_disasters(self) -> int:
        return len(self.disasters)

    @property
    def last_disaster(self) -> str:
        """Formatted date of the most recent disaster, or 'N/A'."""
        if not self.disasters:
            return "N/A"
        latest = max(d["designateddate"] for d in self.disasters)
        return format_date(latest)


class StormHavenClient:
    """Thin async wrapper over the HTTP API.

    No retries are attempted. `timeout=None` (the default) waits
    indefinitely, matching the server which sets no query timeout.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.api_url
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "StormHavenClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        query = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            response = await self._client.get(path, params=query)
        except httpx.HTTPError as e:
            raise StormHavenAPIError(f"GET {path} failed: {e}") from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise StormHavenAPIError(
                f"GET {path} returned {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        try:
            return response.json()
        except ValueError as e:
            raise StormHavenAPIError(
                f"GET {path} returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
            ) from e

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    async def search_properties(self, **filters: Any) -> list[dict[str, Any]]:
        """Search properties; keyword names match the query parameters."""
        return await self._get("/search_properties", filters)

    async def get_property(self, property_id: int) -> dict[str, Any] | None:
        rows = await self.search_properties(property_id=property_id)
        return rows[0] if rows else None

    async def get_disasters_for_property(self, property_id: int) -> list[dict[str, Any]]:
        return await self._get("/get_disasters_for_property", {"property_id": property_id})

    async def search_disasters(self, **filters: Any) -> list[dict[str, Any]]:
        return await self._get("/search_disasters", filters)

    async def disaster_trends(self) -> list[dict[str, Any]]:
        return await self.analytics("disaster-trends")

    async def analytics(self, name: str) -> list[dict[str, Any]]:
        if name not in ANALYTICS_ENDPOINTS:
            raise ValueError(f"Unknown analytics endpoint: {name}")
        return await self._get(f"/{name}")

    # -------------------------------------------------------------------------
    # Multi-fetch views
    # -------------------------------------------------------------------------

    async def property_card(self, property_id: int) -> PropertyCard:
        """Fetch a property and its disasters concurrently.

        Either half may fail on its own; it is logged and left empty.
        """
        prop, disasters = await asyncio.gather(
            self.get_property(property_id),
            self.get_disasters_for_property(property_id),
            return_exceptions=True,
        )
        card = PropertyCard(property_id=property_id)
        if isinstance(prop, Exception):
            logger.error(f"Error fetching property data for {property_id}: {prop}")
        else:
            card.listing = prop
        if isinstance(disasters, Exception):
            logger.error(f"Error fetching disaster data for {property_id}: {disasters}")
        else:
            card.disasters = disasters
        return card

    async def _favorite_rows(self, favorite: Favorite) -> list[dict[str, Any]]:
        try:
            rows = await self.search_properties(property_id=favorite.property_id)
        except StormHavenAPIError as e:
            logger.error(f"Error fetching favorite {favorite.property_id}: {e}")
            return []
        return [{"id": row["property_id"], "note": favorite.note, **row} for row in rows]

    async def fetch_favorites(self, favorites: FavoritesSnapshot) -> list[dict[str, Any]]:
        """Property rows for every favorite, each carrying its note.

        All favorites are fetched at once; order follows the snapshot.
        """
        results = await asyncio.gather(*(self._favorite_rows(fav) for fav in favorites))
        return [row for rows in results for row in rows]
