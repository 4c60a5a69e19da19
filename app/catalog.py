"""Read-only client for the Jikan (MyAnimeList) manga catalog.

Used only to pre-fill series forms. Calls are neither retried nor cached here;
any failure is logged and degrades to an empty result.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from app import schemas
from app.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_URL = "https://api.jikan.moe/v4"
CATALOG_URL_ENV_VAR = "MANGA_CATALOG_URL"
CATALOG_TIMEOUT_ENV_VAR = "MANGA_CATALOG_TIMEOUT_SECONDS"
DEFAULT_CATALOG_TIMEOUT = 10.0

MIN_QUERY_LENGTH = 2
SEARCH_LIMIT = 10
MAX_DESCRIPTION_LENGTH = 2000


def _catalog_timeout() -> float:
    raw = os.environ.get(CATALOG_TIMEOUT_ENV_VAR)
    if not raw:
        return DEFAULT_CATALOG_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_CATALOG_TIMEOUT
    return value if value > 0 else DEFAULT_CATALOG_TIMEOUT


class CatalogClient:
    """Thin async wrapper over the catalog's search and lookup endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (
            base_url or os.environ.get(CATALOG_URL_ENV_VAR) or DEFAULT_CATALOG_URL
        ).rstrip("/")
        self.timeout = timeout or _catalog_timeout()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def search(self, query: str) -> list[schemas.CatalogEntry]:
        """Return up to ten candidates; short queries and failures yield []."""
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []
        try:
            payload = await self._get_json(
                "/manga", params={"q": query, "limit": SEARCH_LIMIT, "sfw": "true"}
            )
            items = payload.get("data") or []
            return [parse_entry(item) for item in items[:SEARCH_LIMIT]]
        except (UpstreamUnavailable, KeyError, TypeError, ValueError) as exc:
            logger.warning("catalog search for %r failed: %s", query, exc)
            return []

    async def get_manga(self, mal_id: int) -> schemas.CatalogEntry | None:
        """Return one catalog entry, or None when it cannot be fetched."""
        try:
            payload = await self._get_json(f"/manga/{mal_id}")
            data = payload.get("data")
            if not data:
                return None
            return parse_entry(data)
        except (UpstreamUnavailable, KeyError, TypeError, ValueError) as exc:
            logger.warning("catalog lookup for %s failed: %s", mal_id, exc)
            return None

    async def _get_json(
        self, path: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        client = self._get_client()
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnavailable(
                f"catalog responded {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"catalog request failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamUnavailable("catalog returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise UpstreamUnavailable("catalog returned an unexpected payload")
        return payload


def _names(items: Any) -> list[str]:
    if not isinstance(items, list):
        return []
    return [
        item["name"]
        for item in items
        if isinstance(item, dict) and item.get("name")
    ]


def parse_entry(item: dict[str, Any]) -> schemas.CatalogEntry:
    """Map a raw catalog record to :class:`schemas.CatalogEntry`."""
    jpg = (item.get("images") or {}).get("jpg") or {}
    return schemas.CatalogEntry(
        mal_id=int(item["mal_id"]),
        title=item.get("title") or item.get("title_english") or "",
        title_english=item.get("title_english"),
        title_japanese=item.get("title_japanese"),
        image_url=jpg.get("image_url"),
        small_image_url=jpg.get("small_image_url"),
        large_image_url=jpg.get("large_image_url"),
        volumes=item.get("volumes"),
        chapters=item.get("chapters"),
        status=item.get("status"),
        publishing=bool(item.get("publishing")),
        synopsis=item.get("synopsis"),
        authors=_names(item.get("authors")),
        genres=_names(item.get("genres")),
        score=item.get("score"),
    )


def draft_series(entry: schemas.CatalogEntry) -> schemas.CreateSeriesRequest:
    """Build a series creation payload pre-filled from a catalog entry."""
    return schemas.CreateSeriesRequest(
        title=entry.title_english or entry.title,
        author=", ".join(entry.authors) or None,
        total_volumes=entry.volumes or None,
        cover_image=entry.large_image_url or entry.image_url,
        description=(entry.synopsis or "")[:MAX_DESCRIPTION_LENGTH] or None,
        mal_id=entry.mal_id,
        publishing=entry.publishing,
    )


_client: CatalogClient | None = None


def get_catalog_client() -> CatalogClient:
    """FastAPI dependency returning the shared catalog client."""
    global _client
    if _client is None:
        _client = CatalogClient()
    return _client


async def close_catalog_client() -> None:
    global _client
    if _client is not None:
        await _client.close()
        _client = None


__all__ = [
    "CatalogClient",
    "close_catalog_client",
    "draft_series",
    "get_catalog_client",
    "parse_entry",
]
