"""Routes proxying the external manga catalog."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from app import schemas
from app.auth import require_user
from app.catalog import CatalogClient, draft_series, get_catalog_client
from app.errors import NotFoundOrForbidden, ValidationFailed

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/catalog",
    tags=["catalog"],
    dependencies=[Depends(require_user)],
)


@router.get("/search", response_model=schemas.CatalogSearchResponse)
async def search_catalog(
    q: str = Query(default="", description="Title to look up, at least 2 characters"),
    client: CatalogClient = Depends(get_catalog_client),
) -> schemas.CatalogSearchResponse:
    """Return up to ten catalog matches; an unavailable catalog yields none."""
    results = await client.search(q)
    return schemas.CatalogSearchResponse(results=results)


@router.get("/{mal_id}", response_model=schemas.CatalogEntry)
async def get_catalog_entry(
    mal_id: int,
    client: CatalogClient = Depends(get_catalog_client),
) -> schemas.CatalogEntry:
    entry = await client.get_manga(mal_id)
    if entry is None:
        raise NotFoundOrForbidden(f"catalog entry {mal_id} not found")
    return entry


@router.get("/{mal_id}/draft", response_model=schemas.CreateSeriesRequest)
async def get_series_draft(
    mal_id: int,
    client: CatalogClient = Depends(get_catalog_client),
) -> schemas.CreateSeriesRequest:
    """Return a series creation payload pre-filled from the catalog entry."""
    entry = await client.get_manga(mal_id)
    if entry is None:
        raise NotFoundOrForbidden(f"catalog entry {mal_id} not found")
    try:
        return draft_series(entry)
    except ValidationError as exc:
        logger.warning("catalog entry %s cannot seed a series: %s", mal_id, exc)
        raise ValidationFailed(
            f"catalog entry {mal_id} cannot be used to create a series"
        ) from exc
