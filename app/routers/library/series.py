"""Series endpoints."""

from __future__ import annotations

import aiosqlite
from fastapi import APIRouter, Depends, Query, status

from app import ledger, schemas
from app.auth import require_user
from app.db import get_connection

router = APIRouter()


@router.get("/series", response_model=schemas.ListSeriesResponse)
async def list_series(
    *,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
    status_filter: schemas.SeriesStatus | None = Query(
        default=None, alias="status", description="Filter by reading status"
    ),
    q: str | None = Query(
        default=None, description="Free text matched against title and author"
    ),
) -> schemas.ListSeriesResponse:
    """Return the caller's series, most recently updated first."""
    series = await ledger.get_all_series(conn, user.id, status_filter, q)
    return schemas.ListSeriesResponse(series=series)


@router.post(
    "/series",
    response_model=schemas.Series,
    status_code=status.HTTP_201_CREATED,
)
async def create_series(
    *,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
    request: schemas.CreateSeriesRequest,
) -> schemas.Series:
    """Create a series with no volumes."""
    return await ledger.create_series(conn, user.id, request)


@router.post(
    "/series/with-volumes",
    response_model=schemas.SeriesDetail,
    status_code=status.HTTP_201_CREATED,
)
async def create_series_with_volumes(
    *,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
    request: schemas.CreateSeriesWithVolumesRequest,
) -> schemas.SeriesDetail:
    """Create a series together with placeholder volumes 1..N."""
    return await ledger.create_series_with_volumes(conn, user.id, request)


@router.get("/series/{series_id}", response_model=schemas.SeriesDetail)
async def get_series(
    series_id: int,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.SeriesDetail:
    """Fetch a single series with its volumes in number order."""
    return await ledger.get_series(conn, user.id, series_id)


@router.patch("/series/{series_id}", response_model=schemas.Series)
async def update_series(
    series_id: int,
    request: schemas.UpdateSeriesRequest,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.Series:
    """Apply partial updates; raising total_volumes backfills volumes."""
    return await ledger.update_series(conn, user.id, series_id, request)


@router.delete("/series/{series_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_series(
    series_id: int,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> None:
    """Remove a series and all of its volumes."""
    await ledger.delete_series(conn, user.id, series_id)


@router.get("/series/{series_id}/stats", response_model=schemas.VolumeStats)
async def get_volume_stats(
    series_id: int,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.VolumeStats:
    return await ledger.get_volume_stats(conn, user.id, series_id)
