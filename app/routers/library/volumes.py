"""Volume endpoints, single and bulk."""

from __future__ import annotations

import aiosqlite
from fastapi import APIRouter, Depends, status

from app import ledger, schemas
from app.auth import require_user
from app.db import get_connection

router = APIRouter()


@router.post(
    "/series/{series_id}/volumes",
    response_model=schemas.Volume,
    status_code=status.HTTP_201_CREATED,
)
async def create_volume(
    series_id: int,
    request: schemas.CreateVolumeRequest,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.Volume:
    """Persist a new volume under the target series."""
    return await ledger.create_volume(conn, user.id, series_id, request)


@router.post(
    "/series/{series_id}/volumes/owned",
    response_model=schemas.BulkUpdateResult,
)
async def mark_volumes_owned(
    series_id: int,
    request: schemas.MarkVolumesOwnedRequest,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.BulkUpdateResult:
    """Set owned on the listed volume numbers; un-owning also un-reads."""
    return await ledger.mark_volumes_owned(
        conn, user.id, series_id, request.volume_numbers, request.owned
    )


@router.post(
    "/series/{series_id}/volumes/read",
    response_model=schemas.BulkUpdateResult,
)
async def mark_volumes_read(
    series_id: int,
    request: schemas.MarkVolumesReadRequest,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.BulkUpdateResult:
    """Set read on the listed volume numbers that are owned."""
    return await ledger.mark_volumes_read(
        conn, user.id, series_id, request.volume_numbers, request.read
    )


@router.post(
    "/series/{series_id}/volumes/owned-up-to",
    response_model=schemas.BulkUpdateResult,
)
async def mark_volumes_owned_up_to(
    series_id: int,
    request: schemas.MarkOwnedUpToRequest,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.BulkUpdateResult:
    return await ledger.mark_volumes_owned_up_to(
        conn, user.id, series_id, request.up_to
    )


@router.post(
    "/series/{series_id}/volumes/read-all-owned",
    response_model=schemas.BulkUpdateResult,
)
async def mark_all_owned_as_read(
    series_id: int,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.BulkUpdateResult:
    return await ledger.mark_all_owned_as_read(conn, user.id, series_id)


@router.get("/volumes/{volume_id}", response_model=schemas.Volume)
async def get_volume(
    volume_id: int,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.Volume:
    return await ledger.get_volume(conn, user.id, volume_id)


@router.patch("/volumes/{volume_id}", response_model=schemas.Volume)
async def update_volume(
    volume_id: int,
    request: schemas.UpdateVolumeRequest,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.Volume:
    """Apply partial updates to a volume."""
    return await ledger.update_volume(conn, user.id, volume_id, request)


@router.delete("/volumes/{volume_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_volume(
    volume_id: int,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> None:
    await ledger.delete_volume(conn, user.id, volume_id)


@router.post("/volumes/{volume_id}/toggle-owned", response_model=schemas.Volume)
async def toggle_volume_owned(
    volume_id: int,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.Volume:
    return await ledger.toggle_volume_owned(conn, user.id, volume_id)


@router.post("/volumes/{volume_id}/toggle-read", response_model=schemas.Volume)
async def toggle_volume_read(
    volume_id: int,
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.Volume:
    return await ledger.toggle_volume_read(conn, user.id, volume_id)
