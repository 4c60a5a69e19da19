"""Dashboard statistics endpoint."""

from __future__ import annotations

import aiosqlite
from fastapi import APIRouter, Depends

from app import ledger, schemas
from app.auth import require_user
from app.db import get_connection

router = APIRouter()


@router.get("/stats", response_model=schemas.SeriesStats)
async def get_series_stats(
    conn: aiosqlite.Connection = Depends(get_connection),
    user: schemas.User = Depends(require_user),
) -> schemas.SeriesStats:
    """Aggregate ownership, reading and spending across the collection."""
    return await ledger.get_series_stats(conn, user.id)
