"""Database helpers and dependencies for FastAPI routes."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("manga_ledger.db")
DB_PATH_ENV_VAR = "MANGA_DB_PATH"


def resolve_db_path() -> Path:
    """Return the SQLite path, honoring the MANGA_DB_PATH override.

    If the resolved file does not exist, raise a 500 so the API fails loudly.
    """
    env_value = os.environ.get(DB_PATH_ENV_VAR)
    path = Path(env_value) if env_value else DEFAULT_DB_PATH

    if not path.exists():
        # Fail loudly so misconfigurations are obvious
        logger.error("database file not found at %s", path)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"database file not found at {path}",
        )
    return path


async def open_connection(path: Path) -> aiosqlite.Connection:
    """Open a connection with row access by name and cascading foreign keys."""
    conn = await aiosqlite.connect(path)
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys = ON")
    return conn


async def get_connection() -> AsyncIterator[aiosqlite.Connection]:
    """FastAPI dependency that yields an async SQLite connection."""
    path = resolve_db_path()
    conn = await open_connection(path)
    logger.debug("opened connection to %s", path)
    try:
        yield conn
    finally:
        await conn.close()
        logger.debug("closed connection to %s", path)
