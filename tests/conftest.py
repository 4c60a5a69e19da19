import sqlite3
import sys
from pathlib import Path
from typing import Iterator

import pytest
import pytest_asyncio

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.db import open_connection


def create_schema(conn: sqlite3.Connection) -> None:
    """Mirror of the Alembic migration, kept in DDL so tests stay fast."""
    conn.executescript(
        """
        CREATE TABLE users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL,
            name TEXT,
            avatar_url TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE series (
            series_id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            author TEXT,
            editorial TEXT,
            status TEXT NOT NULL DEFAULT 'READING',
            publishing BOOLEAN NOT NULL DEFAULT 0,
            total_volumes INTEGER,
            cover_image TEXT,
            description TEXT,
            retail_price REAL,
            mal_id INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        );

        CREATE TABLE volumes (
            volume_id INTEGER PRIMARY KEY AUTOINCREMENT,
            series_id INTEGER NOT NULL,
            volume_number INTEGER NOT NULL CHECK (volume_number >= 1),
            title TEXT,
            isbn TEXT,
            owned BOOLEAN NOT NULL DEFAULT 0,
            read BOOLEAN NOT NULL DEFAULT 0,
            price_paid REAL,
            condition TEXT NOT NULL DEFAULT 'NEW',
            store TEXT,
            purchase_date TEXT,
            read_date TEXT,
            notes TEXT,
            cover_image TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(series_id, volume_number),
            FOREIGN KEY(series_id) REFERENCES series(series_id) ON DELETE CASCADE
        );
        """
    )


def seed_users(conn: sqlite3.Connection) -> None:
    conn.executemany(
        "INSERT INTO users (id, email, name, created_at) VALUES (?, ?, ?, ?)",
        [
            ("user-1", "one@example.com", "Reader One", "2025-01-01T00:00:00+00:00"),
            ("user-2", "two@example.com", None, "2025-01-01T00:00:00+00:00"),
        ],
    )


@pytest.fixture()
def db_path(tmp_path, monkeypatch):
    """Create a fresh temp DB and point MANGA_DB_PATH at it."""
    path = tmp_path / "test.db"
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys = ON")
    create_schema(conn)
    seed_users(conn)
    conn.commit()
    conn.close()

    monkeypatch.setenv("MANGA_DB_PATH", str(path))
    monkeypatch.setenv("MANGA_CACHE_ENABLED", "0")
    return path


@pytest.fixture()
def sqlite_conn(db_path) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@pytest_asyncio.fixture()
async def conn(db_path):
    """aiosqlite connection configured the way the API opens it."""
    connection = await open_connection(db_path)
    try:
        yield connection
    finally:
        await connection.close()
