"""Owner-scoped persistence for users, series and volumes.

Every query that reads or writes a series or volume carries the owner id in
its predicate; nothing here fetches first and checks ownership afterwards.
Functions never commit, the caller decides the transaction boundary.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from typing import Any, Iterable, Mapping, TypeVar

import aiosqlite

from app import schemas
from app.errors import Conflict, NotFoundOrForbidden

logger = logging.getLogger(__name__)

SerializedModelT = TypeVar("SerializedModelT", bound=schemas.SerializedModel)

SERIES_COLUMNS = (
    "title",
    "author",
    "editorial",
    "status",
    "publishing",
    "total_volumes",
    "cover_image",
    "description",
    "retail_price",
    "mal_id",
)

VOLUME_COLUMNS = (
    "volume_number",
    "title",
    "isbn",
    "owned",
    "read",
    "price_paid",
    "condition",
    "store",
    "purchase_date",
    "read_date",
    "notes",
    "cover_image",
)

_SERIES_SELECT = """
    SELECT series_id, user_id, title, author, editorial, status, publishing,
           total_volumes, cover_image, description, retail_price, mal_id,
           created_at, updated_at
    FROM series
"""

_VOLUME_SELECT = """
    SELECT v.volume_id, v.series_id, v.volume_number, v.title, v.isbn, v.owned,
           v.read, v.price_paid, v.condition, v.store, v.purchase_date,
           v.read_date, v.notes, v.cover_image, v.created_at, v.updated_at
    FROM volumes AS v
    JOIN series AS s ON s.series_id = v.series_id
"""

_OWNED_SERIES = "SELECT series_id FROM series WHERE user_id = :owner_id"


def row_to_model(
    model_cls: type[SerializedModelT], row: sqlite3.Row
) -> SerializedModelT:
    data = schemas.dict_from_row(row)
    return model_cls(**data)


def _series_not_found(series_id: int) -> NotFoundOrForbidden:
    return NotFoundOrForbidden(f"series {series_id} not found")


def _volume_not_found(volume_id: int) -> NotFoundOrForbidden:
    return NotFoundOrForbidden(f"volume {volume_id} not found")


async def ensure_user(
    conn: aiosqlite.Connection,
    *,
    user_id: str,
    email: str | None,
    name: str | None,
    avatar_url: str | None,
    now: str,
) -> sqlite3.Row | None:
    """Return the user row, creating it when an email is available."""
    if email:
        cursor = await conn.execute(
            """
            INSERT OR IGNORE INTO users (id, email, name, avatar_url, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_id, email, name, avatar_url, now),
        )
        if cursor.rowcount:
            logger.info("registered user %s", user_id)
        await cursor.close()
    async with conn.execute(
        "SELECT id, email, name, avatar_url, created_at FROM users WHERE id = ?",
        (user_id,),
    ) as cursor:
        return await cursor.fetchone()


async def insert_series(
    conn: aiosqlite.Connection, owner_id: str, data: Mapping[str, Any], now: str
) -> int:
    params = {column: data.get(column) for column in SERIES_COLUMNS}
    params |= {"user_id": owner_id, "created_at": now, "updated_at": now}
    columns = ", ".join(SERIES_COLUMNS)
    placeholders = ", ".join(f":{column}" for column in SERIES_COLUMNS)
    cursor = await conn.execute(
        f"""
        INSERT INTO series (user_id, {columns}, created_at, updated_at)
        VALUES (:user_id, {placeholders}, :created_at, :updated_at)
        """,
        params,
    )
    series_id = cursor.lastrowid
    await cursor.close()
    if series_id is None:  # pragma: no cover - sqlite always reports a rowid
        raise RuntimeError("failed to create series")
    return series_id


async def fetch_series(
    conn: aiosqlite.Connection, owner_id: str, series_id: int
) -> sqlite3.Row:
    async with conn.execute(
        f"{_SERIES_SELECT} WHERE series_id = ? AND user_id = ?",
        (series_id, owner_id),
    ) as cursor:
        row = await cursor.fetchone()
    if not row:
        raise _series_not_found(series_id)
    return row


async def list_series(
    conn: aiosqlite.Connection,
    owner_id: str,
    status: schemas.SeriesStatus | None = None,
) -> list[sqlite3.Row]:
    clauses = ["user_id = ?"]
    params: list[Any] = [owner_id]
    if status is not None:
        clauses.append("status = ?")
        params.append(status.value)
    where = " AND ".join(clauses)
    async with conn.execute(
        f"{_SERIES_SELECT} WHERE {where} ORDER BY updated_at DESC, series_id DESC",
        params,
    ) as cursor:
        return list(await cursor.fetchall())


async def fetch_volumes_by_series(
    conn: aiosqlite.Connection, owner_id: str, series_id: int | None = None
) -> dict[int, list[sqlite3.Row]]:
    """Group the owner's volumes by series, ordered by volume number."""
    clauses = ["s.user_id = ?"]
    params: list[Any] = [owner_id]
    if series_id is not None:
        clauses.append("v.series_id = ?")
        params.append(series_id)
    where = " AND ".join(clauses)
    async with conn.execute(
        f"{_VOLUME_SELECT} WHERE {where} ORDER BY v.series_id, v.volume_number",
        params,
    ) as cursor:
        rows = await cursor.fetchall()
    grouped: dict[int, list[sqlite3.Row]] = defaultdict(list)
    for row in rows:
        grouped[row["series_id"]].append(row)
    return grouped


async def fetch_series_detail(
    conn: aiosqlite.Connection, owner_id: str, series_id: int
) -> schemas.SeriesDetail:
    row = await fetch_series(conn, owner_id, series_id)
    grouped = await fetch_volumes_by_series(conn, owner_id, series_id)
    return _build_detail(row, grouped.get(series_id, []))


async def list_series_details(
    conn: aiosqlite.Connection,
    owner_id: str,
    status: schemas.SeriesStatus | None = None,
) -> list[schemas.SeriesDetail]:
    rows = await list_series(conn, owner_id, status)
    grouped = await fetch_volumes_by_series(conn, owner_id)
    return [_build_detail(row, grouped.get(row["series_id"], [])) for row in rows]


def _build_detail(
    row: sqlite3.Row, volume_rows: Iterable[sqlite3.Row]
) -> schemas.SeriesDetail:
    data = schemas.dict_from_row(row)
    data["volumes"] = [row_to_model(schemas.Volume, volume) for volume in volume_rows]
    return schemas.SeriesDetail(**data)


async def update_series(
    conn: aiosqlite.Connection,
    owner_id: str,
    series_id: int,
    updates: Mapping[str, Any],
    now: str,
) -> None:
    fields = {key: value for key, value in updates.items() if key in SERIES_COLUMNS}
    assignments = ", ".join(
        [f"{field} = :{field}" for field in fields] + ["updated_at = :updated_at"]
    )
    params = dict(fields) | {
        "series_id": series_id,
        "owner_id": owner_id,
        "updated_at": now,
    }
    cursor = await conn.execute(
        f"""
        UPDATE series SET {assignments}
        WHERE series_id = :series_id AND user_id = :owner_id
        """,
        params,
    )
    try:
        if cursor.rowcount == 0:
            raise _series_not_found(series_id)
    finally:
        await cursor.close()


async def delete_series(
    conn: aiosqlite.Connection, owner_id: str, series_id: int
) -> None:
    cursor = await conn.execute(
        "DELETE FROM series WHERE series_id = ? AND user_id = ?",
        (series_id, owner_id),
    )
    try:
        if cursor.rowcount == 0:
            raise _series_not_found(series_id)
    finally:
        await cursor.close()


async def insert_volume(
    conn: aiosqlite.Connection, series_id: int, data: Mapping[str, Any], now: str
) -> int:
    params = {column: data.get(column) for column in VOLUME_COLUMNS}
    params |= {"series_id": series_id, "created_at": now, "updated_at": now}
    columns = ", ".join(VOLUME_COLUMNS)
    placeholders = ", ".join(f":{column}" for column in VOLUME_COLUMNS)
    try:
        cursor = await conn.execute(
            f"""
            INSERT INTO volumes (series_id, {columns}, created_at, updated_at)
            VALUES (:series_id, {placeholders}, :created_at, :updated_at)
            """,
            params,
        )
    except sqlite3.IntegrityError as exc:
        raise Conflict(
            f"volume {params['volume_number']} already exists for series {series_id}"
        ) from exc
    volume_id = cursor.lastrowid
    await cursor.close()
    if volume_id is None:  # pragma: no cover - sqlite always reports a rowid
        raise RuntimeError("failed to create volume")
    return volume_id


async def insert_placeholder_volumes(
    conn: aiosqlite.Connection,
    series_id: int,
    numbers: Iterable[int],
    now: str,
    *,
    titled: bool = False,
) -> int:
    """Insert unowned, unread volumes, skipping numbers that already exist.

    Returns the number of rows actually inserted.
    """
    rows = [
        (series_id, number, f"Volume {number}" if titled else None, now, now)
        for number in numbers
    ]
    if not rows:
        return 0
    cursor = await conn.executemany(
        """
        INSERT OR IGNORE INTO volumes (
            series_id, volume_number, title, owned, read, condition,
            created_at, updated_at
        ) VALUES (?, ?, ?, 0, 0, 'NEW', ?, ?)
        """,
        rows,
    )
    inserted = max(cursor.rowcount, 0)
    await cursor.close()
    logger.debug(
        "inserted %d of %d placeholder volumes for series %s",
        inserted,
        len(rows),
        series_id,
    )
    return inserted


async def fetch_volume(
    conn: aiosqlite.Connection, owner_id: str, volume_id: int
) -> sqlite3.Row:
    async with conn.execute(
        f"{_VOLUME_SELECT} WHERE v.volume_id = ? AND s.user_id = ?",
        (volume_id, owner_id),
    ) as cursor:
        row = await cursor.fetchone()
    if not row:
        raise _volume_not_found(volume_id)
    return row


async def update_volume(
    conn: aiosqlite.Connection,
    owner_id: str,
    volume_id: int,
    updates: Mapping[str, Any],
    now: str,
) -> None:
    fields = {key: value for key, value in updates.items() if key in VOLUME_COLUMNS}
    assignments = ", ".join(
        [f"{field} = :{field}" for field in fields] + ["updated_at = :updated_at"]
    )
    params = dict(fields) | {
        "volume_id": volume_id,
        "owner_id": owner_id,
        "updated_at": now,
    }
    try:
        cursor = await conn.execute(
            f"""
            UPDATE volumes SET {assignments}
            WHERE volume_id = :volume_id AND series_id IN ({_OWNED_SERIES})
            """,
            params,
        )
    except sqlite3.IntegrityError as exc:
        raise Conflict(
            f"volume {fields.get('volume_number')} already exists in this series"
        ) from exc
    try:
        if cursor.rowcount == 0:
            raise _volume_not_found(volume_id)
    finally:
        await cursor.close()


async def delete_volume(
    conn: aiosqlite.Connection, owner_id: str, volume_id: int
) -> None:
    cursor = await conn.execute(
        f"DELETE FROM volumes WHERE volume_id = :volume_id AND series_id IN ({_OWNED_SERIES})",
        {"volume_id": volume_id, "owner_id": owner_id},
    )
    try:
        if cursor.rowcount == 0:
            raise _volume_not_found(volume_id)
    finally:
        await cursor.close()


async def bulk_update_volumes(
    conn: aiosqlite.Connection,
    owner_id: str,
    series_id: int,
    updates: Mapping[str, Any],
    now: str,
    *,
    volume_numbers: Iterable[int] | None = None,
    up_to: int | None = None,
    owned_only: bool = False,
) -> int:
    """Apply one patch to every matching volume in a single statement."""
    fields = {key: value for key, value in updates.items() if key in VOLUME_COLUMNS}
    assignments = ", ".join(
        [f"{field} = :{field}" for field in fields] + ["updated_at = :updated_at"]
    )
    params: dict[str, Any] = dict(fields) | {
        "series_id": series_id,
        "owner_id": owner_id,
        "updated_at": now,
    }
    clauses = ["series_id = :series_id", f"series_id IN ({_OWNED_SERIES})"]
    if volume_numbers is not None:
        numbers = sorted(set(volume_numbers))
        if not numbers:
            return 0
        names = [f"n{index}" for index in range(len(numbers))]
        params.update(zip(names, numbers))
        clauses.append(
            "volume_number IN ({})".format(", ".join(f":{name}" for name in names))
        )
    if up_to is not None:
        clauses.append("volume_number <= :up_to")
        params["up_to"] = up_to
    if owned_only:
        clauses.append("owned = 1")
    where = " AND ".join(clauses)
    cursor = await conn.execute(
        f"UPDATE volumes SET {assignments} WHERE {where}",
        params,
    )
    updated = cursor.rowcount
    await cursor.close()
    return updated
