"""Collection ledger operations: series/volume mutations, bulk transitions,
volume backfill and the statistics entry points.

Every function takes the caller's owner id and touches only that owner's
rows; a series or volume belonging to someone else is reported exactly like a
missing one. Writes inside a single operation share one transaction and the
affected views are announced on the invalidation channel after commit.

The owned/read flags and their dates move together:

* ``read`` implies ``owned``
* ``purchase_date`` is set iff ``owned``, ``read_date`` iff ``read``

:func:`flag_transition` (set-oriented changes) and :func:`reconcile_flags`
(row-level patches) are the only places that decide those columns.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, AsyncIterator, Iterable, Mapping

import aiosqlite

from app import schemas, search_utils, stats, store
from app.errors import ValidationFailed
from app.invalidation import Invalidation, invalidations

logger = logging.getLogger(__name__)


def utcnow() -> str:
    return datetime.now(UTC).isoformat()


@asynccontextmanager
async def _transaction(conn: aiosqlite.Connection) -> AsyncIterator[None]:
    try:
        yield
    except BaseException:
        await conn.rollback()
        raise
    await conn.commit()


async def _announce(
    owner_id: str, *, series_id: int | None = None, volume_id: int | None = None
) -> None:
    await invalidations.publish(
        Invalidation(user_id=owner_id, series_id=series_id, volume_id=volume_id)
    )


def flag_transition(
    *, owned: bool | None = None, read: bool | None = None, now: str
) -> dict[str, Any]:
    """Column changes for setting ``owned`` and/or ``read`` on a set of volumes.

    Un-owning always drops the read state with it.
    """
    changes: dict[str, Any] = {}
    if owned is not None:
        changes["owned"] = owned
        changes["purchase_date"] = now if owned else None
        if not owned:
            changes["read"] = False
            changes["read_date"] = None
    if read is not None:
        if read and changes.get("owned") is False:
            raise ValidationFailed("a volume must be owned before it can be read")
        changes["read"] = read
        changes["read_date"] = now if read else None
    return changes


def reconcile_flags(
    current: Mapping[str, Any], patch: Mapping[str, Any], now: str
) -> dict[str, Any]:
    """Merge a row patch so the flag/date pairs stay consistent.

    Dates supplied in the patch (or already stored) are kept while their flag
    holds; a missing date is stamped with ``now``. Explicitly asking for
    ``read`` on a volume that ends up unowned is rejected, while un-owning a
    read volume clears its read state.
    """
    merged = {**current, **patch}
    owned = bool(merged.get("owned"))
    read = bool(merged.get("read"))
    if read and not owned:
        if patch.get("read"):
            raise ValidationFailed("a volume must be owned before it can be read")
        read = False
    result = dict(patch)
    result["owned"] = owned
    result["read"] = read
    result["purchase_date"] = (merged.get("purchase_date") or now) if owned else None
    result["read_date"] = (merged.get("read_date") or now) if read else None
    return result


def missing_volume_numbers(existing: Iterable[int], new_total: int) -> list[int]:
    """Numbers in ``1..new_total`` that have no volume row yet."""
    present = set(existing)
    return [number for number in range(1, new_total + 1) if number not in present]


async def create_series(
    conn: aiosqlite.Connection, owner_id: str, request: schemas.CreateSeriesRequest
) -> schemas.Series:
    """Create a series without any volumes."""
    now = utcnow()
    async with _transaction(conn):
        series_id = await store.insert_series(
            conn, owner_id, request.model_dump(mode="json"), now
        )
    logger.info("created series %s for %s", series_id, owner_id)
    row = await store.fetch_series(conn, owner_id, series_id)
    await _announce(owner_id, series_id=series_id)
    return store.row_to_model(schemas.Series, row)


async def create_series_with_volumes(
    conn: aiosqlite.Connection,
    owner_id: str,
    request: schemas.CreateSeriesWithVolumesRequest,
) -> schemas.SeriesDetail:
    """Create a series and its volumes 1..N, all or nothing."""
    declared_total = request.declared_total
    if declared_total is None:
        declared_total = request.total_volumes
    if declared_total is None:
        raise ValidationFailed("declared_total or total_volumes is required")

    now = utcnow()
    data = request.model_dump(mode="json", exclude={"declared_total"})
    async with _transaction(conn):
        series_id = await store.insert_series(conn, owner_id, data, now)
        await store.insert_placeholder_volumes(
            conn, series_id, range(1, declared_total + 1), now, titled=True
        )
    logger.info(
        "created series %s with %d volumes for %s",
        series_id,
        declared_total,
        owner_id,
    )
    detail = await store.fetch_series_detail(conn, owner_id, series_id)
    await _announce(owner_id, series_id=series_id)
    return detail


async def update_series(
    conn: aiosqlite.Connection,
    owner_id: str,
    series_id: int,
    request: schemas.UpdateSeriesRequest,
) -> schemas.Series:
    """Patch a series and backfill placeholder volumes when the total grows."""
    updates = request.model_dump(mode="json", exclude_unset=True)
    now = utcnow()
    async with _transaction(conn):
        current = await store.fetch_series_detail(conn, owner_id, series_id)
        await store.update_series(conn, owner_id, series_id, updates, now)
        new_total = updates.get("total_volumes")
        if new_total is not None:
            await _backfill(conn, current, new_total, now)
    row = await store.fetch_series(conn, owner_id, series_id)
    await _announce(owner_id, series_id=series_id)
    return store.row_to_model(schemas.Series, row)


async def _backfill(
    conn: aiosqlite.Connection,
    current: schemas.SeriesDetail,
    new_total: int,
    now: str,
) -> int:
    """Insert placeholders for missing numbers; never deletes, never duplicates."""
    previous = stats.expected_total(current.total_volumes, len(current.volumes))
    if new_total <= previous:
        return 0
    numbers = missing_volume_numbers(
        (volume.volume_number for volume in current.volumes), new_total
    )
    inserted = await store.insert_placeholder_volumes(
        conn, current.series_id, numbers, now
    )
    logger.info(
        "backfilled %d volumes for series %s (total %d -> %d)",
        inserted,
        current.series_id,
        previous,
        new_total,
    )
    return inserted


async def delete_series(
    conn: aiosqlite.Connection, owner_id: str, series_id: int
) -> None:
    async with _transaction(conn):
        await store.delete_series(conn, owner_id, series_id)
    logger.info("deleted series %s for %s", series_id, owner_id)
    await _announce(owner_id, series_id=series_id)


async def get_series(
    conn: aiosqlite.Connection, owner_id: str, series_id: int
) -> schemas.SeriesDetail:
    return await store.fetch_series_detail(conn, owner_id, series_id)


async def get_all_series(
    conn: aiosqlite.Connection,
    owner_id: str,
    status: schemas.SeriesStatus | None = None,
    query: str | None = None,
) -> list[schemas.SeriesDetail]:
    """List series most recently updated first, optionally filtered."""
    series_list = await store.list_series_details(conn, owner_id, status)
    if query and query.strip():
        series_list = [
            series
            for series in series_list
            if search_utils.matches_search(series.title, query)
            or search_utils.matches_search(series.author, query)
        ]
    return series_list


async def get_series_stats(
    conn: aiosqlite.Connection, owner_id: str
) -> schemas.SeriesStats:
    series_list = await store.list_series_details(conn, owner_id)
    return stats.summarize_collection(series_list)


async def get_volume_stats(
    conn: aiosqlite.Connection, owner_id: str, series_id: int
) -> schemas.VolumeStats:
    series = await store.fetch_series_detail(conn, owner_id, series_id)
    return stats.summarize_series(series)


async def create_volume(
    conn: aiosqlite.Connection,
    owner_id: str,
    series_id: int,
    request: schemas.CreateVolumeRequest,
) -> schemas.Volume:
    """Add one volume to an owned series."""
    now = utcnow()
    blank = {"owned": False, "read": False, "purchase_date": None, "read_date": None}
    data = reconcile_flags(blank, request.model_dump(mode="json"), now)
    async with _transaction(conn):
        await store.fetch_series(conn, owner_id, series_id)
        volume_id = await store.insert_volume(conn, series_id, data, now)
    row = await store.fetch_volume(conn, owner_id, volume_id)
    await _announce(owner_id, series_id=series_id, volume_id=volume_id)
    return store.row_to_model(schemas.Volume, row)


async def get_volume(
    conn: aiosqlite.Connection, owner_id: str, volume_id: int
) -> schemas.Volume:
    row = await store.fetch_volume(conn, owner_id, volume_id)
    return store.row_to_model(schemas.Volume, row)


async def update_volume(
    conn: aiosqlite.Connection,
    owner_id: str,
    volume_id: int,
    request: schemas.UpdateVolumeRequest,
) -> schemas.Volume:
    now = utcnow()
    patch = request.model_dump(mode="json", exclude_unset=True)
    async with _transaction(conn):
        current = await store.fetch_volume(conn, owner_id, volume_id)
        updates = reconcile_flags(schemas.dict_from_row(current), patch, now)
        await store.update_volume(conn, owner_id, volume_id, updates, now)
    return await _reload_volume(conn, owner_id, volume_id)


async def delete_volume(
    conn: aiosqlite.Connection, owner_id: str, volume_id: int
) -> None:
    async with _transaction(conn):
        row = await store.fetch_volume(conn, owner_id, volume_id)
        await store.delete_volume(conn, owner_id, volume_id)
    await _announce(owner_id, series_id=row["series_id"], volume_id=volume_id)


async def toggle_volume_owned(
    conn: aiosqlite.Connection, owner_id: str, volume_id: int
) -> schemas.Volume:
    """Flip ``owned``; un-owning also clears the read state."""
    now = utcnow()
    async with _transaction(conn):
        current = await store.fetch_volume(conn, owner_id, volume_id)
        changes = flag_transition(owned=not current["owned"], now=now)
        await store.update_volume(conn, owner_id, volume_id, changes, now)
    return await _reload_volume(conn, owner_id, volume_id)


async def toggle_volume_read(
    conn: aiosqlite.Connection, owner_id: str, volume_id: int
) -> schemas.Volume:
    """Flip ``read``; only owned volumes can become read."""
    now = utcnow()
    async with _transaction(conn):
        current = await store.fetch_volume(conn, owner_id, volume_id)
        becomes_read = not current["read"]
        if becomes_read and not current["owned"]:
            raise ValidationFailed(
                f"volume {current['volume_number']} must be owned before it can be read"
            )
        changes = flag_transition(read=becomes_read, now=now)
        await store.update_volume(conn, owner_id, volume_id, changes, now)
    return await _reload_volume(conn, owner_id, volume_id)


async def _reload_volume(
    conn: aiosqlite.Connection, owner_id: str, volume_id: int
) -> schemas.Volume:
    row = await store.fetch_volume(conn, owner_id, volume_id)
    await _announce(owner_id, series_id=row["series_id"], volume_id=volume_id)
    return store.row_to_model(schemas.Volume, row)


async def _bulk_update(
    conn: aiosqlite.Connection,
    owner_id: str,
    series_id: int,
    changes: Mapping[str, Any],
    now: str,
    **criteria: Any,
) -> schemas.BulkUpdateResult:
    async with _transaction(conn):
        await store.fetch_series(conn, owner_id, series_id)
        updated = await store.bulk_update_volumes(
            conn, owner_id, series_id, changes, now, **criteria
        )
    logger.info(
        "bulk update on series %s changed %d volumes (%s)",
        series_id,
        updated,
        sorted(changes),
    )
    await _announce(owner_id, series_id=series_id)
    return schemas.BulkUpdateResult(series_id=series_id, updated=updated)


async def mark_volumes_owned(
    conn: aiosqlite.Connection,
    owner_id: str,
    series_id: int,
    volume_numbers: Iterable[int],
    owned: bool,
) -> schemas.BulkUpdateResult:
    now = utcnow()
    return await _bulk_update(
        conn,
        owner_id,
        series_id,
        flag_transition(owned=owned, now=now),
        now,
        volume_numbers=list(volume_numbers),
    )


async def mark_volumes_read(
    conn: aiosqlite.Connection,
    owner_id: str,
    series_id: int,
    volume_numbers: Iterable[int],
    read: bool,
) -> schemas.BulkUpdateResult:
    """Set ``read`` on the listed volumes that are owned; others are skipped."""
    now = utcnow()
    return await _bulk_update(
        conn,
        owner_id,
        series_id,
        flag_transition(read=read, now=now),
        now,
        volume_numbers=list(volume_numbers),
        owned_only=True,
    )


async def mark_volumes_owned_up_to(
    conn: aiosqlite.Connection, owner_id: str, series_id: int, up_to: int
) -> schemas.BulkUpdateResult:
    now = utcnow()
    return await _bulk_update(
        conn,
        owner_id,
        series_id,
        flag_transition(owned=True, now=now),
        now,
        up_to=up_to,
    )


async def mark_all_owned_as_read(
    conn: aiosqlite.Connection, owner_id: str, series_id: int
) -> schemas.BulkUpdateResult:
    now = utcnow()
    return await _bulk_update(
        conn,
        owner_id,
        series_id,
        flag_transition(read=True, now=now),
        now,
        owned_only=True,
    )
