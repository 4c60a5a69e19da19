"""Read-time aggregation over a caller's series and volumes.

Nothing here is persisted; the numbers are recomputed from the fetched
collection on every request.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from app import schemas

_STATUS_FIELDS = {
    schemas.SeriesStatus.READING: "reading",
    schemas.SeriesStatus.COMPLETED: "completed",
    schemas.SeriesStatus.ON_HOLD: "on_hold",
    schemas.SeriesStatus.DROPPED: "dropped",
    schemas.SeriesStatus.PLAN_TO_READ: "plan_to_read",
}


def percentage(numerator: float, denominator: float) -> float:
    """Return numerator / denominator * 100, or 0 when the denominator is 0."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator * 100


def expected_total(declared_total: int | None, volume_count: int) -> int:
    """Declared total when known, otherwise the number of existing volumes.

    A declared total of 0 means the catalog did not know the count.
    """
    return declared_total or volume_count


def _owned_count(volumes: Iterable[schemas.Volume]) -> int:
    return sum(1 for volume in volumes if volume.owned)


def _read_count(volumes: Iterable[schemas.Volume]) -> int:
    return sum(1 for volume in volumes if volume.read)


def _spent(volumes: Iterable[schemas.Volume]) -> float:
    return sum((volume.price_paid or 0.0) for volume in volumes)


def summarize_series(series: schemas.SeriesDetail) -> schemas.VolumeStats:
    """Aggregate ownership, reading and spending for one series."""
    volumes = series.volumes
    owned = _owned_count(volumes)
    read = _read_count(volumes)
    total_spent = _spent(volumes)
    total_retail_value = owned * (series.retail_price or 0.0)
    total = expected_total(series.total_volumes, len(volumes))
    savings = total_retail_value - total_spent
    return schemas.VolumeStats(
        series_id=series.series_id,
        owned=owned,
        read=read,
        missing=total - owned,
        total=total,
        total_spent=total_spent,
        total_retail_value=total_retail_value,
        average_price=total_spent / owned if owned > 0 else 0.0,
        savings=savings,
        savings_percentage=percentage(savings, total_retail_value),
        owned_progress=percentage(owned, total),
        read_progress=percentage(read, owned),
    )


def summarize_collection(
    series_list: Sequence[schemas.SeriesDetail],
) -> schemas.SeriesStats:
    """Aggregate the dashboard numbers across every series of a user."""
    total_owned = 0
    total_read = 0
    total_spent = 0.0
    total_retail_value = 0.0
    total_expected = 0
    by_status = dict.fromkeys(_STATUS_FIELDS.values(), 0)

    for series in series_list:
        owned = _owned_count(series.volumes)
        total_owned += owned
        total_read += _read_count(series.volumes)
        total_spent += _spent(series.volumes)
        total_retail_value += owned * (series.retail_price or 0.0)
        total_expected += expected_total(series.total_volumes, len(series.volumes))
        by_status[_STATUS_FIELDS[series.status]] += 1

    total_savings = total_retail_value - total_spent
    return schemas.SeriesStats(
        total_series=len(series_list),
        total_volumes_owned=total_owned,
        total_volumes_read=total_read,
        total_spent=total_spent,
        total_retail_value=total_retail_value,
        total_savings=total_savings,
        savings_percentage=percentage(total_savings, total_retail_value),
        total_expected_volumes=total_expected,
        average_price=total_spent / total_owned if total_owned > 0 else 0.0,
        by_status=schemas.StatusBreakdown(**by_status),
        collection_progress=percentage(total_owned, total_expected),
        reading_progress=percentage(total_read, total_owned),
    )


__all__ = ["expected_total", "percentage", "summarize_collection", "summarize_series"]
