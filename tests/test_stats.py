from datetime import datetime, timezone

import pytest

from app import schemas, stats

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _volume(number: int, *, owned=False, read=False, price=None) -> schemas.Volume:
    return schemas.Volume(
        volume_id=number,
        series_id=1,
        volume_number=number,
        owned=owned,
        read=read,
        price_paid=price,
        condition=schemas.Condition.NEW,
        purchase_date=NOW if owned else None,
        read_date=NOW if read else None,
        created_at=NOW,
        updated_at=NOW,
    )


def _series(
    volumes,
    *,
    series_id=1,
    total_volumes=None,
    retail_price=None,
    status=schemas.SeriesStatus.READING,
) -> schemas.SeriesDetail:
    return schemas.SeriesDetail(
        series_id=series_id,
        user_id="user-1",
        title=f"Series {series_id}",
        status=status,
        publishing=False,
        total_volumes=total_volumes,
        retail_price=retail_price,
        created_at=NOW,
        updated_at=NOW,
        volumes=volumes,
    )


def test_percentage_guards_zero_denominator():
    assert stats.percentage(5, 0) == 0
    assert stats.percentage(1, 4) == pytest.approx(25)


def test_expected_total_treats_zero_as_unknown():
    assert stats.expected_total(None, 4) == 4
    assert stats.expected_total(0, 4) == 4
    assert stats.expected_total(12, 4) == 12


def test_summarize_series_spending_and_progress():
    series = _series(
        [
            _volume(1, owned=True, read=True, price=8),
            _volume(2, owned=True, price=7),
            _volume(3),
        ],
        total_volumes=4,
        retail_price=10,
    )
    result = stats.summarize_series(series)
    assert result.owned == 2
    assert result.read == 1
    assert result.total == 4
    assert result.missing == 2
    assert result.total_spent == pytest.approx(15)
    assert result.total_retail_value == pytest.approx(20)
    assert result.savings == pytest.approx(5)
    assert result.savings_percentage == pytest.approx(25)
    assert result.average_price == pytest.approx(7.5)
    assert result.owned_progress == pytest.approx(50)
    assert result.read_progress == pytest.approx(50)


def test_summarize_series_without_volumes_is_all_zero():
    result = stats.summarize_series(_series([]))
    assert result.total == 0
    assert result.missing == 0
    assert result.average_price == 0
    assert result.savings_percentage == 0
    assert result.owned_progress == 0
    assert result.read_progress == 0


def test_summarize_collection_counts_statuses():
    collection = [
        _series(
            [_volume(1, owned=True, read=True, price=12), _volume(2)],
            series_id=1,
            total_volumes=2,
            retail_price=10,
        ),
        _series(
            [_volume(1, owned=True, price=5)],
            series_id=2,
            status=schemas.SeriesStatus.DROPPED,
        ),
        _series([], series_id=3, status=schemas.SeriesStatus.PLAN_TO_READ),
    ]
    result = stats.summarize_collection(collection)
    assert result.total_series == 3
    assert result.total_volumes_owned == 2
    assert result.total_volumes_read == 1
    assert result.total_spent == pytest.approx(17)
    assert result.total_retail_value == pytest.approx(10)
    assert result.total_savings == pytest.approx(-7)
    assert result.total_expected_volumes == 3
    assert result.average_price == pytest.approx(8.5)
    assert result.collection_progress == pytest.approx(200 / 3)
    assert result.reading_progress == pytest.approx(50)
    assert result.by_status == schemas.StatusBreakdown(
        reading=1, dropped=1, plan_to_read=1
    )


def test_summarize_empty_collection():
    result = stats.summarize_collection([])
    assert result.total_series == 0
    assert result.average_price == 0
    assert result.savings_percentage == 0
    assert result.collection_progress == 0
    assert result.reading_progress == 0
    assert result.total_volumes_read <= result.total_volumes_owned
