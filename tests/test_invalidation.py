import pytest

from app.invalidation import Invalidation, InvalidationChannel


def test_tags_cover_stats_and_listing():
    assert Invalidation(user_id="u1").tags() == {
        "user:u1:stats",
        "user:u1:series:list",
    }
    assert Invalidation(user_id="u1", series_id=2, volume_id=9).tags() == {
        "user:u1:stats",
        "user:u1:series:list",
        "user:u1:series:2",
        "user:u1:volumes",
    }


@pytest.mark.asyncio()
async def test_publish_reaches_subscribers_until_unsubscribed():
    channel = InvalidationChannel()
    received: list[Invalidation] = []

    async def collect(event: Invalidation) -> None:
        received.append(event)

    unsubscribe = channel.subscribe(collect)
    channel.subscribe(collect)
    await channel.publish(Invalidation(user_id="u1", series_id=1))
    unsubscribe()
    await channel.publish(Invalidation(user_id="u1", series_id=2))

    assert received == [Invalidation(user_id="u1", series_id=1)]


@pytest.mark.asyncio()
async def test_failing_subscriber_does_not_block_others(caplog):
    channel = InvalidationChannel()
    received: list[Invalidation] = []

    async def broken(event: Invalidation) -> None:
        raise ConnectionError("redis down")

    async def collect(event: Invalidation) -> None:
        received.append(event)

    channel.subscribe(broken)
    channel.subscribe(collect)
    with caplog.at_level("WARNING"):
        await channel.publish(Invalidation(user_id="u1"))

    assert received == [Invalidation(user_id="u1")]
    assert "redis down" in caplog.text
