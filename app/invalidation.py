"""In-process publish/subscribe channel announcing which views went stale."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Subscriber = Callable[["Invalidation"], Awaitable[None]]


def stats_tag(user_id: str) -> str:
    return f"user:{user_id}:stats"


def series_list_tag(user_id: str) -> str:
    return f"user:{user_id}:series:list"


def series_tag(user_id: str, series_id: int | str) -> str:
    return f"user:{user_id}:series:{series_id}"


def volumes_tag(user_id: str) -> str:
    return f"user:{user_id}:volumes"


def profile_tag(user_id: str) -> str:
    return f"user:{user_id}:profile"


@dataclass(frozen=True)
class Invalidation:
    """Entities touched by a successful mutation."""

    user_id: str
    series_id: int | None = None
    volume_id: int | None = None

    def tags(self) -> frozenset[str]:
        """Every mutation can move the dashboard numbers and the series list."""
        tags = {stats_tag(self.user_id), series_list_tag(self.user_id)}
        if self.series_id is not None:
            tags.add(series_tag(self.user_id, self.series_id))
        if self.series_id is not None or self.volume_id is not None:
            # bulk updates do not name the volumes they touched
            tags.add(volumes_tag(self.user_id))
        return frozenset(tags)


class InvalidationChannel:
    """Fan out invalidation events to registered subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = Lock()

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber and return a callable that removes it."""
        with self._lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return unsubscribe

    async def publish(self, event: Invalidation) -> None:
        """Deliver the event; a failing subscriber never fails the mutation."""
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug("publishing %s to %d subscribers", event, len(subscribers))
        for subscriber in subscribers:
            try:
                await subscriber(event)
            except Exception as exc:  # noqa: BLE001
                logger.warning("invalidation subscriber failed for %s: %s", event, exc)


invalidations = InvalidationChannel()

__all__ = [
    "Invalidation",
    "InvalidationChannel",
    "invalidations",
    "profile_tag",
    "series_list_tag",
    "series_tag",
    "stats_tag",
    "volumes_tag",
]
