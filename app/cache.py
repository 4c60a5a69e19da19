"""Redis response caching utilities and middleware.

Cached GET responses are keyed per caller and tagged with the entities they
render. Mutations never touch the cache directly; the ledger publishes
:class:`app.invalidation.Invalidation` events and :func:`invalidate_event`
drops every response carrying one of the event's tags.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
import logging
import os
import weakref
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response
from fastapi.concurrency import iterate_in_threadpool
from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware

from app.auth import USER_ID_HEADER
from app.invalidation import (
    Invalidation,
    profile_tag,
    series_list_tag,
    series_tag,
    stats_tag,
    volumes_tag,
)

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"
REDIS_URL_ENV_VAR = "MANGA_REDIS_URL"
CACHE_TTL_ENV_VAR = "MANGA_CACHE_TTL_SECONDS"
CACHE_ENABLED_ENV_VAR = "MANGA_CACHE_ENABLED"
DEFAULT_CACHE_TTL = 60

TAG_KEY_PREFIX = "cache:tag:"
RESPONSE_KEY_PREFIX = "cache:responses:"
_FALSEY = {"0", "false", "no", "off"}
_SKIP_HEADERS = {"content-length", "date", "server"}

# redis.asyncio connections are bound to the loop that opened them, and the
# test client runs every app on a loop of its own.
_clients: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Redis]" = (
    weakref.WeakKeyDictionary()
)


async def get_redis_client() -> Redis:
    """Return the Redis client for the running event loop."""
    loop = asyncio.get_running_loop()
    client = _clients.get(loop)
    if client is None:
        redis_url = os.environ.get(REDIS_URL_ENV_VAR, DEFAULT_REDIS_URL)
        client = Redis.from_url(redis_url, decode_responses=False)
        _clients[loop] = client
        logger.debug("opened redis client for %s", redis_url)
    return client


async def close_redis_client() -> None:
    """Close the running loop's Redis client if one was opened."""
    client = _clients.pop(asyncio.get_running_loop(), None)
    if client is None:
        return
    try:
        await client.aclose()
    except Exception as exc:  # noqa: BLE001
        logger.debug("failed to close redis client cleanly: %s", exc)


@dataclass
class CachedResponse:
    """Serializable snapshot of a response body and its headers."""

    status_code: int
    body: bytes
    media_type: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    def dumps(self) -> str:
        return json.dumps(
            {
                "status_code": self.status_code,
                "media_type": self.media_type,
                "headers": self.headers,
                "body": base64.b64encode(self.body).decode("ascii"),
            }
        )

    @classmethod
    def loads(cls, raw: bytes | str) -> "CachedResponse":
        payload = json.loads(raw)
        return cls(
            status_code=int(payload["status_code"]),
            body=base64.b64decode(payload["body"]),
            media_type=payload.get("media_type"),
            headers=dict(payload.get("headers") or {}),
        )

    def to_response(self) -> Response:
        response = Response(
            content=self.body,
            status_code=self.status_code,
            media_type=self.media_type,
        )
        for key, value in self.headers.items():
            response.headers[key] = value
        response.headers["x-cache"] = "hit"
        return response


async def invalidate_event(event: Invalidation) -> None:
    """Invalidation channel subscriber dropping the event's cached views."""
    await invalidate_tags(event.tags())


async def invalidate_tags(tags: Iterable[str]) -> None:
    """Remove cache entries for the provided tag identifiers."""
    pending = sorted({tag for tag in tags if tag})
    if not pending or not cache_enabled():
        return
    try:
        redis = await get_redis_client()
    except Exception as exc:  # noqa: BLE001
        logger.warning("redis unavailable, cannot invalidate tags: %s", exc)
        return
    for tag in pending:
        await _drop_tag(redis, tag)


def derive_tags(path: str, user_id: str | None) -> frozenset[str]:
    """Compute the cache tags of a GET response for the given caller."""
    segments = [segment for segment in path.strip("/").split("/") if segment]
    if segments and segments[0] == "v1":
        segments = segments[1:]
    if not segments:
        return frozenset({"root"})
    if user_id is None:
        return frozenset({f"path:{path}"})

    head = segments[0]
    if head == "series":
        if len(segments) == 1:
            return frozenset({series_list_tag(user_id)})
        # detail and per-series stats render the same entity
        return frozenset({series_tag(user_id, segments[1])})
    if head == "stats":
        return frozenset({stats_tag(user_id)})
    if head == "volumes":
        return frozenset({volumes_tag(user_id)})
    if head == "me":
        return frozenset({profile_tag(user_id)})
    return frozenset({f"path:{path}"})


def cache_enabled() -> bool:
    raw = os.environ.get(CACHE_ENABLED_ENV_VAR)
    if raw is None:
        return True
    return raw.strip().lower() not in _FALSEY


def _cache_ttl() -> int:
    raw = os.environ.get(CACHE_TTL_ENV_VAR)
    if not raw:
        return DEFAULT_CACHE_TTL
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_CACHE_TTL
    return max(value, 1)


def _cache_key(request: Request, user_id: str | None) -> str:
    descriptor = json.dumps(
        {
            "path": request.url.path,
            "query": request.url.query,
            "accept": request.headers.get("accept"),
            "user": user_id,
        },
        separators=(",", ":"),
        sort_keys=True,
    ).encode()
    return RESPONSE_KEY_PREFIX + hashlib.sha256(descriptor).hexdigest()


class RedisResponseCacheMiddleware(BaseHTTPMiddleware):
    """Serve repeated GETs from Redis, per caller; everything else passes through."""

    SAFE_METHODS: set[str] = {"GET"}

    def __init__(
        self,
        app,
        *,
        redis_factory: Callable[[], Awaitable[Redis]] = get_redis_client,
        cache_ttl_seconds: int | None = None,
    ) -> None:
        super().__init__(app)
        self._redis_factory = redis_factory
        self._ttl_override = cache_ttl_seconds

    async def dispatch(self, request: Request, call_next):
        if request.method.upper() not in self.SAFE_METHODS or not cache_enabled():
            return await call_next(request)
        try:
            redis = await self._redis_factory()
        except Exception as exc:  # noqa: BLE001
            logger.warning("redis unavailable, skipping cache: %s", exc)
            return await call_next(request)

        user_id = request.headers.get(USER_ID_HEADER) or None
        cache_key = _cache_key(request, user_id)
        cached = await self._lookup(redis, cache_key)
        if cached is not None:
            logger.info("cache hit for %s %s", request.method, request.url.path)
            return cached.to_response()

        response = await call_next(request)
        body = b"".join([chunk async for chunk in response.body_iterator])
        if response.status_code < 400:
            entry = CachedResponse(
                status_code=response.status_code,
                body=body,
                media_type=response.media_type,
                headers={
                    key: value
                    for key, value in response.headers.items()
                    if key.lower() not in _SKIP_HEADERS
                },
            )
            tags = derive_tags(request.url.path, user_id)
            await self._store(redis, cache_key, entry, tags)
        response.headers["x-cache"] = "miss"
        response.body_iterator = iterate_in_threadpool(iter([body]))
        return response

    async def _lookup(self, redis: Redis, cache_key: str) -> CachedResponse | None:
        try:
            raw = await redis.get(cache_key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("failed to read cache: %s", exc)
            return None
        if not raw:
            return None
        try:
            return CachedResponse.loads(raw)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("dropping unreadable cache entry %s: %s", cache_key, exc)
            try:
                await redis.delete(cache_key)
            except Exception as delete_exc:  # noqa: BLE001
                logger.warning("failed to drop cache entry %s: %s", cache_key, delete_exc)
            return None

    async def _store(
        self,
        redis: Redis,
        cache_key: str,
        entry: CachedResponse,
        tags: Iterable[str],
    ) -> None:
        ttl = self._ttl_override or _cache_ttl()
        try:
            await redis.setex(cache_key, ttl, entry.dumps())
            pipe = redis.pipeline()
            for tag in tags:
                pipe.sadd(TAG_KEY_PREFIX + tag, cache_key)
                pipe.expire(TAG_KEY_PREFIX + tag, ttl)
            await pipe.execute()
        except Exception as exc:  # noqa: BLE001
            logger.warning("failed to cache response: %s", exc)
            return
        logger.debug("cached %s tags=%s ttl=%s", cache_key, sorted(tags), ttl)


async def _drop_tag(redis: Redis, tag: str, *, attempts: int = 3) -> None:
    """Delete every response registered under ``tag``, then the tag set itself."""
    key = TAG_KEY_PREFIX + tag
    for attempt in range(1, attempts + 1):
        try:
            members = await redis.smembers(key)
            await redis.delete(*members, key)
        except asyncio.CancelledError:
            logger.warning("tag invalidation cancelled for %s", tag)
            raise
        except Exception as exc:  # noqa: BLE001
            if attempt == attempts:
                logger.warning("failed to invalidate tag %s: %s", tag, exc)
                return
            await asyncio.sleep(0.05 * attempt)
        else:
            logger.info("invalidated tag %s (%d keys)", tag, len(members))
            return


__all__ = [
    "CachedResponse",
    "RedisResponseCacheMiddleware",
    "cache_enabled",
    "close_redis_client",
    "derive_tags",
    "get_redis_client",
    "invalidate_event",
    "invalidate_tags",
]
