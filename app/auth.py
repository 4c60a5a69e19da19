"""Caller identity for the ledger API.

The service sits behind an authenticating reverse proxy which forwards the
signed-in user in the headers below. They are never read from query strings
or bodies. The first request from a new identity creates its user row.
"""

from __future__ import annotations

import logging

import aiosqlite
from fastapi import Depends, Request

from app import schemas, store
from app.db import get_connection
from app.errors import Unauthenticated
from app.ledger import utcnow

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-Auth-User-Id"
USER_EMAIL_HEADER = "X-Auth-User-Email"
USER_NAME_HEADER = "X-Auth-User-Name"
USER_AVATAR_HEADER = "X-Auth-User-Avatar"


def caller_id(request: Request) -> str | None:
    """Return the forwarded user id, if any."""
    value = request.headers.get(USER_ID_HEADER, "").strip()
    return value or None


async def require_user(
    request: Request,
    conn: aiosqlite.Connection = Depends(get_connection),
) -> schemas.User:
    """FastAPI dependency resolving (and lazily creating) the calling user."""
    user_id = caller_id(request)
    if not user_id:
        raise Unauthenticated("Unauthorized")

    email = request.headers.get(USER_EMAIL_HEADER, "").strip() or None
    name = request.headers.get(USER_NAME_HEADER, "").strip() or None
    avatar_url = request.headers.get(USER_AVATAR_HEADER, "").strip() or None

    row = await store.ensure_user(
        conn,
        user_id=user_id,
        email=email,
        name=name,
        avatar_url=avatar_url,
        now=utcnow(),
    )
    await conn.commit()
    if row is None:
        # Unknown identity and nothing to create it from.
        logger.warning("rejecting unknown user %s without an email", user_id)
        raise Unauthenticated("Unauthorized")
    return store.row_to_model(schemas.User, row)
