"""Error taxonomy for the ledger API and the FastAPI handlers that render it."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "ledger_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class Unauthenticated(LedgerError):
    """No caller identity could be resolved."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"


class NotFoundOrForbidden(LedgerError):
    """The entity is missing or belongs to someone else; callers cannot tell which."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ValidationFailed(LedgerError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_failed"


class Conflict(LedgerError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class UpstreamUnavailable(LedgerError):
    """The metadata catalog failed; callers degrade instead of propagating."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream_unavailable"


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    logger.info(
        "%s %s failed with %s: %s",
        request.method,
        request.url.path,
        exc.code,
        exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=ValidationFailed.status_code,
        content={
            "detail": "request validation failed",
            "code": ValidationFailed.code,
            "errors": jsonable_encoder(exc.errors()),
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install handlers so every failure renders as ``{"detail", "code"}``."""
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)


__all__ = [
    "Conflict",
    "LedgerError",
    "NotFoundOrForbidden",
    "Unauthenticated",
    "UpstreamUnavailable",
    "ValidationFailed",
    "register_error_handlers",
]
