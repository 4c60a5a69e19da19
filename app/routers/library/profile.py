"""Profile of the signed-in user."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app import schemas
from app.auth import require_user

router = APIRouter()


@router.get("/me", response_model=schemas.User)
async def get_profile(user: schemas.User = Depends(require_user)) -> schemas.User:
    """Return the caller, registering them on first sight."""
    return user
