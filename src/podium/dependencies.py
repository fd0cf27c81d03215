"""Shared FastAPI dependencies."""

from fastapi import Header, HTTPException

from podium.database import get_session as _get_session
from podium.redis_client import get_publisher

get_db = _get_session


async def get_publisher_dep() -> object:
    """Redis client for progression events, or None when Redis is not set up."""
    return get_publisher()


async def get_current_user_id(x_user_id: int | None = Header(default=None)) -> int:
    """Resolve the caller from the X-User-Id header set by the upstream gateway."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


async def get_optional_user_id(x_user_id: int | None = Header(default=None)) -> int | None:
    """Same as get_current_user_id but anonymous callers are allowed."""
    return x_user_id
