"""Bearer token authentication for the task endpoints."""

import secrets

from fastapi import Header, HTTPException

from .config import get_settings


async def verify_worker_token(authorization: str | None = Header(default=None)) -> None:
    """Validate the bearer token sent by the scheduler. Missing and wrong tokens both get 401."""
    scheme, _, token = (authorization or "").partition(" ")
    expected = get_settings().WORKER_API_KEY
    if scheme != "Bearer" or not token or not secrets.compare_digest(token, expected):
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
