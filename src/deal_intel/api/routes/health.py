"""Health check endpoint."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness probe. Upstream credentials are checked per run, not here."""
    return {"status": "ok"}
