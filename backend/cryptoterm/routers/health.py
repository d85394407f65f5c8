"""Health check router."""

from datetime import datetime, timezone

from fastapi import APIRouter

from .. import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "cryptoterm",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
