"""Health check and settings endpoints."""

from fastapi import APIRouter

from terminus import storage

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Get engine settings (retention, matching, relationships, sync, templates)."""
    return storage.get_config()


@router.patch("/settings")
async def update_settings(body: dict):
    """Update engine settings (partial merge). Applies to sessions opened afterwards."""
    return storage.update_config(body)
