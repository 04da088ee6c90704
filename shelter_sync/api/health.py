"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime, timezone
from shelter_sync.config import get_settings
from shelter_sync import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__
    }


@router.get("/")
async def root():
    return {"message": f"{settings.app_name} is running", "version": __version__}
