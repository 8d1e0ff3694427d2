"""Health check endpoints."""

from fastapi import APIRouter, Depends

from relay_depository import __version__
from relay_depository.api.dependencies import get_depository
from relay_depository.config import get_settings
from relay_depository.depository import RelayDepository

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "relay-depository"}


@router.get("/health/detailed")
async def detailed_health(depository: RelayDepository = Depends(get_depository)):
    """Detailed health check with configuration and deployment state."""
    settings = get_settings()
    config = await depository.get_config()
    return {
        "status": "healthy",
        "service": "relay-depository",
        "version": __version__,
        "initialized": config is not None,
        "config": settings.get_safe_dict(),
    }
