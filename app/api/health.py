from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..container import ServiceContainer
from .deps import get_container

router = APIRouter()

SERVICE_NAME = "vyra-backend"
SERVICE_VERSION = "0.1.0"


@router.get("/health")
async def health_check(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    """Health check endpoint that verifies both chain endpoints"""
    chains = await container.health()

    all_healthy = all(status["status"] == "healthy" for status in chains.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "chains": chains,
    }
