"""Health check endpoint."""

from typing import Any

from fastapi import APIRouter

from ..config import settings
from ..services.completion import build_default_tiers

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Return service health status and the configured completion tiers."""
    tiers = [tier.name for tier in build_default_tiers(settings)]
    return {
        "status": "healthy" if tiers else "degraded",
        "service": settings.service_name,
        "environment": settings.environment,
        "completion_tiers": tiers,
    }
