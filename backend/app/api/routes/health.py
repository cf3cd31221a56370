"""
Health Check API Routes

Provides health and metrics endpoints for monitoring the execution service.
"""

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.core.config import settings
from app.core.observability import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.get("/health", summary="Service health")
async def get_health_status(request: Request) -> dict:
    """Liveness plus the configured collaborators."""
    facade = getattr(request.app.state, "execution_facade", None)
    return {
        "status": "healthy" if facade is not None else "starting",
        "environment": settings.ENVIRONMENT,
        "store_backend": settings.STORE_BACKEND,
    }


@router.get("/metrics", summary="Prometheus metrics", include_in_schema=False)
async def get_metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
