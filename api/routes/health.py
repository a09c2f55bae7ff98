"""Health check endpoints."""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.dependencies import get_settings
from core import __version__
from core.config import AppSettings
from core.observability.metrics import get_metrics


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    store_backend: str
    metrics: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: AppSettings = Depends(get_settings)) -> HealthResponse:
    """Liveness plus the in-process metrics summary."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
        version=__version__,
        store_backend=settings.store_backend,
        metrics=get_metrics().get_summary(),
    )
