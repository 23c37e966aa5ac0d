"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from arena.api.dependencies import get_prediction_service, get_scheduler
from arena.engine.service import PredictionService
from arena.scheduler import RoundScheduler


router = APIRouter(
    prefix="/api/health",
    tags=["health"],
)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Service status")
    timestamp: str = Field(..., description="Current timestamp")
    version: str = Field(default="1.0.0", description="API version")
    engine: Dict[str, Any] = Field(..., description="Round, price and user statistics")
    scheduler: Dict[str, Any] = Field(..., description="Scheduler status and job statistics")


@router.get("", response_model=HealthResponse)
@router.get("/", response_model=HealthResponse)
def health_check(
    service: PredictionService = Depends(get_prediction_service),
    scheduler: Optional[RoundScheduler] = Depends(get_scheduler),
) -> HealthResponse:
    """
    Health check endpoint.

    Returns service status and component health information.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version="1.0.0",
        engine=service.engine_stats(),
        scheduler=scheduler.get_status() if scheduler else {"running": False},
    )


@router.get("/ready", response_model=Dict[str, Any])
def readiness_check(
    service: PredictionService = Depends(get_prediction_service),
) -> Dict[str, Any]:
    """
    Readiness check endpoint.

    Ready once at least one price snapshot is cached.
    """
    prices = service.prices()

    return {
        "ready": len(prices) > 0,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "details": {
            "cached_prices": len(prices),
            "tracked_assets": len(service.assets),
            "active_rounds": len(service.active_rounds()),
        },
    }


@router.get("/live", response_model=Dict[str, str])
async def liveness_check() -> Dict[str, str]:
    """
    Liveness check endpoint.

    Simple endpoint to verify the service is running.
    """
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
