"""Round endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from arena.api.dependencies import get_prediction_service
from arena.engine.service import PredictionService


router = APIRouter(
    prefix="/api/rounds",
    tags=["rounds"],
)


class RoundResponse(BaseModel):
    """Round summary. Individual predictions are not exposed."""

    id: str = Field(..., description="Round id")
    symbol: str = Field(..., description="Asset symbol")
    status: str = Field(..., description="active or resolved")
    start_price: float = Field(..., description="Price when the round opened")
    start_time: str = Field(..., description="Round start time")
    end_time: str = Field(..., description="Round end time")
    end_price: Optional[float] = Field(None, description="Price at resolution")
    resolved_at: Optional[str] = Field(None, description="Resolution time")
    total_predictions: int = Field(..., description="Number of predictions")
    up_predictions: int = Field(..., description="Predictions for UP")
    down_predictions: int = Field(..., description="Predictions for DOWN")


class RoundListResponse(BaseModel):
    """A list of rounds."""

    rounds: List[RoundResponse] = Field(..., description="Rounds in listing order")
    total: int = Field(..., description="Number of rounds listed")


@router.get("", response_model=RoundListResponse)
def list_rounds(
    service: PredictionService = Depends(get_prediction_service),
) -> RoundListResponse:
    """Get all active rounds."""
    rounds = [RoundResponse(**r.to_dict()) for r in service.active_rounds()]
    return RoundListResponse(rounds=rounds, total=len(rounds))


@router.get("/resolved", response_model=RoundListResponse)
def list_resolved_rounds(
    service: PredictionService = Depends(get_prediction_service),
) -> RoundListResponse:
    """Get recently resolved rounds, most recent first."""
    rounds = [RoundResponse(**r.to_dict()) for r in service.resolved_rounds()]
    return RoundListResponse(rounds=rounds, total=len(rounds))


@router.get("/{round_id}", response_model=RoundResponse)
def get_round(
    round_id: str,
    service: PredictionService = Depends(get_prediction_service),
) -> RoundResponse:
    """
    Get one round (active or recently resolved).

    Raises:
        HTTPException: 404 if the round is unknown or already evicted
    """
    found = service.get_round(round_id)
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Round {round_id} not found",
        )
    return RoundResponse(**found.to_dict())
