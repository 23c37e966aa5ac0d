"""User statistics endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from loguru import logger

from arena.api.dependencies import get_prediction_service
from arena.engine.errors import UserRegistryError
from arena.engine.service import PredictionService


router = APIRouter(
    prefix="/api/users",
    tags=["users"],
)


class UserStatsResponse(BaseModel):
    """Accumulated statistics for one user."""

    user_id: str = Field(..., description="User id")
    registered_at: str = Field(..., description="First interaction time")
    prediction_count: int = Field(..., description="Rounds entered")
    win_count: int = Field(..., description="Winning predictions")
    cumulative_reward: float = Field(..., description="Total symbolic reward credited")
    accuracy: float = Field(..., description="Win rate in percent")
    open_rounds: List[str] = Field(default_factory=list, description="Active rounds the user is in")


@router.get("/{user_id}", response_model=UserStatsResponse)
def get_user(
    user_id: str,
    service: PredictionService = Depends(get_prediction_service),
) -> UserStatsResponse:
    """
    Get a user's statistics.

    Raises:
        HTTPException: 404 if the user has never interacted,
            503 if the user store is unavailable
    """
    try:
        record = service.user_stats(user_id)
    except UserRegistryError as e:
        logger.error(f"User lookup failed for {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User statistics temporarily unavailable",
        )

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found",
        )

    return UserStatsResponse(
        **record.to_dict(),
        open_rounds=[r.id for r in service.open_predictions_for(user_id)],
    )
