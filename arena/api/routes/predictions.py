"""Prediction endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from loguru import logger

from arena.api.dependencies import get_prediction_service
from arena.engine.errors import (
    InvalidDirectionError,
    NoActiveRoundError,
    RoundNotActiveError,
    UnknownAssetError,
    UserInputError,
)
from arena.engine.service import PredictionService


router = APIRouter(
    prefix="/api/predictions",
    tags=["predictions"],
)


class PredictionRequest(BaseModel):
    """Prediction submission."""

    user_id: str = Field(..., description="Opaque user id", min_length=1, max_length=64)
    asset: str = Field(..., description="Asset symbol, e.g. BTC", min_length=1, max_length=16)
    direction: str = Field(..., description="up or down")


class PredictionReceiptResponse(BaseModel):
    """Accepted prediction."""

    round_id: str = Field(..., description="Round the prediction was recorded in")
    symbol: str = Field(..., description="Asset symbol")
    user_id: str = Field(..., description="User id")
    direction: str = Field(..., description="up or down")
    start_price: float = Field(..., description="Round start price")
    end_time: str = Field(..., description="Round end time")
    submitted_at: str = Field(..., description="Submission time")
    replaced: bool = Field(..., description="True if an earlier prediction in this round was replaced")
    seconds_left: float = Field(..., description="Seconds until the round ends")


def status_for(error: UserInputError) -> int:
    """HTTP status for a rejected user request."""
    if isinstance(error, InvalidDirectionError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, UnknownAssetError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, (NoActiveRoundError, RoundNotActiveError)):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


@router.post("", response_model=PredictionReceiptResponse, status_code=status.HTTP_201_CREATED)
def submit_prediction(
    request: PredictionRequest,
    service: PredictionService = Depends(get_prediction_service),
) -> PredictionReceiptResponse:
    """
    Submit (or replace) a prediction for the active round of an asset.

    Raises:
        HTTPException: 400 invalid direction, 404 unknown asset,
            409 no open round
    """
    try:
        receipt = service.submit_prediction(request.user_id, request.asset, request.direction)
    except UserInputError as e:
        logger.debug(f"Prediction rejected for {request.user_id}: {e}")
        raise HTTPException(status_code=status_for(e), detail=str(e))

    return PredictionReceiptResponse(**receipt.to_dict())
