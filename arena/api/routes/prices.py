"""Price endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from arena.api.dependencies import get_prediction_service
from arena.engine.models import PriceSnapshot
from arena.engine.service import PredictionService


router = APIRouter(
    prefix="/api/prices",
    tags=["prices"],
)


class PriceResponse(BaseModel):
    """Latest cached price for one asset."""

    symbol: str = Field(..., description="Asset symbol")
    name: str = Field(..., description="Asset name")
    price: float = Field(..., description="Current price (USD)")
    change_24h_pct: float = Field(..., description="24h price change in percent")
    market_cap: float = Field(..., description="Market capitalization (USD)")
    volume_24h: float = Field(..., description="24h traded volume (USD)")
    captured_at: str = Field(..., description="When the price was observed")


class PriceListResponse(BaseModel):
    """All cached prices."""

    prices: List[PriceResponse] = Field(..., description="Prices ordered by symbol")
    total: int = Field(..., description="Number of cached prices")


def _to_response(snapshot: PriceSnapshot, service: PredictionService) -> PriceResponse:
    asset = service.assets.get(snapshot.symbol)
    return PriceResponse(
        name=asset.name if asset else snapshot.symbol,
        **snapshot.to_dict(),
    )


@router.get("", response_model=PriceListResponse)
def list_prices(
    service: PredictionService = Depends(get_prediction_service),
) -> PriceListResponse:
    """Get the latest cached price of every tracked asset."""
    prices = [_to_response(p, service) for p in service.prices()]
    return PriceListResponse(prices=prices, total=len(prices))


@router.get("/{symbol}", response_model=PriceResponse)
def get_price(
    symbol: str,
    service: PredictionService = Depends(get_prediction_service),
) -> PriceResponse:
    """
    Get the latest cached price of one asset.

    Raises:
        HTTPException: 404 if no price is cached for the symbol
    """
    snapshot = service.price(symbol)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No price available for {symbol.upper()}",
        )
    return _to_response(snapshot, service)
