"""
Portfolio API Router.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_serializer
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.database import get_db
from folio.api.deps import get_price_feed
from folio.services.aggregation_service import AggregationService
from folio.services.catalog_service import validate_asset_type
from folio.services.ledger_service import LedgerService
from folio.services.price_feed import PriceFeed
from folio.services.valuation_engine import ValuationEngine, filter_by_asset_type

router = APIRouter()


def round_to(value: Optional[Decimal], places: str) -> Optional[Decimal]:
    if value is None:
        return None
    return value.quantize(Decimal(places), rounding=ROUND_HALF_UP)

# ---------- Pydantic Schemas ----------

class HoldingSchema(BaseModel):
    symbol: str
    name: Optional[str]
    asset_type: str
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    cost_basis: Decimal
    market_value: Decimal
    unrealized_gain: Decimal
    unrealized_gain_percent: Decimal
    allocation_percent: Decimal

    class Config:
        from_attributes = True

    @field_serializer("average_cost", "current_price")
    def _price(self, value: Decimal) -> Decimal:
        return round_to(value, "0.0001")

    @field_serializer(
        "cost_basis", "market_value", "unrealized_gain", "unrealized_gain_percent", "allocation_percent"
    )
    def _money(self, value: Decimal) -> Decimal:
        return round_to(value, "0.01")


class AllocationSchema(BaseModel):
    asset_type: str
    market_value: Decimal
    percent: Decimal

    class Config:
        from_attributes = True

    @field_serializer("market_value", "percent")
    def _money(self, value: Decimal) -> Decimal:
        return round_to(value, "0.01")


class PortfolioSummarySchema(BaseModel):
    total_invested: Decimal
    total_current: Decimal
    total_return: Decimal
    total_return_percent: Decimal
    holdings: list[HoldingSchema]
    allocation: list[AllocationSchema]

    class Config:
        from_attributes = True

    @field_serializer("total_invested", "total_current", "total_return", "total_return_percent")
    def _money(self, value: Decimal) -> Decimal:
        return round_to(value, "0.01")


# ---------- Endpoints ----------

@router.get("/holdings", response_model=list[HoldingSchema])
async def get_holdings(
    user_id: str,
    asset_type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    feed: PriceFeed = Depends(get_price_feed),
):
    """Current holdings valued at the latest quotes, largest first."""
    engine = ValuationEngine(ledger=LedgerService(session=db))
    holdings = await engine.value_with_feed(user_id, feed)
    if asset_type:
        holdings = filter_by_asset_type(holdings, validate_asset_type(asset_type))
    return holdings


@router.get("/summary", response_model=PortfolioSummarySchema)
async def get_portfolio_summary(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    feed: PriceFeed = Depends(get_price_feed),
):
    """Invested, current value, returns and allocation by asset type."""
    service = AggregationService(feed=feed, session=db)
    return await service.get_portfolio_summary(user_id)
