"""
Dashboard API Router.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_serializer
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.database import get_db
from folio.api.deps import get_price_feed
from folio.api.goals import GoalProjectionResponse
from folio.api.portfolio import PortfolioSummarySchema, round_to
from folio.api.watchlist import WatchlistQuoteResponse
from folio.services.aggregation_service import AggregationService
from folio.services.price_feed import PriceFeed

router = APIRouter()


class DashboardGoal(BaseModel):
    id: int
    name: str
    goal_type: str
    priority: str
    target_amount: Decimal
    deadline: str
    projection: GoalProjectionResponse

    @field_serializer("target_amount")
    def _money(self, value: Decimal) -> Decimal:
        return round_to(value, "0.01")


class DashboardResponse(BaseModel):
    summary: PortfolioSummarySchema
    goals: list[DashboardGoal]
    watchlist: list[WatchlistQuoteResponse]
    as_of: Optional[datetime]


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    feed: PriceFeed = Depends(get_price_feed),
):
    """Portfolio summary, top goals and the watchlist in one read."""
    service = AggregationService(feed=feed, session=db)
    dashboard = await service.get_dashboard(user_id)

    goals = [
        DashboardGoal(
            id=goal.id,
            name=goal.name,
            goal_type=goal.goal_type,
            priority=goal.priority,
            target_amount=goal.target_amount,
            deadline=goal.deadline.isoformat(),
            projection=GoalProjectionResponse.model_validate(projection),
        )
        for goal, projection in dashboard.goals
    ]
    return DashboardResponse(
        summary=PortfolioSummarySchema.model_validate(dashboard.summary),
        goals=goals,
        watchlist=[WatchlistQuoteResponse.model_validate(w) for w in dashboard.watchlist],
        as_of=dashboard.as_of,
    )
