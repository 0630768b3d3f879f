"""
Goals API Router.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.database import get_db
from folio.core.errors import MissingPriceError
from folio.api.deps import get_price_feed
from folio.services.goal_service import GoalService
from folio.services.ledger_service import LedgerService
from folio.services.price_feed import PriceFeed
from folio.services.valuation_engine import ValuationEngine

router = APIRouter()


# Schemas

class GoalBase(BaseModel):
    name: str = Field(..., max_length=200)
    description: Optional[str] = None
    target_amount: Decimal
    deadline: date
    priority: str = "medium"
    goal_type: str = "other"


class GoalCreate(GoalBase):
    current_amount: Decimal = Decimal("0")
    linked_symbol: Optional[str] = Field(None, max_length=20)


class GoalUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    target_amount: Optional[Decimal] = None
    current_amount: Optional[Decimal] = None
    deadline: Optional[date] = None
    priority: Optional[str] = None
    goal_type: Optional[str] = None


class Contribution(BaseModel):
    amount: Decimal


class GoalLink(BaseModel):
    symbol: Optional[str] = Field(None, max_length=20)


class GoalResponse(GoalBase):
    id: int
    user_id: str
    current_amount: Decimal
    linked_symbol: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class GoalProjectionResponse(BaseModel):
    goal_id: Optional[int]
    current_amount: Decimal
    months_remaining: int
    amount_remaining: Decimal
    recommended_monthly_contribution: Optional[Decimal]
    progress_percent: Decimal
    status: str
    time_remaining: str

    class Config:
        from_attributes = True


# Endpoints

@router.get("", response_model=list[GoalResponse])
async def list_goals(user_id: str, db: AsyncSession = Depends(get_db)):
    service = GoalService(session=db)
    return await service.list_goals(user_id)


@router.post("", response_model=GoalResponse, status_code=status.HTTP_201_CREATED)
async def create_goal(user_id: str, payload: GoalCreate, db: AsyncSession = Depends(get_db)):
    service = GoalService(session=db)
    return await service.create(user_id=user_id, **payload.model_dump())


@router.get("/{goal_id}", response_model=GoalResponse)
async def get_goal(user_id: str, goal_id: int, db: AsyncSession = Depends(get_db)):
    service = GoalService(session=db)
    return await service.get(user_id, goal_id)


@router.patch("/{goal_id}", response_model=GoalResponse)
async def update_goal(
    user_id: str,
    goal_id: int,
    payload: GoalUpdate,
    db: AsyncSession = Depends(get_db),
):
    service = GoalService(session=db)
    return await service.update(user_id, goal_id, **payload.model_dump(exclude_unset=True))


@router.delete("/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_goal(user_id: str, goal_id: int, db: AsyncSession = Depends(get_db)):
    service = GoalService(session=db)
    await service.delete(user_id, goal_id)


@router.post("/{goal_id}/contributions", response_model=GoalResponse)
async def contribute(
    user_id: str,
    goal_id: int,
    payload: Contribution,
    db: AsyncSession = Depends(get_db),
):
    """Add money to a goal's current amount."""
    service = GoalService(session=db)
    return await service.contribute(user_id, goal_id, payload.amount)


@router.put("/{goal_id}/link", response_model=GoalResponse)
async def link_goal(
    user_id: str,
    goal_id: int,
    payload: GoalLink,
    db: AsyncSession = Depends(get_db),
):
    """Track a holding's market value as the goal's progress. A null symbol unlinks."""
    service = GoalService(session=db)
    return await service.link_holding(user_id, goal_id, payload.symbol)


@router.get("/{goal_id}/projection", response_model=GoalProjectionResponse)
async def project_goal(
    user_id: str,
    goal_id: int,
    db: AsyncSession = Depends(get_db),
    feed: PriceFeed = Depends(get_price_feed),
):
    """Months left, amount left and the monthly contribution needed to get there."""
    service = GoalService(session=db)
    goal = await service.get(user_id, goal_id)

    snapshot = None
    if goal.linked_symbol:
        engine = ValuationEngine(ledger=LedgerService(session=db))
        try:
            snapshot = await engine.value_with_feed(user_id, feed)
        except MissingPriceError as e:
            # Other symbols failing to price does not block this goal
            if goal.linked_symbol in e.symbols:
                raise
            snapshot = e.partial

    return service.project(goal, snapshot)
