"""
Watchlist API Router.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.database import get_db
from folio.api.deps import get_price_feed
from folio.services.price_feed import PriceFeed
from folio.services.watchlist_service import WatchlistService

router = APIRouter()


# Schemas

class WatchlistAdd(BaseModel):
    symbol: str = Field(..., max_length=20)
    name: Optional[str] = Field(None, max_length=200)
    asset_type: str
    notification_enabled: bool = True


class WatchlistEntryResponse(BaseModel):
    id: int
    symbol: str
    name: Optional[str]
    asset_type: str
    notification_enabled: bool
    created_at: datetime

    class Config:
        from_attributes = True


class WatchlistQuoteResponse(BaseModel):
    id: int
    symbol: str
    name: Optional[str]
    asset_type: str
    notification_enabled: bool
    price: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    as_of: Optional[datetime] = None
    quote_status: str

    class Config:
        from_attributes = True


# Endpoints

@router.get("", response_model=list[WatchlistEntryResponse])
async def list_watchlist(
    user_id: str,
    asset_type: Optional[str] = None,
    q: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Watched symbols, optionally filtered by asset type and a symbol/name search."""
    service = WatchlistService(session=db)
    return await service.list_entries(user_id, asset_type=asset_type, query=q)


@router.post("", response_model=WatchlistEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_to_watchlist(user_id: str, payload: WatchlistAdd, db: AsyncSession = Depends(get_db)):
    service = WatchlistService(session=db)
    return await service.add(user_id=user_id, **payload.model_dump())


@router.get("/quotes", response_model=list[WatchlistQuoteResponse])
async def watchlist_quotes(
    user_id: str,
    asset_type: Optional[str] = None,
    q: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    feed: PriceFeed = Depends(get_price_feed),
):
    """Entries with their latest quotes. Unpriced symbols come back with quote_status 'missing'."""
    service = WatchlistService(session=db)
    entries = await service.list_entries(user_id, asset_type=asset_type, query=q)
    batch = await feed.get_quotes([e.symbol for e in entries])
    return service.refresh_quotes(entries, batch.quotes)


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_from_watchlist(user_id: str, entry_id: int, db: AsyncSession = Depends(get_db)):
    service = WatchlistService(session=db)
    await service.remove(user_id, entry_id)


@router.post("/{entry_id}/notification", response_model=WatchlistEntryResponse)
async def toggle_notification(user_id: str, entry_id: int, db: AsyncSession = Depends(get_db)):
    service = WatchlistService(session=db)
    return await service.toggle_notification(user_id, entry_id)
