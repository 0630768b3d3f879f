"""
Watchlist Service.

Tracks symbols per user independent of holdings. Prices are never stored on
entries; refresh_quotes joins entries with a fresh quote mapping.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Mapping, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.database import AsyncSessionLocal
from folio.core.errors import DuplicateEntryError, NotFoundError
from folio.models.watchlist_entry import WatchlistEntry
from folio.services.catalog_service import CatalogService, normalize_symbol, validate_asset_type
from folio.services.market_data import PriceQuote

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
CENTS = Decimal("0.01")

QUOTE_OK = "ok"
QUOTE_MISSING = "missing"


@dataclass
class WatchlistQuote:
    """An entry joined with its latest quote."""
    id: int
    symbol: str
    name: Optional[str]
    asset_type: str
    notification_enabled: bool
    price: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    as_of: Optional[object] = None
    quote_status: str = QUOTE_MISSING


def change_percent(quote: PriceQuote) -> Optional[Decimal]:
    if quote.previous_close is None or quote.previous_close == 0:
        return None
    change = (quote.price - quote.previous_close) / abs(quote.previous_close) * HUNDRED
    return change.quantize(CENTS, rounding=ROUND_HALF_UP)


def refresh_quotes(
    entries: Iterable[WatchlistEntry],
    price_quotes: Mapping[str, PriceQuote],
) -> List[WatchlistQuote]:
    """Join entries with quotes. Pure: entries are not modified."""
    refreshed = []
    for entry in entries:
        item = WatchlistQuote(
            id=entry.id,
            symbol=entry.symbol,
            name=entry.name,
            asset_type=entry.asset_type,
            notification_enabled=entry.notification_enabled,
        )
        quote = price_quotes.get(entry.symbol)
        if quote is not None:
            item.price = quote.price
            item.change_percent = change_percent(quote)
            item.as_of = quote.as_of
            item.quote_status = QUOTE_OK
        refreshed.append(item)
    return refreshed


class WatchlistService:
    """Add, remove, list and toggle notifications for watched symbols."""

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session

    async def add(
        self,
        user_id: str,
        symbol: str,
        asset_type: str,
        name: Optional[str] = None,
        notification_enabled: bool = True,
    ) -> WatchlistEntry:
        symbol = normalize_symbol(symbol)
        asset_type = validate_asset_type(asset_type)
        name = (name or "").strip() or None

        async with self._get_session() as session:
            existing = await session.execute(
                select(WatchlistEntry.id).where(
                    WatchlistEntry.user_id == user_id, WatchlistEntry.symbol == symbol
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise DuplicateEntryError(f"{symbol} is already in the watchlist", symbol=symbol)

            entry = WatchlistEntry(
                user_id=user_id,
                symbol=symbol,
                name=name,
                asset_type=asset_type,
                notification_enabled=notification_enabled,
            )
            session.add(entry)
            try:
                await session.flush()
            except IntegrityError:
                # Lost a race with a concurrent add of the same symbol
                raise DuplicateEntryError(f"{symbol} is already in the watchlist", symbol=symbol) from None

            if name:
                await CatalogService(session=session).upsert(symbol, name, asset_type)
            await session.refresh(entry)

        logger.info(f"Watchlist add {symbol} for user {user_id}")
        return entry

    async def remove(self, user_id: str, entry_id: int) -> None:
        async with self._get_session() as session:
            entry = await self._load(session, user_id, entry_id)
            await session.delete(entry)
            await session.flush()
        logger.info(f"Watchlist remove {entry_id} for user {user_id}")

    async def toggle_notification(self, user_id: str, entry_id: int) -> WatchlistEntry:
        async with self._get_session() as session:
            entry = await self._load(session, user_id, entry_id)
            entry.notification_enabled = not entry.notification_enabled
            await session.flush()
            await session.refresh(entry)
            return entry

    async def list_entries(
        self,
        user_id: str,
        asset_type: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[WatchlistEntry]:
        """Entries in insertion order, optionally filtered by type and a search term."""
        async with self._get_session() as session:
            stmt = select(WatchlistEntry).where(WatchlistEntry.user_id == user_id)
            if asset_type:
                stmt = stmt.where(WatchlistEntry.asset_type == validate_asset_type(asset_type))
            term = (query or "").strip().lower()
            if term:
                pattern = f"%{term}%"
                stmt = stmt.where(
                    or_(
                        func.lower(WatchlistEntry.symbol).like(pattern),
                        func.lower(func.coalesce(WatchlistEntry.name, "")).like(pattern),
                    )
                )
            result = await session.execute(stmt.order_by(WatchlistEntry.id.asc()))
            return list(result.scalars().all())

    def refresh_quotes(
        self,
        entries: Iterable[WatchlistEntry],
        price_quotes: Mapping[str, PriceQuote],
    ) -> List[WatchlistQuote]:
        return refresh_quotes(entries, price_quotes)

    async def _load(self, session: AsyncSession, user_id: str, entry_id: int) -> WatchlistEntry:
        result = await session.execute(
            select(WatchlistEntry).where(
                WatchlistEntry.id == entry_id, WatchlistEntry.user_id == user_id
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError(f"Watchlist entry {entry_id} not found", entry_id=entry_id)
        return entry

    @asynccontextmanager
    async def _get_session(self):
        if self.session is not None:
            yield self.session
        else:
            async with AsyncSessionLocal() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
