"""
Aggregation Service.

Read-only projections for the presentation layer, assembled from the ledger,
valuation, goals and watchlist. Nothing here writes.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.config import settings
from folio.models.base import utcnow
from folio.models.goal import Goal
from folio.services.goal_service import GoalProjection, GoalService, project_goal, top_goals
from folio.services.ledger_service import LedgerService
from folio.services.price_feed import PriceFeed
from folio.services.valuation_engine import (
    ZERO,
    AssetAllocation,
    HoldingValuation,
    ValuationEngine,
    compute_holdings,
    portfolio_totals,
    replay_positions,
)
from folio.services.watchlist_service import WatchlistQuote, WatchlistService, refresh_quotes

logger = logging.getLogger(__name__)


@dataclass
class PortfolioSummary:
    total_invested: Decimal
    total_current: Decimal
    total_return: Decimal
    total_return_percent: Decimal
    holdings: List[HoldingValuation] = field(default_factory=list)
    allocation: List[AssetAllocation] = field(default_factory=list)


@dataclass
class Dashboard:
    summary: PortfolioSummary
    goals: List[Tuple[Goal, GoalProjection]] = field(default_factory=list)
    watchlist: List[WatchlistQuote] = field(default_factory=list)
    as_of: Optional[datetime] = None


def summarize(holdings: List[HoldingValuation]) -> PortfolioSummary:
    totals = portfolio_totals(holdings)
    return PortfolioSummary(
        total_invested=totals.total_invested,
        total_current=totals.total_current,
        total_return=totals.total_return,
        total_return_percent=totals.total_return_percent,
        holdings=holdings,
        allocation=totals.by_asset_type,
    )


class AggregationService:
    """Portfolio summary and dashboard reads."""

    def __init__(
        self,
        feed: PriceFeed,
        session: Optional[AsyncSession] = None,
        ledger: Optional[LedgerService] = None,
    ):
        self.feed = feed
        self.ledger = ledger or LedgerService(session=session)
        self.valuation = ValuationEngine(ledger=self.ledger)
        self.goals = GoalService(session=session)
        self.watchlist = WatchlistService(session=session)

    async def get_portfolio_summary(self, user_id: str, now: Optional[datetime] = None) -> PortfolioSummary:
        """
        Totals, priced holdings and per-asset-type allocation.

        Propagates MissingPriceError / StaleQuoteError (with the partial
        valuation attached) when any held symbol cannot be priced.
        """
        holdings = await self.valuation.value_with_feed(user_id, self.feed, now=now)
        return summarize(holdings)

    async def get_dashboard(
        self,
        user_id: str,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Dashboard:
        now = now or utcnow()
        today = today or now.date()

        transactions = await self.ledger.load_ledger(user_id)
        held = [s for s, p in replay_positions(transactions).items() if p.quantity > ZERO]
        entries = await self.watchlist.list_entries(user_id)
        entries = entries[:settings.DASHBOARD_WATCHLIST_SIZE]

        # One fetch covers both holdings and watchlist
        batch = await self.feed.get_quotes([*held, *(e.symbol for e in entries)], now=now)

        holdings = compute_holdings(
            transactions,
            {**batch.stale, **batch.quotes},
            now=now,
            max_quote_age=self.valuation.max_quote_age,
        )
        summary = summarize(holdings)

        goals = top_goals(await self.goals.list_goals(user_id), settings.DASHBOARD_TOP_GOALS)
        projected = [(goal, project_goal(goal, holdings, today=today)) for goal in goals]

        return Dashboard(
            summary=summary,
            goals=projected,
            watchlist=refresh_quotes(entries, batch.quotes),
            as_of=now,
        )
