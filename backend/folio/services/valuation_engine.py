"""
Valuation Engine.

Derives holdings from a user's ledger using weighted-average cost and values
them against caller-supplied quotes. The module-level functions are pure;
ValuationEngine only adds the ledger read.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Union

from folio.core.config import settings
from folio.core.errors import MissingPriceError, StaleQuoteError
from folio.models.base import utcnow
from folio.models.enums import TransactionKind
from folio.models.transaction import Transaction
from folio.services.ledger_service import REDUCING_KINDS, LedgerService
from folio.services.market_data import PriceQuote
from folio.services.price_feed import PriceFeed, is_stale

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

QuoteLike = Union[PriceQuote, Decimal, float, int, str]


@dataclass
class Position:
    """Replayed position before pricing."""
    symbol: str
    asset_type: str
    name: Optional[str] = None
    quantity: Decimal = ZERO
    average_cost: Decimal = ZERO


@dataclass
class HoldingValuation:
    """A priced holding. Derived on demand, never stored."""
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
    allocation_percent: Decimal = ZERO


@dataclass
class AssetAllocation:
    asset_type: str
    market_value: Decimal
    percent: Decimal


@dataclass
class PortfolioTotals:
    total_invested: Decimal = ZERO
    total_current: Decimal = ZERO
    total_return: Decimal = ZERO
    total_return_percent: Decimal = ZERO
    holdings_count: int = 0
    by_asset_type: List[AssetAllocation] = field(default_factory=list)


def replay_positions(transactions: Iterable[Transaction]) -> Dict[str, Position]:
    """
    Replay transactions chronologically per symbol.

    Buys move the weighted-average cost; sells and withdrawals only lower the
    quantity.
    """
    ordered = sorted(transactions, key=lambda t: (t.timestamp, t.id or 0))
    positions: Dict[str, Position] = {}

    for txn in ordered:
        qty = Decimal(str(txn.quantity))
        price = Decimal(str(txn.unit_price))
        pos = positions.get(txn.symbol)
        if pos is None:
            pos = Position(symbol=txn.symbol, asset_type=txn.asset_type)
            positions[txn.symbol] = pos

        if txn.kind == TransactionKind.BUY.value:
            new_qty = pos.quantity + qty
            pos.average_cost = (pos.quantity * pos.average_cost + qty * price) / new_qty
            pos.quantity = new_qty
            pos.asset_type = txn.asset_type
        elif txn.kind in REDUCING_KINDS:
            pos.quantity -= qty
            if pos.quantity < ZERO:
                # The ledger rejects such writes; reaching this means corrupt data
                raise ValueError(f"Negative quantity for {txn.symbol} after transaction {txn.id}")
            if pos.quantity == ZERO:
                pos.average_cost = ZERO
        else:
            raise ValueError(f"Unknown transaction kind: {txn.kind}")

        if txn.name:
            pos.name = txn.name

    return positions


def _quote_price(quote: QuoteLike) -> Decimal:
    if isinstance(quote, PriceQuote):
        return quote.price
    return quote if isinstance(quote, Decimal) else Decimal(str(quote))


def apply_allocation(holdings: List[HoldingValuation]) -> List[HoldingValuation]:
    """Set allocation_percent over the given set only."""
    total = sum((h.market_value for h in holdings), ZERO)
    for h in holdings:
        h.allocation_percent = (h.market_value / total * HUNDRED) if total > 0 else ZERO
    return holdings


def compute_holdings(
    transactions: Iterable[Transaction],
    price_quotes: Mapping[str, QuoteLike],
    now: Optional[datetime] = None,
    max_quote_age: Optional[timedelta] = None,
) -> List[HoldingValuation]:
    """
    Value every non-zero position against ``price_quotes``.

    Raises MissingPriceError (or StaleQuoteError when every failure is a
    stale PriceQuote) if any held symbol cannot be priced; the error's
    ``partial`` holds the symbols that could be valued.
    """
    now = now or utcnow()
    positions = replay_positions(transactions)

    valued: List[HoldingValuation] = []
    missing: List[str] = []
    stale: List[str] = []

    for symbol, pos in positions.items():
        if pos.quantity <= ZERO:
            continue
        quote = price_quotes.get(symbol)
        if quote is None:
            missing.append(symbol)
            continue
        if isinstance(quote, PriceQuote) and is_stale(quote, now, max_quote_age):
            stale.append(symbol)
            continue

        price = _quote_price(quote)
        cost_basis = pos.quantity * pos.average_cost
        market_value = pos.quantity * price
        gain = market_value - cost_basis
        gain_pct = (gain / cost_basis * HUNDRED) if cost_basis != 0 else ZERO

        valued.append(HoldingValuation(
            symbol=symbol,
            name=pos.name,
            asset_type=pos.asset_type,
            quantity=pos.quantity,
            average_cost=pos.average_cost,
            current_price=price,
            cost_basis=cost_basis,
            market_value=market_value,
            unrealized_gain=gain,
            unrealized_gain_percent=gain_pct,
        ))

    valued.sort(key=lambda h: (-h.market_value, h.symbol))
    apply_allocation(valued)

    if missing:
        raise MissingPriceError(missing + stale, partial=valued)
    if stale:
        raise StaleQuoteError(stale, partial=valued)
    return valued


def allocation_by_asset_type(holdings: Iterable[HoldingValuation]) -> List[AssetAllocation]:
    values: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for h in holdings:
        values[h.asset_type] += h.market_value
    total = sum(values.values(), ZERO)
    allocations = [
        AssetAllocation(
            asset_type=asset_type,
            market_value=value,
            percent=(value / total * HUNDRED) if total > 0 else ZERO,
        )
        for asset_type, value in values.items()
    ]
    allocations.sort(key=lambda a: (-a.market_value, a.asset_type))
    return allocations


def filter_by_asset_type(holdings: Iterable[HoldingValuation], asset_type: Optional[str]) -> List[HoldingValuation]:
    if not asset_type:
        return list(holdings)
    return [h for h in holdings if h.asset_type == asset_type]


def portfolio_totals(holdings: List[HoldingValuation]) -> PortfolioTotals:
    invested = sum((h.cost_basis for h in holdings), ZERO)
    current = sum((h.market_value for h in holdings), ZERO)
    total_return = current - invested
    return PortfolioTotals(
        total_invested=invested,
        total_current=current,
        total_return=total_return,
        total_return_percent=(total_return / invested * HUNDRED) if invested > 0 else ZERO,
        holdings_count=len(holdings),
        by_asset_type=allocation_by_asset_type(holdings),
    )


class ValuationEngine:
    """Ledger-backed entry point for holding valuation."""

    def __init__(self, ledger: Optional[LedgerService] = None, max_quote_age: Optional[timedelta] = None):
        self.ledger = ledger or LedgerService()
        self.max_quote_age = (
            max_quote_age if max_quote_age is not None
            else timedelta(minutes=settings.MAX_QUOTE_AGE_MINUTES)
        )

    async def compute_holdings(
        self,
        user_id: str,
        price_quotes: Mapping[str, QuoteLike],
        now: Optional[datetime] = None,
    ) -> List[HoldingValuation]:
        transactions = await self.ledger.load_ledger(user_id)
        holdings = compute_holdings(transactions, price_quotes, now=now, max_quote_age=self.max_quote_age)
        logger.debug(f"Valued {len(holdings)} holdings for user {user_id}")
        return holdings

    async def value_with_feed(
        self,
        user_id: str,
        feed: PriceFeed,
        now: Optional[datetime] = None,
    ) -> List[HoldingValuation]:
        """
        Value holdings with quotes fetched for exactly the held symbols.

        The ledger is read once so the symbols fetched and the positions
        valued come from the same snapshot.
        """
        now = now or utcnow()
        transactions = await self.ledger.load_ledger(user_id)
        positions = replay_positions(transactions)
        held = [s for s, p in positions.items() if p.quantity > ZERO]
        batch = await feed.get_quotes(held, now=now)
        quotes = {**batch.stale, **batch.quotes}
        return compute_holdings(transactions, quotes, now=now, max_quote_age=self.max_quote_age)
