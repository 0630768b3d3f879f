"""
Price Feed Service.

Fetches quotes through a MarketDataProvider with a per-symbol timeout and
stale-quote rejection. Failures are reported per symbol, never as a made-up
price, and nothing is retried here.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from folio.core.config import settings
from folio.models.base import utcnow
from folio.services.market_data import MarketDataProvider, PriceQuote, get_market_data_provider

logger = logging.getLogger(__name__)

REASON_TIMEOUT = "timeout"
REASON_UNAVAILABLE = "unavailable"
REASON_ERROR = "error"
REASON_STALE = "stale"


def is_stale(quote: PriceQuote, now: datetime, max_age: Optional[timedelta]) -> bool:
    """True when the quote is older than ``max_age`` (None disables the check)."""
    if max_age is None:
        return False
    return now - quote.as_of > max_age


@dataclass
class QuoteBatch:
    """Result of a multi-symbol fetch: usable quotes plus per-symbol failures."""
    quotes: Dict[str, PriceQuote] = field(default_factory=dict)
    missing: Dict[str, str] = field(default_factory=dict)
    # Rejected for age; kept so valuation can report them as stale, not absent
    stale: Dict[str, PriceQuote] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.missing


class PriceFeed:
    """Time-bounded, cancellable quote fetching."""

    def __init__(
        self,
        provider: Optional[MarketDataProvider] = None,
        timeout: Optional[float] = None,
        max_age: Optional[timedelta] = None,
        concurrency: Optional[int] = None,
    ):
        self.provider = provider or get_market_data_provider()
        self.timeout = timeout if timeout is not None else settings.PRICE_FETCH_TIMEOUT_SECONDS
        self.max_age = max_age if max_age is not None else timedelta(minutes=settings.MAX_QUOTE_AGE_MINUTES)
        self._concurrency = concurrency or settings.PRICE_FETCH_CONCURRENCY

    async def get_quotes(self, symbols: Iterable[str], now: Optional[datetime] = None) -> QuoteBatch:
        """
        Fetch quotes for ``symbols`` concurrently.

        Each fetch is bounded by ``self.timeout``. Cancelling the awaiting task
        cancels every pending fetch.
        """
        unique = sorted({s for s in symbols if s})
        batch = QuoteBatch()
        if not unique:
            return batch

        now = now or utcnow()
        gate = asyncio.Semaphore(self._concurrency)

        async def fetch(symbol: str) -> tuple[str, Optional[PriceQuote], Optional[str]]:
            async with gate:
                try:
                    quote = await asyncio.wait_for(
                        asyncio.to_thread(self.provider.fetch_quote, symbol),
                        timeout=self.timeout,
                    )
                except asyncio.TimeoutError:
                    logger.warning(f"Quote fetch for {symbol} timed out after {self.timeout}s")
                    return symbol, None, REASON_TIMEOUT
                except Exception as e:
                    logger.error(f"Quote fetch for {symbol} failed: {e}")
                    return symbol, None, REASON_ERROR
            if quote is None:
                return symbol, None, REASON_UNAVAILABLE
            if is_stale(quote, now, self.max_age):
                logger.warning(f"Rejecting stale quote for {symbol} as of {quote.as_of}")
                return symbol, quote, REASON_STALE
            return symbol, quote, None

        results = await asyncio.gather(*(fetch(s) for s in unique))
        for symbol, quote, reason in results:
            if reason is None:
                batch.quotes[symbol] = quote
                continue
            batch.missing[symbol] = reason
            if reason == REASON_STALE:
                batch.stale[symbol] = quote

        if batch.missing:
            logger.info(f"Fetched {len(batch.quotes)} quotes, {len(batch.missing)} missing: {batch.missing}")
        return batch
