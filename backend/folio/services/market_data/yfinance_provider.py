import yfinance as yf
from folio.core.config import settings
from folio.models.base import utcnow
from folio.services.market_data.base import MarketDataProvider, PriceQuote
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
import pandas as pd
import logging

logger = logging.getLogger(__name__)

class YFinanceProvider(MarketDataProvider):
    """yfinance provider for end-of-day and delayed quotes."""

    name = "yfinance"

    # Crypto symbols in the catalog are bare (BTC); yfinance expects BTC-USD
    CRYPTO_SUFFIX = "-USD"
    CRYPTO_SYMBOLS = {"BTC", "ETH", "BNB", "SOL", "ADA", "XRP", "DOT", "AVAX"}

    # Regular-session close, exchange local time
    SESSION_CLOSE_HOUR = 16

    def __init__(self, timeout: Optional[float] = None, clock: Optional[Callable[[], datetime]] = None):
        self.timeout = timeout if timeout is not None else settings.PRICE_FETCH_TIMEOUT_SECONDS
        self.clock = clock or utcnow

    def fetch_quote(self, symbol: str) -> Optional[PriceQuote]:
        ticker_symbol = self._ticker_symbol(symbol)
        try:
            # yf has no reliable realtime API; the last two daily bars give
            # both the latest close and the previous close
            hist = yf.Ticker(ticker_symbol).history(period="5d", timeout=self.timeout)
        except Exception as e:
            logger.error(f"yfinance history failed for {symbol}: {e}")
            return None

        if hist.empty or "Close" not in hist:
            logger.warning(f"No data for {symbol} in yfinance response")
            return None

        closes = hist["Close"].dropna()
        if closes.empty:
            return None

        latest = float(closes.iloc[-1])
        if latest <= 0:
            logger.warning(f"Non-positive close for {symbol}: {latest}")
            return None

        previous = float(closes.iloc[-2]) if len(closes) > 1 else None

        return PriceQuote(
            symbol=symbol,
            price=Decimal(str(round(latest, 6))),
            as_of=self._observed_at(symbol, closes.index[-1]),
            previous_close=Decimal(str(round(previous, 6))) if previous else None,
        )

    def _ticker_symbol(self, symbol: str) -> str:
        if symbol in self.CRYPTO_SYMBOLS:
            return f"{symbol}{self.CRYPTO_SUFFIX}"
        return symbol

    def _observed_at(self, symbol: str, stamp) -> datetime:
        """
        When the bar's close was observed, as naive UTC.

        Daily bars are indexed at the session's midnight. The close belongs to
        the end of the session (end of day for crypto); a bar still in
        progress is as fresh as the fetch itself.
        """
        ts = pd.Timestamp(stamp)
        if ts.tzinfo is None:
            ts = ts.tz_localize("UTC")

        if symbol in self.CRYPTO_SYMBOLS:
            closed = ts.normalize() + pd.Timedelta(days=1)
        else:
            closed = ts.normalize().replace(hour=self.SESSION_CLOSE_HOUR)

        closed_utc = closed.tz_convert("UTC").tz_localize(None).to_pydatetime()
        return min(closed_utc, self.clock())
