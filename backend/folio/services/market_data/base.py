from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class PriceQuote:
    """A single price observation from a market-data provider."""
    symbol: str
    price: Decimal
    as_of: datetime  # naive UTC
    previous_close: Optional[Decimal] = None

    def __post_init__(self):
        if not isinstance(self.price, Decimal):
            object.__setattr__(self, "price", Decimal(str(self.price)))
        if self.previous_close is not None and not isinstance(self.previous_close, Decimal):
            object.__setattr__(self, "previous_close", Decimal(str(self.previous_close)))


class MarketDataProvider(ABC):
    """Abstract base class for quote providers."""

    name: str = "base"

    @abstractmethod
    def fetch_quote(self, symbol: str) -> Optional[PriceQuote]:
        """
        Fetch the latest quote for a symbol.
        Returns None when the provider has no data for it. May block; callers
        run it off the event loop.
        """
        pass
