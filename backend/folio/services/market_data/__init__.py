from typing import Dict, Type
from folio.services.market_data.base import MarketDataProvider, PriceQuote
from folio.services.market_data.yfinance_provider import YFinanceProvider
from folio.core.config import settings

PROVIDERS: Dict[str, Type[MarketDataProvider]] = {
    "yfinance": YFinanceProvider,
}

def register_provider(name: str, provider_class: Type[MarketDataProvider]) -> None:
    """Make an additional provider selectable through QUOTE_PROVIDER."""
    PROVIDERS[name] = provider_class

def get_market_data_provider(name: str | None = None) -> MarketDataProvider:
    """Factory to get provider instance."""
    name = name or settings.QUOTE_PROVIDER
    provider_class = PROVIDERS.get(name)
    if not provider_class:
        raise ValueError(f"Unknown provider: {name}")

    return provider_class()

__all__ = [
    "MarketDataProvider",
    "PriceQuote",
    "PROVIDERS",
    "register_provider",
    "get_market_data_provider",
]
