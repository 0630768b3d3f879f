"""
Shared FastAPI dependencies.
"""

from typing import Optional

from folio.services.price_feed import PriceFeed

_price_feed: Optional[PriceFeed] = None


def get_price_feed() -> PriceFeed:
    """Process-wide price feed built from settings on first use."""
    global _price_feed
    if _price_feed is None:
        _price_feed = PriceFeed()
    return _price_feed
