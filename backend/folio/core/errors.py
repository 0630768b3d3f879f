"""
Typed error taxonomy for the engine.

Every failure the engine reports is a FolioError subclass with a stable
``code`` so callers (and the HTTP layer) can branch on kind.
"""

from typing import Any, Iterable, Optional


class FolioError(Exception):
    """Base class for all engine errors."""

    code = "folio_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.details}


class ValidationError(FolioError):
    """Malformed or out-of-range input. Raised before any mutation."""

    code = "validation_error"


class NotFoundError(FolioError):
    """Referenced entity does not exist for this user."""

    code = "not_found"


class InsufficientHoldingsError(FolioError):
    """A sell or withdrawal exceeds the held quantity."""

    code = "insufficient_holdings"

    def __init__(self, symbol: str, requested, available):
        super().__init__(
            f"Cannot remove {requested} {symbol}: only {available} held",
            symbol=symbol,
            requested=str(requested),
            available=str(available),
        )
        self.symbol = symbol
        self.requested = requested
        self.available = available


class MissingPriceError(FolioError):
    """
    No usable quote for one or more held symbols.

    ``partial`` carries whatever could still be valued so callers can present
    a partial result explicitly.
    """

    code = "missing_price"

    def __init__(
        self,
        symbols: Iterable[str],
        partial: Optional[list] = None,
        message: Optional[str] = None,
    ):
        self.symbols = sorted(set(symbols))
        self.partial = partial or []
        super().__init__(
            message or f"No price quote for: {', '.join(self.symbols)}",
            symbols=self.symbols,
        )


class StaleQuoteError(MissingPriceError):
    """Quotes exist but are older than the configured maximum age."""

    code = "stale_quote"

    def __init__(self, symbols: Iterable[str], partial: Optional[list] = None):
        symbols = sorted(set(symbols))
        super().__init__(
            symbols,
            partial=partial,
            message=f"Stale price quote for: {', '.join(symbols)}",
        )


class DuplicateEntryError(FolioError):
    """Entity already exists (e.g. symbol already on the watchlist)."""

    code = "duplicate_entry"
