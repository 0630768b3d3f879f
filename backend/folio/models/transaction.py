from sqlalchemy import Column, DateTime, Index, Numeric, String, Text
from folio.core.database import Base
from folio.models.base import IdMixin, utcnow

NUMERIC_DIGITS = 20
QUANTITY_SCALE = 8
PRICE_SCALE = 6

class Transaction(Base, IdMixin):
    """
    Investment ledger entry. Append-only: rows are never updated or deleted.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_symbol_ts", "user_id", "symbol", "timestamp"),
    )

    user_id = Column(String(64), nullable=False, index=True)
    symbol = Column(String(20), nullable=False)
    name = Column(String(200))
    kind = Column(String(16), nullable=False)  # CHECK (buy, sell, withdrawal)
    quantity = Column(Numeric(NUMERIC_DIGITS, QUANTITY_SCALE), nullable=False)
    unit_price = Column(Numeric(NUMERIC_DIGITS, PRICE_SCALE), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    asset_type = Column(String(20), nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=utcnow, nullable=False)
