from sqlalchemy import Boolean, Column, String, UniqueConstraint

from folio.core.database import Base
from folio.models.base import IdMixin, TimestampMixin


class WatchlistEntry(Base, IdMixin, TimestampMixin):
    """Symbol tracked by a user, independent of holdings."""

    __tablename__ = "watchlist_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "symbol", name="uq_watchlist_user_symbol"),
    )

    user_id = Column(String(64), nullable=False, index=True)
    symbol = Column(String(20), nullable=False)
    name = Column(String(200))
    asset_type = Column(String(20), nullable=False)
    notification_enabled = Column(Boolean, default=True, nullable=False)
