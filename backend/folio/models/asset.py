from sqlalchemy import Column, String

from folio.core.database import Base
from folio.models.base import IdMixin, TimestampMixin


class Asset(Base, IdMixin, TimestampMixin):
    """Catalog entry mapping a symbol to its display name and asset type."""

    __tablename__ = "assets"

    symbol = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    asset_type = Column(String(20), nullable=False)
