import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.database import AsyncSessionLocal
from folio.core.errors import ValidationError
from folio.models.asset import Asset
from folio.models.enums import AssetType

logger = logging.getLogger(__name__)


def normalize_symbol(symbol: Optional[str]) -> str:
    """Trim and upper-case a symbol; blank symbols are rejected."""
    normalized = (symbol or "").strip().upper()
    if not normalized:
        raise ValidationError("Symbol is required", field="symbol")
    if len(normalized) > 20:
        raise ValidationError(f"Symbol too long: {normalized}", field="symbol")
    return normalized


def validate_asset_type(asset_type: Optional[str]) -> str:
    value = (asset_type or "").strip().lower()
    try:
        return AssetType(value).value
    except ValueError:
        allowed = ", ".join(t.value for t in AssetType)
        raise ValidationError(
            f"Unknown asset type '{asset_type}' (expected one of: {allowed})",
            field="asset_type",
        ) from None


class CatalogService:
    """Directory of known assets, searchable by symbol or name."""

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session

    async def upsert(self, symbol: str, name: str, asset_type: str) -> Asset:
        symbol = normalize_symbol(symbol)
        asset_type = validate_asset_type(asset_type)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Asset name is required", field="name")

        async with self._get_session() as session:
            result = await session.execute(select(Asset).where(Asset.symbol == symbol))
            asset = result.scalar_one_or_none()
            if asset is None:
                asset = Asset(symbol=symbol, name=name, asset_type=asset_type)
                session.add(asset)
                logger.info("Catalog added %s (%s)", symbol, asset_type)
            else:
                asset.name = name
                asset.asset_type = asset_type
            await session.flush()
            return asset

    async def get(self, symbol: str) -> Optional[Asset]:
        async with self._get_session() as session:
            result = await session.execute(
                select(Asset).where(Asset.symbol == normalize_symbol(symbol))
            )
            return result.scalar_one_or_none()

    async def search(
        self,
        query: str,
        asset_type: Optional[str] = None,
        limit: int = 20,
    ) -> List[Asset]:
        """Case-insensitive substring match on symbol or name."""
        term = (query or "").strip().lower()
        async with self._get_session() as session:
            stmt = select(Asset)
            if term:
                pattern = f"%{term}%"
                stmt = stmt.where(
                    or_(func.lower(Asset.symbol).like(pattern), func.lower(Asset.name).like(pattern))
                )
            if asset_type:
                stmt = stmt.where(Asset.asset_type == validate_asset_type(asset_type))
            result = await session.execute(stmt.order_by(Asset.symbol.asc()).limit(limit))
            return list(result.scalars().all())

    async def list_by_type(self, asset_type: str) -> List[Asset]:
        async with self._get_session() as session:
            stmt = (
                select(Asset)
                .where(Asset.asset_type == validate_asset_type(asset_type))
                .order_by(Asset.symbol.asc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    @asynccontextmanager
    async def _get_session(self):
        if self.session is not None:
            yield self.session
        else:
            async with AsyncSessionLocal() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
