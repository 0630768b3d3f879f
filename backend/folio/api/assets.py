from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.database import get_db
from folio.services.catalog_service import CatalogService

router = APIRouter()


# Schemas

class AssetUpsert(BaseModel):
    symbol: str = Field(..., max_length=20)
    name: str = Field(..., max_length=200)
    asset_type: str


class AssetResponse(BaseModel):
    id: int
    symbol: str
    name: str
    asset_type: str

    class Config:
        from_attributes = True


# Endpoints

@router.get("/search", response_model=list[AssetResponse])
async def search_assets(
    q: str = Query(default="", description="Matches symbol or name, case-insensitive"),
    asset_type: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    service = CatalogService(session=db)
    return await service.search(q, asset_type=asset_type, limit=limit)


@router.get("", response_model=list[AssetResponse])
async def list_assets(asset_type: str, db: AsyncSession = Depends(get_db)):
    service = CatalogService(session=db)
    return await service.list_by_type(asset_type)


@router.post("", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
async def upsert_asset(payload: AssetUpsert, db: AsyncSession = Depends(get_db)):
    service = CatalogService(session=db)
    return await service.upsert(payload.symbol, payload.name, payload.asset_type)
