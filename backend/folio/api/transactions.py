"""
Transactions API Router.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.config import settings
from folio.core.database import get_db
from folio.services.ledger_service import LedgerService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class TransactionCreate(BaseModel):
    symbol: str = Field(..., max_length=20)
    name: Optional[str] = Field(None, max_length=200)
    kind: str
    quantity: Decimal
    unit_price: Decimal
    asset_type: Optional[str] = None
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def buys_need_a_name(self):
        # Symbol and display name are separate required fields for a new investment
        if self.kind.strip().lower() == "buy" and not (self.name or "").strip():
            raise ValueError("name is required for a buy")
        return self


class WithdrawalCreate(BaseModel):
    symbol: str = Field(..., max_length=20)
    quantity: Decimal
    unit_price: Decimal
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


class TransactionSchema(BaseModel):
    id: int
    user_id: str
    symbol: str
    name: Optional[str]
    kind: str
    quantity: Decimal
    unit_price: Decimal
    timestamp: datetime
    asset_type: str
    notes: Optional[str]

    class Config:
        from_attributes = True


# ---------- Endpoints ----------

@router.post("/transactions", response_model=TransactionSchema, status_code=status.HTTP_201_CREATED)
async def record_transaction(
    user_id: str,
    payload: TransactionCreate,
    db: AsyncSession = Depends(get_db),
):
    """Append a buy, sell or withdrawal to the user's ledger."""
    ledger = LedgerService(session=db)
    txn_id = await ledger.record(user_id=user_id, **payload.model_dump())
    return await ledger.get_transaction(user_id, txn_id)


@router.post("/withdrawals", response_model=TransactionSchema, status_code=status.HTTP_201_CREATED)
async def record_withdrawal(
    user_id: str,
    payload: WithdrawalCreate,
    db: AsyncSession = Depends(get_db),
):
    """Withdraw by selling units of a held asset."""
    ledger = LedgerService(session=db)
    txn_id = await ledger.record_withdrawal(user_id=user_id, **payload.model_dump())
    return await ledger.get_transaction(user_id, txn_id)


@router.get("/transactions", response_model=list[TransactionSchema])
async def list_transactions(
    user_id: str,
    symbol: Optional[str] = None,
    after: Optional[int] = Query(default=None, description="Resume after this transaction id"),
    limit: int = Query(default=100, ge=1, le=settings.TRANSACTION_PAGE_LIMIT),
    db: AsyncSession = Depends(get_db),
):
    """Chronological transaction history."""
    ledger = LedgerService(session=db)
    return await ledger.list_transactions(user_id, symbol=symbol, after=after, limit=limit)
