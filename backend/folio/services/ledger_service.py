"""
Ledger Store.

Append-only record of investment transactions per user. Every write for a
user runs under that user's lock and commits before the lock is released,
so the holdings check and the insert are one serialized step.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from folio.core.config import settings
from folio.core.database import AsyncSessionLocal
from folio.core.errors import InsufficientHoldingsError, NotFoundError, ValidationError
from folio.core.locks import UserLockRegistry, ledger_locks
from folio.models.base import utcnow
from folio.models.enums import TransactionKind
from folio.models.transaction import NUMERIC_DIGITS, PRICE_SCALE, QUANTITY_SCALE, Transaction
from folio.services.catalog_service import CatalogService, normalize_symbol, validate_asset_type

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
REDUCING_KINDS = {TransactionKind.SELL.value, TransactionKind.WITHDRAWAL.value}


def signed_quantity(txn: Transaction) -> Decimal:
    qty = Decimal(str(txn.quantity))
    return -qty if txn.kind in REDUCING_KINDS else qty


def chronological_key(txn: Transaction):
    # Unsaved rows have no id yet and sort after saved rows with the same timestamp
    return (txn.timestamp, txn.id if txn.id is not None else float("inf"))


def _positive_decimal(value, field: str, places: int, digits: int = NUMERIC_DIGITS) -> Decimal:
    """Parse a positive amount that fits a Numeric(digits, places) column unchanged."""
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}", field=field) from None
    if not number.is_finite() or number <= 0:
        raise ValidationError(f"{field} must be positive, got {value}", field=field)
    if number >= Decimal(10) ** (digits - places):
        raise ValidationError(f"{field} is too large, got {value}", field=field)
    if number != number.quantize(Decimal(1).scaleb(-places)):
        # Would be rounded on storage, possibly down to zero
        raise ValidationError(f"{field} allows at most {places} decimal places, got {value}", field=field)
    return number


def _naive_utc(ts: Optional[datetime]) -> datetime:
    if ts is None:
        return utcnow()
    if ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


class LedgerService:
    """Record and replay a user's investment transactions."""

    def __init__(
        self,
        session: Optional[AsyncSession] = None,
        locks: Optional[UserLockRegistry] = None,
    ):
        self.session = session
        self.locks = locks or ledger_locks

    async def record(
        self,
        user_id: str,
        symbol: str,
        kind: str,
        quantity,
        unit_price,
        asset_type: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        """
        Append a transaction and return its id.

        Raises ValidationError for malformed input and InsufficientHoldingsError
        when a sell or withdrawal would take any running quantity below zero.
        Nothing is written when either is raised.
        """
        if not user_id:
            raise ValidationError("user_id is required", field="user_id")
        symbol = normalize_symbol(symbol)
        kind = self._validate_kind(kind)
        quantity = _positive_decimal(quantity, "quantity", QUANTITY_SCALE)
        unit_price = _positive_decimal(unit_price, "unit_price", PRICE_SCALE)
        timestamp = _naive_utc(timestamp)
        name = (name or "").strip() or None

        if kind == TransactionKind.BUY.value:
            if not asset_type:
                raise ValidationError("asset_type is required for a buy", field="asset_type")
            asset_type = validate_asset_type(asset_type)
        elif asset_type:
            asset_type = validate_asset_type(asset_type)

        async with self.locks.hold(user_id):
            async with self._get_session() as session:
                history = await self._symbol_history(session, user_id, symbol)

                if asset_type is None:
                    if not history:
                        raise InsufficientHoldingsError(symbol, quantity, ZERO)
                    asset_type = history[-1].asset_type

                txn = Transaction(
                    user_id=user_id,
                    symbol=symbol,
                    name=name,
                    kind=kind,
                    quantity=quantity,
                    unit_price=unit_price,
                    timestamp=timestamp,
                    asset_type=asset_type,
                    notes=notes,
                )

                if kind in REDUCING_KINDS:
                    self._check_sufficient(history, txn)

                session.add(txn)
                if kind == TransactionKind.BUY.value and name:
                    await CatalogService(session=session).upsert(symbol, name, asset_type)
                await session.flush()
                txn_id = txn.id
                await session.commit()

        logger.info(f"Ledger recorded {kind} {quantity} {symbol} @ {unit_price} for user {user_id} (id={txn_id})")
        return txn_id

    async def record_withdrawal(
        self,
        user_id: str,
        symbol: str,
        quantity,
        unit_price,
        timestamp: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Withdraw by selling units of a held asset."""
        return await self.record(
            user_id=user_id,
            symbol=symbol,
            kind=TransactionKind.WITHDRAWAL.value,
            quantity=quantity,
            unit_price=unit_price,
            timestamp=timestamp,
            notes=notes,
        )

    async def list_transactions(
        self,
        user_id: str,
        symbol: Optional[str] = None,
        after: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Transaction]:
        """
        Chronological (timestamp, id) listing.

        ``after`` is the id of the last transaction already seen; the listing
        resumes right after it, so pages can be fetched repeatedly.
        """
        limit = limit or settings.TRANSACTION_PAGE_LIMIT
        async with self._get_session() as session:
            stmt = select(Transaction).where(Transaction.user_id == user_id)
            if symbol:
                stmt = stmt.where(Transaction.symbol == normalize_symbol(symbol))
            if after is not None:
                cursor = await session.execute(
                    select(Transaction.timestamp).where(
                        Transaction.id == after, Transaction.user_id == user_id
                    )
                )
                cursor_ts = cursor.scalar_one_or_none()
                if cursor_ts is None:
                    raise ValidationError(f"Unknown cursor transaction {after}", field="after")
                stmt = stmt.where(
                    or_(
                        Transaction.timestamp > cursor_ts,
                        and_(Transaction.timestamp == cursor_ts, Transaction.id > after),
                    )
                )
            stmt = stmt.order_by(Transaction.timestamp.asc(), Transaction.id.asc()).limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_transaction(self, user_id: str, transaction_id: int) -> Transaction:
        async with self._get_session() as session:
            result = await session.execute(
                select(Transaction).where(
                    Transaction.id == transaction_id, Transaction.user_id == user_id
                )
            )
            txn = result.scalar_one_or_none()
        if txn is None:
            raise NotFoundError(f"Transaction {transaction_id} not found", transaction_id=transaction_id)
        return txn

    async def load_ledger(self, user_id: str) -> List[Transaction]:
        """Full chronological history in a single read, for valuation."""
        async with self._get_session() as session:
            stmt = (
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .order_by(Transaction.timestamp.asc(), Transaction.id.asc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def held_quantity(self, user_id: str, symbol: str) -> Decimal:
        async with self._get_session() as session:
            history = await self._symbol_history(session, user_id, normalize_symbol(symbol))
        return sum((signed_quantity(t) for t in history), ZERO)

    async def _symbol_history(self, session: AsyncSession, user_id: str, symbol: str) -> List[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id, Transaction.symbol == symbol)
            .order_by(Transaction.timestamp.asc(), Transaction.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    def _check_sufficient(self, history: Iterable[Transaction], new_txn: Transaction) -> None:
        """
        Replay history with ``new_txn`` inserted in chronological order.

        The new reduction is allowed only if no running quantity from its
        position onward drops below zero.
        """
        ordered = sorted([*history, new_txn], key=chronological_key)
        position = ordered.index(new_txn)

        running = ZERO
        for txn in ordered[:position]:
            running += signed_quantity(txn)

        # Smallest quantity held from the insertion point onward, without new_txn
        available = running
        for txn in ordered[position + 1:]:
            running += signed_quantity(txn)
            available = min(available, running)

        requested = Decimal(str(new_txn.quantity))
        if requested > available:
            raise InsufficientHoldingsError(new_txn.symbol, requested, max(available, ZERO))

    def _validate_kind(self, kind: str) -> str:
        value = (kind or "").strip().lower()
        try:
            return TransactionKind(value).value
        except ValueError:
            raise ValidationError(
                f"Unknown transaction kind '{kind}' (expected buy, sell or withdrawal)",
                field="kind",
            ) from None

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
