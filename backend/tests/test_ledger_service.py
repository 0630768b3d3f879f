"""Tests for the append-only ledger."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from folio.core.errors import InsufficientHoldingsError, NotFoundError, ValidationError
from folio.models.asset import Asset
from folio.services.ledger_service import LedgerService
from folio.services.valuation_engine import replay_positions
from sqlalchemy import select

T0 = datetime(2026, 1, 5, 10, 0)


async def buy(ledger, symbol="AAPL", quantity="10", price="100", ts=T0, **kwargs):
    kwargs.setdefault("asset_type", "stocks")
    kwargs.setdefault("name", f"{symbol} Inc.")
    return await ledger.record("u1", symbol, "buy", quantity, price, timestamp=ts, **kwargs)


class TestRecord:
    @pytest.mark.asyncio
    async def test_buy_then_partial_sell(self, ledger):
        await buy(ledger)
        await ledger.record("u1", "AAPL", "sell", "4", "120", timestamp=T0 + timedelta(days=1))

        positions = replay_positions(await ledger.load_ledger("u1"))
        assert positions["AAPL"].quantity == Decimal("6")
        assert positions["AAPL"].average_cost == Decimal("100")

    @pytest.mark.asyncio
    async def test_ids_are_increasing(self, ledger):
        first = await buy(ledger)
        second = await buy(ledger, ts=T0 + timedelta(minutes=1))
        assert second > first

    @pytest.mark.asyncio
    async def test_symbol_is_normalized(self, ledger):
        txn_id = await buy(ledger, symbol=" aapl ")
        txn = await ledger.get_transaction("u1", txn_id)
        assert txn.symbol == "AAPL"

    @pytest.mark.asyncio
    async def test_sell_inherits_asset_type(self, ledger):
        await buy(ledger, symbol="BTC", quantity="1", price="40000", asset_type="crypto")
        txn_id = await ledger.record("u1", "BTC", "sell", "0.5", "45000", timestamp=T0 + timedelta(hours=1))
        txn = await ledger.get_transaction("u1", txn_id)
        assert txn.asset_type == "crypto"

    @pytest.mark.asyncio
    async def test_buy_upserts_catalog(self, ledger, session):
        await buy(ledger, symbol="MSFT", name="Microsoft Corp.")
        result = await session.execute(select(Asset).where(Asset.symbol == "MSFT"))
        asset = result.scalar_one()
        assert asset.name == "Microsoft Corp."
        assert asset.asset_type == "stocks"

    @pytest.mark.asyncio
    async def test_aware_timestamp_stored_as_naive_utc(self, ledger):
        ts = datetime(2026, 1, 5, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        txn_id = await buy(ledger, ts=ts)
        txn = await ledger.get_transaction("u1", txn_id)
        assert txn.timestamp == datetime(2026, 1, 5, 10, 0)


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", ["0", "-1", "abc", "NaN"])
    async def test_rejects_bad_quantity(self, ledger, quantity):
        with pytest.raises(ValidationError):
            await buy(ledger, quantity=quantity)
        assert await ledger.load_ledger("u1") == []

    @pytest.mark.asyncio
    async def test_rejects_non_positive_price(self, ledger):
        with pytest.raises(ValidationError):
            await buy(ledger, price="0")

    @pytest.mark.asyncio
    async def test_rejects_quantity_below_storage_scale(self, ledger):
        with pytest.raises(ValidationError) as exc:
            await buy(ledger, symbol="BTC", quantity="0.000000001", price="50000", asset_type="crypto")
        assert exc.value.details["field"] == "quantity"
        assert await ledger.load_ledger("u1") == []

    @pytest.mark.asyncio
    async def test_rejects_price_below_storage_scale(self, ledger):
        with pytest.raises(ValidationError) as exc:
            await buy(ledger, price="0.0000001")
        assert exc.value.details["field"] == "unit_price"

    @pytest.mark.asyncio
    async def test_rejects_amount_too_large_for_column(self, ledger):
        with pytest.raises(ValidationError):
            await buy(ledger, quantity="1000000000000")

    @pytest.mark.asyncio
    async def test_smallest_storable_amounts_round_trip(self, ledger):
        txn_id = await buy(ledger, symbol="BTC", quantity="0.00000001", price="0.000001", asset_type="crypto")
        txn = await ledger.get_transaction("u1", txn_id)
        assert txn.quantity == Decimal("0.00000001")
        assert txn.unit_price == Decimal("0.000001")

        # Trailing zeros beyond the scale are not extra precision
        await buy(ledger, quantity="2.500000000000", price="100.0000000")

    @pytest.mark.asyncio
    async def test_rejects_unknown_kind(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.record("u1", "AAPL", "gift", "1", "10", asset_type="stocks")

    @pytest.mark.asyncio
    async def test_buy_requires_asset_type(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.record("u1", "AAPL", "buy", "1", "10")

    @pytest.mark.asyncio
    async def test_rejects_unknown_asset_type(self, ledger):
        with pytest.raises(ValidationError):
            await buy(ledger, asset_type="bonds")

    @pytest.mark.asyncio
    async def test_rejects_blank_symbol(self, ledger):
        with pytest.raises(ValidationError):
            await buy(ledger, symbol="  ")


class TestInsufficientHoldings:
    @pytest.mark.asyncio
    async def test_oversell_leaves_ledger_unchanged(self, ledger):
        await buy(ledger, quantity="5")
        before = len(await ledger.load_ledger("u1"))

        with pytest.raises(InsufficientHoldingsError) as exc:
            await ledger.record("u1", "AAPL", "sell", "6", "100", timestamp=T0 + timedelta(days=1))

        assert exc.value.available == Decimal("5")
        assert len(await ledger.load_ledger("u1")) == before

    @pytest.mark.asyncio
    async def test_sell_without_history(self, ledger):
        with pytest.raises(InsufficientHoldingsError):
            await ledger.record("u1", "TSLA", "sell", "1", "100")

    @pytest.mark.asyncio
    async def test_backdated_sell_before_buy_is_rejected(self, ledger):
        await buy(ledger, ts=T0)
        with pytest.raises(InsufficientHoldingsError):
            await ledger.record("u1", "AAPL", "sell", "1", "100", timestamp=T0 - timedelta(days=1))

    @pytest.mark.asyncio
    async def test_backdated_sell_that_breaks_later_sell(self, ledger):
        await buy(ledger, quantity="10", ts=T0)
        await ledger.record("u1", "AAPL", "sell", "8", "100", timestamp=T0 + timedelta(days=10))

        # 10 held on day 5, but the later sell of 8 would then go negative
        with pytest.raises(InsufficientHoldingsError) as exc:
            await ledger.record("u1", "AAPL", "sell", "3", "100", timestamp=T0 + timedelta(days=5))
        assert exc.value.available == Decimal("2")

        await ledger.record("u1", "AAPL", "sell", "2", "100", timestamp=T0 + timedelta(days=5))
        assert await ledger.held_quantity("u1", "AAPL") == Decimal("0")

    @pytest.mark.asyncio
    async def test_holdings_are_per_user(self, ledger):
        await buy(ledger)
        with pytest.raises(InsufficientHoldingsError):
            await ledger.record("u2", "AAPL", "sell", "1", "100")

    @pytest.mark.asyncio
    async def test_concurrent_sells_never_oversell(self, session_factory, locks):
        async with session_factory() as s:
            await LedgerService(session=s, locks=locks).record(
                "u1", "AAPL", "buy", "10", "100", asset_type="stocks", timestamp=T0
            )

        async def sell():
            async with session_factory() as s:
                service = LedgerService(session=s, locks=locks)
                try:
                    await service.record("u1", "AAPL", "sell", "6", "100")
                    return True
                except InsufficientHoldingsError:
                    return False

        results = await asyncio.gather(sell(), sell())
        assert sorted(results) == [False, True]

        async with session_factory() as s:
            held = await LedgerService(session=s, locks=locks).held_quantity("u1", "AAPL")
        assert held == Decimal("4")


class TestWithdrawal:
    @pytest.mark.asyncio
    async def test_withdrawal_reduces_quantity(self, ledger):
        await buy(ledger, quantity="10")
        txn_id = await ledger.record_withdrawal("u1", "AAPL", "3", "110", timestamp=T0 + timedelta(days=1))

        txn = await ledger.get_transaction("u1", txn_id)
        assert txn.kind == "withdrawal"
        assert await ledger.held_quantity("u1", "AAPL") == Decimal("7")

    @pytest.mark.asyncio
    async def test_withdrawal_over_holdings(self, ledger):
        await buy(ledger, quantity="1")
        with pytest.raises(InsufficientHoldingsError):
            await ledger.record_withdrawal("u1", "AAPL", "2", "110")


class TestListing:
    @pytest.mark.asyncio
    async def test_chronological_order_regardless_of_insert_order(self, ledger):
        late = await buy(ledger, symbol="MSFT", ts=T0 + timedelta(days=2))
        early = await buy(ledger, symbol="AAPL", ts=T0)

        ids = [t.id for t in await ledger.list_transactions("u1")]
        assert ids == [early, late]

    @pytest.mark.asyncio
    async def test_cursor_paging(self, ledger):
        ids = [await buy(ledger, ts=T0 + timedelta(hours=i)) for i in range(5)]

        first = await ledger.list_transactions("u1", limit=2)
        assert [t.id for t in first] == ids[:2]

        second = await ledger.list_transactions("u1", after=first[-1].id, limit=2)
        assert [t.id for t in second] == ids[2:4]

        rest = await ledger.list_transactions("u1", after=second[-1].id, limit=10)
        assert [t.id for t in rest] == ids[4:]

    @pytest.mark.asyncio
    async def test_unknown_cursor(self, ledger):
        with pytest.raises(ValidationError):
            await ledger.list_transactions("u1", after=999)

    @pytest.mark.asyncio
    async def test_filter_by_symbol(self, ledger):
        await buy(ledger, symbol="AAPL")
        await buy(ledger, symbol="MSFT")
        listed = await ledger.list_transactions("u1", symbol="msft")
        assert [t.symbol for t in listed] == ["MSFT"]

    @pytest.mark.asyncio
    async def test_get_transaction_for_other_user(self, ledger):
        txn_id = await buy(ledger)
        with pytest.raises(NotFoundError):
            await ledger.get_transaction("u2", txn_id)
