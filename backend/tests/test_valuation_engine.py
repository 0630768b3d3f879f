"""Tests for holding derivation and valuation."""

import random
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from folio.core.errors import MissingPriceError, StaleQuoteError
from folio.models.transaction import Transaction
from folio.services.market_data import PriceQuote
from folio.services.price_feed import PriceFeed
from folio.services.valuation_engine import (
    ValuationEngine,
    allocation_by_asset_type,
    compute_holdings,
    filter_by_asset_type,
    portfolio_totals,
    replay_positions,
)

from conftest import NOW, StaticQuoteProvider

T0 = datetime(2026, 1, 5, 10, 0)


def txn(symbol, kind, quantity, price, days=0, asset_type="stocks", id=None, name=None):
    return Transaction(
        id=id,
        user_id="u1",
        symbol=symbol,
        name=name,
        kind=kind,
        quantity=Decimal(quantity),
        unit_price=Decimal(price),
        timestamp=T0 + timedelta(days=days),
        asset_type=asset_type,
    )


class TestReplay:
    def test_weighted_average_cost(self):
        positions = replay_positions([
            txn("AAPL", "buy", "10", "100", days=0, id=1),
            txn("AAPL", "buy", "10", "200", days=1, id=2),
        ])
        assert positions["AAPL"].quantity == Decimal("20")
        assert positions["AAPL"].average_cost == Decimal("150")

    def test_sell_keeps_average_cost(self):
        positions = replay_positions([
            txn("AAPL", "buy", "10", "100", days=0, id=1),
            txn("AAPL", "sell", "4", "300", days=1, id=2),
        ])
        assert positions["AAPL"].quantity == Decimal("6")
        assert positions["AAPL"].average_cost == Decimal("100")

    def test_full_exit_resets_cost(self):
        positions = replay_positions([
            txn("AAPL", "buy", "10", "100", days=0, id=1),
            txn("AAPL", "sell", "10", "120", days=1, id=2),
            txn("AAPL", "buy", "5", "80", days=2, id=3),
        ])
        assert positions["AAPL"].average_cost == Decimal("80")

    def test_replay_is_order_independent(self):
        rows = [
            txn("AAPL", "sell", "5", "120", days=2, id=3),
            txn("AAPL", "buy", "10", "100", days=0, id=1),
            txn("AAPL", "buy", "10", "130", days=1, id=2),
        ]
        assert replay_positions(rows)["AAPL"].quantity == Decimal("15")
        assert replay_positions(reversed(rows))["AAPL"].average_cost == Decimal("115")

    def test_negative_history_is_an_error(self):
        with pytest.raises(ValueError):
            replay_positions([txn("AAPL", "sell", "1", "100", id=1)])


class TestComputeHoldings:
    def test_single_holding_figures(self):
        holdings = compute_holdings(
            [txn("AAPL", "buy", "15", "145.23", id=1, name="Apple Inc.")],
            {"AAPL": Decimal("182.63")},
            now=NOW,
        )
        (aapl,) = holdings
        assert aapl.name == "Apple Inc."
        assert aapl.cost_basis == Decimal("2178.45")
        assert aapl.market_value == Decimal("2739.45")
        assert aapl.unrealized_gain == Decimal("561.00")
        assert abs(aapl.unrealized_gain_percent - Decimal("25.75")) < Decimal("0.01")
        assert aapl.allocation_percent == Decimal("100")

    def test_allocation_sums_to_hundred_and_sorted(self):
        holdings = compute_holdings(
            [
                txn("AAPL", "buy", "10", "100", id=1),
                txn("MSFT", "buy", "3", "300", id=2),
                txn("BTC", "buy", "0.1", "40000", id=3, asset_type="crypto"),
            ],
            {"AAPL": "150", "MSFT": "310", "BTC": "50000"},
            now=NOW,
        )
        assert [h.symbol for h in holdings] == ["BTC", "AAPL", "MSFT"]
        total = sum(h.allocation_percent for h in holdings)
        assert abs(total - Decimal("100")) < Decimal("0.0001")

    def test_zero_quantity_excluded(self):
        holdings = compute_holdings(
            [
                txn("AAPL", "buy", "10", "100", id=1),
                txn("AAPL", "sell", "10", "120", days=1, id=2),
                txn("MSFT", "buy", "1", "300", id=3),
            ],
            {"MSFT": "310"},
            now=NOW,
        )
        assert [h.symbol for h in holdings] == ["MSFT"]

    def test_empty_ledger(self):
        assert compute_holdings([], {}, now=NOW) == []

    def test_missing_price_carries_partial(self):
        with pytest.raises(MissingPriceError) as exc:
            compute_holdings(
                [txn("AAPL", "buy", "10", "100", id=1), txn("MSFT", "buy", "1", "300", id=2)],
                {"AAPL": "150"},
                now=NOW,
            )
        assert exc.value.symbols == ["MSFT"]
        assert [h.symbol for h in exc.value.partial] == ["AAPL"]
        assert exc.value.partial[0].allocation_percent == Decimal("100")

    def test_stale_quote(self):
        old = PriceQuote(symbol="AAPL", price="150", as_of=NOW - timedelta(days=3))
        with pytest.raises(StaleQuoteError) as exc:
            compute_holdings(
                [txn("AAPL", "buy", "10", "100", id=1)],
                {"AAPL": old},
                now=NOW,
                max_quote_age=timedelta(hours=24),
            )
        assert exc.value.symbols == ["AAPL"]
        assert exc.value.code == "stale_quote"

    def test_missing_and_stale_together_is_missing(self):
        old = PriceQuote(symbol="AAPL", price="150", as_of=NOW - timedelta(days=3))
        with pytest.raises(MissingPriceError) as exc:
            compute_holdings(
                [txn("AAPL", "buy", "10", "100", id=1), txn("MSFT", "buy", "1", "300", id=2)],
                {"AAPL": old},
                now=NOW,
                max_quote_age=timedelta(hours=24),
            )
        assert not isinstance(exc.value, StaleQuoteError)
        assert exc.value.symbols == ["AAPL", "MSFT"]


class TestAggregates:
    def _holdings(self):
        return compute_holdings(
            [
                txn("AAPL", "buy", "10", "100", id=1),
                txn("MSFT", "buy", "10", "100", id=2),
                txn("BTC", "buy", "1", "1000", id=3, asset_type="crypto"),
            ],
            {"AAPL": "100", "MSFT": "200", "BTC": "1000"},
            now=NOW,
        )

    def test_allocation_by_asset_type(self):
        allocation = allocation_by_asset_type(self._holdings())
        assert [(a.asset_type, a.market_value) for a in allocation] == [
            ("stocks", Decimal("3000")),
            ("crypto", Decimal("1000")),
        ]
        assert allocation[0].percent == Decimal("75")

    def test_filter_by_asset_type(self):
        crypto = filter_by_asset_type(self._holdings(), "crypto")
        assert [h.symbol for h in crypto] == ["BTC"]
        assert len(filter_by_asset_type(self._holdings(), None)) == 3

    def test_portfolio_totals(self):
        totals = portfolio_totals(self._holdings())
        assert totals.total_invested == Decimal("3000")
        assert totals.total_current == Decimal("4000")
        assert totals.total_return == Decimal("1000")
        assert abs(totals.total_return_percent - Decimal("33.3333")) < Decimal("0.001")
        assert totals.holdings_count == 3

    def test_totals_of_nothing(self):
        totals = portfolio_totals([])
        assert totals.total_return_percent == Decimal("0")


class TestValuationEngine:
    @pytest.mark.asyncio
    async def test_value_with_feed_fetches_held_symbols_only(self, ledger):
        await ledger.record("u1", "AAPL", "buy", "15", "145.23", asset_type="stocks", timestamp=T0)
        await ledger.record("u1", "MSFT", "buy", "1", "300", asset_type="stocks", timestamp=T0)
        await ledger.record("u1", "MSFT", "sell", "1", "310", timestamp=T0 + timedelta(days=1))

        provider = StaticQuoteProvider(prices={"AAPL": "182.63", "MSFT": "310"})
        engine = ValuationEngine(ledger=ledger)
        holdings = await engine.value_with_feed("u1", PriceFeed(provider=provider), now=NOW)

        assert provider.calls == ["AAPL"]
        assert holdings[0].market_value == Decimal("2739.45")

    @pytest.mark.asyncio
    async def test_stale_feed_quote_reported_as_stale(self, ledger):
        await ledger.record("u1", "AAPL", "buy", "1", "100", asset_type="stocks", timestamp=T0)
        provider = StaticQuoteProvider(prices={"AAPL": "150"}, as_of=NOW - timedelta(days=5))
        feed = PriceFeed(provider=provider, max_age=timedelta(days=1))
        engine = ValuationEngine(ledger=ledger, max_quote_age=timedelta(days=1))

        with pytest.raises(StaleQuoteError):
            await engine.value_with_feed("u1", feed, now=NOW)

    @pytest.mark.asyncio
    async def test_compute_holdings_from_mapping(self, ledger):
        await ledger.record("u1", "AAPL", "buy", "2", "100", asset_type="stocks", timestamp=T0)
        engine = ValuationEngine(ledger=ledger)
        holdings = await engine.compute_holdings("u1", {"AAPL": "120"}, now=NOW)
        assert holdings[0].unrealized_gain == Decimal("40")


def random_ledger(rng, symbols=("AAPL", "MSFT", "BTC"), length=40):
    """A valid random history: sells never exceed what is held at that point."""
    rows, held, bought, sold = [], {s: Decimal("0") for s in symbols}, {}, {}
    for i in range(length):
        symbol = rng.choice(symbols)
        if held[symbol] > 0 and rng.random() < 0.4:
            kind = rng.choice(["sell", "withdrawal"])
            # Sometimes the full position, otherwise a random part of it
            if rng.random() < 0.2:
                qty = held[symbol]
            else:
                qty = (held[symbol] * Decimal(rng.randint(1, 99)) / 100).quantize(Decimal("0.00000001"))
            if qty <= 0:
                continue
            held[symbol] -= qty
            sold[symbol] = sold.get(symbol, Decimal("0")) + qty
        else:
            kind = "buy"
            qty = Decimal(rng.randint(1, 10_000)) / 100
            held[symbol] += qty
            bought[symbol] = bought.get(symbol, Decimal("0")) + qty
        price = Decimal(rng.randint(1, 1_000_000)) / 100
        rows.append(txn(symbol, kind, str(qty), str(price), days=i, id=i + 1,
                        asset_type="crypto" if symbol == "BTC" else "stocks"))
    return rows, bought, sold


class TestRandomizedProperties:
    @pytest.mark.parametrize("seed", range(50))
    def test_net_quantity_is_buys_minus_sells(self, seed):
        rng = random.Random(seed)
        rows, bought, sold = random_ledger(rng)
        rng.shuffle(rows)

        positions = replay_positions(rows)
        for symbol, pos in positions.items():
            assert pos.quantity == bought.get(symbol, Decimal("0")) - sold.get(symbol, Decimal("0"))
            assert pos.quantity >= 0
            assert pos.average_cost >= 0

    @pytest.mark.parametrize("seed", range(50))
    def test_allocation_sums_to_hundred(self, seed):
        rng = random.Random(seed)
        symbols = [f"S{i}" for i in range(rng.randint(1, 12))]
        rows = [
            txn(s, "buy", str(Decimal(rng.randint(1, 10**8)) / 10**4), str(Decimal(rng.randint(1, 10**6)) / 100), id=i + 1)
            for i, s in enumerate(symbols)
        ]
        prices = {s: Decimal(rng.randint(1, 10**9)) / 10**4 for s in symbols}

        holdings = compute_holdings(rows, prices, now=NOW)
        assert len(holdings) == len(symbols)
        total = sum(h.allocation_percent for h in holdings)
        assert abs(total - Decimal("100")) <= Decimal("0.01")
        assert all(h.allocation_percent >= 0 for h in holdings)
