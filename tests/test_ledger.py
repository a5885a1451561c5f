import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from portfolio_tracker.config import LedgerConfig
from portfolio_tracker.ledger import Ledger
from portfolio_tracker.models import Instrument, TradeStatus, TransactionRecord


def make_instrument(symbol, start, end=None, sector="Technology"):
    instrument = Instrument(symbol, f"{symbol} Corp.", start, sector)
    if end is not None:
        instrument.update_price(end)
    return instrument


@pytest.fixture
def ledger():
    ledger = Ledger("Test Portfolio")
    ledger.register_instrument(make_instrument("AAPL", "175.50"))
    ledger.register_instrument(make_instrument("JPM", "185.40", sector="Finance"))
    return ledger


def snapshot(ledger):
    return ledger.cash_balance, ledger.holdings, ledger.transactions


class TestConstruction:
    def test_defaults(self):
        ledger = Ledger("Default")
        assert ledger.name == "Default"
        assert ledger.cash_balance == Decimal("10000.00")
        assert ledger.initial_cash == Decimal("10000.00")
        assert ledger.holdings == {}
        assert ledger.transactions == ()
        assert ledger.sector_allocation == {}
        assert ledger.stock_count() == 0

    def test_custom_initial_cash(self):
        ledger = Ledger("Small", 500)
        assert ledger.cash_balance == Decimal("500")
        assert ledger.initial_cash == Decimal("500")

    def test_negative_initial_cash_rejected(self):
        with pytest.raises(ValueError, match="must not be negative"):
            Ledger("Broken", -1)


class TestBuy:
    def test_buy_updates_cash_holdings_and_log(self, ledger):
        result = ledger.buy("AAPL", 10, 175.50)

        assert result
        assert result.status is TradeStatus.OK
        assert ledger.cash_balance == Decimal("8245.00")
        assert ledger.holdings == {"AAPL": 10}
        assert len(ledger.transactions) == 1

        record = ledger.transactions[0]
        assert record is result.transaction
        assert record.side == "BUY"
        assert record.symbol == "AAPL"
        assert record.quantity == 10
        assert record.total == Decimal("1755.00")

    def test_buy_accumulates(self, ledger):
        ledger.buy("AAPL", 10, 100)
        ledger.buy("AAPL", 5, 100)
        assert ledger.quantity("AAPL") == 15

    def test_buy_insufficient_funds_leaves_state(self, ledger):
        before = snapshot(ledger)
        result = ledger.buy("AAPL", 100, 175.50)

        assert not result
        assert result.status is TradeStatus.INSUFFICIENT_FUNDS
        assert result.transaction is None
        assert snapshot(ledger) == before

    def test_buy_exact_cash(self):
        ledger = Ledger("Exact", 1000)
        assert ledger.buy("AAPL", 10, 100)
        assert ledger.cash_balance == Decimal("0")

    def test_buy_unregistered_symbol_is_bookkept(self, ledger):
        assert ledger.buy("ZZZZ", 2, 50)
        assert ledger.quantity("ZZZZ") == 2
        assert ledger.cash_balance == Decimal("9900.00")
        # No instrument, so it contributes nothing to valuation
        assert ledger.total_value() == Decimal("9900.00")
        assert ledger.positions() == []

    def test_buy_unregistered_symbol_rejected_when_required(self):
        ledger = Ledger("Strict", config=LedgerConfig(REQUIRE_REGISTERED_SYMBOLS=True))
        result = ledger.buy("ZZZZ", 2, 50)
        assert result.status is TradeStatus.UNKNOWN_SYMBOL
        assert ledger.holdings == {}

    @pytest.mark.parametrize(
        "quantity, price",
        [(0, 10), (-5, 10), (1.5, 10), (True, 10), (1, 0), (1, -10), (1, "abc")],
    )
    def test_buy_invalid_input(self, ledger, quantity, price):
        before = snapshot(ledger)
        result = ledger.buy("AAPL", quantity, price)
        assert result.status is TradeStatus.INVALID_INPUT
        assert snapshot(ledger) == before

    @pytest.mark.parametrize("price", ["9e999999", Decimal("9e999999")])
    def test_buy_out_of_range_price_is_rejected(self, ledger, price):
        before = snapshot(ledger)
        result = ledger.buy("AAPL", 10, price)
        assert result.status is TradeStatus.INVALID_INPUT
        assert "out of range" in result.message
        assert snapshot(ledger) == before


class TestSell:
    def test_sell_updates_cash_holdings_and_log(self, ledger):
        ledger.buy("AAPL", 10, 100)
        result = ledger.sell("AAPL", 4, 110)

        assert result
        assert ledger.cash_balance == Decimal("9440")
        assert ledger.quantity("AAPL") == 6
        assert ledger.transactions[-1].side == "SELL"
        assert ledger.transactions[-1].total == Decimal("440")

    def test_sell_more_than_held_leaves_state(self, ledger):
        ledger.buy("AAPL", 10, 175.50)
        before = snapshot(ledger)

        result = ledger.sell("AAPL", 15, 180.00)

        assert result.status is TradeStatus.INSUFFICIENT_SHARES
        assert snapshot(ledger) == before
        assert ledger.cash_balance == Decimal("8245.00")

    def test_sell_never_held(self, ledger):
        result = ledger.sell("MSFT", 1, 10)
        assert result.status is TradeStatus.INSUFFICIENT_SHARES
        assert "MSFT" not in ledger.holdings

    def test_sell_to_zero_prunes_holding(self, ledger):
        ledger.buy("AAPL", 10, 100)
        assert ledger.sell("AAPL", 10, 100)
        assert "AAPL" not in ledger.holdings
        assert ledger.quantity("AAPL") == 0

    def test_sell_invalid_input(self, ledger):
        ledger.buy("AAPL", 10, 100)
        before = snapshot(ledger)
        assert ledger.sell("AAPL", 0, 100).status is TradeStatus.INVALID_INPUT
        assert ledger.sell("AAPL", 1, 0).status is TradeStatus.INVALID_INPUT
        assert snapshot(ledger) == before

    def test_sell_out_of_range_price_is_rejected(self, ledger):
        ledger.buy("AAPL", 10, 100)
        before = snapshot(ledger)
        result = ledger.sell("AAPL", 10, "9e999999")
        assert result.status is TradeStatus.INVALID_INPUT
        assert snapshot(ledger) == before

    def test_round_trip_restores_state(self, ledger):
        cash_before = ledger.cash_balance
        holdings_before = ledger.holdings

        assert ledger.buy("AAPL", 7, "123.45")
        assert ledger.sell("AAPL", 7, "123.45")

        assert ledger.cash_balance == cash_before
        assert ledger.holdings == holdings_before
        assert len(ledger.transactions) == 2

    def test_random_trades_never_go_negative(self, ledger):
        rng = random.Random(42)
        for _ in range(500):
            symbol = rng.choice(["AAPL", "JPM", "MSFT"])
            quantity = rng.randint(1, 30)
            price = Decimal(rng.randint(100, 50000)) / 100
            if rng.random() < 0.5:
                ledger.buy(symbol, quantity, price)
            else:
                ledger.sell(symbol, quantity, price)

            assert ledger.cash_balance >= 0
            assert all(qty > 0 for qty in ledger.holdings.values())


class TestRegistry:
    def test_find_instrument(self, ledger):
        assert ledger.find_instrument("AAPL").symbol == "AAPL"
        assert ledger.find_instrument("NOPE") is None

    def test_register_overwrites(self, ledger):
        replacement = make_instrument("AAPL", 200)
        ledger.register_instrument(replacement)
        assert ledger.find_instrument("AAPL") is replacement
        assert ledger.stock_count() == 2

    def test_instruments_view_is_read_only(self, ledger):
        with pytest.raises(TypeError):
            ledger.instruments["NEW"] = make_instrument("NEW", 1)

    def test_holdings_is_a_copy(self, ledger):
        ledger.buy("AAPL", 1, 100)
        ledger.holdings["AAPL"] = 999
        assert ledger.quantity("AAPL") == 1

    def test_register_refreshes_sector_allocation(self):
        ledger = Ledger("Sectors")
        ledger.buy("JNJ", 10, 100)
        assert ledger.sector_allocation == {}
        ledger.register_instrument(make_instrument("JNJ", 100, sector="Healthcare"))
        assert ledger.sector_allocation == {"Healthcare": pytest.approx(100.0)}

    def test_shared_instrument_price_updates_are_visible(self, ledger):
        ledger.buy("AAPL", 10, "175.50")
        ledger.find_instrument("AAPL").update_price("200.00")
        assert ledger.holdings_value() == Decimal("2000.00")


class TestValuation:
    def test_total_value(self, ledger):
        ledger.buy("AAPL", 10, "175.50")
        ledger.find_instrument("AAPL").update_price("180.00")
        assert ledger.total_value() == Decimal("8245.00") + Decimal("1800.00")

    def test_total_gain_loss_unrealized(self, ledger):
        ledger.buy("AAPL", 10, "175.50")
        ledger.find_instrument("AAPL").update_price("180.00")
        assert ledger.total_gain_loss() == Decimal("45.00")

    def test_total_gain_loss_nets_sell_proceeds(self, ledger):
        ledger.buy("AAPL", 10, 100)
        ledger.sell("AAPL", 5, 120)
        ledger.find_instrument("AAPL").update_price(110)
        # invested 1000 - 600 = 400, holding 5 * 110 = 550
        assert ledger.total_gain_loss() == Decimal("150")

    def test_performance_percentage_uses_starting_cash(self):
        ledger = Ledger("Small", 1000)
        ledger.register_instrument(make_instrument("AAPL", 100))
        ledger.buy("AAPL", 10, 100)
        ledger.find_instrument("AAPL").update_price(110)
        assert ledger.performance_percentage() == pytest.approx(10.0)

    def test_performance_percentage_zero_cash(self):
        assert Ledger("Empty", 0).performance_percentage() == 0.0


class TestAnalytics:
    @pytest.fixture
    def ranked(self):
        ledger = Ledger("Ranked", 100000)
        ledger.register_instrument(make_instrument("AAA", 100, 110))
        ledger.register_instrument(make_instrument("BBB", 100, 95, sector="Finance"))
        ledger.register_instrument(make_instrument("CCC", 100, 102, sector="Finance"))
        ledger.register_instrument(make_instrument("DDD", 100, 150))
        for symbol in ("AAA", "BBB", "CCC"):
            ledger.buy(symbol, 10, 100)
        return ledger

    def test_top_performers(self, ranked):
        assert [i.symbol for i in ranked.top_performers(2)] == ["AAA", "CCC"]

    def test_worst_performers(self, ranked):
        assert [i.symbol for i in ranked.worst_performers(2)] == ["BBB", "CCC"]

    def test_unheld_instruments_not_ranked(self, ranked):
        symbols = {i.symbol for i in ranked.top_performers(10)}
        assert "DDD" not in symbols

    def test_large_n_returns_all_held(self, ranked):
        assert {i.symbol for i in ranked.top_performers(10)} == {"AAA", "BBB", "CCC"}
        assert {i.symbol for i in ranked.worst_performers(10)} == {"AAA", "BBB", "CCC"}

    def test_default_count_and_non_positive_n(self, ranked):
        assert len(ranked.top_performers()) == 3
        assert ranked.top_performers(0) == []
        assert ranked.worst_performers(-1) == []

    def test_sorted_by_performance(self, ranked):
        assert [i.symbol for i in ranked.sorted_by_performance()] == ["AAA", "CCC", "BBB"]

    def test_stocks_by_sector(self, ranked):
        assert [i.symbol for i in ranked.stocks_by_sector("Finance")] == ["BBB", "CCC"]
        assert ranked.stocks_by_sector("finance") == []

    def test_stocks_by_sector_skips_unheld(self, ranked):
        assert [i.symbol for i in ranked.stocks_by_sector("Technology")] == ["AAA"]

    def test_recompute_sector_allocation(self, ranked):
        allocation = ranked.recompute_sector_allocation()
        # AAA 1100 Technology, BBB 950 + CCC 1020 Finance
        assert list(allocation) == ["Finance", "Technology"]
        assert allocation["Technology"] == pytest.approx(1100 / 3070 * 100)
        assert sum(allocation.values()) == pytest.approx(100.0)
        assert ranked.sector_allocation == allocation

    def test_sector_allocation_is_not_refreshed_by_trades(self, ranked):
        before = ranked.recompute_sector_allocation()
        ranked.sell("AAA", 10, 110)
        assert ranked.sector_allocation == before
        assert ranked.recompute_sector_allocation() == {"Finance": pytest.approx(100.0)}

    def test_sector_allocation_empty_without_holdings(self):
        ledger = Ledger("Cash only")
        ledger.register_instrument(make_instrument("AAPL", 100))
        assert ledger.recompute_sector_allocation() == {}


class TestRecentTransactions:
    def test_newest_first(self, ledger):
        ledger.buy("AAPL", 1, 100)
        ledger.buy("JPM", 1, 100)
        ledger.sell("AAPL", 1, 100)

        recent = ledger.recent_transactions(2)
        assert [(t.side, t.symbol) for t in recent] == [("SELL", "AAPL"), ("BUY", "JPM")]

    def test_ordered_by_creation_not_storage(self, ledger):
        older = TransactionRecord("AAPL", "BUY", 1, Decimal("1"))
        newer = TransactionRecord("JPM", "BUY", 1, Decimal("1"))
        # Stored out of creation order on purpose
        ledger._transactions.extend([newer, older])

        assert ledger.recent_transactions(2) == [newer, older]

    def test_newest_survives_wall_clock_stepping_back(self, ledger):
        noon = datetime(2026, 1, 5, 12, 0, 0, tzinfo=timezone.utc)
        with patch("portfolio_tracker.models.datetime") as clock:
            clock.now.side_effect = [noon, noon - timedelta(seconds=30)]
            ledger.buy("AAPL", 1, 100)
            ledger.sell("AAPL", 1, 100)

        newest = ledger.recent_transactions(1)[0]
        assert newest.side == "SELL"
        assert newest.timestamp < ledger.transactions[0].timestamp

    def test_n_larger_than_log(self, ledger):
        ledger.buy("AAPL", 1, 100)
        assert len(ledger.recent_transactions(50)) == 1
        assert ledger.recent_transactions(0) == []

    def test_transactions_is_append_only_copy(self, ledger):
        ledger.buy("AAPL", 1, 100)
        log = ledger.transactions
        ledger.buy("AAPL", 1, 100)
        assert len(log) == 1
        assert len(ledger.transactions) == 2
