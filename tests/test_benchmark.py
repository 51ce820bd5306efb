from datetime import date

import pytest

from assets_tracker.services.benchmark_service import BenchmarkService, build_benchmark_series
from assets_tracker.services.history_service import BENCHMARK_KEY


def test_buy_converts_to_phantom_units(make_tx):
    transactions = [make_tx("AAPL", "BUY", 10, 25.0, 4.0, date(2024, 1, 1))]
    prices = {"2024-01-01": 500.0, "2024-01-10": 550.0}

    series = build_benchmark_series(transactions, prices, end=date(2024, 1, 10))

    assert len(series) == 10
    assert series[0].benchmark_value == pytest.approx(1000.0)
    assert series[5].benchmark_value == pytest.approx(1000.0)
    assert series[-1].date == date(2024, 1, 10)
    assert series[-1].benchmark_value == pytest.approx(1100.0)


def test_sells_are_ignored(make_tx):
    transactions = [
        make_tx("AAPL", "BUY", 10, 25.0, 4.0, date(2024, 1, 1)),
        make_tx("AAPL", "SELL", 10, 30.0, 4.0, date(2024, 1, 2)),
    ]
    prices = {"2024-01-01": 500.0, "2024-01-03": 600.0}

    series = build_benchmark_series(transactions, prices, end=date(2024, 1, 3))

    assert [p.benchmark_value for p in series] == pytest.approx([1000.0, 1000.0, 1200.0])


def test_buys_accumulate_units_at_their_day_price(make_tx):
    transactions = [
        make_tx("AAPL", "BUY", 1, 1000.0, 1.0, date(2024, 1, 1)),
        make_tx("MSFT", "BUY", 1, 1000.0, 1.0, date(2024, 1, 3)),
    ]
    prices = {"2024-01-01": 500.0, "2024-01-02": 1000.0}

    series = build_benchmark_series(transactions, prices, end=date(2024, 1, 3))

    # 2 units, then 1 more bought at the forward-filled 1000
    assert series[-1].benchmark_value == pytest.approx(3 * 1000.0)


def test_buy_before_any_index_price_is_not_mirrored(make_tx):
    transactions = [
        make_tx("AAPL", "BUY", 1, 100.0, 1.0, date(2024, 1, 1)),
        make_tx("AAPL", "BUY", 1, 100.0, 1.0, date(2024, 1, 2)),
    ]
    prices = {"2024-01-02": 50.0}

    series = build_benchmark_series(transactions, prices, end=date(2024, 1, 2))

    assert [p.date for p in series] == [date(2024, 1, 2)]
    assert series[0].benchmark_value == pytest.approx(100.0)


def test_no_buys_no_series(make_tx):
    transactions = [make_tx("AAPL", "SELL", 1, 100.0, 1.0, date(2024, 1, 1))]
    assert build_benchmark_series(transactions, {"2024-01-01": 1.0}) == []


async def test_benchmark_prices_are_cached_per_day(cache, market, make_tx):
    market.history = {"^GSPC": {"2024-01-01": 500.0, "2024-01-02": 510.0}}
    transactions = [make_tx("AAPL", "BUY", 10, 25.0, 4.0, date(2024, 1, 1))]
    service = BenchmarkService(market.get_multiple_historical_prices, cache, ticker="^GSPC")

    first = await service.load("user-1", transactions, today=date(2024, 1, 2))
    second = await service.load("user-1", transactions, today=date(2024, 1, 2))

    assert first == second
    assert [p.benchmark_value for p in first] == pytest.approx([1000.0, 1020.0])
    assert market.history_calls == [("^GSPC", date(2023, 12, 27), date(2024, 1, 2))]
    assert cache.get(BENCHMARK_KEY, "^GSPC", user_id="user-1")["prices"] == {
        "2024-01-01": 500.0,
        "2024-01-02": 510.0,
    }


def test_weekend_buy_mirrors_at_previous_close(make_tx):
    transactions = [make_tx("AAPL", "BUY", 10, 50.0, 1.0, date(2024, 1, 6))]
    prices = {"2024-01-05": 500.0, "2024-01-08": 550.0}

    series = build_benchmark_series(transactions, prices, end=date(2024, 1, 8))

    assert [p.date for p in series] == [date(2024, 1, 6), date(2024, 1, 7), date(2024, 1, 8)]
    assert series[0].benchmark_value == pytest.approx(500.0)
    assert series[-1].benchmark_value == pytest.approx(550.0)


async def test_benchmark_fetch_reaches_back_before_first_buy(cache, market, make_tx):
    market.history = {"^GSPC": {"2024-01-05": 500.0, "2024-01-08": 500.0}}
    transactions = [make_tx("AAPL", "BUY", 10, 50.0, 1.0, date(2024, 1, 6))]
    service = BenchmarkService(market.get_multiple_historical_prices, cache, ticker="^GSPC")

    series = await service.load("user-1", transactions, today=date(2024, 1, 8))

    assert len(series) == 3
    assert [p.benchmark_value for p in series] == pytest.approx([500.0, 500.0, 500.0])
    assert market.history_calls[0][1] < date(2024, 1, 5)
