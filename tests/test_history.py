import json
from datetime import date, timedelta

import pytest

from assets_tracker.schemas.portfolio import HistoryCacheEntry
from assets_tracker.services.history_service import (
    HISTORY_KEY,
    PortfolioHistoryService,
    TickerState,
    apply_transaction,
    build_portfolio_series,
    invalidate_portfolio_caches,
    sort_for_replay,
)
from assets_tracker.services.replay import ForwardFill, calendar_days


def test_calendar_days_include_both_ends():
    days = calendar_days(date(2024, 2, 27), date(2024, 3, 1))
    assert days == ["2024-02-27", "2024-02-28", "2024-02-29", "2024-03-01"]


def test_forward_fill_keeps_last_known_price():
    prices = ForwardFill({"X": {"2024-01-01": 10.0, "2024-01-04": 12.0}})

    assert prices.price("X", "2024-01-01") == 10.0
    assert prices.price("X", "2024-01-02") == 10.0
    assert prices.price("X", "2024-01-04") == 12.0
    assert prices.price("Y", "2024-01-04") is None


def test_gap_days_use_price_before_the_gap(make_tx):
    transactions = [make_tx("AAPL", "BUY", 1, 90.0, 1.0, date(2024, 1, 5))]
    history = {"AAPL": {"2024-01-05": 100.0, "2024-01-09": 110.0}}

    series = build_portfolio_series(transactions, history, end=date(2024, 1, 9))

    assert [p.date for p in series] == [date(2024, 1, d) for d in range(5, 10)]
    assert [p.total_market_value for p in series] == [100.0, 100.0, 100.0, 100.0, 110.0]
    assert series[0].total_cost_basis == 90.0
    assert series[-1].profit == pytest.approx(20.0)
    assert series[-1].profit_percent == pytest.approx(20.0 / 90.0 * 100)


def test_selling_half_leaves_half_cost_basis(make_tx):
    transactions = [
        make_tx("AAPL", "BUY", 10, 100.0, 4.0, date(2024, 1, 1)),
        make_tx("AAPL", "BUY", 6, 50.0, 4.5, date(2024, 1, 1)),
        make_tx("AAPL", "SELL", 8, 120.0, 4.0, date(2024, 1, 2)),
    ]
    history = {"AAPL": {"2024-01-01": 100.0}}

    series = build_portfolio_series(transactions, history, end=date(2024, 1, 2))

    cost = 10 * 100 * 4.0 + 6 * 50 * 4.5
    assert series[0].total_cost_basis == pytest.approx(cost)
    assert series[1].total_cost_basis == pytest.approx(cost / 2)


def test_no_points_before_first_buy_or_after_full_liquidation(make_tx):
    transactions = [
        make_tx("AAPL", "BUY", 2, 10.0, 1.0, date(2024, 1, 2)),
        make_tx("AAPL", "SELL", 2, 12.0, 1.0, date(2024, 1, 3)),
    ]

    series = build_portfolio_series(
        transactions, {}, start=date(2024, 1, 1), end=date(2024, 1, 5)
    )

    assert [p.date for p in series] == [date(2024, 1, 2)]


def test_other_tickers_keep_series_going_after_one_is_sold_out(make_tx):
    transactions = [
        make_tx("AAPL", "BUY", 2, 10.0, 1.0, date(2024, 1, 1)),
        make_tx("MSFT", "BUY", 1, 50.0, 1.0, date(2024, 1, 1)),
        make_tx("AAPL", "SELL", 2, 12.0, 1.0, date(2024, 1, 2)),
    ]

    series = build_portfolio_series(transactions, {}, end=date(2024, 1, 3))

    assert len(series) == 3
    assert series[-1].total_cost_basis == pytest.approx(50.0)


def test_ticker_without_any_price_is_valued_at_cost(make_tx):
    transactions = [make_tx("NEW", "BUY", 3, 20.0, 4.0, date(2024, 1, 1))]

    [point] = build_portfolio_series(transactions, {}, end=date(2024, 1, 1))

    assert point.total_market_value == point.total_cost_basis == pytest.approx(240.0)
    assert point.profit == 0.0


def test_fx_rate_is_weighted_by_pre_buy_cost_basis(make_tx):
    states = {}
    apply_transaction(states, make_tx("AAPL", "BUY", 10, 100.0, 4.0, date(2024, 1, 1)))
    apply_transaction(states, make_tx("AAPL", "BUY", 10, 100.0, 5.0, date(2024, 1, 2)))

    state = states["AAPL"]
    assert state.quantity == 20
    assert state.cost_basis == pytest.approx(9000.0)
    assert state.avg_rate == pytest.approx((4.0 * 4000 + 5.0 * 5000) / 9000)


def test_oversell_is_clamped_to_zero(make_tx):
    states = {"AAPL": TickerState(quantity=5, cost_basis=500.0, avg_rate=1.0)}

    apply_transaction(states, make_tx("AAPL", "SELL", 10, 100.0, 1.0, date(2024, 1, 2)))

    assert states["AAPL"].quantity == 0.0
    assert states["AAPL"].cost_basis == 0.0


def test_sell_without_position_is_skipped(make_tx):
    states = {}
    apply_transaction(states, make_tx("AAPL", "SELL", 1, 100.0, 1.0, date(2024, 1, 2)))
    assert states == {}


def test_same_day_buys_replay_before_sells(make_tx):
    sell = make_tx("AAPL", "SELL", 1, 100.0, 1.0, date(2024, 1, 1))
    buy = make_tx("AAPL", "BUY", 1, 100.0, 1.0, date(2024, 1, 1))

    assert [t.type for t in sort_for_replay([sell, buy])] == ["BUY", "SELL"]


def test_cache_entry_round_trips_through_json(make_tx):
    transactions = [make_tx("AAPL", "BUY", 1, 90.0, 4.0, date(2024, 1, 5))]
    history = {"AAPL": {"2024-01-05": 100.0, "2024-01-08": 101.5}}
    series = build_portfolio_series(transactions, history, end=date(2024, 1, 9))

    entry = HistoryCacheEntry(last_updated=date(2024, 1, 9), data=series, price_history=history)
    reloaded = HistoryCacheEntry.model_validate(json.loads(json.dumps(entry.model_dump(mode="json"))))

    assert reloaded.data == series
    assert reloaded.price_history == history
    assert reloaded.last_updated == date(2024, 1, 9)


async def test_history_is_cached_for_the_day(cache, market, make_tx):
    today = date(2024, 1, 10)
    market.history = {"AAPL": {"2024-01-08": 100.0, "2024-01-09": 105.0}}
    transactions = [make_tx("AAPL", "BUY", 1, 90.0, 1.0, date(2024, 1, 8))]
    service = PortfolioHistoryService(market.get_multiple_historical_prices, cache)

    first = await service.load("user-1", transactions, today=today)
    second = await service.load("user-1", transactions, today=today)

    assert first == second
    assert len(first) == 3
    assert market.history_calls == [("AAPL", date(2024, 1, 8), today)]


async def test_next_day_fetches_only_the_delta(cache, market, make_tx):
    today = date(2024, 1, 10)
    market.history = {"AAPL": {"2024-01-08": 100.0, "2024-01-11": 120.0}}
    transactions = [make_tx("AAPL", "BUY", 1, 90.0, 1.0, date(2024, 1, 8))]
    service = PortfolioHistoryService(market.get_multiple_historical_prices, cache)

    await service.load("user-1", transactions, today=today)
    series = await service.load("user-1", transactions, today=today + timedelta(days=1))

    assert market.history_calls[-1] == ("AAPL", date(2024, 1, 11), date(2024, 1, 11))
    assert series[0].total_market_value == 100.0
    assert series[-1].total_market_value == 120.0


async def test_force_refresh_refetches_everything(cache, market, make_tx):
    today = date(2024, 1, 10)
    market.history = {"AAPL": {"2024-01-08": 100.0}}
    transactions = [make_tx("AAPL", "BUY", 1, 90.0, 1.0, date(2024, 1, 8))]
    service = PortfolioHistoryService(market.get_multiple_historical_prices, cache)

    await service.load("user-1", transactions, today=today)
    await service.load("user-1", transactions, today=today, force_refresh=True)

    assert market.history_calls == [("AAPL", date(2024, 1, 8), today)] * 2


async def test_result_is_not_cached_when_transactions_change_mid_load(cache, market, make_tx):
    transactions = [make_tx("AAPL", "BUY", 1, 90.0, 1.0, date(2024, 1, 8))]

    async def fetch_and_edit(tickers, start, end):
        invalidate_portfolio_caches(cache, "user-1")
        return await market.get_multiple_historical_prices(tickers, start, end)

    service = PortfolioHistoryService(fetch_and_edit, cache)
    series = await service.load("user-1", transactions, today=date(2024, 1, 9))

    assert len(series) == 2
    assert cache.get(HISTORY_KEY, user_id="user-1") is None


async def test_unreadable_cache_entry_is_rebuilt(cache, market, make_tx):
    cache.set({"unexpected": True}, HISTORY_KEY, user_id="user-1")
    transactions = [make_tx("AAPL", "BUY", 1, 90.0, 1.0, date(2024, 1, 8))]
    service = PortfolioHistoryService(market.get_multiple_historical_prices, cache)

    series = await service.load("user-1", transactions, today=date(2024, 1, 8))

    assert len(series) == 1
    assert len(market.history_calls) == 1
