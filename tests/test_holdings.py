from datetime import date

import pytest

from assets_tracker.services.holdings_service import (
    build_closed_position,
    calculate_holdings,
    calculate_realized_profit,
    find_holding,
    update_holding_with_live_data,
)

DAY1, DAY2, DAY3 = date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)


@pytest.fixture
def aapl_buys(make_tx):
    return [
        make_tx("AAPL", "BUY", 10, 100.0, 4.0, DAY1),
        make_tx("AAPL", "BUY", 5, 120.0, 4.1, DAY2),
    ]


def test_weighted_average_buy_price_and_invested(aapl_buys):
    [holding] = calculate_holdings(aapl_buys)

    assert holding.total_quantity == pytest.approx(15)
    assert holding.avg_buy_price == pytest.approx((10 * 100 + 5 * 120) / 15, abs=1e-9)
    assert holding.avg_exchange_rate == pytest.approx((10 * 4.0 + 5 * 4.1) / 15, abs=1e-9)
    assert holding.total_invested == pytest.approx(6460.0)
    assert [t.transaction_date for t in holding.transactions] == [DAY2, DAY1]


def test_sell_shrinks_cost_basis_proportionally(aapl_buys, make_tx):
    sell = make_tx("AAPL", "SELL", 5, 150.0, 4.2, DAY3)
    [holding] = calculate_holdings(aapl_buys + [sell])

    assert holding.total_quantity == pytest.approx(10)
    assert holding.total_invested == pytest.approx(6460.0 * 10 / 15)
    assert round(holding.total_invested, 2) == 4306.67


def test_input_order_does_not_matter(aapl_buys, make_tx):
    sell = make_tx("AAPL", "SELL", 5, 150.0, 4.2, DAY3)
    forward = calculate_holdings(aapl_buys + [sell])
    backward = calculate_holdings([sell] + list(reversed(aapl_buys)))

    assert forward[0].total_invested == pytest.approx(backward[0].total_invested)
    assert forward[0].avg_buy_price == pytest.approx(backward[0].avg_buy_price)


def test_recalculation_is_idempotent(aapl_buys, make_tx):
    transactions = aapl_buys + [make_tx("MSFT", "BUY", 3, 300.0, 4.0, DAY2)]

    first = [h.model_dump() for h in calculate_holdings(transactions)]
    second = [h.model_dump() for h in calculate_holdings(transactions)]

    assert first == second


def test_fully_sold_and_sell_only_tickers_are_omitted(make_tx):
    transactions = [
        make_tx("AAPL", "BUY", 5, 100.0, 4.0, DAY1),
        make_tx("AAPL", "SELL", 5, 110.0, 4.0, DAY2),
        make_tx("GHOST", "SELL", 1, 10.0, 1.0, DAY2),
        make_tx("CDR.WA", "BUY", 2, 150.0, 1.0, DAY1, currency="PLN"),
    ]

    holdings = calculate_holdings(transactions)

    assert [h.ticker for h in holdings] == ["CDR.WA"]
    assert find_holding(holdings, "AAPL") is None


def test_empty_ledger_has_no_holdings():
    assert calculate_holdings([]) == []


def test_realized_profit_formula():
    profit = calculate_realized_profit(100.0, 4.0, 150.0, 4.2, 5)
    assert profit == pytest.approx(5 * 150 * 4.2 - 5 * 100 * 4.0)


def test_closed_position_uses_holding_before_the_sell(aapl_buys, make_tx):
    sell = make_tx("AAPL", "SELL", 5, 150.0, 4.2, DAY3)

    closed = build_closed_position(aapl_buys, sell)

    avg_price = 1600 / 15
    avg_rate = 60.5 / 15
    assert closed["quantity_sold"] == 5
    assert closed["avg_buy_price"] == pytest.approx(avg_price)
    assert closed["avg_buy_rate"] == pytest.approx(avg_rate)
    assert closed["realized_profit"] == pytest.approx(5 * 150 * 4.2 - 5 * avg_price * avg_rate)
    assert closed["closed_date"] == DAY3


def test_closed_position_without_prior_holding_is_none(make_tx):
    sell = make_tx("AAPL", "SELL", 5, 150.0, 4.2, DAY3)
    assert build_closed_position([], sell) is None


def test_live_merge_returns_copy(aapl_buys):
    [holding] = calculate_holdings(aapl_buys)

    live = update_holding_with_live_data(holding, 130.0, 4.0, 1.5)
    again = update_holding_with_live_data(live, 130.0, 4.0, 1.5)

    assert holding.current_value is None
    assert live.current_value == pytest.approx(15 * 130.0 * 4.0)
    assert live.unrealized_return == pytest.approx(7800.0 - 6460.0)
    assert live.unrealized_return_percent == pytest.approx((7800.0 - 6460.0) / 6460.0 * 100)
    assert again.current_value == live.current_value
    assert again.unrealized_return == live.unrealized_return


def test_live_merge_with_zero_cost_basis_has_zero_percent(aapl_buys):
    [holding] = calculate_holdings(aapl_buys)
    holding = holding.model_copy(update={"total_invested": 0.0})

    live = update_holding_with_live_data(holding, 130.0, 4.0, 0.0)

    assert live.unrealized_return_percent == 0.0
