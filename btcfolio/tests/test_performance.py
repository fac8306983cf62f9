"""
Value history, cumulative returns, CAGR, drawdown, HODL time and DCA.
"""

import logging
from datetime import date, datetime, timedelta, timezone

import pytest

from btcfolio.schemas.portfolio import PortfolioPoint
from btcfolio.schemas.transaction import parse_transaction
from btcfolio.services.dates import years_ago, years_between
from btcfolio.services.performance import (
    build_portfolio_history,
    calculate_approximate_cagr,
    calculate_cagr,
    calculate_days_since_ath,
    calculate_dca_performance,
    calculate_drawdown_from_ath_amount,
    calculate_drawdown_from_ath_ratio,
    calculate_hodl_time,
    calculate_max_drawdown_amount,
    compute_max_drawdown,
    compute_performance,
)


def no_prices(target):
    return None


def yearly_prices(prices):
    """Lookup answering by calendar year."""
    def lookup(target):
        return prices.get(target.year)
    return lookup


def series(values, start=datetime(2024, 1, 1, tzinfo=timezone.utc)):
    return [
        PortfolioPoint(date=start + timedelta(days=30 * i), btc=1.0, usd_value=v, investment=100.0)
        for i, v in enumerate(values)
    ]


# ---------------------------------------------------------
# History
# ---------------------------------------------------------

def test_history_empty_without_trades(txs, now):
    assert build_portfolio_history([txs.deposit(1.0, days_ago=10)], 50000, now) == []


def test_history_fills_missing_months(txs, now):
    buy = txs.buy(1.0, 30000, at=datetime(2025, 1, 10, tzinfo=timezone.utc))
    points = build_portfolio_history([buy], 50000, now)

    assert [p.date for p in points] == [
        datetime(2025, 1, 10, tzinfo=timezone.utc),
        datetime(2025, 2, 1, tzinfo=timezone.utc),
        datetime(2025, 3, 1, tzinfo=timezone.utc),
        datetime(2025, 4, 1, tzinfo=timezone.utc),
        datetime(2025, 5, 1, tzinfo=timezone.utc),
        now,
    ]
    assert points[0].usd_value == pytest.approx(30000)
    assert all(p.usd_value == pytest.approx(50000) for p in points[1:])
    assert all(p.investment == pytest.approx(30000) for p in points)


def test_history_reprices_recent_points(txs, now):
    points = build_portfolio_history([txs.buy(1.0, 30000, days_ago=10)], 50000, now)
    assert points[0].usd_value == pytest.approx(50000)


def test_history_reprices_points_without_price(now):
    tx = parse_transaction({
        "type": "buy", "date": now - timedelta(days=100), "sent_amount": 3000, "received_amount": 0.1,
    })
    points = build_portfolio_history([tx], 50000, now)
    assert points[0].usd_value == pytest.approx(5000)


def test_sells_leave_investment_alone(txs, now):
    points = build_portfolio_history([
        txs.buy(1.0, 20000, days_ago=90, fee=20),
        txs.sell(0.5, 15000, days_ago=80),
    ], 40000, now)
    sell_point = points[1]
    assert sell_point.btc == pytest.approx(0.5)
    assert sell_point.investment == pytest.approx(20020)


# ---------------------------------------------------------
# Cumulative returns
# ---------------------------------------------------------

def test_short_history_is_null_not_zero(txs, now):
    buy = txs.buy(1.0, 50000, at=now - timedelta(hours=12))
    result = compute_performance([buy], 50000, no_prices, 60000, date(2024, 12, 17), now)

    assert result.cumulative.total.percent == 0
    assert result.cumulative.total.dollar == 0
    assert result.cumulative.day.percent is None
    assert result.cumulative.year.dollar is None
    assert result.compound_growth.total is None
    assert result.compound_growth.one_year is None
    assert result.compound_growth.approximate is None
    assert result.compound_growth.is_approximate is False


def test_day_old_portfolio_has_no_long_horizons(txs, now):
    buy = txs.buy(1.0, 50000, days_ago=1)
    result = compute_performance([buy], 55000, yearly_prices({2024: 60000}), 0, None, now)

    assert result.compound_growth.one_year is None
    assert result.cumulative.five_year.percent is None
    assert result.cumulative.year.dollar is None
    assert result.cumulative.total.percent == pytest.approx(10)


def test_total_return(txs, now):
    result = compute_performance([txs.buy(0.5, 10000, days_ago=100)], 30000, no_prices, 0, None, now)
    assert result.cumulative.total.percent == pytest.approx(50)
    assert result.cumulative.total.dollar == pytest.approx(5000)
    assert result.average_buy_price == pytest.approx(20000)


def test_year_window_uses_value_at_window_start(txs, now):
    buy = txs.buy(1.0, 20000, at=years_ago(now, 1) - timedelta(days=1))
    result = compute_performance([buy], 30000, yearly_prices({2024: 20000}), 0, None, now)

    assert result.cumulative.year.percent == pytest.approx(50)
    assert result.cumulative.year.dollar == pytest.approx(10000)
    assert result.cumulative.two_year.percent is None


# ---------------------------------------------------------
# CAGR
# ---------------------------------------------------------

def test_cagr_per_horizon_uses_historical_price(txs, now):
    buy = txs.buy(1.0, 30000, at=years_ago(now, 2))
    lookup = yearly_prices({2023: 30000, 2024: 40000})
    growth = compute_performance([buy], 60000, lookup, 0, None, now).compound_growth

    one_year = years_between(years_ago(now, 1), now)
    two_year = years_between(years_ago(now, 2), now)
    assert growth.one_year == pytest.approx((1.5 ** (1 / one_year) - 1) * 100)
    assert growth.two_year == pytest.approx((2.0 ** (1 / two_year) - 1) * 100)
    assert growth.three_year is None
    assert growth.total == pytest.approx((2.0 ** (1 / two_year) - 1) * 100, rel=1e-3)
    assert growth.is_approximate is False


def test_failing_lookup_nulls_horizon(txs, now, caplog):
    def broken(target):
        raise RuntimeError("price store offline")

    buy = txs.buy(1.0, 30000, at=years_ago(now, 2))
    with caplog.at_level(logging.WARNING, logger="btcfolio.services.performance"):
        growth = compute_performance([buy], 60000, broken, 0, None, now).compound_growth

    assert growth.one_year is None
    assert growth.two_year is None
    assert growth.total is not None
    assert "price store offline" in caplog.text


def test_missing_price_nulls_horizon(txs, now):
    buy = txs.buy(1.0, 30000, at=years_ago(now, 2))
    growth = compute_performance([buy], 60000, yearly_prices({2023: 30000}), 0, None, now).compound_growth
    assert growth.two_year is not None
    assert growth.one_year is None


def test_approximate_cagr_for_short_history(txs, now):
    buy = txs.buy(1.0, 40000, days_ago=180)
    growth = compute_performance([buy], 50000, no_prices, 0, None, now).compound_growth

    years = 180 / 365.25
    assert growth.total is None
    assert growth.is_approximate is True
    assert growth.approximate == pytest.approx((1.25 ** (1 / years) - 1) * 100)


def test_cagr_caps_and_nulls():
    assert calculate_cagr(1e6, 1, 0.1) == 9999.99
    assert calculate_cagr(1, 1e6, 0.1) == -99.99
    assert calculate_cagr(200, 100, 0.05) is None
    assert calculate_cagr(200, 0, 2) is None
    assert calculate_cagr(121, 100, 2) == pytest.approx(10)


def test_approximate_cagr_caps():
    assert calculate_approximate_cagr(1000, 1, 0.3) == 500
    assert calculate_approximate_cagr(1, 1000, 0.3) == -95
    assert calculate_approximate_cagr(110, 100, 0.2) is None


# ---------------------------------------------------------
# Drawdown / ATH
# ---------------------------------------------------------

def test_max_drawdown_from_global_peak():
    points = series([100, 50, 200, 150, 60, 120])
    result = compute_max_drawdown(points)

    assert result.percent == pytest.approx(70)
    assert result.portfolio_ath == 200
    assert result.portfolio_low == 60
    assert result.from_date == points[2].date.date()
    assert result.to_date == points[4].date.date()


def test_max_drawdown_finds_deeper_earlier_decline():
    result = compute_max_drawdown(series([300, 100, 400, 350]))
    assert result.percent == pytest.approx(200 / 3)
    assert result.portfolio_ath == 300


@pytest.mark.parametrize("values", [
    [100, 80, 120, 90, 130, 50, 70],
    [10, 9, 8, 20, 5, 30, 29],
    [500, 400, 450, 100, 600],
])
def test_max_drawdown_covers_every_adjacent_drop(values):
    result = compute_max_drawdown(series(values))
    for before, after in zip(values, values[1:]):
        if after < before:
            assert result.percent >= (before - after) / before * 100 - 1e-9


def test_max_drawdown_monotonic_rise_is_zero():
    result = compute_max_drawdown(series([100, 150, 200]))
    assert result.percent == 0
    assert result.from_date is None


def test_ath_helpers(now):
    assert calculate_drawdown_from_ath_ratio(50000, 40000) == pytest.approx(0.2)
    assert calculate_drawdown_from_ath_ratio(0, 40000) == 0
    assert calculate_drawdown_from_ath_amount(50000, 40000, 1.0) == pytest.approx(10000)
    assert calculate_drawdown_from_ath_amount(40000, 50000, 1.0) == 0
    assert calculate_max_drawdown_amount(50000, 0.5, 40) == pytest.approx(10000)
    assert calculate_days_since_ath(date(2025, 6, 5), now) == 10
    assert calculate_days_since_ath(None, now) == 0


def test_performance_reports_ath(txs, now):
    result = compute_performance(
        [txs.buy(1.0, 30000, days_ago=50)], 50000, no_prices,
        110000, datetime(2025, 1, 20, 15, tzinfo=timezone.utc), now,
    )
    assert result.all_time_high.price == 110000
    assert result.all_time_high.date == date(2025, 1, 20)


# ---------------------------------------------------------
# HODL / DCA
# ---------------------------------------------------------

def test_hodl_time(txs, now):
    buy = txs.buy(1.0, 30000, days_ago=100)
    sell = txs.sell(0.1, 4000, days_ago=20)
    assert calculate_hodl_time([buy, sell], now) == 20
    assert calculate_hodl_time([buy], now) == 100
    assert calculate_hodl_time([], now) == 0


def test_dca_vs_lump_sum(txs, now):
    transactions = [
        txs.buy(0.1, 2000, days_ago=300),
        txs.buy(0.1, 2000, days_ago=150),
        txs.buy(0.05, 2000, days_ago=60),
    ]
    result = calculate_dca_performance(transactions, 40000, now)

    assert result.dca_return == pytest.approx(50)
    assert result.lump_sum_return == pytest.approx(100)
    assert result.outperformance == pytest.approx(-50)


def test_dca_without_recent_buys(txs, now):
    result = calculate_dca_performance([txs.buy(1.0, 10000, days_ago=400)], 40000, now)
    assert result.dca_return == 0
    assert result.outperformance == 0


def test_performance_without_transactions(now):
    result = compute_performance([], 45000, no_prices, 70000, date(2024, 3, 14), now)
    assert result.current_price == 45000
    assert result.hodl_time == 0
    assert result.cumulative.total.percent == 0
    assert result.all_time_high.price == 70000


# ---------------------------------------------------------
# Transactions dated after now
# ---------------------------------------------------------

def test_history_ignores_transactions_after_now(txs, now):
    transactions = [
        txs.buy(1.0, 10000, days_ago=400),
        txs.buy(5.0, 150000, at=now + timedelta(days=3)),
    ]
    points = build_portfolio_history(transactions, 30000, now)

    dates = [p.date for p in points]
    assert dates == sorted(dates)
    assert dates[-1] == now
    assert all(d <= now for d in dates)
    assert points[-1].btc == pytest.approx(1.0)
    assert points[-1].investment == pytest.approx(10000)


def test_history_empty_when_only_future_trades(txs, now):
    assert build_portfolio_history([txs.buy(1.0, 30000, at=now + timedelta(days=1))], 50000, now) == []


def test_returns_ignore_transactions_after_now(txs, now):
    transactions = [
        txs.buy(1.0, 10000, days_ago=400),
        txs.buy(5.0, 150000, at=now + timedelta(days=40)),
    ]
    result = compute_performance(transactions, 30000, no_prices, 0, None, now)

    assert result.cumulative.total.dollar == pytest.approx(20000)
    assert result.cumulative.total.percent == pytest.approx(200)
    assert result.hodl_time == 400


def test_hodl_time_ignores_future_sell(txs, now):
    buy = txs.buy(1.0, 30000, days_ago=100)
    future_sell = txs.sell(0.5, 20000, at=now + timedelta(days=5))
    assert calculate_hodl_time([buy, future_sell], now) == 100


def test_dca_ignores_future_buys(txs, now):
    transactions = [
        txs.buy(0.1, 2000, days_ago=100),
        txs.buy(1.0, 1000, at=now + timedelta(days=10)),
    ]
    result = calculate_dca_performance(transactions, 40000, now)
    assert result.dca_return == pytest.approx(100)
    assert result.lump_sum_return == pytest.approx(100)
