"""
Month-end portfolio series.
"""

from datetime import date, datetime, timezone

import pytest

from btcfolio.services.monthly import build_monthly_series


@pytest.fixture
def trades(txs):
    return [
        txs.buy(1.0, 30000, at=datetime(2025, 3, 10, tzinfo=timezone.utc), fee=10),
        txs.sell(0.5, 20000, at=datetime(2025, 4, 20, tzinfo=timezone.utc)),
    ]


CLOSES = {
    date(2025, 3, 31): 35000,
    date(2025, 5, 31): 45000,
}


def test_all_range_starts_at_first_trade(trades, now):
    series = build_monthly_series(trades, CLOSES, 50000, now)

    assert [p.month for p in series] == ["2025-03", "2025-04", "2025-05", "2025-06"]
    assert [p.date for p in series] == [
        date(2025, 3, 31), date(2025, 4, 30), date(2025, 5, 31), date(2025, 6, 30),
    ]
    assert [p.portfolio_value for p in series] == pytest.approx([35000, 17500, 22500, 25000])
    assert [p.cumulative_btc for p in series] == pytest.approx([1.0, 0.5, 0.5, 0.5])


def test_missing_close_carries_previous(trades, now):
    april = build_monthly_series(trades, CLOSES, 50000, now)[1]
    assert april.btc_price == 35000


def test_current_month_uses_live_price(trades, now):
    series = build_monthly_series(trades, CLOSES, 50000, now)
    assert series[-1].is_current_month
    assert series[-1].btc_price == 50000
    assert not any(p.is_current_month for p in series[:-1])


def test_cost_basis_ignores_sells(trades, now):
    series = build_monthly_series(trades, CLOSES, 50000, now)
    assert all(p.cost_basis == pytest.approx(30010) for p in series)


def test_fixed_range_covers_whole_window(trades, now):
    series = build_monthly_series(trades, CLOSES, 50000, now, "6m")

    assert len(series) == 7
    assert series[0].month == "2024-12"
    assert series[0].cumulative_btc == 0
    assert series[0].btc_price == 0
    assert series[-1].month == "2025-06"


def test_earlier_trades_set_opening_balance(txs, now):
    old_buy = txs.buy(1.0, 20000, at=datetime(2023, 1, 10, tzinfo=timezone.utc))
    series = build_monthly_series([old_buy], {date(2024, 11, 30): 90000}, 100000, now, "6M")

    assert series[0].month == "2024-12"
    assert series[0].cumulative_btc == pytest.approx(1.0)
    assert series[0].cost_basis == pytest.approx(20000)
    assert series[0].portfolio_value == pytest.approx(90000)


def test_unknown_range_rejected(trades, now):
    with pytest.raises(ValueError):
        build_monthly_series(trades, CLOSES, 50000, now, "10Y")


def test_transfers_only_gives_empty_series(txs, now):
    assert build_monthly_series([txs.deposit(1.0, days_ago=40)], CLOSES, 50000, now) == []


def test_trades_after_now_left_out(trades, txs, now):
    later_this_month = txs.buy(2.0, 100000, at=datetime(2025, 6, 20, tzinfo=timezone.utc))
    series = build_monthly_series(trades + [later_this_month], CLOSES, 50000, now)

    assert series[-1].month == "2025-06"
    assert series[-1].cumulative_btc == pytest.approx(0.5)
    assert series[-1].cost_basis == pytest.approx(30010)
