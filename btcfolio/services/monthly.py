"""
btcfolio/services/monthly.py

Month-by-month portfolio series for charting: BTC held, money put in and
portfolio value at each month end, priced with the BTC monthly close
(the current month uses the live price).
"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Mapping, Optional

from btcfolio.constants import MONTHLY_RANGES
from btcfolio.schemas.portfolio import MonthlyPoint
from btcfolio.schemas.transaction import ZERO, TransactionBase, TransactionType, sort_chronologically, usd_fee
from btcfolio.services.dates import end_of_month, month_key, month_start, months_ago, next_month_start, resolve_now

logger = logging.getLogger(__name__)

ALL_TIME = "ALL"


def _closes_by_month(monthly_closes: Mapping[date, float]) -> dict:
    return {
        month_key(day): float(close)
        for day, close in sorted(monthly_closes.items())
        if close is not None
    }


def _close_for_month(closes: dict, key: str) -> float:
    """
    The month's close, else the latest close before it, else 0.
    Keys are 'YYYY-MM' so string order is chronological.
    """
    if key in closes:
        return closes[key]
    earlier = [k for k in closes if k < key]
    if earlier:
        return closes[max(earlier)]
    return 0.0


def build_monthly_series(
    transactions: Iterable[TransactionBase],
    monthly_closes: Mapping[date, float],
    current_price: float,
    now: Optional[datetime] = None,
    time_range: str = ALL_TIME,
) -> List[MonthlyPoint]:
    """
    One MonthlyPoint per calendar month, oldest first.

    time_range: 'ALL' starts at the first transaction's month; '6M', '1Y',
    '2Y', '3Y', '5Y' start that many months before the current month.
    Transactions before the start still count toward the opening balance;
    transactions after `now` are left out.

    Cost basis is buy fiat + fiat fees and is never reduced by sells.
    """
    now = resolve_now(now)
    time_range = (time_range or ALL_TIME).upper()
    if time_range != ALL_TIME and time_range not in MONTHLY_RANGES:
        raise ValueError(f"Unknown time range: {time_range}. Use ALL or one of {', '.join(MONTHLY_RANGES)}.")

    transactions = [
        tx for tx in sort_chronologically(transactions)
        if tx.type in (TransactionType.BUY, TransactionType.SELL) and tx.date <= now
    ]
    if not transactions:
        return []

    if time_range == ALL_TIME:
        cursor = month_start(transactions[0].date)
    else:
        cursor = month_start(months_ago(month_start(now), MONTHLY_RANGES[time_range]))

    closes = _closes_by_month(monthly_closes)
    current_key = month_key(now)

    cumulative_btc = ZERO
    cost_basis = ZERO
    pending = iter(transactions)
    next_tx = next(pending, None)

    series: List[MonthlyPoint] = []
    while month_key(cursor) <= current_key:
        boundary = next_month_start(cursor)
        while next_tx is not None and next_tx.date < boundary:
            if next_tx.type == TransactionType.BUY:
                cumulative_btc += next_tx.received_amount
                cost_basis += next_tx.sent_amount + usd_fee(next_tx)
            else:
                cumulative_btc -= next_tx.sent_amount
            next_tx = next(pending, None)

        key = month_key(cursor)
        is_current = key == current_key
        btc_price = float(current_price) if is_current else _close_for_month(closes, key)

        series.append(MonthlyPoint(
            month=key,
            date=end_of_month(cursor.date()),
            portfolio_value=float(cumulative_btc) * btc_price,
            cost_basis=float(cost_basis),
            cumulative_btc=float(cumulative_btc),
            btc_price=btc_price,
            is_current_month=is_current,
        ))
        cursor = boundary

    logger.debug(f"Built {len(series)} monthly points for range {time_range}")
    return series
