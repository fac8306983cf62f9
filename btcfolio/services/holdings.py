"""
btcfolio/services/holdings.py

Short-term / long-term split of BTC holdings and the tax helpers built on it.

This classifier does not track lots. Buys land in one of two buckets by date,
and every sell shrinks both buckets in proportion to their size. It is a
quick approximation for display, so it can disagree with the per-lot
classification of cost_basis.py for the same history. The two are kept
separate on purpose and are not reconciled.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from btcfolio.constants import LONG_TERM_TAX_RATE, SHORT_TERM_TAX_RATE
from btcfolio.schemas.portfolio import HoldingsClassification, TaxLiabilityEstimate
from btcfolio.schemas.transaction import (
    ZERO,
    TransactionBase,
    TransactionType,
    sort_chronologically,
    to_decimal,
)
from btcfolio.services.dates import resolve_now, years_ago

SHORT_TERM = "short-term"
LONG_TERM = "long-term"


def classify_holdings(
    transactions: Iterable[TransactionBase],
    now: Optional[datetime] = None,
) -> HoldingsClassification:
    """
    1) Every buy: short-term if dated after now - 1 year, else long-term.
    2) Every sell, in date order: reduce both buckets by their share of the total.
    3) Clamp both buckets at 0 after each sell.
    """
    now = resolve_now(now)
    one_year_ago = years_ago(now, 1)
    transactions = sort_chronologically(transactions)

    short_term = ZERO
    long_term = ZERO

    for tx in transactions:
        if tx.type != TransactionType.BUY:
            continue
        if tx.date > one_year_ago:
            short_term += tx.received_amount
        else:
            long_term += tx.received_amount

    for tx in transactions:
        if tx.type != TransactionType.SELL:
            continue
        total = short_term + long_term
        if total <= 0:
            continue
        short_ratio = short_term / total
        long_ratio = long_term / total
        short_term = max(ZERO, short_term - tx.sent_amount * short_ratio)
        long_term = max(ZERO, long_term - tx.sent_amount * long_ratio)

    return HoldingsClassification(short_term=float(short_term), long_term=float(long_term))


def estimate_tax_liability(
    unrealized_gain: float,
    short_term_ratio: float,
    long_term_ratio: float,
) -> TaxLiabilityEstimate:
    """
    Split an unrealized gain by holding ratio and apply the ST/LT rates.
    Losses owe nothing.
    """
    gain = to_decimal(unrealized_gain)
    if gain <= 0:
        return TaxLiabilityEstimate()

    short_term = gain * to_decimal(short_term_ratio) * SHORT_TERM_TAX_RATE
    long_term = gain * to_decimal(long_term_ratio) * LONG_TERM_TAX_RATE
    return TaxLiabilityEstimate(
        short_term=float(short_term),
        long_term=float(long_term),
        total=float(short_term + long_term),
    )


def calculate_realized_gain(sell_amount: float, sell_price: float, cost_basis_per_btc: float) -> float:
    amount = to_decimal(sell_amount)
    return float(amount * to_decimal(sell_price) - amount * to_decimal(cost_basis_per_btc))


def get_tax_classification(acquisition_date: datetime, disposal_date: datetime) -> str:
    """
    'long-term' when held for more than 365 days, otherwise 'short-term'.
    """
    if disposal_date - acquisition_date > timedelta(days=365):
        return LONG_TERM
    return SHORT_TERM
