"""
btcfolio/services/cost_basis.py

Lot-based cost basis for the BTC still held, realized gains on sells, and the
tax that would be owed on today's unrealized gains.

How it works:
 - Every buy becomes a Lot (fiat spent + fiat fee, unit price at purchase).
 - Lots are ordered once by the chosen method: FIFO (oldest first),
   LIFO (newest first) or HIFO (highest unit price first).
 - Sells are replayed in date order, each one consuming lots from the front
   of that ordering. Proportional cost basis leaves the lot with the BTC.
 - What is left defines current holdings, their cost basis, and per-lot
   short/long-term tax liability.

Lots only live for the duration of one call. Nothing is cached: every call
recomputes from the full transaction list. All lot arithmetic is Decimal;
results are converted to float only when the response model is built.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union

from btcfolio.constants import (
    LONG_TERM_TAX_RATE,
    LOT_EPSILON,
    SHORT_TERM_TAX_RATE,
)
from btcfolio.schemas.portfolio import CostBasisMethod, CostBasisResult, LotRead
from btcfolio.schemas.transaction import (
    ZERO,
    TransactionBase,
    TransactionType,
    sort_chronologically,
    to_decimal,
    usd_fee,
)
from btcfolio.services.dates import resolve_now, years_ago

logger = logging.getLogger(__name__)


@dataclass
class Lot:
    """
    A batch of BTC acquired in one transaction. `amount` and `cost_basis`
    shrink as sells consume the lot.
    """
    acquisition_date: datetime
    amount: Decimal
    cost_basis: Decimal
    unit_price: Decimal


def coerce_method(method: Union[str, CostBasisMethod]) -> CostBasisMethod:
    """
    Accepts 'fifo', 'FIFO', CostBasisMethod.FIFO, ... Raises ValueError otherwise.
    """
    if isinstance(method, CostBasisMethod):
        return method
    try:
        return CostBasisMethod(str(method).strip().upper())
    except ValueError:
        raise ValueError(f"Unknown cost basis method: {method!r}. Use FIFO, LIFO or HIFO.")


def build_lots(transactions: Iterable[TransactionBase], include_interest: bool = False) -> List[Lot]:
    """
    One lot per buy. Interest, when included, enters at zero cost basis since
    it was taxed as income on receipt.
    """
    lots: List[Lot] = []
    for tx in sort_chronologically(transactions):
        if tx.type == TransactionType.BUY:
            cost_basis = tx.sent_amount + usd_fee(tx)
            unit_price = tx.price if tx.price else tx.sent_amount / tx.received_amount
            lots.append(Lot(tx.date, tx.received_amount, cost_basis, unit_price))
        elif include_interest and tx.type == TransactionType.INTEREST:
            lots.append(Lot(tx.date, tx.received_amount, ZERO, tx.price or ZERO))
    return lots


def order_lots(lots: List[Lot], method: CostBasisMethod) -> List[Lot]:
    """
    Sorted copies keep chronological order between ties, since `lots`
    arrives in date order and Python's sort is stable.
    """
    if method == CostBasisMethod.FIFO:
        return sorted(lots, key=lambda lot: lot.acquisition_date)
    if method == CostBasisMethod.LIFO:
        return sorted(lots, key=lambda lot: lot.acquisition_date, reverse=True)
    return sorted(lots, key=lambda lot: lot.unit_price, reverse=True)


def match_sell(lots: List[Lot], btc_sold: Decimal, sell_unit_price: Decimal) -> tuple:
    """
    Consume `btc_sold` from the front of `lots` (mutated in place).

    Returns (realized_gain, unmatched_btc). unmatched_btc is what could not be
    matched because the lots ran out.
    """
    realized_gain = ZERO
    remaining = btc_sold

    while remaining > LOT_EPSILON and lots:
        lot = lots[0]
        consumed = min(remaining, lot.amount)
        basis_removed = lot.cost_basis * (consumed / lot.amount) if lot.amount > 0 else ZERO

        realized_gain += consumed * sell_unit_price - basis_removed

        lot.amount -= consumed
        lot.cost_basis -= basis_removed
        if lot.amount <= LOT_EPSILON:
            lots.pop(0)

        remaining -= consumed

    unmatched = remaining if remaining > LOT_EPSILON else ZERO
    return realized_gain, unmatched


def compute_cost_basis(
    transactions: Iterable[TransactionBase],
    method: Union[str, CostBasisMethod],
    current_price: Union[float, Decimal],
    now: Optional[datetime] = None,
    include_interest: bool = False,
) -> CostBasisResult:
    """
    Cost basis, realized/unrealized gains and potential tax liability under
    FIFO, LIFO or HIFO lot matching.

    Args:
      transactions: validated transactions, any order.
      method: FIFO | LIFO | HIFO.
      current_price: spot BTC price in fiat.
      now: reference time for the one-year holding period.
      include_interest: also treat interest as zero-cost lots.

    A sell larger than the remaining lots is not an error: the engine stops
    consuming, logs a warning and reports the shortfall in `unmatched_sell_btc`.
    """
    method = coerce_method(method)
    now = resolve_now(now)
    current_price = to_decimal(current_price)
    transactions = sort_chronologically(transactions)

    # 1-2) Lots in matching order
    lots = order_lots(build_lots(transactions, include_interest), method)

    # 3) Replay sells in date order (not lot order)
    realized_gains = ZERO
    unmatched_total = ZERO
    for tx in transactions:
        if tx.type != TransactionType.SELL:
            continue
        sell_unit_price = tx.received_amount / tx.sent_amount if tx.sent_amount > 0 else ZERO
        gain, unmatched = match_sell(lots, tx.sent_amount, sell_unit_price)
        realized_gains += gain
        if unmatched > 0:
            unmatched_total += unmatched
            logger.warning(
                f"Sell {tx.id} on {tx.date.date()} exceeds available lots by {unmatched:.8f} BTC; "
                f"realized gain excludes the unmatched amount."
            )

    # 4) Remaining holdings
    total_cost_basis = sum((lot.cost_basis for lot in lots), ZERO)
    remaining_btc = sum((lot.amount for lot in lots), ZERO)
    average_cost = total_cost_basis / remaining_btc if remaining_btc > 0 else ZERO

    # 5) Mark to market
    current_value = remaining_btc * current_price
    unrealized_gain = current_value - total_cost_basis
    unrealized_gain_percent = (unrealized_gain / total_cost_basis) * 100 if total_cost_basis > 0 else ZERO

    # 6) Per-lot tax liability
    one_year_ago = years_ago(now, 1)
    tax_st = ZERO
    tax_lt = ZERO
    lot_rows = []
    for lot in lots:
        is_long_term = lot.acquisition_date <= one_year_ago
        lot_gain = lot.amount * current_price - lot.cost_basis
        if lot_gain > 0:
            if is_long_term:
                tax_lt += lot_gain * LONG_TERM_TAX_RATE
            else:
                tax_st += lot_gain * SHORT_TERM_TAX_RATE
        lot_rows.append(LotRead(
            acquisition_date=lot.acquisition_date,
            amount=float(lot.amount),
            cost_basis=float(lot.cost_basis),
            unit_price=float(lot.unit_price),
            is_long_term=is_long_term,
        ))

    return CostBasisResult(
        method=method,
        total_cost_basis=float(total_cost_basis),
        average_cost=float(average_cost),
        realized_gains=float(realized_gains),
        remaining_btc=float(remaining_btc),
        current_value=float(current_value),
        unrealized_gain=float(unrealized_gain),
        unrealized_gain_percent=float(unrealized_gain_percent),
        potential_tax_liability_st=float(tax_st),
        potential_tax_liability_lt=float(tax_lt),
        unmatched_sell_btc=float(unmatched_total),
        lots=lot_rows,
    )


def compare_cost_basis_methods(
    transactions: Iterable[TransactionBase],
    current_price: Union[float, Decimal],
    now: Optional[datetime] = None,
) -> Dict[CostBasisMethod, CostBasisResult]:
    """
    Run all three methods over the same transactions and reference time.
    """
    transactions = list(transactions)
    now = resolve_now(now)
    return {
        method: compute_cost_basis(transactions, method, current_price, now)
        for method in CostBasisMethod
    }
