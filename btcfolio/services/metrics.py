"""
btcfolio/services/metrics.py

Point-in-time portfolio totals: BTC held, cost basis, fees, value and
unrealized gain. One pass over the transactions, no lots.

Only buys and sells move `total_btc` here. Deposits, withdrawals and interest
are reported separately by summarize_transfers() and never change the
aggregator totals.

build_portfolio_summary() combines the aggregator with the holdings
classifier, the transfer totals and the per-lot tax liability of the
cost-basis engine, for the dashboard summary.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Union

from btcfolio.schemas.portfolio import (
    CostBasisMethod,
    PortfolioMetrics,
    PortfolioSummary,
    TransferMetrics,
)
from btcfolio.schemas.transaction import (
    ZERO,
    TransactionBase,
    TransactionType,
    fee_in_fiat,
    to_decimal,
    usd_fee,
)
from btcfolio.services.cost_basis import compute_cost_basis
from btcfolio.services.dates import resolve_now
from btcfolio.services.holdings import classify_holdings

logger = logging.getLogger(__name__)


def aggregate_metrics(
    transactions: Iterable[TransactionBase],
    current_price: Union[float, Decimal],
) -> PortfolioMetrics:
    """
    Single fold over the transactions:
      - total_btc: + BTC received on buys, - BTC sent on sells
      - total_cost_basis: fiat spent + fiat fee, on buys only
      - total_fees: every fee in fiat; BTC fees use the transaction's own price
      - total_transactions: buys and sells only
    """
    total_btc = ZERO
    total_cost_basis = ZERO
    total_fees = ZERO
    total_transactions = 0

    for tx in transactions:
        if tx.type == TransactionType.BUY:
            total_btc += tx.received_amount
            total_cost_basis += tx.sent_amount + usd_fee(tx)
            total_transactions += 1
        elif tx.type == TransactionType.SELL:
            total_btc -= tx.sent_amount
            total_transactions += 1

        total_fees += fee_in_fiat(tx)

    if total_btc < 0:
        logger.warning(f"Sells exceed buys by {-total_btc:.8f} BTC; clamping total_btc to 0.")
    total_btc = max(ZERO, total_btc)
    total_cost_basis = max(ZERO, total_cost_basis)

    current_value = total_btc * to_decimal(current_price)
    unrealized_gain = current_value - total_cost_basis
    unrealized_gain_percent = (unrealized_gain / total_cost_basis) * 100 if total_cost_basis > 0 else ZERO
    average_buy_price = total_cost_basis / total_btc if total_btc > 0 else ZERO

    return PortfolioMetrics(
        total_btc=float(total_btc),
        total_cost_basis=float(total_cost_basis),
        total_fees=float(total_fees),
        current_value=float(current_value),
        unrealized_gain=float(unrealized_gain),
        unrealized_gain_percent=float(unrealized_gain_percent),
        average_buy_price=float(average_buy_price),
        total_transactions=total_transactions,
    )


def summarize_transfers(transactions: Iterable[TransactionBase]) -> TransferMetrics:
    """
    BTC moved in (deposits) and out (withdrawals) of the portfolio's wallets.
    """
    total_sent = ZERO
    total_received = ZERO
    for tx in transactions:
        if tx.type == TransactionType.WITHDRAWAL:
            total_sent += tx.sent_amount
        elif tx.type == TransactionType.DEPOSIT:
            total_received += tx.received_amount

    return TransferMetrics(
        total_sent=float(total_sent),
        total_received=float(total_received),
        net_transfers=float(total_received - total_sent),
    )


def build_portfolio_summary(
    transactions: Iterable[TransactionBase],
    current_price: Union[float, Decimal],
    now: Optional[datetime] = None,
    method: Union[str, CostBasisMethod] = CostBasisMethod.FIFO,
) -> PortfolioSummary:
    transactions = list(transactions)
    now = resolve_now(now)

    metrics = aggregate_metrics(transactions, current_price)
    holdings = classify_holdings(transactions, now)
    cost_basis = compute_cost_basis(transactions, method, current_price, now)

    return PortfolioSummary(
        **metrics.model_dump(),
        short_term_holdings=holdings.short_term,
        long_term_holdings=holdings.long_term,
        send_receive_metrics=summarize_transfers(transactions),
        potential_tax_liability_st=cost_basis.potential_tax_liability_st,
        potential_tax_liability_lt=cost_basis.potential_tax_liability_lt,
    )
