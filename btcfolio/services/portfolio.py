"""
btcfolio/services/portfolio.py

Glue between storage and the pure calculation services. Each function fetches
the user's transactions and the prices it needs from the database, then hands
plain data to the calculation. The calculations themselves never touch the
session.

Calculation-level ValueErrors (unknown method or time range) become HTTP 400.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from btcfolio.schemas.portfolio import (
    CostBasisResult,
    DCAPerformance,
    HoldingsClassification,
    MonthlyPoint,
    PerformanceMetrics,
    PortfolioMetrics,
    PortfolioPoint,
    PortfolioSummary,
)
from btcfolio.services import bitcoin
from btcfolio.services.cost_basis import coerce_method, compare_cost_basis_methods, compute_cost_basis
from btcfolio.services.dates import resolve_now
from btcfolio.services.holdings import classify_holdings
from btcfolio.services.metrics import aggregate_metrics, build_portfolio_summary
from btcfolio.services.monthly import build_monthly_series
from btcfolio.services.performance import build_portfolio_history, calculate_dca_performance, compute_performance
from btcfolio.services.transaction import fetch_transactions

logger = logging.getLogger(__name__)


def _method_or_400(method: str):
    try:
        return coerce_method(method)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def get_metrics(db: Session, user_id: str) -> PortfolioMetrics:
    transactions = fetch_transactions(db, user_id)
    return aggregate_metrics(transactions, bitcoin.fetch_current_price(db))


def get_summary(db: Session, user_id: str, method: str = "FIFO", now: Optional[datetime] = None) -> PortfolioSummary:
    method = _method_or_400(method)
    transactions = fetch_transactions(db, user_id)
    return build_portfolio_summary(transactions, bitcoin.fetch_current_price(db), now, method)


def get_holdings(db: Session, user_id: str, now: Optional[datetime] = None) -> HoldingsClassification:
    return classify_holdings(fetch_transactions(db, user_id), now)


def get_cost_basis(
    db: Session,
    user_id: str,
    method: str = "FIFO",
    include_interest: bool = False,
    now: Optional[datetime] = None,
) -> CostBasisResult:
    method = _method_or_400(method)
    transactions = fetch_transactions(db, user_id)
    return compute_cost_basis(
        transactions, method, bitcoin.fetch_current_price(db), now, include_interest=include_interest
    )


def get_cost_basis_comparison(db: Session, user_id: str, now: Optional[datetime] = None) -> Dict[str, CostBasisResult]:
    transactions = fetch_transactions(db, user_id)
    results = compare_cost_basis_methods(transactions, bitcoin.fetch_current_price(db), now)
    return {method.value: result for method, result in results.items()}


def get_performance(db: Session, user_id: str, now: Optional[datetime] = None) -> PerformanceMetrics:
    now = resolve_now(now)
    transactions = fetch_transactions(db, user_id)
    current_price = bitcoin.fetch_current_price(db)
    ath_price, ath_date = bitcoin.fetch_ath(db)
    lookup = bitcoin.build_historical_price_lookup(db)
    return compute_performance(transactions, current_price, lookup, ath_price, ath_date, now)


def get_history(db: Session, user_id: str, now: Optional[datetime] = None) -> List[PortfolioPoint]:
    transactions = fetch_transactions(db, user_id)
    return build_portfolio_history(transactions, bitcoin.fetch_current_price(db), now)


def get_monthly(
    db: Session,
    user_id: str,
    time_range: str = "ALL",
    now: Optional[datetime] = None,
) -> List[MonthlyPoint]:
    transactions = fetch_transactions(db, user_id)
    closes = bitcoin.fetch_monthly_closes(db)
    try:
        return build_monthly_series(transactions, closes, bitcoin.fetch_current_price(db), now, time_range)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def get_dca(db: Session, user_id: str, now: Optional[datetime] = None) -> DCAPerformance:
    transactions = fetch_transactions(db, user_id)
    return calculate_dca_performance(transactions, bitcoin.fetch_current_price(db), now)
