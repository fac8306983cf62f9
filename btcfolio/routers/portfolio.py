"""
btcfolio/routers/portfolio.py

Read-only analytics over the user's transactions:
 - /metrics, /summary: point-in-time totals
 - /holdings: short/long-term split
 - /cost-basis, /cost-basis/compare: FIFO / LIFO / HIFO lot matching
 - /performance, /history, /monthly, /dca: time-series metrics

Every request recomputes from the stored transactions and the latest stored
spot price. If no spot price has been stored, these endpoints return 503.
"""

from typing import Dict, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from btcfolio.constants import DEFAULT_USER_ID
from btcfolio.database import get_db
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
from btcfolio.services import portfolio as portfolio_service

router = APIRouter(tags=["portfolio"])


@router.get("/metrics", response_model=PortfolioMetrics)
def get_metrics(user_id: str = Query(DEFAULT_USER_ID), db: Session = Depends(get_db)):
    return portfolio_service.get_metrics(db, user_id)


@router.get("/summary", response_model=PortfolioSummary)
def get_summary(
    user_id: str = Query(DEFAULT_USER_ID),
    method: str = Query("FIFO", description="Lot matching for tax liability: FIFO, LIFO or HIFO"),
    db: Session = Depends(get_db),
):
    """
    Aggregator totals plus holdings split, transfer totals and the per-lot
    tax liability of the chosen method.
    """
    return portfolio_service.get_summary(db, user_id, method)


@router.get("/holdings", response_model=HoldingsClassification)
def get_holdings(user_id: str = Query(DEFAULT_USER_ID), db: Session = Depends(get_db)):
    return portfolio_service.get_holdings(db, user_id)


@router.get("/cost-basis", response_model=CostBasisResult)
def get_cost_basis(
    user_id: str = Query(DEFAULT_USER_ID),
    method: str = Query("FIFO", description="FIFO, LIFO or HIFO"),
    include_interest: bool = Query(False, description="Treat interest as zero-cost lots"),
    db: Session = Depends(get_db),
):
    return portfolio_service.get_cost_basis(db, user_id, method, include_interest)


@router.get("/cost-basis/compare", response_model=Dict[str, CostBasisResult])
def compare_cost_basis(user_id: str = Query(DEFAULT_USER_ID), db: Session = Depends(get_db)):
    return portfolio_service.get_cost_basis_comparison(db, user_id)


@router.get("/performance", response_model=PerformanceMetrics)
def get_performance(user_id: str = Query(DEFAULT_USER_ID), db: Session = Depends(get_db)):
    """
    Cumulative returns, CAGR, max drawdown and HODL time. Fields that lack
    enough history are null rather than 0.
    """
    return portfolio_service.get_performance(db, user_id)


@router.get("/history", response_model=List[PortfolioPoint])
def get_history(user_id: str = Query(DEFAULT_USER_ID), db: Session = Depends(get_db)):
    return portfolio_service.get_history(db, user_id)


@router.get("/monthly", response_model=List[MonthlyPoint])
def get_monthly(
    user_id: str = Query(DEFAULT_USER_ID),
    time_range: str = Query("ALL", alias="range", description="ALL, 6M, 1Y, 2Y, 3Y or 5Y"),
    db: Session = Depends(get_db),
):
    return portfolio_service.get_monthly(db, user_id, time_range)


@router.get("/dca", response_model=DCAPerformance)
def get_dca(user_id: str = Query(DEFAULT_USER_ID), db: Session = Depends(get_db)):
    return portfolio_service.get_dca(db, user_id)
