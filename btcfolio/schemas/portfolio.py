"""
btcfolio/schemas/portfolio.py

Result models returned by the calculation services and serialized by the
portfolio router. Fields typed Optional use None for "not applicable"
(e.g. not enough history), which is distinct from a computed 0.
"""

from enum import Enum
from datetime import date as date_cls, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class CostBasisMethod(str, Enum):
    FIFO = "FIFO"
    LIFO = "LIFO"
    HIFO = "HIFO"


# -------------------------------------------------
# COST BASIS
# -------------------------------------------------

class LotRead(BaseModel):
    """A lot still held after all sells were matched."""
    acquisition_date: datetime
    amount: float
    cost_basis: float
    unit_price: float
    is_long_term: bool


class CostBasisResult(BaseModel):
    method: CostBasisMethod
    total_cost_basis: float = 0.0
    average_cost: float = 0.0
    realized_gains: float = 0.0
    remaining_btc: float = 0.0
    current_value: float = 0.0
    unrealized_gain: float = 0.0
    unrealized_gain_percent: float = 0.0
    potential_tax_liability_st: float = 0.0
    potential_tax_liability_lt: float = 0.0
    unmatched_sell_btc: float = Field(
        default=0.0,
        description="BTC sold with no lot left to match it against."
    )
    lots: List[LotRead] = Field(default_factory=list)


# -------------------------------------------------
# HOLDINGS / TAX
# -------------------------------------------------

class HoldingsClassification(BaseModel):
    short_term: float = 0.0
    long_term: float = 0.0


class TaxLiabilityEstimate(BaseModel):
    short_term: float = 0.0
    long_term: float = 0.0
    total: float = 0.0


# -------------------------------------------------
# POINT-IN-TIME METRICS
# -------------------------------------------------

class PortfolioMetrics(BaseModel):
    total_btc: float = 0.0
    total_cost_basis: float = 0.0
    total_fees: float = 0.0
    current_value: float = 0.0
    unrealized_gain: float = 0.0
    unrealized_gain_percent: float = 0.0
    average_buy_price: float = 0.0
    total_transactions: int = 0


class TransferMetrics(BaseModel):
    total_sent: float = 0.0
    total_received: float = 0.0
    net_transfers: float = 0.0


class PortfolioSummary(PortfolioMetrics):
    short_term_holdings: float = 0.0
    long_term_holdings: float = 0.0
    send_receive_metrics: TransferMetrics = Field(default_factory=TransferMetrics)
    potential_tax_liability_st: float = 0.0
    potential_tax_liability_lt: float = 0.0


# -------------------------------------------------
# PERFORMANCE
# -------------------------------------------------

class PortfolioPoint(BaseModel):
    """Portfolio state at one date of the reconstructed history."""
    date: datetime
    btc: float
    usd_value: float
    investment: float


class ReturnWindow(BaseModel):
    percent: Optional[float] = None
    dollar: Optional[float] = None


class CumulativeReturns(BaseModel):
    total: ReturnWindow = Field(default_factory=lambda: ReturnWindow(percent=0.0, dollar=0.0))
    day: ReturnWindow = Field(default_factory=ReturnWindow)
    week: ReturnWindow = Field(default_factory=ReturnWindow)
    month: ReturnWindow = Field(default_factory=ReturnWindow)
    three_month: ReturnWindow = Field(default_factory=ReturnWindow)
    ytd: ReturnWindow = Field(default_factory=ReturnWindow)
    year: ReturnWindow = Field(default_factory=ReturnWindow)
    two_year: ReturnWindow = Field(default_factory=ReturnWindow)
    three_year: ReturnWindow = Field(default_factory=ReturnWindow)
    four_year: ReturnWindow = Field(default_factory=ReturnWindow)
    five_year: ReturnWindow = Field(default_factory=ReturnWindow)


class CompoundGrowth(BaseModel):
    """CAGR per horizon, in percent."""
    total: Optional[float] = None
    one_year: Optional[float] = None
    two_year: Optional[float] = None
    three_year: Optional[float] = None
    four_year: Optional[float] = None
    five_year: Optional[float] = None
    six_year: Optional[float] = None
    seven_year: Optional[float] = None
    eight_year: Optional[float] = None
    approximate: Optional[float] = None
    is_approximate: bool = False


class AllTimeHigh(BaseModel):
    price: float = 0.0
    date: Optional[date_cls] = None


class MaxDrawdown(BaseModel):
    percent: float = 0.0
    from_date: Optional[date_cls] = None
    to_date: Optional[date_cls] = None
    portfolio_ath: float = 0.0
    portfolio_low: float = 0.0


class PerformanceMetrics(BaseModel):
    cumulative: CumulativeReturns = Field(default_factory=CumulativeReturns)
    compound_growth: CompoundGrowth = Field(default_factory=CompoundGrowth)
    all_time_high: AllTimeHigh = Field(default_factory=AllTimeHigh)
    max_drawdown: MaxDrawdown = Field(default_factory=MaxDrawdown)
    hodl_time: int = 0
    current_price: float = 0.0
    average_buy_price: float = 0.0
    lowest_buy_price: float = 0.0
    highest_buy_price: float = 0.0


class DCAPerformance(BaseModel):
    dca_return: float = 0.0
    lump_sum_return: float = 0.0
    outperformance: float = 0.0


# -------------------------------------------------
# MONTHLY SERIES
# -------------------------------------------------

class MonthlyPoint(BaseModel):
    month: str  # YYYY-MM
    date: date_cls  # month end
    portfolio_value: float
    cost_basis: float
    cumulative_btc: float
    btc_price: float
    is_current_month: bool
