"""
btcfolio/services/performance.py

Time-series performance of the portfolio: cumulative returns over fixed
windows, CAGR per horizon, max drawdown and HODL time.

The value history is rebuilt on every call by replaying buys and sells:
  1) one point per buy/sell, valued at that transaction's own price
  2) a closing point at `now`, valued at the current price
  3) one synthetic point per calendar month without a real point,
     carrying the previous balance forward at the current price
  4) points from the last 30 days (and any point valued at 0 while holding
     BTC) revalued at the current price

Historical prices come from a caller-supplied lookup (see
HistoricalPriceLookup). Nothing in this module does I/O. A lookup that has no
price for a date, or raises, only nulls the horizon that needed it.

None means "not enough history"; 0 is a computed zero.
"""

import logging
import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Protocol, Sequence, Union

from btcfolio.constants import (
    APPROX_CAGR_MAX,
    APPROX_CAGR_MAX_YEARS,
    APPROX_CAGR_MIN,
    APPROX_CAGR_MIN_YEARS,
    CAGR_HORIZONS,
    CAGR_MAX,
    CAGR_MIN,
    DCA_LOOKBACK_MONTHS,
    MIN_YEARS_FOR_TOTAL_CAGR,
    RECENT_REPRICE_DAYS,
)
from btcfolio.schemas.portfolio import (
    AllTimeHigh,
    CompoundGrowth,
    CumulativeReturns,
    DCAPerformance,
    MaxDrawdown,
    PerformanceMetrics,
    PortfolioPoint,
    ReturnWindow,
)
from btcfolio.schemas.transaction import (
    ZERO,
    TransactionBase,
    TransactionType,
    sort_chronologically,
    to_decimal,
    usd_fee,
)
from btcfolio.services.dates import (
    days_between,
    ensure_utc,
    is_within_days,
    months_ago,
    next_month_start,
    resolve_now,
    start_of_year,
    years_ago,
    years_between,
)

logger = logging.getLogger(__name__)

HORIZON_FIELDS = {
    1: "one_year",
    2: "two_year",
    3: "three_year",
    4: "four_year",
    5: "five_year",
    6: "six_year",
    7: "seven_year",
    8: "eight_year",
}


class HistoricalPriceLookup(Protocol):
    """BTC price in fiat on a given day, or None when unknown."""

    def __call__(self, target: date) -> Optional[float]:
        ...


# -------------------------------------------------
# GROWTH HELPERS
# -------------------------------------------------

def _annualized_percent(end_value: float, start_value: float, years: float, upper: float) -> float:
    try:
        return (math.pow(end_value / start_value, 1 / years) - 1) * 100
    except OverflowError:
        return upper


def calculate_cagr(end_value: float, start_value: float, years: float) -> Optional[float]:
    """
    Compound annual growth rate in percent, capped to [-99.99, 9999.99].
    None for non-positive inputs or less than a month of history.
    """
    if start_value <= 0 or years <= 0 or end_value <= 0:
        return None
    if years < 0.083:
        return None
    cagr = _annualized_percent(end_value, start_value, years, CAGR_MAX)
    return min(max(cagr, CAGR_MIN), CAGR_MAX)


def calculate_approximate_cagr(end_value: float, start_value: float, years: float) -> Optional[float]:
    """
    Annualized return for short histories (3 months or more), capped harder
    to [-95, 500] since annualizing a few months exaggerates the result.
    """
    if start_value <= 0 or years <= 0 or end_value <= 0:
        return None
    if years < APPROX_CAGR_MIN_YEARS:
        return None
    cagr = _annualized_percent(end_value, start_value, years, APPROX_CAGR_MAX)
    return min(max(cagr, APPROX_CAGR_MIN), APPROX_CAGR_MAX)


def calculate_btc_holdings_at_date(transactions: Iterable[TransactionBase], target: datetime) -> float:
    """BTC held at `target` from buys and sells dated on or before it."""
    btc = ZERO
    for tx in transactions:
        if tx.date > target:
            continue
        if tx.type == TransactionType.BUY:
            btc += tx.received_amount
        elif tx.type == TransactionType.SELL:
            btc -= tx.sent_amount
    return float(max(ZERO, btc))


# -------------------------------------------------
# ALL-TIME-HIGH HELPERS
# -------------------------------------------------

def calculate_drawdown_from_ath_ratio(ath_price: Optional[float], current_price: Optional[float]) -> float:
    """Fraction (not percent) the current price sits below the ATH."""
    if not ath_price or not current_price or ath_price <= 0:
        return 0.0
    return (ath_price - current_price) / ath_price


def calculate_drawdown_from_ath_amount(
    ath_price: Optional[float],
    current_price: Optional[float],
    total_btc: Optional[float],
) -> float:
    """Fiat the holdings are worth less than at the ATH price. Never negative."""
    if not ath_price or not current_price or not total_btc or ath_price <= 0 or total_btc <= 0:
        return 0.0
    return max(0.0, (ath_price - current_price) * total_btc)


def calculate_max_drawdown_amount(
    ath_price: Optional[float],
    total_btc: Optional[float],
    max_drawdown_percent: Optional[float],
) -> float:
    if (not ath_price or not total_btc or not max_drawdown_percent
            or ath_price <= 0 or total_btc <= 0 or max_drawdown_percent <= 0):
        return 0.0
    return ath_price * (max_drawdown_percent / 100) * total_btc


def calculate_days_since_ath(ath_date: Optional[Union[date, datetime]], now: Optional[datetime] = None) -> int:
    """Calendar days between the ATH date and today."""
    if ath_date is None:
        return 0
    today = resolve_now(now).date()
    if isinstance(ath_date, datetime):
        ath_date = ensure_utc(ath_date).date()
    return abs((today - ath_date).days)


# -------------------------------------------------
# HISTORY
# -------------------------------------------------

def _densify_monthly(points: List[PortfolioPoint], current_price: float, now: datetime) -> List[PortfolioPoint]:
    """
    Insert a point on the 1st of every month (after the first point's month,
    up to `now`) that has no point of its own.
    """
    if len(points) < 2:
        return points

    occupied = {(p.date.year, p.date.month) for p in points}
    synthetic = []
    cursor = next_month_start(points[0].date)

    while cursor < now:
        if (cursor.year, cursor.month) not in occupied:
            previous = points[0]
            for point in points:
                if point.date < cursor:
                    previous = point
                else:
                    break
            synthetic.append(PortfolioPoint(
                date=cursor,
                btc=previous.btc,
                usd_value=previous.btc * current_price,
                investment=previous.investment,
            ))
        cursor = next_month_start(cursor)

    if synthetic:
        points = sorted(points + synthetic, key=lambda p: p.date)
    return points


def build_portfolio_history(
    transactions: Iterable[TransactionBase],
    current_price: Union[float, Decimal],
    now: Optional[datetime] = None,
) -> List[PortfolioPoint]:
    """
    Reconstructed value history, sorted by date and ending at `now`. Empty
    when there are no buys or sells on or before `now`.

    `investment` only grows (buy fiat + fiat fee); sells lower the BTC
    balance but leave recorded investment alone. Transactions dated after
    `now` are not part of the history.
    """
    now = resolve_now(now)
    price = float(current_price)

    points: List[PortfolioPoint] = []
    btc = ZERO
    investment = ZERO

    for tx in sort_chronologically(transactions):
        if tx.date > now:
            continue
        if tx.type == TransactionType.BUY:
            btc += tx.received_amount
            investment += tx.sent_amount + usd_fee(tx)
        elif tx.type == TransactionType.SELL:
            btc -= tx.sent_amount
        else:
            continue
        points.append(PortfolioPoint(
            date=tx.date,
            btc=float(btc),
            usd_value=float(btc * (tx.price or ZERO)),
            investment=float(investment),
        ))

    if not points:
        return points

    points.append(PortfolioPoint(
        date=now,
        btc=float(btc),
        usd_value=float(btc) * price,
        investment=float(investment),
    ))
    points.sort(key=lambda p: p.date)

    points = _densify_monthly(points, price, now)

    for point in points:
        if is_within_days(point.date, now, RECENT_REPRICE_DAYS):
            point.usd_value = point.btc * price
        if point.usd_value <= 0 and point.btc > 0:
            point.usd_value = point.btc * price

    return points


def _point_at_or_before(points: Sequence[PortfolioPoint], target: datetime) -> Optional[PortfolioPoint]:
    found = None
    for point in points:
        if point.date <= target:
            found = point
        else:
            break
    return found


# -------------------------------------------------
# RETURNS
# -------------------------------------------------

def _window_return(
    points: Sequence[PortfolioPoint],
    first_date: datetime,
    window_start: datetime,
    now_value: float,
) -> ReturnWindow:
    if first_date > window_start:
        return ReturnWindow()
    past = _point_at_or_before(points, window_start)
    if past is None:
        return ReturnWindow()
    percent = (now_value / past.usd_value - 1) * 100 if past.usd_value > 0 else 0.0
    return ReturnWindow(percent=percent, dollar=now_value - past.usd_value)


def compute_cumulative_returns(
    points: Sequence[PortfolioPoint],
    current_value: float,
    total_investment: float,
    now: datetime,
) -> CumulativeReturns:
    if not points:
        return CumulativeReturns()

    first_date = points[0].date
    windows = {
        "day": now - timedelta(days=1),
        "week": now - timedelta(days=7),
        "month": months_ago(now, 1),
        "three_month": months_ago(now, 3),
        "ytd": start_of_year(now),
        "year": years_ago(now, 1),
        "two_year": years_ago(now, 2),
        "three_year": years_ago(now, 3),
        "four_year": years_ago(now, 4),
        "five_year": years_ago(now, 5),
    }

    total = ReturnWindow(
        percent=((current_value - total_investment) / total_investment) * 100 if total_investment > 0 else 0.0,
        dollar=current_value - total_investment,
    )
    return CumulativeReturns(
        total=total,
        **{
            name: _window_return(points, first_date, start, current_value)
            for name, start in windows.items()
        },
    )


def _lookup_price(lookup: HistoricalPriceLookup, target: date) -> Optional[float]:
    try:
        price = lookup(target)
    except Exception as e:
        logger.warning(f"Historical price lookup failed for {target}: {e}")
        return None
    if price is None:
        logger.warning(f"No historical BTC price available for {target}")
        return None
    price = float(price)
    return price if price > 0 else None


def compute_compound_growth(
    transactions: Sequence[TransactionBase],
    points: Sequence[PortfolioPoint],
    current_value: float,
    historical_price_lookup: HistoricalPriceLookup,
    now: datetime,
) -> CompoundGrowth:
    """
    transactions must already be sorted by date.
    """
    growth = CompoundGrowth()
    if not points:
        return growth

    first_date = points[0].date

    # Per-horizon CAGR against the actual BTC price N years ago
    for years in CAGR_HORIZONS:
        target = years_ago(now, years)
        if first_date > target:
            continue
        btc_then = calculate_btc_holdings_at_date(transactions, target)
        if btc_then <= 0:
            continue
        price_then = _lookup_price(historical_price_lookup, target.date())
        if price_then is None:
            continue
        value_then = btc_then * price_then
        setattr(growth, HORIZON_FIELDS[years], calculate_cagr(current_value, value_then, years_between(target, now)))

    # Since the first transaction
    years_held = years_between(first_date, now)
    first_value = points[0].usd_value
    if years_held >= MIN_YEARS_FOR_TOTAL_CAGR and first_value > 0:
        growth.total = calculate_cagr(current_value, first_value, years_held)

    # Short histories: annualize against the first transaction's own price
    if APPROX_CAGR_MIN_YEARS <= years_held <= APPROX_CAGR_MAX_YEARS:
        first_tx = next(
            (tx for tx in transactions if tx.type in (TransactionType.BUY, TransactionType.SELL)),
            None,
        )
        if first_tx is not None and first_tx.price:
            start_value = calculate_btc_holdings_at_date(transactions, first_tx.date) * float(first_tx.price)
            growth.approximate = calculate_approximate_cagr(current_value, start_value, years_held)
            growth.is_approximate = growth.approximate is not None

    return growth


# -------------------------------------------------
# DRAWDOWN / HODL
# -------------------------------------------------

def compute_max_drawdown(points: Sequence[PortfolioPoint]) -> MaxDrawdown:
    """
    Largest peak-to-later-trough decline of the value series, in percent.

    Starts from the global peak and its lowest later value, then checks every
    earlier/later pair so a deeper decline from a lower peak is not missed.
    """
    result = MaxDrawdown()
    if not points:
        return result

    def record(peak: PortfolioPoint, trough: PortfolioPoint, percent: float) -> None:
        result.percent = percent
        result.from_date = peak.date.date()
        result.to_date = trough.date.date()
        result.portfolio_ath = peak.usd_value
        result.portfolio_low = trough.usd_value

    # Global peak first
    peak_index = max(range(len(points)), key=lambda i: (points[i].usd_value, -i))
    peak = points[peak_index]
    later = points[peak_index + 1:]
    if later and peak.usd_value > 0:
        trough = min(later, key=lambda p: p.usd_value)
        record(peak, trough, (peak.usd_value - trough.usd_value) / peak.usd_value * 100)

    # Every peak -> later trough pair
    for i, peak in enumerate(points):
        if peak.usd_value <= 0:
            continue
        for trough in points[i + 1:]:
            if trough.usd_value >= peak.usd_value:
                continue
            percent = (peak.usd_value - trough.usd_value) / peak.usd_value * 100
            if percent > result.percent:
                record(peak, trough, percent)

    return result


def calculate_hodl_time(transactions: Sequence[TransactionBase], now: datetime) -> int:
    """
    Days since the last sell, or since the first buy when nothing was sold.
    Transactions after `now` are ignored.
    """
    past = [tx for tx in transactions if tx.date <= now]
    sells = [tx for tx in past if tx.type == TransactionType.SELL]
    if sells:
        return days_between(max(tx.date for tx in sells), now)
    buys = [tx for tx in past if tx.type == TransactionType.BUY]
    if buys:
        return days_between(min(tx.date for tx in buys), now)
    return 0


# -------------------------------------------------
# ENTRY POINT
# -------------------------------------------------

def compute_performance(
    transactions: Iterable[TransactionBase],
    current_price: Union[float, Decimal],
    historical_price_lookup: HistoricalPriceLookup,
    ath_price: Optional[float],
    ath_date: Optional[Union[date, datetime]],
    now: Optional[datetime] = None,
) -> PerformanceMetrics:
    now = resolve_now(now)
    current_price = float(current_price)
    transactions = [tx for tx in sort_chronologically(transactions) if tx.date <= now]

    if isinstance(ath_date, datetime):
        ath_date = ensure_utc(ath_date).date()
    all_time_high = AllTimeHigh(price=ath_price or 0.0, date=ath_date)

    points = build_portfolio_history(transactions, current_price, now)
    if not points:
        return PerformanceMetrics(all_time_high=all_time_high, current_price=current_price)

    closing = points[-1]
    current_btc = closing.btc
    total_investment = closing.investment
    current_value = current_btc * current_price

    buy_prices = [tx.price for tx in transactions if tx.type == TransactionType.BUY and tx.price]

    return PerformanceMetrics(
        cumulative=compute_cumulative_returns(points, current_value, total_investment, now),
        compound_growth=compute_compound_growth(transactions, points, current_value, historical_price_lookup, now),
        all_time_high=all_time_high,
        max_drawdown=compute_max_drawdown(points),
        hodl_time=calculate_hodl_time(transactions, now),
        current_price=current_price,
        average_buy_price=total_investment / current_btc if total_investment > 0 and current_btc > 0 else 0.0,
        lowest_buy_price=float(min(buy_prices)) if buy_prices else 0.0,
        highest_buy_price=float(max(buy_prices)) if buy_prices else 0.0,
    )


def calculate_dca_performance(
    transactions: Iterable[TransactionBase],
    current_price: Union[float, Decimal],
    now: Optional[datetime] = None,
) -> DCAPerformance:
    """
    Return of the buys made over the last six months versus putting the same
    total in at the first of those buys' price.
    """
    now = resolve_now(now)
    price = to_decimal(current_price)
    cutoff = months_ago(now, DCA_LOOKBACK_MONTHS)
    recent_buys = [
        tx for tx in sort_chronologically(transactions)
        if tx.type == TransactionType.BUY and cutoff <= tx.date <= now
    ]
    if not recent_buys:
        return DCAPerformance()

    invested = sum((tx.sent_amount for tx in recent_buys), ZERO)
    btc_bought = sum((tx.received_amount for tx in recent_buys), ZERO)

    dca_value = btc_bought * price
    dca_return = (dca_value - invested) / invested * 100 if invested > 0 else ZERO

    first = recent_buys[0]
    lump_sum_btc = invested / first.price if first.price else ZERO
    lump_sum_value = lump_sum_btc * price
    lump_sum_return = (lump_sum_value - invested) / invested * 100 if invested > 0 else ZERO

    return DCAPerformance(
        dca_return=float(dca_return),
        lump_sum_return=float(lump_sum_return),
        outperformance=float(dca_return - lump_sum_return),
    )
