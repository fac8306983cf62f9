"""
btcfolio/services/bitcoin.py

BTC price sources.

Live quotes (async, httpx):
 - get_current_price(): CoinGecko, then Kraken, then CoinDesk
 - get_historical_price(date): same failover for one day's price
 Both raise HTTP 502 if every provider fails.

Stored prices (SQLAlchemy), used by the portfolio calculations:
 - fetch_current_price(db): newest spot_prices row (HTTP 503 if none)
 - build_historical_price_lookup(db): in-memory lookup over btc_monthly_close
 - fetch_ath(db): all_time_high row, else the highest monthly close
 - store_spot_price / store_monthly_close / refresh_spot_price
"""

import bisect
import logging
from datetime import datetime, date as date_cls, timezone
from typing import Callable, Dict, Optional, Tuple

import httpx
from fastapi import HTTPException
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from btcfolio.models.price import AllTimeHigh, MonthlyClose, SpotPrice
from btcfolio.services.dates import end_of_month

logger = logging.getLogger(__name__)

# API endpoints for primary and backup services
COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price?ids=bitcoin&vs_currencies=usd"
COINGECKO_HISTORY_URL = "https://api.coingecko.com/api/v3/coins/bitcoin/history?date={date}"  # date in DD-MM-YYYY format
KRAKEN_TICKER_URL = "https://api.kraken.com/0/public/Ticker?pair=XBTUSD"
KRAKEN_OHLC_URL = "https://api.kraken.com/0/public/OHLC?pair=XBTUSD&interval=1440&since={since}"
COINDESK_CURRENT_URL = "https://api.coindesk.com/v1/bpi/currentprice/USD.json"
COINDESK_HISTORICAL_URL = "https://api.coindesk.com/v1/bpi/historical/close.json?start={date}&end={date}"

REQUEST_TIMEOUT = 10.0


async def _get(client: httpx.AsyncClient, url: str) -> Optional[httpx.Response]:
    try:
        resp = await client.get(url)
    except httpx.HTTPError as e:
        logger.warning(f"Price request failed for {url}: {e}")
        return None
    if resp.status_code != 200:
        logger.warning(f"Price request to {url} returned HTTP {resp.status_code}")
        return None
    return resp


# ------------------------------------------------------------------
# Live quotes
# ------------------------------------------------------------------
async def _current_price_from(client: httpx.AsyncClient) -> dict:
    # 1. CoinGecko: {"bitcoin": {"usd": <price>}}
    resp = await _get(client, COINGECKO_PRICE_URL)
    if resp is not None:
        try:
            price = resp.json()["bitcoin"]["usd"]
            if price is not None:
                return {"USD": float(price)}
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unexpected CoinGecko price payload: {e}")

    # 2. Kraken: result[<pair>]["c"][0] is the last trade price
    resp = await _get(client, KRAKEN_TICKER_URL)
    if resp is not None:
        try:
            data = resp.json()
            if data.get("error") == []:
                result = data.get("result")
                if result:
                    pair = next(iter(result))
                    return {"USD": float(result[pair]["c"][0])}
        except (ValueError, KeyError, TypeError, IndexError) as e:
            logger.warning(f"Unexpected Kraken ticker payload: {e}")

    # 3. CoinDesk: bpi.USD.rate_float
    resp = await _get(client, COINDESK_CURRENT_URL)
    if resp is not None:
        try:
            price = resp.json()["bpi"]["USD"]["rate_float"]
            if price is not None:
                return {"USD": float(price)}
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unexpected CoinDesk price payload: {e}")

    raise HTTPException(
        status_code=502,
        detail="Unable to retrieve current Bitcoin price from CoinGecko, Kraken, or backup API."
    )


async def get_current_price(client: Optional[httpx.AsyncClient] = None) -> dict:
    """Fetch the current Bitcoin price in USD, with failover to Kraken and CoinDesk."""
    if client is not None:
        return await _current_price_from(client)
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
        return await _current_price_from(client)


def parse_price_date(date: str, today: Optional[date_cls] = None) -> date_cls:
    """
    YYYY-MM-DD -> date. HTTP 400 for a malformed or future date.
    """
    try:
        target_date = datetime.strptime(date, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD.")
    if target_date > (today or datetime.now(timezone.utc).date()):
        raise HTTPException(status_code=400, detail="Date cannot be in the future.")
    return target_date


async def _historical_price_from(client: httpx.AsyncClient, target_date: date_cls) -> dict:
    coingecko_date = target_date.strftime("%d-%m-%Y")  # CoinGecko requires DD-MM-YYYY
    coindesk_date = target_date.strftime("%Y-%m-%d")

    # 1. CoinGecko: market_data.current_price.usd
    resp = await _get(client, COINGECKO_HISTORY_URL.format(date=coingecko_date))
    if resp is not None:
        try:
            market_data = resp.json().get("market_data")
            if market_data and "current_price" in market_data:
                price = market_data["current_price"].get("usd")
                if price is not None:
                    return {"USD": float(price)}
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Unexpected CoinGecko history payload: {e}")

    # 2. Kraken daily OHLC from 00:00 UTC of the target day
    dt_start = datetime.combine(target_date, datetime.min.time()).replace(tzinfo=timezone.utc)
    timestamp = int(dt_start.timestamp())
    resp = await _get(client, KRAKEN_OHLC_URL.format(since=timestamp))
    if resp is not None:
        try:
            data = resp.json()
            if data.get("error") == []:
                result = data.get("result")
                if result:
                    pair = next(iter(result))
                    ohlc_data = result.get(pair, [])
                    # [time, open, high, low, close, vwap, volume, count]
                    for entry in ohlc_data:
                        if len(entry) >= 5 and int(entry[0]) == timestamp:
                            return {"USD": float(entry[1])}
                    if ohlc_data:
                        return {"USD": float(ohlc_data[0][1])}
        except (ValueError, KeyError, TypeError, IndexError) as e:
            logger.warning(f"Unexpected Kraken OHLC payload: {e}")

    # 3. CoinDesk: bpi[date]
    resp = await _get(client, COINDESK_HISTORICAL_URL.format(date=coindesk_date))
    if resp is not None:
        try:
            bpi = resp.json().get("bpi", {})
            if bpi.get(coindesk_date) is not None:
                return {"USD": float(bpi[coindesk_date])}
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Unexpected CoinDesk history payload: {e}")

    raise HTTPException(
        status_code=502,
        detail="Unable to retrieve Bitcoin price for the given date from CoinGecko, Kraken, or backup API."
    )


async def get_historical_price(date: str, client: Optional[httpx.AsyncClient] = None) -> dict:
    """Fetch the historical Bitcoin price (USD) for a given date (YYYY-MM-DD), with failover."""
    target_date = parse_price_date(date)
    if client is not None:
        return await _historical_price_from(client, target_date)
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
        return await _historical_price_from(client, target_date)


# ------------------------------------------------------------------
# Stored prices
# ------------------------------------------------------------------
def fetch_current_price(db: Session) -> float:
    """
    Latest stored spot price. HTTP 503 when none has been stored yet.
    """
    row = db.query(SpotPrice).order_by(SpotPrice.updated_at.desc(), SpotPrice.id.desc()).first()
    if row is None:
        raise HTTPException(
            status_code=503,
            detail="No Bitcoin spot price available. Refresh or store one via /api/bitcoin/price."
        )
    return float(row.price_usd)


def fetch_monthly_closes(db: Session) -> Dict[date_cls, float]:
    rows = db.query(MonthlyClose).order_by(MonthlyClose.date.asc()).all()
    return {row.date: float(row.close) for row in rows}


def build_historical_price_lookup(db: Session) -> Callable[[date_cls], Optional[float]]:
    """
    Load every monthly close once and return `lookup(date) -> price | None`:
    the close of the target's month, else the closest earlier close, else None.
    """
    closes = fetch_monthly_closes(db)
    dates = sorted(closes)

    def lookup(target: date_cls) -> Optional[float]:
        index = bisect.bisect_right(dates, end_of_month(target))
        if index == 0:
            return None
        return closes[dates[index - 1]]

    return lookup


def fetch_ath(db: Session) -> Tuple[float, Optional[date_cls]]:
    """
    (price, date) of the BTC all-time high. Falls back to the highest monthly
    close, then to (0, None).
    """
    row = db.query(AllTimeHigh).order_by(AllTimeHigh.price_usd.desc()).first()
    if row is not None:
        return float(row.price_usd), row.ath_date

    best = db.query(MonthlyClose).order_by(MonthlyClose.close.desc()).first()
    if best is not None:
        logger.debug("No all_time_high row; using the highest monthly close")
        return float(best.close), best.date
    return 0.0, None


def _update_ath(db: Session, price: float, on: date_cls) -> None:
    row = db.query(AllTimeHigh).order_by(AllTimeHigh.price_usd.desc()).first()
    if row is None:
        db.add(AllTimeHigh(price_usd=price, ath_date=on))
    elif price > float(row.price_usd):
        row.price_usd = price
        row.ath_date = on
    else:
        return
    logger.info(f"New BTC all-time high recorded: {price} on {on}")


def store_spot_price(db: Session, price: float, updated_at: Optional[datetime] = None) -> SpotPrice:
    if price <= 0:
        raise HTTPException(status_code=400, detail="Price must be positive.")
    updated_at = updated_at or datetime.now(timezone.utc)
    row = SpotPrice(price_usd=price, updated_at=updated_at)
    db.add(row)
    _update_ath(db, price, updated_at.date())
    db.commit()
    db.refresh(row)
    return row


def store_monthly_close(db: Session, month_end: date_cls, close: float) -> MonthlyClose:
    """
    Insert or replace the close for the month containing `month_end`.
    The row is always dated on the last day of that month.
    """
    if close <= 0:
        raise HTTPException(status_code=400, detail="Close must be positive.")
    month_end = end_of_month(month_end)
    row = db.query(MonthlyClose).filter(MonthlyClose.date == month_end).first()
    if row is None:
        row = MonthlyClose(date=month_end, close=close)
        db.add(row)
    else:
        row.close = close
    db.commit()
    db.refresh(row)
    return row


async def refresh_spot_price(db: Session, client: Optional[httpx.AsyncClient] = None) -> SpotPrice:
    """
    Fetch a live quote and store it as the latest spot price. The database
    write runs in the threadpool, off the event loop.
    """
    quote = await get_current_price(client)
    row = await run_in_threadpool(store_spot_price, db, quote["USD"])
    logger.info(f"Spot price refreshed: {row.price_usd} USD")
    return row
