from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from btcfolio.database import get_db
from btcfolio.schemas.price import MonthlyCloseCreate, MonthlyCloseRead, SpotPriceCreate, SpotPriceRead
from btcfolio.services import bitcoin

router = APIRouter(
    tags=["Bitcoin"]
)


@router.get("/price", summary="Get current Bitcoin price in USD")
async def get_current_bitcoin_price():
    """
    Live BTC price (USD) with CoinGecko -> Kraken -> CoinDesk failover.
    Raises HTTP 502 if all providers fail. Nothing is stored.
    """
    return await bitcoin.get_current_price()


@router.get("/price/history", summary="Get historical Bitcoin price (one date)")
async def get_historical_bitcoin_price(date: str):
    """
    Live BTC price (USD) for a specific date. Format: YYYY-MM-DD
    """
    return await bitcoin.get_historical_price(date)


@router.post("/price/refresh", response_model=SpotPriceRead, summary="Store a live quote as the spot price")
async def refresh_spot_price(db: Session = Depends(get_db)):
    return await bitcoin.refresh_spot_price(db)


@router.post("/price/spot", response_model=SpotPriceRead, status_code=201, summary="Store a spot price")
def store_spot_price(payload: SpotPriceCreate, db: Session = Depends(get_db)):
    return bitcoin.store_spot_price(db, payload.price_usd)


@router.post("/price/monthly-close", response_model=MonthlyCloseRead, status_code=201,
             summary="Store a monthly BTC close")
def store_monthly_close(payload: MonthlyCloseCreate, db: Session = Depends(get_db)):
    """
    Historical prices for CAGR and the monthly series come from these closes.
    Storing a close for a month that already has one replaces it.
    """
    return bitcoin.store_monthly_close(db, payload.date, payload.close)
