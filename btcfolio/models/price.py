"""
price.py

Price data the portfolio calculations read from storage:
1) SpotPrice: latest BTC quotes (the newest row is "current price")
2) MonthlyClose: one BTC close per calendar month, used as historical prices
3) AllTimeHigh: the BTC all-time high quote
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, Numeric, Date

from btcfolio.database import Base, UTCDateTime


def _utc_now():
    return datetime.now(timezone.utc)


class SpotPrice(Base):
    __tablename__ = "spot_prices"

    id = Column(Integer, primary_key=True, index=True)
    price_usd = Column(Numeric(18, 2), nullable=False)
    updated_at = Column(
        UTCDateTime,
        default=_utc_now,
        nullable=False,
        index=True,
        doc="When this quote was recorded."
    )

    def __repr__(self):
        return f"<SpotPrice(price_usd={self.price_usd}, updated_at={self.updated_at})>"


class MonthlyClose(Base):
    """
    BTC close for the month containing `date`. `date` is normally the last
    day of the month; lookups only rely on its year and month.
    """
    __tablename__ = "btc_monthly_close"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    close = Column(Numeric(18, 2), nullable=False)

    def __repr__(self):
        return f"<MonthlyClose(date={self.date}, close={self.close})>"


class AllTimeHigh(Base):
    __tablename__ = "all_time_high"

    id = Column(Integer, primary_key=True, index=True)
    price_usd = Column(Numeric(18, 2), nullable=False)
    ath_date = Column(Date, nullable=True)

    def __repr__(self):
        return f"<AllTimeHigh(price_usd={self.price_usd}, ath_date={self.ath_date})>"
