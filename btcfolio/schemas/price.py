"""
btcfolio/schemas/price.py

Request/response models for stored BTC prices.
"""

from datetime import date as date_cls, datetime
from pydantic import BaseModel, ConfigDict, Field


class SpotPriceCreate(BaseModel):
    price_usd: float = Field(gt=0)


class SpotPriceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    price_usd: float
    updated_at: datetime


class MonthlyCloseCreate(BaseModel):
    """Any day of the month is accepted; it is stored as the month end."""
    date: date_cls
    close: float = Field(gt=0)


class MonthlyCloseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: date_cls
    close: float
