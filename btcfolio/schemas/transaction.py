"""
btcfolio/schemas/transaction.py

Pydantic v2 schemas for portfolio transactions.

A transaction is an immutable fact: once imported it is never mutated. The five
transaction types share a loose set of nullable columns in storage, so here they
are modelled as a tagged union discriminated on `type`, with each variant
declaring the amounts it requires. Invalid combinations (a buy without the BTC
received, a sell without the fiat received, ...) fail at construction.

- TransactionType: enum of the five types
- BuyTransaction / SellTransaction / DepositTransaction /
  WithdrawalTransaction / InterestTransaction: the variants
- Transaction: the discriminated union used by every calculation and by
  the POST body of the transactions API
- TransactionRead: API output for a stored row
"""

from enum import Enum
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from btcfolio.constants import BTC, FIAT

# -------------------------------------------------
# TRANSACTION TYPE ENUM
# -------------------------------------------------

class TransactionType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INTEREST = "interest"


ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Exact decimal for an amount or price. Floats go through their shortest
    repr so 0.1 becomes Decimal("0.1"), not its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"not a number: {value!r}")


# -------------------------------------------------
# SHARED FIELDS
# -------------------------------------------------

class TransactionBase(BaseModel):
    """
    Fields shared by every transaction type. Amounts are positive magnitudes;
    sign conventions from source data are dropped on the way in.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[Union[int, str]] = None
    date: datetime

    sent_amount: Optional[Decimal] = None
    sent_currency: Optional[str] = None
    received_amount: Optional[Decimal] = None
    received_currency: Optional[str] = None

    fee_amount: Optional[Decimal] = None
    fee_currency: Optional[str] = None

    # Unit price of BTC in fiat at the time of the transaction
    price: Optional[Decimal] = Field(default=None, ge=0)

    # Provenance only, never used in calculations
    exchange: Optional[str] = None
    from_address_name: Optional[str] = None
    to_address_name: Optional[str] = None
    comment: Optional[str] = None

    @field_validator("date")
    @classmethod
    def force_utc_date(cls, v: datetime) -> datetime:
        """
        Naive timestamps are taken as UTC; aware ones are converted to UTC.
        """
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator("sent_amount", "received_amount", "fee_amount", mode="before")
    @classmethod
    def store_magnitude(cls, v: Any) -> Optional[Decimal]:
        if v is None or v == "":
            return None
        return abs(to_decimal(v))

    @field_validator("price", mode="before")
    @classmethod
    def exact_price(cls, v: Any) -> Optional[Decimal]:
        if v is None or v == "":
            return None
        return to_decimal(v)

    @field_validator("sent_currency", "received_currency", "fee_currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None


def _fill_currencies(data: Any, btc_side: Optional[str], fiat_side: Optional[str]) -> Any:
    """
    Fill in missing currency codes for the BTC and fiat legs of a variant.
    """
    if not isinstance(data, dict):
        return data
    data = dict(data)
    if btc_side and not data.get(f"{btc_side}_currency"):
        data[f"{btc_side}_currency"] = BTC
    if fiat_side and not data.get(f"{fiat_side}_currency"):
        data[f"{fiat_side}_currency"] = FIAT
    # A fee without a currency was charged in fiat
    if data.get("fee_amount") and not data.get("fee_currency"):
        data["fee_currency"] = FIAT
    return data


def _require_btc(tx: TransactionBase, side: str) -> None:
    currency = getattr(tx, f"{side}_currency")
    if currency != BTC:
        raise ValueError(f"{tx.type} expects {side}_currency={BTC}, got {currency}")


def _require_fiat(tx: TransactionBase, side: str) -> None:
    currency = getattr(tx, f"{side}_currency")
    if currency == BTC:
        raise ValueError(f"{tx.type} expects a fiat {side}_currency, got {currency}")


# -------------------------------------------------
# VARIANTS
# -------------------------------------------------

class BuyTransaction(TransactionBase):
    """Fiat left the wallet (sent_amount), BTC entered it (received_amount)."""
    type: Literal["buy"] = "buy"
    received_amount: Decimal = Field(gt=0)
    sent_amount: Decimal = Field(gt=0)

    @model_validator(mode="before")
    @classmethod
    def default_currencies(cls, data: Any) -> Any:
        return _fill_currencies(data, btc_side="received", fiat_side="sent")

    @model_validator(mode="after")
    def check_legs(self) -> "BuyTransaction":
        _require_btc(self, "received")
        _require_fiat(self, "sent")
        return self


class SellTransaction(TransactionBase):
    """BTC left the wallet (sent_amount), fiat entered it (received_amount)."""
    type: Literal["sell"] = "sell"
    sent_amount: Decimal = Field(gt=0)
    received_amount: Decimal = Field(gt=0)

    @model_validator(mode="before")
    @classmethod
    def default_currencies(cls, data: Any) -> Any:
        return _fill_currencies(data, btc_side="sent", fiat_side="received")

    @model_validator(mode="after")
    def check_legs(self) -> "SellTransaction":
        _require_btc(self, "sent")
        _require_fiat(self, "received")
        return self


class DepositTransaction(TransactionBase):
    """BTC received from an outside wallet."""
    type: Literal["deposit"] = "deposit"
    received_amount: Decimal = Field(gt=0)

    @model_validator(mode="before")
    @classmethod
    def default_currencies(cls, data: Any) -> Any:
        return _fill_currencies(data, btc_side="received", fiat_side=None)

    @model_validator(mode="after")
    def check_legs(self) -> "DepositTransaction":
        _require_btc(self, "received")
        return self


class WithdrawalTransaction(TransactionBase):
    """BTC sent to an outside wallet."""
    type: Literal["withdrawal"] = "withdrawal"
    sent_amount: Decimal = Field(gt=0)

    @model_validator(mode="before")
    @classmethod
    def default_currencies(cls, data: Any) -> Any:
        return _fill_currencies(data, btc_side="sent", fiat_side=None)

    @model_validator(mode="after")
    def check_legs(self) -> "WithdrawalTransaction":
        _require_btc(self, "sent")
        return self


class InterestTransaction(TransactionBase):
    """BTC earned as interest or yield."""
    type: Literal["interest"] = "interest"
    received_amount: Decimal = Field(gt=0)

    @model_validator(mode="before")
    @classmethod
    def default_currencies(cls, data: Any) -> Any:
        return _fill_currencies(data, btc_side="received", fiat_side=None)

    @model_validator(mode="after")
    def check_legs(self) -> "InterestTransaction":
        _require_btc(self, "received")
        return self


Transaction = Annotated[
    Union[
        BuyTransaction,
        SellTransaction,
        DepositTransaction,
        WithdrawalTransaction,
        InterestTransaction,
    ],
    Field(discriminator="type"),
]

_transaction_adapter = TypeAdapter(Transaction)


def parse_transaction(data: Any) -> TransactionBase:
    """
    Validate a mapping into the matching transaction variant. The type
    discriminator is matched case-insensitively.
    """
    if isinstance(data, dict) and isinstance(data.get("type"), str):
        data = {**data, "type": data["type"].strip().lower()}
    return _transaction_adapter.validate_python(data)


def parse_transactions(rows: Iterable[Any]) -> List[TransactionBase]:
    return [parse_transaction(row) for row in rows]


# -------------------------------------------------
# FEE HELPERS
# -------------------------------------------------

def usd_fee(tx: TransactionBase) -> Decimal:
    """
    The part of a fee that counts toward fiat cost basis: only fees charged in fiat.
    """
    if tx.fee_amount and tx.fee_currency != BTC:
        return tx.fee_amount
    return ZERO


def fee_in_fiat(tx: TransactionBase) -> Decimal:
    """
    Fee expressed in fiat. BTC fees are converted with the transaction's own
    price, never today's price; a BTC fee without a price counts as 0.
    """
    if not tx.fee_amount:
        return ZERO
    if tx.fee_currency == BTC:
        return tx.fee_amount * (tx.price or ZERO)
    return tx.fee_amount


def sort_chronologically(transactions: Iterable[TransactionBase]) -> List[TransactionBase]:
    """Stable sort by date; same-timestamp rows keep their input order."""
    return sorted(transactions, key=lambda tx: tx.date)


# -------------------------------------------------
# API OUTPUT
# -------------------------------------------------

class TransactionRead(BaseModel):
    """
    A stored transaction row as returned by the API.
    """
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    date: datetime
    type: TransactionType

    sent_amount: Optional[float] = None
    sent_currency: Optional[str] = None
    received_amount: Optional[float] = None
    received_currency: Optional[str] = None
    fee_amount: Optional[float] = None
    fee_currency: Optional[str] = None
    price: Optional[float] = None

    exchange: Optional[str] = None
    from_address_name: Optional[str] = None
    to_address_name: Optional[str] = None
    comment: Optional[str] = None

    created_at: Optional[datetime] = None
