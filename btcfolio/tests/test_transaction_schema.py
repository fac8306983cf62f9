"""
Validation rules of the transaction tagged union and the fee helpers.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from btcfolio.schemas.transaction import (
    BuyTransaction,
    DepositTransaction,
    SellTransaction,
    WithdrawalTransaction,
    fee_in_fiat,
    parse_transaction,
    parse_transactions,
    sort_chronologically,
    usd_fee,
)


def test_buy_requires_both_amounts():
    with pytest.raises(ValidationError):
        parse_transaction({"type": "buy", "date": "2024-01-01T00:00:00Z", "received_amount": 0.1})
    with pytest.raises(ValidationError):
        parse_transaction({"type": "buy", "date": "2024-01-01T00:00:00Z", "sent_amount": 1000})


def test_sell_requires_positive_amounts():
    with pytest.raises(ValidationError):
        parse_transaction({"type": "sell", "date": "2024-01-01T00:00:00Z", "sent_amount": 0, "received_amount": 100})


def test_variant_selected_by_type_case_insensitively():
    tx = parse_transaction({"type": "Deposit", "date": "2024-01-01T00:00:00Z", "received_amount": 0.5})
    assert isinstance(tx, DepositTransaction)

    tx = parse_transaction({"type": "WITHDRAWAL", "date": "2024-01-01T00:00:00Z", "sent_amount": 0.5})
    assert isinstance(tx, WithdrawalTransaction)


def test_unknown_type_rejected():
    with pytest.raises(ValidationError):
        parse_transaction({"type": "transfer", "date": "2024-01-01T00:00:00Z", "sent_amount": 1})


def test_amounts_stored_as_magnitudes():
    tx = parse_transaction({
        "type": "withdrawal", "date": "2024-01-01T00:00:00Z",
        "sent_amount": -0.25, "fee_amount": -0.0001, "fee_currency": "btc",
    })
    assert tx.sent_amount == Decimal("0.25")
    assert tx.fee_amount == Decimal("0.0001")
    assert tx.fee_currency == "BTC"


def test_currencies_default_and_upper_case():
    tx = parse_transaction({
        "type": "buy", "date": "2024-01-01T00:00:00Z",
        "sent_amount": 1000, "sent_currency": "usd", "received_amount": 0.02,
    })
    assert isinstance(tx, BuyTransaction)
    assert tx.sent_currency == "USD"
    assert tx.received_currency == "BTC"


def test_fee_without_currency_is_fiat():
    tx = parse_transaction({
        "type": "buy", "date": "2024-01-01T00:00:00Z", "sent_amount": 1000, "received_amount": 0.02, "fee_amount": 4,
    })
    assert tx.fee_currency == "USD"
    assert usd_fee(tx) == 4


def test_wrong_btc_leg_rejected():
    with pytest.raises(ValidationError):
        parse_transaction({
            "type": "sell", "date": "2024-01-01T00:00:00Z",
            "sent_amount": 1000, "sent_currency": "USD", "received_amount": 0.02,
        })


def test_naive_date_is_utc():
    tx = parse_transaction({"type": "deposit", "date": "2024-01-01T10:00:00", "received_amount": 1})
    assert tx.date == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)


def test_transactions_are_frozen():
    tx = parse_transaction({"type": "deposit", "date": "2024-01-01T00:00:00Z", "received_amount": 1})
    with pytest.raises(ValidationError):
        tx.received_amount = 2


def test_btc_fee_converted_with_own_price():
    tx = parse_transaction({
        "type": "sell", "date": "2024-01-01T00:00:00Z", "sent_amount": 0.1, "received_amount": 3000,
        "fee_amount": 0.0001, "fee_currency": "BTC", "price": 30000,
    })
    assert fee_in_fiat(tx) == Decimal("3")
    assert usd_fee(tx) == 0


def test_btc_fee_without_price_counts_zero():
    tx = parse_transaction({
        "type": "withdrawal", "date": "2024-01-01T00:00:00Z", "sent_amount": 0.1,
        "fee_amount": 0.0001, "fee_currency": "BTC",
    })
    assert fee_in_fiat(tx) == 0


def test_sort_is_stable_for_equal_dates():
    rows = parse_transactions([
        {"id": "b", "type": "deposit", "date": "2024-02-01T00:00:00Z", "received_amount": 1},
        {"id": "a", "type": "deposit", "date": "2024-01-01T00:00:00Z", "received_amount": 1},
        {"id": "c", "type": "deposit", "date": "2024-02-01T00:00:00Z", "received_amount": 1},
    ])
    assert [tx.id for tx in sort_chronologically(rows)] == ["a", "b", "c"]


def test_sell_variant_fields():
    tx = parse_transaction({
        "type": "sell", "date": "2024-01-01T00:00:00Z", "sent_amount": 0.5, "received_amount": 15000,
    })
    assert isinstance(tx, SellTransaction)
    assert tx.sent_currency == "BTC"
    assert tx.received_currency == "USD"


def test_amounts_are_exact_decimals():
    tx = parse_transaction({
        "type": "buy", "date": "2024-01-01T00:00:00Z",
        "sent_amount": "3000.10", "received_amount": 0.1, "price": 30001.0,
    })
    assert tx.received_amount == Decimal("0.1")
    assert tx.sent_amount == Decimal("3000.10")
    assert tx.price == Decimal("30001.0")


def test_non_numeric_amount_rejected():
    with pytest.raises(ValidationError):
        parse_transaction({"type": "deposit", "date": "2024-01-01T00:00:00Z", "received_amount": "lots"})
