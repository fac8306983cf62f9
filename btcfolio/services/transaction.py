# FILE: btcfolio/services/transaction.py

"""
btcfolio/services/transaction.py

Storage-side logic for portfolio transactions:
 - CRUD on the `transactions` table, scoped per user
 - fetch_transactions(): the transaction source the calculations consume,
   returning validated tagged-union models in date order

Transactions are immutable once stored: there is no update path. A wrong
entry is deleted and re-entered.

Stored rows are validated again on the way out. A row that no longer passes
validation (e.g. edited by hand in the database) is skipped with a warning
instead of failing the whole calculation.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from btcfolio.models.transaction import Transaction
from btcfolio.schemas.transaction import TransactionBase, parse_transaction

logger = logging.getLogger(__name__)

STORED_FIELDS = (
    "sent_amount",
    "sent_currency",
    "received_amount",
    "received_currency",
    "fee_amount",
    "fee_currency",
    "price",
    "exchange",
    "from_address_name",
    "to_address_name",
    "comment",
)


# ------------------------------------------------------------------------------
# Public Functions (CRUD + retrieval)
# ------------------------------------------------------------------------------
def get_all_transactions(db: Session, user_id: str) -> List[Transaction]:
    """
    Return the user's Transactions, oldest first.
    """
    return (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id)
        .order_by(Transaction.date.asc(), Transaction.id.asc())
        .all()
    )


def get_transaction_by_id(db: Session, transaction_id: int, user_id: str) -> Optional[Transaction]:
    """
    Retrieve a single Transaction by its ID (returns None if not found
    or owned by another user).
    """
    return (
        db.query(Transaction)
        .filter(Transaction.id == transaction_id, Transaction.user_id == user_id)
        .first()
    )


def create_transaction_record(tx: TransactionBase, db: Session, user_id: str) -> Transaction:
    """
    Persist an already-validated transaction for `user_id`.
    """
    new_tx = Transaction(
        user_id=user_id,
        type=tx.type,
        date=tx.date,
        **{field: getattr(tx, field) for field in STORED_FIELDS},
    )
    db.add(new_tx)
    db.commit()
    db.refresh(new_tx)
    logger.info(f"Created {new_tx.type} transaction {new_tx.id} for user {user_id}")
    return new_tx


def delete_transaction_record(transaction_id: int, db: Session, user_id: str) -> bool:
    tx = get_transaction_by_id(db, transaction_id, user_id)
    if not tx:
        return False
    db.delete(tx)
    db.commit()
    logger.info(f"Deleted transaction {transaction_id} for user {user_id}")
    return True


def delete_all_transactions(db: Session, user_id: str) -> int:
    """
    Remove every transaction of `user_id`. Returns how many rows were deleted.
    """
    count = (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Deleted {count} transactions for user {user_id}")
    return count


# ------------------------------------------------------------------------------
# Transaction source for the calculations
# ------------------------------------------------------------------------------
def row_to_dict(row: Transaction) -> dict:
    """
    Plain mapping of a stored row. Numeric columns stay Decimal.
    """
    data = {"id": row.id, "type": row.type, "date": row.date}
    for field in STORED_FIELDS:
        data[field] = getattr(row, field)
    return data


def fetch_transactions(db: Session, user_id: str) -> List[TransactionBase]:
    """
    The user's transactions as validated models, ordered by date.
    """
    transactions = []
    for row in get_all_transactions(db, user_id):
        try:
            transactions.append(parse_transaction(row_to_dict(row)))
        except ValidationError as e:
            logger.warning(f"Skipping invalid transaction {row.id} for user {user_id}: {e.error_count()} error(s)")
    return transactions
