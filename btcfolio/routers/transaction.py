"""
btcfolio/routers/transaction.py

Router for Transaction endpoints. Transactions are immutable: they can be
created, read and deleted, never edited.

Every endpoint is scoped to a `user_id` query parameter that defaults to the
single-user DEFAULT_USER_ID.

The request body is validated against the tagged transaction union
(buy / sell / deposit / withdrawal / interest); an invalid body returns 422
with the pydantic error list.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from btcfolio.constants import DEFAULT_USER_ID
from btcfolio.database import get_db
from btcfolio.schemas.transaction import TransactionRead, parse_transaction
from btcfolio.services import transaction as tx_service

router = APIRouter(tags=["transactions"])


@router.get("/", response_model=List[TransactionRead])
def list_transactions(
    user_id: str = Query(DEFAULT_USER_ID),
    db: Session = Depends(get_db),
):
    """
    List the user's transactions, oldest first.
    """
    return tx_service.get_all_transactions(db, user_id)


@router.post("/", response_model=TransactionRead, status_code=201)
def create_transaction(
    payload: Dict[str, Any] = Body(...),
    user_id: str = Query(DEFAULT_USER_ID),
    db: Session = Depends(get_db),
):
    """
    Create a transaction. `type` selects the variant and the amounts it
    requires, e.g. a buy needs `sent_amount` (fiat) and `received_amount` (BTC).
    """
    try:
        tx = parse_transaction(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )
    return tx_service.create_transaction_record(tx, db, user_id)


@router.delete("/delete_all")
def delete_all_transactions_endpoint(
    user_id: str = Query(DEFAULT_USER_ID),
    db: Session = Depends(get_db),
):
    """
    Delete all of the user's transactions.
    """
    deleted_count = tx_service.delete_all_transactions(db, user_id)
    return {"deleted_count": deleted_count}


@router.get("/{transaction_id}", response_model=TransactionRead)
def get_transaction(
    transaction_id: int,
    user_id: str = Query(DEFAULT_USER_ID),
    db: Session = Depends(get_db),
):
    tx = tx_service.get_transaction_by_id(db, transaction_id, user_id)
    if not tx:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return tx


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    user_id: str = Query(DEFAULT_USER_ID),
    db: Session = Depends(get_db),
):
    success = tx_service.delete_transaction_record(transaction_id, db, user_id)
    if not success:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return None
