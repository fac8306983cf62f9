# btcfolio/scripts/seed_transactions.py

"""
Seed the local database with a sample portfolio, monthly closes, a spot price
and the all-time high, so every /api/portfolio endpoint has data to work on.

Run from the project root: python -m btcfolio.scripts.seed_transactions
"""

import json
import logging
from datetime import date
from pathlib import Path

from pydantic import ValidationError

from btcfolio.constants import DEFAULT_USER_ID
from btcfolio.database import SessionLocal, create_tables
from btcfolio.models.price import AllTimeHigh
from btcfolio.schemas.transaction import parse_transaction
from btcfolio.services.bitcoin import store_monthly_close, store_spot_price
from btcfolio.services.transaction import create_transaction_record, delete_all_transactions

logger = logging.getLogger(__name__)

SEED_FILE = Path(__file__).resolve().parent / "seed_data.json"


def load_seed_data(path: Path = SEED_FILE) -> dict:
    with open(path, "r") as f:
        data = json.load(f)
    data["transactions"].sort(key=lambda tx: tx["date"])
    return data


def seed(user_id: str = DEFAULT_USER_ID, path: Path = SEED_FILE) -> int:
    """
    Replace the user's transactions with the seed set. Returns how many
    transactions were created.
    """
    create_tables()
    data = load_seed_data(path)
    db = SessionLocal()
    created = 0
    try:
        delete_all_transactions(db, user_id)

        for raw in data["transactions"]:
            try:
                tx = parse_transaction(raw)
            except ValidationError as e:
                logger.error(f"Skipping seed transaction {raw}: {e}")
                continue
            create_transaction_record(tx, db, user_id)
            created += 1

        for day, close in data["monthly_closes"].items():
            store_monthly_close(db, date.fromisoformat(day), close)

        ath = data.get("all_time_high")
        if ath and db.query(AllTimeHigh).count() == 0:
            db.add(AllTimeHigh(price_usd=ath["price_usd"], ath_date=date.fromisoformat(ath["ath_date"])))
            db.commit()

        store_spot_price(db, data["spot_price"])
    finally:
        db.close()

    logger.info(f"Seeded {created} transactions for user {user_id}.")
    return created


if __name__ == "__main__":
    seed()
