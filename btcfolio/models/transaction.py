"""
transaction.py

Storage model for portfolio transactions. One flat row per transaction: the
five transaction types share nullable amount/currency columns, and the
per-type rules (which amounts are required, which leg is BTC) are enforced by
the pydantic tagged union in schemas/transaction.py when rows are read back.

Rows are append-only from the calculation side: nothing here is ever updated
by a calculation. Deletion is the only mutation the API offers.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Numeric, Index

from btcfolio.database import Base, UTCDateTime


def _utc_now():
    return datetime.now(timezone.utc)


class Transaction(Base):
    """
    A single buy, sell, deposit, withdrawal or interest event for one user.

    Amounts are positive magnitudes. For a buy, sent_* is fiat and received_*
    is BTC; for a sell it is the other way around. Deposits, withdrawals and
    interest only carry the BTC leg.
    """

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(
        String,
        nullable=False,
        index=True,
        doc="Owner of the transaction. Single-user installs use DEFAULT_USER_ID."
    )

    type = Column(
        String,
        nullable=False,
        doc="One of: 'buy', 'sell', 'deposit', 'withdrawal', 'interest'."
    )

    date = Column(
        UTCDateTime,
        nullable=False,
        doc="When the transaction occurred (UTC)."
    )

    sent_amount = Column(Numeric(18, 8), nullable=True)
    sent_currency = Column(String, nullable=True, doc="'BTC' or a fiat code like 'USD'.")
    received_amount = Column(Numeric(18, 8), nullable=True)
    received_currency = Column(String, nullable=True)

    fee_amount = Column(Numeric(18, 8), nullable=True)
    fee_currency = Column(String, nullable=True)

    price = Column(
        Numeric(18, 2),
        nullable=True,
        doc="BTC unit price in fiat at the time of the transaction."
    )

    # Provenance metadata, never used in calculations
    exchange = Column(String, nullable=True)
    from_address_name = Column(String, nullable=True)
    to_address_name = Column(String, nullable=True)
    comment = Column(String, nullable=True)

    created_at = Column(
        UTCDateTime,
        default=_utc_now,
        nullable=False,
        doc="Auto-set creation time."
    )

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
    )

    def __repr__(self):
        return (
            f"<Transaction(id={self.id}, user={self.user_id}, type={self.type}, "
            f"date={self.date}, sent={self.sent_amount} {self.sent_currency}, "
            f"received={self.received_amount} {self.received_currency})>"
        )
