# btcfolio/models/__init__.py

"""
Centralizes the ORM models so `create_tables()` and the services can import
them from one place.
"""

from btcfolio.database import Base

# Models from transaction.py
from .transaction import Transaction

# Models from price.py
from .price import SpotPrice, MonthlyClose, AllTimeHigh
