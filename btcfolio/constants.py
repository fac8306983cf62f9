"""
Shared constants for the portfolio calculations.
Tax rates and the default user can be overridden from .env.
"""

import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

# Currencies
BTC = "BTC"
FIAT = "USD"

# Placeholder US federal rates applied to unrealized gains
SHORT_TERM_TAX_RATE = Decimal(os.getenv("SHORT_TERM_TAX_RATE", "0.37"))
LONG_TERM_TAX_RATE = Decimal(os.getenv("LONG_TERM_TAX_RATE", "0.20"))

# Single-user installs store everything under this id
DEFAULT_USER_ID = os.getenv("DEFAULT_USER_ID", "local")

# A lot with this much BTC (or less) left is considered consumed
LOT_EPSILON = Decimal("1e-9")

# Series points newer than this are revalued at the current price
RECENT_REPRICE_DAYS = 30

# CAGR horizons (years) backed by a historical price lookup
CAGR_HORIZONS = (1, 2, 3, 4, 5, 6, 7, 8)

# CAGR display caps (percent)
CAGR_MIN = -99.99
CAGR_MAX = 9999.99
APPROX_CAGR_MIN = -95.0
APPROX_CAGR_MAX = 500.0

# History needed before a total CAGR is reported
MIN_YEARS_FOR_TOTAL_CAGR = 0.5

# Window (years) in which an approximate CAGR is reported: 3 to 11 months
APPROX_CAGR_MIN_YEARS = 0.25
APPROX_CAGR_MAX_YEARS = 11 / 12

# Buys considered by the DCA vs. lump-sum comparison
DCA_LOOKBACK_MONTHS = 6

# Time ranges accepted by the monthly series
MONTHLY_RANGES = {
    "6M": 6,
    "1Y": 12,
    "2Y": 24,
    "3Y": 36,
    "5Y": 60,
}
