#!/usr/bin/env python
"""
btcfolio/main.py

Sets up the FastAPI application for BTCfolio, a personal Bitcoin portfolio tracker.

Key Roles:
 - Loads environment variables
 - Adds CORS middleware for frontend integration
 - Includes the 'transaction', 'portfolio' and 'bitcoin' routers
 - Creates database tables at startup

Run locally: uvicorn btcfolio.main:app --reload
"""

import os
import logging
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from btcfolio.database import create_tables
from btcfolio.routers import bitcoin, portfolio, transaction

# Load environment variables from a .env file at the project root
load_dotenv()

logger = logging.getLogger(__name__)

# Default CORS origins if none specified (dev environment)
default_origins = (
    "http://127.0.0.1:3000,"
    "http://localhost:3000,"
    "http://127.0.0.1:5173,"
    "http://localhost:5173,"
    "http://127.0.0.1:8000,"
    "http://localhost:8000"
)
raw_origins = os.getenv("CORS_ALLOW_ORIGINS", default_origins)
ALLOWED_ORIGINS = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]

# ---------------------------------------------------------
# Initialize the FastAPI application
# ---------------------------------------------------------
app = FastAPI(
    title="BTCfolio Portfolio Analytics API",
    description=(
        "Bitcoin portfolio tracking: cost basis (FIFO/LIFO/HIFO), holdings, "
        "tax liability estimates and time-series performance."
    ),
    version="1.0",
    redirect_slashes=True
)

# ---------------------------------------------------------
# CORS Middleware
# ---------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------
# Database: Create Tables at Startup
# ---------------------------------------------------------
@app.on_event("startup")
def startup_event():
    """
    Ensures tables are created (if not already) when FastAPI starts.
    This won't delete or overwrite existing data; it's idempotent.
    """
    logger.info("Running create_tables() at startup...")
    create_tables()


# ---------------------------------------------------------
# Routers
# ---------------------------------------------------------
app.include_router(transaction.router, prefix="/api/transactions", tags=["transactions"])
app.include_router(portfolio.router, prefix="/api/portfolio", tags=["portfolio"])
app.include_router(bitcoin.router, prefix="/api/bitcoin", tags=["Bitcoin"])


# ---------------------------------------------------------
# Root Route
# ---------------------------------------------------------
@app.get("/")
def read_root():
    """
    Basic root path to confirm the API is running.
    """
    return {"message": "Welcome to BTCfolio - portfolio analytics ready!"}
