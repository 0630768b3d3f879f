#!/usr/bin/env python3
"""
Seed a demo user with a small portfolio, two goals and a watchlist.

Usage:
    python scripts/seed_demo.py [--user demo] [--create-tables]
"""

import asyncio
import logging
import os
import sys
from datetime import date, timedelta
from argparse import ArgumentParser

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from folio.core.database import close_db, init_db
from folio.core.errors import DuplicateEntryError
from folio.core.logging import setup_logging
from folio.models.base import utcnow
from folio.services.goal_service import GoalService
from folio.services.ledger_service import LedgerService
from folio.services.watchlist_service import WatchlistService

setup_logging()
logger = logging.getLogger(__name__)

# symbol, name, asset type, quantity, average price
HOLDINGS = [
    ("AAPL", "Apple Inc.", "stocks", "15", "145.23"),
    ("MSFT", "Microsoft Corp.", "stocks", "10", "290.45"),
    ("AMZN", "Amazon.com Inc.", "stocks", "8", "129.15"),
    ("BTC", "Bitcoin", "crypto", "0.12", "48500.00"),
    ("AXIS_BC", "Axis Bluechip Fund", "mutual_funds", "450", "42.15"),
]

WATCHLIST = [
    ("AAPL", "Apple Inc.", "stocks"),
    ("MSFT", "Microsoft Corp.", "stocks"),
    ("AMZN", "Amazon.com Inc.", "stocks"),
    ("BTC", "Bitcoin", "crypto"),
    ("ETH", "Ethereum", "crypto"),
    ("RELIANCE.NS", "Reliance Industries", "stocks"),
    ("HDFCBANK.NS", "HDFC Bank", "stocks"),
]


async def seed(user_id: str, create_tables: bool = False):
    if create_tables:
        await init_db()

    ledger = LedgerService()
    bought_at = utcnow() - timedelta(days=90)
    for symbol, name, asset_type, quantity, price in HOLDINGS:
        await ledger.record(
            user_id=user_id,
            symbol=symbol,
            kind="buy",
            quantity=quantity,
            unit_price=price,
            asset_type=asset_type,
            name=name,
            timestamp=bought_at,
        )
    logger.info(f"Recorded {len(HOLDINGS)} buys for {user_id}")

    goals = GoalService()
    today = date.today()
    await goals.create(
        user_id=user_id,
        name="House down payment",
        target_amount="2000000",
        current_amount="800000",
        deadline=date(today.year + 2, today.month, 1),
        priority="high",
        goal_type="house",
    )
    await goals.create(
        user_id=user_id,
        name="Crypto travel fund",
        target_amount="10000",
        deadline=date(today.year + 1, today.month, 1),
        priority="low",
        goal_type="travel",
        linked_symbol="BTC",
    )
    logger.info(f"Created demo goals for {user_id}")

    watchlist = WatchlistService()
    for symbol, name, asset_type in WATCHLIST:
        try:
            await watchlist.add(user_id, symbol, asset_type, name=name)
        except DuplicateEntryError:
            logger.info(f"{symbol} already watched, skipping")
    logger.info(f"Watchlist seeded with {len(WATCHLIST)} symbols")

    await close_db()


if __name__ == "__main__":
    parser = ArgumentParser(description="Seed demo portfolio data")
    parser.add_argument("--user", default="demo", help="User id to seed")
    parser.add_argument("--create-tables", action="store_true", help="Create tables before seeding")
    args = parser.parse_args()

    asyncio.run(seed(args.user, args.create_tables))
