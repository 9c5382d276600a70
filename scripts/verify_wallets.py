#!/usr/bin/env python3
"""
Wallet Integrity Check

Compares every reseller's cached wallet balance with the sum of its ledger
entries and exits non-zero when any of them disagree.

Usage:
    python3 scripts/verify_wallets.py
    python3 scripts/verify_wallets.py --reseller-id 42
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from marketplace.db.models import Reseller
from marketplace.db.session import close_engines
from marketplace.db.store import open_store
from marketplace.exceptions import DataIntegrityError
from marketplace.observability import get_logger, setup_logging
from marketplace.services.wallet import WalletService

logger = get_logger("verify_wallets")


async def verify_wallets(reseller_id: int | None = None) -> int:
    """Check each reseller and return the number of mismatches."""
    mismatches = 0
    async with open_store() as store:
        if reseller_id is not None:
            reseller_ids = [reseller_id]
        else:
            result = await store.session.execute(select(Reseller.id).order_by(Reseller.id))
            reseller_ids = list(result.scalars().all())

        wallet = WalletService(store)
        for rid in reseller_ids:
            try:
                balance = await wallet.verify_balance(rid)
            except DataIntegrityError as e:
                mismatches += 1
                logger.error("wallet_mismatch", reseller_id=rid, error=e.message)
                continue
            logger.info("wallet_ok", reseller_id=rid, balance_minor=balance)

    logger.info("wallet_verification_completed", checked=len(reseller_ids), mismatches=mismatches)
    return mismatches


async def run(reseller_id: int | None) -> int:
    try:
        return await verify_wallets(reseller_id)
    finally:
        await close_engines()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Verify reseller wallet balances")
    parser.add_argument("--reseller-id", type=int, default=None)
    args = parser.parse_args()

    setup_logging()
    mismatches = asyncio.run(run(args.reseller_id))
    sys.exit(1 if mismatches else 0)


if __name__ == "__main__":
    main()
