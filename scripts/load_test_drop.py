#!/usr/bin/env python
"""
Hammer one drop with concurrent buyers and check nothing was oversold.

Each buyer reserves and then purchases on its own session, retrying
CONCURRENT_UPDATE answers the way a client would.

Usage:
    python scripts/load_test_drop.py --stock 10 --buyers 200
"""
import asyncio
import logging
import time
from collections import Counter
from decimal import Decimal

import click

from flashdrop.core.config import get_settings
from flashdrop.core.logging_config import configure_logging
from flashdrop.database import async_session, engine
from flashdrop.models.drop import Drop
from flashdrop.services.conflicts import retry_on_conflict
from flashdrop.services.reservation_service import ReservationService
from flashdrop.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


async def buy(drop_id: int, username: str, attempts: int) -> str:
    settings = get_settings()
    async with async_session() as session:
        service = ReservationService(session, settings=settings)

        reserved = await retry_on_conflict(lambda: service.reserve(drop_id, username), attempts=attempts)
        if not reserved.success:
            return reserved.error.value

        purchased = await retry_on_conflict(
            lambda: service.purchase(reserved.reservation.id, username), attempts=attempts
        )
        return "PURCHASED" if purchased.success else purchased.error.value


async def run(stock: int, buyers: int, attempts: int) -> bool:
    try:
        async with async_session() as session:
            drop = Drop(name=f"Load test {int(time.time())}", price=Decimal("1.00"), total_stock=stock)
            session.add(drop)
            await session.commit()
            drop_id = drop.id

        started = time.time()
        results = await asyncio.gather(
            *(buy(drop_id, f"load_{i}", attempts) for i in range(buyers))
        )
        elapsed = time.time() - started

        counts = Counter(results)
        for result, count in sorted(counts.items()):
            logger.info(f"  {result}: {count}")
        logger.info(f"{buyers} buyers in {elapsed:.2f}s")

        async with async_session() as session:
            available = await StockLedger(session).available_stock(drop_id)

        expected_sold = min(stock, buyers)
        if counts["PURCHASED"] != expected_sold or available != stock - expected_sold:
            logger.error(f"Stock mismatch: sold {counts['PURCHASED']}, {available} left of {stock}")
            return False

        logger.info(f"OK: sold {counts['PURCHASED']} of {stock}, none oversold")
        return True
    finally:
        await engine.dispose()


@click.command()
@click.option('--stock', default=10, show_default=True, help='Units in the test drop')
@click.option('--buyers', default=100, show_default=True, help='Concurrent buyers')
@click.option('--attempts', default=5, show_default=True, help='Tries per call on CONCURRENT_UPDATE')
def main(stock, buyers, attempts):
    """Create a drop and race buyers against it"""
    configure_logging()
    ok = asyncio.run(run(stock, buyers, attempts))
    raise SystemExit(0 if ok else 1)


if __name__ == "__main__":
    main()
