#!/usr/bin/env python
"""
Run expiry sweeps by hand, outside the app's scheduler.

Usage:
    python scripts/expire_reservations.py
    python scripts/expire_reservations.py --watch --interval 5
"""
import asyncio
import logging

import click

from flashdrop.core.logging_config import configure_logging
from flashdrop.database import async_session, engine
from flashdrop.services.expiry_service import expire_reservations

logger = logging.getLogger(__name__)


async def run(watch: bool, interval: int):
    try:
        while True:
            drop_ids = await expire_reservations(async_session)
            if drop_ids:
                logger.info(f"Drops with reclaimed stock: {drop_ids}")
            else:
                logger.info("No elapsed reservations found")
            if not watch:
                break
            await asyncio.sleep(interval)
    finally:
        await engine.dispose()


@click.command()
@click.option('--watch', is_flag=True, help='Keep sweeping until interrupted')
@click.option('--interval', default=5, show_default=True, help='Seconds between sweeps with --watch')
def main(watch, interval):
    """Expire elapsed reservations so their stock returns to the pool"""
    configure_logging()
    asyncio.run(run(watch, interval))


if __name__ == "__main__":
    main()
