# flashdrop/services/expiry_service.py
"""
Background reclamation of abandoned holds.

Each tick expires every ACTIVE hold whose expiry has passed, then pushes the
recounted stock of each affected drop to the notifier. Holds are expired one
conditional UPDATE at a time; a hold that was purchased, expired or extended
in the meantime simply does not match.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from flashdrop.core.enums import ReservationStatus
from flashdrop.core.utils import utcnow
from flashdrop.models.reservation import Reservation
from flashdrop.services.notifier import ChangeNotifier, NullNotifier
from flashdrop.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


async def expire_reservations(session_factory: async_sessionmaker) -> List[int]:
    """
    Mark elapsed ACTIVE holds as EXPIRED.

    Returns:
        Sorted ids of the drops that had at least one hold expired
    """
    now = utcnow()
    affected = set()
    expired = 0

    async with session_factory() as session:
        async with session.begin():
            rows = (
                await session.execute(
                    select(Reservation.id, Reservation.drop_id).where(
                        Reservation.status == ReservationStatus.ACTIVE.value,
                        Reservation.expires_at < now,
                    )
                )
            ).all()

        for reservation_id, drop_id in rows:
            async with session.begin():
                result = await session.execute(
                    update(Reservation)
                    .where(
                        Reservation.id == reservation_id,
                        Reservation.status == ReservationStatus.ACTIVE.value,
                        Reservation.expires_at < now,
                    )
                    .values(status=ReservationStatus.EXPIRED.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
            if result.rowcount == 1:
                expired += 1
                affected.add(drop_id)

    if expired:
        logger.info(f"Expired {expired} reservation(s) across {len(affected)} drop(s)")
    return sorted(affected)


class ExpirySweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: Optional[ChangeNotifier] = None,
    ):
        self.session_factory = session_factory
        self.notifier = notifier or NullNotifier()

    async def run_once(self) -> List[int]:
        """
        One sweep. Failures are logged and swallowed so the next tick runs
        independently.

        Returns:
            Affected drop ids, whether or not their notifications went out.
            Empty if the sweep itself failed.
        """
        try:
            drop_ids = await expire_reservations(self.session_factory)
        except Exception as e:
            logger.exception(f"Error in expiry sweep: {str(e)}")
            return []

        if drop_ids:
            await self._publish(drop_ids)
        return drop_ids

    async def _publish(self, drop_ids: List[int]) -> None:
        async with self.session_factory() as session:
            ledger = StockLedger(session)
            for drop_id in drop_ids:
                # One failing drop must not silence the others
                try:
                    available = await ledger.available_stock(drop_id)
                    if available is None:
                        continue
                    await self.notifier.stock_updated(drop_id, available)
                except Exception:
                    logger.exception(f"Failed to publish stock update for drop {drop_id}")
