# flashdrop/services/stock_ledger.py
"""
Derived stock accounting.

Available stock is never stored. It is recounted from active reservations
and purchases every time, either as a plain read for display or inside the
locked transaction that is about to act on it.
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from flashdrop.core.enums import ReservationStatus
from flashdrop.models.drop import Drop
from flashdrop.models.purchase import Purchase
from flashdrop.models.reservation import Reservation
from flashdrop.models.user import User
from flashdrop.schemas.drop import RecentPurchaser


def compute_available(total_stock: int, active_holds: int, purchases: int) -> int:
    return max(0, int(total_stock) - int(active_holds) - int(purchases))


class StockLedger:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_active_holds(self, drop_id: int) -> int:
        query = (
            select(func.count())
            .select_from(Reservation)
            .where(
                Reservation.drop_id == drop_id,
                Reservation.status == ReservationStatus.ACTIVE.value,
            )
        )
        return int(await self.db.scalar(query) or 0)

    async def count_purchases(self, drop_id: int) -> int:
        query = select(func.count()).select_from(Purchase).where(Purchase.drop_id == drop_id)
        return int(await self.db.scalar(query) or 0)

    async def available_for(self, drop_id: int, total_stock: int) -> int:
        """Availability for a drop whose total is already known (e.g. locked)."""
        active_holds = await self.count_active_holds(drop_id)
        purchases = await self.count_purchases(drop_id)
        return compute_available(total_stock, active_holds, purchases)

    async def available_stock(self, drop_id: int) -> Optional[int]:
        """
        Current available stock for a drop.

        Returns:
            Integer >= 0, or None if the drop does not exist
        """
        total_stock = await self.db.scalar(select(Drop.total_stock).where(Drop.id == drop_id))
        if total_stock is None:
            return None
        return await self.available_for(drop_id, total_stock)

    async def recent_purchasers(self, drop_id: int, limit: int = 3) -> List[RecentPurchaser]:
        """Most recent purchases for a drop, newest first."""
        query = (
            select(User.username, Purchase.created_at)
            .join(User, Purchase.user_id == User.id)
            .where(Purchase.drop_id == drop_id)
            .order_by(Purchase.created_at.desc(), Purchase.id.desc())
            .limit(limit)
        )
        rows = (await self.db.execute(query)).all()
        return [RecentPurchaser(username=username, purchased_at=created_at) for username, created_at in rows]
