"""
Purpose: Administrative creation of drops and the public listing of live drops.

Drops are written once and never mutated afterwards; the listing attaches the
recounted availability, the most recent purchasers and, when a username is
given, that user's own live hold.
"""

import logging
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flashdrop.core.config import Settings, get_settings
from flashdrop.core.enums import ReservationStatus
from flashdrop.core.exceptions import DatabaseError, DropNotFoundError
from flashdrop.core.utils import normalize_username, utcnow
from flashdrop.models.drop import Drop
from flashdrop.models.reservation import Reservation
from flashdrop.models.user import User
from flashdrop.schemas.drop import DropCreate, DropRead, DropWithStock, UserReservation
from flashdrop.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


class DropService:
    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.ledger = StockLedger(db)

    async def create_drop(self, drop_data: DropCreate) -> DropRead:
        """
        Creates a drop.

        Args:
            drop_data: Validated drop data

        Returns:
            Created drop

        Raises:
            DatabaseError: If the insert fails
        """
        now = utcnow()
        drop = Drop(
            name=drop_data.name,
            price=drop_data.price,
            total_stock=drop_data.total_stock,
            starts_at=drop_data.starts_at or now,
            ends_at=drop_data.ends_at,
            created_at=now,
        )
        try:
            self.db.add(drop)
            await self.db.commit()
            await self.db.refresh(drop)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(f"Failed to create drop: {str(e)}") from e

        logger.info(f"Created drop {drop.id} '{drop.name}' with {drop.total_stock} units")
        return DropRead.model_validate(drop)

    async def get_drop(self, drop_id: int) -> DropRead:
        drop = await self.db.get(Drop, drop_id)
        if drop is None:
            raise DropNotFoundError(f"Drop {drop_id} not found")
        return DropRead.model_validate(drop)

    async def list_active_drops(self, username: Optional[str] = None) -> List[DropWithStock]:
        """Drops currently inside their sale window, newest first."""
        now = utcnow()
        query = (
            select(Drop)
            .where(
                Drop.starts_at <= now,
                or_(Drop.ends_at.is_(None), Drop.ends_at > now),
            )
            .order_by(Drop.created_at.desc(), Drop.id.desc())
        )
        drops = (await self.db.execute(query)).scalars().all()

        name = normalize_username(username)
        result = []
        for drop in drops:
            available = await self.ledger.available_for(drop.id, drop.total_stock)
            recent = await self.ledger.recent_purchasers(
                drop.id, limit=self.settings.RECENT_PURCHASERS_LIMIT
            )
            user_reservation = None
            if name:
                user_reservation = await self._live_reservation(drop.id, name, now)

            result.append(
                DropWithStock(
                    **DropRead.model_validate(drop).model_dump(),
                    available_stock=available,
                    recent_purchasers=recent,
                    user_reservation=user_reservation,
                )
            )
        return result

    async def _live_reservation(self, drop_id: int, username: str, now) -> Optional[UserReservation]:
        reservation = await self.db.scalar(
            select(Reservation)
            .join(User, Reservation.user_id == User.id)
            .where(
                Reservation.drop_id == drop_id,
                Reservation.status == ReservationStatus.ACTIVE.value,
                Reservation.expires_at > now,
                User.username == username,
            )
        )
        if reservation is None:
            return None
        return UserReservation(id=reservation.id, expires_at=reservation.expires_at)
