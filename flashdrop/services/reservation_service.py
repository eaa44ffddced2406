"""
Purpose: Reserve and purchase units of a drop without ever overselling.

Role: The concurrency core. Every decision that depends on stock is taken
inside one transaction that holds an exclusive lock:

- reserve() locks the drop row, so committed reserves on a drop form a
  single order and the recounted availability can never go negative.
- purchase() locks the reservation row and turns a live hold into a purchase
  in the same commit that marks the hold completed.

Business rejections (out of stock, expired hold, ...) come back as typed
outcomes. Lock contention comes back as CONCURRENT_UPDATE, which is always
safe to retry. Any other failure is raised.

Holds only ever move out of ACTIVE, and every such move is a conditional
UPDATE ... WHERE status = 'active', so purchase, lazy expiry and the expiry
sweeper can race on the same hold without resurrecting a terminal one.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flashdrop.core.config import Settings, get_settings
from flashdrop.core.enums import ErrorCode, ReservationStatus
from flashdrop.core.exceptions import DatabaseError
from flashdrop.core.utils import normalize_username, utcnow
from flashdrop.models.drop import Drop
from flashdrop.models.purchase import Purchase
from flashdrop.models.reservation import Reservation
from flashdrop.models.user import User
from flashdrop.schemas.purchase import PurchaseOutcome, PurchaseRead
from flashdrop.schemas.reservation import ReservationRead, ReserveOutcome
from flashdrop.services.conflicts import classify_conflict, conflict_outcome
from flashdrop.services.locking import row_lock, set_lock_timeout
from flashdrop.services.notifier import ChangeNotifier, NullNotifier
from flashdrop.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)

INVALID_USERNAME_MESSAGE = "Username must be 3-50 alphanumeric characters"

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class ReservationService:
    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[ChangeNotifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.notifier = notifier or NullNotifier()
        self.settings = settings or get_settings()
        self.ledger = StockLedger(db)

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.RESERVATION_TTL_SECONDS)

    # ------------------------------------------------------------------
    # Reserve
    # ------------------------------------------------------------------

    async def reserve(self, drop_id: int, username: str) -> ReserveOutcome:
        """
        Place (or extend) a hold on one unit of a drop.

        Args:
            drop_id: Drop to reserve from
            username: Caller; created on first use

        Returns:
            ReserveOutcome. On success carries the hold and whether an
            existing hold was extended instead of a new unit being taken.
        """
        name = normalize_username(username)
        if name is None:
            return ReserveOutcome(
                success=False,
                error=ErrorCode.INVALID_USERNAME,
                message=INVALID_USERNAME_MESSAGE,
            )

        outcome = await self._run_locked(
            ReserveOutcome, "drop", drop_id, self._reserve_in_transaction, drop_id, name
        )
        if outcome.success:
            logger.info(
                f"Reservation {outcome.reservation.id} for {name} on drop {drop_id} "
                f"{'extended' if outcome.extended else 'created'}"
            )
            await self._publish_stock(drop_id)
        return outcome

    async def _reserve_in_transaction(self, drop_id: int, username: str) -> ReserveOutcome:
        user = await self._get_or_create_user(username)

        drop = await self.db.scalar(
            select(Drop)
            .where(Drop.id == drop_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if drop is None:
            return ReserveOutcome(success=False, error=ErrorCode.DROP_NOT_FOUND, message="Drop not found")

        now = utcnow()
        if not drop.is_active(now):
            return ReserveOutcome(
                success=False,
                error=ErrorCode.DROP_NOT_ACTIVE,
                message="This drop is not currently active",
            )

        expires_at = now + self.ttl

        # A repeat reserve by the same user pushes the existing hold forward
        existing_id = await self.db.scalar(
            select(Reservation.id).where(
                Reservation.drop_id == drop_id,
                Reservation.user_id == user.id,
                Reservation.status == ReservationStatus.ACTIVE.value,
            )
        )
        if existing_id is not None:
            result = await self.db.execute(
                update(Reservation)
                .where(
                    Reservation.id == existing_id,
                    Reservation.status == ReservationStatus.ACTIVE.value,
                )
                .values(expires_at=expires_at, updated_at=now)
            )
            if result.rowcount == 1:
                return ReserveOutcome(
                    success=True,
                    extended=True,
                    reservation=ReservationRead(
                        id=existing_id,
                        drop_id=drop_id,
                        user_id=user.id,
                        status=ReservationStatus.ACTIVE,
                        expires_at=expires_at,
                    ),
                )
            # Swept between the read and the update; take a fresh unit below

        available = await self.ledger.available_for(drop.id, drop.total_stock)
        if available < 1:
            return ReserveOutcome(success=False, error=ErrorCode.OUT_OF_STOCK, message="This item is sold out")

        reservation = Reservation(
            drop_id=drop.id,
            user_id=user.id,
            status=ReservationStatus.ACTIVE.value,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        self.db.add(reservation)
        await self.db.flush()

        return ReserveOutcome(success=True, reservation=ReservationRead.model_validate(reservation))

    # ------------------------------------------------------------------
    # Purchase
    # ------------------------------------------------------------------

    async def purchase(self, reservation_id: int, username: str) -> PurchaseOutcome:
        """
        Convert the caller's live hold into a purchase at the drop's current price.

        Args:
            reservation_id: Hold to complete
            username: Caller; must own the hold

        Returns:
            PurchaseOutcome carrying the purchase on success
        """
        name = normalize_username(username)
        if name is None:
            return PurchaseOutcome(
                success=False,
                error=ErrorCode.INVALID_USERNAME,
                message=INVALID_USERNAME_MESSAGE,
            )

        outcome = await self._run_locked(
            PurchaseOutcome, "reservation", reservation_id, self._purchase_in_transaction, reservation_id, name
        )
        if outcome.success:
            logger.info(
                f"Purchase {outcome.purchase.id} completed by {name} on drop {outcome.purchase.drop_id} "
                f"for {outcome.purchase.amount_paid}"
            )
            await self._publish_purchase(outcome.purchase.drop_id, name)
        return outcome

    async def _purchase_in_transaction(self, reservation_id: int, username: str) -> PurchaseOutcome:
        user = await self._get_or_create_user(username)

        row = (
            await self.db.execute(
                select(Reservation, Drop.price)
                .join(Drop, Reservation.drop_id == Drop.id)
                .where(Reservation.id == reservation_id)
                .with_for_update(of=Reservation)
                .execution_options(populate_existing=True)
            )
        ).first()
        if row is None:
            return PurchaseOutcome(
                success=False,
                error=ErrorCode.RESERVATION_NOT_FOUND,
                message="Reservation not found",
            )

        reservation, price = row
        if reservation.user_id != user.id:
            return PurchaseOutcome(
                success=False,
                error=ErrorCode.UNAUTHORIZED,
                message="This reservation belongs to another user",
            )

        if reservation.status != ReservationStatus.ACTIVE.value:
            return self._expired_outcome()

        now = utcnow()
        if now > reservation.expires_at:
            # Lazy expiry: the attempt itself retires the stale hold
            await self._transition(reservation.id, ReservationStatus.EXPIRED, now)
            return self._expired_outcome()

        if not await self._transition(reservation.id, ReservationStatus.COMPLETED, now):
            return self._expired_outcome()

        purchase = Purchase(
            drop_id=reservation.drop_id,
            user_id=user.id,
            reservation_id=reservation.id,
            amount_paid=price,
            created_at=now,
        )
        self.db.add(purchase)
        await self.db.flush()

        return PurchaseOutcome(
            success=True,
            purchase=PurchaseRead(
                id=purchase.id,
                drop_id=purchase.drop_id,
                reservation_id=purchase.reservation_id,
                amount_paid=purchase.amount_paid,
                username=username,
                created_at=purchase.created_at,
            ),
        )

    @staticmethod
    def _expired_outcome() -> PurchaseOutcome:
        return PurchaseOutcome(
            success=False,
            error=ErrorCode.RESERVATION_EXPIRED,
            message="Your reservation has expired",
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_reservation(self, reservation_id: int) -> Optional[ReservationRead]:
        reservation = await self.db.get(Reservation, reservation_id, populate_existing=True)
        if reservation is None:
            return None
        return ReservationRead.model_validate(reservation)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run_locked(self, outcome_cls, lock_kind: str, lock_key: int, work, *args):
        """
        Run work(*args) in one transaction under the exclusive lock for
        (lock_kind, lock_key).

        Waiting for the lock and running the work share the transaction wait
        budget. The COMMIT is not bounded by it: once the work has finished,
        its outcome only ever reflects whether the commit itself succeeded.
        """
        timeout = self.settings.TRANSACTION_TIMEOUT_SECONDS
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            async with row_lock(self.db, lock_kind, lock_key, timeout=timeout):
                transaction = await self.db.begin()
                try:
                    await set_lock_timeout(self.db, timeout)
                    outcome = await asyncio.wait_for(
                        work(*args), timeout=max(deadline - loop.time(), 0)
                    )
                    await transaction.commit()
                except BaseException:
                    await transaction.rollback()
                    raise
                return outcome
        except Exception as exc:
            message = classify_conflict(exc)
            if message is not None:
                logger.warning(f"Concurrent update on {lock_kind} {lock_key}: {exc!r}")
                return conflict_outcome(outcome_cls, message)
            if isinstance(exc, SQLAlchemyError):
                logger.error(f"Database error on {lock_kind} {lock_key}: {exc}")
                raise DatabaseError(f"Transaction on {lock_kind} {lock_key} failed: {exc}") from exc
            raise

    async def _get_or_create_user(self, username: str) -> User:
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is not None:
            await self.db.execute(
                insert(User)
                .values(username=username, created_at=utcnow())
                .on_conflict_do_nothing(index_elements=["username"])
            )
            return await self.db.scalar(select(User).where(User.username == username))

        user = await self.db.scalar(select(User).where(User.username == username))
        if user is None:
            user = User(username=username, created_at=utcnow())
            self.db.add(user)
            await self.db.flush()
        return user

    async def _transition(self, reservation_id: int, status: ReservationStatus, now) -> bool:
        """Move an ACTIVE hold to status. False if it was no longer active."""
        result = await self.db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status == ReservationStatus.ACTIVE.value,
            )
            .values(status=status.value, updated_at=now)
        )
        return result.rowcount == 1

    async def _publish_stock(self, drop_id: int) -> None:
        try:
            async with self.db.begin():
                available = await self.ledger.available_stock(drop_id)
            if available is not None:
                await self.notifier.stock_updated(drop_id, available)
        except Exception:
            # The reservation is committed; a lost broadcast must not undo that
            logger.exception(f"Failed to publish stock update for drop {drop_id}")

    async def _publish_purchase(self, drop_id: int, username: str) -> None:
        try:
            async with self.db.begin():
                available = await self.ledger.available_stock(drop_id)
                recent = await self.ledger.recent_purchasers(
                    drop_id, limit=self.settings.RECENT_PURCHASERS_LIMIT
                )
            if available is not None:
                await self.notifier.stock_updated(drop_id, available)
            await self.notifier.purchase_completed(
                drop_id,
                username,
                [purchaser.model_dump(mode="json") for purchaser in recent],
            )
        except Exception:
            logger.exception(f"Failed to publish purchase for drop {drop_id}")
