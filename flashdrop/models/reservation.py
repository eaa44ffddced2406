# flashdrop/models/reservation.py

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from flashdrop.core.enums import ReservationStatus
from flashdrop.core.utils import utcnow
from ..database import Base


class Reservation(Base):
    """
    A short-lived hold on one unit of a drop by one user.

    Status only ever moves out of ACTIVE; EXPIRED and COMPLETED are terminal.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_drop_status", "drop_id", "status"),
        Index("ix_reservations_status_expires_at", "status", "expires_at"),
        # At most one active hold per (drop, user)
        Index(
            "uq_reservations_active_drop_user",
            "drop_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    drop_id = Column(Integer, ForeignKey("drops.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=ReservationStatus.ACTIVE.value)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    drop = relationship("Drop", back_populates="reservations")
    user = relationship("User", back_populates="reservations")
    purchase = relationship("Purchase", back_populates="reservation", uselist=False)

    def __repr__(self) -> str:
        return (
            f"<Reservation id={self.id} drop={self.drop_id} user={self.user_id} "
            f"status={self.status} expires_at={self.expires_at}>"
        )
