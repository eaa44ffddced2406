# flashdrop/models/purchase.py

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric
from sqlalchemy.orm import relationship

from flashdrop.core.utils import utcnow
from ..database import Base


class Purchase(Base):
    """A completed sale. Written once per reservation, never updated."""

    __tablename__ = "purchases"
    __table_args__ = (
        Index("ix_purchases_drop_created_at", "drop_id", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    drop_id = Column(Integer, ForeignKey("drops.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, unique=True)
    amount_paid = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    drop = relationship("Drop", back_populates="purchases")
    user = relationship("User", back_populates="purchases")
    reservation = relationship("Reservation", back_populates="purchase")

    def __repr__(self) -> str:
        return (
            f"<Purchase id={self.id} drop={self.drop_id} user={self.user_id} "
            f"reservation={self.reservation_id} amount={self.amount_paid}>"
        )
