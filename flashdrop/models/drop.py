# flashdrop/models/drop.py

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String
from sqlalchemy.orm import relationship

from flashdrop.core.utils import utcnow
from ..database import Base


class Drop(Base):
    """
    A sellable batch of limited stock.

    total_stock is never decremented; availability is derived from the
    reservation and purchase counts (see services.stock_ledger).
    """

    __tablename__ = "drops"
    __table_args__ = (
        CheckConstraint("total_stock >= 0", name="ck_drops_total_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    total_stock = Column(Integer, nullable=False)
    starts_at = Column(DateTime, default=utcnow, nullable=False)
    ends_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    reservations = relationship("Reservation", back_populates="drop")
    purchases = relationship("Purchase", back_populates="drop")

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if self.starts_at is not None and now < self.starts_at:
            return False
        if self.ends_at is not None and now >= self.ends_at:
            return False
        return True

    def __repr__(self) -> str:
        return f"<Drop id={self.id} name={self.name!r} total_stock={self.total_stock}>"
