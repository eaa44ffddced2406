# flashdrop/models/user.py

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from flashdrop.core.utils import utcnow
from ..database import Base


class User(Base):
    """A buyer, created lazily the first time a username reserves or buys."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    reservations = relationship("Reservation", back_populates="user")
    purchases = relationship("Purchase", back_populates="user")

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username}>"
