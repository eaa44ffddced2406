"""
Drop schemas for admin creation and the public listing.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from flashdrop.core.utils import to_naive_utc
from .base import BaseSchema


class DropCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    total_stock: int = Field(..., ge=0)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("starts_at", "ends_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_window(self):
        if self.starts_at and self.ends_at and self.starts_at >= self.ends_at:
            raise ValueError("starts_at must be before ends_at")
        return self


class DropRead(BaseSchema):
    id: int
    name: str
    price: Decimal
    total_stock: int
    starts_at: datetime
    ends_at: Optional[datetime] = None
    created_at: datetime


class RecentPurchaser(BaseSchema):
    username: str
    purchased_at: datetime


class UserReservation(BaseSchema):
    id: int
    expires_at: datetime


class DropWithStock(DropRead):
    available_stock: int
    recent_purchasers: List[RecentPurchaser] = []
    user_reservation: Optional[UserReservation] = None
