"""
Purchase schemas and the purchase outcome.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from .base import BaseSchema, Outcome


class PurchaseCreate(BaseSchema):
    reservation_id: int = Field(..., gt=0)
    username: str


class PurchaseRead(BaseSchema):
    id: int
    drop_id: int
    reservation_id: int
    amount_paid: Decimal
    username: str
    created_at: datetime


class PurchaseOutcome(Outcome):
    purchase: Optional[PurchaseRead] = None

