"""
Reservation (hold) schemas and the reserve outcome.
"""
from datetime import datetime

from pydantic import Field
from typing import Optional

from flashdrop.core.enums import ReservationStatus
from .base import BaseSchema, Outcome


class ReservationCreate(BaseSchema):
    drop_id: int = Field(..., gt=0)
    # Format is checked by the engine so it can answer INVALID_USERNAME
    username: str


class ReservationRead(BaseSchema):
    id: int
    drop_id: int
    user_id: int
    status: ReservationStatus
    expires_at: datetime


class ReserveOutcome(Outcome):
    reservation: Optional[ReservationRead] = None
    extended: bool = False
