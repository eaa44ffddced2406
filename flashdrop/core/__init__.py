"""
Core module exports.
"""
from .enums import (
    ReservationStatus,
    ErrorCode,
    NotificationEvent
)

from .exceptions import (
    BaseServiceError,
    DropServiceError,
    DropNotFoundError,
    DatabaseError
)

from .utils import (
    utcnow,
    normalize_username
)
