"""
Shared enums and constants used across the application.
"""

from enum import Enum


class ReservationStatus(str, Enum):
    """Hold lifecycle. EXPIRED and COMPLETED are terminal."""
    ACTIVE = "active"
    EXPIRED = "expired"
    COMPLETED = "completed"


class ErrorCode(str, Enum):
    """Outcome codes returned by the reservation engine and the API layer"""
    # Input validation
    INVALID_USERNAME = "INVALID_USERNAME"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Reserve
    DROP_NOT_FOUND = "DROP_NOT_FOUND"
    DROP_NOT_ACTIVE = "DROP_NOT_ACTIVE"
    OUT_OF_STOCK = "OUT_OF_STOCK"

    # Purchase
    RESERVATION_NOT_FOUND = "RESERVATION_NOT_FOUND"
    RESERVATION_EXPIRED = "RESERVATION_EXPIRED"
    UNAUTHORIZED = "UNAUTHORIZED"

    # Lock timeout, deadlock, serialization failure. Safe to retry.
    CONCURRENT_UPDATE = "CONCURRENT_UPDATE"

    # Reservation lookup
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class NotificationEvent(str, Enum):
    STOCK_UPDATED = "stock_updated"
    PURCHASE_COMPLETED = "purchase_completed"
