from .user import User
from .drop import Drop
from .reservation import Reservation
from .purchase import Purchase

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'User',
    'Drop',
    'Reservation',
    'Purchase',
]
