from .base import BaseSchema, Outcome
from .drop import DropCreate, DropRead, DropWithStock, RecentPurchaser, UserReservation
from .reservation import ReservationCreate, ReservationRead, ReserveOutcome
from .purchase import PurchaseCreate, PurchaseRead, PurchaseOutcome
