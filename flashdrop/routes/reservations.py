import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from flashdrop.core.config import Settings, get_settings
from flashdrop.core.enums import ErrorCode, ReservationStatus
from flashdrop.core.utils import utcnow
from flashdrop.dependencies import get_db, get_notifier
from flashdrop.schemas.reservation import ReservationCreate
from flashdrop.services.notifier import ChangeNotifier
from flashdrop.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["reservations"])

RESERVE_ERROR_STATUS = {
    ErrorCode.OUT_OF_STOCK: status.HTTP_404_NOT_FOUND,
    ErrorCode.DROP_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONCURRENT_UPDATE: status.HTTP_409_CONFLICT,
}


@router.post("")
async def create_reservation(
    payload: ReservationCreate,
    db: AsyncSession = Depends(get_db),
    notifier: ChangeNotifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
):
    outcome = await ReservationService(db, notifier, settings).reserve(payload.drop_id, payload.username)
    if outcome.success:
        status_code = status.HTTP_201_CREATED
    else:
        status_code = RESERVE_ERROR_STATUS.get(outcome.error, status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content=outcome.model_dump(mode="json"))


@router.get("/{reservation_id}")
async def get_reservation(reservation_id: int, db: AsyncSession = Depends(get_db)):
    reservation = await ReservationService(db).get_reservation(reservation_id)
    if reservation is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": ErrorCode.NOT_FOUND.value, "message": "Reservation not found"},
        )
    if reservation.status != ReservationStatus.ACTIVE or utcnow() > reservation.expires_at:
        return JSONResponse(
            status_code=status.HTTP_410_GONE,
            content={"error": ErrorCode.EXPIRED.value, "message": "Reservation has expired"},
        )
    return reservation.model_dump(mode="json")
