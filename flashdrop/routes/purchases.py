import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from flashdrop.core.config import Settings, get_settings
from flashdrop.core.enums import ErrorCode
from flashdrop.dependencies import get_db, get_notifier
from flashdrop.schemas.purchase import PurchaseCreate
from flashdrop.services.notifier import ChangeNotifier
from flashdrop.services.reservation_service import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/purchases", tags=["purchases"])

PURCHASE_ERROR_STATUS = {
    ErrorCode.RESERVATION_EXPIRED: status.HTTP_410_GONE,
    ErrorCode.RESERVATION_NOT_FOUND: status.HTTP_410_GONE,
    ErrorCode.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorCode.CONCURRENT_UPDATE: status.HTTP_409_CONFLICT,
}


@router.post("")
async def create_purchase(
    payload: PurchaseCreate,
    db: AsyncSession = Depends(get_db),
    notifier: ChangeNotifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
):
    outcome = await ReservationService(db, notifier, settings).purchase(payload.reservation_id, payload.username)
    if outcome.success:
        status_code = status.HTTP_201_CREATED
    else:
        status_code = PURCHASE_ERROR_STATUS.get(outcome.error, status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content=outcome.model_dump(mode="json"))
