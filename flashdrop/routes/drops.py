import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from flashdrop.core.config import Settings, get_settings
from flashdrop.core.security import require_api_key
from flashdrop.dependencies import get_db
from flashdrop.schemas.drop import DropCreate, DropRead
from flashdrop.services.drop_service import DropService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drops", tags=["drops"])


@router.get("")
async def list_drops(
    username: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Live drops with their current stock and, for a username, its own hold"""
    drops = await DropService(db, settings).list_active_drops(username)
    return {"drops": [drop.model_dump(mode="json") for drop in drops]}


@router.post(
    "",
    response_model=DropRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[require_api_key()],
)
async def create_drop(drop_data: DropCreate, db: AsyncSession = Depends(get_db)):
    return await DropService(db).create_drop(drop_data)
