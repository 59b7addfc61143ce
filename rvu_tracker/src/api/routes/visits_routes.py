from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user_id
from ..models.visit_models import MessageResponse, VisitCreate, VisitResponse, VisitUpdate
from ...core.database.db_session import get_db_session, rollback_quietly
from ...core.exceptions import VisitNotFound
from ...processing.visit_service import VisitService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("", response_model=VisitResponse, status_code=201)
async def create_visit(
    visit_data: VisitCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        return await VisitService(db).create_visit(user_id, visit_data)
    except SQLAlchemyError as e:
        logger.error("Failed to create visit", user_id=user_id, error=str(e), exc_info=True)
        await rollback_quietly(db)
        raise HTTPException(status_code=500, detail="Failed to create visit")


@router.get("", response_model=List[VisitResponse])
async def list_visits(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        return await VisitService(db).list_visits(user_id)
    except SQLAlchemyError as e:
        logger.error("Failed to fetch visits", user_id=user_id, error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch visits")


@router.put("/{visit_id}", response_model=VisitResponse)
async def update_visit(
    visit_id: int,
    visit_data: VisitUpdate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        return await VisitService(db).update_visit(visit_id, user_id, visit_data)
    except VisitNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SQLAlchemyError as e:
        logger.error("Failed to update visit", visit_id=visit_id, user_id=user_id, error=str(e), exc_info=True)
        await rollback_quietly(db)
        raise HTTPException(status_code=500, detail="Failed to update visit")


@router.delete("/{visit_id}", response_model=MessageResponse)
async def delete_visit(
    visit_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        await VisitService(db).delete_visit(visit_id, user_id)
    except VisitNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SQLAlchemyError as e:
        logger.error("Failed to delete visit", visit_id=visit_id, user_id=user_id, error=str(e), exc_info=True)
        await rollback_quietly(db)
        raise HTTPException(status_code=500, detail="Failed to delete visit")
    return MessageResponse(message="Visit deleted successfully")
