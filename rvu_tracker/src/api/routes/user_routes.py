import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user_id
from ..models.visit_models import MessageResponse
from ...core.database.db_session import get_db_session, rollback_quietly
from ...processing.account_service import AccountService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.delete("", response_model=MessageResponse, summary="Delete all of the caller's visits and favorites")
async def delete_account(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        await AccountService(db).delete_user_data(user_id)
    except SQLAlchemyError as e:
        logger.error("Failed to delete account", user_id=user_id, error=str(e), exc_info=True)
        await rollback_quietly(db)
        raise HTTPException(status_code=500, detail="Failed to delete account")
    return MessageResponse(message="Account and all data deleted")
