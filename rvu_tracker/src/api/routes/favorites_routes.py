from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user_id
from ..dependencies import get_reference_code_cache
from ..models.favorite_models import FavoriteCreate, FavoriteReorderRequest, FavoriteResponse
from ..models.visit_models import MessageResponse
from ...core.cache.reference_code_cache import ReferenceCodeCache
from ...core.database.db_session import get_db_session, rollback_quietly
from ...core.exceptions import FavoriteNotFound
from ...processing.favorites_service import FavoritesService

logger = structlog.get_logger(__name__)
router = APIRouter()


def _to_response(favorite, cache: ReferenceCodeCache) -> FavoriteResponse:
    response = FavoriteResponse.model_validate(favorite)
    # lookup() only reads the current snapshot; an unloaded cache just leaves rvu_code empty.
    return response.model_copy(update={"rvu_code": cache.lookup(favorite.hcpcs)})


@router.get("", response_model=List[FavoriteResponse])
async def list_favorites(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
    cache: ReferenceCodeCache = Depends(get_reference_code_cache),
):
    try:
        favorites = await FavoritesService(db).list_favorites(user_id)
    except SQLAlchemyError as e:
        logger.error("Failed to fetch favorites", user_id=user_id, error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch favorites")
    return [_to_response(f, cache) for f in favorites]


@router.post("", response_model=FavoriteResponse, status_code=201)
async def add_favorite(
    favorite_data: FavoriteCreate,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
    cache: ReferenceCodeCache = Depends(get_reference_code_cache),
):
    try:
        favorite, created = await FavoritesService(db).add_favorite(user_id, favorite_data.hcpcs.strip())
    except SQLAlchemyError as e:
        logger.error("Failed to add favorite", user_id=user_id, hcpcs=favorite_data.hcpcs, error=str(e), exc_info=True)
        await rollback_quietly(db)
        raise HTTPException(status_code=500, detail="Failed to add favorite")
    if not created:
        response.status_code = 200
    return _to_response(favorite, cache)


@router.patch("/reorder", response_model=MessageResponse)
async def reorder_favorites(
    reorder: FavoriteReorderRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        await FavoritesService(db).reorder_favorites(user_id, reorder.favorites)
    except SQLAlchemyError as e:
        logger.error("Failed to reorder favorites", user_id=user_id, error=str(e), exc_info=True)
        await rollback_quietly(db)
        raise HTTPException(status_code=500, detail="Internal server error")
    return MessageResponse(message="Favorites reordered successfully")


@router.delete("/{hcpcs}", response_model=MessageResponse)
async def remove_favorite(
    hcpcs: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        await FavoritesService(db).remove_favorite(user_id, hcpcs)
    except FavoriteNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SQLAlchemyError as e:
        logger.error("Failed to remove favorite", user_id=user_id, hcpcs=hcpcs, error=str(e), exc_info=True)
        await rollback_quietly(db)
        raise HTTPException(status_code=500, detail="Failed to remove favorite")
    return MessageResponse(message="Favorite removed successfully")
