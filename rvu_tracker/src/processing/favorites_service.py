from typing import List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..api.models.favorite_models import FavoriteOrderItem
from ..core.database.models.favorites_db import FavoriteModel
from ..core.exceptions import FavoriteNotFound

logger = structlog.get_logger(__name__)


class FavoritesService:
    """A user's list of frequently used HCPCS codes, in user-defined order."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _get_favorite(self, user_id: str, hcpcs: str) -> Optional[FavoriteModel]:
        stmt = select(FavoriteModel).where(FavoriteModel.user_id == user_id, FavoriteModel.hcpcs == hcpcs)
        return (await self.db.execute(stmt)).scalars().first()

    async def list_favorites(self, user_id: str) -> List[FavoriteModel]:
        stmt = (
            select(FavoriteModel)
            .where(FavoriteModel.user_id == user_id)
            .order_by(FavoriteModel.sort_order, FavoriteModel.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def add_favorite(self, user_id: str, hcpcs: str) -> Tuple[FavoriteModel, bool]:
        """Adds `hcpcs` at the end of the list. Returns (favorite, created); adding twice is a no-op."""
        existing = await self._get_favorite(user_id, hcpcs)
        if existing is not None:
            logger.debug("Favorite already present", user_id=user_id, hcpcs=hcpcs)
            return existing, False

        max_sort_order = (await self.db.execute(
            select(func.max(FavoriteModel.sort_order)).where(FavoriteModel.user_id == user_id)
        )).scalar_one_or_none()
        favorite = FavoriteModel(
            user_id=user_id,
            hcpcs=hcpcs,
            sort_order=0 if max_sort_order is None else max_sort_order + 1,
        )
        self.db.add(favorite)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent request inserted the same (user_id, hcpcs) first.
            await self.db.rollback()
            existing = await self._get_favorite(user_id, hcpcs)
            if existing is None:
                raise
            logger.debug("Favorite added concurrently", user_id=user_id, hcpcs=hcpcs)
            return existing, False
        logger.info("Favorite added", user_id=user_id, hcpcs=hcpcs, sort_order=favorite.sort_order)
        return favorite, True

    async def remove_favorite(self, user_id: str, hcpcs: str) -> None:
        favorite = await self._get_favorite(user_id, hcpcs)
        if favorite is None:
            raise FavoriteNotFound(hcpcs)
        await self.db.delete(favorite)
        await self.db.commit()
        logger.info("Favorite removed", user_id=user_id, hcpcs=hcpcs)

    async def reorder_favorites(self, user_id: str, items: Sequence[FavoriteOrderItem]) -> None:
        """Applies explicit sort orders; items without one take their list position. Unknown codes are ignored."""
        for position, item in enumerate(items):
            sort_order = item.sort_order if item.sort_order is not None else position
            await self.db.execute(
                update(FavoriteModel)
                .where(FavoriteModel.user_id == user_id, FavoriteModel.hcpcs == item.hcpcs)
                .values(sort_order=sort_order)
            )
        await self.db.commit()
        logger.info("Favorites reordered", user_id=user_id, count=len(items))
