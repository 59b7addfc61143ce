from typing import Dict

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database.models.favorites_db import FavoriteModel
from ..core.database.models.visits_db import VisitModel, VisitProcedureModel

logger = structlog.get_logger(__name__)


class AccountService:
    """Operations on everything a user owns."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def delete_user_data(self, user_id: str) -> Dict[str, int]:
        """
        Deletes the user's procedures, visits and favorites in one transaction.

        Procedures are deleted explicitly: bulk deletes do not run the ORM
        cascade. Returns row counts per table.
        """
        owned_visit_ids = select(VisitModel.id).where(VisitModel.user_id == user_id)

        procedures = await self.db.execute(
            delete(VisitProcedureModel).where(VisitProcedureModel.visit_id.in_(owned_visit_ids))
        )
        visits = await self.db.execute(delete(VisitModel).where(VisitModel.user_id == user_id))
        favorites = await self.db.execute(delete(FavoriteModel).where(FavoriteModel.user_id == user_id))
        await self.db.commit()

        counts = {
            "visit_procedures": procedures.rowcount,
            "visits": visits.rowcount,
            "favorites": favorites.rowcount,
        }
        logger.info("User data deleted", user_id=user_id, **counts)
        return counts
