from typing import List

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..api.models.visit_models import ProcedureIn, VisitCreate, VisitUpdate
from ..core.database.models.visits_db import VisitModel, VisitProcedureModel
from ..core.exceptions import VisitNotFound

logger = structlog.get_logger(__name__)


def _procedure_from_input(procedure: ProcedureIn) -> VisitProcedureModel:
    return VisitProcedureModel(
        hcpcs=procedure.hcpcs,
        description=procedure.description,
        status_code=procedure.status_code,
        work_rvu=procedure.work_rvu,
        quantity=procedure.quantity,
    )


class VisitService:
    """Create, list, replace and delete a user's visits together with their procedures."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _get_owned_visit(self, visit_id: int, user_id: str) -> VisitModel:
        stmt = (
            select(VisitModel)
            .options(selectinload(VisitModel.procedures))
            .where(VisitModel.id == visit_id, VisitModel.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        visit = (await self.db.execute(stmt)).scalars().first()
        if visit is None:
            raise VisitNotFound(visit_id)
        return visit

    async def create_visit(self, user_id: str, visit_data: VisitCreate) -> VisitModel:
        visit = VisitModel(
            user_id=user_id,
            date=visit_data.date,
            time=visit_data.time,
            notes=visit_data.notes or None,
            is_no_show=visit_data.is_no_show,
            procedures=[_procedure_from_input(p) for p in visit_data.procedures],
        )
        self.db.add(visit)
        await self.db.commit()
        logger.info("Visit created", visit_id=visit.id, user_id=user_id,
                    is_no_show=visit.is_no_show, procedure_count=len(visit_data.procedures))
        return await self._get_owned_visit(visit.id, user_id)

    async def list_visits(self, user_id: str) -> List[VisitModel]:
        stmt = (
            select(VisitModel)
            .options(selectinload(VisitModel.procedures))
            .where(VisitModel.user_id == user_id)
            .order_by(VisitModel.date.desc(), VisitModel.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update_visit(self, visit_id: int, user_id: str, visit_data: VisitUpdate) -> VisitModel:
        """Updates the visit fields and replaces its whole procedure set."""
        visit = await self._get_owned_visit(visit_id, user_id)
        visit.date = visit_data.date
        visit.time = visit_data.time
        visit.notes = visit_data.notes or None
        visit.is_no_show = visit_data.is_no_show
        # delete-orphan cascade removes the previous procedures
        visit.procedures = [_procedure_from_input(p) for p in visit_data.procedures]
        await self.db.commit()
        logger.info("Visit updated", visit_id=visit_id, user_id=user_id, procedure_count=len(visit_data.procedures))
        return await self._get_owned_visit(visit_id, user_id)

    async def delete_visit(self, visit_id: int, user_id: str) -> None:
        visit = await self._get_owned_visit(visit_id, user_id)
        await self.db.delete(visit)
        await self.db.commit()
        logger.info("Visit deleted", visit_id=visit_id, user_id=user_id)
