from typing import Callable, List

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..api.models.rvu_models import ReferenceCode
from ..core.database.models.rvu_code_db import RVUCodeModel
from ..core.monitoring.app_metrics import MetricsCollector

logger = structlog.get_logger(__name__)


class RVUCodeRepository:
    """Read access to the rvu_codes reference table. Feeds the ReferenceCodeCache."""

    def __init__(self, session_factory: Callable[[], AsyncSession], metrics_collector: MetricsCollector):
        self.session_factory = session_factory
        self.metrics_collector = metrics_collector

    async def fetch_all(self) -> List[ReferenceCode]:
        """Fetches the whole reference table ordered by hcpcs. Database errors propagate."""
        async with self.session_factory() as session:
            with self.metrics_collector.time_db_query("fetch_all_rvu_codes"):
                stmt = (
                    select(RVUCodeModel.hcpcs, RVUCodeModel.description, RVUCodeModel.status_code, RVUCodeModel.work_rvu)
                    .order_by(RVUCodeModel.hcpcs)
                )
                result = await session.execute(stmt)
                rows = result.all()
        logger.debug("Fetched RVU codes from DB", row_count=len(rows))
        return [
            ReferenceCode(
                hcpcs=row.hcpcs,
                description=row.description or "",
                status_code=row.status_code or "",
                work_rvu=row.work_rvu,
            )
            for row in rows
        ]
