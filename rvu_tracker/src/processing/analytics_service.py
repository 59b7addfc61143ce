from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Union

import structlog
from sqlalchemy import Date, DateTime, case, cast, desc, distinct, func, literal_column, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..api.models.analytics_models import AnalyticsCodeBreakdown, AnalyticsPeriodSummary
from ..core.database.models.visits_db import VisitModel, VisitProcedureModel
from ..core.exceptions import AggregationFailed, InvalidGranularity, MissingDateRange
from ..core.monitoring.app_metrics import MetricsCollector

logger = structlog.get_logger(__name__)

# Work RVUs are stored with two decimal places; totals are reported at the same precision.
RVU_PRECISION = Decimal("0.01")


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @classmethod
    def parse(cls, token: Optional[str]) -> "Granularity":
        """Accepts daily/weekly/monthly/yearly as well as the bare unit names. Blank means daily."""
        if token is None or not token.strip():
            return cls.DAY
        normalized = token.strip().lower()
        unit = _PERIOD_ALIASES.get(normalized)
        if unit is None:
            raise InvalidGranularity(token)
        return unit


_PERIOD_ALIASES = {
    "daily": Granularity.DAY, "day": Granularity.DAY,
    "weekly": Granularity.WEEK, "week": Granularity.WEEK,
    "monthly": Granularity.MONTH, "month": Granularity.MONTH,
    "yearly": Granularity.YEAR, "year": Granularity.YEAR,
}

# SQLite has no date_trunc; date() modifiers give the same boundaries.
# 'weekday 0' moves forward to Sunday, '-6 days' lands on that ISO week's Monday.
_SQLITE_MODIFIERS = {
    Granularity.DAY: (),
    Granularity.WEEK: ("'weekday 0'", "'-6 days'"),
    Granularity.MONTH: ("'start of month'",),
    Granularity.YEAR: ("'start of year'",),
}


class AggregationMode(str, Enum):
    SUMMARY = "summary"
    BREAKDOWN = "breakdown"


def period_boundary(column, granularity: Granularity, dialect_name: str):
    """
    SQL expression for the start of the period containing `column`.

    Units are rendered as literals rather than bound parameters so the same
    expression can appear in SELECT and GROUP BY.
    """
    if dialect_name == "sqlite":
        modifiers = [literal_column(m) for m in _SQLITE_MODIFIERS[granularity]]
        return func.date(column, *modifiers)
    if granularity is Granularity.DAY:
        return column
    return cast(func.date_trunc(literal_column(f"'{granularity.value}'"), cast(column, DateTime)), Date)


def _as_date(value: Union[date, datetime, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _as_rvu(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(RVU_PRECISION)


class AnalyticsAggregator:
    """
    Groups a user's visits and procedures into day/week/month/year buckets.

    Summary mode reports work RVU, encounter and no-show totals per period;
    breakdown mode reports per-code totals per period.
    """

    def __init__(self, metrics_collector: MetricsCollector):
        self.metrics_collector = metrics_collector
        logger.info("AnalyticsAggregator initialized with MetricsCollector.", metrics_collector_id=id(metrics_collector))

    async def aggregate(
        self,
        db_session: AsyncSession,
        user_id: str,
        granularity: Optional[str],
        start_date: Optional[date],
        end_date: Optional[date],
        mode: AggregationMode = AggregationMode.SUMMARY,
    ) -> Union[List[AnalyticsPeriodSummary], List[AnalyticsCodeBreakdown]]:
        if start_date is None or end_date is None:
            raise MissingDateRange()
        unit = Granularity.parse(granularity)

        if mode is AggregationMode.BREAKDOWN:
            return await self.breakdown(db_session, user_id, unit, start_date, end_date)
        return await self.summarize(db_session, user_id, unit, start_date, end_date)

    async def summarize(
        self,
        db_session: AsyncSession,
        user_id: str,
        granularity: Granularity,
        start_date: date,
        end_date: date,
    ) -> List[AnalyticsPeriodSummary]:
        dialect_name = db_session.get_bind().dialect.name
        period = period_boundary(VisitModel.date, granularity, dialect_name).label("period_start")

        stmt = (
            select(
                period,
                func.coalesce(func.sum(VisitProcedureModel.work_rvu * VisitProcedureModel.quantity), 0).label("total_work_rvu"),
                # Visits without procedures (no-shows) produce a NULL join row and are not encounters.
                func.count(distinct(case((VisitProcedureModel.id.is_not(None), VisitModel.id)))).label("total_encounters"),
                func.count(distinct(case((VisitModel.is_no_show.is_(True), VisitModel.id)))).label("total_no_shows"),
            )
            .select_from(VisitModel)
            .outerjoin(VisitProcedureModel, VisitProcedureModel.visit_id == VisitModel.id)
            .where(
                VisitModel.user_id == user_id,
                VisitModel.date >= start_date,
                VisitModel.date <= end_date,
            )
            .group_by(period)
            .order_by(period)
        )

        rows = await self._execute(db_session, stmt, "analytics_summary", granularity, AggregationMode.SUMMARY)
        summaries = [
            AnalyticsPeriodSummary(
                period_start=_as_date(row.period_start),
                total_work_rvu=_as_rvu(row.total_work_rvu),
                total_encounters=int(row.total_encounters or 0),
                total_no_shows=int(row.total_no_shows or 0),
            )
            for row in rows
        ]
        logger.info("Analytics summary computed", user_id=user_id, granularity=granularity.value,
                    start_date=str(start_date), end_date=str(end_date), periods=len(summaries))
        return summaries

    async def breakdown(
        self,
        db_session: AsyncSession,
        user_id: str,
        granularity: Granularity,
        start_date: date,
        end_date: date,
    ) -> List[AnalyticsCodeBreakdown]:
        dialect_name = db_session.get_bind().dialect.name
        period = period_boundary(VisitModel.date, granularity, dialect_name).label("period_start")
        total_work_rvu = func.sum(VisitProcedureModel.work_rvu * VisitProcedureModel.quantity).label("total_work_rvu")

        stmt = (
            select(
                period,
                VisitProcedureModel.hcpcs,
                VisitProcedureModel.description,
                VisitProcedureModel.status_code,
                total_work_rvu,
                func.sum(VisitProcedureModel.quantity).label("total_quantity"),
                func.count(VisitProcedureModel.id).label("encounter_count"),
            )
            .select_from(VisitProcedureModel)
            .join(VisitModel, VisitProcedureModel.visit_id == VisitModel.id)
            .where(
                VisitModel.user_id == user_id,
                VisitModel.date >= start_date,
                VisitModel.date <= end_date,
            )
            # description/status_code are per-procedure snapshots, so they are part of the key.
            .group_by(period, VisitProcedureModel.hcpcs, VisitProcedureModel.description, VisitProcedureModel.status_code)
            .order_by(desc("period_start"), desc("total_work_rvu"))
        )

        rows = await self._execute(db_session, stmt, "analytics_breakdown", granularity, AggregationMode.BREAKDOWN)
        breakdown = [
            AnalyticsCodeBreakdown(
                period_start=_as_date(row.period_start),
                hcpcs=row.hcpcs,
                description=row.description or "",
                status_code=row.status_code or "",
                total_work_rvu=_as_rvu(row.total_work_rvu),
                total_quantity=int(row.total_quantity or 0),
                encounter_count=int(row.encounter_count or 0),
            )
            for row in rows
        ]
        logger.info("Analytics breakdown computed", user_id=user_id, granularity=granularity.value,
                    start_date=str(start_date), end_date=str(end_date), rows=len(breakdown))
        return breakdown

    async def _execute(self, db_session: AsyncSession, stmt, query_name: str,
                       granularity: Granularity, mode: AggregationMode) -> list:
        try:
            with self.metrics_collector.time_db_query(query_name):
                result = await db_session.execute(stmt)
                rows = result.all()
        except (SQLAlchemyError, OSError) as e:
            logger.error("Database error during analytics aggregation", query_name=query_name, error=str(e), exc_info=True)
            self.metrics_collector.record_analytics_request(mode=mode.value, granularity=granularity.value, outcome='error')
            raise AggregationFailed("Failed to fetch analytics") from e
        self.metrics_collector.record_analytics_request(mode=mode.value, granularity=granularity.value, outcome='success')
        return rows
