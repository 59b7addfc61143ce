from datetime import date
from typing import List, Optional, Union

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user_id
from ..dependencies import get_analytics_aggregator
from ..models.analytics_models import AnalyticsCodeBreakdown, AnalyticsPeriodSummary
from ...core.database.db_session import get_db_session
from ...core.exceptions import AggregationFailed, InvalidGranularity, MissingDateRange
from ...processing.analytics_service import AggregationMode, AnalyticsAggregator

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get(
    "",
    response_model=Union[List[AnalyticsCodeBreakdown], List[AnalyticsPeriodSummary]],
    summary="Work RVU totals per day/week/month/year, optionally broken down by HCPCS code",
)
async def get_analytics(
    period: str = Query("daily", description="daily, weekly, monthly or yearly"),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    group_by: Optional[str] = Query(None, alias="groupBy", description="Set to 'hcpcs' for a per-code breakdown"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
    aggregator: AnalyticsAggregator = Depends(get_analytics_aggregator),
):
    mode = AggregationMode.BREAKDOWN if group_by == "hcpcs" else AggregationMode.SUMMARY
    logger.info("Analytics requested", user_id=user_id, period=period, start=str(start), end=str(end), mode=mode.value)

    try:
        return await aggregator.aggregate(db, user_id, period, start, end, mode=mode)
    except (MissingDateRange, InvalidGranularity) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AggregationFailed:
        raise HTTPException(status_code=500, detail="Failed to fetch analytics")
