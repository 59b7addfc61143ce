from pydantic import BaseModel
from datetime import date
from decimal import Decimal

class AnalyticsPeriodSummary(BaseModel):
    period_start: date
    total_work_rvu: Decimal
    total_encounters: int
    total_no_shows: int


class AnalyticsCodeBreakdown(BaseModel):
    period_start: date
    hcpcs: str
    description: str
    status_code: str
    total_work_rvu: Decimal
    total_quantity: int
    encounter_count: int
