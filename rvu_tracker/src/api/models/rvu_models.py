from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from typing import Optional

class ReferenceCode(BaseModel):
    """One row of the RVU reference table, as held in the in-memory snapshot."""
    hcpcs: str
    description: str
    status_code: str
    work_rvu: Decimal = Field(ge=0)

    # Snapshot entries are shared between requests and must never be mutated.
    model_config = ConfigDict(frozen=True, from_attributes=True)


class CacheStats(BaseModel):
    total_codes: int
    cache_age_ms: int
    is_loading: bool


class WarmupStats(BaseModel):
    total_codes: int
    load_time_ms: int
    cache_age_ms: int


class WarmupResponse(BaseModel):
    success: bool
    message: str
    stats: WarmupStats


class RefreshResponse(BaseModel):
    success: bool
    stats: CacheStats
    error: Optional[str] = None
