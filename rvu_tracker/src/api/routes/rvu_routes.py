import time
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..dependencies import get_reference_code_cache
from ..models.rvu_models import CacheStats, ReferenceCode, RefreshResponse, WarmupResponse, WarmupStats
from ...core.cache.reference_code_cache import ReferenceCodeCache
from ...core.config.settings import get_settings
from ...core.exceptions import ReloadFailed

logger = structlog.get_logger(__name__)
router = APIRouter()


def _set_cache_headers(response: Response, stats: CacheStats) -> None:
    response.headers["X-Cache-Total"] = str(stats.total_codes)
    response.headers["X-Cache-Age"] = str(stats.cache_age_ms)


@router.get("/search", response_model=List[ReferenceCode], summary="Substring search over RVU codes")
async def search_rvu_codes(
    response: Response,
    q: Optional[str] = Query(None, description="Case-insensitive substring of an HCPCS code or description"),
    limit: Optional[int] = Query(None, gt=0),
    cache: ReferenceCodeCache = Depends(get_reference_code_cache),
):
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail='Query parameter "q" is required')

    settings = get_settings()
    effective_limit = min(limit or settings.RVU_SEARCH_DEFAULT_LIMIT, settings.RVU_SEARCH_MAX_LIMIT)
    try:
        results = await cache.search(q.strip(), effective_limit)
    except ReloadFailed as e:
        logger.error("Failed to search RVU codes", query=q, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to search RVU codes")

    _set_cache_headers(response, cache.stats())
    return list(results)


@router.get("/warmup", response_model=WarmupResponse, summary="Preload the RVU code cache")
async def warmup_rvu_cache(cache: ReferenceCodeCache = Depends(get_reference_code_cache)):
    start_time = time.perf_counter()
    try:
        await cache.get_all()
    except ReloadFailed as e:
        logger.error("Failed to warm up RVU cache", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to warm up cache")

    stats = cache.stats()
    return WarmupResponse(
        success=True,
        message="RVU cache loaded successfully",
        stats=WarmupStats(
            total_codes=stats.total_codes,
            load_time_ms=int((time.perf_counter() - start_time) * 1000),
            cache_age_ms=stats.cache_age_ms,
        ),
    )


@router.post("/refresh", response_model=RefreshResponse, summary="Reload the RVU code cache unconditionally")
async def refresh_rvu_cache(cache: ReferenceCodeCache = Depends(get_reference_code_cache)):
    try:
        await cache.force_refresh()
    except ReloadFailed as e:
        logger.error("Manual RVU cache refresh failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to refresh cache")
    return RefreshResponse(success=True, stats=cache.stats())


@router.get("/codes/{hcpcs}", response_model=ReferenceCode, summary="Look up one RVU code in the cache")
async def get_rvu_code(hcpcs: str, cache: ReferenceCodeCache = Depends(get_reference_code_cache)):
    code = cache.lookup(hcpcs.strip().upper())
    if code is None:
        raise HTTPException(status_code=404, detail=f"RVU code {hcpcs} not found")
    return code
