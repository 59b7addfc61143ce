from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, REGISTRY
from prometheus_client.exposition import CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .api.dependencies import get_reference_code_cache
from .api.routes import analytics_routes, favorites_routes, rvu_routes, user_routes, visits_routes
from .core.cache.reference_code_cache import ReferenceCodeCache
from .core.config.settings import get_settings
from .core.database.db_session import engine as async_engine, get_db_session
from .core.exceptions import ReloadFailed
from .core.logging_config import setup_logging

setup_logging() # Initialize logging
logger = structlog.get_logger(__name__)


# --- Startup warmups ---
async def warmup_db_pool():
    logger.info("Application startup: warming up database connection pool...")
    app_settings = get_settings()
    warmup_count = min(app_settings.DB_POOL_SIZE, 3)

    try:
        for i in range(warmup_count):
            async with async_engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.debug(f"DB warmup connection {i+1}/{warmup_count} successful.")
        logger.info(f"Database connection pool warmed up with {warmup_count} connections.")
    except Exception as e:
        logger.error(f"Error during database connection pool warmup: {e}", exc_info=True)


async def warmup_reference_code_cache():
    if not get_settings().RVU_CACHE_WARM_ON_STARTUP:
        logger.info("RVU_CACHE_WARM_ON_STARTUP is disabled. Skipping RVU cache warmup.")
        return
    try:
        codes = await get_reference_code_cache().get_all()
        logger.info("RVU code cache warmed up.", total_codes=len(codes))
    except ReloadFailed as e:
        # The first search request retries the load.
        logger.error("Error during RVU cache warmup", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    await warmup_db_pool()
    await warmup_reference_code_cache()
    yield
    logger.info("Application shutdown: disposing database engine.")
    await async_engine.dispose()


app = FastAPI(title="RVU Tracker", version="1.0.0", lifespan=lifespan)

app.include_router(rvu_routes.router, prefix="/api/v1/rvu", tags=["RVU Codes"])
app.include_router(analytics_routes.router, prefix="/api/v1/analytics", tags=["Analytics"])
app.include_router(visits_routes.router, prefix="/api/v1/visits", tags=["Visits"])
app.include_router(favorites_routes.router, prefix="/api/v1/favorites", tags=["Favorites"])
app.include_router(user_routes.router, prefix="/api/v1/user", tags=["User"])


def _describe_validation_error(error: Dict[str, Any]) -> str:
    message = error.get("msg", "Invalid value")
    # model_validator failures carry the raised ValueError text behind this prefix
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    return f"{'.'.join(location)}: {message}" if location else message


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests are client errors: 400 with a readable `detail`."""
    detail = "; ".join(_describe_validation_error(error) for error in exc.errors())
    logger.info("Request validation failed", path=request.url.path, detail=detail)
    return JSONResponse(status_code=400, content={"detail": detail})


@app.get("/health", tags=["Monitoring"])
async def health_check():
    logger.info("Health check accessed")
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": app.version,
    }


@app.get("/metrics", tags=["Monitoring"])
async def get_metrics():
    """
    Exposes Prometheus metrics.
    """
    logger.debug("Metrics endpoint called.")
    return Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


@app.get("/ready", tags=["Monitoring"])
async def readiness_check(
    db: AsyncSession = Depends(get_db_session),
    cache: ReferenceCodeCache = Depends(get_reference_code_cache),
) -> Dict[str, Any]:
    checks = {
        "database": {"status": "unhealthy", "details": "Check not performed"},
        "rvu_cache": {"status": "empty", "details": "Check not performed"},
    }

    # Database check
    try:
        result = await db.execute(text("SELECT 1"))
        if result.scalar_one() == 1:
            checks["database"]["status"] = "healthy"
            checks["database"]["details"] = "Successfully connected and queried."
        else:
            checks["database"]["details"] = "Query executed but result was unexpected."
    except Exception as e:
        logger.error("Readiness check: Database connection failed", error=str(e), exc_info=False)
        checks["database"]["details"] = f"Connection failed: {str(e)}"

    # RVU cache state. An empty cache is acceptable: it loads on first use.
    stats = cache.stats()
    checks["rvu_cache"]["status"] = "loaded" if stats.total_codes else "empty"
    checks["rvu_cache"]["details"] = stats.model_dump()

    if checks["database"]["status"] != "healthy":
        logger.warning("Readiness check failed", overall_status=checks)
        raise HTTPException(status_code=503, detail=checks)

    logger.info("Readiness check successful", overall_status=checks)
    return checks
