from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from rvu_tracker.src.core.cache.reference_code_cache import ReferenceCodeCache
from rvu_tracker.src.core.config.settings import get_settings
from rvu_tracker.src.core.database.db_session import AsyncSessionLocal
from rvu_tracker.src.core.monitoring.app_metrics import MetricsCollector
from rvu_tracker.src.processing.analytics_service import AnalyticsAggregator
from rvu_tracker.src.processing.rvu_code_repository import RVUCodeRepository

logger = structlog.get_logger(__name__) # Logger for dependency related messages

# One instance of each per process; tests replace them through app.dependency_overrides.
_metrics_collector_instance: Optional[MetricsCollector] = None
_reference_code_cache_instance: Optional[ReferenceCodeCache] = None
_analytics_aggregator_instance: Optional[AnalyticsAggregator] = None

def get_async_session_factory() -> Callable[[], AsyncSession]:
    """Returns the raw session factory callable."""
    return AsyncSessionLocal

def get_metrics_collector() -> MetricsCollector:
    global _metrics_collector_instance
    if _metrics_collector_instance is None:
        _metrics_collector_instance = MetricsCollector()
        logger.info("Default MetricsCollector instance created.")
    return _metrics_collector_instance

def get_reference_code_cache() -> ReferenceCodeCache:
    global _reference_code_cache_instance
    if _reference_code_cache_instance is None:
        metrics_collector = get_metrics_collector()
        repository = RVUCodeRepository(
            session_factory=get_async_session_factory(),
            metrics_collector=metrics_collector,
        )
        _reference_code_cache_instance = ReferenceCodeCache(
            loader=repository.fetch_all,
            ttl_seconds=get_settings().RVU_CACHE_TTL_SECONDS,
            metrics_collector=metrics_collector,
        )
        logger.info("Default ReferenceCodeCache instance created.")
    return _reference_code_cache_instance

def get_analytics_aggregator() -> AnalyticsAggregator:
    global _analytics_aggregator_instance
    if _analytics_aggregator_instance is None:
        _analytics_aggregator_instance = AnalyticsAggregator(metrics_collector=get_metrics_collector())
        logger.info("Default AnalyticsAggregator instance created.")
    return _analytics_aggregator_instance
