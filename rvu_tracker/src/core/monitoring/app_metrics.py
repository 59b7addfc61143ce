from prometheus_client import Counter, Histogram, Gauge
import time
import structlog
from typing import Optional

logger = structlog.get_logger(__name__)

# --- Prometheus Metric Definitions ---
# These are defined globally so they are registered with the default REGISTRY

# 1. Cache Metrics
CACHE_OPERATIONS_TOTAL = Counter(
    'cache_operations_total',
    'Total cache operations, labeled by type and outcome.',
    ['cache_type', 'operation_type', 'outcome'] # e.g., rvu_codes, reload, success/error
)

CACHE_RELOAD_DURATION_SECONDS = Histogram(
    'cache_reload_duration_seconds',
    'Time spent reloading a cache snapshot from the database, in seconds.',
    ['cache_type'],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float('inf'))
)

REFERENCE_CODES_CACHED_GAUGE = Gauge(
    'reference_codes_cached_gauge',
    'Number of RVU reference codes currently held in the in-memory snapshot.'
)

# 2. Database Metrics
DATABASE_QUERY_DURATION_SECONDS = Histogram(
    'database_query_duration_seconds',
    'Duration of key database queries, in seconds.',
    ['query_name'] # e.g., 'fetch_all_rvu_codes', 'analytics_summary', 'analytics_breakdown'
)

# 3. Analytics Metrics
ANALYTICS_REQUESTS_TOTAL = Counter(
    'analytics_requests_total',
    'Total analytics aggregations, labeled by mode, granularity and outcome.',
    ['mode', 'granularity', 'outcome'] # e.g., summary, week, success/error
)

logger.info("Application Prometheus metrics defined in app_metrics.py.")


class MetricsCollector:
    """
    Collects and exposes application metrics using Prometheus client.
    """

    def __init__(self):
        logger.info("MetricsCollector initialized (stateless, uses global metrics).")

    def record_cache_operation(self, cache_type: str, operation_type: str, outcome: str):
        CACHE_OPERATIONS_TOTAL.labels(cache_type=cache_type, operation_type=operation_type, outcome=outcome).inc()

    def record_cache_reload_duration(self, cache_type: str, duration_seconds: float):
        CACHE_RELOAD_DURATION_SECONDS.labels(cache_type=cache_type).observe(duration_seconds)

    def set_reference_codes_cached(self, count: int):
        """Sets the size of the current reference code snapshot."""
        REFERENCE_CODES_CACHED_GAUGE.set(count)

    def record_database_query_duration(self, query_name: str, duration_seconds: float):
        DATABASE_QUERY_DURATION_SECONDS.labels(query_name=query_name).observe(duration_seconds)

    def record_analytics_request(self, mode: str, granularity: str, outcome: str):
        ANALYTICS_REQUESTS_TOTAL.labels(mode=mode, granularity=granularity, outcome=outcome).inc()

    # Timer class for timing database queries
    class _DatabaseTimer:
        def __init__(self, collector_instance: 'MetricsCollector', query_name: str):
            self.collector = collector_instance
            self.query_name = query_name
            self.start_time: Optional[float] = None

        def __enter__(self):
            self.start_time = time.perf_counter()
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if self.start_time is not None:
                duration_seconds = time.perf_counter() - self.start_time
                self.collector.record_database_query_duration(self.query_name, duration_seconds)

    def time_db_query(self, query_name: str) -> _DatabaseTimer:
        """Returns a Timer context manager for a database query."""
        return self._DatabaseTimer(self, query_name)
