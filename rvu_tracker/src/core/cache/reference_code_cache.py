import asyncio
import time
from typing import Awaitable, Callable, Dict, NamedTuple, Optional, Sequence, Tuple

import structlog

from ...api.models.rvu_models import CacheStats, ReferenceCode
from ..exceptions import ReloadFailed
from ..monitoring.app_metrics import MetricsCollector

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
CACHE_TYPE = "rvu_codes"

ReferenceCodeLoader = Callable[[], Awaitable[Sequence[ReferenceCode]]]


class _Snapshot(NamedTuple):
    codes: Tuple[ReferenceCode, ...]
    by_hcpcs: Dict[str, ReferenceCode]


def _build_snapshot(codes: Sequence[ReferenceCode]) -> _Snapshot:
    by_hcpcs: Dict[str, ReferenceCode] = {}
    for code in codes:
        by_hcpcs.setdefault(code.hcpcs, code)
    return _Snapshot(codes=tuple(codes), by_hcpcs=by_hcpcs)


_EMPTY_SNAPSHOT = _Snapshot(codes=(), by_hcpcs={})


class ReferenceCodeCache:
    """
    In-memory snapshot of the RVU reference table with substring search.

    The snapshot (an immutable tuple plus an hcpcs index) is replaced
    wholesale on every successful reload, so a reader always sees either the
    old or the new table. At most one reload runs at a time: callers arriving
    while a reload is in flight await the same future instead of starting
    their own.
    """

    def __init__(
        self,
        loader: ReferenceCodeLoader,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        metrics_collector: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self.metrics_collector = metrics_collector
        self._clock = clock

        self._snapshot: _Snapshot = _EMPTY_SNAPSHOT
        self._loaded_at: Optional[float] = None
        self._inflight: Optional[asyncio.Future] = None
        logger.info("ReferenceCodeCache initialized.", ttl_seconds=ttl_seconds)

    @property
    def is_loading(self) -> bool:
        return self._inflight is not None

    def _is_stale(self) -> bool:
        if not self._snapshot.codes or self._loaded_at is None:
            return True
        return (self._clock() - self._loaded_at) > self.ttl_seconds

    def _age_ms(self) -> int:
        if self._loaded_at is None:
            return 0
        return int((self._clock() - self._loaded_at) * 1000)

    async def get_all(self) -> Tuple[ReferenceCode, ...]:
        """Returns the current snapshot, reloading first when it is empty or older than the TTL."""
        if self._is_stale():
            await self._reload()
        elif self.metrics_collector:
            self.metrics_collector.record_cache_operation(cache_type=CACHE_TYPE, operation_type='get', outcome='hit')
        return self._snapshot.codes

    async def force_refresh(self) -> Tuple[ReferenceCode, ...]:
        await self._reload()
        return self._snapshot.codes

    async def search(self, query: str, limit: int = 100) -> Tuple[ReferenceCode, ...]:
        """
        Case-insensitive substring match on hcpcs or description.

        Results keep snapshot order (hcpcs ascending) and are truncated to `limit`.
        """
        codes = await self.get_all()
        needle = query.lower()
        results = []
        for code in codes:
            if len(results) >= limit:
                break
            if needle in code.hcpcs.lower() or needle in code.description.lower():
                results.append(code)
        return tuple(results)

    def lookup(self, hcpcs: str) -> Optional[ReferenceCode]:
        """Exact hcpcs match against the current snapshot. Never triggers a reload."""
        return self._snapshot.by_hcpcs.get(hcpcs)

    def stats(self) -> CacheStats:
        return CacheStats(
            total_codes=len(self._snapshot.codes),
            cache_age_ms=self._age_ms(),
            is_loading=self.is_loading,
        )

    async def _reload(self) -> None:
        if self._inflight is not None:
            # Waiters get whatever snapshot exists once the flight lands, even if it failed.
            logger.debug("RVU code reload already in flight, waiting for it.")
            await asyncio.shield(self._inflight)
            return

        self._inflight = asyncio.get_running_loop().create_future()
        start_time = time.perf_counter()
        logger.info("Loading RVU codes from database...")
        try:
            loaded = _build_snapshot(await self._loader())
        except Exception as e:
            logger.error("Failed to load RVU codes; keeping previous snapshot.",
                         error=str(e), snapshot_size=len(self._snapshot.codes), exc_info=True)
            if self.metrics_collector:
                self.metrics_collector.record_cache_operation(cache_type=CACHE_TYPE, operation_type='reload', outcome='error')
            raise ReloadFailed(f"Failed to load RVU codes: {e}") from e
        else:
            self._snapshot = loaded
            self._loaded_at = self._clock()
            duration_seconds = time.perf_counter() - start_time
            logger.info("Loaded RVU codes.", total_codes=len(loaded.codes), duration_ms=int(duration_seconds * 1000))
            if self.metrics_collector:
                self.metrics_collector.record_cache_operation(cache_type=CACHE_TYPE, operation_type='reload', outcome='success')
                self.metrics_collector.record_cache_reload_duration(CACHE_TYPE, duration_seconds)
                self.metrics_collector.set_reference_codes_cached(len(loaded.codes))
        finally:
            inflight, self._inflight = self._inflight, None
            inflight.set_result(None)
