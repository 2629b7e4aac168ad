import time
import logging
from typing import Awaitable, Callable, TypeVar
from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Prometheus metrics
query_duration = Histogram('spatial_query_duration_seconds', 'Spatial store query duration', ['query'])
query_failures = Counter('spatial_query_failures_total', 'Spatial store query failures', ['query'])
cache_hits = Counter('cache_hits_total', 'Cache hits')
cache_misses = Counter('cache_misses_total', 'Cache misses')
cache_errors = Counter('cache_errors_total', 'Cache operation errors', ['op'])

SLOW_QUERY_THRESHOLD_S = 1.0


async def monitored_query(name: str, func: Callable[[], Awaitable[T]]) -> T:
    """Run a store query, recording its duration and failures"""
    start_time = time.time()
    try:
        return await func()
    except Exception:
        query_failures.labels(query=name).inc()
        raise
    finally:
        duration = time.time() - start_time
        query_duration.labels(query=name).observe(duration)
        if duration > SLOW_QUERY_THRESHOLD_S:
            logger.warning("Slow query %s took %.2fs", name, duration)
