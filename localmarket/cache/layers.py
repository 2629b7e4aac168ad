"""
Redis-backed cache client used as a cache-aside layer.

The cache is a derived, disposable view of the spatial store: every
failure here is logged and degrades to a miss, never to an error. Every
call is awaited on the asyncio client and bounded by a timeout, so a
stalled Redis costs a read at most cache_op_timeout_s.
"""
import asyncio
import functools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, TypeVar

import redis.asyncio as redis

from localmarket.config import settings
from localmarket.core.errors import CacheError
from localmarket.core.metrics import cache_errors, cache_hits, cache_misses

logger = logging.getLogger(__name__)

T = TypeVar("T")

DELETE_BATCH_SIZE = 500


class CacheClient:
    """Thin wrapper over an asyncio Redis client with swallow-and-log failure policy"""

    def __init__(self, redis_url: Optional[str] = None, op_timeout_s: Optional[float] = None):
        self.redis = redis.from_url(
            redis_url or settings.redis_url,
            socket_timeout=settings.redis_socket_timeout_s,
            socket_connect_timeout=settings.redis_connect_timeout_s,
        )
        self.op_timeout_s = op_timeout_s if op_timeout_s is not None else settings.cache_op_timeout_s
        self.hit_count = 0
        self.miss_count = 0
        self.error_count = 0
        self._background_tasks: Set[asyncio.Task] = set()

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, self.op_timeout_s)

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache; None on miss, on timeout or on any error"""
        try:
            value = await self._bounded(self.redis.get(key))
            if value is None:
                self._record_miss()
                return None
            decoded = self._decode(value)
            self.hit_count += 1
            cache_hits.inc()
            return decoded
        except Exception as e:
            self._record_error("get")
            logger.error(f"Cache get error for key {key}: {e!r}")
            self._record_miss()
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Set value with TTL; returns False instead of raising"""
        try:
            serialized = json.dumps(value, default=str)
            return bool(await self._bounded(self.redis.setex(key, ttl_seconds, serialized)))
        except Exception as e:
            self._record_error("set")
            logger.error(f"Cache set error for key {key}: {e!r}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete key"""
        try:
            return bool(await self._bounded(self.redis.delete(key)))
        except Exception as e:
            self._record_error("delete")
            logger.error(f"Cache delete error for key {key}: {e!r}")
            return False

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern; returns the number deleted"""
        deleted = 0
        try:
            batch: List[Any] = []
            async for key in self.redis.scan_iter(match=pattern, count=DELETE_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= DELETE_BATCH_SIZE:
                    deleted += await self._bounded(self.redis.delete(*batch))
                    batch = []
            if batch:
                deleted += await self._bounded(self.redis.delete(*batch))
            return deleted
        except Exception as e:
            self._record_error("delete_pattern")
            logger.error(f"Cache delete pattern error for pattern {pattern}: {e!r}")
            return deleted

    async def cache_aside(self, key: str, ttl: int, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        """
        Canonical read path: try cache, on miss call fetch_fn and store the
        result in a detached task. The fetched value is returned whether or
        not the store succeeds. Errors from fetch_fn propagate.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        data = await fetch_fn()

        self.detach(self.set(key, data, ttl), label=f"cache set {key}")
        return data

    def detach(self, coro: Awaitable[Any], label: str) -> asyncio.Task:
        """Start a background task whose outcome is only observed via logging"""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(functools.partial(self._on_detached_done, label))
        return task

    def _on_detached_done(self, label: str, task: asyncio.Task):
        self._background_tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background {label} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background {label} failed: {exc}")
        elif task.result() is False:
            logger.warning(f"Background {label} did not complete")

    async def drain(self):
        """Wait for all pending detached tasks (shutdown, tests)"""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    @property
    def pending_tasks(self) -> int:
        return len(self._background_tasks)

    async def batch_get(self, keys: List[str]) -> List[Optional[Any]]:
        """Get several keys in one round trip"""
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                for key in keys:
                    pipe.get(key)
                results = await self._bounded(pipe.execute())
        except Exception as e:
            self._record_error("batch_get")
            logger.error(f"Batch cache get error: {e!r}")
            return [None for _ in keys]

        values: List[Optional[Any]] = []
        for key, raw in zip(keys, results):
            if raw is None:
                values.append(None)
                continue
            try:
                values.append(self._decode(raw))
            except CacheError as e:
                self._record_error("batch_get")
                logger.error(f"Cache decode error for key {key}: {e}")
                values.append(None)
        return values

    async def ping(self) -> bool:
        """Health check for the Redis connection"""
        try:
            return bool(await self._bounded(self.redis.ping()))
        except Exception as e:
            logger.error(f"Redis health check failed: {e!r}")
            return False

    async def close(self):
        try:
            await self.redis.aclose()
        except Exception as e:
            logger.warning(f"Error closing Redis connection: {e}")

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        total = self.hit_count + self.miss_count
        hit_rate = self.hit_count / total if total > 0 else 0.0
        return {
            "hits": self.hit_count,
            "misses": self.miss_count,
            "errors": self.error_count,
            "hit_rate": hit_rate,
            "pending_writes": self.pending_tasks,
        }

    @staticmethod
    def _decode(raw: Any) -> Any:
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            raise CacheError(f"undecodable cache payload: {e}") from e

    def _record_miss(self):
        self.miss_count += 1
        cache_misses.inc()

    def _record_error(self, op: str):
        self.error_count += 1
        cache_errors.labels(op=op).inc()
