"""
Prefix-pattern invalidation run after writes to products, stands or users.

Failures are logged by the cache client; they never fail the write.
"""
import asyncio
import logging
from typing import List, Optional

from localmarket.cache.keys import CacheKeys, generate_cache_key
from localmarket.cache.layers import CacheClient

logger = logging.getLogger(__name__)


async def _delete_patterns(cache: CacheClient, patterns: List[str]) -> int:
    results = await asyncio.gather(
        *(cache.delete_by_pattern(pattern) for pattern in patterns),
        return_exceptions=True,
    )
    deleted = 0
    for pattern, result in zip(patterns, results):
        if isinstance(result, Exception):
            logger.error(f"Cache invalidation failed for pattern {pattern}: {result}")
            continue
        deleted += result
    return deleted


async def invalidate_product_caches(cache: CacheClient, product_id: Optional[str] = None) -> int:
    """Invalidate all product listing caches, plus one product entry if given"""
    patterns = [
        f"{CacheKeys.PRODUCTS_LIST}:*",
        f"{CacheKeys.PRODUCTS_BY_STAND}:*",
        f"{CacheKeys.PRODUCTS_BY_USER}:*",
    ]
    if product_id:
        patterns.append(generate_cache_key(CacheKeys.PRODUCT, product_id))
    return await _delete_patterns(cache, patterns)


async def invalidate_market_stand_caches(cache: CacheClient, stand_id: Optional[str] = None) -> int:
    """Invalidate stand caches; products-by-stand go too"""
    patterns = [
        f"{CacheKeys.MARKET_STANDS_LIST}:*",
        f"{CacheKeys.MARKET_STANDS_BY_LOCATION}:*",
        f"{CacheKeys.MARKET_STANDS_BY_USER}:*",
        f"{CacheKeys.PRODUCTS_BY_STAND}:*",
    ]
    if stand_id:
        patterns.append(generate_cache_key(CacheKeys.MARKET_STAND, stand_id))
    return await _delete_patterns(cache, patterns)


async def invalidate_user_caches(cache: CacheClient, user_id: str) -> int:
    patterns = [
        generate_cache_key(CacheKeys.USER_PROFILE, user_id),
        f"{CacheKeys.PRODUCTS_BY_USER}:{user_id}:*",
        f"{CacheKeys.MARKET_STANDS_BY_USER}:{user_id}:*",
    ]
    return await _delete_patterns(cache, patterns)
