from localmarket.cache.keys import CacheKeys, generate_cache_key
from localmarket.cache.layers import CacheClient

__all__ = ["CacheClient", "CacheKeys", "generate_cache_key"]
