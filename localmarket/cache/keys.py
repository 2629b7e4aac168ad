"""
Cache key prefixes and key construction
"""
from typing import Union


class CacheKeys:
    """Hierarchical key prefixes (prefix:dimension:...)"""
    PRODUCT = "product"
    PRODUCTS_LIST = "products:list"
    PRODUCTS_BY_STAND = "products:stand"
    PRODUCTS_BY_USER = "products:user"
    MARKET_STAND = "stand"
    MARKET_STANDS_LIST = "stands:list"
    MARKET_STANDS_BY_LOCATION = "stands:location"
    MARKET_STANDS_BY_USER = "stands:user"
    USER_PROFILE = "user:profile"
    GEOCODE_ZIP = "geocode:zip"


def generate_cache_key(prefix: str, *parts: Union[str, int, float, bool]) -> str:
    """Generate cache key from a prefix and ordered parts"""
    return ":".join([prefix, *(_format_part(p) for p in parts)])


def _format_part(part) -> str:
    if isinstance(part, bool):
        return "true" if part else "false"
    if isinstance(part, float) and part.is_integer():
        # 250.0 and 250 must share a key
        return str(int(part))
    return str(part)
