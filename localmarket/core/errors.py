"""
Error taxonomy for the discovery core.

Cache errors never leave the cache layer, and "not eligible" is a result
state rather than an exception. Only request validation and store failures
are modelled here.
"""
from typing import Any, Dict, List, Optional


class LocalMarketError(Exception):
    """Base class for discovery core errors"""


class InvalidEligibilityRequest(LocalMarketError):
    """Eligibility request rejected before any I/O (bad ZIP, missing product id)."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class SpatialQueryError(LocalMarketError):
    """The spatial store failed after the bounded retry gave up."""

    def __init__(self, query_name: str, cause: Exception):
        super().__init__(f"{query_name} failed: {cause}")
        self.query_name = query_name
        self.cause = cause


class CacheError(LocalMarketError):
    """Internal to the cache layer; logged and treated as a miss."""
