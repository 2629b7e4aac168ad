"""
Geo Product Repository

Cache-aside over the spatial query engine. Listings are keyed by an ~11km
location bucket so nearby shoppers share entries; a hit is returned as
stored, without re-checking live inventory, for up to the listing TTL.

Store failures end here: callers get an empty list and a log line, never
an exception.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..cache.keys import CacheKeys, generate_cache_key
from ..cache.layers import CacheClient
from ..config import Settings, settings as default_settings
from ..core.errors import SpatialQueryError
from ..core.metrics import monitored_query
from ..core.retry import retry_with_backoff
from ..schemas.geo import LocationSignal
from ..utils.log import log_discovery_event
from .geo import location_bucket
from .spatial_query import SpatialProductRow, SpatialQueryEngine

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.isoformat()


def serialize_row(row: SpatialProductRow) -> Dict[str, Any]:
    """One raw row -> product DTO; every key is always present"""
    market_stand = None
    if row.market_stand_id:
        market_stand = {
            "id": row.market_stand_id,
            "name": row.market_stand_name or "",
            "latitude": row.market_stand_latitude if row.market_stand_latitude is not None else 0.0,
            "longitude": row.market_stand_longitude if row.market_stand_longitude is not None else 0.0,
            "location_name": row.market_stand_location_name or "",
        }

    delivery_info = None
    if row.has_delivery_to_zip:
        delivery_info = {
            "is_available": True,
            "delivery_fee": int(row.delivery_fee) if row.delivery_fee is not None else None,
            "zone_name": row.delivery_zone_name,
            "zone_id": row.delivery_zone_id,
            "minimum_order": row.delivery_minimum_order,
            "free_delivery_threshold": row.delivery_free_threshold,
            "delivery_days": list(row.delivery_days) if row.delivery_days is not None else None,
        }

    # a visible stand to pick up from, or a zone the product actually delivers through
    has_zone = bool(row.product_delivery_zone_id or row.delivery_zone_id)
    is_fulfillable = bool(row.market_stand_id) or (bool(row.product_delivery_available) and has_zone)

    return {
        "id": row.product_id,
        "name": row.product_name,
        "description": row.product_description,
        "price": int(row.product_price),
        "images": list(row.product_images or []),
        "inventory": int(row.product_inventory or 0),
        "tags": list(row.product_tags or []),
        "is_active": bool(row.product_is_active),
        "delivery_available": bool(row.product_delivery_available),
        "available_date": _iso(row.product_available_date),
        "available_until": _iso(row.product_available_until),
        "created_at": _iso(row.product_created_at),
        "updated_at": _iso(row.product_updated_at),
        "market_stand": market_stand,
        "distance": float(row.distance_km) if row.distance_km is not None else None,
        "delivery_info": delivery_info,
        "is_fulfillable": is_fulfillable,
    }


def serialize_results(rows: List[SpatialProductRow]) -> List[Dict[str, Any]]:
    serialized = [serialize_row(row) for row in rows]
    unfulfillable = [p["id"] for p in serialized if not p["is_fulfillable"]]
    if unfulfillable:
        logger.warning(f"Products with neither a visible market stand nor a delivery zone: {unfulfillable}")
    return serialized


class GeoProductRepository:
    def __init__(
        self,
        cache: CacheClient,
        session_factory: Callable[[], Session],
        settings: Optional[Settings] = None,
    ):
        self.cache = cache
        self.session_factory = session_factory
        self.settings = settings or default_settings

    async def get_home_products(
        self,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        zip_code: Optional[str] = None,
        radius_km: float = 250,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        """Products near a location and/or delivering to a ZIP code"""
        cache_key = generate_cache_key(
            CacheKeys.PRODUCTS_LIST,
            "geo",
            location_bucket(lat, lng),
            zip_code or "no-zip",
            radius_km,
            limit,
        )

        async def query(engine: SpatialQueryEngine):
            return await engine.find_products(lat, lng, zip_code, radius_km, limit)

        return await self._cached_listing(cache_key, "get_home_products", query)

    async def get_products_within_radius(
        self,
        lat: float,
        lng: float,
        radius_km: float = 250,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        """Nearby products without the delivery join"""
        cache_key = generate_cache_key(
            CacheKeys.PRODUCTS_LIST,
            "radius",
            location_bucket(lat, lng),
            radius_km,
            limit,
        )

        async def query(engine: SpatialQueryEngine):
            return await engine.find_products_within_radius(lat, lng, radius_km, limit)

        return await self._cached_listing(cache_key, "get_products_within_radius", query)

    async def get_products_delivering_to_zip(self, zip_code: str, limit: int = 20) -> List[Dict[str, Any]]:
        cache_key = generate_cache_key(CacheKeys.PRODUCTS_LIST, "delivery", zip_code, limit)

        async def query(engine: SpatialQueryEngine):
            return await engine.find_products(None, None, zip_code, 0, limit)

        return await self._cached_listing(cache_key, "get_products_delivering_to_zip", query)

    async def _cached_listing(self, cache_key: str, query_name: str, query) -> List[Dict[str, Any]]:
        async def fetch():
            rows = await self._run_query(query_name, query)
            return serialize_results(rows)

        try:
            products = await self.cache.cache_aside(cache_key, self.settings.product_listing_ttl_s, fetch)
        except SpatialQueryError as e:
            logger.error(f"Spatial query failed, returning empty listing: {e}")
            log_discovery_event(logger, query_name, ok=False, cache_key=cache_key, error=str(e.cause))
            return []

        log_discovery_event(logger, query_name, ok=True, cache_key=cache_key, count=len(products))
        return products

    async def _run_query(self, query_name: str, query) -> List[SpatialProductRow]:
        async def attempt():
            session = self.session_factory()
            try:
                return await query(SpatialQueryEngine(session))
            finally:
                session.close()

        try:
            return await monitored_query(
                query_name,
                lambda: retry_with_backoff(
                    attempt,
                    max_attempts=self.settings.spatial_query_max_attempts,
                    initial_delay=self.settings.spatial_query_retry_delay_s,
                    jitter=False,
                ),
            )
        except Exception as e:
            raise SpatialQueryError(query_name, e) from e


async def get_home_products_for_location(
    repo: GeoProductRepository,
    location: Optional[LocationSignal] = None,
    zip_code: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Home page listing for whatever location signal we have.

    A ZIP-derived point is coarse, so it gets a wider radius than a browser fix.
    """
    settings = repo.settings
    if location is None:
        return await repo.get_home_products(
            zip_code=zip_code,
            radius_km=settings.home_radius_browser_km,
            limit=limit or settings.home_limit,
        )

    radius_km = settings.home_radius_zipcode_km if location.source == "zipcode" else settings.home_radius_browser_km
    return await repo.get_home_products(
        lat=location.coords.lat,
        lng=location.coords.lng,
        zip_code=zip_code or location.zip_code,
        radius_km=radius_km,
        limit=limit or settings.home_limit,
    )
