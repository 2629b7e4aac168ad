"""
Global search: products, market stands and farms near a ZIP code
"""
import logging
from typing import List, Optional

import httpx

from ..integrations.zip_geocoder import geocode_zip_code
from ..schemas.search import (
    FarmResult,
    GlobalSearchResults,
    MarketStandResult,
    ProductResult,
    SearchLocation,
)
from .geo_product_repository import GeoProductRepository
from .spatial_query import PlaceHit, SpatialQueryEngine

logger = logging.getLogger(__name__)


def _contains(value: Optional[str], query: str) -> bool:
    return bool(value) and query in value.lower()


def product_matches(product: ProductResult, query: str) -> bool:
    return (
        _contains(product.name, query)
        or _contains(product.description, query)
        or any(query in tag.lower() for tag in product.tags)
        or (product.market_stand is not None and _contains(product.market_stand.name, query))
    )


def stand_matches(stand: MarketStandResult, query: str) -> bool:
    return (
        _contains(stand.name, query)
        or _contains(stand.description, query)
        or any(query in tag.lower() for tag in stand.tags)
        or _contains(stand.location_name, query)
    )


def farm_matches(farm: FarmResult, query: str) -> bool:
    return (
        _contains(farm.name, query)
        or _contains(farm.description, query)
        or _contains(farm.tagline, query)
        or _contains(farm.location_name, query)
    )


def stand_result(hit: PlaceHit) -> MarketStandResult:
    stand = hit.place
    return MarketStandResult(
        id=stand.id,
        name=stand.name,
        description=stand.description,
        latitude=stand.latitude,
        longitude=stand.longitude,
        location_name=stand.location_name or "",
        location_guide=stand.location_guide or "",
        images=stand.images or [],
        tags=stand.tags or [],
        distance=hit.distance_km,
        href=f"/market-stand/{stand.id}",
        product_count=hit.product_count,
    )


def farm_result(hit: PlaceHit) -> FarmResult:
    farm = hit.place
    return FarmResult(
        id=farm.id,
        name=farm.name,
        description=farm.tagline or farm.description,
        latitude=farm.latitude,
        longitude=farm.longitude,
        location_name=farm.location_name or "",
        images=farm.images or [],
        distance=hit.distance_km,
        href=f"/local/{farm.slug}" if farm.slug else f"/local/{farm.id}",
        slug=farm.slug,
        tagline=farm.tagline,
    )


async def global_search(
    repo: GeoProductRepository,
    engine: SpatialQueryEngine,
    zip_code: str,
    query: str = "",
    http_client: Optional[httpx.AsyncClient] = None,
) -> GlobalSearchResults:
    """
    Everything within the search radius of a ZIP code, nearest first,
    optionally narrowed by a case-insensitive text query.
    """
    settings = repo.settings
    try:
        location = await geocode_zip_code(zip_code, client=http_client, cache=repo.cache)
        if location is None:
            return GlobalSearchResults()

        radius_km = settings.search_radius_km
        raw_products = await repo.get_home_products(
            lat=location.lat,
            lng=location.lng,
            zip_code=location.zip_code,
            radius_km=radius_km,
            limit=settings.search_limit,
        )
        products: List[ProductResult] = [ProductResult(**p) for p in raw_products]
        stands = [stand_result(hit) for hit in await engine.find_stands_within_radius(location.lat, location.lng, radius_km)]
        farms = [farm_result(hit) for hit in await engine.find_farms_within_radius(location.lat, location.lng, radius_km)]

        text = (query or "").strip().lower()
        if text:
            products = [p for p in products if product_matches(p, text)]
            stands = [s for s in stands if stand_matches(s, text)]
            farms = [f for f in farms if farm_matches(f, text)]

        return GlobalSearchResults(
            products=products,
            market_stands=stands,
            farms=farms,
            location=SearchLocation(lat=location.lat, lng=location.lng, zip_code=location.zip_code),
        )
    except Exception as e:
        logger.error(f"Error performing global search for {zip_code}: {e}", exc_info=True)
        return GlobalSearchResults()
