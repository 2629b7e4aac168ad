"""
Discovery Router
Thin HTTP adapters over the discovery core: home listing, delivery
eligibility, global search and result composition.
"""
import logging
from typing import Callable, List, Literal, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..cache.layers import CacheClient
from ..config import settings
from ..db import get_db, get_session_local
from ..schemas.delivery import ZIP_RE, DeliveryCheckRequest, DeliveryEligibilityResult
from ..schemas.geo import Coordinates, LocationSignal, SerializedProduct
from ..schemas.search import ComposeRequest, ComposeResponse, GlobalSearchResults
from ..services.delivery_eligibility import DeliveryEligibilityService
from ..services.geo_product_repository import GeoProductRepository, get_home_products_for_location
from ..services.global_search import global_search
from ..services.result_filters import compose_results, result_counts
from ..services.spatial_query import SpatialQueryEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["discovery"])


def get_cache(request: Request) -> CacheClient:
    return request.app.state.cache


def get_session_factory() -> Callable[[], Session]:
    return get_session_local()


def get_repository(
    cache: CacheClient = Depends(get_cache),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> GeoProductRepository:
    return GeoProductRepository(cache, session_factory, settings)


@router.get("/products/home", response_model=List[SerializedProduct])
async def home_products(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    zip: Optional[str] = Query(None, pattern=ZIP_RE.pattern),
    source: Literal['browser', 'zipcode', 'ip'] = 'browser',
    limit: Optional[int] = Query(None, ge=1, le=100),
    repo: GeoProductRepository = Depends(get_repository),
):
    """Products near the shopper and/or delivering to their ZIP"""
    # ZIP+4 shares its 5-digit prefix's delivery coverage and cache key
    if zip is not None:
        zip = zip[:5]
    location = None
    if lat is not None and lng is not None:
        location = LocationSignal(source=source, coords=Coordinates(lat=lat, lng=lng), zip_code=zip)
    return await get_home_products_for_location(repo, location, zip_code=zip, limit=limit)


@router.post("/delivery/eligibility", response_model=DeliveryEligibilityResult)
async def delivery_eligibility(
    request: DeliveryCheckRequest,
    db: Session = Depends(get_db),
):
    return await DeliveryEligibilityService(db).check(request)


@router.get("/search", response_model=GlobalSearchResults)
async def search(
    zip: str = Query(..., pattern=ZIP_RE.pattern),
    q: str = Query("", max_length=200),
    repo: GeoProductRepository = Depends(get_repository),
    db: Session = Depends(get_db),
):
    return await global_search(repo, SpatialQueryEngine(db), zip[:5], q)


@router.post("/search/compose", response_model=ComposeResponse)
def compose(request: ComposeRequest):
    """Apply sidebar filters to already-fetched results"""
    return {
        "results": compose_results(request.products, request.stands, request.farms, request.filters),
        "counts": result_counts(request.products, request.stands, request.farms),
    }
