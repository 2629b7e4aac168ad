"""
Spatial queries over products, market stands and farms.

PostgreSQL backends run a single PostGIS query (ST_DWithin over a GIST
expression index on stand coordinates, joined with delivery-zone ZIP
coverage). Other backends (SQLite in tests and local dev) prefilter on the
indexed latitude/longitude columns with a bounding box and refine with
haversine_km in-process.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import String, and_, cast, func, or_, text
from sqlalchemy.orm import Session

from ..models.marketplace import DeliveryZone, Local, MarketStand, Product
from .geo import bounding_box, haversine_km

logger = logging.getLogger(__name__)

APPROVED = "APPROVED"

SPATIAL_INDEX_NAME = "idx_market_stands_geography"

CREATE_SPATIAL_INDEX_SQL = f"""
CREATE INDEX IF NOT EXISTS {SPATIAL_INDEX_NAME}
ON market_stands
USING GIST (geography(ST_MakePoint(longitude, latitude)))
"""

# Distance is only computed for stands when a reference point is given.
# A product qualifies if its stand is inside the radius OR its active zone
# covers the ZIP.
HOME_PRODUCTS_SQL = """
SELECT
    p.id AS product_id,
    p.name AS product_name,
    p.description AS product_description,
    p.price AS product_price,
    p.images AS product_images,
    p.inventory AS product_inventory,
    p.tags AS product_tags,
    p.is_active AS product_is_active,
    p.delivery_available AS product_delivery_available,
    p.available_date AS product_available_date,
    p.available_until AS product_available_until,
    p.created_at AS product_created_at,
    p.updated_at AS product_updated_at,
    p.delivery_zone_id AS product_delivery_zone_id,
    ms.id AS market_stand_id,
    ms.name AS market_stand_name,
    ms.location_name AS market_stand_location_name,
    ms.latitude AS market_stand_latitude,
    ms.longitude AS market_stand_longitude,
    CASE
        WHEN CAST(:has_location AS BOOLEAN) AND ms.id IS NOT NULL THEN
            ST_Distance(
                geography(ST_MakePoint(ms.longitude, ms.latitude)),
                geography(ST_MakePoint(CAST(:lng AS DOUBLE PRECISION), CAST(:lat AS DOUBLE PRECISION)))
            ) / 1000.0
    END AS distance_km,
    (dz.id IS NOT NULL) AS has_delivery_to_zip,
    dz.id AS delivery_zone_id,
    dz.delivery_fee AS delivery_fee,
    dz.name AS delivery_zone_name,
    dz.minimum_order AS delivery_minimum_order,
    dz.free_delivery_threshold AS delivery_free_threshold,
    dz.delivery_days AS delivery_days
FROM products p
LEFT JOIN market_stands ms
    ON ms.id = p.market_stand_id
    AND ms.is_active
    AND ms.status = 'APPROVED'
LEFT JOIN delivery_zones dz
    ON dz.id = p.delivery_zone_id
    AND dz.is_active
    AND p.delivery_available
    AND CAST(:zip AS VARCHAR) IS NOT NULL
    AND jsonb_exists(dz.zip_codes::jsonb, CAST(:zip AS VARCHAR))
WHERE p.is_active
    AND p.status = 'APPROVED'
    AND (
        (
            CAST(:has_location AS BOOLEAN)
            AND ms.id IS NOT NULL
            AND ST_DWithin(
                geography(ST_MakePoint(ms.longitude, ms.latitude)),
                geography(ST_MakePoint(CAST(:lng AS DOUBLE PRECISION), CAST(:lat AS DOUBLE PRECISION))),
                CAST(:radius_m AS DOUBLE PRECISION)
            )
        )
        OR dz.id IS NOT NULL
    )
ORDER BY distance_km ASC NULLS LAST, p.created_at DESC
LIMIT :limit
"""


@dataclass
class SpatialProductRow:
    """One raw row of the radius + delivery query"""
    product_id: str
    product_name: str
    product_description: Optional[str]
    product_price: int
    product_images: Optional[List[str]]
    product_inventory: int
    product_tags: Optional[List[str]]
    product_is_active: bool
    product_delivery_available: bool
    product_available_date: Optional[datetime]
    product_available_until: Optional[datetime]
    product_created_at: Optional[datetime]
    product_updated_at: Optional[datetime]
    product_delivery_zone_id: Optional[str] = None
    market_stand_id: Optional[str] = None
    market_stand_name: Optional[str] = None
    market_stand_location_name: Optional[str] = None
    market_stand_latitude: Optional[float] = None
    market_stand_longitude: Optional[float] = None
    distance_km: Optional[float] = None
    has_delivery_to_zip: bool = False
    delivery_zone_id: Optional[str] = None
    delivery_fee: Optional[int] = None
    delivery_zone_name: Optional[str] = None
    delivery_minimum_order: Optional[int] = None
    delivery_free_threshold: Optional[int] = None
    delivery_days: Optional[List[str]] = None


@dataclass
class PlaceHit:
    """A stand or farm with its distance from the search point"""
    place: Any
    distance_km: float
    product_count: int = 0


def sort_by_distance(rows: List[SpatialProductRow]) -> List[SpatialProductRow]:
    """Distance ascending with None last; newest first among ties"""
    rows = sorted(rows, key=lambda r: r.product_created_at or datetime.min, reverse=True)
    return sorted(rows, key=lambda r: (r.distance_km is None, r.distance_km or 0.0))


class SpatialQueryEngine:
    def __init__(self, session: Session):
        self.session = session

    @property
    def dialect(self) -> str:
        return self.session.get_bind().dialect.name

    @property
    def uses_postgis(self) -> bool:
        return self.dialect == "postgresql"

    async def find_products(
        self,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        zip_code: Optional[str] = None,
        radius_km: float = 250,
        limit: int = 20,
    ) -> List[SpatialProductRow]:
        """
        Products whose stand is within radius_km of (lat, lng), or whose
        delivery zone covers zip_code. Without either, the most recent
        active products.
        """
        if limit < 1:
            return []

        has_location = lat is not None and lng is not None
        if not has_location and not zip_code:
            return self._most_recent(limit)

        if self.uses_postgis:
            return self._find_products_postgis(lat, lng, zip_code, radius_km, limit)
        return self._find_products_fallback(lat, lng, zip_code, radius_km, limit)

    async def find_products_within_radius(
        self,
        lat: float,
        lng: float,
        radius_km: float = 250,
        limit: int = 20,
    ) -> List[SpatialProductRow]:
        """Radius-only variant, no delivery join"""
        if limit < 1:
            return []
        if self.uses_postgis:
            return self._find_products_postgis(lat, lng, None, radius_km, limit)
        return self._find_products_fallback(lat, lng, None, radius_km, limit)

    async def find_stands_within_radius(self, lat: float, lng: float, radius_km: float) -> List[PlaceHit]:
        """Active, approved market stands within radius, nearest first"""
        stands = self._within_box(MarketStand, lat, lng, radius_km)
        counts = self._product_counts([s.id for s in stands])
        hits = []
        for stand in stands:
            distance = haversine_km(lat, lng, stand.latitude, stand.longitude)
            if distance <= radius_km:
                hits.append(PlaceHit(place=stand, distance_km=distance, product_count=counts.get(stand.id, 0)))
        hits.sort(key=lambda h: h.distance_km)
        return hits

    async def find_farms_within_radius(self, lat: float, lng: float, radius_km: float) -> List[PlaceHit]:
        """Active, approved farms within radius, nearest first"""
        farms = self._within_box(Local, lat, lng, radius_km)
        hits = []
        for farm in farms:
            distance = haversine_km(lat, lng, farm.latitude, farm.longitude)
            if distance <= radius_km:
                hits.append(PlaceHit(place=farm, distance_km=distance))
        hits.sort(key=lambda h: h.distance_km)
        return hits

    async def is_postgis_available(self) -> bool:
        """Check the PostGIS extension is usable; never raises"""
        if not self.uses_postgis:
            return False
        try:
            version = self.session.execute(text("SELECT PostGIS_Version()")).scalar()
            logger.info(f"PostGIS version: {version}")
            return True
        except Exception as e:
            logger.warning(f"PostGIS is not available: {e}")
            self.session.rollback()
            return False

    # PostGIS

    def _find_products_postgis(self, lat, lng, zip_code, radius_km, limit) -> List[SpatialProductRow]:
        has_location = lat is not None and lng is not None
        params = {
            "lat": lat,
            "lng": lng,
            "has_location": has_location,
            "zip": zip_code,
            "radius_m": radius_km * 1000.0,
            "limit": limit,
        }
        result = self.session.execute(text(HOME_PRODUCTS_SQL), params)
        rows = [SpatialProductRow(**dict(row)) for row in result.mappings().all()]
        logger.debug(f"PostGIS home products query returned {len(rows)} rows")
        return rows

    # Bounding box + Haversine

    def _find_products_fallback(self, lat, lng, zip_code, radius_km, limit) -> List[SpatialProductRow]:
        rows: Dict[str, SpatialProductRow] = {}
        has_location = lat is not None and lng is not None

        if has_location:
            min_lat, min_lng, max_lat, max_lng = bounding_box(lat, lng, radius_km)
            nearby = self._active_products().join(
                MarketStand, Product.market_stand_id == MarketStand.id
            ).filter(
                and_(
                    MarketStand.is_active == True,
                    MarketStand.status == APPROVED,
                    MarketStand.latitude >= min_lat,
                    MarketStand.latitude <= max_lat,
                    MarketStand.longitude >= min_lng,
                    MarketStand.longitude <= max_lng,
                )
            ).all()

            for product in nearby:
                stand = product.market_stand
                distance = haversine_km(lat, lng, stand.latitude, stand.longitude)
                if distance <= radius_km:
                    rows[product.id] = _row_from_product(product, stand, distance, None)

        if zip_code:
            # Serialized-array LIKE narrows zones in SQL; the exact membership
            # check below stays authoritative. The PostGIS path uses jsonb_exists.
            delivering = self._active_products().join(
                DeliveryZone, Product.delivery_zone_id == DeliveryZone.id
            ).filter(
                Product.delivery_available == True,
                DeliveryZone.is_active == True,
                cast(DeliveryZone.zip_codes, String).like(f'%"{zip_code}"%'),
            ).all()

            for product in delivering:
                zone = product.delivery_zone
                if zip_code not in (zone.zip_codes or []):
                    continue
                existing = rows.get(product.id)
                if existing is not None:
                    _attach_zone(existing, zone)
                    continue
                stand = _visible_stand(product)
                distance = None
                if stand is not None and has_location:
                    distance = haversine_km(lat, lng, stand.latitude, stand.longitude)
                rows[product.id] = _row_from_product(product, stand, distance, zone)

        return sort_by_distance(list(rows.values()))[:limit]

    def _most_recent(self, limit: int) -> List[SpatialProductRow]:
        products = self._active_products().outerjoin(
            MarketStand, Product.market_stand_id == MarketStand.id
        ).outerjoin(
            DeliveryZone, Product.delivery_zone_id == DeliveryZone.id
        ).filter(
            or_(
                and_(MarketStand.is_active == True, MarketStand.status == APPROVED),
                DeliveryZone.is_active == True,
                # orphans surface so serialization can flag them
                and_(Product.market_stand_id == None, Product.delivery_zone_id == None),
            )
        ).order_by(Product.created_at.desc()).limit(limit).all()

        return [_row_from_product(p, _visible_stand(p), None, None) for p in products]

    def _active_products(self):
        return self.session.query(Product).filter(
            Product.is_active == True,
            Product.status == APPROVED,
        )

    def _within_box(self, model, lat: float, lng: float, radius_km: float) -> List[Any]:
        min_lat, min_lng, max_lat, max_lng = bounding_box(lat, lng, radius_km)
        return self.session.query(model).filter(
            and_(
                model.is_active == True,
                model.status == APPROVED,
                model.latitude >= min_lat,
                model.latitude <= max_lat,
                model.longitude >= min_lng,
                model.longitude <= max_lng,
            )
        ).all()

    def _product_counts(self, stand_ids: List[str]) -> Dict[str, int]:
        if not stand_ids:
            return {}
        counts = self.session.query(
            Product.market_stand_id, func.count(Product.id)
        ).filter(
            Product.market_stand_id.in_(stand_ids)
        ).group_by(Product.market_stand_id).all()
        return {stand_id: count for stand_id, count in counts}


def ensure_spatial_index(engine) -> bool:
    """Create the GIST expression index on stand coordinates if missing (PostgreSQL only)"""
    if engine.dialect.name != "postgresql":
        logger.info("Skipping spatial index: %s backend has no PostGIS", engine.dialect.name)
        return False
    try:
        with engine.begin() as conn:
            conn.execute(text(CREATE_SPATIAL_INDEX_SQL))
        logger.info(f"Spatial index {SPATIAL_INDEX_NAME} is in place")
        return True
    except Exception as e:
        logger.warning(f"Could not ensure spatial index {SPATIAL_INDEX_NAME}: {e}")
        return False


def _visible_stand(product: Product) -> Optional[MarketStand]:
    stand = product.market_stand
    if stand is None or not stand.is_active or stand.status != APPROVED:
        return None
    return stand


def _attach_zone(row: SpatialProductRow, zone: DeliveryZone):
    row.has_delivery_to_zip = True
    row.delivery_zone_id = zone.id
    row.delivery_fee = zone.delivery_fee
    row.delivery_zone_name = zone.name
    row.delivery_minimum_order = zone.minimum_order
    row.delivery_free_threshold = zone.free_delivery_threshold
    row.delivery_days = list(zone.delivery_days or [])


def _row_from_product(
    product: Product,
    stand: Optional[MarketStand],
    distance_km: Optional[float],
    zone: Optional[DeliveryZone],
) -> SpatialProductRow:
    row = SpatialProductRow(
        product_id=product.id,
        product_name=product.name,
        product_description=product.description,
        product_price=product.price,
        product_images=product.images,
        product_inventory=product.inventory,
        product_tags=product.tags,
        product_is_active=product.is_active,
        product_delivery_available=product.delivery_available,
        product_available_date=product.available_date,
        product_available_until=product.available_until,
        product_created_at=product.created_at,
        product_updated_at=product.updated_at,
        product_delivery_zone_id=product.delivery_zone_id,
        distance_km=distance_km,
    )
    if stand is not None:
        row.market_stand_id = stand.id
        row.market_stand_name = stand.name
        row.market_stand_location_name = stand.location_name
        row.market_stand_latitude = stand.latitude
        row.market_stand_longitude = stand.longitude
    if zone is not None:
        _attach_zone(row, zone)
    return row
