"""
Delivery eligibility: does a product's delivery zone cover the shopper,
and on which dates can it be delivered?

Every check ends in exactly one EligibilityStatus. "Not eligible" is a
result, not an exception; only malformed requests raise, and they do so
before the store is touched.
"""
import logging
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..config import settings
from ..core.errors import InvalidEligibilityRequest
from ..models.marketplace import Product, ProductDeliveryListing
from ..schemas.delivery import (
    DAYS_OF_WEEK,
    DeliveryCheckRequest,
    DeliveryEligibilityResult,
    DeliveryOption,
    DeliveryZoneConfig,
    EligibilityStatus,
)
from ..utils.log import log_discovery_event
from .delivery_format import parse_iso

logger = logging.getLogger(__name__)

ONE_TIME = "ONE_TIME"
RECURRING = "RECURRING"

REASON_NOT_FOUND = "Product not found"
REASON_NO_DELIVERY = "Delivery not available for this product"
REASON_NO_ZONE = "No delivery zone configured"
REASON_NEED_ZIP = "Please provide your ZIP code to check delivery availability"
REASON_ERROR = "Error checking delivery availability"


def not_matched_reason(zip_code: Optional[str]) -> str:
    if zip_code:
        return f"Delivery not available to {zip_code}"
    return REASON_NEED_ZIP


def build_check_request(
    product_id: str,
    user_zip_code: Optional[str] = None,
    user_city: Optional[str] = None,
    user_state: Optional[str] = None,
    order_subtotal: Optional[int] = None,
) -> DeliveryCheckRequest:
    """Validate raw inputs, raising InvalidEligibilityRequest on bad data"""
    try:
        return DeliveryCheckRequest(
            product_id=product_id,
            user_zip_code=user_zip_code,
            user_city=user_city,
            user_state=user_state,
            order_subtotal=order_subtotal,
        )
    except ValidationError as e:
        raise InvalidEligibilityRequest("Invalid delivery eligibility request", validation_details(e)) from e


def validation_details(error: ValidationError) -> List[dict]:
    """JSON-safe view of pydantic errors"""
    return [
        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
        for err in error.errors()
    ]


def effective_delivery_fee(
    zone_fee: int,
    free_threshold: Optional[int],
    order_subtotal: Optional[int] = None,
) -> int:
    """Zone fee, waived once the order subtotal reaches the free-delivery threshold"""
    if free_threshold is not None and order_subtotal is not None and order_subtotal >= free_threshold:
        return 0
    return zone_fee


def match_zone(
    zone: DeliveryZoneConfig,
    zip_code: Optional[str],
    city: Optional[str],
    state: Optional[str],
) -> Tuple[Optional[str], Optional[str]]:
    """
    Ordered short-circuit match: ZIP membership first, then city AND state.

    Returns (matched_zip_code, matched_city); both None when nothing matches.
    """
    if zip_code and zip_code in zone.zip_codes:
        return zip_code, None

    if city and state:
        city_match = any(c.lower() == city.lower() for c in zone.cities)
        state_match = any(s.lower() == state.lower() for s in zone.states)
        if city_match and state_match:
            return None, city

    return None, None


class DeliveryEligibilityService:
    def __init__(
        self,
        session: Session,
        today_fn: Optional[Callable[[], date]] = None,
        window_days: Optional[int] = None,
        default_time_window: Optional[str] = None,
    ):
        self.session = session
        self.today_fn = today_fn or date.today
        self.window_days = window_days if window_days is not None else settings.recurring_window_days
        self.default_time_window = default_time_window or settings.default_time_window

    async def check(self, request: Union[DeliveryCheckRequest, dict]) -> DeliveryEligibilityResult:
        if not isinstance(request, DeliveryCheckRequest):
            request = build_check_request(**request)

        try:
            result = self._check(request)
        except Exception as e:
            logger.error(f"Error checking delivery eligibility for product {request.product_id}: {e}", exc_info=True)
            result = DeliveryEligibilityResult(
                is_eligible=False,
                status=EligibilityStatus.ERROR,
                reason=REASON_ERROR,
            )

        log_discovery_event(
            logger,
            "delivery_eligibility",
            ok=result.status != EligibilityStatus.ERROR,
            product_id=request.product_id,
            status=result.status.value,
            options=len(result.delivery_options),
        )
        return result

    def _check(self, request: DeliveryCheckRequest) -> DeliveryEligibilityResult:
        product = self._load_product(request.product_id)

        if product is None:
            return _ineligible(EligibilityStatus.NOT_FOUND, REASON_NOT_FOUND)

        if not product.delivery_available:
            return _ineligible(EligibilityStatus.NO_DELIVERY, REASON_NO_DELIVERY)

        if product.delivery_zone is None:
            return _ineligible(EligibilityStatus.NO_ZONE, REASON_NO_ZONE)

        try:
            zone = DeliveryZoneConfig.model_validate(product.delivery_zone)
        except ValidationError as e:
            logger.error(f"Delivery zone {product.delivery_zone.id} is misconfigured: {e}")
            return _ineligible(EligibilityStatus.NOT_MATCHED, not_matched_reason(request.user_zip_code))

        matched_zip, matched_city = match_zone(
            zone, request.user_zip_code, request.user_city, request.user_state
        )
        if matched_zip is None and matched_city is None:
            return _ineligible(EligibilityStatus.NOT_MATCHED, not_matched_reason(request.user_zip_code))

        fee = effective_delivery_fee(zone.delivery_fee, zone.free_delivery_threshold, request.order_subtotal)

        if product.delivery_type == ONE_TIME:
            options = self._one_time_options(product, zone, fee)
        elif product.delivery_type == RECURRING:
            listings = [
                listing for listing in product.delivery_listings
                if listing.delivery_zone_id == zone.id and listing.delivery_zone.is_active
            ]
            options = self._recurring_options(product, zone, listings, fee)
        else:
            options = []

        options.sort(key=lambda o: o.date)

        return DeliveryEligibilityResult(
            is_eligible=True,
            status=EligibilityStatus.ELIGIBLE,
            matched_zip_code=matched_zip,
            matched_city=matched_city,
            delivery_options=options,
        )

    def _load_product(self, product_id: str) -> Optional[Product]:
        return self.session.query(Product).options(
            joinedload(Product.delivery_zone),
            selectinload(Product.delivery_listings).joinedload(ProductDeliveryListing.delivery_zone),
        ).filter(Product.id == product_id).first()

    def _one_time_options(self, product: Product, zone: DeliveryZoneConfig, fee: int) -> List[DeliveryOption]:
        today = self.today_fn()
        options = []
        for raw in product.delivery_dates or []:
            try:
                delivery_date = parse_iso(str(raw)).date()
            except ValueError:
                logger.warning(f"Skipping unparseable delivery date {raw!r} on product {product.id}")
                continue
            if delivery_date < today:
                continue
            options.append(self._option(delivery_date, zone, fee, product.inventory, is_recurring=False))
        return options

    def _recurring_options(
        self,
        product: Product,
        zone: DeliveryZoneConfig,
        listings: List[ProductDeliveryListing],
        fee: int,
    ) -> List[DeliveryOption]:
        today = self.today_fn()
        window = [today + timedelta(days=i) for i in range(self.window_days)]
        options = []

        if listings:
            # A listing with zero inventory means no stock that day, not missing data
            by_day: Dict[str, ProductDeliveryListing] = {}
            for listing in listings:
                by_day.setdefault(listing.day_of_week.strip().lower(), listing)

            for day in window:
                listing = by_day.get(DAYS_OF_WEEK[day.weekday()].lower())
                if listing is not None and listing.inventory > 0:
                    options.append(self._option(day, zone, fee, listing.inventory, is_recurring=True))
            return options

        if zone.delivery_days:
            delivery_days = set(zone.delivery_days)
            for day in window:
                if DAYS_OF_WEEK[day.weekday()] in delivery_days:
                    options.append(self._option(day, zone, fee, product.inventory, is_recurring=True))
        return options

    def _option(
        self,
        day: date,
        zone: DeliveryZoneConfig,
        fee: int,
        inventory: int,
        is_recurring: bool,
    ) -> DeliveryOption:
        day_name = DAYS_OF_WEEK[day.weekday()]
        return DeliveryOption(
            date=day.isoformat(),
            day_of_week=day_name,
            time_window=zone.delivery_time_windows.get(day_name, self.default_time_window),
            delivery_fee=fee,
            free_delivery_threshold=zone.free_delivery_threshold,
            minimum_order=zone.minimum_order,
            inventory=inventory,
            is_recurring=is_recurring,
            delivery_zone_id=zone.id,
        )


def _ineligible(status: EligibilityStatus, reason: str) -> DeliveryEligibilityResult:
    return DeliveryEligibilityResult(is_eligible=False, status=status, reason=reason)


async def check_delivery_eligibility(
    session: Session,
    product_id: str,
    user_zip_code: Optional[str] = None,
    user_city: Optional[str] = None,
    user_state: Optional[str] = None,
    order_subtotal: Optional[int] = None,
) -> DeliveryEligibilityResult:
    request = build_check_request(product_id, user_zip_code, user_city, user_state, order_subtotal)
    return await DeliveryEligibilityService(session).check(request)
