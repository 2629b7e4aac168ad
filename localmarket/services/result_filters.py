"""
Merge and filter search results for display.

Pure functions over already-fetched result dicts (products, market stands,
farms); no I/O.
"""
from typing import Any, Dict, List, Optional

from ..schemas.search import SearchFilterState
from .geo import miles_to_km

Result = Dict[str, Any]


def select_view(products: List[Result], stands: List[Result], farms: List[Result], view: str) -> List[Result]:
    if view == "products":
        return list(products)
    if view == "stands":
        return list(stands)
    if view == "farms":
        return list(farms)
    return [*products, *stands, *farms]


def matches_categories(result: Result, categories: List[str]) -> bool:
    """
    Loose bidirectional substring match between selected categories and tags.

    Farms carry no tags, so they never match once a category is selected.
    """
    if not categories:
        return True
    if result.get("result_type") == "farm":
        return False
    tags = [str(t).lower() for t in (result.get("tags") or [])]
    return any(tag in cat or cat in tag for cat in categories for tag in tags)


def within_distance(result: Result, max_miles: float) -> bool:
    distance = result.get("distance")
    if distance is None:
        # Unknown distance is never grounds for exclusion
        return True
    return distance <= miles_to_km(max_miles)


def within_price(result: Result, price_min: Optional[float], price_max: Optional[float]) -> bool:
    if result.get("result_type") != "product":
        return True
    price = result.get("price") or 0
    if price_min is not None and price < price_min * 100:
        return False
    if price_max is not None and price > price_max * 100:
        return False
    return True


def matches_fulfillment(result: Result, fulfillment: List[str]) -> bool:
    """A product passes if it supports ANY selected mode"""
    if not fulfillment or result.get("result_type") != "product":
        return True
    has_pickup = bool(result.get("market_stand"))
    has_delivery = bool((result.get("delivery_info") or {}).get("is_available", False))
    return ("pickup" in fulfillment and has_pickup) or ("delivery" in fulfillment and has_delivery)


def sort_by_distance(results: List[Result]) -> List[Result]:
    """Ascending by distance, unknown distances last; stable otherwise"""
    return sorted(
        results,
        key=lambda r: r.get("distance") if r.get("distance") is not None else float("inf"),
    )


def _tag_products(products: List[Result]) -> List[Result]:
    return [p if "result_type" in p else {**p, "result_type": "product"} for p in products]


def compose_results(
    products: List[Result],
    stands: List[Result],
    farms: List[Result],
    filters: Optional[SearchFilterState] = None,
) -> List[Result]:
    filters = filters or SearchFilterState()

    results = select_view(_tag_products(products), stands, farms, filters.result_type)
    results = [
        r for r in results
        if matches_categories(r, filters.categories)
        and within_distance(r, filters.distance)
        and within_price(r, filters.price_min, filters.price_max)
        and matches_fulfillment(r, filters.fulfillment)
    ]
    return sort_by_distance(results)


def result_counts(products: List[Result], stands: List[Result], farms: List[Result]) -> Dict[str, int]:
    return {
        "all": len(products) + len(stands) + len(farms),
        "products": len(products),
        "stands": len(stands),
        "farms": len(farms),
    }
