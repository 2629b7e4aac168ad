"""
Geographic utility functions
"""
from math import radians, sin, cos, atan2, sqrt, floor
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0
KM_PER_MILE = 1.60934
MILES_PER_KM = 0.621371
KM_PER_DEGREE_LAT = 111.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance in kilometers.

    Must stay in step with the distance the spatial store computes, so the
    atan2 form is used rather than asin.
    """
    dlat = radians(lat2 - lat1)
    dlng = radians(lng2 - lng1)

    a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlng / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def bounding_box(lat: float, lng: float, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Rough (min_lat, min_lng, max_lat, max_lng) box around a point.

    Always contains the true radius circle; callers refine with haversine_km.
    """
    lat_deg = radius_km / KM_PER_DEGREE_LAT
    cos_lat = abs(cos(radians(lat)))
    if cos_lat < 1e-6:
        # At the poles every longitude is in range
        lng_deg = 180.0
    else:
        lng_deg = min(radius_km / (KM_PER_DEGREE_LAT * cos_lat), 180.0)

    return (
        max(lat - lat_deg, -90.0),
        max(lng - lng_deg, -180.0),
        min(lat + lat_deg, 90.0),
        min(lng + lng_deg, 180.0),
    )


def location_bucket(lat: Optional[float], lng: Optional[float]) -> str:
    """~11km grid cell used in cache keys so nearby shoppers share entries"""
    if lat is None or lng is None:
        return "no-location"
    return f"{floor(lat * 10) / 10}_{floor(lng * 10) / 10}"


def miles_to_km(miles: float) -> float:
    return miles * KM_PER_MILE


def km_to_miles(km: float) -> float:
    return km * MILES_PER_KM


def format_distance(distance_km: Optional[float]) -> str:
    if distance_km is None:
        return ""
    miles = km_to_miles(distance_km)
    if miles < 1:
        return f"{miles * 5280:.0f} ft"
    return f"{miles:.1f} mi"
