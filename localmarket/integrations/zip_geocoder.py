"""
ZIP code geocoding via Zippopotam.us
https://api.zippopotam.us

Free and keyless; returns the centroid of a US ZIP code.
"""
import logging
from typing import Optional

import httpx

from ..cache.keys import CacheKeys, generate_cache_key
from ..cache.layers import CacheClient
from ..config import settings
from ..core.retry import retry_with_backoff
from ..schemas.delivery import ZIP_RE
from ..schemas.geo import GeocodeResult

logger = logging.getLogger(__name__)

ZIP_ACCURACY_M = 5000  # a ZIP centroid is good to roughly 5km


def parse_zippopotam(zip_code: str, data: dict) -> Optional[GeocodeResult]:
    places = data.get("places") or []
    if not places:
        return None
    place = places[0]
    try:
        lat = float(place["latitude"])
        lng = float(place["longitude"])
    except (KeyError, TypeError, ValueError):
        return None
    return GeocodeResult(
        lat=lat,
        lng=lng,
        zip_code=zip_code,
        city=place.get("place name"),
        state=place.get("state abbreviation"),
        accuracy=ZIP_ACCURACY_M,
    )


async def geocode_zip_code(
    zip_code: str,
    client: Optional[httpx.AsyncClient] = None,
    cache: Optional[CacheClient] = None,
) -> Optional[GeocodeResult]:
    """
    Resolve a ZIP code to coordinates.

    Returns None for malformed or unknown ZIPs and when the service is
    unreachable after retries.
    """
    zip_code = (zip_code or "").strip()
    if not ZIP_RE.match(zip_code):
        logger.info(f"[Geocode] Rejecting malformed ZIP {zip_code!r}")
        return None
    zip_code = zip_code[:5]

    cache_key = generate_cache_key(CacheKeys.GEOCODE_ZIP, zip_code)
    if cache is not None:
        cached = await cache.get(cache_key)
        if cached:
            return GeocodeResult(**cached)

    async def _fetch(http: httpx.AsyncClient) -> dict:
        response = await http.get(f"{settings.geocoder_base_url}/{zip_code}")
        response.raise_for_status()
        return response.json()

    try:
        if client is not None:
            data = await retry_with_backoff(_fetch, client, max_attempts=3, initial_delay=0.2)
        else:
            async with httpx.AsyncClient(timeout=settings.geocoder_timeout_s) as http:
                data = await retry_with_backoff(_fetch, http, max_attempts=3, initial_delay=0.2)
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 404:
            logger.info(f"[Geocode] Unknown ZIP {zip_code}")
        else:
            logger.warning(f"[Geocode] Lookup for {zip_code} failed: HTTP {e.response.status_code}")
        return None
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"[Geocode] Lookup for {zip_code} failed: {e}")
        return None

    result = parse_zippopotam(zip_code, data)
    if result is None:
        logger.info(f"[Geocode] No coordinates in response for {zip_code}")
        return None

    if cache is not None:
        cache.detach(
            cache.set(cache_key, result.model_dump(), settings.geocode_cache_ttl_s),
            label=f"cache set {cache_key}",
        )
    return result
