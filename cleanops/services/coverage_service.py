"""
Coverage Service
Service-area map data and postcode coverage checks
"""

import logging
from typing import Optional

import httpx
from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..cache import cache
from ..config import ESSEX_GEOJSON_URL, LONDON_BOROUGHS_GEOJSON_URL
from ..models import CoveredArea

logger = logging.getLogger(__name__)

GEOJSON_CACHE_TTL = 86400
POSTCODE_CACHE_TTL = 7 * 86400
POSTCODES_API_URL = "https://api.postcodes.io/postcodes"

GEOJSON_SOURCES = {
    "london": LONDON_BOROUGHS_GEOJSON_URL,
    "essex": ESSEX_GEOJSON_URL,
}


async def get_region_geojson(region: str) -> dict:
    """
    Boundary GeoJSON for a region, cached in Redis for a day.

    Raises:
        HTTPException(404) unknown region
        HTTPException(502) when the source cannot be fetched
    """
    url = GEOJSON_SOURCES.get(region)
    if not url:
        raise HTTPException(status_code=404, detail=f"Unknown region: {region}")

    cache_key = f"geojson:{region}"
    cached = cache.get(cache_key)
    if cached:
        return cached

    try:
        async with httpx.AsyncClient(timeout=20.0) as client:
            response = await client.get(url)
    except httpx.HTTPError as e:
        logger.error(f"❌ Failed to fetch {region} GeoJSON: {e}")
        raise HTTPException(status_code=502, detail="Failed to load map data") from e

    if response.status_code != 200:
        logger.error(f"❌ {region} GeoJSON source returned HTTP {response.status_code}")
        raise HTTPException(status_code=502, detail="Failed to load map data")

    data = response.json()
    cache.set(cache_key, data, ttl=GEOJSON_CACHE_TTL)
    logger.info(f"🗺️ Loaded {region} GeoJSON ({len(data.get('features', []))} features)")
    return data


async def lookup_postcode_district(postcode: str) -> Optional[str]:
    """Administrative district (London borough / Essex district) for a UK postcode"""
    compact = postcode.replace(" ", "").upper()
    cache_key = f"postcode:{compact}"
    cached = cache.get(cache_key)
    if cached:
        return cached

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(f"{POSTCODES_API_URL}/{compact}")
    except httpx.HTTPError as e:
        logger.error(f"❌ Postcode lookup failed for {postcode}: {e}")
        raise HTTPException(status_code=502, detail="Postcode lookup unavailable") from e

    if response.status_code == 404:
        return None
    if response.status_code != 200:
        raise HTTPException(status_code=502, detail="Postcode lookup unavailable")

    result = response.json().get("result") or {}
    district = result.get("admin_district")
    if district:
        cache.set(cache_key, district, ttl=POSTCODE_CACHE_TTL)
    return district


def find_covered_area(db: Session, name: str) -> Optional[CoveredArea]:
    return (
        db.query(CoveredArea)
        .filter(func.lower(CoveredArea.name) == name.strip().lower(), CoveredArea.is_active.is_(True))
        .first()
    )


async def check_coverage(db: Session, postcode: Optional[str] = None, area: Optional[str] = None) -> dict:
    """
    Whether we clean in the given borough/district or at the given postcode.

    Raises:
        HTTPException(400) when neither postcode nor area is given
    """
    if not postcode and not area:
        raise HTTPException(status_code=400, detail="Postcode or area is required")

    if not area:
        area = await lookup_postcode_district(postcode)
        if not area:
            return {"covered": False, "area": None, "postcode": postcode, "message": "Postcode not found"}

    covered_area = find_covered_area(db, area)
    return {
        "covered": covered_area is not None,
        "area": area,
        "region": covered_area.region if covered_area else None,
        "postcode": postcode,
    }
