"""Forward and reverse geocoding through OpenStreetMap Nominatim."""
from typing import Any, Dict, List

import requests
from loguru import logger

import settings
import validators
from errors import ExternalServiceError

GEOCODING_ERROR = "No se pudo obtener la ubicación. Inténtalo nuevamente."


def _get(path: str, params: Dict[str, Any]) -> Any:
    url = f"{settings.NOMINATIM_URL.rstrip('/')}{path}"
    headers = {
        "User-Agent": settings.GEOCODER_USER_AGENT,
        "Accept-Language": "es-ES,es;q=0.9",
    }
    try:
        r = requests.get(url, params=params, headers=headers, timeout=settings.GEOCODER_TIMEOUT)
        r.raise_for_status()
        return r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Nominatim {path} failed: {e}")
        raise ExternalServiceError(GEOCODING_ERROR) from e


def search(query: str, limit: int = 5) -> List[Dict[str, Any]]:
    query = (query or "").strip()
    if not query:
        return []
    data = _get("/search", {
        "format": "json",
        "q": query,
        "countrycodes": settings.NOMINATIM_COUNTRY,
        "limit": limit,
        "addressdetails": 1,
    })
    if not isinstance(data, list):
        logger.warning(f"Unexpected geocoding response: {data}")
        return []
    results = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            results.append({
                "display_name": item.get("display_name", ""),
                "lat": float(item["lat"]),
                "lng": float(item["lon"]),
            })
        except (KeyError, TypeError, ValueError):
            logger.debug(f"Skipping malformed geocoding result: {item}")
    return results


def reverse(lat: float, lng: float) -> Dict[str, Any]:
    validators.validate_coordinates(lat, lng)
    data = _get("/reverse", {
        "format": "json",
        "lat": lat,
        "lon": lng,
        "zoom": 18,
        "addressdetails": 1,
    })
    if not isinstance(data, dict):
        data = {}
    addr = data.get("address") or {}
    street = f"{addr.get('road', '')} {addr.get('house_number', '')}".strip()
    return {
        "display_name": data.get("display_name", ""),
        "department": addr.get("state") or addr.get("region") or "",
        "province": addr.get("province") or addr.get("region") or addr.get("city") or "",
        "city": addr.get("city") or addr.get("town") or addr.get("village") or "",
        "district": addr.get("suburb") or addr.get("city_district") or addr.get("district") or "",
        "address": street,
    }
