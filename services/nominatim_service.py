# -*- coding: utf-8 -*-
"""
NominatimService — OSM Nominatim free-text search for the map news fallback
- Searches a text query inside a bounded viewbox around the anchor
- Reuses the min-delay rate limiting pattern from OsmPlacesService
- Normalizes hits to RawResult and classifies HTTP failures
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.core.logging import get_logger
from app.models.geo import Coordinate
from app.models.map_news import RawResult
from app.utils.geo import bounding_box
from services.search_provider import (
    SearchNotFoundError,
    SearchProviderError,
    SearchRateLimitedError,
    SearchServerError,
)

logger = get_logger()

MAX_TEXT_RESULTS = 20

# Module-level rate limiting (shared across all instances)
_nominatim_last_request: float = 0
_nominatim_lock = asyncio.Lock()


def _locality(address: Dict[str, Any]) -> Optional[str]:
    for key in ("city", "town", "village", "suburb", "municipality"):
        value = address.get(key)
        if value:
            return str(value)
    return None


class NominatimService:
    """
    Text search using OSM's Nominatim API.
    Reuses rate limiting patterns from OsmPlacesService.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        min_delay_s: Optional[float] = None,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url or settings.NOMINATIM_BASE_URL
        self.timeout_s = timeout_s if timeout_s is not None else settings.NOMINATIM_TIMEOUT_S
        self.min_delay_s = min_delay_s if min_delay_s is not None else settings.NOMINATIM_MIN_DELAY_S
        self.user_agent = user_agent or settings.HTTP_USER_AGENT
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s),
            headers={"User-Agent": self.user_agent}
        )

    async def __aenter__(self) -> "NominatimService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def _enforce_rate_limit(self) -> None:
        """Enforce Nominatim usage policy (max 1 request/second by default)."""
        global _nominatim_last_request
        async with _nominatim_lock:
            elapsed = time.time() - _nominatim_last_request
            if elapsed < self.min_delay_s:
                sleep_time = self.min_delay_s - elapsed
                logger.debug("nominatim_rate_limit_delay", sleep_time_s=round(sleep_time, 3))
                await asyncio.sleep(sleep_time)
            _nominatim_last_request = time.time()

    def _normalize_hit(self, hit: Dict[str, Any]) -> Optional[RawResult]:
        try:
            lat = float(hit["lat"])
            lng = float(hit["lon"])
        except (KeyError, TypeError, ValueError):
            return None

        address = hit.get("address") or {}
        if not isinstance(address, dict):
            address = {}
        extratags = hit.get("extratags") or {}
        if not isinstance(extratags, dict):
            extratags = {}

        display_name = str(hit.get("display_name") or "")
        name = hit.get("name") or (display_name.split(",")[0].strip() if display_name else None)

        street = address.get("road")
        if street and address.get("house_number"):
            street = f"{street} {address['house_number']}"
        locality = _locality(address)
        subtitle_parts = [p for p in (street, locality) if p]

        category = hit.get("type") or hit.get("category")
        return RawResult(
            name=name or None,
            subtitle=" · ".join(subtitle_parts) if subtitle_parts else None,
            url=extratags.get("website") or extratags.get("url"),
            coordinate=Coordinate(latitude=lat, longitude=lng),
            category=str(category).replace("_", " ") if category else None,
            locality=locality,
            provider_id=f"nominatim/{hit.get('place_id')}" if hit.get("place_id") is not None else None,
        )

    async def search_by_text(
        self,
        anchor: Coordinate,
        radius_m: float,
        query: str,
    ) -> List[RawResult]:
        """
        Search `query` inside the square viewbox of radius_m around anchor.

        Raises:
            SearchRateLimitedError: HTTP 429
            SearchNotFoundError: HTTP 404
            SearchServerError: HTTP 5xx, timeouts, network failures
            SearchProviderError: any other failure
        """
        min_lon, min_lat, max_lon, max_lat = bounding_box(anchor, radius_m)
        params = {
            "q": query.strip(),
            "format": "jsonv2",
            "viewbox": f"{min_lon:.6f},{max_lat:.6f},{max_lon:.6f},{min_lat:.6f}",
            "bounded": 1,
            "limit": MAX_TEXT_RESULTS,
            "addressdetails": 1,
            "extratags": 1,
        }

        await self._enforce_rate_limit()
        logger.debug("nominatim_search_start", query=query, lat=anchor.latitude, lng=anchor.longitude, radius=radius_m)

        try:
            response = await self._client.get(self.base_url, params=params)
        except httpx.TimeoutException as e:
            logger.warning("nominatim_timeout", query=query, timeout_s=self.timeout_s)
            raise SearchServerError("Nominatim search timed out") from e
        except httpx.TransportError as e:
            logger.warning("nominatim_network_error", query=query, error=str(e))
            raise SearchServerError(f"Nominatim unreachable: {e}") from e

        status_code = response.status_code
        if status_code == 429:
            logger.warning("nominatim_rate_limited", query=query, retry_after=response.headers.get("Retry-After"))
            raise SearchRateLimitedError("Nominatim rate limit reached (HTTP 429)")
        if status_code == 404:
            raise SearchNotFoundError("Nominatim found no places for this area")
        if status_code >= 500:
            logger.error("nominatim_server_error", query=query, status_code=status_code)
            raise SearchServerError(f"Nominatim server error (HTTP {status_code})")
        if status_code >= 400:
            raise SearchProviderError(f"Nominatim request failed (HTTP {status_code}): {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise SearchProviderError("Nominatim returned an unreadable response") from e

        if not isinstance(data, list):
            logger.warning("nominatim_unexpected_payload", query=query, payload_type=type(data).__name__)
            return []

        results: List[RawResult] = []
        for hit in data:
            if not isinstance(hit, dict):
                continue
            normalized = self._normalize_hit(hit)
            if normalized is not None:
                results.append(normalized)

        logger.info("nominatim_search_success", query=query, found=len(data), normalized=len(results))
        return results
