# -*- coding: utf-8 -*-
"""
OsmPlacesService — Overpass API category search for the map news deck
- Builds Overpass QL union queries for nodes/ways/relations in a circle
- Translates poi_categories.yml osm_tags into OR/AND filters
- Normalizes elements to RawResult
- Classifies failures (rate limit, server failure, rejected query) and
  retries only transient ones with exponential backoff
"""

from __future__ import annotations

import asyncio
import json
import os
import random
import time
from json import JSONDecodeError
from typing import Any, Dict, List, Optional, Sequence

import httpx

from app.config import settings
from app.core.logging import get_logger
from app.models.geo import Coordinate
from app.models.map_news import RawResult
from services.poi_category_map import category_for_tags, get_category_label, get_osm_tags
from services.search_provider import (
    SearchProviderError,
    SearchRateLimitedError,
    SearchServerError,
)

logger = get_logger()

OSM_LOG_QUERIES = os.getenv("OSM_LOG_QUERIES", "false").lower() == "true"
OSM_TRACE = os.getenv("OSM_TRACE", "0") == "1"

def _trace(msg: str):
    """Debug tracing for OSM service."""
    if OSM_TRACE:
        print(f"[OSM_TRACE] {msg}")

DEFAULT_BACKOFF_JITTER_FRACTION = 0.3

# Used when none of the requested categories resolve to tags
FALLBACK_TAG_GROUPS: List[List[Dict[str, Any]]] = [[{
    "any": [
        {"amenity": "library"},
        {"tourism": "museum"},
        {"leisure": "park"},
    ]
}]]


class OsmPlacesService:
    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout_s: Optional[int] = None,
        user_agent: Optional[str] = None,
        max_results: Optional[int] = None,
        max_retries: Optional[int] = None,
        backoff_base_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint or settings.OVERPASS_ENDPOINT
        self.timeout_s = timeout_s if timeout_s is not None else settings.OVERPASS_TIMEOUT_S
        self.user_agent = user_agent or settings.HTTP_USER_AGENT
        self.max_results = max_results if max_results is not None else settings.OVERPASS_MAX_RESULTS
        self.max_retries = max(0, max_retries if max_retries is not None else settings.OVERPASS_MAX_RETRIES)
        self.backoff_base_s = backoff_base_s if backoff_base_s is not None else settings.OVERPASS_BACKOFF_BASE_S
        # Overpass needs a few seconds on top of its own [timeout:] directive
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s + 5),
            headers={"User-Agent": self.user_agent},
        )

    async def aclose(self):
        await self._client.aclose()

    def _parse_overpass_response(self, response: httpx.Response) -> Dict[str, Any]:
        """Parse Overpass response with defensive JSON handling."""
        _trace(f"endpoint={self.endpoint} status={response.status_code}")
        try:
            data = response.json()
        except JSONDecodeError:
            # Some mirrors return text errors with a 200 status
            snippet = (response.text or "")[:200]
            raise SearchProviderError(f"Overpass returned an unreadable response: {snippet!r}")

        if not isinstance(data, dict):
            return {"elements": []}

        elements = data.get("elements")
        if isinstance(elements, str):
            try:
                data["elements"] = json.loads(elements)
            except JSONDecodeError:
                data["elements"] = []
        elif not isinstance(elements, list):
            data["elements"] = []
        return data

    def _render_filters_any(self, tag_dicts: List[Dict[str, str]]) -> List[str]:
        """Render OR conditions - returns multiple selectors (one per tag_dict)."""
        selectors = []
        for tag_dict in tag_dicts:
            for key, value in tag_dict.items():
                selectors.append(f'["{key}"="{value}"]')
        return selectors

    def _render_filters_all(self, tag_dicts: List[Dict[str, str]]) -> str:
        """Render AND conditions - returns a single selector with chained filters."""
        filters = []
        for tag_dict in tag_dicts:
            for key, value in tag_dict.items():
                filters.append(f'["{key}"="{value}"]')
        return "".join(filters)

    def _render_union_selectors(self, lat: float, lng: float, radius: int, filter_snippets: List[str]) -> str:
        """Create a union combining node/way/relation for EACH filter snippet."""
        union_parts = []
        for filter_snippet in filter_snippets:
            union_parts.extend([
                f"  node{filter_snippet}(around:{radius},{lat:.6f},{lng:.6f});",
                f"  way{filter_snippet}(around:{radius},{lat:.6f},{lng:.6f});",
                f"  relation{filter_snippet}(around:{radius},{lat:.6f},{lng:.6f});"
            ])
        return "(\n" + "\n".join(union_parts) + "\n);"

    def _build_union_query(
        self,
        lat: float,
        lng: float,
        radius: int,
        osm_tags_list: List[List[Dict[str, Any]]],
        max_results: int,
    ) -> str:
        """
        Build a single Overpass query that combines multiple categories.

        Uses `(around:radius,lat,lng)` selectors, a `[timeout:...]` directive
        and `out center {max_results}` so ways/relations get a center point.
        """
        filter_snippets: List[str] = []
        for osm_tags in osm_tags_list:
            for tag_group in osm_tags:
                if "any" in tag_group:
                    filter_snippets.extend(self._render_filters_any(tag_group["any"]))
                elif "all" in tag_group:
                    filter_snippets.append(self._render_filters_all(tag_group["all"]))

        union_block = self._render_union_selectors(lat, lng, radius, filter_snippets)

        return f"""
[out:json][timeout:{self.timeout_s}];
{union_block}
out center {max_results};
""".strip()

    def _normalize_osm_result(
        self,
        element: Dict[str, Any],
        category_keys: Sequence[str],
    ) -> Optional[RawResult]:
        """Normalize OSM element to RawResult; None when it has no coordinates."""
        element_type = element.get("type", "node")
        element_id = element.get("id", 0)

        tags = element.get("tags", {})
        if not isinstance(tags, dict):
            tags = {}

        name = tags.get("name") or tags.get("brand") or tags.get("operator")

        # Address line; the street part comes first so it survives subtitle trimming
        address_parts = []
        if tags.get("addr:street"):
            street = tags["addr:street"]
            if tags.get("addr:housenumber"):
                street += f" {tags['addr:housenumber']}"
            address_parts.append(street)
        if tags.get("addr:city"):
            address_parts.append(tags["addr:city"])
        formatted_address = " · ".join(address_parts) if address_parts else None

        if element_type == "node":
            lat = element.get("lat")
            lng = element.get("lon")
        else:
            center = element.get("center", {})
            if isinstance(center, dict):
                lat = center.get("lat")
                lng = center.get("lon")
            else:
                lat = lng = None

        if lat is None or lng is None:
            return None

        category_key = category_for_tags(tags, category_keys)

        return RawResult(
            name=name,
            subtitle=formatted_address,
            url=tags.get("website") or tags.get("contact:website") or tags.get("url"),
            coordinate=Coordinate(latitude=float(lat), longitude=float(lng)),
            category=get_category_label(category_key) if category_key else None,
            locality=tags.get("addr:city"),
            provider_id=f"{element_type}/{element_id}",
        )

    def _backoff_seconds(self, retry_attempt: int) -> float:
        wait_time = self.backoff_base_s * (2 ** retry_attempt)
        return wait_time + random.uniform(0, wait_time * DEFAULT_BACKOFF_JITTER_FRACTION)

    async def _post_query(self, query: str) -> Dict[str, Any]:
        """
        POST the query, retrying timeouts, network errors and 5xx.
        Rate limiting and rejected queries are raised immediately.
        """
        last_error: Optional[Exception] = None

        for retry_attempt in range(self.max_retries + 1):
            attempt = retry_attempt + 1
            start_time = time.time()
            try:
                response = await self._client.post(
                    self.endpoint,
                    data={"data": query},
                    headers={"Content-Type": "application/x-www-form-urlencoded; charset=UTF-8"},
                )
            except httpx.TimeoutException as e:
                last_error = e
                logger.warning("osm_search_timeout", provider="osm", attempt=attempt, max_retries=self.max_retries)
            except httpx.TransportError as e:
                last_error = e
                logger.warning("osm_network_error", provider="osm", attempt=attempt, error=str(e)[:200])
            else:
                status_code = response.status_code
                duration_ms = int((time.time() - start_time) * 1000)

                if status_code == 429:
                    logger.warning("osm_rate_limited", provider="osm", attempt=attempt, duration_ms=duration_ms)
                    raise SearchRateLimitedError("Overpass API rate limit reached (HTTP 429)")

                if status_code in (400, 422):
                    logger.error(
                        "osm_query_syntax_error",
                        provider="osm",
                        status_code=status_code,
                        query=query,
                        response_text=response.text[:500],
                    )
                    detail = (response.text or "").strip()[:200]
                    raise SearchProviderError(f"Overpass rejected the query (HTTP {status_code}): {detail}")

                if status_code >= 500:
                    last_error = SearchServerError(f"Overpass server error (HTTP {status_code})")
                    logger.error("osm_server_error", provider="osm", status_code=status_code, attempt=attempt)
                elif status_code >= 400:
                    raise SearchProviderError(f"Overpass request failed (HTTP {status_code})")
                else:
                    return self._parse_overpass_response(response)

            if retry_attempt < self.max_retries:
                wait = self._backoff_seconds(retry_attempt)
                logger.info("osm_retry_backoff", provider="osm", attempt=attempt, wait_seconds=wait)
                await asyncio.sleep(wait)

        if isinstance(last_error, SearchServerError):
            raise last_error
        raise SearchServerError(f"Overpass API unavailable: {last_error}") from last_error

    async def search_by_category(
        self,
        anchor: Coordinate,
        radius_m: float,
        categories: Sequence[str],
    ) -> List[RawResult]:
        """
        Search for points of interest of the given categories around anchor.

        Args:
            anchor: Center of the proximity search
            radius_m: Search radius in meters
            categories: Category keys from poi_categories.yml

        Returns:
            RawResult list in Overpass order, deduplicated, capped at max_results
        """
        osm_tags_list = get_osm_tags(categories) or FALLBACK_TAG_GROUPS
        radius = max(1, int(round(radius_m)))
        query = self._build_union_query(
            anchor.latitude, anchor.longitude, radius, osm_tags_list, self.max_results
        )

        if OSM_LOG_QUERIES:
            logger.debug("osm_query_rendered", provider="osm", query=query)

        logger.info(
            "osm_search_start",
            provider="osm",
            lat=anchor.latitude,
            lng=anchor.longitude,
            radius=radius,
            categories=list(categories),
            query_length=len(query),
        )

        data = await self._post_query(query)
        elements = data.get("elements", [])

        results: List[RawResult] = []
        seen_ids = set()
        for element in elements:
            if not isinstance(element, dict):
                _trace(f"skipping non-dict element: {type(element).__name__}")
                continue
            try:
                normalized = self._normalize_osm_result(element, categories)
            except (TypeError, ValueError) as e:
                logger.warning(
                    "osm_normalization_error",
                    provider="osm",
                    element_id=element.get("id"),
                    error=str(e),
                )
                continue
            if normalized is None or normalized.provider_id in seen_ids:
                continue
            seen_ids.add(normalized.provider_id)
            results.append(normalized)

        results = results[: self.max_results]
        logger.info("osm_search_success", provider="osm", found=len(elements), normalized=len(results))
        return results
