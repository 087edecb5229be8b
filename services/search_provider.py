# -*- coding: utf-8 -*-
"""
Search provider boundary for the map news deck.
- Protocol for the two query modes (category proximity, free-text proximity)
- Classified provider errors the coordinator turns into user-facing messages
- MapSearchProvider composing Overpass (categories) and Nominatim (text)
- Environment-driven provider selection via SEARCH_PROVIDER
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence, runtime_checkable

from app.models.geo import Coordinate
from app.models.map_news import RawResult


class SearchProviderError(RuntimeError):
    """Generic provider failure; its message is surfaced verbatim."""


class SearchRateLimitedError(SearchProviderError):
    pass


class SearchNotFoundError(SearchProviderError):
    pass


class SearchServerError(SearchProviderError):
    pass


class SearchCancelledError(SearchProviderError):
    pass


@runtime_checkable
class SearchProvider(Protocol):
    async def search_by_category(
        self,
        anchor: Coordinate,
        radius_m: float,
        categories: Sequence[str],
    ) -> List[RawResult]: ...

    async def search_by_text(
        self,
        anchor: Coordinate,
        radius_m: float,
        query: str,
    ) -> List[RawResult]: ...


class MapSearchProvider:
    """Primary queries go to Overpass, fallback text queries to Nominatim."""

    def __init__(self, category_search, text_search) -> None:
        self._category_search = category_search
        self._text_search = text_search

    async def search_by_category(
        self,
        anchor: Coordinate,
        radius_m: float,
        categories: Sequence[str],
    ) -> List[RawResult]:
        return await self._category_search.search_by_category(anchor, radius_m, categories)

    async def search_by_text(
        self,
        anchor: Coordinate,
        radius_m: float,
        query: str,
    ) -> List[RawResult]:
        return await self._text_search.search_by_text(anchor, radius_m, query)

    async def aclose(self) -> None:
        await self._category_search.aclose()
        await self._text_search.aclose()


def get_search_provider(provider: Optional[str] = None) -> SearchProvider:
    """
    Get the search provider based on environment configuration.

    Returns:
        MapSearchProvider (Overpass + Nominatim) if SEARCH_PROVIDER=osm (default)

    Raises:
        ValueError: If SEARCH_PROVIDER is set to an unsupported value
    """
    from app.config import settings
    from services.nominatim_service import NominatimService
    from services.osm_service import OsmPlacesService

    name = (provider or settings.SEARCH_PROVIDER).lower().strip()
    if name == "osm":
        return MapSearchProvider(OsmPlacesService(), NominatimService())
    raise ValueError(
        f"Unsupported SEARCH_PROVIDER: {name}. "
        f"Supported values: 'osm'"
    )
