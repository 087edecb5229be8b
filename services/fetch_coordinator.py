# -*- coding: utf-8 -*-
"""
FetchCoordinator — single-flight refresh pipeline for the map news deck
- Gates refreshes on time/distance staleness (force bypasses)
- Latest request wins: begin() cancels the previous cycle's token
- Primary category query, one text fallback at 1.5x radius when empty
- Trims to the first N results, maps them, publishes, then enriches each
  item sequentially without blocking the published list
- Classifies provider errors into user-facing messages
A cancelled cycle never touches published state.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from app.config import settings
from app.core.cycle_id import with_cycle_id
from app.core.logging import get_logger
from app.models.geo import Coordinate
from app.models.map_news import RawResult, ResultItem
from services.cancellation import CancellationToken, CycleCancelled
from services.enrichment_cache import EnrichmentCache
from services.link_preview_service import EnrichmentCancelledError, EnrichmentProvider
from services.search_provider import (
    SearchCancelledError,
    SearchNotFoundError,
    SearchProvider,
    SearchRateLimitedError,
    SearchServerError,
)
from services.staleness_gate import StalenessGate, StalenessRecord

logger = get_logger()

NO_STORIES_MESSAGE = "No local stories surfaced for this area yet. Try zooming out or refreshing later."
RATE_LIMITED_MESSAGE = "Map search is rate-limiting requests. Please wait a moment and retry."
SERVER_FAILURE_MESSAGE = "Map search couldn't load local news right now. Try again shortly."


class FetchPhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class PublishedState:
    items: Tuple[ResultItem, ...] = ()
    is_loading: bool = False
    last_error: Optional[str] = None
    staleness: Optional[StalenessRecord] = None


def classify_error(error: BaseException) -> Optional[str]:
    """User-facing message for a search failure; None means drop silently."""
    if isinstance(error, (SearchCancelledError, CycleCancelled, asyncio.CancelledError)):
        return None
    if isinstance(error, SearchRateLimitedError):
        return RATE_LIMITED_MESSAGE
    if isinstance(error, SearchNotFoundError):
        return NO_STORIES_MESSAGE
    if isinstance(error, SearchServerError):
        return SERVER_FAILURE_MESSAGE
    return str(error) or type(error).__name__


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FetchCoordinator:
    def __init__(
        self,
        search_provider: SearchProvider,
        enrichment_provider: EnrichmentProvider,
        *,
        state: Optional[PublishedState] = None,
        cache: Optional[EnrichmentCache] = None,
        gate: Optional[StalenessGate] = None,
        on_change: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime] = _utcnow,
        search_radius_m: Optional[float] = None,
        fallback_radius_factor: Optional[float] = None,
        fallback_query: Optional[str] = None,
        categories: Optional[Sequence[str]] = None,
        max_items: Optional[int] = None,
    ) -> None:
        self.search_provider = search_provider
        self.enrichment_provider = enrichment_provider
        self.state = state if state is not None else PublishedState()
        self.cache = cache if cache is not None else EnrichmentCache()
        self.gate = gate or StalenessGate()
        self._on_change = on_change
        self._clock = clock

        self.search_radius_m = search_radius_m if search_radius_m is not None else settings.MAPNEWS_SEARCH_RADIUS_M
        factor = fallback_radius_factor if fallback_radius_factor is not None else settings.MAPNEWS_FALLBACK_RADIUS_FACTOR
        self.fallback_radius_m = self.search_radius_m * factor
        self.fallback_query = fallback_query or settings.MAPNEWS_FALLBACK_QUERY
        self.categories: List[str] = list(categories or settings.MAPNEWS_PRIMARY_CATEGORIES)
        self.max_items = max_items if max_items is not None else settings.MAPNEWS_MAX_ITEMS

        self.phase = FetchPhase.IDLE
        self._token: Optional[CancellationToken] = None

    # -------- Gate & single-flight ------------------------------------------

    def should_fetch(self, anchor: Coordinate, *, force: bool = False) -> bool:
        return self.gate.should_fetch(self.state.staleness, anchor, self._clock(), force=force)

    def begin(self) -> CancellationToken:
        """Cancel whatever cycle is in flight and issue the token for a new one."""
        self.cancel()
        self._token = CancellationToken()
        return self._token

    def cancel(self) -> None:
        if self._token is not None and not self._token.is_cancelled:
            self._token.cancel()
            logger.info("mapnews_cycle_superseded", cycle_id=self._token.cycle_id)

    def _is_current(self, token: CancellationToken) -> bool:
        return token is self._token and not token.is_cancelled

    def _publish(self) -> None:
        if self._on_change is not None:
            self._on_change()

    # -------- Queries ---------------------------------------------------------

    async def _search(self, anchor: Coordinate, token: CancellationToken) -> List[RawResult]:
        results = await self.search_provider.search_by_category(anchor, self.search_radius_m, self.categories)
        token.raise_if_cancelled()

        if not results:
            logger.info("mapnews_primary_empty", fallback_query=self.fallback_query, radius=self.fallback_radius_m)
            results = await self.search_provider.search_by_text(anchor, self.fallback_radius_m, self.fallback_query)
            token.raise_if_cancelled()

        return list(results)

    async def _enrich(self, items: Sequence[ResultItem], token: CancellationToken) -> bool:
        """Sequential enrichment; False when the cycle got cancelled mid-way."""
        for item in items:
            if token.is_cancelled:
                return False
            if self.cache.has(item.id) or self.cache.was_attempted(item.id):
                continue

            self.cache.mark_attempted(item.id)
            try:
                asset = await self.enrichment_provider.fetch_asset(item.source)
            except EnrichmentCancelledError:
                logger.debug("mapnews_enrichment_cancelled", item_id=item.id)
                return False
            except Exception as e:
                logger.debug("mapnews_enrichment_failed", item_id=item.id, name=item.name, error=str(e))
                continue

            if token.is_cancelled:
                return False
            if asset is not None:
                self.cache.set(item.id, asset)
                self._publish()
        return True

    # -------- Cycle -----------------------------------------------------------

    async def run(self, anchor: Coordinate, token: CancellationToken) -> FetchPhase:
        """Run one fetch cycle for anchor under token; returns how it ended."""
        with with_cycle_id(token.cycle_id):
            if token.is_cancelled:
                return FetchPhase.CANCELLED

            self.phase = FetchPhase.FETCHING
            self.state.is_loading = True
            self.state.last_error = None
            self._publish()
            logger.info("mapnews_cycle_start", lat=anchor.latitude, lng=anchor.longitude)

            try:
                results = await self._search(anchor, token)
            except asyncio.CancelledError:
                logger.info("mapnews_cycle_cancelled", stage="search")
                self._stop_loading(token)
                raise
            except Exception as e:
                return self._finish_with_error(e, token)

            mapped = tuple(ResultItem.from_raw(raw, anchor) for raw in results[: self.max_items])
            self.cache.clear()
            self.state.items = mapped
            self.state.is_loading = False
            self.state.staleness = StalenessRecord(last_anchor=anchor, last_fetch_time=self._clock())
            self.state.last_error = None if mapped else NO_STORIES_MESSAGE
            self._publish()
            logger.info("mapnews_cycle_published", found=len(results), kept=len(mapped))

            try:
                finished = await self._enrich(mapped, token)
            except asyncio.CancelledError:
                logger.info("mapnews_cycle_cancelled", stage="enrichment")
                self._stop_loading(token)
                raise

            if not finished:
                logger.info("mapnews_cycle_cancelled", stage="enrichment")
                return FetchPhase.CANCELLED

            if self._is_current(token):
                self.phase = FetchPhase.COMPLETED
            logger.info("mapnews_cycle_completed", enriched=len(self.cache))
            return FetchPhase.COMPLETED

    def _stop_loading(self, token: CancellationToken) -> None:
        """Task cancelled without a newer cycle taking over."""
        if not self._is_current(token):
            return
        self.phase = FetchPhase.CANCELLED
        if self.state.is_loading:
            self.state.is_loading = False
            self._publish()

    def _finish_with_error(self, error: Exception, token: CancellationToken) -> FetchPhase:
        message = classify_error(error)

        if token.is_cancelled:
            logger.info("mapnews_cycle_cancelled", stage="search")
            return FetchPhase.CANCELLED

        if message is None:
            # Provider-side cancellation without a newer cycle: just stop loading
            logger.info("mapnews_search_cancelled_by_provider")
            self.state.is_loading = False
            self.phase = FetchPhase.CANCELLED
            self._publish()
            return FetchPhase.CANCELLED

        logger.warning("mapnews_cycle_failed", error=str(error), error_type=type(error).__name__)
        self.state.items = ()
        self.state.is_loading = False
        self.state.last_error = message
        self.phase = FetchPhase.FAILED
        self._publish()
        return FetchPhase.FAILED
