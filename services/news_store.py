# -*- coding: utf-8 -*-
"""
NewsStore — the observable surface of the map news deck.

The UI reads `items`, `is_loading`, `last_error` and `asset_for(id)` (or a
whole `snapshot()`), registers listeners for change notifications and calls
`refresh(anchor, force=False)`. Nothing else mutates the deck.
"""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Tuple

from app.core.logging import get_logger
from app.models.geo import Coordinate
from app.models.map_news import NewsSnapshot, ResultItem, SceneAsset
from services.enrichment_cache import EnrichmentCache
from services.fetch_coordinator import FetchCoordinator, FetchPhase, PublishedState
from services.link_preview_service import EnrichmentProvider
from services.search_provider import SearchProvider

logger = get_logger()

Listener = Callable[[NewsSnapshot], None]


class NewsStore:
    def __init__(
        self,
        search_provider: SearchProvider,
        enrichment_provider: EnrichmentProvider,
        **coordinator_options,
    ) -> None:
        self._state = PublishedState()
        self._cache = EnrichmentCache()
        self._listeners: List[Listener] = []
        self._task: Optional[asyncio.Task] = None
        self._coordinator = FetchCoordinator(
            search_provider,
            enrichment_provider,
            state=self._state,
            cache=self._cache,
            on_change=self._notify,
            **coordinator_options,
        )

    # -------- Read-only surface ----------------------------------------------

    @property
    def items(self) -> Tuple[ResultItem, ...]:
        return self._state.items

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def last_error(self) -> Optional[str]:
        return self._state.last_error

    @property
    def phase(self) -> FetchPhase:
        return self._coordinator.phase

    def asset_for(self, item_id: str) -> Optional[SceneAsset]:
        return self._cache.get(item_id)

    def snapshot(self) -> NewsSnapshot:
        return NewsSnapshot(
            items=self._state.items,
            is_loading=self._state.is_loading,
            last_error=self._state.last_error,
            assets=self._cache.snapshot(),
        )

    # -------- Change notification --------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception as e:
                logger.warning("mapnews_listener_failed", listener=repr(listener), error=str(e))

    # -------- Refresh ---------------------------------------------------------

    def refresh(self, anchor: Coordinate, force: bool = False) -> Optional[asyncio.Task]:
        """
        Start a fetch cycle for anchor on the running event loop.

        Returns the cycle's task, or None when the staleness gate suppressed
        the refresh. Any cycle still in flight is cancelled first.
        """
        if not self._coordinator.should_fetch(anchor, force=force):
            logger.debug("mapnews_refresh_gated", lat=anchor.latitude, lng=anchor.longitude)
            return None

        token = self._coordinator.begin()
        if self._task is not None and not self._task.done():
            self._task.cancel()

        self._task = asyncio.get_running_loop().create_task(
            self._coordinator.run(anchor, token),
            name=f"mapnews-cycle-{token.cycle_id}",
        )
        return self._task

    async def wait_idle(self) -> Optional[FetchPhase]:
        """Wait for the current cycle; None if it was cancelled or nothing ran."""
        task = self._task
        if task is None:
            return None
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled():
                return None
            raise

    async def aclose(self) -> None:
        self._coordinator.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        for provider in (self._coordinator.search_provider, self._coordinator.enrichment_provider):
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()


def build_news_store() -> NewsStore:
    """NewsStore wired to the configured search provider and Open Graph enrichment."""
    from services.link_preview_service import LinkPreviewService
    from services.search_provider import get_search_provider

    return NewsStore(get_search_provider(), LinkPreviewService())
