from __future__ import annotations

from typing import Dict, Optional, Set

from app.models.map_news import SceneAsset


class EnrichmentCache:
    """
    Per-cycle store of enrichment assets keyed by ResultItem.id.

    An id is present once its asset arrived, absent while pending, and stays
    absent when the lookup failed or returned nothing. Attempted ids are
    remembered so they are never fetched twice within a cycle. The only
    eviction is clear() at the start of each new cycle.
    """

    def __init__(self) -> None:
        self._assets: Dict[str, SceneAsset] = {}
        self._attempted: Set[str] = set()

    def get(self, item_id: str) -> Optional[SceneAsset]:
        return self._assets.get(item_id)

    def set(self, item_id: str, asset: SceneAsset) -> None:
        self._assets[item_id] = asset
        self._attempted.add(item_id)

    def has(self, item_id: str) -> bool:
        return item_id in self._assets

    def mark_attempted(self, item_id: str) -> None:
        self._attempted.add(item_id)

    def was_attempted(self, item_id: str) -> bool:
        return item_id in self._attempted

    def clear(self) -> None:
        self._assets.clear()
        self._attempted.clear()

    def snapshot(self) -> Dict[str, SceneAsset]:
        return dict(self._assets)

    def __len__(self) -> int:
        return len(self._assets)
