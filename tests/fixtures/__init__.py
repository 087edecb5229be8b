# tests/fixtures/__init__.py
"""
Test fixtures for the map news refresh pipeline.

Factory functions and in-memory providers:
- make_raw_results()
- FakeClock
- FakeSearchProvider (records calls, optional gate to hold a query open)
- FakeEnrichmentProvider (per-name assets / failures, records order)
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple, Union

from app.models.geo import Coordinate
from app.models.map_news import RawResult, SceneAsset


def make_raw_results(
    count: int,
    *,
    prefix: str = "Place",
    center: Coordinate = Coordinate(latitude=37.0, longitude=-122.0),
) -> List[RawResult]:
    """Factory for `count` raw results spread north of `center`."""
    return [
        RawResult(
            name=f"{prefix} {i}",
            subtitle=f"{i} Main St · Santa Cruz",
            url=f"https://example.com/{prefix.lower()}-{i}",
            coordinate=Coordinate(latitude=center.latitude + 0.001 * (i + 1), longitude=center.longitude),
            category="Museum",
            provider_id=f"node/{i}",
        )
        for i in range(count)
    ]


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


Outcome = Union[List[RawResult], Exception]


class FakeSearchProvider:
    """
    Returns queued outcomes per query mode. When `hold` is set, every query
    waits for the event before answering, so a cycle can be kept in flight.
    """

    def __init__(
        self,
        primary: Optional[List[Outcome]] = None,
        fallback: Optional[List[Outcome]] = None,
    ) -> None:
        self.primary: List[Outcome] = list(primary or [])
        self.fallback: List[Outcome] = list(fallback or [])
        self.category_calls: List[Tuple[Coordinate, float, Tuple[str, ...]]] = []
        self.text_calls: List[Tuple[Coordinate, float, str]] = []
        self.hold: Optional[asyncio.Event] = None

    @property
    def call_count(self) -> int:
        return len(self.category_calls) + len(self.text_calls)

    async def _answer(self, queue: List[Outcome]) -> List[RawResult]:
        outcome = queue.pop(0) if queue else []
        if self.hold is not None:
            await self.hold.wait()
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)

    async def search_by_category(self, anchor: Coordinate, radius_m: float, categories: Sequence[str]) -> List[RawResult]:
        self.category_calls.append((anchor, radius_m, tuple(categories)))
        return await self._answer(self.primary)

    async def search_by_text(self, anchor: Coordinate, radius_m: float, query: str) -> List[RawResult]:
        self.text_calls.append((anchor, radius_m, query))
        return await self._answer(self.fallback)


class FakeEnrichmentProvider:
    def __init__(
        self,
        assets: Optional[Dict[str, Optional[SceneAsset]]] = None,
        failures: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self.assets = assets
        self.failures = failures or {}
        self.requested: List[str] = []
        self.hold: Optional[asyncio.Event] = None

    async def fetch_asset(self, raw: RawResult) -> Optional[SceneAsset]:
        name = raw.name or ""
        self.requested.append(name)
        if self.hold is not None:
            await self.hold.wait()
        if name in self.failures:
            raise self.failures[name]
        if self.assets is None:
            return SceneAsset(image_url=f"https://img.example.com/{name.replace(' ', '_')}.jpg", title=name)
        return self.assets.get(name)
