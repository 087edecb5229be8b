from __future__ import annotations

import uuid
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from app.models.geo import Coordinate
from app.utils.geo import distance_meters

DEFAULT_ITEM_NAME = "Local Story"
SUBTITLE_SEPARATOR = "·"


class RawResult(BaseModel):
    """
    One place as returned by a search provider, before mapping.
    `subtitle` is the provider's display line (address etc.) and may hold
    several "·"-separated pieces.
    """

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    subtitle: Optional[str] = None
    url: Optional[str] = None
    coordinate: Coordinate
    category: Optional[str] = None
    locality: Optional[str] = None
    provider_id: Optional[str] = None


class SceneAsset(BaseModel):
    """Secondary visual asset attached to a result by enrichment."""

    model_config = ConfigDict(frozen=True)

    image_url: str
    title: Optional[str] = None
    source_url: Optional[str] = None


def _derive_subtitle(raw: RawResult) -> Optional[str]:
    if raw.subtitle is not None:
        pieces = [p.strip() for p in raw.subtitle.split(SUBTITLE_SEPARATOR)]
        if pieces and pieces[0]:
            return pieces[0]
        return raw.category
    if raw.locality:
        return raw.locality
    return raw.category


class ResultItem(BaseModel):
    """
    A mapped search result as published to the deck.
    `id` is regenerated on every mapping; it only needs to hold for the
    enrichment phase of the cycle that created it.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    subtitle: Optional[str] = None
    link_url: Optional[str] = None
    coordinate: Coordinate
    distance_from_anchor: Optional[float] = None
    category: Optional[str] = None
    source: RawResult

    @classmethod
    def from_raw(cls, raw: RawResult, origin: Optional[Coordinate] = None) -> "ResultItem":
        distance = distance_meters(origin, raw.coordinate) if origin is not None else None
        return cls(
            name=raw.name or DEFAULT_ITEM_NAME,
            subtitle=_derive_subtitle(raw),
            link_url=raw.url,
            coordinate=raw.coordinate,
            distance_from_anchor=distance,
            category=raw.category,
            source=raw,
        )

    @property
    def distance_text(self) -> Optional[str]:
        if self.distance_from_anchor is None:
            return None
        if self.distance_from_anchor >= 1000:
            return f"{self.distance_from_anchor / 1000:.1f} km"
        return f"{self.distance_from_anchor:.0f} m"


class NewsSnapshot(BaseModel):
    """Read-only view of the published deck state."""

    model_config = ConfigDict(frozen=True)

    items: Tuple[ResultItem, ...] = ()
    is_loading: bool = False
    last_error: Optional[str] = None
    assets: Dict[str, SceneAsset] = Field(default_factory=dict)

    def asset_for(self, item_id: str) -> Optional[SceneAsset]:
        return self.assets.get(item_id)
