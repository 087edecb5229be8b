# services/staleness_gate.py
"""
Refresh gate for the map news deck.

A refresh is suppressed only when the last successful query is both recent
(elapsed < stale_after_s) and close (moved < stale_distance_m). Anything
else, including having no record at all, warrants a fetch. `force` bypasses
the gate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.config import settings
from app.models.geo import Coordinate
from app.utils.geo import distance_meters

DEFAULT_STALE_AFTER_S = 45.0
DEFAULT_STALE_DISTANCE_M = 800.0


@dataclass(frozen=True)
class StalenessRecord:
    last_anchor: Coordinate
    last_fetch_time: datetime


def should_fetch(
    last_anchor: Optional[Coordinate],
    last_fetch_time: Optional[datetime],
    new_anchor: Coordinate,
    now: datetime,
    *,
    force: bool = False,
    stale_after_s: float = DEFAULT_STALE_AFTER_S,
    stale_distance_m: float = DEFAULT_STALE_DISTANCE_M,
) -> bool:
    if force:
        return True
    if last_anchor is None or last_fetch_time is None:
        return True

    elapsed = (now - last_fetch_time).total_seconds()
    moved = distance_meters(last_anchor, new_anchor)
    return elapsed >= stale_after_s or moved >= stale_distance_m


class StalenessGate:
    def __init__(
        self,
        stale_after_s: Optional[float] = None,
        stale_distance_m: Optional[float] = None,
    ) -> None:
        self.stale_after_s = stale_after_s if stale_after_s is not None else settings.MAPNEWS_STALE_AFTER_S
        self.stale_distance_m = (
            stale_distance_m if stale_distance_m is not None else settings.MAPNEWS_STALE_DISTANCE_M
        )

    def should_fetch(
        self,
        record: Optional[StalenessRecord],
        new_anchor: Coordinate,
        now: datetime,
        *,
        force: bool = False,
    ) -> bool:
        return should_fetch(
            record.last_anchor if record else None,
            record.last_fetch_time if record else None,
            new_anchor,
            now,
            force=force,
            stale_after_s=self.stale_after_s,
            stale_distance_m=self.stale_distance_m,
        )
