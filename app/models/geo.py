from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Coordinate:
    """Decimal-degree coordinate. Immutable value type."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class Span:
    latitude_delta: float
    longitude_delta: float


@dataclass(frozen=True)
class Region:
    """Viewport extent in degrees around a center."""

    center: Coordinate
    span: Span


@dataclass(frozen=True)
class ViewportSize:
    width: float
    height: float


@dataclass(frozen=True)
class ScreenPoint:
    x: float
    y: float
