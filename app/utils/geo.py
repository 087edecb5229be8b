# app/utils/geo.py
"""
Geospatial helpers for the map news deck and its overlays.

- Great-circle distance between two coordinates
- Region span (degrees) that frames a radius at a latitude
- Meters → on-screen pixels and coordinate → screen point for a viewport
All functions are pure; degenerate spans are floored to a small epsilon.
"""

from __future__ import annotations

import math

from app.models.geo import Coordinate, Region, ScreenPoint, Span, ViewportSize

EARTH_RADIUS_M = 6_371_008.8

METERS_PER_DEG_LAT = 111_000.0
METERS_PER_DEG_LON_EQUATOR = 111_320.0
MIN_COS_LATITUDE = 0.1

MIN_RADIUS_M = 100.0
SPAN_PADDING = 2.2
MIN_SPAN_DEG = 0.005
MAX_SPAN_DEG = 60.0

SPAN_EPSILON = 1e-6


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Return great-circle distance in meters (haversine)."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlmb = math.radians(b.longitude - a.longitude)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def _meters_per_degree_longitude(latitude: float) -> float:
    lat_rad = math.radians(abs(latitude))
    return METERS_PER_DEG_LON_EQUATOR * max(MIN_COS_LATITUDE, math.cos(lat_rad))


def _clamp_span(value: float) -> float:
    return min(max(value, MIN_SPAN_DEG), MAX_SPAN_DEG)


def span_for(radius_km: float, at_latitude: float) -> Span:
    """
    Region span (degrees) that roughly frames a diameter of 2 * radius,
    padded and clamped to [MIN_SPAN_DEG, MAX_SPAN_DEG].
    """
    radius_m = max(MIN_RADIUS_M, radius_km * 1000.0)
    lat_delta = (radius_m / METERS_PER_DEG_LAT) * SPAN_PADDING
    lon_delta = (radius_m / _meters_per_degree_longitude(at_latitude)) * SPAN_PADDING
    return Span(latitude_delta=_clamp_span(lat_delta), longitude_delta=_clamp_span(lon_delta))


def region_for(center: Coordinate, radius_km: float) -> Region:
    return Region(center=center, span=span_for(radius_km, center.latitude))


def meters_to_pixels(meters: float, at_latitude: float, region: Region, size: ViewportSize) -> float:
    """
    Convert a meters distance to screen pixels for the current region and
    viewport. The smaller of the X/Y extents is returned so a drawn circle
    never exceeds the viewport on either axis; never less than 1 pixel.
    """
    lat_delta = meters / METERS_PER_DEG_LAT
    lon_delta = meters / _meters_per_degree_longitude(at_latitude)

    px_x = lon_delta / max(region.span.longitude_delta, SPAN_EPSILON) * size.width
    px_y = lat_delta / max(region.span.latitude_delta, SPAN_EPSILON) * size.height
    return max(1.0, min(px_x, px_y))


def coordinate_to_screen_point(coord: Coordinate, region: Region, size: ViewportSize) -> ScreenPoint:
    """Linear-in-degrees projection centered on the viewport; north is up."""
    dx = coord.longitude - region.center.longitude
    dy = coord.latitude - region.center.latitude
    x = size.width * 0.5 + dx / max(region.span.longitude_delta, SPAN_EPSILON) * size.width
    y = size.height * 0.5 - dy / max(region.span.latitude_delta, SPAN_EPSILON) * size.height
    return ScreenPoint(x=x, y=y)


def bounding_box(center: Coordinate, radius_m: float) -> tuple[float, float, float, float]:
    """(min_lon, min_lat, max_lon, max_lat) of a square around center."""
    dlat = radius_m / METERS_PER_DEG_LAT
    dlon = radius_m / _meters_per_degree_longitude(center.latitude)
    return (
        center.longitude - dlon,
        center.latitude - dlat,
        center.longitude + dlon,
        center.latitude + dlat,
    )
