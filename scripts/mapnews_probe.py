#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Map news probe — run one refresh cycle against the real providers
- Primary Overpass category query, Nominatim fallback, Open Graph enrichment
- Prints the published deck as JSON once the cycle (incl. enrichment) ends
- Exit codes: 0 items found, 1 no items / error message, 2 timeout

Usage:
    python -m scripts.mapnews_probe --lat 51.9244 --lng 4.4777
    python -m scripts.mapnews_probe --lat 37.0 --lng -122.0 --timeout 90
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add repo root to path for imports
ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.config import settings
from app.core.logging import configure_logging, get_logger
from app.models.geo import Coordinate
from services.news_store import build_news_store

configure_logging(service_name="script", level=settings.LOG_LEVEL)
logger = get_logger()


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Run one map news refresh around a coordinate")
    ap.add_argument("--lat", type=float, required=True, help="Anchor latitude")
    ap.add_argument("--lng", type=float, required=True, help="Anchor longitude")
    ap.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Seconds to wait for the cycle including enrichment (default: 60)",
    )
    return ap.parse_args()


async def main_async() -> int:
    args = parse_args()
    anchor = Coordinate(latitude=args.lat, longitude=args.lng)

    logger.info("probe_start", version=settings.APP_VERSION, lat=anchor.latitude, lng=anchor.longitude)
    store = build_news_store()
    store.add_listener(
        lambda snap: logger.info(
            "probe_snapshot",
            items=len(snap.items),
            assets=len(snap.assets),
            is_loading=snap.is_loading,
            last_error=snap.last_error,
        )
    )

    try:
        store.refresh(anchor, force=True)
        try:
            await asyncio.wait_for(store.wait_idle(), timeout=args.timeout)
        except asyncio.TimeoutError:
            print(f"TIMEOUT after {args.timeout:.0f}s")
            return 2

        snapshot = store.snapshot()
        payload = {
            "anchor": {"lat": anchor.latitude, "lng": anchor.longitude},
            "last_error": snapshot.last_error,
            "items": [
                {
                    "name": item.name,
                    "subtitle": item.subtitle,
                    "distance": item.distance_text,
                    "url": item.link_url,
                    "image": (snapshot.asset_for(item.id).image_url if snapshot.asset_for(item.id) else None),
                }
                for item in snapshot.items
            ],
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return 0 if snapshot.items else 1
    finally:
        await store.aclose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main_async()))
