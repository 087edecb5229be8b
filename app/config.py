# app/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env staat in de repo-root, naast pyproject.toml
ENV_FILE = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(ENV_FILE, override=False)

DEFAULT_PRIMARY_CATEGORIES = [
    "library",
    "museum",
    "stadium",
    "university",
    "school",
    "park",
    "theater",
]


class Settings(BaseSettings):
    # ---- App ----
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # ---- Providers ----
    SEARCH_PROVIDER: str = "osm"
    HTTP_USER_AGENT: str = "EmberMapNews/0.1 (+https://github.com/ember-app)"

    # ---- Map news refresh ----
    MAPNEWS_SEARCH_RADIUS_M: float = 9_000.0
    MAPNEWS_FALLBACK_RADIUS_FACTOR: float = 1.5
    MAPNEWS_FALLBACK_QUERY: str = "news"
    MAPNEWS_MAX_ITEMS: int = 8
    MAPNEWS_STALE_AFTER_S: float = 45.0
    MAPNEWS_STALE_DISTANCE_M: float = 800.0
    MAPNEWS_PRIMARY_CATEGORIES: List[str] = Field(
        default_factory=lambda: list(DEFAULT_PRIMARY_CATEGORIES)
    )

    # ---- Overpass (primary category search) ----
    OVERPASS_ENDPOINT: str = "https://overpass-api.de/api/interpreter"
    OVERPASS_TIMEOUT_S: int = 25
    OVERPASS_MAX_RETRIES: int = 1
    OVERPASS_BACKOFF_BASE_S: float = 1.0
    OVERPASS_MAX_RESULTS: int = 40

    # ---- Nominatim (fallback text search) ----
    NOMINATIM_BASE_URL: str = "https://nominatim.openstreetmap.org/search"
    NOMINATIM_TIMEOUT_S: float = 10.0
    NOMINATIM_MIN_DELAY_S: float = 1.0

    # ---- Enrichment (Open Graph imagery) ----
    ENRICHMENT_TIMEOUT_S: float = 8.0

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
