from __future__ import annotations

import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

# Load poi_categories.yml
THIS_FILE = Path(__file__).resolve()
REPO_ROOT = THIS_FILE.parent.parent  # root
POI_CATEGORIES_YML = REPO_ROOT / "Infra" / "config" / "poi_categories.yml"

# Legacy fallback map (used if YAML unavailable)
POI_CATEGORY_MAP: Dict[str, Dict[str, Any]] = {
    "library": {"label": "Library", "osm_tags": [{"any": [{"amenity": "library"}]}]},
    "museum": {"label": "Museum", "osm_tags": [{"any": [{"tourism": "museum"}]}]},
    "stadium": {"label": "Stadium", "osm_tags": [{"any": [{"leisure": "stadium"}]}]},
    "university": {
        "label": "University",
        "osm_tags": [{"any": [{"amenity": "university"}, {"amenity": "college"}]}],
    },
    "school": {"label": "School", "osm_tags": [{"any": [{"amenity": "school"}]}]},
    "park": {"label": "Park", "osm_tags": [{"any": [{"leisure": "park"}]}]},
    "theater": {
        "label": "Theater",
        "aliases": ["theatre"],
        "osm_tags": [{"any": [{"amenity": "theatre"}]}],
    },
}

# Cached YAML data
_YAML_CATEGORIES: Optional[Dict[str, Any]] = None


def _load_categories_config() -> Dict[str, Any]:
    """Load categories from YAML file, with fallback to empty dict."""
    if not POI_CATEGORIES_YML.exists():
        return {}
    try:
        with open(POI_CATEGORIES_YML, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        categories = data.get("categories", {})
        return categories if isinstance(categories, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


def _get_categories() -> Dict[str, Any]:
    global _YAML_CATEGORIES
    if _YAML_CATEGORIES is None:
        _YAML_CATEGORIES = _load_categories_config() or POI_CATEGORY_MAP
    return _YAML_CATEGORIES


def clear_poi_category_cache() -> None:
    """Clear cached YAML data (useful after YAML changes)."""
    global _YAML_CATEGORIES
    _YAML_CATEGORIES = None


def _slugify(value: str) -> str:
    """
    Minimal slugify for category keys:
    - lowercase, trim
    - replace "/", "-" and whitespace with "_"
    - keep ascii letters/digits/underscore only
    """
    s = (value or "").strip().lower()
    s = s.replace("/", "_").replace("-", "_").replace(" ", "_")
    while "__" in s:
        s = s.replace("__", "_")
    out = [ch for ch in s if ("a" <= ch <= "z") or ("0" <= ch <= "9") or ch == "_"]
    return "".join(out).strip("_")


def normalize_poi_category(raw: Optional[str]) -> Optional[str]:
    """Map a raw key or alias ("Theatre", "public-library") to its canonical key."""
    needle = _slugify(raw or "")
    if not needle:
        return None
    for key, cfg in _get_categories().items():
        if _slugify(key) == needle:
            return key
        if not isinstance(cfg, dict):
            continue
        aliases = cfg.get("aliases") or []
        if any(_slugify(str(alias)) == needle for alias in aliases):
            return key
    return None


def get_category_label(key: str) -> str:
    cfg = _get_categories().get(key)
    if isinstance(cfg, dict) and cfg.get("label"):
        return str(cfg["label"])
    return key.replace("_", " ").title()


def get_osm_tags(category_keys: Sequence[str]) -> List[List[Dict[str, Any]]]:
    """
    Resolve category keys to their osm_tags groups, in the order given.
    Unknown keys are skipped.
    """
    categories = _get_categories()
    result: List[List[Dict[str, Any]]] = []
    for raw_key in category_keys:
        key = normalize_poi_category(raw_key)
        if key is None:
            continue
        cfg = categories.get(key)
        osm_tags = cfg.get("osm_tags") if isinstance(cfg, dict) else None
        if isinstance(osm_tags, list) and osm_tags:
            result.append(osm_tags)
    return result


def _tag_pairs(osm_tags: List[Dict[str, Any]]) -> List[tuple[str, str]]:
    pairs: List[tuple[str, str]] = []
    for group in osm_tags:
        for tag_dict in group.get("any", []) + group.get("all", []):
            for k, v in tag_dict.items():
                pairs.append((str(k), str(v)))
    return pairs


def category_for_tags(tags: Dict[str, Any], category_keys: Sequence[str]) -> Optional[str]:
    """Return the first requested category whose OSM tags match the element tags."""
    categories = _get_categories()
    for raw_key in category_keys:
        key = normalize_poi_category(raw_key)
        cfg = categories.get(key) if key else None
        if not isinstance(cfg, dict):
            continue
        for tag_key, tag_value in _tag_pairs(cfg.get("osm_tags") or []):
            if tags.get(tag_key) == tag_value:
                return key
    return None
