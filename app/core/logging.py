# app/core/logging.py
from __future__ import annotations

import logging
import sys
from typing import Any, Dict
from datetime import datetime, timezone

import structlog

from app.core.cycle_id import get_cycle_id


# -------- Processors ---------------------------------------------------------

def _add_ts(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # ISO 8601 UTC timestamp, kort & sorteerbaar
    event_dict.setdefault("ts", datetime.now(timezone.utc).isoformat(timespec="milliseconds"))
    return event_dict

def _add_level(_: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # method_name is "info", "warning", ... afhankelijk van de aanroep
    level = event_dict.get("level") or method_name or "info"
    event_dict["level"] = str(level).lower()
    return event_dict

def _add_service(service_name: str):
    def _inner(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict
    return _inner

def _add_cycle_id(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    cid = get_cycle_id()
    if cid:
        event_dict.setdefault("cycle_id", cid)
    return event_dict

# Key-gebaseerde redactor; provider keys en tokens horen niet in de logs.
_SECRET_KEYS = {
    "authorization", "auth", "token", "access_token", "refresh_token",
    "api_key", "apikey", "password", "secret",
}

def _secret_guard(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for k in list(event_dict.keys()):
        if str(k).lower() in _SECRET_KEYS:
            event_dict[k] = "***redacted***"
    return event_dict


# -------- Public API ---------------------------------------------------------

_logger: structlog.BoundLogger | None = None

def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO

def configure_logging(service_name: str = "mapnews", *, level: int | str = logging.INFO) -> None:
    """
    Configureer één globale structlog stack voor de map news core.
    """
    global _logger
    numeric_level = _resolve_level(level)

    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        stream=sys.stderr,
        force=True,
    )

    processors = [
        _add_ts,
        _add_level,
        _add_service(service_name),
        _add_cycle_id,
        _secret_guard,
        structlog.processors.EventRenamer("event"),
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _logger = structlog.get_logger()

def get_logger() -> structlog.BoundLogger:
    global _logger
    if _logger is None:
        from app.config import settings
        configure_logging("mapnews", level=settings.LOG_LEVEL)
    return _logger

# Een makkelijk te importeren alias
logger = get_logger()
