# app/core/cycle_id.py
from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Iterator, Optional
import contextvars

_cycle_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("cycle_id", default=None)


def get_cycle_id() -> Optional[str]:
    return _cycle_id_ctx.get()


def new_cycle_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def with_cycle_id(cycle_id: Optional[str] = None) -> Iterator[str]:
    """
    Gebruik rond één fetch cycle:
        with with_cycle_id(token.cycle_id):
            ... primary / fallback / enrichment ...
    """
    previous = _cycle_id_ctx.get()
    cid = cycle_id or new_cycle_id()
    _cycle_id_ctx.set(cid)
    try:
        yield cid
    finally:
        # restore vorige waarde (kan None zijn)
        _cycle_id_ctx.set(previous)
