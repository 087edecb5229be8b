from __future__ import annotations

from app.core.cycle_id import new_cycle_id


class CycleCancelled(Exception):
    """Raised inside a fetch cycle once its token has been cancelled."""


class CancellationToken:
    """
    Explicit cancellation flag for one fetch cycle.
    Polled at every suspension point; once cancelled it stays cancelled.
    """

    def __init__(self, cycle_id: str | None = None) -> None:
        self.cycle_id = cycle_id or new_cycle_id()
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CycleCancelled(self.cycle_id)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"<CancellationToken {self.cycle_id} {state}>"
