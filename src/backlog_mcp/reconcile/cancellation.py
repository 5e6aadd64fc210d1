"""Cooperative cancellation for reconciliation passes."""

from __future__ import annotations


class ReconciliationCancelled(Exception):
    """Raised at a phase boundary once the pass has been cancelled.

    Callers should treat it as a quiet shutdown, not as a failure to report.
    """

    def __init__(self, phase: str = "") -> None:
        self.phase = phase
        super().__init__(f"Reconciliation cancelled before {phase}" if phase else "Reconciliation cancelled")


class CancellationToken:
    """A flag shared by one reconciliation pass and whoever may cancel it."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self, phase: str = "") -> None:
        if self._cancelled:
            raise ReconciliationCancelled(phase)


__all__ = ["CancellationToken", "ReconciliationCancelled"]
