"""
Refresh gate and the bookkeeping it works on.

The gate is a pure function. The collector evaluates it and marks the
dispatch in the same critical section, so two scrapes landing in the
same instant can't both start a refresh.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from netatmo_exporter.metrics import EMPTY_SNAPSHOT, Snapshot


def should_refresh(now: float, last_attempt: float, interval: float, in_progress: bool) -> bool:
    """True when no refresh is running and the last attempt is at least interval old."""
    if in_progress:
        return False
    return now - last_attempt >= interval


@dataclass
class RefreshState:
    """Shared state between the scrape path and the refresh completion.

    Not thread-safe by itself; the collector guards it with one lock.
    """

    last_attempt: float = 0.0  # 0 = never tried
    last_error: Optional[BaseException] = None
    snapshot: Snapshot = EMPTY_SNAPSHOT
    in_progress: bool = False
    completed: int = 0  # refresh results applied so far, success or not

    def mark_dispatched(self, now: float):
        self.in_progress = True
        self.last_attempt = now

    def apply_success(self, snapshot: Snapshot):
        self.snapshot = snapshot
        self.last_error = None
        self._finish()

    def apply_failure(self, error: BaseException):
        # Previous snapshot stays published
        self.last_error = error
        self._finish()

    def _finish(self):
        self.in_progress = False
        self.completed += 1
