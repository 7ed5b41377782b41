"""Time sources for the ledger (unix seconds)."""
from __future__ import annotations

import time


def system_clock() -> int:
    return int(time.time())


class ManualClock:
    """Clock that only moves when told to (tests and scenario replay)."""

    def __init__(self, start: int = 0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self.now += seconds
        return self.now
