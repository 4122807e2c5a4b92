"""Non-reentrant guard around distributor operations.

Operations on one distributor run one at a time: other threads wait on
the lock. A nested call from the same thread (a token callback during
payout) finds the in-progress flag set and is rejected with
ReentrancyError. The flag is cleared on every exit path.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from cycledrop.errors import ReentrancyError


class ReentrancyGuard:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entered = False

    @property
    def entered(self) -> bool:
        return self._entered

    @contextmanager
    def hold(self, operation: str = "operation") -> Iterator[None]:
        with self._lock:
            if self._entered:
                raise ReentrancyError(f"Reentrant {operation} rejected")
            self._entered = True
            try:
                yield
            finally:
                self._entered = False
