"""Pool accountant — program-wide claimed total against ceiling and floor.

    remaining_pool          = total_pool - total_claimed
    remaining_distributable = max(0, remaining_pool - min_remaining)

``min_remaining`` is a permanent reserve. No claim can draw the pool
below it, so that amount is never released by the distributor.
Unclaimed allocations are not swept anywhere; they stay counted in the
remaining pool and can be allocated again by a later cycle's table.
"""

from __future__ import annotations

from cycledrop.errors import (
    ExceedsDistributableError,
    PoolCeilingExceededError,
    PoolExhaustedError,
    ZeroAmountError,
)
from cycledrop.models.state import DistributorState


class PoolAccountant:
    """Usage:
        pool = PoolAccountant(state, total_pool, min_remaining)
        pool.check_capacity(amount)
        pool.add(amount)
    """

    def __init__(self, state: DistributorState, total_pool: int, min_remaining: int) -> None:
        self._state = state
        self._total_pool = total_pool
        self._min_remaining = min_remaining

    @property
    def total_pool(self) -> int:
        return self._total_pool

    @property
    def min_remaining(self) -> int:
        return self._min_remaining

    @property
    def total_claimed(self) -> int:
        return self._state.total_claimed

    def remaining_pool(self) -> int:
        return self._total_pool - self._state.total_claimed

    def remaining_distributable(self) -> int:
        return max(0, self.remaining_pool() - self._min_remaining)

    def is_exhausted(self) -> bool:
        return self.remaining_distributable() == 0

    @staticmethod
    def check_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TypeError(f"Amount must be int, got {type(amount).__name__}")
        if amount <= 0:
            raise ZeroAmountError(f"Claim amount must be positive, got {amount}")

    def check_capacity(self, amount: int) -> None:
        """Floor checks: program not exhausted and this amount fits."""
        distributable = self.remaining_distributable()
        if distributable <= 0:
            raise PoolExhaustedError("Program exhausted down to the protected floor")
        if amount > distributable:
            raise ExceedsDistributableError(
                f"Amount {amount} exceeds remaining distributable {distributable}"
            )

    def check_ceiling(self, amount: int) -> None:
        if self._state.total_claimed + amount > self._total_pool:
            raise PoolCeilingExceededError(
                f"Claiming {amount} would exceed the pool ceiling {self._total_pool}"
            )

    def add(self, amount: int) -> None:
        self.check_ceiling(amount)
        self._state.total_claimed += amount

    def rollback(self, amount: int) -> None:
        """Undo ``add`` for a claim whose payout was refused."""
        self._state.total_claimed -= amount
