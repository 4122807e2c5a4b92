"""Claim ledger — per-(cycle, recipient) claim flags and per-cycle totals.

The claim flag is the idempotency boundary: it goes false -> true once,
on the first successful claim, and is checked before anything else
about a claim. Per-cycle totals are analytics only; capacity decisions
use the program-wide ledger in PoolAccountant.
"""

from __future__ import annotations

from cycledrop.errors import AlreadyClaimedError
from cycledrop.models.state import DistributorState


class ClaimLedger:
    def __init__(self, state: DistributorState) -> None:
        self._state = state

    def has_claimed(self, cycle: int, recipient: str) -> bool:
        return recipient in self._state.claimed.get(cycle, ())

    def check_not_claimed(self, cycle: int, recipient: str) -> None:
        if self.has_claimed(cycle, recipient):
            raise AlreadyClaimedError(
                f"{recipient} has already claimed for cycle {cycle}"
            )

    def cycle_total(self, cycle: int) -> int:
        return self._state.cycle_totals.get(cycle, 0)

    def record(self, cycle: int, recipient: str, amount: int) -> None:
        """Mark the pair claimed and add to the cycle total."""
        self.check_not_claimed(cycle, recipient)
        self._state.claimed.setdefault(cycle, set()).add(recipient)
        self._state.cycle_totals[cycle] = self.cycle_total(cycle) + amount

    def rollback(self, cycle: int, recipient: str, amount: int) -> None:
        """Undo ``record`` for a claim whose payout was refused.

        Only valid inside the claim operation that made the record.
        """
        self._state.claimed[cycle].discard(recipient)
        if not self._state.claimed[cycle]:
            del self._state.claimed[cycle]
        remaining = self._state.cycle_totals[cycle] - amount
        if remaining:
            self._state.cycle_totals[cycle] = remaining
        else:
            del self._state.cycle_totals[cycle]
