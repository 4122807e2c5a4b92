"""Distributor state — the single owned ledger shared by all components.

Created at program start, mutated only through root publication and
claim processing, never torn down. Roots are write-once. Claim flags
and cycle totals are removed only when a payout fails and its claim is
rolled back inside the same operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class DistributorState:
    """Mutable program-wide state.

    roots:         cycle -> 32-byte commitment (absent means unset)
    claimed:       cycle -> set of checksum addresses that have claimed
    cycle_totals:  cycle -> cumulative amount claimed in that cycle
    total_claimed: cumulative amount claimed across all cycles
    """
    roots: dict[int, bytes] = field(default_factory=dict)
    claimed: dict[int, set[str]] = field(default_factory=dict)
    cycle_totals: dict[int, int] = field(default_factory=dict)
    total_claimed: int = 0

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize state for persistence. Amounts are decimal strings."""
        return {
            "roots": {str(c): "0x" + r.hex() for c, r in sorted(self.roots.items())},
            "claimed": {
                str(c): sorted(addrs) for c, addrs in sorted(self.claimed.items())
            },
            "cycle_totals": {
                str(c): str(t) for c, t in sorted(self.cycle_totals.items())
            },
            "total_claimed": str(self.total_claimed),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DistributorState":
        """Reconstruct state from persisted data."""
        return cls(
            roots={
                int(c): bytes.fromhex(r.removeprefix("0x"))
                for c, r in data.get("roots", {}).items()
            },
            claimed={int(c): set(addrs) for c, addrs in data.get("claimed", {}).items()},
            cycle_totals={int(c): int(t) for c, t in data.get("cycle_totals", {}).items()},
            total_claimed=int(data.get("total_claimed", "0")),
        )


@dataclass(frozen=True)
class RootPublication:
    """Outcome of a successful root publication."""
    cycle: int
    root: bytes
    setter: str
    published_utc: datetime


@dataclass(frozen=True)
class ClaimReceipt:
    """Outcome of a successful claim."""
    cycle: int
    recipient: str
    amount: int
    claimed_utc: datetime
    event_id: Optional[str] = None
