"""Program configuration — immutable parameters fixed at creation.

A reward program runs in consecutive cycles of equal length starting at
``start_utc``. The four window/floor constants are fields with defaults
so that simulations can scale them down; production programs keep the
defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from cycledrop.crypto.encoding import normalize_address
from cycledrop.errors import ConfigurationError

TOKEN_DECIMALS = 18

CLAIM_WINDOW = timedelta(days=60)
ROOT_SETTING_WINDOW = timedelta(days=14)
MIN_REMAINING = 50_000 * 10**TOKEN_DECIMALS
PROGRAM_DURATION = timedelta(days=3650)  # informational, never enforced


@dataclass(frozen=True)
class ProgramConfig:
    """Construction parameters of one distributor instance."""
    token: str
    root_setter: str
    start_utc: datetime
    cycle_duration: timedelta
    total_pool: int
    claim_window: timedelta = CLAIM_WINDOW
    root_setting_window: timedelta = ROOT_SETTING_WINDOW
    min_remaining: int = MIN_REMAINING
    program_duration: timedelta = PROGRAM_DURATION

    def validate(self, now: datetime, require_future_start: bool = True) -> None:
        """Raise ConfigurationError if the program cannot be created at ``now``.

        Restoring an already-running program passes
        ``require_future_start=False``; every other rule still applies.
        """
        if not self.token:
            raise ConfigurationError("Reward token reference is required")
        if not self.root_setter:
            raise ConfigurationError("Root-setting principal is required")
        try:
            normalize_address(self.root_setter)
        except ValueError as e:
            raise ConfigurationError(f"Invalid root-setting principal: {e}") from e
        if self.start_utc.tzinfo is None:
            raise ConfigurationError("start_utc must be timezone-aware")
        if require_future_start and self.start_utc <= now:
            raise ConfigurationError(
                f"Program start {self.start_utc.isoformat()} must be in the future "
                f"(now {now.isoformat()})"
            )
        if self.cycle_duration <= timedelta(0):
            raise ConfigurationError("Cycle duration must be positive")
        if self.min_remaining < 0:
            raise ConfigurationError("Protected minimum remainder cannot be negative")
        if self.total_pool <= self.min_remaining:
            raise ConfigurationError(
                f"Total pool {self.total_pool} must exceed protected minimum "
                f"remainder {self.min_remaining}"
            )
        if self.claim_window < timedelta(0) or self.root_setting_window < timedelta(0):
            raise ConfigurationError("Claim and root-setting windows cannot be negative")

    @property
    def planned_end_utc(self) -> datetime:
        return self.start_utc + self.program_duration

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "root_setter": self.root_setter,
            "start_utc": self.start_utc.isoformat(),
            "cycle_duration_seconds": int(self.cycle_duration.total_seconds()),
            "total_pool": str(self.total_pool),
            "claim_window_seconds": int(self.claim_window.total_seconds()),
            "root_setting_window_seconds": int(self.root_setting_window.total_seconds()),
            "min_remaining": str(self.min_remaining),
            "program_duration_seconds": int(self.program_duration.total_seconds()),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProgramConfig":
        return cls(
            token=data["token"],
            root_setter=data["root_setter"],
            start_utc=datetime.fromisoformat(data["start_utc"]),
            cycle_duration=timedelta(seconds=data["cycle_duration_seconds"]),
            total_pool=int(data["total_pool"]),
            claim_window=timedelta(seconds=data["claim_window_seconds"]),
            root_setting_window=timedelta(seconds=data["root_setting_window_seconds"]),
            min_remaining=int(data["min_remaining"]),
            program_duration=timedelta(seconds=data["program_duration_seconds"]),
        )
