"""Time window policy — cycle index and window boundaries from a clock reading.

A cycle ``c`` spans [start + c*duration, start + (c+1)*duration). Two
windows hang off the cycle end:

    root-setting window:  [cycle_start(c), cycle_end(c) + root_setting_window]
    claim window:         (-inf,           cycle_end(c) + claim_window]

The two windows are independent. A root published near the end of its
grace window still leaves recipients the full claim window counted from
the cycle end, not from publication.

Pure functions of the program configuration and the supplied instant.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from cycledrop.errors import CycleNotStartedError
from cycledrop.models.program import ProgramConfig


class TimeWindowPolicy:
    """Derives cycle boundaries and window checks.

    Usage:
        policy = TimeWindowPolicy(config)
        cycle = policy.current_cycle(now)
        if policy.root_window_open(cycle, now):
            ...
    """

    def __init__(self, config: ProgramConfig) -> None:
        self._config = config

    def current_cycle(self, now: datetime) -> int:
        """Index of the cycle containing ``now``; 0 before the program starts."""
        if now < self._config.start_utc:
            return 0
        return (now - self._config.start_utc) // self._config.cycle_duration

    def cycle_start(self, cycle: int) -> datetime:
        check_cycle(cycle)
        return self._boundary(cycle, cycle)

    def cycle_end(self, cycle: int) -> datetime:
        check_cycle(cycle)
        return self._boundary(cycle, cycle + 1)

    def root_deadline(self, cycle: int) -> datetime:
        check_cycle(cycle)
        return self._boundary(cycle, cycle + 1, self._config.root_setting_window)

    def claim_deadline(self, cycle: int) -> datetime:
        check_cycle(cycle)
        return self._boundary(cycle, cycle + 1, self._config.claim_window)

    def planned_end(self) -> datetime:
        return self._config.planned_end_utc

    def root_window_open(self, cycle: int, now: datetime) -> bool:
        """Both bounds inclusive."""
        return self.cycle_start(cycle) <= now <= self.root_deadline(cycle)

    def claim_window_open(self, cycle: int, now: datetime) -> bool:
        return now <= self.claim_deadline(cycle)

    def _boundary(
        self,
        cycle: int,
        periods: int,
        extra: timedelta = timedelta(0),
    ) -> datetime:
        """``start + periods * duration + extra``; CycleNotStartedError past the calendar."""
        try:
            return self._config.start_utc + periods * self._config.cycle_duration + extra
        except OverflowError as e:
            raise CycleNotStartedError(
                f"Cycle {cycle} lies beyond the representable calendar"
            ) from e


def check_cycle(cycle: int) -> None:
    if isinstance(cycle, bool) or not isinstance(cycle, int):
        raise TypeError(f"Cycle index must be int, got {type(cycle).__name__}")
    if cycle < 0:
        raise ValueError(f"Cycle index must be non-negative, got {cycle}")
