"""Cycle scheduling — time windows for root publication and claims."""

from cycledrop.schedule.window_policy import TimeWindowPolicy

__all__ = ["TimeWindowPolicy"]
