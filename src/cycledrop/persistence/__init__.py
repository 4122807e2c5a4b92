"""Persistence — append-only audit log and state snapshots."""

from cycledrop.persistence.event_log import EventKind, EventLog, EventRecord
from cycledrop.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]
