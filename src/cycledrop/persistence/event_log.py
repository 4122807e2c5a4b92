"""Append-only event log — the durable audit trail of the distributor.

One event per committed root publication or claim, appended after all
state mutation for that operation. A claim whose payout was broadcast
but never confirmed is logged as pending instead of completed.

The log doubles as the externally observable notification stream. The
service replays it on open to repair a snapshot that fell behind.

Each record carries a SHA-256 over its canonical JSON form. Replaying a
JSONL file recomputes every hash, so an edited or duplicated line makes
the whole file unreadable rather than silently accepted.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

logger = logging.getLogger("cycledrop.persistence.event_log")

_HASHED_FIELDS = ("event_id", "event_kind", "timestamp_utc", "actor_id", "payload")


class EventKind(str, enum.Enum):
    """Notifications the distributor emits."""
    ROOT_PUBLISHED = "root_published"
    CLAIM_COMPLETED = "claim_completed"
    PAYOUT_PENDING = "payout_pending"


def _digest(fields: dict[str, Any]) -> str:
    body = json.dumps(
        {name: fields[name] for name in _HASHED_FIELDS},
        sort_keys=True,
        ensure_ascii=False,
    )
    return "sha256:" + hashlib.sha256(body.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class EventRecord:
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @classmethod
    def create(
        cls,
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Build a record and seal it with its hash."""
        stamp = (timestamp_utc or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
        fields = {
            "event_id": event_id,
            "event_kind": event_kind.value,
            "timestamp_utc": stamp,
            "actor_id": actor_id,
            "payload": payload,
        }
        return cls(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=stamp,
            actor_id=actor_id,
            payload=payload,
            event_hash=_digest(fields),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> EventRecord:
        """Rebuild a stored record. Raises ValueError if its hash does not match."""
        expected = _digest(data)
        if data["event_hash"] != expected:
            raise ValueError(
                f"Integrity check failed for {data['event_id']}: "
                f"stored {data['event_hash']}, computed {expected}"
            )
        return cls(
            event_id=data["event_id"],
            event_kind=EventKind(data["event_kind"]),
            timestamp_utc=data["timestamp_utc"],
            actor_id=data["actor_id"],
            payload=data["payload"],
            event_hash=data["event_hash"],
        )


class EventLog:
    """Ordered, append-only sequence of EventRecords.

    In memory by default; pass ``storage_path`` to mirror every append
    to a JSONL file and to replay that file on construction.

    Usage:
        log = EventLog(storage_path=Path("data/events.jsonl"))
        log.append(EventRecord.create(log.next_event_id(), kind, actor, payload))
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._storage_path = storage_path
        self._events: list[EventRecord] = []
        self._ids: set[str] = set()
        if storage_path is not None and storage_path.exists():
            for record in self._replay(storage_path):
                self._remember(record)
            logger.debug(f"Replayed {len(self._events)} events from {storage_path}")

    def append(self, event: EventRecord) -> None:
        """Add ``event`` at the end of the log.

        The file write comes first: if it fails (OSError) the in-memory
        log is left unchanged. A reused event ID raises ValueError.
        """
        if event.event_id in self._ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        if self._storage_path is not None:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            line = json.dumps(event.to_json(), sort_keys=True, ensure_ascii=False)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        self._remember(event)

    def next_event_id(self) -> str:
        return f"evt_{len(self._events) + 1:08d}"

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        return [e for e in self._events if kind is None or e.event_kind == kind]

    def events_for_cycle(
        self,
        cycle: int,
        kind: Optional[EventKind] = None,
    ) -> list[EventRecord]:
        return [e for e in self.events(kind) if e.payload.get("cycle") == cycle]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _remember(self, event: EventRecord) -> None:
        self._events.append(event)
        self._ids.add(event.event_id)

    def _replay(self, path: Path) -> Iterator[EventRecord]:
        seen: set[str] = set()
        with path.open("r", encoding="utf-8") as f:
            for number, raw in enumerate(f, 1):
                if not raw.strip():
                    continue
                try:
                    record = EventRecord.from_json(json.loads(raw))
                except ValueError as e:
                    raise ValueError(f"{path} line {number}: {e}") from e
                if record.event_id in seen:
                    raise ValueError(f"{path} line {number}: Duplicate event ID {record.event_id}")
                seen.add(record.event_id)
                yield record
