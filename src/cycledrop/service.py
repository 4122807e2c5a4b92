"""Distributor service — unified facade for programmatic and CLI access.

Wraps a MerkleDistributor and:
- Converts rule violations into typed ServiceResult failures.
- Persists a state snapshot after every committed operation.
- Reports program status as a plain dict.

Persistence happens after the audit event has been written. A failed
snapshot write never rolls back a committed operation (for claims the
tokens have already moved); it marks the service as degraded and
returns a warning. The next open replays the event log over the stale
snapshot, so no committed root or claim is lost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from cycledrop.crypto.encoding import DigestLike, digest_hex
from cycledrop.distribution.distributor import MerkleDistributor
from cycledrop.errors import ConfigurationError, DistributorError, PayoutPendingError
from cycledrop.models.program import ProgramConfig
from cycledrop.persistence.event_log import EventLog
from cycledrop.persistence.state_store import StateStore
from cycledrop.token.gateway import TokenGateway

logger = logging.getLogger("cycledrop.service")


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


def _failure(e: Exception) -> ServiceResult:
    code = getattr(e, "code", "invalid_input")
    return ServiceResult(success=False, errors=[str(e)], data={"code": code})


class DistributorService:
    """Usage:
        service = DistributorService.open(config, token, data_dir=Path("data"))
        result = service.set_merkle_root(0, root, caller=setter)
        result = service.claim(0, 100, proof, caller=alice)
        print(service.status())
    """

    def __init__(
        self,
        distributor: MerkleDistributor,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._distributor = distributor
        self._state_store = state_store
        self._persistence_degraded = False

    @classmethod
    def open(
        cls,
        config: ProgramConfig,
        token: TokenGateway,
        data_dir: Optional[Path] = None,
        now: Optional[datetime] = None,
    ) -> "DistributorService":
        """Create a new program, or resume the one persisted in ``data_dir``.

        A persisted snapshot whose configuration differs from ``config``
        is refused rather than silently replaced. On resume, roots and
        claims found in the event log but missing from the snapshot are
        replayed and the repaired snapshot is written back. An event log
        without a snapshot is rebuilt the same way from an empty state.
        """
        if data_dir is None:
            return cls(MerkleDistributor(config, token, now=now))

        store = StateStore(data_dir / "state.json")
        event_log = EventLog(storage_path=data_dir / "events.jsonl")
        stored_config, state = store.load()
        if stored_config is None and event_log.count == 0:
            distributor = MerkleDistributor(config, token, event_log=event_log, now=now)
            service = cls(distributor, store)
            store.save(config, distributor.state)
            return service

        if stored_config is not None and stored_config != config:
            raise ConfigurationError(
                f"Program in {data_dir} was created with a different configuration"
            )
        distributor = MerkleDistributor(
            config, token, state=state, event_log=event_log, now=now
        )
        if distributor.recover_from_log() or stored_config is None:
            store.save(config, distributor.state)
            logger.warning(f"Repaired {store.path} from {event_log.count} logged events")
        logger.info(f"Resumed program from {store.path}")
        return cls(distributor, store)

    @property
    def distributor(self) -> MerkleDistributor:
        return self._distributor

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def set_merkle_root(
        self,
        cycle: int,
        root: DigestLike,
        caller: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            publication = self._distributor.set_merkle_root(cycle, root, caller, now=now)
        except (DistributorError, TypeError, ValueError) as e:
            return _failure(e)

        data: dict[str, Any] = {
            "cycle": publication.cycle,
            "root": digest_hex(publication.root),
            "setter": publication.setter,
        }
        warning = self._safe_persist_post_audit()
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def claim(
        self,
        cycle: int,
        amount: int,
        proof: list[DigestLike],
        caller: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        try:
            receipt = self._distributor.claim(cycle, amount, proof, caller, now=now)
        except PayoutPendingError as e:
            # The claim stays committed; the snapshot must record it.
            result = _failure(e)
            warning = self._safe_persist_post_audit()
            if warning:
                result.data["warning"] = warning
            result.data["tx_hash"] = e.tx_hash
            return result
        except (DistributorError, TypeError, ValueError) as e:
            return _failure(e)
        except OSError:
            # Paid but not audited: keep the snapshot in step with memory.
            self._safe_persist_post_audit()
            raise

        data: dict[str, Any] = {
            "cycle": receipt.cycle,
            "recipient": receipt.recipient,
            "amount": receipt.amount,
            "event_id": receipt.event_id,
            "remaining_distributable": self._distributor.remaining_distributable(),
        }
        warning = self._safe_persist_post_audit()
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def has_claimed(self, cycle: int, recipient: str) -> bool:
        return self._distributor.has_claimed(cycle, recipient)

    def status(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Snapshot of every read-only query, for display."""
        if now is None:
            now = datetime.now(timezone.utc)
        d = self._distributor
        cycle = d.current_cycle(now)
        root = d.get_root(cycle)
        return {
            "now_utc": now.isoformat(),
            "current_cycle": cycle,
            "cycle_start_utc": d.cycle_start(cycle).isoformat(),
            "cycle_end_utc": d.cycle_end(cycle).isoformat(),
            "planned_end_utc": d.planned_end().isoformat(),
            "current_root": digest_hex(root) if root is not None else None,
            "roots_published": len(d.state.roots),
            "total_pool": str(d.config.total_pool),
            "total_claimed": str(d.total_claimed()),
            "remaining_pool": str(d.remaining_pool()),
            "remaining_distributable": str(d.remaining_distributable()),
            "distributor_balance": str(d.distributor_balance()),
            "exhausted": d.is_exhausted(),
            "events": d.event_log.count,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after the audit event has been written.

        MUST NOT roll back in-memory state. On failure, sets the
        degraded flag and returns a warning string.
        """
        if self._state_store is None:
            return None
        try:
            self._state_store.save(self._distributor.config, self._distributor.state)
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error(f"State snapshot write failed: {e}")
            return f"Persistence degraded: {e}; operation committed in audit trail but state snapshot is stale"
