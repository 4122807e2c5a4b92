"""Merkle distributor — cycle-based, proof-gated reward claims.

Per cycle, the root-setting principal publishes a Merkle root over an
off-chain allocation table. Recipients claim their own allocation by
presenting an inclusion proof. Unclaimed amounts are never swept; they
stay in the pool for later cycles' tables. The program runs past its
nominal duration until the pool is drawn down to the protected floor.

Claim flow (each step a distinct failure, checked in this order):
    1. amount > 0
    2. (cycle, caller) not yet claimed
    3. a root exists for the cycle
    4. claim window still open
    5. program not exhausted down to the floor
    6. amount fits in the remaining distributable
    7. (caller, amount) proves against the root
    8. cumulative total stays within the pool ceiling
    9. the distributor's token balance covers the payout

Effects are committed before the payout: claim flag, cycle total,
program total. If the gateway refuses or raises, the effects are rolled
back and TransferFailedError is raised, so a failed claim never leaves
partial credit. A payout whose outcome is unknown (PayoutPendingError)
keeps the effects, so a retry is rejected as already claimed. The
claim notification is emitted only after payout.

Every operation runs under a non-reentrant guard. A token that calls
back into the distributor during payout sees the claim flag already set
and is additionally rejected by the guard.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from cycledrop.crypto.encoding import DigestLike, digest_hex, normalize_address, to_digest
from cycledrop.crypto.merkle import verify_proof
from cycledrop.distribution.guard import ReentrancyGuard
from cycledrop.distribution.ledger import ClaimLedger
from cycledrop.distribution.pool import PoolAccountant
from cycledrop.distribution.registry import RootRegistry
from cycledrop.errors import (
    ClaimWindowClosedError,
    ConfigurationError,
    InsufficientBalanceError,
    InvalidProofError,
    PayoutPendingError,
    RootNotSetError,
    TransferFailedError,
)
from cycledrop.models.program import ProgramConfig
from cycledrop.models.state import ClaimReceipt, DistributorState, RootPublication
from cycledrop.persistence.event_log import EventKind, EventLog, EventRecord
from cycledrop.schedule.window_policy import TimeWindowPolicy, check_cycle
from cycledrop.token.gateway import TokenGateway

logger = logging.getLogger("cycledrop.distribution.distributor")


class MerkleDistributor:
    """Orchestrates root publication and claims over one shared state.

    Usage:
        distributor = MerkleDistributor(config, token, now=now)
        distributor.set_merkle_root(0, root, caller=config.root_setter, now=t1)
        receipt = distributor.claim(0, 100, proof, caller=alice, now=t2)

    A new program validates its configuration against ``now`` (start
    must be in the future). Passing an existing ``state`` restores a
    running program and skips the future-start rule.
    """

    def __init__(
        self,
        config: ProgramConfig,
        token: TokenGateway,
        state: Optional[DistributorState] = None,
        event_log: Optional[EventLog] = None,
        now: Optional[datetime] = None,
    ) -> None:
        if token is None:
            raise ConfigurationError("Reward token gateway is required")
        if now is None:
            now = datetime.now(timezone.utc)
        restoring = state is not None
        config.validate(now, require_future_start=not restoring)

        self._config = config
        self._token = token
        self._state = state if restoring else DistributorState()
        self._event_log = event_log if event_log is not None else EventLog()
        self._guard = ReentrancyGuard()

        self._policy = TimeWindowPolicy(config)
        self._registry = RootRegistry(self._state, self._policy, config.root_setter)
        self._ledger = ClaimLedger(self._state)
        self._pool = PoolAccountant(self._state, config.total_pool, config.min_remaining)

    # ------------------------------------------------------------------
    # Root publication
    # ------------------------------------------------------------------

    def set_merkle_root(
        self,
        cycle: int,
        root: DigestLike,
        caller: str,
        now: Optional[datetime] = None,
    ) -> RootPublication:
        """Publish the commitment for ``cycle``. Root-setting principal only."""
        check_cycle(cycle)
        if now is None:
            now = datetime.now(timezone.utc)
        with self._guard.hold("set_merkle_root"):
            try:
                publication = self._registry.set_root(cycle, root, caller, now)
            except ValueError as e:
                logger.warning(f"Root publication for cycle {cycle} rejected: {e}")
                raise
            try:
                self._emit(
                    EventKind.ROOT_PUBLISHED,
                    actor_id=publication.setter,
                    payload={
                        "cycle": cycle,
                        "root": digest_hex(publication.root),
                        "setter": publication.setter,
                    },
                    now=now,
                )
            except OSError:
                # No audit record, no commitment.
                del self._state.roots[cycle]
                raise
            return publication

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def claim(
        self,
        cycle: int,
        amount: int,
        proof: list[DigestLike],
        caller: str,
        now: Optional[datetime] = None,
    ) -> ClaimReceipt:
        """Claim ``amount`` for ``caller`` in ``cycle``. See module docstring."""
        check_cycle(cycle)
        recipient = normalize_address(caller)
        if now is None:
            now = datetime.now(timezone.utc)

        with self._guard.hold("claim"):
            try:
                self._check_claim(cycle, amount, proof, recipient, now)
            except ValueError as e:
                logger.warning(f"Claim by {recipient} for cycle {cycle} rejected: {e}")
                raise

            self._ledger.record(cycle, recipient, amount)
            self._pool.add(amount)

            try:
                paid = self._token.transfer(recipient, amount)
            except PayoutPendingError as e:
                self._record_pending(cycle, recipient, amount, e, now)
                raise
            except Exception as e:
                self._rollback_claim(cycle, recipient, amount)
                raise TransferFailedError(
                    f"Payout of {amount} to {recipient} raised: {e}"
                ) from e
            if not paid:
                self._rollback_claim(cycle, recipient, amount)
                raise TransferFailedError(f"Payout of {amount} to {recipient} refused by token")

            try:
                event = self._emit(
                    EventKind.CLAIM_COMPLETED,
                    actor_id=recipient,
                    payload={"cycle": cycle, "recipient": recipient, "amount": str(amount)},
                    now=now,
                )
            except OSError:
                # Tokens have moved; the claim stands even without its audit record.
                logger.error(
                    f"Claim paid but audit event not written: cycle {cycle}, "
                    f"{recipient}, amount {amount}"
                )
                raise
            logger.info(f"Claim paid: cycle {cycle}, {recipient}, amount {amount}")
            return ClaimReceipt(
                cycle=cycle,
                recipient=recipient,
                amount=amount,
                claimed_utc=now,
                event_id=event.event_id,
            )

    def _check_claim(
        self,
        cycle: int,
        amount: int,
        proof: list[DigestLike],
        recipient: str,
        now: datetime,
    ) -> None:
        self._pool.check_amount(amount)
        self._ledger.check_not_claimed(cycle, recipient)

        root = self._registry.get_root(cycle)
        if root is None:
            raise RootNotSetError(f"No root published for cycle {cycle}")

        if not self._policy.claim_window_open(cycle, now):
            raise ClaimWindowClosedError(
                f"Claim window for cycle {cycle} closed "
                f"{self._policy.claim_deadline(cycle).isoformat()}"
            )

        self._pool.check_capacity(amount)

        if not verify_proof(root, recipient, amount, proof):
            raise InvalidProofError(
                f"Proof for {recipient} amount {amount} does not match cycle {cycle} root"
            )

        self._pool.check_ceiling(amount)

        balance = self._token.balance_of(self._token.holder)
        if balance < amount:
            raise InsufficientBalanceError(
                f"Distributor balance {balance} cannot cover payout of {amount}"
            )

    def _rollback_claim(self, cycle: int, recipient: str, amount: int) -> None:
        self._pool.rollback(amount)
        self._ledger.rollback(cycle, recipient, amount)
        logger.warning(
            f"Payout to {recipient} for cycle {cycle} failed; claim rolled back"
        )

    def _record_pending(
        self,
        cycle: int,
        recipient: str,
        amount: int,
        error: PayoutPendingError,
        now: datetime,
    ) -> None:
        """Keep the claim committed and log it as pending."""
        logger.error(
            f"Payout to {recipient} for cycle {cycle} unconfirmed "
            f"(tx {error.tx_hash}); claim kept, reconcile on-chain"
        )
        try:
            self._emit(
                EventKind.PAYOUT_PENDING,
                actor_id=recipient,
                payload={
                    "cycle": cycle,
                    "recipient": recipient,
                    "amount": str(amount),
                    "tx_hash": error.tx_hash,
                },
                now=now,
            )
        except OSError as e:
            logger.error(f"Pending payout event not written for {recipient}: {e}")

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def recover_from_log(self) -> int:
        """Apply logged roots and claims that the restored state is missing.

        A snapshot is written after its audit event, so a failed or
        interrupted snapshot write leaves the log ahead. Replaying the
        log restores those roots and claim flags; pending payouts count
        as claims. Returns the number of entries applied. A logged root
        that differs from the restored one raises ConfigurationError.
        """
        applied = 0
        with self._guard.hold("recover_from_log"):
            for event in self._event_log.events():
                payload = event.payload
                cycle = payload["cycle"]
                if event.event_kind == EventKind.ROOT_PUBLISHED:
                    root = to_digest(payload["root"])
                    known = self._registry.get_root(cycle)
                    if known is None:
                        self._state.roots[cycle] = root
                        applied += 1
                    elif known != root:
                        raise ConfigurationError(
                            f"Cycle {cycle} root in state differs from {event.event_id}"
                        )
                    continue

                recipient = normalize_address(payload["recipient"])
                if self._ledger.has_claimed(cycle, recipient):
                    continue
                amount = int(payload["amount"])
                self._ledger.record(cycle, recipient, amount)
                self._pool.add(amount)
                applied += 1
        if applied:
            logger.warning(f"Recovered {applied} logged entries missing from restored state")
        return applied

    def _emit(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict,
        now: datetime,
    ) -> EventRecord:
        event = EventRecord.create(
            event_id=self._event_log.next_event_id(),
            event_kind=kind,
            actor_id=actor_id,
            payload=payload,
            timestamp_utc=now,
        )
        self._event_log.append(event)
        return event

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    @property
    def config(self) -> ProgramConfig:
        return self._config

    @property
    def state(self) -> DistributorState:
        return self._state

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def policy(self) -> TimeWindowPolicy:
        return self._policy

    def current_cycle(self, now: Optional[datetime] = None) -> int:
        return self._policy.current_cycle(now or datetime.now(timezone.utc))

    def cycle_start(self, cycle: int) -> datetime:
        return self._policy.cycle_start(cycle)

    def cycle_end(self, cycle: int) -> datetime:
        return self._policy.cycle_end(cycle)

    def planned_end(self) -> datetime:
        return self._policy.planned_end()

    def get_root(self, cycle: int) -> Optional[bytes]:
        return self._registry.get_root(cycle)

    def total_claimed(self) -> int:
        return self._pool.total_claimed

    def cycle_total(self, cycle: int) -> int:
        return self._ledger.cycle_total(cycle)

    def remaining_pool(self) -> int:
        return self._pool.remaining_pool()

    def remaining_distributable(self) -> int:
        return self._pool.remaining_distributable()

    def distributor_balance(self) -> int:
        return self._token.balance_of(self._token.holder)

    def is_exhausted(self) -> bool:
        return self._pool.is_exhausted()

    def has_claimed(self, cycle: int, recipient: str) -> bool:
        return self._ledger.has_claimed(cycle, normalize_address(recipient))
