"""Distributor error taxonomy.

Every rule violation raises a subclass of DistributorError. Each class
carries a stable ``code`` so the service layer and CLI can report the
failure cause without parsing messages.

Taxonomy:
    ConfigurationError        construction-time only, fatal
    UnauthorizedError         caller is not the root-setting principal
    StateConflictError        write-once guard tripped (root or claim flag)
    WindowError               operation outside its temporal window
    CapacityError             amount or funding limits
    InvalidRootError          empty/zero digest supplied as a commitment
    RootNotSetError           claim against a cycle with no published root
    InvalidProofError         malformed or non-matching inclusion proof
    ReentrancyError           nested invocation during an in-flight claim
    TransferFailedError       payout refused by the token gateway
    PayoutPendingError        payout sent, outcome unknown; not rolled back

No error is retried internally. A failed operation leaves all state
exactly as it was before the call, except PayoutPendingError: the
tokens may already be on their way, so the claim stays recorded.
"""

from __future__ import annotations

from typing import Optional


class DistributorError(ValueError):
    """Base class for every distributor rule violation."""

    code = "distributor_error"


class ConfigurationError(DistributorError):
    code = "configuration_error"


class UnauthorizedError(DistributorError):
    code = "unauthorized"


class StateConflictError(DistributorError):
    code = "state_conflict"


class RootAlreadySetError(StateConflictError):
    code = "root_already_set"


class AlreadyClaimedError(StateConflictError):
    code = "already_claimed"


class WindowError(DistributorError):
    code = "window_error"


class CycleNotStartedError(WindowError):
    code = "cycle_not_started"


class RootWindowClosedError(WindowError):
    code = "root_window_closed"


class ClaimWindowClosedError(WindowError):
    code = "claim_window_closed"


class CapacityError(DistributorError):
    code = "capacity_error"


class ZeroAmountError(CapacityError):
    code = "zero_amount"


class PoolExhaustedError(CapacityError):
    code = "pool_exhausted"


class ExceedsDistributableError(CapacityError):
    code = "exceeds_distributable"


class PoolCeilingExceededError(CapacityError):
    code = "pool_ceiling_exceeded"


class InsufficientBalanceError(CapacityError):
    code = "insufficient_balance"


class InvalidRootError(DistributorError):
    code = "invalid_root"


class RootNotSetError(DistributorError):
    code = "root_not_set"


class InvalidProofError(DistributorError):
    code = "invalid_proof"


class ReentrancyError(DistributorError, RuntimeError):
    code = "reentrancy"


class TransferFailedError(DistributorError):
    code = "transfer_failed"


class PayoutPendingError(DistributorError):
    """Payout broadcast but not confirmed; the claim stays committed."""

    code = "payout_pending"

    def __init__(self, message: str, tx_hash: Optional[str] = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
