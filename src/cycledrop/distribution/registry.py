"""Root registry — one write-once commitment per cycle.

Only the configured root-setting principal may publish, and only while
the cycle's root-setting window is open. Publishing before the cycle
starts is rejected so an allocation cannot be committed before it could
have been computed; publishing after the grace window is rejected so
commitments cannot arrive indefinitely late.

Once set, a root is never overwritten or cleared.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from cycledrop.crypto.encoding import ZERO_DIGEST, DigestLike, digest_hex, normalize_address, to_digest
from cycledrop.errors import (
    CycleNotStartedError,
    InvalidRootError,
    RootAlreadySetError,
    RootWindowClosedError,
    UnauthorizedError,
)
from cycledrop.models.state import DistributorState, RootPublication
from cycledrop.schedule.window_policy import TimeWindowPolicy

logger = logging.getLogger("cycledrop.distribution.registry")


class RootRegistry:
    """Guards the cycle -> root map in the shared distributor state."""

    def __init__(
        self,
        state: DistributorState,
        policy: TimeWindowPolicy,
        root_setter: str,
    ) -> None:
        self._state = state
        self._policy = policy
        self._root_setter = normalize_address(root_setter)

    @property
    def root_setter(self) -> str:
        return self._root_setter

    def get_root(self, cycle: int) -> Optional[bytes]:
        """The committed root for ``cycle``, or None if unset."""
        return self._state.roots.get(cycle)

    def has_root(self, cycle: int) -> bool:
        return cycle in self._state.roots

    def check_set_root(
        self,
        cycle: int,
        root: DigestLike,
        caller: str,
        now: datetime,
    ) -> bytes:
        """Validate a publication without mutating state. Returns the digest."""
        try:
            caller_address = normalize_address(caller)
        except ValueError as e:
            raise UnauthorizedError(f"Caller is not a valid address: {caller!r}") from e
        if caller_address != self._root_setter:
            raise UnauthorizedError(
                f"Only the root-setting principal may publish roots (caller {caller_address})"
            )

        try:
            digest = to_digest(root)
        except (TypeError, ValueError) as e:
            raise InvalidRootError(f"Malformed root: {e}") from e
        if digest == ZERO_DIGEST:
            raise InvalidRootError("Root must not be the empty digest")

        if self.has_root(cycle):
            raise RootAlreadySetError(f"Root already set for cycle {cycle}")

        if now < self._policy.cycle_start(cycle):
            raise CycleNotStartedError(
                f"Cycle {cycle} starts {self._policy.cycle_start(cycle).isoformat()}; "
                "cannot publish its root yet"
            )
        if now > self._policy.root_deadline(cycle):
            raise RootWindowClosedError(
                f"Root-setting window for cycle {cycle} closed "
                f"{self._policy.root_deadline(cycle).isoformat()}"
            )
        return digest

    def set_root(
        self,
        cycle: int,
        root: DigestLike,
        caller: str,
        now: datetime,
    ) -> RootPublication:
        """Publish the root for ``cycle``. Raises on any rule violation."""
        digest = self.check_set_root(cycle, root, caller, now)
        self._state.roots[cycle] = digest
        logger.info(f"Root published for cycle {cycle}: {digest_hex(digest)}")
        return RootPublication(
            cycle=cycle,
            root=digest,
            setter=self._root_setter,
            published_utc=now,
        )
