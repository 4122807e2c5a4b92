"""Token gateway — the reward token surface the distributor needs.

The distributor never depends on a concrete token. It needs exactly two
operations: read a holder's balance, and transfer from its own balance
to a recipient. Anything implementing this Protocol can back a program:
an on-chain ERC20 (see web3_gateway) or the in-memory ledger below.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol, runtime_checkable

from cycledrop.crypto.encoding import normalize_address

logger = logging.getLogger("cycledrop.token.gateway")


@runtime_checkable
class TokenGateway(Protocol):
    """Balance/transfer contract for reward token implementations.

    ``transfer`` moves ``amount`` from the gateway's holder (the
    distributor) to ``to`` and returns True on success. Returning False
    or raising both mean the payout did not happen.
    """

    @property
    def holder(self) -> str:
        """Address whose balance funds payouts."""
        ...

    def balance_of(self, holder: str) -> int:
        ...

    def transfer(self, to: str, amount: int) -> bool:
        ...


class InMemoryToken:
    """A fungible ledger held in memory.

    Used for tests and simulations. Failure conditions are injectable:
    ``fail_transfers`` makes transfer return False, ``raise_on_transfer``
    makes it raise, and ``on_transfer`` is invoked after each balance
    move (before returning) so callers can simulate a token that calls
    back into the distributor.

    Usage:
        token = InMemoryToken(holder="0xDistributor...")
        token.mint(token.holder, 1_000_000)
        token.transfer("0xAlice...", 100)
    """

    def __init__(self, holder: str, symbol: str = "RWD") -> None:
        self._holder = normalize_address(holder)
        self.symbol = symbol
        self._balances: dict[str, int] = {}
        self.fail_transfers = False
        self.raise_on_transfer: Optional[Exception] = None
        self.on_transfer: Optional[Callable[[str, int], None]] = None
        self.transfers: list[tuple[str, int]] = []

    @property
    def holder(self) -> str:
        return self._holder

    @property
    def total_supply(self) -> int:
        return sum(self._balances.values())

    def mint(self, to: str, amount: int) -> None:
        if amount <= 0:
            raise ValueError(f"Mint amount must be positive, got {amount}")
        address = normalize_address(to)
        self._balances[address] = self._balances.get(address, 0) + amount

    def balance_of(self, holder: str) -> int:
        return self._balances.get(normalize_address(holder), 0)

    def transfer(self, to: str, amount: int) -> bool:
        if self.raise_on_transfer is not None:
            raise self.raise_on_transfer
        if self.fail_transfers:
            logger.debug(f"Simulated transfer refusal: {amount} to {to}")
            return False
        recipient = normalize_address(to)
        if amount < 0 or self._balances.get(self._holder, 0) < amount:
            return False
        self._balances[self._holder] -= amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        self.transfers.append((recipient, amount))
        if self.on_transfer is not None:
            self.on_transfer(recipient, amount)
        return True
