"""ERC20 token gateway over an Ethereum JSON-RPC endpoint.

Reads balances with ``balanceOf`` and pays out with a signed
``transfer`` transaction from the distributor's custody account, then
waits for one confirmation. A reverted transaction (receipt status 0)
is reported as a failed transfer, never as success. A broadcast
transaction with no receipt is pending, not failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from eth_utils import to_hex

from cycledrop.crypto.encoding import normalize_address
from cycledrop.errors import PayoutPendingError

logger = logging.getLogger("cycledrop.token.web3_gateway")

ERC20_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


@dataclass(frozen=True)
class TransferRecord:
    """A confirmed on-chain payout."""
    to: str
    amount: int
    tx_hash: str
    block_number: int
    succeeded: bool


class Web3TokenGateway:
    """TokenGateway backed by an ERC20 contract.

    Usage:
        gateway = Web3TokenGateway(rpc_url, token_address, private_key)
        gateway.balance_of(gateway.holder)
        gateway.transfer("0xAlice...", 100)

    Args:
        rpc_url: Ethereum RPC endpoint URL.
        token_address: ERC20 contract address.
        private_key: Hex-encoded key of the account holding the pool.
        chain_id: Network chain ID (default: 11155111 = Sepolia).
        gas: Gas limit for transfer transactions.
        gas_price_gwei: Gas price in gwei.
        receipt_timeout: Seconds to wait for a confirmation.
        web3: Pre-built Web3 instance (tests inject a provider here).
    """

    def __init__(
        self,
        rpc_url: str,
        token_address: str,
        private_key: str,
        chain_id: int = 11155111,
        gas: int = 100_000,
        gas_price_gwei: str = "2",
        receipt_timeout: int = 300,
        web3: Optional[Any] = None,
    ) -> None:
        from web3 import Web3, HTTPProvider
        from eth_account import Account

        self._w3 = web3 if web3 is not None else Web3(HTTPProvider(rpc_url))
        self._account = Account.from_key(private_key)
        self._contract = self._w3.eth.contract(
            address=normalize_address(token_address),
            abi=ERC20_ABI,
        )
        self._chain_id = chain_id
        self._gas = gas
        self._gas_price_gwei = gas_price_gwei
        self._receipt_timeout = receipt_timeout
        self._records: list[TransferRecord] = []

    @property
    def holder(self) -> str:
        return self._account.address

    @property
    def transfer_records(self) -> list[TransferRecord]:
        return list(self._records)

    def balance_of(self, holder: str) -> int:
        return int(self._contract.functions.balanceOf(normalize_address(holder)).call())

    def transfer(self, to: str, amount: int) -> bool:
        """Send ``amount`` to ``to`` and wait for the receipt.

        Returns False when the transaction reverted. Once the transaction
        has been broadcast, a missing receipt (timeout or a dropped RPC
        connection) raises PayoutPendingError: the payout may still be
        mined, so the caller must not treat it as failed.
        """
        from web3.exceptions import TimeExhausted

        recipient = normalize_address(to)
        nonce = self._w3.eth.get_transaction_count(self._account.address)
        tx = self._contract.functions.transfer(recipient, amount).build_transaction(
            {
                "from": self._account.address,
                "nonce": nonce,
                "gas": self._gas,
                "gasPrice": self._w3.to_wei(self._gas_price_gwei, "gwei"),
                "chainId": self._chain_id,
            }
        )
        signed = self._account.sign_transaction(tx)
        tx_hash = to_hex(self._w3.eth.send_raw_transaction(signed.raw_transaction))
        logger.info(f"Sent transfer of {amount} to {recipient}: {tx_hash}")

        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except (TimeExhausted, OSError) as e:
            logger.error(f"No receipt for transfer {tx_hash} to {recipient}: {e}")
            raise PayoutPendingError(
                f"Transfer {tx_hash} of {amount} to {recipient} broadcast without a receipt",
                tx_hash=tx_hash,
            ) from e

        succeeded = receipt["status"] == 1
        self._records.append(
            TransferRecord(
                to=recipient,
                amount=amount,
                tx_hash=tx_hash,
                block_number=receipt["blockNumber"],
                succeeded=succeeded,
            )
        )
        if not succeeded:
            logger.warning(f"Transfer {tx_hash} reverted in block {receipt['blockNumber']}")
        return succeeded
