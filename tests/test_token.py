"""Tests for token gateways — in-memory ledger and the ERC20 gateway."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from web3.exceptions import TimeExhausted

from cycledrop.crypto.merkle import MerkleTree
from cycledrop.distribution.distributor import MerkleDistributor
from cycledrop.errors import AlreadyClaimedError, PayoutPendingError
from cycledrop.models.program import ProgramConfig
from cycledrop.token.gateway import InMemoryToken, TokenGateway
from cycledrop.token.web3_gateway import Web3TokenGateway

DISTRIBUTOR = "0x7777777777777777777777777777777777777777"
ALICE = "0x1111111111111111111111111111111111111111"
TOKEN = "0x5555555555555555555555555555555555555555"
SETTER = "0x9999999999999999999999999999999999999999"
PRIVATE_KEY = "0x" + "4c" * 32
TX_HASH = "0x" + "12" * 32


class TestInMemoryToken:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryToken(holder=DISTRIBUTOR), TokenGateway)

    def test_mint_and_transfer(self) -> None:
        token = InMemoryToken(holder=DISTRIBUTOR)
        token.mint(DISTRIBUTOR, 500)
        assert token.transfer(ALICE.lower(), 200)
        assert token.balance_of(DISTRIBUTOR) == 300
        assert token.balance_of(ALICE) == 200
        assert token.total_supply == 500
        assert token.transfers == [(ALICE, 200)]

    def test_insufficient_balance_refused(self) -> None:
        token = InMemoryToken(holder=DISTRIBUTOR)
        token.mint(DISTRIBUTOR, 10)
        assert not token.transfer(ALICE, 11)
        assert token.balance_of(DISTRIBUTOR) == 10

    def test_injected_failures(self) -> None:
        token = InMemoryToken(holder=DISTRIBUTOR)
        token.mint(DISTRIBUTOR, 10)
        token.fail_transfers = True
        assert not token.transfer(ALICE, 1)
        token.fail_transfers = False
        token.raise_on_transfer = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            token.transfer(ALICE, 1)
        assert token.balance_of(ALICE) == 0

    def test_callback_runs_after_balance_move(self) -> None:
        token = InMemoryToken(holder=DISTRIBUTOR)
        token.mint(DISTRIBUTOR, 10)
        seen: list[int] = []
        token.on_transfer = lambda to, amount: seen.append(token.balance_of(to))
        token.transfer(ALICE, 4)
        assert seen == [4]

    def test_mint_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            InMemoryToken(holder=DISTRIBUTOR).mint(ALICE, 0)


class _FakeCall:
    def __init__(self, value=None, tx=None) -> None:
        self._value = value
        self._tx = tx

    def call(self):
        return self._value

    def build_transaction(self, params: dict) -> dict:
        tx = dict(params)
        tx.update(self._tx)
        return tx


class _FakeWeb3:
    """Just enough of a Web3 client to drive the gateway offline."""

    def __init__(self, balance: int, status: int = 1, receipt_error=None) -> None:
        self.sent: list[bytes] = []
        self.balance_queries: list[str] = []
        self.transfers: list[tuple[str, int]] = []

        def balance_of(account: str) -> _FakeCall:
            self.balance_queries.append(account)
            return _FakeCall(value=balance)

        def transfer(to: str, amount: int) -> _FakeCall:
            self.transfers.append((to, amount))
            return _FakeCall(tx={"to": TOKEN, "value": 0, "data": "0xa9059cbb"})

        contract = SimpleNamespace(
            functions=SimpleNamespace(balanceOf=balance_of, transfer=transfer)
        )

        def send_raw_transaction(raw: bytes) -> bytes:
            self.sent.append(bytes(raw))
            return b"\x12" * 32

        def wait_for_transaction_receipt(tx_hash, timeout: int) -> dict:
            if receipt_error is not None:
                raise receipt_error
            return {"status": status, "blockNumber": 123}

        self.eth = SimpleNamespace(
            contract=lambda address, abi: contract,
            get_transaction_count=lambda address: 7,
            send_raw_transaction=send_raw_transaction,
            wait_for_transaction_receipt=wait_for_transaction_receipt,
        )

    @staticmethod
    def to_wei(value: str, unit: str) -> int:
        assert unit == "gwei"
        return int(value) * 10**9


class TestWeb3TokenGateway:
    def _gateway(self, fake: _FakeWeb3) -> Web3TokenGateway:
        return Web3TokenGateway(
            rpc_url="http://localhost:8545",
            token_address=TOKEN,
            private_key=PRIVATE_KEY,
            chain_id=1337,
            web3=fake,
        )

    def test_holder_is_key_address(self) -> None:
        gateway = self._gateway(_FakeWeb3(balance=0))
        assert gateway.holder.startswith("0x")
        assert len(gateway.holder) == 42

    def test_balance_of(self) -> None:
        fake = _FakeWeb3(balance=1_000)
        gateway = self._gateway(fake)
        assert gateway.balance_of(ALICE.lower()) == 1_000
        assert fake.balance_queries == [ALICE]

    def test_successful_transfer(self) -> None:
        fake = _FakeWeb3(balance=1_000)
        gateway = self._gateway(fake)
        assert gateway.transfer(ALICE, 250)
        assert fake.transfers == [(ALICE, 250)]
        assert len(fake.sent) == 1
        record = gateway.transfer_records[0]
        assert record.succeeded
        assert record.block_number == 123
        assert record.amount == 250
        assert record.tx_hash == TX_HASH

    def test_reverted_transfer_reports_failure(self) -> None:
        gateway = self._gateway(_FakeWeb3(balance=1_000, status=0))
        assert not gateway.transfer(ALICE, 250)
        assert not gateway.transfer_records[0].succeeded

    @pytest.mark.parametrize(
        "error", [TimeExhausted("not mined after 300s"), ConnectionError("connection reset")]
    )
    def test_missing_receipt_is_pending(self, error: Exception) -> None:
        fake = _FakeWeb3(balance=1_000, receipt_error=error)
        gateway = self._gateway(fake)
        with pytest.raises(PayoutPendingError) as info:
            gateway.transfer(ALICE, 250)
        assert info.value.tx_hash == TX_HASH
        assert len(fake.sent) == 1
        assert gateway.transfer_records == []

    def test_receipt_timeout_keeps_claim_committed(self) -> None:
        fake = _FakeWeb3(balance=1_000, receipt_error=TimeExhausted("not mined after 300s"))
        gateway = self._gateway(fake)
        start = datetime.now(timezone.utc) + timedelta(days=1)
        config = ProgramConfig(
            token=TOKEN,
            root_setter=SETTER,
            start_utc=start,
            cycle_duration=timedelta(days=30),
            total_pool=1_000,
            min_remaining=100,
        )
        distributor = MerkleDistributor(config, gateway, now=start - timedelta(hours=1))
        tree = MerkleTree()
        tree.add_allocation(ALICE, 250)
        distributor.set_merkle_root(0, tree.compute_root(), caller=SETTER, now=start)
        proof = tree.inclusion_proof(ALICE).path

        with pytest.raises(PayoutPendingError):
            distributor.claim(0, 250, proof, caller=ALICE, now=start)
        assert distributor.has_claimed(0, ALICE)
        with pytest.raises(AlreadyClaimedError):
            distributor.claim(0, 250, proof, caller=ALICE, now=start)
        assert len(fake.sent) == 1
