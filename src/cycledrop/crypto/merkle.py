"""Sorted-pair Merkle tree over (recipient, amount) allocations.

Uses keccak256 as the hash function. Leaves are sorted before tree
construction so that the same allocation table always yields the same
root regardless of input order. Each internal node hashes its two
children in ascending numeric order, which means proofs carry sibling
digests only, with no left/right position flags.

An odd trailing node at any level is carried up unchanged rather than
paired with itself; its proof simply has no element for that level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cycledrop.crypto.encoding import (
    DigestLike,
    digest_hex,
    hash_pair,
    leaf_hash,
    normalize_address,
    proof_to_digests,
    to_digest,
)
from cycledrop.errors import InvalidProofError

logger = logging.getLogger("cycledrop.crypto.merkle")


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single allocation."""
    recipient: str
    amount: int
    leaf: bytes
    path: list[bytes] = field(default_factory=list)
    root: bytes = b""

    def path_hex(self) -> list[str]:
        return [digest_hex(p) for p in self.path]


class MerkleTree:
    """A deterministic sorted-pair Merkle tree.

    Usage:
        tree = MerkleTree()
        tree.add_allocation("0xAb...", 100)
        tree.add_allocation("0xCd...", 250)
        root = tree.compute_root()
        proof = tree.inclusion_proof("0xAb...")
    """

    def __init__(self) -> None:
        self._allocations: dict[str, int] = {}
        self._tree: list[list[bytes]] = []
        self._leaf_index: dict[bytes, int] = {}
        self._computed = False

    def add_allocation(self, recipient: str, amount: int) -> None:
        """Add one table entry. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        address = normalize_address(recipient)
        if address in self._allocations:
            raise ValueError(f"Duplicate recipient in allocation table: {address}")
        if amount <= 0:
            raise ValueError(f"Allocation amount must be positive, got {amount}")
        leaf_hash(address, amount)  # range check before accepting
        self._allocations[address] = amount

    @property
    def leaf_count(self) -> int:
        return len(self._allocations)

    @property
    def total(self) -> int:
        """Sum of all allocated amounts."""
        return sum(self._allocations.values())

    def compute_root(self) -> bytes:
        """Compute the Merkle root.

        Raises ValueError on an empty table: a zero-leaf tree has no
        meaningful commitment and the distributor rejects empty roots.
        """
        if not self._allocations:
            raise ValueError("Cannot compute root of an empty allocation table")
        if self._computed:
            return self._tree[-1][0]

        leaves = sorted(leaf_hash(a, v) for a, v in self._allocations.items())
        self._tree = [leaves]
        self._leaf_index = {leaf: i for i, leaf in enumerate(leaves)}

        current_level = leaves
        while len(current_level) > 1:
            next_level: list[bytes] = []
            for i in range(0, len(current_level), 2):
                if i + 1 < len(current_level):
                    next_level.append(hash_pair(current_level[i], current_level[i + 1]))
                else:
                    next_level.append(current_level[i])
            self._tree.append(next_level)
            current_level = next_level

        self._computed = True
        logger.debug(
            f"Computed root {digest_hex(current_level[0])} over {len(leaves)} leaves"
        )
        return current_level[0]

    def inclusion_proof(self, recipient: str) -> MerkleProof | None:
        """Generate an inclusion proof for a recipient.

        Returns None if the recipient is not in the table.
        Must call compute_root first.
        """
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")

        address = normalize_address(recipient)
        amount = self._allocations.get(address)
        if amount is None:
            return None

        leaf = leaf_hash(address, amount)
        idx = self._leaf_index[leaf]
        path: list[bytes] = []
        for level in self._tree[:-1]:
            sibling_idx = idx ^ 1
            if sibling_idx < len(level):
                path.append(level[sibling_idx])
            idx //= 2

        return MerkleProof(
            recipient=address,
            amount=amount,
            leaf=leaf,
            path=path,
            root=self._tree[-1][0],
        )

    def claims_document(self) -> dict:
        """Export the table in the JSON shape claimants consume."""
        root = self.compute_root()
        claims: dict[str, dict] = {}
        for address in sorted(self._allocations):
            proof = self.inclusion_proof(address)
            claims[address] = {
                "amount": str(proof.amount),
                "leaf": digest_hex(proof.leaf),
                "proof": proof.path_hex(),
            }
        return {
            "root": digest_hex(root),
            "total": str(self.total),
            "claims": claims,
        }


def compute_root_from_proof(leaf: bytes, proof: list[DigestLike]) -> bytes:
    """Fold a leaf through its sibling path and return the implied root."""
    current = leaf
    for sibling in proof_to_digests(proof):
        current = hash_pair(current, sibling)
    return current


def verify_proof(
    root: DigestLike,
    recipient: str,
    amount: int,
    proof: list[DigestLike],
) -> bool:
    """Check that (recipient, amount) is included under root.

    Returns False for any mismatch. Malformed proof elements raise
    InvalidProofError, malformed recipients or amounts raise ValueError.
    """
    expected = to_digest(root)
    try:
        leaf = leaf_hash(recipient, amount)
    except TypeError as e:
        raise InvalidProofError(str(e)) from e
    return compute_root_from_proof(leaf, proof) == expected
