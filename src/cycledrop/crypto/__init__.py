"""Cryptographic primitives — leaf encoding, sorted-pair Merkle trees, proof verification."""

from cycledrop.crypto.encoding import hash_pair, leaf_hash
from cycledrop.crypto.merkle import MerkleProof, MerkleTree, verify_proof

__all__ = ["MerkleProof", "MerkleTree", "hash_pair", "leaf_hash", "verify_proof"]
