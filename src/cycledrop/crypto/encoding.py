"""Leaf and pair encoding shared by the verifier and the tree builder.

The off-chain generator and the distributor must agree bit for bit:

    leaf = keccak256(abi.encodePacked(address recipient, uint256 amount))
    node = keccak256(min(a, b) ++ max(a, b))

Digests are raw 32-byte values. Hex strings are accepted at the edges
and converted immediately.
"""

from __future__ import annotations

from typing import Union

from eth_abi.packed import encode_packed
from eth_utils import is_address, keccak, to_bytes, to_checksum_address

from cycledrop.errors import InvalidProofError

DIGEST_SIZE = 32
ZERO_DIGEST = b"\x00" * DIGEST_SIZE
MAX_UINT256 = 2**256 - 1

DigestLike = Union[bytes, str]


def normalize_address(value: str) -> str:
    """Return the EIP-55 checksum form of an address, or raise ValueError."""
    if not isinstance(value, str) or not is_address(value.strip()):
        raise ValueError(f"Invalid address: {value!r}")
    return to_checksum_address(value.strip())


def to_digest(value: DigestLike) -> bytes:
    """Coerce a 32-byte digest from bytes or hex text."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text.startswith(("0x", "0X")):
            text = "0x" + text
        try:
            raw = to_bytes(hexstr=text)
        except ValueError as e:
            raise ValueError(f"Digest is not valid hex: {value!r}") from e
    else:
        raise TypeError(f"Digest must be bytes or hex str, got {type(value).__name__}")
    if len(raw) != DIGEST_SIZE:
        raise ValueError(f"Digest must be {DIGEST_SIZE} bytes, got {len(raw)}")
    return raw


def digest_hex(digest: bytes) -> str:
    return "0x" + digest.hex()


def leaf_hash(recipient: str, amount: int) -> bytes:
    """Hash one allocation entry the way the generator does."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"Amount must be int, got {type(amount).__name__}")
    if amount < 0 or amount > MAX_UINT256:
        raise ValueError(f"Amount out of uint256 range: {amount}")
    packed = encode_packed(["address", "uint256"], [normalize_address(recipient), amount])
    return keccak(packed)


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Commutative pair hash: the numerically smaller digest goes first."""
    if int.from_bytes(a, "big") <= int.from_bytes(b, "big"):
        return keccak(a + b)
    return keccak(b + a)


def proof_to_digests(proof: list[DigestLike]) -> list[bytes]:
    """Convert proof elements, reporting malformed input as a proof error."""
    digests: list[bytes] = []
    for i, element in enumerate(proof):
        try:
            digests.append(to_digest(element))
        except (TypeError, ValueError) as e:
            raise InvalidProofError(f"Malformed proof element {i}: {e}") from e
    return digests
