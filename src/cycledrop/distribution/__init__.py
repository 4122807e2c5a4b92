"""Distribution subsystem — root registry, claim ledger, pool accounting, orchestration."""

from cycledrop.distribution.distributor import MerkleDistributor
from cycledrop.distribution.guard import ReentrancyGuard
from cycledrop.distribution.ledger import ClaimLedger
from cycledrop.distribution.pool import PoolAccountant
from cycledrop.distribution.registry import RootRegistry

__all__ = [
    "ClaimLedger",
    "MerkleDistributor",
    "PoolAccountant",
    "ReentrancyGuard",
    "RootRegistry",
]
