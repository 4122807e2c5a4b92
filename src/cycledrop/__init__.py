"""cycledrop — cycle-based Merkle reward distribution with a rolling pool."""

__version__ = "0.1.0"
