"""Data models — program configuration, distributor state, operation receipts."""

from cycledrop.models.program import ProgramConfig
from cycledrop.models.state import ClaimReceipt, DistributorState, RootPublication

__all__ = ["ClaimReceipt", "DistributorState", "ProgramConfig", "RootPublication"]
