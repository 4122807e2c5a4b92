"""Reward token access — the balance/transfer gateway and its implementations."""

from cycledrop.token.gateway import InMemoryToken, TokenGateway

__all__ = ["InMemoryToken", "TokenGateway"]
