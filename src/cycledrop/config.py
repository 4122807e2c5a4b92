"""Configuration loading — program files and chain connectivity.

Program parameters live in a JSON file:

    {
      "token": "0x...",
      "root_setter": "0x...",
      "start_utc": "2026-11-01T00:00:00+00:00",
      "cycle_duration_days": 30,
      "total_pool": "100000000000000000000000000",
      "claim_window_days": 60,              (optional)
      "root_setting_window_days": 14,       (optional)
      "min_remaining": "50000000000000000000000",  (optional)
      "program_duration_days": 3650         (optional)
    }

Amounts are decimal strings so they survive JSON tooling that loses
integer precision. Chain connectivity comes from the environment,
loaded from a ``.env`` file when one is present. So is the root-setting
principal's signing key, from which the CLI derives its caller address.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from cycledrop.errors import ConfigurationError
from cycledrop.models.program import (
    CLAIM_WINDOW,
    MIN_REMAINING,
    PROGRAM_DURATION,
    ROOT_SETTING_WINDOW,
    ProgramConfig,
)

ENV_RPC_URL = "CYCLEDROP_RPC_URL"
ENV_PRIVATE_KEY = "CYCLEDROP_PRIVATE_KEY"
ENV_CHAIN_ID = "CYCLEDROP_CHAIN_ID"
ENV_ROOT_SETTER_KEY = "CYCLEDROP_ROOT_SETTER_KEY"

DEFAULT_CHAIN_ID = 11155111  # Sepolia


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def program_config_from_mapping(data: dict[str, Any]) -> ProgramConfig:
    """Build a ProgramConfig from a parsed program file."""
    try:
        start = datetime.fromisoformat(data["start_utc"])
        return ProgramConfig(
            token=data["token"],
            root_setter=data["root_setter"],
            start_utc=start,
            cycle_duration=timedelta(days=data["cycle_duration_days"]),
            total_pool=int(data["total_pool"]),
            claim_window=_days(data, "claim_window_days", CLAIM_WINDOW),
            root_setting_window=_days(data, "root_setting_window_days", ROOT_SETTING_WINDOW),
            min_remaining=int(data.get("min_remaining", MIN_REMAINING)),
            program_duration=_days(data, "program_duration_days", PROGRAM_DURATION),
        )
    except KeyError as e:
        raise ConfigurationError(f"Program file missing field: {e.args[0]}") from e
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid program file: {e}") from e


def load_program_config(path: Path) -> ProgramConfig:
    if not path.exists():
        raise ConfigurationError(f"Program file not found: {path}")
    return program_config_from_mapping(load_json(path))


def _days(data: dict[str, Any], key: str, default: timedelta) -> timedelta:
    if key not in data:
        return default
    return timedelta(days=data[key])


@dataclass(frozen=True)
class ChainSettings:
    """Connectivity for the on-chain token gateway."""
    rpc_url: str
    private_key: str
    chain_id: int = DEFAULT_CHAIN_ID

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "ChainSettings":
        """Read settings from the environment, after loading ``env_file``.

        Raises ConfigurationError if the RPC URL or key is missing.
        """
        load_dotenv(env_file)
        rpc_url = os.getenv(ENV_RPC_URL)
        private_key = os.getenv(ENV_PRIVATE_KEY)
        if not rpc_url or not private_key:
            raise ConfigurationError(
                f"Missing {ENV_RPC_URL} and/or {ENV_PRIVATE_KEY} in environment or .env"
            )
        chain_id = os.getenv(ENV_CHAIN_ID)
        try:
            return cls(
                rpc_url=rpc_url,
                private_key=private_key,
                chain_id=int(chain_id) if chain_id else DEFAULT_CHAIN_ID,
            )
        except ValueError as e:
            raise ConfigurationError(f"{ENV_CHAIN_ID} must be an integer: {chain_id}") from e


def signer_address(
    env_var: str = ENV_ROOT_SETTER_KEY,
    env_file: Optional[Path] = None,
) -> str:
    """Address controlled by the private key in ``env_var``.

    Commands that act for a principal take their identity from a key the
    operator holds, never from a typed-in address. Raises
    ConfigurationError if the key is missing or unusable.
    """
    from eth_account import Account

    load_dotenv(env_file)
    key = os.getenv(env_var)
    if not key:
        raise ConfigurationError(f"Missing {env_var} in environment or .env")
    try:
        return Account.from_key(key).address
    except Exception as e:
        raise ConfigurationError(f"{env_var} does not hold a usable private key: {e}") from e
