"""
aakit configuration

All settings come from environment variables with safe defaults. Values are
read once at import; the getter helpers re-read the environment so tests and
long-running processes can override them.
"""

from __future__ import annotations

import logging
import os
from enum import Enum

from aakit.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Environment(Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def get_int_setting(env_var: str, default: int) -> int:
    """Read an integer setting.

    Raises:
        ConfigurationError: If the variable is set but not an integer
    """
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{env_var} must be an integer, got {raw!r}",
            details={"env_var": env_var, "stage": "config"},
        ) from exc


def get_float_setting(env_var: str, default: float) -> float:
    """Read a non-negative float setting.

    Raises:
        ConfigurationError: If the variable is set but not a non-negative number
    """
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{env_var} must be a number, got {raw!r}",
            details={"env_var": env_var, "stage": "config"},
        ) from exc
    if value < 0:
        raise ConfigurationError(
            f"{env_var} must not be negative",
            details={"env_var": env_var, "stage": "config"},
        )
    return value


def get_chain_id_list(env_var: str) -> frozenset[int]:
    ids = set()
    for item in os.getenv(env_var, "").split(","):
        item = item.strip()
        if not item:
            continue
        try:
            ids.add(int(item))
        except ValueError:
            logger.warning(
                "Ignoring invalid chain id %r in %s",
                item,
                env_var,
                extra={"event": "config.invalid_chain_id", "env_var": env_var},
            )
    return frozenset(ids)


ENVIRONMENT = os.getenv("AAKIT_ENVIRONMENT", Environment.PRODUCTION.value)
LOG_LEVEL = os.getenv("AAKIT_LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("AAKIT_LOG_FILE", "").strip() or None

DEFAULT_PROVIDER = os.getenv("AAKIT_DEFAULT_PROVIDER", "nexus").strip().lower()

# ERC-4337 v0.7 EntryPoint
ENTRY_POINT_ADDRESS = os.getenv(
    "AAKIT_ENTRY_POINT", "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
)

POLL_INTERVAL_SECONDS = get_float_setting("AAKIT_POLL_INTERVAL_SECONDS", 1.0)
POLL_TIMEOUT_SECONDS = get_float_setting("AAKIT_POLL_TIMEOUT_SECONDS", 180.0)
RECEIPT_TIMEOUT_SECONDS = get_int_setting("AAKIT_RECEIPT_TIMEOUT_SECONDS", 120)

# Chains with the RIP-7212 P-256 precompile
P256_PRECOMPILE_CHAIN_IDS = frozenset(
    {
        10,  # optimism
        11155420,  # optimism sepolia
        137,  # polygon
        80002,  # polygon amoy
        8453,  # base
        84532,  # base sepolia
        42161,  # arbitrum
        421614,  # arbitrum sepolia
    }
)


def p256_precompile_chain_ids() -> frozenset[int]:
    """Allow-list of chains with native P-256 verification, plus configured extras."""
    return P256_PRECOMPILE_CHAIN_IDS | get_chain_id_list("AAKIT_EXTRA_P256_CHAIN_IDS")


if ENVIRONMENT not in {env.value for env in Environment}:
    logger.warning(
        "Unknown AAKIT_ENVIRONMENT %r, logging will tag records with it as-is",
        ENVIRONMENT,
        extra={"event": "config.unknown_environment"},
    )
