"""
Smart-session policies.

Each policy is a deployed contract checking one kind of constraint; a session
references it by address together with the policy's init data. ``encode``
turns a policy description into that ``(address, bytes)`` pair.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Sequence, Tuple, Union

from aakit.core.codec import encode_abi, encode_packed, int_to_bytes, pad_left, to_bytes
from aakit.core.exceptions import ConfigurationError

SUDO_POLICY_ADDRESS = "0x0000003111cD8e92337C100F22B7A9dbf8DEE301"
UNIVERSAL_ACTION_POLICY_ADDRESS = "0x0000006DDA6c463511C4e9B05CFc34C1247fCF1F"
SPENDING_LIMITS_POLICY_ADDRESS = "0x00000088D48cF102A8Cdb0137A9b173f957c6343"
TIME_FRAME_POLICY_ADDRESS = "0x8177451511dE0577b911C254E9551D981C26dc72"
USAGE_LIMIT_POLICY_ADDRESS = "0x1F34eF8311345A3A4a4566aF321b313052F51493"
VALUE_LIMIT_POLICY_ADDRESS = "0x730DA93267E7E513e932301B47F2ac7D062abC83"

MAX_UINT256 = 2**256 - 1
MAX_RULES = 16

_RULE = "(uint8,uint64,bool,bytes32,(uint256,uint256))"
_ACTION_CONFIG = f"(uint256,(uint256,{_RULE}[{MAX_RULES}]))"


class ParamCondition(IntEnum):
    EQUAL = 0
    GREATER_THAN = 1
    LESS_THAN = 2
    GREATER_THAN_OR_EQUAL = 3
    LESS_THAN_OR_EQUAL = 4
    NOT_EQUAL = 5
    IN_RANGE = 6


@dataclass(frozen=True)
class SudoPolicy:
    """Allows everything."""


@dataclass(frozen=True)
class ParamRule:
    condition: ParamCondition
    calldata_offset: int
    reference_value: Union[int, str, bytes]
    usage_limit: Optional[int] = None


@dataclass(frozen=True)
class UniversalActionPolicy:
    """Constrains calldata words of an action with up to 16 rules."""
    rules: Tuple[ParamRule, ...]
    value_limit_per_use: int = MAX_UINT256

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))
        if not self.rules:
            raise ConfigurationError("Universal action policy needs at least one rule")
        if len(self.rules) > MAX_RULES:
            raise ConfigurationError(f"Universal action policy supports at most {MAX_RULES} rules")


@dataclass(frozen=True)
class SpendingLimit:
    token: str
    amount: int


@dataclass(frozen=True)
class SpendingLimitsPolicy:
    limits: Tuple[SpendingLimit, ...]


@dataclass(frozen=True)
class TimeFramePolicy:
    """Validity window. Timestamps are in milliseconds, stored on chain in seconds."""
    valid_until: int
    valid_after: int = 0


@dataclass(frozen=True)
class UsageLimitPolicy:
    limit: int


@dataclass(frozen=True)
class ValueLimitPolicy:
    limit: int


Policy = Union[
    SudoPolicy,
    UniversalActionPolicy,
    SpendingLimitsPolicy,
    TimeFramePolicy,
    UsageLimitPolicy,
    ValueLimitPolicy,
]


def _reference_bytes(value: Union[int, str, bytes]) -> bytes:
    if isinstance(value, int):
        return int_to_bytes(value, 32)
    return pad_left(to_bytes(value), 32)


def _encode_rules(rules: Sequence[ParamRule]) -> list:
    encoded = []
    for rule in rules:
        limited = rule.usage_limit is not None
        encoded.append(
            (
                int(rule.condition),
                rule.calldata_offset,
                limited,
                _reference_bytes(rule.reference_value),
                (rule.usage_limit if limited else 0, 0),
            )
        )
    empty = (0, 0, False, b"\x00" * 32, (0, 0))
    return encoded + [empty] * (MAX_RULES - len(encoded))


def encode(policy: Policy) -> Tuple[str, bytes]:
    """Return the ``(policy address, init data)`` pair for a policy.

    Raises:
        ConfigurationError: If the policy type is unknown
    """
    if isinstance(policy, SudoPolicy):
        return SUDO_POLICY_ADDRESS, b""
    if isinstance(policy, UniversalActionPolicy):
        init_data = encode_abi(
            [_ACTION_CONFIG],
            [(policy.value_limit_per_use, (len(policy.rules), _encode_rules(policy.rules)))],
        )
        return UNIVERSAL_ACTION_POLICY_ADDRESS, init_data
    if isinstance(policy, SpendingLimitsPolicy):
        init_data = encode_abi(
            ["address[]", "uint256[]"],
            [[limit.token for limit in policy.limits], [limit.amount for limit in policy.limits]],
        )
        return SPENDING_LIMITS_POLICY_ADDRESS, init_data
    if isinstance(policy, TimeFramePolicy):
        init_data = encode_packed(
            ["uint128", "uint128"],
            [policy.valid_until // 1000, policy.valid_after // 1000],
        )
        return TIME_FRAME_POLICY_ADDRESS, init_data
    if isinstance(policy, UsageLimitPolicy):
        return USAGE_LIMIT_POLICY_ADDRESS, encode_packed(["uint128"], [policy.limit])
    if isinstance(policy, ValueLimitPolicy):
        return VALUE_LIMIT_POLICY_ADDRESS, encode_abi(["uint256"], [policy.limit])
    raise ConfigurationError(f"Unsupported policy: {type(policy).__name__}")


def encode_all(policies: Sequence[Policy]) -> list:
    """Encode policies, defaulting to sudo when none are given."""
    return [encode(policy) for policy in (policies or (SudoPolicy(),))]
