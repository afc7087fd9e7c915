"""
Default module set installed on every new account.

The owner validator always comes first. Session and recovery validators are
appended in that order; providers that bootstrap spare validators through a
generic init-config array install them strictly in this order.
"""

from __future__ import annotations

import logging
from typing import List

from aakit.core.codec import encode_abi
from aakit.core.exceptions import OwnersRequiredError
from aakit.core.types import AccountConfig, Module, ModuleKind, ModuleSetup, ProviderKind
from aakit.modules.validators import social_recovery_validator, validator_for

logger = logging.getLogger(__name__)

MODULE_REGISTRY_ADDRESS = "0x000000000069E2a187AEFFb852bF3cCdC95151B2"
RHINESTONE_ATTESTER_ADDRESS = "0x000000333034E9f539ce08819E12c1b8Cb29084d"
OMNI_ACCOUNT_MOCK_ATTESTER_ADDRESS = "0x6D0515e8E499468DCe9583626f0cA15b887f9d03"
DEFAULT_ATTESTER_THRESHOLD = 1

SAME_CHAIN_EXECUTOR_ADDRESS = "0x000000000043ff16d5776c7F0f65Ec485C17Ca04"
TARGET_MODULE_ADDRESS = "0x0000000000E5a37279A001301A837a91b5de1D5E"
HOOK_EXECUTOR_ADDRESS = "0x0000000000f6Ed8Be424d673c63eeFF8b9267420"
TARGET_FALLBACK_SELECTOR = bytes.fromhex("3a5be8cb")

SMART_SESSIONS_VALIDATOR_ADDRESS = "0x00000000008bdaba73cd9815d79069c247eb4bda"
SMART_SESSIONS_COMPATIBILITY_FALLBACK_ADDRESS = "0x000000000052e9685932845660777DF43C2dC496"
# eip712Domain() served through a static call
SMART_SESSIONS_FALLBACK_SELECTOR = bytes.fromhex("84b0196e")
CALL_TYPE_SINGLE = b"\x00"
CALL_TYPE_STATIC = b"\xfe"


def fallback_init_data(selector: bytes, call_type: bytes = CALL_TYPE_SINGLE, data: bytes = b"") -> bytes:
    """abi.encode(bytes4 selector, bytes1 callType, bytes data)"""
    return encode_abi(["bytes4", "bytes1", "bytes"], [selector, call_type, data])


def owner_validator(config: AccountConfig) -> Module:
    if config.owners is None:
        raise OwnersRequiredError(details={"provider": config.provider.value, "stage": "setup"})
    return validator_for(config.owners)


def smart_sessions_validator(config: AccountConfig):
    if not config.sessions_enabled:
        return None
    return Module(address=SMART_SESSIONS_VALIDATOR_ADDRESS, kind=ModuleKind.VALIDATOR)


def default_executors() -> List[Module]:
    return [
        Module(address=SAME_CHAIN_EXECUTOR_ADDRESS, kind=ModuleKind.EXECUTOR),
        Module(address=TARGET_MODULE_ADDRESS, kind=ModuleKind.EXECUTOR),
        Module(address=HOOK_EXECUTOR_ADDRESS, kind=ModuleKind.EXECUTOR),
    ]


def default_fallbacks(config: AccountConfig) -> List[Module]:
    fallbacks = [
        Module(
            address=TARGET_MODULE_ADDRESS,
            kind=ModuleKind.FALLBACK,
            init_data=fallback_init_data(TARGET_FALLBACK_SELECTOR),
        )
    ]
    if config.provider is ProviderKind.SAFE and config.sessions_enabled:
        fallbacks.append(
            Module(
                address=SMART_SESSIONS_COMPATIBILITY_FALLBACK_ADDRESS,
                kind=ModuleKind.FALLBACK,
                init_data=fallback_init_data(SMART_SESSIONS_FALLBACK_SELECTOR, CALL_TYPE_STATIC),
            )
        )
    return fallbacks


def get_default_setup(config: AccountConfig) -> ModuleSetup:
    """Build the module set an account installs at creation.

    Args:
        config: Account configuration

    Returns:
        ModuleSetup with the owner validator first

    Raises:
        OwnersRequiredError: If the configuration has no owner set
    """
    validators = [owner_validator(config)]
    session_validator = smart_sessions_validator(config)
    if session_validator is not None:
        validators.append(session_validator)
    if config.recovery is not None:
        validators.append(
            social_recovery_validator(
                [guardian.address for guardian in config.recovery.guardians],
                config.recovery.threshold,
            )
        )

    setup = ModuleSetup(
        validators=tuple(validators),
        executors=tuple(default_executors()),
        fallbacks=tuple(default_fallbacks(config)),
        hooks=(),
        registry=MODULE_REGISTRY_ADDRESS,
        attesters=(RHINESTONE_ATTESTER_ADDRESS, OMNI_ACCOUNT_MOCK_ATTESTER_ADDRESS),
        attester_threshold=DEFAULT_ATTESTER_THRESHOLD,
    )
    logger.debug(
        "Built default module setup",
        extra={
            "event": "modules.default_setup",
            "provider": config.provider.value,
            "validators": len(setup.validators),
            "executors": len(setup.executors),
            "fallbacks": len(setup.fallbacks),
        },
    )
    return setup
