"""
Owner-management calls for the ECDSA, WebAuthn and multi-factor validators.

Direct validator calls (``add_owner``, ``set_sub_validator``, ...) are sent
from the account to the validator. Enabling or disabling a validator goes
through the account's module installation and depends on the provider.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from aakit.accounts import facade
from aakit.core.codec import encode_function_call, int_to_bytes
from aakit.core.types import AccountConfig, Call, OwnerSet, WebAuthnCredential
from aakit.modules.validators import (
    MULTI_FACTOR_VALIDATOR_ADDRESS,
    OWNABLE_VALIDATOR_ADDRESS,
    WEBAUTHN_VALIDATOR_ADDRESS,
    multi_factor_validator,
    ownable_validator,
    validator_for,
    webauthn_validator,
)

# placeholder credential; uninstalling ignores the validator's init data
_PLACEHOLDER_CREDENTIAL = WebAuthnCredential(
    id="",
    x=0x580A9AF0569AD3905B26A703201B358AA0904236642EBE79B22A19D00D373763,
    y=0x7D46F725A5427AE45A9569259BF67E1E16B187D7B3AD1ED70138C4F0409677D1,
)


# ==================== ECDSA ====================


def enable_ecdsa(config: AccountConfig, owners: Sequence[str], threshold: int = 1) -> List[Call]:
    return facade.module_install_calls(config, ownable_validator(threshold, owners))


def disable_ecdsa(config: AccountConfig) -> List[Call]:
    return facade.module_uninstall_calls(config, ownable_validator(1, []))


def add_owner(owner: str) -> Call:
    return Call(to=OWNABLE_VALIDATOR_ADDRESS, data=encode_function_call("addOwner(address)", [owner]))


def remove_owner(prev_owner: str, owner: str) -> Call:
    """Unlink ``owner``; ``prev_owner`` is its predecessor in the validator's owner list."""
    return Call(
        to=OWNABLE_VALIDATOR_ADDRESS,
        data=encode_function_call("removeOwner(address,address)", [prev_owner, owner]),
    )


def change_threshold(threshold: int) -> Call:
    return Call(to=OWNABLE_VALIDATOR_ADDRESS, data=encode_function_call("setThreshold(uint256)", [threshold]))


# ==================== Passkeys ====================


def enable_passkeys(config: AccountConfig, credential: WebAuthnCredential) -> List[Call]:
    return facade.module_install_calls(config, webauthn_validator(1, [credential]))


def disable_passkeys(config: AccountConfig) -> List[Call]:
    return facade.module_uninstall_calls(config, webauthn_validator(1, [_PLACEHOLDER_CREDENTIAL]))


def add_passkey_owner(x: int, y: int, require_user_verification: bool = False) -> Call:
    return Call(
        to=WEBAUTHN_VALIDATOR_ADDRESS,
        data=encode_function_call(
            "addCredential(uint256,uint256,bool)", [x, y, require_user_verification]
        ),
    )


def remove_passkey_owner(x: int, y: int) -> Call:
    return Call(
        to=WEBAUTHN_VALIDATOR_ADDRESS,
        data=encode_function_call("removeCredential(uint256,uint256)", [x, y]),
    )


def change_passkey_threshold(threshold: int) -> Call:
    return Call(to=WEBAUTHN_VALIDATOR_ADDRESS, data=encode_function_call("setThreshold(uint256)", [threshold]))


# ==================== Multi-factor ====================


def enable_multi_factor(
    config: AccountConfig,
    sub_validators: Sequence[Optional[OwnerSet]],
    threshold: int = 1,
) -> List[Call]:
    return facade.module_install_calls(config, multi_factor_validator(threshold, sub_validators))


def disable_multi_factor(config: AccountConfig) -> List[Call]:
    return facade.module_uninstall_calls(config, multi_factor_validator(1, []))


def set_sub_validator(validator_id: int, owners: OwnerSet) -> Call:
    """Install or replace the sub-validator stored under ``validator_id``."""
    module = validator_for(owners)
    return Call(
        to=MULTI_FACTOR_VALIDATOR_ADDRESS,
        data=encode_function_call(
            "setValidator(address,bytes12,bytes)",
            [module.address, int_to_bytes(validator_id, 12), module.init_data],
        ),
    )


def remove_sub_validator(validator_id: int, owners: OwnerSet) -> Call:
    module = validator_for(owners)
    return Call(
        to=MULTI_FACTOR_VALIDATOR_ADDRESS,
        data=encode_function_call(
            "removeValidator(address,bytes12)",
            [module.address, int_to_bytes(validator_id, 12)],
        ),
    )


def change_multi_factor_threshold(threshold: int) -> Call:
    return Call(
        to=MULTI_FACTOR_VALIDATOR_ADDRESS,
        data=encode_function_call("setThreshold(uint8)", [threshold]),
    )
