"""
Social recovery.

Guardians approve a batch of calls that rewrites the account's owners. The
builders here read the current owner state and emit the minimal sequence of
validator calls that reaches the requested state.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple, Union

from web3 import Web3

from aakit.accounts import facade
from aakit.actions.owners import (
    add_owner,
    add_passkey_owner,
    change_passkey_threshold,
    change_threshold,
    remove_owner,
    remove_passkey_owner,
)
from aakit.core.codec import SENTINEL_ADDRESS
from aakit.core.exceptions import ModuleNotInstalledError
from aakit.core.types import AccountConfig, Call, EcdsaOwners, WebAuthnCredential
from aakit.modules.read import get_owners, read_contract
from aakit.modules.validators import WEBAUTHN_VALIDATOR_ADDRESS, social_recovery_validator

logger = logging.getLogger(__name__)

CredentialKey = Tuple[int, int]


def enable_recovery(config: AccountConfig, guardians: Sequence[str], threshold: int = 1) -> List[Call]:
    """Install calls for the social-recovery validator with ``guardians``."""
    return facade.module_install_calls(config, social_recovery_validator(guardians, threshold))


def recover_ecdsa_ownership(w3: Web3, account: str, new_owners: EcdsaOwners) -> List[Call]:
    """Calls that replace the account's ECDSA owners and threshold.

    Owners are added first, so removals never drop below the threshold.
    The ownable validator inserts new owners at the head of its linked list;
    the tracked list mirrors that to find each removed owner's predecessor.

    Raises:
        ModuleNotInstalledError: If the account's ownable validator cannot be read
    """
    state = get_owners(w3, account)
    if state is None:
        raise ModuleNotInstalledError(
            "Failed to read existing owners or threshold",
            details={"stage": "recovery", "account": account},
        )
    existing = [owner.lower() for owner in state.accounts]
    wanted = sorted(address.lower() for address in new_owners.addresses)

    calls: List[Call] = []
    if state.threshold != new_owners.threshold:
        calls.append(change_threshold(new_owners.threshold))

    current = list(existing)
    for owner in wanted:
        if owner in existing:
            continue
        calls.append(add_owner(owner))
        current.insert(0, owner)

    for owner in existing:
        if owner in wanted:
            continue
        index = current.index(owner)
        prev_owner = SENTINEL_ADDRESS if index == 0 else current[index - 1]
        calls.append(remove_owner(prev_owner, owner))
        current.remove(owner)

    logger.info(
        "Built ECDSA recovery calls",
        extra={"event": "recovery.ecdsa", "account": account, "calls": len(calls)},
    )
    return calls


def _credential_key(credential: Union[WebAuthnCredential, CredentialKey]) -> CredentialKey:
    if isinstance(credential, WebAuthnCredential):
        return credential.x, credential.y
    x, y = credential
    return int(x), int(y)


def recover_passkey_ownership(
    w3: Web3,
    account: str,
    old_credentials: Sequence[Union[WebAuthnCredential, CredentialKey]],
    new_credentials: Sequence[WebAuthnCredential],
    threshold: int = 1,
) -> List[Call]:
    """Calls that replace the account's passkeys.

    Old credentials are removed before new ones are added.
    """
    (existing_threshold,) = read_contract(
        w3, WEBAUTHN_VALIDATOR_ADDRESS, "threshold(address)", [account], ["uint256"]
    )
    calls: List[Call] = []
    if existing_threshold != threshold:
        calls.append(change_passkey_threshold(threshold))

    old_keys = [_credential_key(credential) for credential in old_credentials]
    new_keys = [_credential_key(credential) for credential in new_credentials]

    for x, y in old_keys:
        if (x, y) not in new_keys:
            calls.append(remove_passkey_owner(x, y))
    for credential in new_credentials:
        if (credential.x, credential.y) not in old_keys:
            calls.append(add_passkey_owner(credential.x, credential.y, credential.require_user_verification))

    logger.info(
        "Built passkey recovery calls",
        extra={"event": "recovery.passkey", "account": account, "calls": len(calls)},
    )
    return calls
