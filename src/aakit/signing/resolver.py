"""
Signer resolution and recursive signing.

An ``OwnerSet`` describes who controls an account; a ``SignerSet`` is the
executable form used to produce a signature for a hash. Independent keys are
signed concurrently on a thread pool and their signatures joined in listed
order.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Union

from eth_account.messages import encode_defunct, encode_typed_data

from aakit.core import config
from aakit.core.codec import ZERO_ADDRESS, encode_abi, keccak256, to_bytes
from aakit.core.exceptions import ConfigurationError, SigningUnsupportedError
from aakit.core.types import (
    EcdsaOwners,
    MultiFactorOwners,
    OwnerSet,
    PasskeyOwners,
    Session,
)
from aakit.modules.validators import packed_validator_and_id, validator_for
from aakit.signing.passkeys import credential_id, pack_signature

logger = logging.getLogger(__name__)

MAX_SIGNING_WORKERS = 8


@dataclass(frozen=True)
class SigningContext:
    """Chain and account a signature is produced for."""
    chain_id: int
    account_address: str = ZERO_ADDRESS


@dataclass(frozen=True)
class SubValidatorSigners:
    id: int
    owners: OwnerSet


@dataclass(frozen=True)
class OwnerSigners:
    """Signers of the account's owner validator.

    ``kind`` is one of ``"ecdsa"``, ``"passkey"`` or ``"multi-factor"``.
    """
    kind: str
    accounts: Tuple[Any, ...] = ()
    passkey: Optional[Any] = None
    sub_validators: Tuple[Optional[SubValidatorSigners], ...] = ()


@dataclass(frozen=True)
class SessionSigners:
    session: Session


@dataclass(frozen=True)
class GuardianSigners:
    accounts: Tuple[Any, ...]


SignerSet = Union[OwnerSigners, SessionSigners, GuardianSigners]


def convert(owners: OwnerSet) -> OwnerSigners:
    """Project an owner set onto the signers that act for it."""
    if isinstance(owners, EcdsaOwners):
        return OwnerSigners(kind="ecdsa", accounts=owners.accounts)
    if isinstance(owners, PasskeyOwners):
        return OwnerSigners(kind="passkey", passkey=owners.account)
    if isinstance(owners, MultiFactorOwners):
        return OwnerSigners(
            kind="multi-factor",
            sub_validators=tuple(
                None if sub is None else SubValidatorSigners(id=index, owners=sub)
                for index, sub in enumerate(owners.sub_validators)
            ),
        )
    raise ConfigurationError(f"Unsupported owner set: {type(owners).__name__}")


def sign_ecdsa(account: Any, hash: bytes) -> bytes:
    """Personal-sign the raw 32-byte hash with a local key.

    Raises:
        SigningUnsupportedError: If the key cannot sign messages
    """
    sign_message = getattr(account, "sign_message", None)
    if not callable(sign_message):
        raise SigningUnsupportedError(details={"stage": "sign"})
    signed = sign_message(encode_defunct(primitive=to_bytes(hash)))
    return bytes(signed.signature)


def sign_ecdsa_typed_data(account: Any, typed_data: Dict[str, Any]) -> bytes:
    """EIP-712 sign a full typed-data message with a local key.

    Raises:
        SigningUnsupportedError: If the key cannot sign typed data
    """
    sign_fn = getattr(account, "sign_typed_data", None)
    if not callable(sign_fn):
        raise SigningUnsupportedError(details={"stage": "sign_typed_data"})
    return bytes(sign_fn(full_message=typed_data).signature)


def typed_data_hash(typed_data: Dict[str, Any]) -> bytes:
    """EIP-712 digest of a full typed-data message."""
    signable = encode_typed_data(full_message=typed_data)
    return keccak256(b"\x19" + signable.version + signable.header + signable.body)


def _sign_all(accounts: Sequence[Any], sign_one: Callable[[Any], bytes]) -> bytes:
    if len(accounts) == 1:
        return sign_one(accounts[0])
    workers = min(MAX_SIGNING_WORKERS, len(accounts))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="aakit-sign") as executor:
        signatures = list(executor.map(sign_one, accounts))
    return b"".join(signatures)


def sign_ecdsa_all(accounts: Sequence[Any], hash: bytes) -> bytes:
    return _sign_all(accounts, lambda account: sign_ecdsa(account, hash))


def sign_passkey(passkey: Any, hash: bytes, context: SigningContext) -> bytes:
    sign_fn = getattr(passkey, "sign", None)
    if not callable(sign_fn):
        raise SigningUnsupportedError(details={"stage": "sign"})
    assertion = sign_fn(to_bytes(hash))
    use_precompile = context.chain_id in config.p256_precompile_chain_ids()
    return pack_signature(
        [credential_id(passkey.credential, context.account_address)],
        use_precompile,
        [assertion],
    )


def empty_validator_entry(validator_id: int) -> Tuple[bytes, bytes]:
    """Multi-factor entry of an unset slot: zero validator, empty signature."""
    return packed_validator_and_id(validator_id, ZERO_ADDRESS), b""


def _sign_multi_factor(signers: OwnerSigners, sign_sub: Callable[[SignerSet], bytes]) -> bytes:
    # one entry per slot, so ids and positions line up with the installed validators
    entries = []
    for index, sub in enumerate(signers.sub_validators):
        if sub is None:
            entries.append(empty_validator_entry(index))
            continue
        signature = sign_sub(convert(sub.owners))
        entries.append((packed_validator_and_id(sub.id, validator_for(sub.owners).address), signature))
    return encode_abi(["(bytes32,bytes)[]"], [entries])


def _sign_with(
    signers: SignerSet,
    context: SigningContext,
    sign_one: Callable[[Any], bytes],
    digest: bytes,
) -> bytes:
    """Walk the signer tree. ECDSA keys go through ``sign_one``; passkeys sign ``digest``."""
    if isinstance(signers, OwnerSigners):
        if signers.kind == "ecdsa":
            return _sign_all(signers.accounts, sign_one)
        if signers.kind == "passkey":
            return sign_passkey(signers.passkey, digest, context)
        if signers.kind == "multi-factor":
            return _sign_multi_factor(signers, lambda sub: _sign_with(sub, context, sign_one, digest))
        raise ConfigurationError(f"Unsupported owner kind: {signers.kind}")
    if isinstance(signers, SessionSigners):
        return _sign_with(convert(signers.session.owners), context, sign_one, digest)
    if isinstance(signers, GuardianSigners):
        return _sign_all(signers.accounts, sign_one)
    raise ConfigurationError(f"Unsupported signer set: {type(signers).__name__}")


def sign(signers: SignerSet, hash: bytes, context: SigningContext) -> bytes:
    """Sign ``hash`` with every signer in the set.

    Args:
        signers: Executable signer set
        hash: 32-byte digest to sign
        context: Chain and account the signature is bound to

    Returns:
        Raw validator signature (not yet wrapped for the provider)

    Raises:
        SigningUnsupportedError: If a key exposes no signing capability
    """
    return _sign_with(signers, context, lambda account: sign_ecdsa(account, hash), hash)


def sign_typed_data(signers: SignerSet, typed_data: Dict[str, Any], context: SigningContext) -> bytes:
    """Sign an EIP-712 message with every signer in the set.

    ECDSA keys sign the typed data itself; passkeys sign its EIP-712 digest.
    """
    return _sign_with(
        signers,
        context,
        lambda account: sign_ecdsa_typed_data(account, typed_data),
        typed_data_hash(typed_data),
    )
