"""
Validator module builders.

Each builder turns an owner description into the ``Module`` the account
installs, with init data laid out exactly as the validator contract decodes
it. Mock signatures have the same length and shape as real ones and are used
for gas estimation.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from aakit.core.codec import (
    ZERO_ADDRESS,
    concat,
    encode_abi,
    encode_packed,
    int_to_bytes,
    normalize_address,
)
from aakit.core.exceptions import ConfigurationError
from aakit.core.types import (
    EcdsaOwners,
    Module,
    ModuleKind,
    MultiFactorOwners,
    OwnerSet,
    PasskeyOwners,
    WebAuthnCredential,
)
from aakit.signing.passkeys import mock_webauthn_signature

OWNABLE_VALIDATOR_ADDRESS = "0x000000000013fdb5234e4e3162a810f54d9f7e98"
WEBAUTHN_VALIDATOR_ADDRESS = "0x0000000000578c4cB0e472a5462da43C495C3F33"
MULTI_FACTOR_VALIDATOR_ADDRESS = "0xf6bDf42c9BE18cEcA5C06c42A43DAf7FBbe7896b"
SOCIAL_RECOVERY_VALIDATOR_ADDRESS = "0xA04D053b3C8021e8D5bF641816c42dAA75D8b597"

ECDSA_MOCK_SIGNATURE = bytes.fromhex(
    "81d4b4981670cb18f99f0b4a66446df1bf5b204d24cfcb659bf38ba27a4359b5"
    "711649ec2423c5e1247245eba2964679b6a1dbb85c992ae40b9b00c6935b02ff1b"
)

_MULTI_FACTOR_ENTRY = "(bytes32,bytes)[]"


def ownable_validator(threshold: int, owners: Iterable[str], address: str = OWNABLE_VALIDATOR_ADDRESS) -> Module:
    """Ownable validator: abi.encode(uint256 threshold, address[] owners).

    Owners are lowercased and sorted ascending; the contract stores them as a
    sorted linked list and rejects unsorted input.
    """
    sorted_owners = sorted(normalize_address(owner).lower() for owner in owners)
    return Module(
        address=normalize_address(address),
        kind=ModuleKind.VALIDATOR,
        init_data=encode_abi(["uint256", "address[]"], [threshold, sorted_owners]),
    )


def webauthn_validator(
    threshold: int,
    credentials: Sequence[WebAuthnCredential],
    address: str = WEBAUTHN_VALIDATOR_ADDRESS,
) -> Module:
    """WebAuthn validator: abi.encode(uint256 threshold, (uint256 x, uint256 y, bool requireUV)[])."""
    if not credentials:
        raise ConfigurationError("WebAuthn validator needs at least one credential")
    return Module(
        address=normalize_address(address),
        kind=ModuleKind.VALIDATOR,
        init_data=encode_abi(
            ["uint256", "(uint256,uint256,bool)[]"],
            [
                threshold,
                [(c.x, c.y, c.require_user_verification) for c in credentials],
            ],
        ),
    )


def packed_validator_and_id(validator_id: int, validator_address: str) -> bytes:
    """bytes32 = 12-byte positional id ++ 20-byte validator address."""
    return concat(int_to_bytes(validator_id, 12), normalize_address(validator_address))


def multi_factor_validator(threshold: int, sub_validators: Sequence[Optional[OwnerSet]]) -> Module:
    """Multi-factor validator: encodePacked(uint8 threshold, abi.encode((bytes32, bytes)[])).

    ``None`` entries are left out of the init data but keep their index, so
    ids stay stable. Signatures still carry an empty entry for them.
    """
    entries = []
    for index, owners in enumerate(sub_validators):
        if owners is None:
            continue
        module = validator_for(owners)
        entries.append((packed_validator_and_id(index, module.address), module.init_data))
    return Module(
        address=MULTI_FACTOR_VALIDATOR_ADDRESS,
        kind=ModuleKind.VALIDATOR,
        init_data=encode_packed(
            ["uint8", "bytes"],
            [threshold, encode_abi([_MULTI_FACTOR_ENTRY], [entries])],
        ),
    )


def social_recovery_validator(guardians: Iterable[str], threshold: int = 1) -> Module:
    guardian_addresses = sorted((normalize_address(g) for g in guardians), key=str.lower)
    return Module(
        address=SOCIAL_RECOVERY_VALIDATOR_ADDRESS,
        kind=ModuleKind.VALIDATOR,
        init_data=encode_abi(["uint256", "address[]"], [threshold, guardian_addresses]),
    )


def validator_for(owners: OwnerSet) -> Module:
    """Return the validator module verifying signatures of ``owners``."""
    if isinstance(owners, EcdsaOwners):
        return ownable_validator(owners.threshold, owners.addresses)
    if isinstance(owners, PasskeyOwners):
        return webauthn_validator(1, [owners.credential])
    if isinstance(owners, MultiFactorOwners):
        return multi_factor_validator(owners.threshold, owners.sub_validators)
    raise ConfigurationError(f"Unsupported owner set: {type(owners).__name__}")


def mock_signature(owners: OwnerSet) -> bytes:
    """Stub signature with the size and layout of a real one."""
    if isinstance(owners, EcdsaOwners):
        return ECDSA_MOCK_SIGNATURE * len(owners.accounts)
    if isinstance(owners, PasskeyOwners):
        return mock_webauthn_signature(owners.credential)
    if isinstance(owners, MultiFactorOwners):
        entries = []
        for index, sub in enumerate(owners.sub_validators):
            if sub is None:
                entries.append((packed_validator_and_id(index, ZERO_ADDRESS), b""))
                continue
            entries.append(
                (packed_validator_and_id(index, validator_for(sub).address), mock_signature(sub))
            )
        return encode_abi([_MULTI_FACTOR_ENTRY], [entries])
    raise ConfigurationError(f"Unsupported owner set: {type(owners).__name__}")

