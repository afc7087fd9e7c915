"""
On-chain reads of installed modules and owners.

Reads go through ``w3.eth.call`` with calldata built by the codec, so any
``Web3`` instance (or a mock exposing ``eth.call``) works.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from web3 import Web3
from web3.exceptions import ContractLogicError

from aakit.core.codec import (
    SENTINEL_ADDRESS,
    decode_abi,
    encode_function_call,
    normalize_address,
)
from aakit.core.exceptions import UnsupportedForProviderError
from aakit.core.types import Module, ProviderKind
from aakit.modules.validators import OWNABLE_VALIDATOR_ADDRESS

logger = logging.getLogger(__name__)

VALIDATOR_PAGE_SIZE = 100


@dataclass(frozen=True)
class OwnerState:
    accounts: List[str]
    threshold: int


def read_contract(
    w3: Web3,
    address: str,
    signature: str,
    args: Sequence[Any],
    output_types: Sequence[str],
) -> tuple:
    """Call a view function and decode its return data."""
    data = encode_function_call(signature, args)
    result = w3.eth.call({"to": normalize_address(address), "data": "0x" + data.hex()})
    return decode_abi(output_types, bytes(result))


def get_code(w3: Web3, address: str) -> bytes:
    return bytes(w3.eth.get_code(normalize_address(address)) or b"")


def get_owners(w3: Web3, account: str) -> Optional[OwnerState]:
    """Read ECDSA owners and threshold from the ownable validator.

    Returns:
        OwnerState, or None when the validator is not set up for the account
    """
    try:
        (owners,) = read_contract(
            w3, OWNABLE_VALIDATOR_ADDRESS, "getOwners(address)", [account], ["address[]"]
        )
        (threshold,) = read_contract(
            w3, OWNABLE_VALIDATOR_ADDRESS, "threshold(address)", [account], ["uint256"]
        )
    except ContractLogicError as exc:
        logger.info(
            "Ownable validator read reverted",
            extra={"event": "modules.owners_unavailable", "account": account, "error": str(exc)},
        )
        return None
    return OwnerState(accounts=[normalize_address(owner) for owner in owners], threshold=threshold)


def get_validators(w3: Web3, provider: ProviderKind, account: str) -> List[str]:
    """List installed validators through ``getValidatorsPaginated``.

    Raises:
        UnsupportedForProviderError: For Kernel accounts, which do not expose the listing
    """
    if provider is ProviderKind.KERNEL:
        raise UnsupportedForProviderError("Validator listing", provider.value)
    validators, _next = read_contract(
        w3,
        account,
        "getValidatorsPaginated(address,uint256)",
        [SENTINEL_ADDRESS, VALIDATOR_PAGE_SIZE],
        ["address[]", "address"],
    )
    return [normalize_address(v) for v in validators]


def is_module_installed(w3: Web3, account: str, module: Module) -> bool:
    (installed,) = read_contract(
        w3,
        account,
        "isModuleInstalled(uint256,address,bytes)",
        [int(module.kind), module.address, module.additional_context],
        ["bool"],
    )
    return bool(installed)
