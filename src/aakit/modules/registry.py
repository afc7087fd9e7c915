"""Attester registry (ERC-7484) calls."""

from __future__ import annotations

from typing import List

from web3 import Web3

from aakit.core.codec import encode_function_call, normalize_address
from aakit.core.types import AccountConfig, Call, ModuleSetup
from aakit.modules.catalog import get_default_setup
from aakit.modules.read import read_contract


def trust_attesters_call(setup: ModuleSetup) -> Call:
    """Call making the account trust the setup's attesters at its threshold."""
    return Call(
        to=normalize_address(setup.registry),
        data=encode_function_call(
            "trustAttesters(uint8,address[])",
            [setup.attester_threshold, list(setup.attesters)],
        ),
    )


def get_trusted_attesters(w3: Web3, registry: str, account: str) -> List[str]:
    (attesters,) = read_contract(
        w3, registry, "findTrustedAttesters(address)", [account], ["address[]"]
    )
    return [normalize_address(a) for a in attesters]


def trust_attester(config: AccountConfig) -> Call:
    """``trustAttesters`` call for the default attesters of ``config``."""
    return trust_attesters_call(get_default_setup(config))
