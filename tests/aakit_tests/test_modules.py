"""
Tests for the default module setup, on-chain module reads, the attester
registry and EIP-712 hashing.
"""

import pytest
from eth_account.messages import encode_typed_data

from aakit.core.codec import (
    SENTINEL_ADDRESS,
    decode_function_call,
    encode_abi,
    keccak256,
    keccak_text,
)
from aakit.core.exceptions import OwnersRequiredError, UnsupportedForProviderError
from aakit.core.typed_data import Eip712Domain, hash_typed_data
from aakit.core.types import AccountConfig, EcdsaOwners, ModuleKind, ProviderKind, Recovery, Session
from aakit.modules import catalog
from aakit.modules.read import get_owners, get_validators, is_module_installed
from aakit.modules.registry import get_trusted_attesters, trust_attester
from aakit.modules.validators import OWNABLE_VALIDATOR_ADDRESS, SOCIAL_RECOVERY_VALIDATOR_ADDRESS

ACCOUNT = "0x" + "ac" * 20


class TestDefaultSetup:
    """Module set installed at account creation"""

    def test_owner_validator_only(self, make_config):
        setup = catalog.get_default_setup(make_config())
        assert len(setup.validators) == 1
        assert setup.validators[0].address.lower() == OWNABLE_VALIDATOR_ADDRESS.lower()
        assert [m.address for m in setup.executors] == [
            catalog.SAME_CHAIN_EXECUTOR_ADDRESS,
            catalog.TARGET_MODULE_ADDRESS,
            catalog.HOOK_EXECUTOR_ADDRESS,
        ]
        assert len(setup.fallbacks) == 1
        assert setup.attester_threshold == 1
        assert setup.registry == catalog.MODULE_REGISTRY_ADDRESS

    def test_sessions_then_recovery(self, make_config, owner_b, owner_c):
        config = make_config(
            sessions=(Session(owners=EcdsaOwners(accounts=(owner_b,))),),
            recovery=Recovery(guardians=(owner_c,)),
        )
        addresses = [m.address for m in catalog.get_default_setup(config).validators]
        assert addresses[1] == catalog.SMART_SESSIONS_VALIDATOR_ADDRESS
        assert addresses[2] == SOCIAL_RECOVERY_VALIDATOR_ADDRESS

    def test_safe_sessions_add_compatibility_fallback(self, make_config, owner_b):
        sessions = (Session(owners=EcdsaOwners(accounts=(owner_b,))),)
        safe = catalog.get_default_setup(make_config(ProviderKind.SAFE, sessions=sessions))
        nexus = catalog.get_default_setup(make_config(ProviderKind.NEXUS, sessions=sessions))
        assert len(safe.fallbacks) == 2
        assert len(nexus.fallbacks) == 1
        assert safe.fallbacks[1].kind is ModuleKind.FALLBACK

    def test_owners_required(self):
        with pytest.raises(OwnersRequiredError):
            catalog.get_default_setup(AccountConfig(owners=None, provider=ProviderKind.NEXUS))


class TestReads:
    """On-chain module reads"""

    def test_get_owners(self, w3, fake_eth, owner_a):
        fake_eth.respond(OWNABLE_VALIDATOR_ADDRESS, "getOwners(address)", encode_abi(["address[]"], [[owner_a.address]]))
        fake_eth.respond(OWNABLE_VALIDATOR_ADDRESS, "threshold(address)", encode_abi(["uint256"], [1]))
        state = get_owners(w3, ACCOUNT)
        assert state.accounts == [owner_a.address]
        assert state.threshold == 1

    def test_get_validators_pages_from_sentinel(self, w3, fake_eth):
        fake_eth.respond(
            ACCOUNT,
            "getValidatorsPaginated(address,uint256)",
            encode_abi(["address[]", "address"], [[OWNABLE_VALIDATOR_ADDRESS], SENTINEL_ADDRESS]),
        )
        validators = get_validators(w3, ProviderKind.NEXUS, ACCOUNT)
        assert [v.lower() for v in validators] == [OWNABLE_VALIDATOR_ADDRESS.lower()]
        start, page_size = decode_function_call(
            "getValidatorsPaginated(address,uint256)", fake_eth.calls[-1]["data"]
        )
        assert start.lower() == SENTINEL_ADDRESS.lower()
        assert page_size == 100

    def test_kernel_cannot_list_validators(self, w3):
        with pytest.raises(UnsupportedForProviderError):
            get_validators(w3, ProviderKind.KERNEL, ACCOUNT)

    def test_is_module_installed(self, w3, fake_eth, make_config):
        fake_eth.respond(ACCOUNT, "isModuleInstalled(uint256,address,bytes)", encode_abi(["bool"], [True]))
        module = catalog.get_default_setup(make_config()).executors[0]
        assert is_module_installed(w3, ACCOUNT, module)


class TestRegistry:
    """ERC-7484 attester registry"""

    def test_trust_attester_call(self, make_config):
        call = trust_attester(make_config())
        assert call.to.lower() == catalog.MODULE_REGISTRY_ADDRESS.lower()
        threshold, attesters = decode_function_call("trustAttesters(uint8,address[])", call.data)
        assert threshold == 1
        assert [a.lower() for a in attesters] == [
            catalog.RHINESTONE_ATTESTER_ADDRESS.lower(),
            catalog.OMNI_ACCOUNT_MOCK_ATTESTER_ADDRESS.lower(),
        ]

    def test_get_trusted_attesters(self, w3, fake_eth):
        fake_eth.respond(
            catalog.MODULE_REGISTRY_ADDRESS,
            "findTrustedAttesters(address)",
            encode_abi(["address[]"], [[catalog.RHINESTONE_ATTESTER_ADDRESS]]),
        )
        attesters = get_trusted_attesters(w3, catalog.MODULE_REGISTRY_ADDRESS, ACCOUNT)
        assert [a.lower() for a in attesters] == [catalog.RHINESTONE_ATTESTER_ADDRESS.lower()]


class TestTypedData:
    """EIP-712 hashing against eth_account"""

    def test_matches_eth_account(self):
        verifying_contract = "0x" + "12" * 20
        domain = Eip712Domain(name="Kernel", version="0.3.3", chain_id=0, verifying_contract=verifying_contract)
        inner = keccak256(b"inner")
        struct_hash = keccak256(encode_abi(["bytes32", "bytes32"], [keccak_text("Kernel(bytes32 hash)"), inner]))
        signable = encode_typed_data(
            domain_data=domain.to_dict(),
            message_types={"Kernel": [{"name": "hash", "type": "bytes32"}]},
            message_data={"hash": inner},
        )
        assert signable.header == domain.separator()
        assert signable.body == struct_hash
        assert hash_typed_data(domain, struct_hash) == keccak256(b"\x19\x01" + signable.header + signable.body)

    def test_domain_type_skips_unset_fields(self):
        domain = Eip712Domain(chain_id=1, verifying_contract="0x" + "12" * 20)
        assert domain.type_string() == "EIP712Domain(uint256 chainId,address verifyingContract)"
