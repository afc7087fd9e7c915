"""
Nexus accounts.

The factory deploys an ERC-1967 proxy and calls ``initializeAccount`` with the
bootstrap delegatecall that installs the default modules and configures the
attester registry. Nexus is the only provider that also runs as an EIP-7702
delegate of an EOA.
"""

from __future__ import annotations

import logging
from typing import List

from aakit.accounts.base import ProviderAdapter, install_module_data, packed_validator_signature
from aakit.core.codec import (
    ZERO_ADDRESS,
    address_bytes,
    concat,
    create2_address,
    decode_abi,
    decode_function_call,
    encode_abi,
    encode_function_call,
    int_to_bytes,
    keccak256,
    same_address,
)
from aakit.core.typed_data import Eip712Domain
from aakit.core.types import (
    AccountConfig,
    Call,
    DeployArgs,
    ExternalInitData,
    ModuleSetup,
    ProviderKind,
    ValidatorConfig,
)
from aakit.modules.catalog import get_default_setup

logger = logging.getLogger(__name__)

NEXUS_IMPLEMENTATION_ADDRESS = "0x000000004f43c49e93c970e84001853a70923b03"
NEXUS_FACTORY_ADDRESS = "0x000000001D1D5004a02bAfAb9de2D6CE5b7B13de"
NEXUS_BOOTSTRAP_ADDRESS = "0x00000000D3254452a909E4eeD47455Af7E27C289"
K1_MEE_VALIDATOR_ADDRESS = "0x00000000d12897ddadc2044614a9677b191a2d95"
NEXUS_VERSION = "1.2.0"

NEXUS_CREATION_CODE = bytes.fromhex(
    "60806040526102aa803803806100148161018c565b928339810160408282031261018857"
    "81516001600160a01b03811692909190838303610188576020810151906001600160401b"
    "03821161018857019281601f8501121561018857835161006e610069826101c5565b6101"
    "8c565b9481865260208601936020838301011161018857815f926020809301865e860101"
    "5260017f90b772c2cb8a51aa7a8a65fc23543c6d022d5b3f8e2b92eed79fba7eef829300"
    "5d823b15610176577f360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca"
    "505d382bbc80546001600160a01b031916821790557fbc7cd75a20ee27fd9adebab32041"
    "f755214dbc6bffa90cc0225b39da2e5c2d3b5f80a282511561015e575f80916101469451"
    "90845af43d15610156573d91610137610069846101c5565b9283523d5f602085013e6101"
    "e0565b505b604051606b908161023f8239f35b6060916101e0565b505050341561014857"
    "63b398979f60e01b5f5260045ffd5b634c9c8ce360e01b5f5260045260245ffd5b5f80fd"
    "5b6040519190601f01601f191682016001600160401b038111838210176101b157604052"
    "565b634e487b7160e01b5f52604160045260245ffd5b6001600160401b0381116101b157"
    "601f01601f191660200190565b9061020457508051156101f557805190602001fd5b63d6"
    "bda27560e01b5f5260045ffd5b81511580610235575b610215575090565b639996b31560"
    "e01b5f9081526001600160a01b0391909116600452602490fd5b50803b1561020d56fe60"
    "806040523615605c575f8073ffffffffffffffffffffffffffffffffffffffff7f360894"
    "a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc54163682803781"
    "36915af43d5f803e156058573d5ff35b3d5ffd5b00fea164736f6c634300081b000a")

CREATE_ACCOUNT = "createAccount(bytes,bytes32)"
INITIALIZE_ACCOUNT = "initializeAccount(bytes)"
INIT_NEXUS = (
    "initNexus((address,bytes)[],(address,bytes)[],(address,bytes),(address,bytes)[],"
    "(uint256,address,bytes)[],(address,address[],uint8))"
)
SET_REGISTRY = "setRegistry(address,address[],uint8)"

# max value of the 3-byte nonce key prefix
NONCE_KEY_MODULUS = 16777215


def module_inits(modules):
    return [(m.address, m.init_data) for m in modules]


class NexusAdapter(ProviderAdapter):
    """Nexus and the bootstrap-based accounts derived from it."""

    kind = ProviderKind.NEXUS
    implementation = NEXUS_IMPLEMENTATION_ADDRESS
    factory = NEXUS_FACTORY_ADDRESS
    bootstrap = NEXUS_BOOTSTRAP_ADDRESS
    creation_code = NEXUS_CREATION_CODE
    default_validator = K1_MEE_VALIDATOR_ADDRESS
    eip712_name = "Nexus"
    eip712_version = NEXUS_VERSION

    def bootstrap_call(self, setup: ModuleSetup) -> bytes:
        return encode_function_call(
            INIT_NEXUS,
            [
                module_inits(setup.validators),
                module_inits(setup.executors),
                (ZERO_ADDRESS, b""),
                module_inits(setup.fallbacks),
                [],
                (setup.registry, list(setup.attesters), setup.attester_threshold),
            ],
        )

    def salt(self, config: AccountConfig) -> bytes:
        return keccak256(b"")

    def _deploy_args(self, init_data: bytes, salt: bytes) -> DeployArgs:
        initialization_call_data = encode_function_call(INITIALIZE_ACCOUNT, [init_data])
        account_init_data = encode_abi(["address", "bytes"], [self.implementation, initialization_call_data])
        return DeployArgs(
            factory=self.factory,
            factory_data=encode_function_call(CREATE_ACCOUNT, [init_data, salt]),
            salt=salt,
            implementation=self.implementation,
            initialization_call_data=initialization_call_data,
            hashed_initcode=keccak256(concat(self.creation_code, account_init_data)),
        )

    def build_deploy_args(self, config: AccountConfig) -> DeployArgs:
        setup = get_default_setup(config)
        init_data = encode_abi(["address", "bytes"], [self.bootstrap, self.bootstrap_call(setup)])
        return self._deploy_args(init_data, self.salt(config))

    def imported_deploy_args(self, init_data: ExternalInitData) -> DeployArgs:
        if not same_address(init_data.factory, self.factory):
            raise self.unsupported_init_data(f"unknown factory {init_data.factory}")
        try:
            account_init_data, salt = decode_function_call(CREATE_ACCOUNT, init_data.factory_data)
            bootstrap, _ = decode_abi(["address", "bytes"], account_init_data)
        except ValueError as exc:
            raise self.unsupported_init_data("factory data is not createAccount(bytes,bytes32)") from exc
        if not same_address(bootstrap, self.bootstrap):
            raise self.unsupported_init_data(f"unknown bootstrap {bootstrap}")
        return self._deploy_args(account_init_data, salt)

    def address_from_deploy_args(self, args: DeployArgs) -> str:
        return create2_address(args.factory, args.salt, args.hashed_initcode)

    def signing_validator_address(self, validator: ValidatorConfig) -> str:
        if same_address(validator.address, self.default_validator):
            return ZERO_ADDRESS
        return validator.address

    def wrap_signature(self, signature: bytes, validator: ValidatorConfig) -> bytes:
        return packed_validator_signature(self.signing_validator_address(validator), signature)

    def nonce_key(self, validator_address: str, key: int = 0, is_root: bool = True) -> int:
        # uint24 key ++ validation mode 0x00 ++ validator, the default validator routes as zero
        validator = self.signing_validator_address(ValidatorConfig(address=validator_address))
        return int.from_bytes(
            int_to_bytes(key % NONCE_KEY_MODULUS, 3) + b"\x00" + address_bytes(validator),
            "big",
        )

    def eip712_domain(self, config: AccountConfig, chain_id: int) -> Eip712Domain:
        return Eip712Domain(
            name=self.eip712_name,
            version=self.eip712_version,
            chain_id=chain_id,
            verifying_contract=self.address(config),
        )

    # ---- EIP-7702 ----

    def delegation_implementation(self) -> str:
        return self.implementation

    def delegation_init_calls(self, config: AccountConfig) -> List[Call]:
        """Calls the delegated EOA runs on itself to reach the default setup."""
        eoa = self.require_delegate(config).address
        setup = get_default_setup(config)
        calls = [
            Call(
                to=eoa,
                data=encode_function_call(
                    SET_REGISTRY,
                    [setup.registry, list(setup.attesters), setup.attester_threshold],
                ),
            )
        ]
        for module in setup.validators + setup.executors + setup.fallbacks:
            calls.append(Call(to=eoa, data=install_module_data(module)))
        logger.debug(
            "Built EIP-7702 init calls",
            extra={"event": "account.delegation_init_calls", "provider": self.kind.value, "calls": len(calls)},
        )
        return calls
