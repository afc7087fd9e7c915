"""Startale accounts: a Nexus-style proxy with its own bootstrap and a caller-chosen salt."""

from __future__ import annotations

from typing import List

from aakit.accounts.nexus import NexusAdapter, module_inits
from aakit.core.codec import ZERO_ADDRESS, ZERO_HASH, encode_function_call, to_bytes
from aakit.core.exceptions import UnsupportedConfigurationError, UnsupportedForProviderError
from aakit.core.typed_data import Eip712Domain
from aakit.core.types import AccountConfig, Call, ModuleSetup, ProviderKind

K1_DEFAULT_VALIDATOR_ADDRESS = "0x00000072f286204bb934ed49d8969e86f7dec7b1"
STARTALE_VERSION = "1.0.0"

STARTALE_IMPLEMENTATION_ADDRESS = "0x000000b8f5f723a680d3d7ee624fe0bc84a6e05a"
STARTALE_FACTORY_ADDRESS = "0x0000003B3E7b530b4f981aE80d9350392Defef90"
STARTALE_BOOTSTRAP_ADDRESS = "0x000000552A5fAe3Db7a8F3917C435448F49BA6a9"

STARTALE_CREATION_CODE = bytes.fromhex(
    "608060405261029d803803806100148161018c565b928339810160408282031261018857"
    "81516001600160a01b03811692909190838303610188576020810151906001600160401b"
    "03821161018857019281601f8501121561018857835161006e610069826101c5565b6101"
    "8c565b9481865260208601936020838301011161018857815f926020809301865e860101"
    "5260017f754fd8b321c4649cb777ae6fdce7e89e9cceaa31a4f639795c7807eb7f1a2700"
    "5d823b15610176577f360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca"
    "505d382bbc80546001600160a01b031916821790557fbc7cd75a20ee27fd9adebab32041"
    "f755214dbc6bffa90cc0225b39da2e5c2d3b5f80a282511561015e575f80916101469451"
    "90845af43d15610156573d91610137610069846101c5565b9283523d5f602085013e6101"
    "e0565b505b604051605e908161023f8239f35b6060916101e0565b505050341561014857"
    "63b398979f60e01b5f5260045ffd5b634c9c8ce360e01b5f5260045260245ffd5b5f80fd"
    "5b6040519190601f01601f191682016001600160401b038111838210176101b157604052"
    "565b634e487b7160e01b5f52604160045260245ffd5b6001600160401b0381116101b157"
    "601f01601f191660200190565b9061020457508051156101f557805190602001fd5b63d6"
    "bda27560e01b5f5260045ffd5b81511580610235575b610215575090565b639996b31560"
    "e01b5f9081526001600160a01b0391909116600452602490fd5b50803b1561020d56fe60"
    "806040523615605c575f8073ffffffffffffffffffffffffffffffffffffffff7f360894"
    "a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc54163682803781"
    "36915af43d5f803e156058573d5ff35b3d5ffd5b00")

INIT = "init((address,bytes)[],(address,bytes)[],(address,bytes),(address,bytes)[],(uint256,address,bytes)[])"


class StartaleAdapter(NexusAdapter):
    kind = ProviderKind.STARTALE
    implementation = STARTALE_IMPLEMENTATION_ADDRESS
    factory = STARTALE_FACTORY_ADDRESS
    bootstrap = STARTALE_BOOTSTRAP_ADDRESS
    creation_code = STARTALE_CREATION_CODE
    default_validator = K1_DEFAULT_VALIDATOR_ADDRESS
    eip712_name = "Startale"
    eip712_version = STARTALE_VERSION

    def bootstrap_call(self, setup: ModuleSetup) -> bytes:
        # no registry configuration in the Startale bootstrap
        return encode_function_call(
            INIT,
            [
                module_inits(setup.validators),
                module_inits(setup.executors),
                (ZERO_ADDRESS, b""),
                module_inits(setup.fallbacks),
                [],
            ],
        )

    def salt(self, config: AccountConfig) -> bytes:
        return to_bytes(config.salt) if config.salt is not None else ZERO_HASH

    def eip712_domain(self, config: AccountConfig, chain_id: int) -> Eip712Domain:
        if config.init_data is not None:
            raise UnsupportedConfigurationError(
                "Existing Startale accounts are not yet supported",
                details={"provider": self.kind.value, "stage": "eip712_domain"},
            )
        return Eip712Domain(
            name=self.eip712_name,
            version=self.eip712_version,
            chain_id=chain_id,
            verifying_contract=self.address(config),
            salt=ZERO_HASH,
        )

    def delegation_implementation(self) -> str:
        raise UnsupportedForProviderError("EIP-7702", self.kind.value)

    def delegation_init_calls(self, config: AccountConfig) -> List[Call]:
        raise UnsupportedForProviderError("EIP-7702", self.kind.value)
