"""
Passport accounts.

Passport wallets are minimal proxies created by their own factory, so only
existing accounts can be used: the factory call has to be supplied as
imported init data. Module installation and signatures follow Nexus.
"""

from __future__ import annotations

from typing import List

from aakit.accounts.nexus import NexusAdapter
from aakit.core.codec import (
    concat,
    create2_address,
    decode_function_call,
    int_to_bytes,
    keccak256,
    same_address,
    to_bytes,
)
from aakit.core.exceptions import UnsupportedConfigurationError, UnsupportedForProviderError
from aakit.core.typed_data import Eip712Domain
from aakit.core.types import AccountConfig, Call, DeployArgs, ExternalInitData, ProviderKind

K1_DEFAULT_VALIDATOR_ADDRESS = "0x00000072f286204bb934ed49d8969e86f7dec7b1"
PASSPORT_IMPLEMENTATION_ADDRESS = "0x3d485adec9434b2a465e210d007ef39f323daf79"
PASSPORT_FACTORY_ADDRESS = "0x3b12b9e11c379ba8621cb04bc410dae9e99761a0"

PASSPORT_WALLET_CREATION_CODE = bytes.fromhex(
    "6054600f3d396034805130553df3fe63906111273d3560e01c14602b57363d3d373d3d3d3d369030545af4"
    "3d82803e156027573d90f35b3d90fd5b30543d5260203df3"
)

DEPLOY = "deploy(address,bytes32)"


class PassportAdapter(NexusAdapter):
    kind = ProviderKind.PASSPORT
    implementation = PASSPORT_IMPLEMENTATION_ADDRESS
    factory = PASSPORT_FACTORY_ADDRESS
    default_validator = K1_DEFAULT_VALIDATOR_ADDRESS

    def build_deploy_args(self, config: AccountConfig) -> DeployArgs:
        raise UnsupportedConfigurationError(
            "Passport accounts can only be imported from existing init data",
            details={"provider": self.kind.value, "stage": "deploy_args"},
        )

    def imported_deploy_args(self, init_data: ExternalInitData) -> DeployArgs:
        if not same_address(init_data.factory, self.factory):
            raise self.unsupported_init_data(f"unknown factory {init_data.factory}")
        try:
            main_module, salt = decode_function_call(DEPLOY, init_data.factory_data)
        except ValueError as exc:
            raise self.unsupported_init_data("factory data is not deploy(address,bytes32)") from exc
        init_code = concat(PASSPORT_WALLET_CREATION_CODE, int_to_bytes(int(main_module, 16), 32))
        return DeployArgs(
            factory=self.factory,
            factory_data=to_bytes(init_data.factory_data),
            salt=salt,
            implementation=main_module,
            initialization_call_data=None,
            hashed_initcode=keccak256(init_code),
        )

    def address_from_deploy_args(self, args: DeployArgs) -> str:
        return create2_address(args.factory, args.salt, args.hashed_initcode)

    def eip712_domain(self, config: AccountConfig, chain_id: int) -> Eip712Domain:
        raise UnsupportedForProviderError("EIP-712 domain", self.kind.value)

    def delegation_implementation(self) -> str:
        raise UnsupportedForProviderError("EIP-7702", self.kind.value)

    def delegation_init_calls(self, config: AccountConfig) -> List[Call]:
        raise UnsupportedForProviderError("EIP-7702", self.kind.value)
