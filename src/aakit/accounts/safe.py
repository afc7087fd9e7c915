"""
Safe accounts with the ERC-7579 adapter.

The proxy factory deploys a Safe whose ``setup`` delegatecalls the 7579
launchpad, which enables the adapter and installs the initial modules.
"""

from __future__ import annotations

from aakit.accounts.base import ProviderAdapter, packed_validator_signature
from aakit.core.codec import (
    address_bytes,
    create2_address,
    decode_function_call,
    encode_function_call,
    encode_packed,
    keccak256,
    same_address,
    ZERO_ADDRESS,
)
from aakit.core.typed_data import Eip712Domain
from aakit.core.types import AccountConfig, DeployArgs, EcdsaOwners, ExternalInitData, ProviderKind, ValidatorConfig
from aakit.modules.catalog import get_default_setup

SAFE_7579_LAUNCHPAD_ADDRESS = "0x7579011aB74c46090561ea277Ba79D510c6C00ff"
SAFE_7579_ADAPTER_ADDRESS = "0x7579ee8307284f293b1927136486880611f20002"
SAFE_SINGLETON_ADDRESS = "0x29fcb43b46531bca003ddc8fcb67ffe91900c762"
SAFE_PROXY_FACTORY_ADDRESS = "0x4e1dcf7ad4e460cfd30791ccc4f9c8a4f820ec67"
# placeholder owner for Safes controlled only through 7579 validators
NO_SAFE_OWNER_ADDRESS = "0xbabe99e62d8bcbd3acf5ccbcfcd4f64fe75e5e72"

SAFE_PROXY_INIT_CODE_HASH = bytes.fromhex(
    "e298282cefe913ab5d282047161268a8222e4bd4ed106300c547894bbefd31ee"
)

SETUP = "setup(address[],uint256,address,bytes,address,address,uint256,address)"
ADD_SAFE_7579 = "addSafe7579(address,(address,bytes)[],(address,bytes)[],(address,bytes)[],(address,bytes)[],address[],uint8)"
CREATE_PROXY_WITH_NONCE = "createProxyWithNonce(address,bytes,uint256)"


def _module_inits(modules):
    return [(m.address, m.init_data) for m in modules]


class SafeAdapter(ProviderAdapter):
    kind = ProviderKind.SAFE

    def owners_and_threshold(self, config: AccountConfig):
        if isinstance(config.owners, EcdsaOwners):
            return list(config.owners.addresses), config.owners.threshold
        return [NO_SAFE_OWNER_ADDRESS], 1

    def initializer(self, config: AccountConfig) -> bytes:
        setup = get_default_setup(config)
        owners, threshold = self.owners_and_threshold(config)
        launchpad_call = encode_function_call(
            ADD_SAFE_7579,
            [
                SAFE_7579_ADAPTER_ADDRESS,
                _module_inits(setup.validators),
                _module_inits(setup.executors),
                _module_inits(setup.fallbacks),
                _module_inits(setup.hooks),
                list(setup.attesters),
                setup.attester_threshold,
            ],
        )
        return encode_function_call(
            SETUP,
            [
                owners,
                threshold,
                SAFE_7579_LAUNCHPAD_ADDRESS,
                launchpad_call,
                SAFE_7579_ADAPTER_ADDRESS,
                ZERO_ADDRESS,
                0,
                ZERO_ADDRESS,
            ],
        )

    def _deploy_args(self, initializer: bytes, salt_nonce: int) -> DeployArgs:
        salt = keccak256(encode_packed(["bytes32", "uint256"], [keccak256(initializer), salt_nonce]))
        return DeployArgs(
            factory=SAFE_PROXY_FACTORY_ADDRESS,
            factory_data=encode_function_call(
                CREATE_PROXY_WITH_NONCE, [SAFE_SINGLETON_ADDRESS, initializer, salt_nonce]
            ),
            salt=salt,
            implementation=SAFE_SINGLETON_ADDRESS,
            initialization_call_data=None,
            hashed_initcode=SAFE_PROXY_INIT_CODE_HASH,
        )

    def build_deploy_args(self, config: AccountConfig) -> DeployArgs:
        return self._deploy_args(self.initializer(config), 0)

    def imported_deploy_args(self, init_data: ExternalInitData) -> DeployArgs:
        if not same_address(init_data.factory, SAFE_PROXY_FACTORY_ADDRESS):
            raise self.unsupported_init_data(f"unknown factory {init_data.factory}")
        try:
            singleton, initializer, salt_nonce = decode_function_call(
                CREATE_PROXY_WITH_NONCE, init_data.factory_data
            )
        except ValueError as exc:
            raise self.unsupported_init_data("factory data is not createProxyWithNonce") from exc
        if not same_address(singleton, SAFE_SINGLETON_ADDRESS):
            raise self.unsupported_init_data(f"unknown singleton {singleton}")
        return self._deploy_args(initializer, salt_nonce)

    def address_from_deploy_args(self, args: DeployArgs) -> str:
        return create2_address(args.factory, args.salt, args.hashed_initcode)

    def wrap_signature(self, signature: bytes, validator: ValidatorConfig) -> bytes:
        return packed_validator_signature(validator.address, signature)

    def nonce_key(self, validator_address: str, key: int = 0, is_root: bool = True) -> int:
        return int.from_bytes(address_bytes(validator_address) + b"\x00" * 4, "big")

    def eip712_domain(self, config: AccountConfig, chain_id: int) -> Eip712Domain:
        return Eip712Domain(chain_id=chain_id, verifying_contract=self.address(config))
