"""
Kernel v3.3 accounts.

Kernel is deployed through a meta factory and initialized with a root
validator plus an ``initConfig`` list of self-calls. Non-root validators must
be granted access to ``execute`` separately, so installing one takes two
calls.
"""

from __future__ import annotations

from typing import List

from aakit.accounts.base import ProviderAdapter
from aakit.core.codec import (
    ZERO_ADDRESS,
    ZERO_HASH,
    address_bytes,
    concat,
    create2_address,
    decode_abi,
    decode_function_call,
    encode_abi,
    encode_function_call,
    keccak256,
    keccak_text,
    same_address,
)
from aakit.core.typed_data import Eip712Domain, hash_typed_data
from aakit.core.types import (
    AccountConfig,
    DeployArgs,
    ExternalInitData,
    Module,
    ModuleKind,
    ProviderKind,
    ValidatorConfig,
)
from aakit.modules.catalog import get_default_setup

KERNEL_META_FACTORY_ADDRESS = "0xd703aae79538628d27099b8c4f621be4ccd142d5"
KERNEL_IMPLEMENTATION_ADDRESS = "0xd6CEDDe84be40893d153Be9d467CD6aD37875b28"
KERNEL_FACTORY_ADDRESS = "0x2577507b78c2008ff367261cb6285d44ba5ef2e9"
KERNEL_VERSION = "0.3.3"

KERNEL_PROXY_BYTECODE = bytes.fromhex(
    "603d3d8160223d3973d6cedde84be40893d153be9d467cd6ad37875b2860095155f3363d3d373d3d363d7f"
    "360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc545af43d6000803e6038573d"
    "6000fd5b3d6000f3"
)

# address(1) marks "installed without a hook"
HOOK_INSTALLED = address_bytes("0x0000000000000000000000000000000000000001")
VALIDATION_TYPE_ROOT = b"\x00"
VALIDATION_TYPE_VALIDATOR = b"\x01"
EXECUTE_SELECTOR = bytes.fromhex("e9ae5c53")
REPLAYABLE_SIGNATURE_MAGIC = keccak_text("kernel.replayable.signature")
KERNEL_MESSAGE_TYPEHASH = keccak_text("Kernel(bytes32 hash)")

INSTALL_MODULE = "installModule(uint256,address,bytes)"
GRANT_ACCESS = "grantAccess(bytes21,bytes4,bool)"
INITIALIZE = "initialize(bytes21,address,bytes,bytes,bytes[])"
DEPLOY_WITH_FACTORY = "deployWithFactory(address,bytes,bytes32)"


def validator_id(address: str) -> bytes:
    return VALIDATION_TYPE_VALIDATOR + address_bytes(address)


def wrap_message_hash(hash: bytes, account_address: str) -> bytes:
    """Kernel's EIP-712 wrapping of an EIP-1271 hash (chain-agnostic domain)."""
    domain = Eip712Domain(
        name="Kernel",
        version=KERNEL_VERSION,
        chain_id=0,
        verifying_contract=account_address,
    )
    struct_hash = keccak256(encode_abi(["bytes32", "bytes32"], [KERNEL_MESSAGE_TYPEHASH, hash]))
    return hash_typed_data(domain, struct_hash)


class KernelAdapter(ProviderAdapter):
    kind = ProviderKind.KERNEL

    def install_data(self, module: Module) -> List[bytes]:
        if module.kind is ModuleKind.VALIDATOR:
            init_data = concat(
                HOOK_INSTALLED,
                encode_abi(["bytes", "bytes", "bytes"], [module.init_data, b"", b""]),
            )
            return [
                encode_function_call(INSTALL_MODULE, [int(module.kind), module.address, init_data]),
                encode_function_call(GRANT_ACCESS, [validator_id(module.address), EXECUTE_SELECTOR, True]),
            ]
        if module.kind is ModuleKind.EXECUTOR:
            init_data = concat(
                address_bytes(ZERO_ADDRESS),
                encode_abi(["bytes", "bytes"], [module.init_data, b""]),
            )
        elif module.kind is ModuleKind.FALLBACK:
            selector, flags, selector_data = decode_abi(["bytes4", "bytes1", "bytes"], module.init_data)
            init_data = concat(
                selector,
                HOOK_INSTALLED,
                encode_abi(["bytes", "bytes"], [concat(flags, selector_data), b""]),
            )
        else:
            init_data = module.init_data
        return [encode_function_call(INSTALL_MODULE, [int(module.kind), module.address, init_data])]

    def build_deploy_args(self, config: AccountConfig) -> DeployArgs:
        setup = get_default_setup(config)
        root = setup.validators[0]
        init_config: List[bytes] = []
        for module in setup.validators[1:] + setup.executors + setup.fallbacks + setup.hooks:
            init_config.extend(self.install_data(module))
        initialization_call_data = encode_function_call(
            INITIALIZE,
            [validator_id(root.address), ZERO_ADDRESS, root.init_data, b"", init_config],
        )
        return self._deploy_args(KERNEL_FACTORY_ADDRESS, initialization_call_data, ZERO_HASH)

    def _deploy_args(self, factory: str, initialization_call_data: bytes, salt: bytes) -> DeployArgs:
        return DeployArgs(
            factory=KERNEL_META_FACTORY_ADDRESS,
            factory_data=encode_function_call(DEPLOY_WITH_FACTORY, [factory, initialization_call_data, salt]),
            salt=salt,
            implementation=KERNEL_IMPLEMENTATION_ADDRESS,
            initialization_call_data=initialization_call_data,
            hashed_initcode=keccak256(KERNEL_PROXY_BYTECODE),
        )

    def imported_deploy_args(self, init_data: ExternalInitData) -> DeployArgs:
        if not same_address(init_data.factory, KERNEL_META_FACTORY_ADDRESS):
            raise self.unsupported_init_data(f"unknown factory {init_data.factory}")
        try:
            factory, initialization_call_data, salt = decode_function_call(
                DEPLOY_WITH_FACTORY, init_data.factory_data
            )
        except ValueError as exc:
            raise self.unsupported_init_data("factory data is not deployWithFactory") from exc
        if not same_address(factory, KERNEL_FACTORY_ADDRESS):
            raise self.unsupported_init_data(f"unknown kernel factory {factory}")
        return self._deploy_args(factory, initialization_call_data, salt)

    def address_from_deploy_args(self, args: DeployArgs) -> str:
        actual_salt = keccak256(concat(args.initialization_call_data, args.salt))
        return create2_address(KERNEL_FACTORY_ADDRESS, actual_salt, args.hashed_initcode)

    def message_hash(self, hash: bytes, validator: ValidatorConfig, account_address: str) -> bytes:
        if validator.is_root:
            return wrap_message_hash(hash, account_address)
        return hash

    def wrap_signature(self, signature: bytes, validator: ValidatorConfig) -> bytes:
        vid = VALIDATION_TYPE_ROOT if validator.is_root else validator_id(validator.address)
        return concat(vid, REPLAYABLE_SIGNATURE_MAGIC, signature)

    def nonce_key(self, validator_address: str, key: int = 0, is_root: bool = True) -> int:
        # mode ++ validation type ++ validator ++ 2-byte key
        validation_type = VALIDATION_TYPE_ROOT if is_root else VALIDATION_TYPE_VALIDATOR
        return int.from_bytes(
            b"\x00" + validation_type + address_bytes(validator_address) + b"\x00\x00",
            "big",
        )

    def eip712_domain(self, config: AccountConfig, chain_id: int) -> Eip712Domain:
        return Eip712Domain(
            name="Kernel",
            version=KERNEL_VERSION,
            chain_id=chain_id,
            verifying_contract=self.address(config),
        )
