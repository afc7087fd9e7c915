"""
Provider adapter base class and ERC-7579 execution encoding.

Every account implementation (Safe, Nexus, Kernel, Startale, Passport) gets a
``ProviderAdapter`` subclass that knows how to derive the account address,
build the factory call, install modules and wrap validator signatures.
Adapters are stateless; the ``AccountConfig`` passed to each method is the
only input.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from aakit.core.codec import (
    address_bytes,
    concat,
    encode_abi,
    encode_function_call,
    int_to_bytes,
    normalize_address,
    pad_left,
)
from aakit.core.exceptions import (
    EoaRequiredError,
    FactoryArgsUnavailableError,
    UnsupportedConfigurationError,
    UnsupportedForProviderError,
)
from aakit.core.typed_data import Eip712Domain
from aakit.core.types import (
    AccountConfig,
    Call,
    DeployArgs,
    ExternalInitData,
    Module,
    ProviderKind,
    ValidatorConfig,
)

logger = logging.getLogger(__name__)

INSTALL_MODULE = "installModule(uint256,address,bytes)"
UNINSTALL_MODULE = "uninstallModule(uint256,address,bytes)"

CALL_TYPE_SINGLE = b"\x00"
CALL_TYPE_BATCH = b"\x01"
EXEC_TYPE_DEFAULT = b"\x00"

SignFn = Callable[[bytes], bytes]
SignatureTransform = Callable[[bytes], bytes]


def _identity(signature: bytes) -> bytes:
    return signature


# ==================== ERC-7579 execution ====================


def execution_mode(
    call_type: bytes,
    revert_on_error: bool = False,
    selector: bytes = b"",
    context: bytes = b"",
) -> bytes:
    """bytes32 mode = callType ++ execType ++ 0x00000000 ++ selector(4) ++ context(22)."""
    return concat(
        call_type,
        b"\x01" if revert_on_error else EXEC_TYPE_DEFAULT,
        b"\x00" * 4,
        pad_left(selector, 4) if selector else b"\x00" * 4,
        pad_left(context, 22) if context else b"\x00" * 22,
    )


def encode_7579_calls(calls: Sequence[Call], revert_on_error: bool = False) -> bytes:
    """Encode ``execute(bytes32,bytes)`` calldata for one or many calls.

    Raises:
        ValueError: If ``calls`` is empty
    """
    if not calls:
        raise ValueError("No calls to encode")
    if len(calls) == 1:
        call = calls[0]
        execution = concat(address_bytes(call.to), int_to_bytes(call.value, 32), call.data)
        mode = execution_mode(CALL_TYPE_SINGLE, revert_on_error)
    else:
        execution = encode_abi(
            ["(address,uint256,bytes)[]"],
            [[(call.to, call.value, call.data) for call in calls]],
        )
        mode = execution_mode(CALL_TYPE_BATCH, revert_on_error)
    return encode_function_call("execute(bytes32,bytes)", [mode, execution])


def install_module_data(module: Module) -> bytes:
    return encode_function_call(INSTALL_MODULE, [int(module.kind), module.address, module.init_data])


def uninstall_module_data(module: Module) -> bytes:
    return encode_function_call(UNINSTALL_MODULE, [int(module.kind), module.address, module.de_init_data])


def packed_validator_signature(validator_address: str, signature: bytes) -> bytes:
    """encodePacked(address validator, bytes signature)"""
    return address_bytes(validator_address) + signature


# ==================== Adapter base ====================


class ProviderAdapter(ABC):
    """Provider-specific account behaviour behind one interface."""

    kind: ProviderKind

    @abstractmethod
    def build_deploy_args(self, config: AccountConfig) -> DeployArgs:
        """Deploy args for a new account built from the default module setup."""

    @abstractmethod
    def imported_deploy_args(self, init_data: ExternalInitData) -> DeployArgs:
        """Validate and decode the factory call of an imported account.

        Raises:
            UnsupportedConfigurationError: If the factory call matches no known schema
        """

    @abstractmethod
    def address_from_deploy_args(self, args: DeployArgs) -> str:
        """CREATE2 address of the account the deploy args create."""

    @abstractmethod
    def wrap_signature(self, signature: bytes, validator: ValidatorConfig) -> bytes:
        """Wrap a raw validator signature the way the account's isValidSignature expects."""

    @abstractmethod
    def nonce_key(self, validator_address: str, key: int = 0, is_root: bool = True) -> int:
        """192-bit EntryPoint nonce key routing a user operation to ``validator_address``."""

    @abstractmethod
    def eip712_domain(self, config: AccountConfig, chain_id: int) -> Eip712Domain:
        """The account's own EIP-712 domain."""

    # ---- deploy args and address ----

    def deploy_args(self, config: AccountConfig) -> DeployArgs:
        if config.init_data is not None:
            args = self.imported_deploy_args(config.init_data)
        else:
            args = self.build_deploy_args(config)
        if args.factory is None or args.factory_data is None:
            raise FactoryArgsUnavailableError(details={"provider": self.kind.value, "stage": "deploy_args"})
        return args

    def address(self, config: AccountConfig) -> str:
        if config.is_delegated:
            return normalize_address(config.delegate_key.address)
        address = self.address_from_deploy_args(self.deploy_args(config))
        logger.debug(
            "Derived account address",
            extra={"event": "account.address", "provider": self.kind.value, "address": address},
        )
        return address

    def unsupported_init_data(self, reason: str) -> UnsupportedConfigurationError:
        return UnsupportedConfigurationError(
            f"Unsupported {self.kind.value} init data: {reason}",
            details={"provider": self.kind.value, "stage": "import"},
        )

    # ---- modules ----

    def install_data(self, module: Module) -> List[bytes]:
        return [install_module_data(module)]

    def module_install_calls(self, config: AccountConfig, module: Module) -> List[Call]:
        account = self.address(config)
        return [Call(to=account, value=0, data=data) for data in self.install_data(module)]

    def module_uninstall_calls(self, config: AccountConfig, module: Module) -> List[Call]:
        return [Call(to=self.address(config), value=0, data=uninstall_module_data(module))]

    # ---- signatures ----

    def message_hash(self, hash: bytes, validator: ValidatorConfig, account_address: str) -> bytes:
        """Hash the validator actually signs for an EIP-1271 check of ``hash``."""
        return hash

    def pack_signature(
        self,
        sign_fn: SignFn,
        hash: bytes,
        validator: ValidatorConfig,
        account_address: str,
        transform: Optional[SignatureTransform] = None,
    ) -> bytes:
        transform = transform or _identity
        signature = sign_fn(self.message_hash(hash, validator, account_address))
        return self.wrap_signature(transform(signature), validator)

    # ---- EIP-7702 ----

    def delegation_implementation(self) -> str:
        raise UnsupportedForProviderError("EIP-7702", self.kind.value)

    def delegation_init_calls(self, config: AccountConfig) -> List[Call]:
        raise UnsupportedForProviderError("EIP-7702", self.kind.value)

    def require_delegate(self, config: AccountConfig):
        if config.delegate_key is None:
            raise EoaRequiredError(details={"provider": self.kind.value, "stage": "delegation"})
        return config.delegate_key
