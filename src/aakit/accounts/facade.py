"""
Account facade.

Single entry point over the provider adapters: address derivation, deploy
args, module calls, EIP-1271 / ERC-6492 signatures and ``SmartAccount``
handles that sign ERC-4337 user operations for the owner, a session or the
recovery guardians.

Usage:
    from aakit.accounts import facade

    account_address = facade.address(config)
    account = facade.smart_account(config, w3)
    signature = account.sign_user_operation(user_op)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from web3 import Web3

from aakit.accounts.base import ProviderAdapter, SignatureTransform, encode_7579_calls
from aakit.accounts.kernel import KernelAdapter
from aakit.accounts.nexus import NexusAdapter
from aakit.accounts.passport import PassportAdapter
from aakit.accounts.safe import SafeAdapter
from aakit.accounts.startale import StartaleAdapter
from aakit.accounts.user_operation import UserOperation, user_operation_hash
from aakit.core import config as settings
from aakit.core.codec import (
    ZERO_ADDRESS,
    concat,
    encode_abi,
    normalize_address,
    same_address,
)
from aakit.core.exceptions import (
    ExistingDelegationNotSupportedError,
    FactoryArgsUnavailableError,
    ModuleNotInstalledError,
    OwnersRequiredError,
    SessionsNotEnabledError,
)
from aakit.core.typed_data import Eip712Domain
from aakit.core.types import (
    AccountConfig,
    Call,
    DeployArgs,
    EcdsaOwners,
    Module,
    ProviderKind,
    Session,
    ValidatorConfig,
)
from aakit.modules.catalog import SMART_SESSIONS_VALIDATOR_ADDRESS
from aakit.modules.read import get_code, read_contract
from aakit.modules.validators import (
    ECDSA_MOCK_SIGNATURE,
    SOCIAL_RECOVERY_VALIDATOR_ADDRESS,
    mock_signature,
    validator_for,
)
from aakit.sessions.codec import EnableSessionData, SmartSessionMode, encode_signature, permission_id
from aakit.signing.resolver import (
    GuardianSigners,
    SignerSet,
    SigningContext,
    convert,
    sign,
    sign_ecdsa,
    sign_typed_data,
    typed_data_hash,
)

logger = logging.getLogger(__name__)

# EIP-7702 delegation designator: 0xef0100 ++ 20-byte implementation
DELEGATION_PREFIX = bytes.fromhex("ef0100")
DELEGATION_CODE_LENGTH = 23

ERC6492_MAGIC_BYTES = bytes.fromhex("6492" * 16)

ADAPTERS: Dict[ProviderKind, ProviderAdapter] = {
    ProviderKind.SAFE: SafeAdapter(),
    ProviderKind.NEXUS: NexusAdapter(),
    ProviderKind.KERNEL: KernelAdapter(),
    ProviderKind.STARTALE: StartaleAdapter(),
    ProviderKind.PASSPORT: PassportAdapter(),
}


def get_adapter(config: AccountConfig) -> ProviderAdapter:
    return ADAPTERS[config.provider]


# ==================== Address and deploy args ====================


def address(config: AccountConfig) -> str:
    return get_adapter(config).address(config)


def deploy_args(config: AccountConfig) -> DeployArgs:
    return get_adapter(config).deploy_args(config)


def init_code(config: AccountConfig) -> Optional[Tuple[str, bytes]]:
    """``(factory, factory_data)`` for a user operation that creates the account.

    Delegated EOAs are never created through a factory and get ``None``.
    """
    if config.is_delegated:
        return None
    if config.init_data is not None:
        return normalize_address(config.init_data.factory), bytes(config.init_data.factory_data)
    args = deploy_args(config)
    return normalize_address(args.factory), args.factory_data


def check_address(config: AccountConfig) -> bool:
    """Whether an imported account's stated address matches its factory call."""
    if config.init_data is None:
        return True
    return same_address(config.init_data.address, address(config))


def is_delegation_code(code: bytes) -> bool:
    return len(code) == DELEGATION_CODE_LENGTH and code.startswith(DELEGATION_PREFIX)


def is_deployed(config: AccountConfig, w3: Web3) -> bool:
    """Check whether the account has code on chain.

    A delegated EOA counts as deployed once it delegates to the provider's
    implementation.

    Raises:
        ExistingDelegationNotSupportedError: If the address already carries a
            foreign EIP-7702 delegation
    """
    account = address(config)
    code = get_code(w3, account)
    if not code:
        return False
    if is_delegation_code(code):
        delegate = normalize_address(code[len(DELEGATION_PREFIX):])
        if config.is_delegated and same_address(delegate, get_adapter(config).delegation_implementation()):
            return True
        raise ExistingDelegationNotSupportedError(
            account,
            details={"provider": config.provider.value, "stage": "is_deployed", "delegate": delegate},
        )
    return True


# ==================== Modules ====================


def module_install_calls(config: AccountConfig, module: Module) -> List[Call]:
    return get_adapter(config).module_install_calls(config, module)


def module_uninstall_calls(config: AccountConfig, module: Module) -> List[Call]:
    return get_adapter(config).module_uninstall_calls(config, module)


def eip712_domain(config: AccountConfig, chain_id: int) -> Eip712Domain:
    return get_adapter(config).eip712_domain(config, chain_id)


# ==================== EIP-1271 / ERC-6492 ====================


def owner_validator_config(config: AccountConfig) -> ValidatorConfig:
    if config.owners is None:
        raise OwnersRequiredError(details={"provider": config.provider.value, "stage": "sign"})
    return ValidatorConfig(address=validator_for(config.owners).address, is_root=True)


def _default_signers(config: AccountConfig, signers: Optional[SignerSet]) -> SignerSet:
    if signers is not None:
        return signers
    if config.owners is None:
        raise OwnersRequiredError(details={"provider": config.provider.value, "stage": "sign"})
    return convert(config.owners)


def packed_signature(
    config: AccountConfig,
    signers: Optional[SignerSet],
    chain_id: int,
    validator: ValidatorConfig,
    hash: bytes,
    transform: Optional[SignatureTransform] = None,
) -> bytes:
    """Sign ``hash`` and pack it for the account's ``isValidSignature``.

    Args:
        config: Account configuration
        signers: Signer set to use, defaults to the configured owners
        chain_id: Chain the signature is for
        validator: Validator that checks the signature
        hash: EIP-1271 hash
        transform: Applied to the raw signature before provider wrapping

    Returns:
        Signature accepted by the account's EIP-1271 check
    """
    adapter = get_adapter(config)
    account = adapter.address(config)
    signers = _default_signers(config, signers)
    context = SigningContext(chain_id=chain_id, account_address=account)
    return adapter.pack_signature(
        lambda digest: sign(signers, digest, context),
        hash,
        validator,
        account,
        transform,
    )


def typed_data_packed_signature(
    config: AccountConfig,
    signers: Optional[SignerSet],
    chain_id: int,
    validator: ValidatorConfig,
    typed_data: Dict[str, Any],
    transform: Optional[SignatureTransform] = None,
) -> bytes:
    """Sign an EIP-712 message and pack it for the account's ``isValidSignature``.

    Owners sign the typed data directly, except where the provider re-hashes
    the EIP-712 digest into its own envelope (Kernel's root validator); there
    the owners sign the wrapped hash.

    Args:
        config: Account configuration
        signers: Signer set to use, defaults to the configured owners
        chain_id: Chain the signature is for
        validator: Validator that checks the signature
        typed_data: Full EIP-712 message (``types``, ``primaryType``, ``domain``, ``message``)
        transform: Applied to the raw signature before provider wrapping
    """
    adapter = get_adapter(config)
    account = adapter.address(config)
    signers = _default_signers(config, signers)
    context = SigningContext(chain_id=chain_id, account_address=account)
    digest = typed_data_hash(typed_data)
    wrapped = adapter.message_hash(digest, validator, account)
    if wrapped != digest:
        signature = sign(signers, wrapped, context)
    else:
        signature = sign_typed_data(signers, typed_data, context)
    if transform is not None:
        signature = transform(signature)
    return adapter.wrap_signature(signature, validator)


def erc6492_wrap(factory: str, factory_data: bytes, signature: bytes) -> bytes:
    return concat(
        encode_abi(["address", "bytes", "bytes"], [factory, factory_data, signature]),
        ERC6492_MAGIC_BYTES,
    )


def to_erc6492_signature(config: AccountConfig, signature: bytes, w3: Web3) -> bytes:
    """Wrap a signature of a not-yet-deployed account in the ERC-6492 envelope.

    Raises:
        FactoryArgsUnavailableError: If the account is undeployed and has no factory call
    """
    if is_deployed(config, w3):
        return signature
    factory_call = init_code(config)
    if factory_call is None:
        raise FactoryArgsUnavailableError(details={"provider": config.provider.value, "stage": "erc6492"})
    factory, factory_data = factory_call
    return erc6492_wrap(factory, factory_data, signature)


# ==================== Smart account handles ====================


class SmartAccount:
    """ERC-4337 view of an account bound to one validator and one signer."""

    def __init__(
        self,
        w3: Web3,
        account_address: str,
        adapter: ProviderAdapter,
        validator: ValidatorConfig,
        sign_hash: Callable[[bytes], bytes],
        stub: Callable[[], bytes],
        chain_id: int,
        nonce_validator: Optional[str] = None,
    ) -> None:
        self.w3 = w3
        self.address = normalize_address(account_address)
        self.adapter = adapter
        self.validator = validator
        self.chain_id = chain_id
        self.entry_point = settings.ENTRY_POINT_ADDRESS
        self._sign_hash = sign_hash
        self._stub = stub
        self._nonce_validator = nonce_validator or validator.address

    def nonce_key(self, key: int = 0) -> int:
        return self.adapter.nonce_key(self._nonce_validator, key, self.validator.is_root)

    def nonce(self, key: int = 0) -> int:
        """Current EntryPoint nonce for this account and validator."""
        (value,) = read_contract(
            self.w3,
            self.entry_point,
            "getNonce(address,uint192)",
            [self.address, self.nonce_key(key)],
            ["uint256"],
        )
        return value

    def encode_calls(self, calls: Sequence[Call]) -> bytes:
        return encode_7579_calls(calls)

    def stub_signature(self) -> bytes:
        return self._stub()

    def sign(self, hash: bytes) -> bytes:
        return self._sign_hash(hash)

    def user_operation_hash(self, user_op: UserOperation) -> bytes:
        unsigned = replace(user_op, sender=self.address, signature=b"")
        return user_operation_hash(unsigned, self.entry_point, self.chain_id)

    def sign_user_operation(self, user_op: UserOperation) -> bytes:
        signature = self.sign(self.user_operation_hash(user_op))
        logger.debug(
            "Signed user operation",
            extra={"event": "account.user_operation_signed", "account": self.address, "nonce": user_op.nonce},
        )
        return signature


def _owner_signer(config: AccountConfig, account: str, chain_id: int) -> Callable[[bytes], bytes]:
    signers = convert(config.owners)
    context = SigningContext(chain_id=chain_id, account_address=account)
    return lambda digest: sign(signers, digest, context)


def smart_account(config: AccountConfig, w3: Web3) -> SmartAccount:
    """Owner-validated smart account.

    Raises:
        OwnersRequiredError: If the configuration has no owner set
    """
    if config.is_delegated:
        return delegated_smart_account(config, w3)
    if config.owners is None:
        raise OwnersRequiredError(details={"provider": config.provider.value, "stage": "smart_account"})
    adapter = get_adapter(config)
    account = adapter.address(config)
    chain_id = w3.eth.chain_id
    owners = config.owners
    return SmartAccount(
        w3,
        account,
        adapter,
        owner_validator_config(config),
        _owner_signer(config, account, chain_id),
        lambda: mock_signature(owners),
        chain_id,
    )


def delegated_smart_account(config: AccountConfig, w3: Web3) -> SmartAccount:
    """Smart account of an EIP-7702 delegated EOA, validated by the EOA key itself.

    Raises:
        EoaRequiredError: If the configuration has no delegate key
        UnsupportedForProviderError: If the provider cannot run as a delegate
    """
    adapter = get_adapter(config)
    delegate = adapter.require_delegate(config)
    adapter.delegation_implementation()
    return SmartAccount(
        w3,
        delegate.address,
        adapter,
        ValidatorConfig(address=ZERO_ADDRESS),
        lambda digest: sign_ecdsa(delegate, digest),
        lambda: ECDSA_MOCK_SIGNATURE,
        w3.eth.chain_id,
        nonce_validator=ZERO_ADDRESS,
    )


def session_smart_account(
    config: AccountConfig,
    w3: Web3,
    session: Session,
    enable_data: Optional[EnableSessionData] = None,
) -> SmartAccount:
    """Smart account whose operations are validated by a smart session.

    With ``enable_data`` the first operation enables the session in-line
    (ENABLE mode); otherwise the session must already be enabled (USE mode).

    Raises:
        SessionsNotEnabledError: If the account does not install the session validator
    """
    if not config.sessions_enabled:
        raise SessionsNotEnabledError(details={"provider": config.provider.value, "stage": "session_account"})
    adapter = get_adapter(config)
    account = adapter.address(config)
    chain_id = w3.eth.chain_id
    permission = permission_id(session)
    signers = convert(session.owners)
    context = SigningContext(chain_id=chain_id, account_address=account)

    def sign_hash(digest: bytes) -> bytes:
        signature = sign(signers, digest, context)
        if enable_data is not None:
            return encode_signature(SmartSessionMode.ENABLE, permission, signature, enable_data)
        return encode_signature(SmartSessionMode.USE, permission, signature)

    def stub() -> bytes:
        return encode_signature(SmartSessionMode.USE, permission, mock_signature(session.owners))

    return SmartAccount(
        w3,
        account,
        adapter,
        ValidatorConfig(address=SMART_SESSIONS_VALIDATOR_ADDRESS, is_root=False),
        sign_hash,
        stub,
        chain_id,
    )


def guardian_smart_account(config: AccountConfig, w3: Web3, guardians: Sequence) -> SmartAccount:
    """Smart account validated by the social-recovery guardians.

    Raises:
        ModuleNotInstalledError: If the account has no recovery configured
    """
    if config.recovery is None:
        raise ModuleNotInstalledError(
            "Social recovery is not available",
            details={"provider": config.provider.value, "stage": "guardian_account"},
        )
    adapter = get_adapter(config)
    account = adapter.address(config)
    signers = GuardianSigners(accounts=tuple(guardians))
    context = SigningContext(chain_id=w3.eth.chain_id, account_address=account)
    guardian_owners = EcdsaOwners(accounts=tuple(guardians), threshold=len(guardians))
    return SmartAccount(
        w3,
        account,
        adapter,
        ValidatorConfig(address=SOCIAL_RECOVERY_VALIDATOR_ADDRESS, is_root=False),
        lambda digest: sign(signers, digest, context),
        lambda: mock_signature(guardian_owners),
        context.chain_id,
    )


__all__ = [
    "ADAPTERS",
    "SmartAccount",
    "address",
    "check_address",
    "delegated_smart_account",
    "deploy_args",
    "eip712_domain",
    "encode_7579_calls",
    "get_adapter",
    "guardian_smart_account",
    "init_code",
    "is_deployed",
    "module_install_calls",
    "module_uninstall_calls",
    "packed_signature",
    "session_smart_account",
    "smart_account",
    "to_erc6492_signature",
]
