"""
Data model for account configuration, owners, modules and deploy args.

Every type here is a frozen dataclass: built once by the caller or a builder,
never mutated afterwards.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional, Tuple, Union

from aakit.core import config
from aakit.core.codec import ZERO_HASH, to_bytes
from aakit.core.exceptions import ConfigurationError


class ProviderKind(Enum):
    SAFE = "safe"
    NEXUS = "nexus"
    KERNEL = "kernel"
    STARTALE = "startale"
    PASSPORT = "passport"


def default_provider() -> ProviderKind:
    try:
        return ProviderKind(config.DEFAULT_PROVIDER)
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown default provider {config.DEFAULT_PROVIDER!r}",
            details={"stage": "config"},
        ) from exc


class ModuleKind(IntEnum):
    VALIDATOR = 1
    EXECUTOR = 2
    FALLBACK = 3
    HOOK = 4


# ==================== WebAuthn ====================


@dataclass(frozen=True)
class WebAuthnCredential:
    """A P-256 passkey public key as registered with the WebAuthn validator."""
    id: str
    x: int
    y: int
    require_user_verification: bool = False

    @classmethod
    def from_public_key(cls, credential_id: str, public_key: Union[str, bytes], **kwargs: Any) -> "WebAuthnCredential":
        """Parse a 64-byte (x ++ y) or 65-byte (0x04 ++ x ++ y) public key."""
        raw = to_bytes(public_key)
        if len(raw) == 65:
            if raw[0] != 0x04:
                raise ConfigurationError("Only uncompressed public keys are supported")
            raw = raw[1:]
        if len(raw) != 64:
            raise ConfigurationError(f"Invalid P-256 public key length: {len(raw)}")
        return cls(
            id=credential_id,
            x=int.from_bytes(raw[:32], "big"),
            y=int.from_bytes(raw[32:], "big"),
            **kwargs,
        )


@dataclass(frozen=True)
class WebAuthnAssertion:
    """Result of a WebAuthn signing ceremony."""
    authenticator_data: bytes
    client_data_json: str
    challenge_index: int
    type_index: int
    r: int
    s: int


class WebAuthnAccount(ABC):
    """A passkey able to produce WebAuthn assertions for a hash."""

    credential: WebAuthnCredential

    @abstractmethod
    def sign(self, hash: bytes) -> WebAuthnAssertion:
        ...


# ==================== Owner sets ====================


@dataclass(frozen=True)
class OwnerAddress:
    """An owner known only by address; it can be configured but cannot sign."""
    address: str


@dataclass(frozen=True)
class EcdsaOwners:
    """M-of-N ECDSA owners. Accounts are eth_account LocalAccounts or address holders."""
    accounts: Tuple[Any, ...]
    threshold: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "accounts", tuple(self.accounts))
        if not self.accounts:
            raise ConfigurationError("ECDSA owner set needs at least one account")
        if not 1 <= self.threshold <= len(self.accounts):
            raise ConfigurationError(
                f"Threshold {self.threshold} is out of range for {len(self.accounts)} owners",
                details={"stage": "owners"},
            )

    @property
    def addresses(self) -> Tuple[str, ...]:
        return tuple(account.address for account in self.accounts)


@dataclass(frozen=True)
class PasskeyOwners:
    account: WebAuthnAccount

    @property
    def credential(self) -> WebAuthnCredential:
        return self.account.credential


@dataclass(frozen=True)
class MultiFactorOwners:
    """Composite owner set. A ``None`` entry keeps its positional id and signs as an empty slot."""
    sub_validators: Tuple[Optional["OwnerSet"], ...]
    threshold: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "sub_validators", tuple(self.sub_validators))
        active = [v for v in self.sub_validators if v is not None]
        if not active:
            raise ConfigurationError("Multi-factor owner set needs at least one sub-validator")
        if any(isinstance(v, MultiFactorOwners) for v in active):
            raise ConfigurationError("Multi-factor owner sets cannot be nested")
        if not 1 <= self.threshold <= len(active):
            raise ConfigurationError(
                f"Threshold {self.threshold} is out of range for {len(active)} sub-validators",
                details={"stage": "owners"},
            )


OwnerSet = Union[EcdsaOwners, PasskeyOwners, MultiFactorOwners]


# ==================== Sessions and recovery ====================


@dataclass(frozen=True)
class Action:
    target: str
    selector: bytes
    policies: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class AllowedContent:
    domain_separator: bytes
    content_names: Tuple[str, ...]


@dataclass(frozen=True)
class Session:
    """A delegated, policy-constrained signer."""
    owners: OwnerSet
    policies: Tuple[Any, ...] = ()
    actions: Tuple[Action, ...] = ()
    salt: bytes = ZERO_HASH
    allowed_content: Tuple[AllowedContent, ...] = ()
    signing_policies: Tuple[Any, ...] = ()
    permit_erc4337_paymaster: bool = True

    def __post_init__(self) -> None:
        salt = to_bytes(self.salt)
        if len(salt) != 32:
            raise ConfigurationError("Session salt must be 32 bytes")
        object.__setattr__(self, "salt", salt)
        object.__setattr__(self, "policies", tuple(self.policies))
        object.__setattr__(self, "actions", tuple(self.actions))


@dataclass(frozen=True)
class Recovery:
    guardians: Tuple[Any, ...]
    threshold: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "guardians", tuple(self.guardians))
        if not 1 <= self.threshold <= len(self.guardians):
            raise ConfigurationError(
                f"Recovery threshold {self.threshold} is out of range for {len(self.guardians)} guardians"
            )


# ==================== Account configuration ====================


@dataclass(frozen=True)
class ExternalInitData:
    """Factory call of an already existing account imported by address."""
    address: str
    factory: str
    factory_data: bytes
    intent_executor_installed: bool = False


@dataclass(frozen=True)
class AccountConfig:
    owners: Optional[OwnerSet] = None
    provider: ProviderKind = field(default_factory=default_provider)
    delegate_key: Optional[Any] = None
    deployer_key: Optional[Any] = None
    init_data: Optional[ExternalInitData] = None
    sessions: Tuple[Session, ...] = ()
    recovery: Optional[Recovery] = None
    salt: Optional[bytes] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "sessions", tuple(self.sessions))

    @property
    def is_delegated(self) -> bool:
        return self.delegate_key is not None

    @property
    def sessions_enabled(self) -> bool:
        return bool(self.sessions)


# ==================== Derived artifacts ====================


@dataclass(frozen=True)
class Module:
    address: str
    kind: ModuleKind
    init_data: bytes = b""
    de_init_data: bytes = b""
    additional_context: bytes = b""


@dataclass(frozen=True)
class ModuleSetup:
    validators: Tuple[Module, ...]
    executors: Tuple[Module, ...]
    fallbacks: Tuple[Module, ...]
    hooks: Tuple[Module, ...]
    registry: str
    attesters: Tuple[str, ...]
    attester_threshold: int

    @property
    def all_modules(self) -> Tuple[Module, ...]:
        return self.validators + self.executors + self.fallbacks + self.hooks


@dataclass(frozen=True)
class DeployArgs:
    factory: Optional[str]
    factory_data: Optional[bytes]
    salt: Optional[bytes] = None
    implementation: Optional[str] = None
    initialization_call_data: Optional[bytes] = None
    hashed_initcode: Optional[bytes] = None


@dataclass(frozen=True)
class Call:
    to: str
    value: int = 0
    data: bytes = b""


@dataclass(frozen=True)
class ValidatorConfig:
    address: str
    is_root: bool = True
