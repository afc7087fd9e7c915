"""
Account-abstraction exception hierarchy for aakit.

Provides typed exceptions for account configuration, signing, deployment and
execution so callers can distinguish a bad configuration from a missing
capability, a conflicting on-chain state, or a failed submission.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class AccountError(Exception):
    """Base exception for all account-related errors.

    Attributes:
        message: Human-readable error description
        details: Additional context (provider, stage, ...)
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    @property
    def provider(self) -> Optional[str]:
        return self.details.get("provider")

    @property
    def stage(self) -> Optional[str]:
        return self.details.get("stage")


# ==================== Configuration Errors ====================


class ConfigurationError(AccountError):
    """Raised when an account configuration cannot be served as requested.

    Examples: missing delegate or deployer key for a mode, an unsupported
    provider/feature combination, malformed externally supplied init data.
    """
    pass


class EoaRequiredError(ConfigurationError):
    """Raised when a delegation (EIP-7702) flow has no delegate key."""

    def __init__(self, message: str = "EIP-7702 accounts must have an EOA account", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class UnsupportedConfigurationError(ConfigurationError):
    """Raised when supplied init data matches no known factory schema."""
    pass


class UnsupportedForProviderError(ConfigurationError):
    """Raised when a feature is not available for the chosen provider."""

    def __init__(self, feature: str, provider: str, **kwargs: Any) -> None:
        details = dict(kwargs.pop("details", None) or {})
        details.setdefault("provider", provider)
        details.setdefault("feature", feature)
        super().__init__(f"{feature} is not supported for {provider} accounts", details=details, **kwargs)
        self.feature = feature


class FactoryArgsUnavailableError(ConfigurationError):
    """Raised when deploy args are incomplete for a factory deployment."""

    def __init__(self, message: str = "Factory args not available", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class OwnersRequiredError(ConfigurationError):
    """Raised when an operation needs an owner set and none is configured."""

    def __init__(self, message: str = "Owners field is required", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


# ==================== Capability Errors ====================


class CapabilityError(AccountError):
    """Raised when a key or account lacks a capability the operation needs."""
    pass


class SigningUnsupportedError(CapabilityError):
    """Raised when a key exposes no signing capability."""

    def __init__(self, message: str = "Signing not supported for the account", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class SessionsNotEnabledError(CapabilityError):
    """Raised when session signing is used without the session validator."""

    def __init__(self, message: str = "Smart sessions are not enabled for this account", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ModuleNotInstalledError(CapabilityError):
    """Raised when a required module (e.g. social recovery) is not installed."""
    pass


# ==================== State Conflict Errors ====================


class StateConflictError(AccountError):
    """Raised when on-chain state conflicts with the requested operation."""
    pass


class ExistingDelegationNotSupportedError(StateConflictError):
    """Raised when the address already carries an EIP-7702 delegation marker."""

    def __init__(self, address: str, **kwargs: Any) -> None:
        details = dict(kwargs.pop("details", None) or {})
        details.setdefault("address", address)
        super().__init__(
            f"Existing EIP-7702 accounts are not yet supported: {address}",
            details=details,
            **kwargs,
        )
        self.address = address


# ==================== Execution Errors ====================


class ExecutionError(AccountError):
    """Raised when a chain call reverts or a submission fails."""
    pass


class ExecutionFailedError(ExecutionError):
    """Raised when a submitted transaction, user operation, or intent failed."""

    def __init__(
        self,
        message: str,
        reference: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.reference = reference


class ExecutionTimeoutError(ExecutionError):
    """Raised when a status wait exceeds its caller-supplied bound."""
    recoverable = True

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.timeout = timeout


# ==================== Utility Functions ====================


def is_recoverable_error(exc: Exception) -> bool:
    """Check if an exception represents a recoverable error.

    Args:
        exc: The exception to check

    Returns:
        True if the error is recoverable and the operation can be retried
    """
    if isinstance(exc, AccountError):
        return exc.recoverable

    recoverable_types = (
        ConnectionError,
        TimeoutError,
    )
    return isinstance(exc, recoverable_types)


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, AccountError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, ExecutionFailedError) and exc.reference:
        context["reference"] = exc.reference

    if isinstance(exc, ExecutionTimeoutError) and exc.timeout is not None:
        context["timeout"] = exc.timeout

    return context
