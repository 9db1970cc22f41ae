"""
Wallet error taxonomy.

Every failure that can reach the user is one of these types. Errors are
tagged with an ``ErrorKind`` where they originate (ramp client, token
gateway, validators) and travel untranslated up to the orchestrator, which
buckets them by type.
"""

import enum


class ErrorKind(str, enum.Enum):
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    CONNECTIVITY = "connectivity"
    PROVIDER = "provider"
    ALREADY_PROCESSING = "already_processing"
    REQUEST = "request"
    DOMAIN = "domain"
    UNEXPECTED = "unexpected"


GENERIC_MESSAGE = "An unexpected error occurred. Please try again."


class WalletError(Exception):
    """Base class for all classified wallet errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED
    default_message = GENERIC_MESSAGE

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        """Message safe to show to the user."""
        return self.message


class ConfigurationError(WalletError):
    """Missing API credentials, URL, or required app configuration."""

    kind = ErrorKind.CONFIGURATION
    default_message = "Service configuration error. Please contact support."

    @property
    def user_message(self) -> str:
        # Internal detail stays in logs
        return self.default_message


class ValidationError(WalletError):
    """User input rejected before any external call. Attached to a form field."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ConnectivityError(WalletError):
    """No response reached us from the provider or the chain node."""

    kind = ErrorKind.CONNECTIVITY
    default_message = "Network error. Please check your connection and try again."

    @property
    def user_message(self) -> str:
        return self.default_message


class ProviderError(WalletError):
    """The ramp provider returned a structured error body."""

    kind = ErrorKind.PROVIDER

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AlreadyProcessingError(ProviderError):
    """The provider is already processing this order. Treated as progress."""

    kind = ErrorKind.ALREADY_PROCESSING


class RequestConstructionError(WalletError):
    """A request could not be built locally (bad URL, unserialisable body)."""

    kind = ErrorKind.REQUEST

    @property
    def user_message(self) -> str:
        return GENERIC_MESSAGE


class DomainError(WalletError):
    """Business rule violation that requires a fresh attempt."""

    kind = ErrorKind.DOMAIN


class ChainGuardError(DomainError):
    """On-chain guard failed: paused, blacklisted, or insufficient balance."""


class QuoteExpiredError(DomainError):
    """The quote's guaranteed-until time passed before the transfer was created."""

    default_message = "Quote has expired. Please try again."


def classify(exc: BaseException) -> WalletError:
    """Wrap any exception that escaped classification as an UNEXPECTED error."""
    if isinstance(exc, WalletError):
        return exc
    return WalletError(GENERIC_MESSAGE)
