"""Error taxonomy for memassist."""

from enum import Enum


class MemassistError(Exception):
    """Base class for all memassist errors."""

    pass


class ConfigError(MemassistError):
    """Raised when the startup configuration is missing or invalid."""

    pass


class ValidationError(MemassistError):
    """Raised when input is rejected before touching the store."""

    pass


class InvalidCategory(ValidationError):
    """Raised when a fact category is outside the fixed set."""

    pass


class InvalidArguments(ValidationError):
    """Raised when tool arguments fail schema validation."""

    pass


class NotFoundError(MemassistError):
    """Raised when a record id does not exist."""

    pass


class StoreError(MemassistError):
    """Raised when a store transaction fails and is rolled back."""

    pass


class ApiErrorKind(Enum):
    """Recoverable failure classes for model exchanges."""

    RATE_LIMITED = "rate_limited"
    AUTH = "auth"
    TIMEOUT = "timeout"
    TRANSIENT = "transient"


class ExternalApiError(MemassistError):
    """A recoverable model API failure, handled by key rotation."""

    def __init__(self, kind: ApiErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind


class UnrecoverableApiError(MemassistError):
    """A model API failure that retrying with another key will not fix."""

    pass


class NoAvailableKey(MemassistError):
    """Raised when every configured key is cooling down."""

    pass


class ExhaustedKeysError(MemassistError):
    """Raised when an exchange failed on every attempt it was allowed."""

    pass


class EntityExtractionError(MemassistError):
    """Raised inside the extractor; never escapes a document save."""

    pass
