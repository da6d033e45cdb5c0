"""Type definitions for keyrotor."""

from enum import Enum
from typing import Hashable, Optional


# Key identifier constants
KEY_ID_SEPARATOR = "/"

# Rotation constants
SECONDS_PER_DAY = 24 * 60 * 60
DEFAULT_GRACE_DAYS = 1

# Cache defaults
DEFAULT_MAX_ENTRIES = 16
DEFAULT_RETRY_FIRST_DELAY_MS = 500
DEFAULT_RETRY_MAX_DELAY_MS = 120_000


class ErrorCode(Enum):
    """Failure categories reported by keyrotor errors."""
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    STALE = "stale"
    KEY_MISMATCH = "key_mismatch"
    VERIFICATION_FAILED = "verification_failed"
    SIGNING_FAILED = "signing_failed"
    INVALID_KEY_DATA = "invalid_key_data"
    UNSUPPORTED_KEY_TYPE = "unsupported_key_type"


# Exception types
class KeyRotorError(Exception):
    """Base exception for keyrotor errors."""
    code: Optional[ErrorCode] = None


class KeyNotFoundError(KeyRotorError):
    """Key not found in the backing store."""
    code = ErrorCode.NOT_FOUND

    def __init__(self, name: str, version: Optional[str] = None) -> None:
        if version is None:
            super().__init__(f"Key not found: {name}")
        else:
            super().__init__(f"Key not found: {name}{KEY_ID_SEPARATOR}{version}")
        self.name = name
        self.version = version


class TransientFetchError(KeyRotorError):
    """Backing store failed in a way that may clear on retry."""
    code = ErrorCode.TRANSIENT


class StaleKeyError(KeyRotorError):
    """A resolved value's validity window has already elapsed."""
    code = ErrorCode.STALE

    def __init__(self, key: Hashable) -> None:
        super().__init__(f"Cached value has expired: {key!r}")
        self.key = key


class KeyMismatchError(KeyRotorError):
    """Token declares a different key name than the one requested."""
    code = ErrorCode.KEY_MISMATCH

    def __init__(self, expected: str, declared: str) -> None:
        super().__init__(
            f"Token key name {declared!r} does not match expected {expected!r}"
        )
        self.expected = expected
        self.declared = declared


class VerificationError(KeyRotorError):
    """Token verification failed."""
    code = ErrorCode.VERIFICATION_FAILED


class SigningError(KeyRotorError):
    """Token signing failed."""
    code = ErrorCode.SIGNING_FAILED


class InvalidKeyDataError(KeyRotorError):
    """Key record is missing fields or has the wrong shape."""
    code = ErrorCode.INVALID_KEY_DATA


class UnsupportedKeyTypeError(KeyRotorError):
    """Requested key type cannot be generated."""
    code = ErrorCode.UNSUPPORTED_KEY_TYPE

    def __init__(self, key_type: str) -> None:
        super().__init__(f"Unsupported key type: {key_type}")
        self.key_type = key_type
