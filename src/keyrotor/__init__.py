"""
keyrotor - Cached, rotation-aware key pairs for signing and verifying tokens

Fetches rotatable key pairs from a slow, unreliable backing store (such as a
cloud secrets service), caches them until they expire, and backs off on
fetch failures.
"""

from .types import (
    KEY_ID_SEPARATOR,
    SECONDS_PER_DAY,
    DEFAULT_GRACE_DAYS,
    ErrorCode,
    KeyRotorError,
    KeyNotFoundError,
    TransientFetchError,
    StaleKeyError,
    KeyMismatchError,
    VerificationError,
    SigningError,
    InvalidKeyDataError,
    UnsupportedKeyTypeError,
)
from .models import (
    KeyPair,
    PublicKey,
    public_key_from_key_pair,
    format_key_id,
    parse_key_id,
)
from .config import CacheConfig
from .keys import generate_key_pair, create_key_pair
from .cache import (
    FetchContext,
    PerishableRetryCache,
    KeyPairCache,
    PublicKeyCache,
)
from .tokens import JwtSigner, JwtVerifier, read_key_id
from .storage import KeyStore, InMemoryKeyStore
from .logging import configure_logging, get_logger

__version__ = "0.1.0"

__all__ = [
    # Models
    "KeyPair",
    "PublicKey",
    "public_key_from_key_pair",
    "format_key_id",
    "parse_key_id",
    # Keys
    "generate_key_pair",
    "create_key_pair",
    # Cache
    "CacheConfig",
    "FetchContext",
    "PerishableRetryCache",
    "KeyPairCache",
    "PublicKeyCache",
    # Tokens
    "JwtSigner",
    "JwtVerifier",
    "read_key_id",
    # Storage
    "KeyStore",
    "InMemoryKeyStore",
    # Logging
    "configure_logging",
    "get_logger",
    # Errors
    "ErrorCode",
    "KeyRotorError",
    "KeyNotFoundError",
    "TransientFetchError",
    "StaleKeyError",
    "KeyMismatchError",
    "VerificationError",
    "SigningError",
    "InvalidKeyDataError",
    "UnsupportedKeyTypeError",
    # Constants
    "KEY_ID_SEPARATOR",
    "SECONDS_PER_DAY",
    "DEFAULT_GRACE_DAYS",
]
