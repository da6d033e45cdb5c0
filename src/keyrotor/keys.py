"""Key pair generation for keyrotor."""

from typing import Any, Callable, Mapping, Optional, Tuple

from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from .models import KeyPair
from .types import DEFAULT_GRACE_DAYS, KEY_ID_SEPARATOR, UnsupportedKeyTypeError

# Curve names accepted for "ec" keys (OpenSSL, SEC and NIST spellings)
EC_CURVES = {
    "prime256v1": ec.SECP256R1,
    "secp256r1": ec.SECP256R1,
    "P-256": ec.SECP256R1,
    "secp384r1": ec.SECP384R1,
    "P-384": ec.SECP384R1,
    "secp521r1": ec.SECP521R1,
    "P-521": ec.SECP521R1,
    "secp256k1": ec.SECP256K1,
}

DEFAULT_EC_CURVE = "prime256v1"
DEFAULT_RSA_KEY_SIZE = 2048
DEFAULT_RSA_PUBLIC_EXPONENT = 65537

_ALLOWED_OPTIONS = {
    "rsa": {"key_size", "public_exponent"},
    "ec": {"named_curve"},
    "ed25519": set(),
    "ed448": set(),
}

KeyGenerator = Callable[[str, Mapping[str, Any]], Tuple[str, str]]


def generate_key_pair(
    key_type: str,
    options: Optional[Mapping[str, Any]] = None,
) -> Tuple[str, str]:
    """
    Generate a new asymmetric key pair as PEM text.

    Args:
        key_type: "rsa", "ec", "ed25519" or "ed448"
        options: Type-specific options. "rsa" accepts key_size and
            public_exponent; "ec" accepts named_curve.

    Returns:
        Tuple of (public_key, private_key): SubjectPublicKeyInfo and
        unencrypted PKCS#8 PEM strings

    Raises:
        UnsupportedKeyTypeError: If the key type is unknown
        ValueError: If an option is unknown or invalid
    """
    options = dict(options or {})
    if key_type not in _ALLOWED_OPTIONS:
        raise UnsupportedKeyTypeError(key_type)

    unknown = set(options) - _ALLOWED_OPTIONS[key_type]
    if unknown:
        raise ValueError(f"Unknown options for {key_type} keys: {', '.join(sorted(unknown))}")

    if key_type == "rsa":
        private_key = rsa.generate_private_key(
            public_exponent=options.get("public_exponent", DEFAULT_RSA_PUBLIC_EXPONENT),
            key_size=options.get("key_size", DEFAULT_RSA_KEY_SIZE),
        )
    elif key_type == "ec":
        curve_name = options.get("named_curve", DEFAULT_EC_CURVE)
        curve = EC_CURVES.get(curve_name)
        if curve is None:
            raise ValueError(f"Unsupported EC curve: {curve_name}")
        private_key = ec.generate_private_key(curve())
    elif key_type == "ed25519":
        private_key = ed25519.Ed25519PrivateKey.generate()
    else:
        private_key = ed448.Ed448PrivateKey.generate()

    private_pem = private_key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    ).decode("ascii")
    public_pem = private_key.public_key().public_bytes(
        Encoding.PEM, PublicFormat.SubjectPublicKeyInfo
    ).decode("ascii")
    return public_pem, private_pem


def create_key_pair(
    key_type: str,
    options: Optional[Mapping[str, Any]],
    name: str,
    version: str,
    expires_at: float,
    grace_days: float = DEFAULT_GRACE_DAYS,
    generator: KeyGenerator = generate_key_pair,
) -> KeyPair:
    """
    Create a new key pair wrapped in rotation metadata.

    ``version`` must distinguish this pair from other versions sharing
    ``name``; it is otherwise opaque. ``expires_at`` would typically come
    from the rotation schedule. With AWS Secrets Manager rotation, for
    example, ``name`` maps to the SecretId, ``version`` to the rotation
    token or SecretVersionId, and the result's JSON form is the secret value.

    Args:
        key_type: Key type passed to the generator ("rsa", "ec", ...)
        options: Type-specific generator options
        name: Name of the key; must not contain "/"
        version: Key version; must not contain "/"
        expires_at: Rotation deadline, seconds since the epoch
        grace_days: Additional days of public key validity beyond expires_at
        generator: Key generation primitive (default: generate_key_pair)

    Returns:
        The new KeyPair, including its private key
    """
    if KEY_ID_SEPARATOR in name:
        raise ValueError(f"Key name must not contain {KEY_ID_SEPARATOR!r}: {name!r}")
    if KEY_ID_SEPARATOR in version:
        raise ValueError(f"Key version must not contain {KEY_ID_SEPARATOR!r}: {version!r}")
    if grace_days < 0:
        raise ValueError(f"grace_days must not be negative, got {grace_days}")

    public_key, private_key = generator(key_type, dict(options or {}))

    return KeyPair(
        name=name,
        version=version,
        private_key=private_key,
        public_key=public_key,
        expires_at=expires_at,
        grace_days=grace_days,
    )
