"""Models for rotatable key pairs and their public key records."""

import json
from dataclasses import asdict, dataclass, field
from numbers import Real
from typing import Any, Mapping, Tuple

from .types import (
    DEFAULT_GRACE_DAYS,
    KEY_ID_SEPARATOR,
    SECONDS_PER_DAY,
    InvalidKeyDataError,
)


def format_key_id(name: str, version: str) -> str:
    """Returns the token key identifier for a key name and version."""
    return f"{name}{KEY_ID_SEPARATOR}{version}"


def parse_key_id(key_id: str) -> Tuple[str, str]:
    """
    Split a token key identifier into (name, version).

    Only the first separator is significant: versions never contain one,
    but the remainder is otherwise opaque. An identifier without a
    separator yields an empty version.
    """
    name, _, version = key_id.partition(KEY_ID_SEPARATOR)
    return name, version


def _require(data: Mapping[str, Any], name: str, kind: type) -> Any:
    if not isinstance(data, Mapping):
        raise InvalidKeyDataError(f"Key data must be a mapping, got {type(data).__name__}")
    if name not in data:
        raise InvalidKeyDataError(f"Key data is missing field: {name}")
    value = data[name]
    if kind is Real:
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidKeyDataError(f"Key data field {name} must be a number")
    elif not isinstance(value, kind):
        raise InvalidKeyDataError(f"Key data field {name} must be {kind.__name__}")
    return value


@dataclass
class KeyPair:
    """
    A named, versioned asymmetric key pair on a rotation schedule.

    NOTE: Contains the private key material. Store and transmit it securely;
    values handed out by caches must not be persisted by callers.
    """
    name: str
    version: str
    private_key: str = field(repr=False)
    public_key: str
    expires_at: float
    """Rotation deadline, seconds since the epoch."""
    grace_days: float = DEFAULT_GRACE_DAYS
    """Extra days the public key stays valid beyond expires_at."""

    @property
    def key_id(self) -> str:
        """The `name/version` identifier embedded in signed tokens."""
        return format_key_id(self.name, self.version)

    def to_dict(self) -> dict:
        """Returns a JSON-serializable representation."""
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "KeyPair":
        """Creates a key pair from its stored representation."""
        return cls(
            name=_require(data, "name", str),
            version=_require(data, "version", str),
            private_key=_require(data, "private_key", str),
            public_key=_require(data, "public_key", str),
            expires_at=_require(data, "expires_at", Real),
            grace_days=(
                _require(data, "grace_days", Real)
                if "grace_days" in data
                else DEFAULT_GRACE_DAYS
            ),
        )

    @classmethod
    def from_json(cls, text: str) -> "KeyPair":
        try:
            data = json.loads(text)
        except ValueError as e:
            raise InvalidKeyDataError(f"Key data is not valid JSON: {e}") from e
        return cls.from_dict(data)


@dataclass
class PublicKey:
    """The public half of a key pair, valid through its grace period."""
    name: str
    version: str
    public_key: str
    expires_at: float
    """Seconds since the epoch, already extended by the grace period."""

    @property
    def key_id(self) -> str:
        return format_key_id(self.name, self.version)

    def to_dict(self) -> dict:
        """Returns a JSON-serializable representation."""
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PublicKey":
        """Creates a public key record from its stored representation."""
        return cls(
            name=_require(data, "name", str),
            version=_require(data, "version", str),
            public_key=_require(data, "public_key", str),
            expires_at=_require(data, "expires_at", Real),
        )

    @classmethod
    def from_json(cls, text: str) -> "PublicKey":
        try:
            data = json.loads(text)
        except ValueError as e:
            raise InvalidKeyDataError(f"Key data is not valid JSON: {e}") from e
        return cls.from_dict(data)


def public_key_from_key_pair(key_pair: KeyPair) -> PublicKey:
    """
    Derive the public key record for a key pair.

    The private key is dropped and the expiry is pushed out by the pair's
    grace period, so tokens signed just before rotation keep verifying.

    Args:
        key_pair: The key pair to derive from

    Returns:
        PublicKey with expires_at = key_pair.expires_at + grace_days days
    """
    return PublicKey(
        name=key_pair.name,
        version=key_pair.version,
        public_key=key_pair.public_key,
        expires_at=key_pair.expires_at + key_pair.grace_days * SECONDS_PER_DAY,
    )
