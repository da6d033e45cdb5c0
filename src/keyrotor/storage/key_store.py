"""Key store interface and implementations."""

from abc import ABC, abstractmethod
from dataclasses import replace

from ..models import KeyPair, PublicKey, public_key_from_key_pair
from ..types import KeyNotFoundError


class KeyStore(ABC):
    """
    Interface for the backing store holding rotated key pairs.

    The store keeps the latest key pair for each name, plus the public key
    record of every published version. Its fetch methods plug directly into
    KeyPairCache and PublicKeyCache.
    """

    @abstractmethod
    async def store(self, key_pair: KeyPair) -> None:
        """Publish a key pair as the latest version of its name."""
        ...

    @abstractmethod
    async def fetch_key_pair(self, name: str) -> KeyPair:
        """Fetch the latest key pair for a name."""
        ...

    @abstractmethod
    async def fetch_public_key(self, name: str, version: str) -> PublicKey:
        """Fetch the public key record for a key version."""
        ...


class InMemoryKeyStore(KeyStore):
    """
    In-memory implementation of KeyStore (for testing).

    WARNING: This is NOT secure for production use. Private keys are held in
    memory without encryption and are lost when the process exits.
    """

    def __init__(self) -> None:
        self._key_pairs: dict[str, KeyPair] = {}
        self._public_keys: dict[tuple[str, str], PublicKey] = {}

    async def store(self, key_pair: KeyPair) -> None:
        """Publish a key pair as the latest version of its name."""
        self._key_pairs[key_pair.name] = replace(key_pair)
        self._public_keys[(key_pair.name, key_pair.version)] = public_key_from_key_pair(key_pair)

    async def fetch_key_pair(self, name: str) -> KeyPair:
        """Fetch the latest key pair for a name."""
        key_pair = self._key_pairs.get(name)
        if key_pair is None:
            raise KeyNotFoundError(name)
        return replace(key_pair)

    async def fetch_public_key(self, name: str, version: str) -> PublicKey:
        """Fetch the public key record for a key version."""
        record = self._public_keys.get((name, version))
        if record is None:
            raise KeyNotFoundError(name, version)
        return replace(record)

    async def delete(self, name: str) -> None:
        """Delete a key name with all of its public key versions."""
        self._key_pairs.pop(name, None)
        for key in [k for k in self._public_keys if k[0] == name]:
            del self._public_keys[key]

    async def list_names(self) -> list[str]:
        """List all stored key names."""
        return list(self._key_pairs.keys())

    async def list_versions(self, name: str) -> list[str]:
        """List the published versions of a key name."""
        return [version for (key_name, version) in self._public_keys if key_name == name]
