"""keyrotor storage module."""

from .key_store import KeyStore, InMemoryKeyStore

__all__ = [
    "KeyStore",
    "InMemoryKeyStore",
]
