"""keyrotor cache module."""

from .perishable import FetchContext, PerishableRetryCache, wall_clock_ms
from .key_pair_cache import KeyPairCache
from .public_key_cache import PublicKeyCache

__all__ = [
    "FetchContext",
    "PerishableRetryCache",
    "wall_clock_ms",
    "KeyPairCache",
    "PublicKeyCache",
]
