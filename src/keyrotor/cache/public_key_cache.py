"""Public key cache for verifying tokens signed with rotated keys."""

from functools import partial
from typing import Any, Awaitable, Callable, Mapping, Optional, Tuple, Union

from ..config import CacheConfig
from ..logging import get_logger
from ..models import PublicKey
from ..types import InvalidKeyDataError, StaleKeyError
from .perishable import Clock, FetchContext, PerishableRetryCache

logger = get_logger(__name__)

FetchPublicKey = Callable[[str, str], Awaitable[Union[PublicKey, Mapping[str, Any]]]]


def _as_public_key(data: Union[PublicKey, Mapping[str, Any]]) -> PublicKey:
    if isinstance(data, PublicKey):
        return data
    if isinstance(data, Mapping):
        return PublicKey.from_dict(data)
    raise InvalidKeyDataError(f"Expected public key data, got {type(data).__name__}")


class PublicKeyCache:
    """
    Caches public keys by name and version.

    A version's expiry never changes, so once a version has been fetched
    successfully it is never fetched again: after it expires, lookups fail
    with StaleKeyError (a newer version should be requested instead). Other
    fetch failures are retried after a per-key backoff delay.
    """

    def __init__(
        self,
        fetch_public_key: FetchPublicKey,
        config: Optional[CacheConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Creates a new public key cache.

        Args:
            fetch_public_key: Async callable returning the PublicKey (or its
                dict form) for a key name and version.
            config: Capacity and retry settings.
            clock: Millisecond clock, for tests.
        """
        self._fetch_public_key = fetch_public_key
        self._cache = PerishableRetryCache(config, clock)

    async def get_public_key(self, name: str, version: str) -> str:
        """Returns the public key material for a key version."""
        key = (name, version)
        record = await self._cache.get(key, partial(self._produce, key))
        return record.public_key

    def invalidate(self, name: str, version: str) -> None:
        """Forget a cached key version, allowing it to be fetched again."""
        self._cache.invalidate((name, version))

    async def _produce(self, key: Tuple[str, str], context: FetchContext) -> PublicKey:
        if context.settled:
            raise StaleKeyError(key)

        name, version = key
        record = _as_public_key(await self._fetch_public_key(name, version))
        context.expires_at_ms = record.expires_at * 1000
        context.settled = True
        logger.info("Public key fetched", key_name=name, key_version=version)
        return record
