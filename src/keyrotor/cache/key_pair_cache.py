"""Key pair cache for signing with rotatable, remotely stored keys."""

from functools import partial
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from ..config import CacheConfig
from ..logging import get_logger
from ..models import KeyPair
from ..types import InvalidKeyDataError
from .perishable import Clock, FetchContext, PerishableRetryCache

logger = get_logger(__name__)

FetchKeyPair = Callable[[str], Awaitable[Union[KeyPair, Mapping[str, Any]]]]


def _as_key_pair(data: Union[KeyPair, Mapping[str, Any]]) -> KeyPair:
    if isinstance(data, KeyPair):
        return data
    if isinstance(data, Mapping):
        return KeyPair.from_dict(data)
    raise InvalidKeyDataError(f"Expected key pair data, got {type(data).__name__}")


class KeyPairCache:
    """
    Caches the latest version of named key pairs.

    ``fetch_key_pair(name)`` should return the *latest* version of the named
    key pair. Once a cached pair passes its ``expires_at`` the next lookup
    fetches again, expecting the rotation process to have published a newer
    version. A fetched pair that is already expired fails with StaleKeyError.
    Failed fetches are retried only after a per-key backoff delay; until
    then the failure is raised again without touching the store.

    Example usage:
        ```python
        cache = KeyPairCache(store.fetch_key_pair, CacheConfig.signing())
        key_pair = await cache.get_key_pair("token-signing")
        ```
    """

    def __init__(
        self,
        fetch_key_pair: FetchKeyPair,
        config: Optional[CacheConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Creates a new key pair cache.

        Args:
            fetch_key_pair: Async callable returning the latest KeyPair (or its
                dict form) for a key name.
            config: Capacity and retry settings.
            clock: Millisecond clock, for tests.
        """
        self._fetch_key_pair = fetch_key_pair
        self._cache = PerishableRetryCache(config, clock)

    async def get_key_pair(self, name: str) -> KeyPair:
        """
        Returns the named key pair, from cache when still valid.

        NOTE: The returned key pair includes the private key.
        """
        return await self._cache.get(name, partial(self._produce, name))

    def invalidate(self, name: str) -> None:
        """Forget the cached key pair (and retry state) for a name."""
        self._cache.invalidate(name)

    async def _produce(self, name: str, context: FetchContext) -> KeyPair:
        key_pair = _as_key_pair(await self._fetch_key_pair(name))
        context.expires_at_ms = key_pair.expires_at * 1000
        logger.info("Key pair fetched", key_name=name, key_version=key_pair.version)
        return key_pair
