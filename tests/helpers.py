"""Test doubles for keyrotor tests."""

from keyrotor.keys import create_key_pair
from keyrotor.storage import InMemoryKeyStore


class FakeClock:
    """Controllable millisecond clock."""

    def __init__(self, now: float = 0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingStore(InMemoryKeyStore):
    """In-memory store that records every fetch."""

    def __init__(self) -> None:
        super().__init__()
        self.key_pair_fetches: list[str] = []
        self.public_key_fetches: list[tuple[str, str]] = []

    async def fetch_key_pair(self, name):
        self.key_pair_fetches.append(name)
        return await super().fetch_key_pair(name)

    async def fetch_public_key(self, name, version):
        self.public_key_fetches.append((name, version))
        return await super().fetch_public_key(name, version)

    async def publish(self, name, version, expires_at, grace_days=1):
        """Create an ES256 key pair and publish it as the latest version."""
        key_pair = create_key_pair(
            "ec",
            {"named_curve": "prime256v1"},
            name=name,
            version=version,
            expires_at=expires_at,
            grace_days=grace_days,
        )
        await self.store(key_pair)
        return key_pair


def fake_generator(key_type, options):
    """Key generation stand-in returning fixed material."""
    return "TEST_PUBLICKEY_VALUE", "TEST_PRIVATEKEY_VALUE"
