"""Configuration for key caches."""

from dataclasses import dataclass

from .types import (
    DEFAULT_MAX_ENTRIES,
    DEFAULT_RETRY_FIRST_DELAY_MS,
    DEFAULT_RETRY_MAX_DELAY_MS,
)


@dataclass
class CacheConfig:
    """Configuration for a perishable retry cache."""

    max_entries: int = DEFAULT_MAX_ENTRIES
    """Maximum number of cache keys; least-recently-used keys are evicted."""

    retry_first_delay_ms: int = DEFAULT_RETRY_FIRST_DELAY_MS
    """Milliseconds of delay after the first consecutive fetch failure."""

    retry_max_delay_ms: int = DEFAULT_RETRY_MAX_DELAY_MS
    """Ceiling for the doubled delay after consecutive fetch failures."""

    def __post_init__(self) -> None:
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {self.max_entries}")
        if self.retry_first_delay_ms < 0:
            raise ValueError(
                f"retry_first_delay_ms must not be negative, got {self.retry_first_delay_ms}"
            )
        if self.retry_max_delay_ms < self.retry_first_delay_ms:
            raise ValueError(
                "retry_max_delay_ms must be at least retry_first_delay_ms "
                f"({self.retry_max_delay_ms} < {self.retry_first_delay_ms})"
            )

    @classmethod
    def signing(cls) -> "CacheConfig":
        """Creates configuration for a signer that uses a single key name."""
        return cls(max_entries=1)

    @classmethod
    def verification(cls) -> "CacheConfig":
        """Creates configuration for a verifier spanning one rotation (two versions)."""
        return cls(max_entries=2)
