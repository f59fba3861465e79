"""Feature flags selecting the engine's storage and locking backends.

Usage:
    from src.shared.feature_flags import get_feature_flags, FeatureFlags

    flags = get_feature_flags()
    if flags.is_enabled(FeatureFlags.USE_DATABASE_PERSISTENCE):
        # SQLAlchemy-backed stores
    else:
        # In-memory stores

Environment Variables:
    FF_USE_DATABASE_PERSISTENCE: Persist profiles, rules and events in PostgreSQL (default: false)
    FF_USE_DISTRIBUTED_LOCKS: Serialize profile writes through Redis locks (default: false)

Both may also be set in ``.env``; a process environment variable wins.
"""

from enum import Enum
from functools import lru_cache
import logging
import os

from src.shared.config import get_settings

logger = logging.getLogger(__name__)

_TRUTHY = frozenset({"true", "1", "yes", "on"})


class FeatureFlags(str, Enum):
    """Backend selection flags, each read from an FF_ prefixed variable."""

    USE_DATABASE_PERSISTENCE = "use_database_persistence"
    USE_DISTRIBUTED_LOCKS = "use_distributed_locks"

    @property
    def env_key(self) -> str:
        return f"FF_{self.value.upper()}"

    @property
    def settings_field(self) -> str:
        return f"ff_{self.value}"


class FeatureFlagManager:
    """Singleton flag reader with runtime overrides for tests and rollback."""

    _instance: "FeatureFlagManager | None" = None

    def __new__(cls) -> "FeatureFlagManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._overrides: dict[FeatureFlags, bool] = {}
        self._initialized = True
        logger.info("FeatureFlagManager initialized")

    def is_enabled(self, flag: FeatureFlags) -> bool:
        """Check a flag.

        Resolution order: runtime override, then the FF_ environment
        variable, then the matching ``Settings`` field (which also covers
        ``.env``). Anything unset is off.
        """
        if flag in self._overrides:
            return self._overrides[flag]

        raw = os.getenv(flag.env_key)
        if raw is not None:
            return raw.strip().lower() in _TRUTHY

        return bool(getattr(get_settings(), flag.settings_field, False))

    def set_override(self, flag: FeatureFlags, enabled: bool) -> None:
        """Force a flag on or off until the override is cleared."""
        self._overrides[flag] = enabled
        logger.info(f"Feature flag {flag.value} overridden to {enabled}")

    def enable(self, flag: FeatureFlags) -> None:
        self.set_override(flag, True)

    def disable(self, flag: FeatureFlags) -> None:
        self.set_override(flag, False)

    def clear_override(self, flag: FeatureFlags) -> None:
        if self._overrides.pop(flag, None) is not None:
            logger.info(f"Feature flag override cleared: {flag.value}")

    def clear_all_overrides(self) -> None:
        self._overrides.clear()
        logger.info("All feature flag overrides cleared")

    def get_all_states(self) -> dict[str, bool]:
        """Current value of every flag, keyed by flag name."""
        return {flag.value: self.is_enabled(flag) for flag in FeatureFlags}

    def __repr__(self) -> str:
        enabled = [name for name, on in self.get_all_states().items() if on]
        return f"FeatureFlagManager(enabled={enabled})"


@lru_cache
def get_feature_flags() -> FeatureFlagManager:
    """Get the singleton FeatureFlagManager instance."""
    return FeatureFlagManager()


def is_database_persistence_enabled() -> bool:
    return get_feature_flags().is_enabled(FeatureFlags.USE_DATABASE_PERSISTENCE)


def is_distributed_locks_enabled() -> bool:
    return get_feature_flags().is_enabled(FeatureFlags.USE_DISTRIBUTED_LOCKS)
