"""Unified service registry for dependency injection.

This module provides a centralized factory that wires the adaptation
engine with in-memory or database-backed stores based on feature flags.

Usage:
    from src.shared.service_registry import get_service_registry

    registry = get_service_registry()
    engine = registry.get_adaptation_engine()

The registry automatically:
- Uses SQLAlchemy stores when FF_USE_DATABASE_PERSISTENCE=true
- Uses Redis profile locks when FF_USE_DISTRIBUTED_LOCKS=true
- Falls back to in-memory stores and locks when those cannot be built
- Caches the engine instance for consistent singleton behavior
"""

from functools import lru_cache
from typing import TYPE_CHECKING
import logging

from src.shared.config import get_settings
from src.shared.feature_flags import FeatureFlags, get_feature_flags
from src.shared.logging_config import setup_logging

if TYPE_CHECKING:
    from src.modules.adaptation.interface import IEventStore, IProfileStore, IRuleStore
    from src.modules.adaptation.locks import ILearnerLock
    from src.modules.adaptation.service import AdaptationEngineService

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Adaptation engine factory with feature flag support.

    Features:
    - Lazy engine instantiation
    - Feature flag-based store and lock selection
    - Automatic fallback when a backend cannot be built
    - Engine instance caching
    """

    _instance: "ServiceRegistry | None" = None

    def __new__(cls) -> "ServiceRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._flags = get_feature_flags()
        self._adaptation_engine: "AdaptationEngineService | None" = None
        self._initialized = True
        logger.info("ServiceRegistry initialized")

    def get_adaptation_engine(self) -> "AdaptationEngineService":
        """Get the adaptation engine instance.

        Returns:
            AdaptationEngineService wired for the current feature flags
        """
        if self._adaptation_engine is None:
            self._adaptation_engine = self._create_adaptation_engine()
        return self._adaptation_engine

    def _create_stores(
        self,
    ) -> tuple["IProfileStore", "IRuleStore", "IEventStore"]:
        """Create stores based on feature flags."""
        settings = get_settings()

        if self._flags.is_enabled(FeatureFlags.USE_DATABASE_PERSISTENCE):
            try:
                from src.modules.adaptation.db_store import (
                    DatabaseEventStore,
                    DatabaseProfileStore,
                    DatabaseRuleStore,
                )

                logger.info("Creating database adaptation stores")
                return (
                    DatabaseProfileStore(history_limit=settings.mastery_history_limit),
                    DatabaseRuleStore(),
                    DatabaseEventStore(),
                )
            except Exception as e:
                logger.warning(f"Failed to create database adaptation stores, falling back: {e}")

        from src.modules.adaptation.store import (
            InMemoryEventStore,
            InMemoryProfileStore,
            InMemoryRuleStore,
        )

        logger.info("Creating in-memory adaptation stores")
        event_store = InMemoryEventStore()
        return (
            InMemoryProfileStore(
                history_limit=settings.mastery_history_limit,
                event_store=event_store,
            ),
            InMemoryRuleStore(),
            event_store,
        )

    def _create_lock(self) -> "ILearnerLock":
        """Create the per-learner lock based on feature flags."""
        if self._flags.is_enabled(FeatureFlags.USE_DISTRIBUTED_LOCKS):
            try:
                from src.modules.adaptation.locks import RedisLearnerLock

                settings = get_settings()
                logger.info("Creating RedisLearnerLock")
                return RedisLearnerLock(
                    ttl_seconds=settings.profile_lock_ttl_seconds,
                    retry_delay=settings.profile_lock_retry_delay_seconds,
                    max_retries=settings.profile_lock_max_retries,
                )
            except Exception as e:
                logger.warning(f"Failed to create RedisLearnerLock, falling back: {e}")

        from src.modules.adaptation.locks import InProcessLearnerLock

        logger.info("Creating InProcessLearnerLock")
        return InProcessLearnerLock()

    def _create_adaptation_engine(self) -> "AdaptationEngineService":
        from src.modules.adaptation.service import AdaptationEngineService

        setup_logging(get_settings())
        profile_store, rule_store, event_store = self._create_stores()
        return AdaptationEngineService(
            profile_store=profile_store,
            rule_store=rule_store,
            event_store=event_store,
            lock=self._create_lock(),
            settings=get_settings(),
        )

    def clear_cache(self) -> None:
        """Clear the cached engine.

        Use this when feature flags change at runtime to force
        recreation with new settings.
        """
        self._adaptation_engine = None
        logger.info("ServiceRegistry cache cleared")

    def get_service_info(self) -> dict[str, str]:
        """Get information about the instantiated engine and its backends.

        Returns:
            Dictionary of component names to their implementation types
        """
        engine = self._adaptation_engine
        if engine is None:
            return {}
        return {
            "adaptation": type(engine).__name__,
            "profile_store": type(engine._profiles).__name__,
            "rule_store": type(engine._rules).__name__,
            "event_store": type(engine._events).__name__,
            "lock": type(engine._lock).__name__,
        }

    def __repr__(self) -> str:
        db_enabled = self._flags.is_enabled(FeatureFlags.USE_DATABASE_PERSISTENCE)
        return f"ServiceRegistry(db_enabled={db_enabled}, services={self.get_service_info()})"


@lru_cache
def get_service_registry() -> ServiceRegistry:
    """Get the singleton ServiceRegistry instance.

    Returns:
        The shared ServiceRegistry instance
    """
    return ServiceRegistry()


def get_adaptation_engine() -> "AdaptationEngineService":
    """Get the adaptation engine from the registry.

    This is the recommended way to get an engine instance,
    as it respects feature flags and provides fallback behavior.
    """
    return get_service_registry().get_adaptation_engine()
