"""
Service Container - Dependency Injection Container

Composes the progression engines around one store, one event bus and one
clock. Engines are lazy-loaded on first access and share the same
collaborators, so each container is an isolated world (one per user in a
host app, one per test).
"""

from dataclasses import dataclass, field
from typing import Callable, Optional
import logging
import random

from stretch_progress.config import STORE_TIMEOUT_SECONDS
from stretch_progress.gamification.events import EventBus
from stretch_progress.storage.base import ProgressStore
from stretch_progress.utils.datetime_helpers import now_local

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for the progression engines.

    Engines are lazy-loaded on first access via properties.
    Infrastructure dependencies (store, event bus, clock, rng) are injected.
    """

    # Infrastructure dependencies (injected)
    store: ProgressStore
    event_bus: EventBus = field(default_factory=EventBus)
    clock: Callable = now_local
    rng: Optional[random.Random] = None
    timeout: float = STORE_TIMEOUT_SECONDS

    # Engines (lazy-loaded via properties)
    _reward_manager: Optional[object] = field(default=None, init=False, repr=False)
    _streak_tracker: Optional[object] = field(default=None, init=False, repr=False)
    _challenge_engine: Optional[object] = field(default=None, init=False, repr=False)
    _progression_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def reward_manager(self):
        """Get RewardManager instance (lazy-loaded)"""
        if self._reward_manager is None:
            from stretch_progress.gamification.reward_system import RewardManager
            self._reward_manager = RewardManager(self.store, clock=self.clock, timeout=self.timeout)
            logger.debug("RewardManager instantiated")
        return self._reward_manager

    @property
    def streak_tracker(self):
        """Get StreakTracker instance (lazy-loaded)"""
        if self._streak_tracker is None:
            from stretch_progress.gamification.streak_system import StreakTracker
            self._streak_tracker = StreakTracker(
                self.store,
                event_bus=self.event_bus,
                reward_manager=self.reward_manager,
                clock=self.clock,
                timeout=self.timeout
            )
            logger.debug("StreakTracker instantiated")
        return self._streak_tracker

    @property
    def challenge_engine(self):
        """Get ChallengeEngine instance (lazy-loaded)"""
        if self._challenge_engine is None:
            from stretch_progress.gamification.challenges import ChallengeEngine
            self._challenge_engine = ChallengeEngine(
                self.store,
                event_bus=self.event_bus,
                clock=self.clock,
                rng=self.rng,
                timeout=self.timeout
            )
            logger.debug("ChallengeEngine instantiated")
        return self._challenge_engine

    @property
    def progression_service(self):
        """Get ProgressionService instance (lazy-loaded)"""
        if self._progression_service is None:
            from stretch_progress.services.progression_service import ProgressionService
            self._progression_service = ProgressionService(
                self.store,
                streak_tracker=self.streak_tracker,
                challenge_engine=self.challenge_engine,
                reward_manager=self.reward_manager,
                clock=self.clock,
                timeout=self.timeout
            )
            logger.debug("ProgressionService instantiated")
        return self._progression_service


# Global container instance (initialized in main.py)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the global service container.

    Raises:
        RuntimeError: If container not initialized (call init_container first)
    """
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call init_container() in main.py before using services."
        )
    return _container


def init_container(
    store: ProgressStore,
    event_bus: Optional[EventBus] = None,
    clock: Callable = now_local,
    rng: Optional[random.Random] = None
) -> ServiceContainer:
    """
    Initialize the global service container.

    Should be called once in main.py after the store is created.
    """
    global _container

    _container = ServiceContainer(
        store=store,
        event_bus=event_bus or EventBus(),
        clock=clock,
        rng=rng
    )

    logger.info("Service container initialized")
    return _container
