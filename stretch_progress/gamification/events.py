"""
Typed in-process event bus

Engines announce streak and challenge changes here; UI collaborators
subscribe by event class instead of by string name.

Example:
    bus = EventBus()
    bus.on(StreakSaved, lambda e: print(e.freezes_remaining))
    bus.emit(StreakSaved(current_streak=4, freezes_remaining=1))
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, ClassVar, Dict, List, Optional, Set, Tuple, Type, Union

from stretch_progress.models.progress import Challenge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakBroken:
    current_streak: int
    user_reset: bool
    name: ClassVar[str] = "streak_broken"


@dataclass(frozen=True)
class StreakSaved:
    current_streak: int
    freezes_remaining: int
    name: ClassVar[str] = "streak_saved"


@dataclass(frozen=True)
class StreakMaintained:
    current_streak: int
    increment: bool
    name: ClassVar[str] = "streak_maintained"


@dataclass(frozen=True)
class StreakUpdated:
    """Generic "re-read me" signal, no payload"""
    name: ClassVar[str] = "streak_updated"


@dataclass(frozen=True)
class ChallengeCompleted:
    challenge: Challenge
    name: ClassVar[str] = "challenge_completed"


Event = Union[StreakBroken, StreakSaved, StreakMaintained, StreakUpdated, ChallengeCompleted]

EVENT_TYPES: Tuple[Type, ...] = (
    StreakBroken,
    StreakSaved,
    StreakMaintained,
    StreakUpdated,
    ChallengeCompleted,
)

Handler = Callable[[Event], object]


class EventBus:
    """
    Publish/subscribe keyed by event class.

    Handlers may be plain callables or coroutine functions. Coroutine
    handlers are scheduled on the running loop. A failing handler is
    logged and never affects the emitter or the other handlers.
    """

    def __init__(self):
        self._handlers: Dict[Type, List[Tuple[Handler, bool]]] = {}
        self._pending: Set[asyncio.Task] = set()

    def on(self, event_type: Type, handler: Handler) -> Handler:
        """Subscribe handler to event_type"""
        self._check_type(event_type)
        self._handlers.setdefault(event_type, []).append((handler, False))
        return handler

    def once(self, event_type: Type, handler: Handler) -> Handler:
        """Subscribe handler for the next event_type only"""
        self._check_type(event_type)
        self._handlers.setdefault(event_type, []).append((handler, True))
        return handler

    def off(self, event_type: Type, handler: Handler) -> bool:
        """Unsubscribe handler; returns False if it was not subscribed"""
        entries = self._handlers.get(event_type, [])
        for i, (registered, _) in enumerate(entries):
            if registered == handler:
                del entries[i]
                return True
        return False

    def remove_all_listeners(self, event_type: Optional[Type] = None) -> None:
        if event_type is None:
            self._handlers.clear()
        else:
            self._handlers.pop(event_type, None)

    def listener_count(self, event_type: Type) -> int:
        return len(self._handlers.get(event_type, []))

    def emit(self, event: Event) -> int:
        """
        Deliver event to its subscribers

        Returns:
            Number of handlers invoked
        """
        event_type = type(event)
        entries = list(self._handlers.get(event_type, []))

        for entry in entries:
            if entry[1]:
                self.off(event_type, entry[0])

        for handler, _ in entries:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    self._schedule(result, event)
            except Exception as e:
                logger.error(f"Event handler failed for {event.name}: {e}", exc_info=True)

        logger.debug(f"Emitted {event.name} to {len(entries)} handler(s)")
        return len(entries)

    async def drain(self) -> None:
        """Wait for scheduled coroutine handlers to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, coro, event: Event) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning(f"No running event loop, dropped async handler for {event.name}")
            return

        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_task_done(t, event))

    def _on_task_done(self, task: asyncio.Task, event: Event) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Async event handler failed for {event.name}: {exc}", exc_info=exc)

    @staticmethod
    def _check_type(event_type: Type) -> None:
        if event_type not in EVENT_TYPES:
            raise TypeError(f"Unknown event type: {event_type!r}")
