"""In-process domain event bus.

Services hand their events to ``publish`` after the subject lock is
released. Each subscriber runs in its own task with a timeout: a slow or
failing notification channel can never block or undo a transition.

Usage:
    bus = EventBus(handler_timeout=5.0)
    bus.subscribe(notifications.handle)
    await bus.publish(events)
    await bus.drain()   # tests / shutdown
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from marketplace_escrow.domain.models import DomainEvent

    Handler = Callable[[DomainEvent], Awaitable[None]]

logger = get_logger(__name__)


class EventBus:
    """Fire-and-forget fan-out of DomainEvents to subscribers."""

    def __init__(self, handler_timeout: float = 5.0) -> None:
        self._handlers: list[Handler] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._timeout = handler_timeout

    def subscribe(self, handler: Handler) -> None:
        self._handlers.append(handler)

    async def publish(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            logger.debug(
                "event.published",
                event_type=event.event_type.value,
                subject_id=event.subject_id,
                old_status=event.old_status,
                new_status=event.new_status,
                actor=event.actor,
            )
            for handler in self._handlers:
                task = asyncio.create_task(self._deliver(handler, event))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def _deliver(self, handler: Handler, event: DomainEvent) -> None:
        try:
            await asyncio.wait_for(handler(event), timeout=self._timeout)
        except TimeoutError:
            logger.warning(
                "event.handler_timeout",
                event_type=event.event_type.value,
                subject_id=event.subject_id,
                timeout=self._timeout,
            )
        except Exception:
            logger.exception(
                "event.handler_failed",
                event_type=event.event_type.value,
                subject_id=event.subject_id,
            )

    async def drain(self) -> None:
        """Wait for every in-flight delivery."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    @property
    def pending(self) -> int:
        return len(self._tasks)
