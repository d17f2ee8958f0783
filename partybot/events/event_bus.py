"""
In-memory pub/sub for party events.

Synchronous handlers run inline on publish. Coroutine handlers are started as
tasks on the running loop and tracked until they finish, so shutdown can wait
for in-flight renders.
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once
from .event_types import BaseEvent

logger = get_logger(__name__)

EventHandler = Callable[[Any], Any]


class EventBus:
    """Pure asyncio event bus keyed by event class."""

    def __init__(self) -> None:
        self._subscribers: dict[type[BaseEvent], list[EventHandler]] = defaultdict(list)
        self._active_tasks: set[asyncio.Task[Any]] = set()

    def subscribe(self, event_type: type[BaseEvent], handler: EventHandler) -> None:
        """Register ``handler`` for events of exactly ``event_type``."""
        self._subscribers[event_type].append(handler)
        logger.debug("Event handler subscribed", event_type=event_type.__name__, handler=_handler_name(handler))

    def unsubscribe(self, event_type: type[BaseEvent], handler: EventHandler) -> bool:
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def publish(self, event: BaseEvent) -> None:
        """
        Deliver ``event`` to its subscribers.

        Coroutine handlers need a running loop; without one (unit tests that
        drive the service synchronously) they are skipped with a debug log.
        """
        for handler in list(self._subscribers.get(type(event), [])):
            try:
                result = handler(event)
            except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: One failing subscriber must not stop delivery to the rest
                log_exception_once(
                    logger,
                    "error",
                    "Event handler failed",
                    exc=e,
                    event_type=event.event_type,
                    handler=_handler_name(handler),
                    exc_info=True,
                )
                continue
            if inspect.isawaitable(result):
                self._schedule(result, event, handler)

    def _schedule(self, awaitable: Any, event: BaseEvent, handler: EventHandler) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.debug("Skipping async handler - no running event loop", event_type=event.event_type)
            return
        task = asyncio.ensure_future(self._run_handler(awaitable, event, handler))
        self._active_tasks.add(task)
        task.add_done_callback(self._active_tasks.discard)

    async def _run_handler(self, awaitable: Any, event: BaseEvent, handler: EventHandler) -> None:
        try:
            await awaitable
        except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: Handler errors are logged here because nobody awaits the task
            log_exception_once(
                logger,
                "error",
                "Async event handler failed",
                exc=e,
                event_type=event.event_type,
                handler=_handler_name(handler),
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait until every in-flight async handler has finished."""
        while self._active_tasks:
            await asyncio.gather(*list(self._active_tasks), return_exceptions=True)

    def subscriber_count(self, event_type: type[BaseEvent]) -> int:
        return len(self._subscribers.get(event_type, []))


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", repr(handler))
