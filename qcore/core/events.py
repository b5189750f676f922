"""
In-process event bus for resource change notifications.

    bus = EventBus()
    bus.on("users.created", send_welcome_email)
    await bus.emit("users.created", {"id": 1, "email": "a@b.c"})

Handlers may be plain functions or coroutines. A failing handler is logged
and does not stop the others, nor fail the request that emitted the event.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Union

logger = logging.getLogger(__name__)

EventHandler = Callable[[Mapping[str, Any]], Union[None, Awaitable[None]]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def on(self, event_name: str, handler: EventHandler) -> None:
        self._handlers[event_name].append(handler)

    def off(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handlers(self, event_name: str) -> list[EventHandler]:
        return list(self._handlers.get(event_name, ()))

    async def emit(self, event_name: str, payload: Mapping[str, Any]) -> None:
        """Run every handler for `event_name` concurrently with a read-only payload."""
        handlers = self.handlers(event_name)
        if not handlers:
            return
        frozen = MappingProxyType(dict(payload))
        results = await asyncio.gather(
            *(self._call(handler, frozen) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Event handler %s failed for %s",
                    getattr(handler, "__name__", handler),
                    event_name,
                    exc_info=(type(result), result, result.__traceback__),
                )

    @staticmethod
    async def _call(handler: EventHandler, payload: Mapping[str, Any]) -> None:
        result = handler(payload)
        if inspect.isawaitable(result):
            await result
