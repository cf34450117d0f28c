"""Publish/subscribe hub for connection and command notifications.

Components publish named events on an :class:`EventBus`; host code subscribes
with :meth:`EventBus.on` and receives an unsubscribe callable in return.
Handlers run in registration order on the emitting thread. Coroutine handlers
are scheduled on the running event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Set

LOGGER = logging.getLogger(__name__)


EventHandler = Callable[..., Awaitable[None] | None]
Unsubscribe = Callable[[], None]


class XmrEvent(str, Enum):
    """Events published by the client.

    Connection events:
        connected: Transport opened and the init message was sent
        disconnected: Transport closed
        error: Transport failure; payload is a short message
        statusChange: Any frame received; payload is an ISO 8601 timestamp

    Command events:
        collectNow, screenShot, licenceCheck, forceUpdateChromeOS,
        currentGeoLocation: no payload
        showStatusWindow: payload is the timeout in seconds
        criteriaUpdate: payload is the list of criteria dicts
    """

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    STATUS_CHANGE = "statusChange"

    COLLECT_NOW = "collectNow"
    SCREEN_SHOT = "screenShot"
    LICENCE_CHECK = "licenceCheck"
    SHOW_STATUS_WINDOW = "showStatusWindow"
    FORCE_UPDATE_CHROME_OS = "forceUpdateChromeOS"
    CRITERIA_UPDATE = "criteriaUpdate"
    CURRENT_GEO_LOCATION = "currentGeoLocation"


class EventBus:
    """Registry mapping event names to ordered handler lists."""

    def __init__(self) -> None:
        self._handlers: Dict[XmrEvent, List[EventHandler]] = {}
        self._pending: Set[asyncio.Task[Any]] = set()

    def on(self, event: XmrEvent | str, handler: EventHandler) -> Unsubscribe:
        """Subscribe ``handler`` to ``event``.

        Returns:
            A callable removing this subscription. Calling it more than once
            is harmless.
        """

        key = XmrEvent(event)
        handlers = self._handlers.setdefault(key, [])
        handlers.append(handler)

        def _unsubscribe() -> None:
            # Identity match so the same callable registered twice is removed once per disposer
            current = self._handlers.get(key, [])
            for index, registered in enumerate(current):
                if registered is handler:
                    del current[index]
                    break

        return _unsubscribe

    def emit(self, event: XmrEvent | str, *args: Any) -> None:
        """Invoke every handler subscribed to ``event`` with ``args``."""

        key = XmrEvent(event)
        for handler in list(self._handlers.get(key, ())):
            try:
                result = handler(*args)
            except Exception:
                LOGGER.exception("Handler for %s failed", key.value)
                continue

            if asyncio.iscoroutine(result):
                self._schedule(key, result)

    def handler_count(self, event: XmrEvent | str) -> int:
        return len(self._handlers.get(XmrEvent(event), ()))

    def clear(self) -> None:
        """Drop every subscription."""

        self._handlers.clear()

    async def drain(self) -> None:
        """Wait for scheduled coroutine handlers to finish."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, key: XmrEvent, coro: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.warning(
                "Dropping coroutine handler for %s: no running event loop", key.value
            )
            with contextlib.suppress(AttributeError):
                coro.close()  # type: ignore[attr-defined]
            return

        task = loop.create_task(coro)  # type: ignore[arg-type]
        self._pending.add(task)
        task.add_done_callback(lambda done: self._finish(key, done))

    def _finish(self, key: XmrEvent, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error(
                "Async handler for %s failed", key.value, exc_info=exc
            )
