"""Websocket transport used by the connection manager.

The transport mirrors the browser ``WebSocket`` surface: listeners are
attached per event kind, ``open()`` and ``send()`` return immediately and
results are observed through later ``open``/``message``/``error``/``close``
events. A failed connection attempt produces ``error`` followed by ``close``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, List, Optional, Protocol, Set
from urllib.parse import urlparse

import aiohttp

LOGGER = logging.getLogger(__name__)

_SUPPORTED_SCHEMES = ("ws", "wss", "http", "https")


class ReadyState(IntEnum):
    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


class TransportEvent(str, Enum):
    OPEN = "open"
    CLOSE = "close"
    ERROR = "error"
    MESSAGE = "message"


Listener = Callable[..., None]


class Transport(Protocol):
    """Contract the connection manager relies on."""

    @property
    def ready_state(self) -> ReadyState:
        ...

    def add_listener(self, event: TransportEvent, listener: Listener) -> None:
        """Attach ``listener``; ``message`` listeners receive the text frame."""
        ...

    def open(self) -> None:
        """Begin connecting without waiting for the outcome."""
        ...

    def send(self, data: str) -> None:
        """Queue a text frame for delivery."""
        ...

    async def close(self) -> None:
        """Close the transport; the ``close`` event fires before returning."""
        ...


class WebSocketTransport:
    """``aiohttp`` client websocket with event-style listeners."""

    def __init__(
        self,
        url: str,
        *,
        session: aiohttp.ClientSession,
        heartbeat: Optional[float] = None,
    ) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in _SUPPORTED_SCHEMES or not parsed.netloc:
            raise ValueError(f"Unsupported websocket URL: {url!r}")

        self.url = url
        self._session = session
        self._heartbeat = heartbeat
        self._listeners: Dict[TransportEvent, List[Listener]] = {}
        self._ready_state = ReadyState.CONNECTING
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._send_tasks: Set[asyncio.Task[None]] = set()
        self._close_fired = False

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    def add_listener(self, event: TransportEvent, listener: Listener) -> None:
        self._listeners.setdefault(TransportEvent(event), []).append(listener)

    def open(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def send(self, data: str) -> None:
        ws = self._ws
        if ws is None or self._ready_state != ReadyState.OPEN:
            LOGGER.warning("Dropping outbound frame; transport is not open")
            return

        task = asyncio.get_running_loop().create_task(self._send(ws, data))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    async def close(self) -> None:
        if self._ready_state == ReadyState.CLOSED:
            return

        self._ready_state = ReadyState.CLOSING
        ws = self._ws
        task = self._task

        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()
        elif task is not None:
            task.cancel()

        if task is not None and task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task

        # Never opened, or the run task could not be awaited
        self._finish()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _run(self) -> None:
        try:
            try:
                ws = await self._session.ws_connect(
                    self.url, heartbeat=self._heartbeat, autoping=True
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                LOGGER.warning("Websocket connect to %s failed: %s", self.url, exc)
                self._fire(TransportEvent.ERROR, exc)
                return

            if self._ready_state == ReadyState.CLOSING:
                await ws.close()
                return

            self._ws = ws
            self._ready_state = ReadyState.OPEN
            LOGGER.info("Connected to XMR websocket at %s", self.url)
            self._fire(TransportEvent.OPEN)

            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    self._fire(TransportEvent.MESSAGE, message.data)
                elif message.type == aiohttp.WSMsgType.BINARY:
                    LOGGER.debug("Ignoring binary frame (%d bytes)", len(message.data))
                elif message.type == aiohttp.WSMsgType.ERROR:
                    self._fire(TransportEvent.ERROR, ws.exception())
                    break
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pragma: no cover - defensive net handling
            LOGGER.warning("XMR websocket error: %s", exc)
            self._fire(TransportEvent.ERROR, exc)
        finally:
            self._ws = None
            self._finish()

    async def _send(self, ws: aiohttp.ClientWebSocketResponse, data: str) -> None:
        try:
            await ws.send_str(data)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Failed to send frame to %s: %s", self.url, exc)
            self._fire(TransportEvent.ERROR, exc)

    def _finish(self) -> None:
        self._ready_state = ReadyState.CLOSED
        if self._close_fired:
            return
        self._close_fired = True
        LOGGER.debug("Websocket to %s closed", self.url)
        self._fire(TransportEvent.CLOSE)

    def _fire(self, event: TransportEvent, *args: Any) -> None:
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(*args)
            except Exception:
                LOGGER.exception("Transport %s listener failed", event.value)
