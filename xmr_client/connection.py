"""Connection lifecycle and liveness tracking for the XMR channel.

The :class:`ConnectionManager` is the only component holding the transport.
It opens a transport per target URL, sends the ``init`` message once the
socket is open and hands every inbound frame to the decoder. Liveness is
judged by traffic, not by the socket flag: a link that reports connected but
has been silent for the liveness window counts as inactive.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from . import constants
from .events import EventBus, XmrEvent
from .protocol import Clock, MessageDecoder, utcnow
from .transport import ReadyState, Transport, TransportEvent

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[str], Transport]


@dataclass(slots=True)
class ConnectionTarget:
    url: Optional[str] = None
    credential: Optional[str] = None


@dataclass(slots=True)
class ConnectionState:
    last_message_at: datetime
    connection_wanted: bool = False
    connected: bool = False


class ConnectionManager:
    """Owns the transport and the connection flags for one channel."""

    def __init__(
        self,
        channel: str,
        bus: EventBus,
        *,
        transport_factory: TransportFactory,
        clock: Optional[Clock] = None,
        liveness_window: timedelta = constants.DEFAULT_LIVENESS_WINDOW,
    ) -> None:
        self._channel = channel
        self._bus = bus
        self._transport_factory = transport_factory
        self._clock = clock or utcnow
        self._liveness_window = liveness_window
        self._decoder = MessageDecoder(bus, clock=self._clock)

        self._target = ConnectionTarget()
        self._state = ConnectionState(
            last_message_at=self._clock() - constants.INITIAL_LAST_MESSAGE_AGE
        )
        self._transport: Optional[Transport] = None
        self._lifecycle_lock = asyncio.Lock()

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def url(self) -> Optional[str]:
        return self._target.url

    @property
    def credential(self) -> Optional[str]:
        return self._target.credential

    @property
    def connection_wanted(self) -> bool:
        return self._state.connection_wanted

    @property
    def connected(self) -> bool:
        return self._state.connected

    @property
    def last_message_at(self) -> datetime:
        return self._state.last_message_at

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def start(self, url: str, credential: str) -> None:
        """Connect to ``url``, or keep the current link if it is healthy.

        ``url == "DISABLED"`` withdraws the wish to be connected. Failures are
        reported on the bus; retrying is left to the watchdog. Calls are
        serialized so overlapping host and watchdog starts leave one transport.
        """

        async with self._lifecycle_lock:
            await self._start(url, credential)

    async def stop(self) -> None:
        """Close the current transport, if any. Safe to call repeatedly."""

        async with self._lifecycle_lock:
            await self._close_transport()

    async def _start(self, url: str, credential: str) -> None:
        if not self._channel or self._channel == constants.UNKNOWN_CHANNEL:
            LOGGER.error("Channel unknown, XMR will be disabled")
            return

        if url == constants.DISABLED_URL:
            LOGGER.info("XMR disabled")
            self._state.connection_wanted = False
            if self.is_active():
                await self._close_transport()
            return

        self._state.connection_wanted = True

        if self.is_active() and self._target.url == url:
            LOGGER.debug("Already connected to %s; updating credential", url)
            self._target.credential = credential
            return

        if self._transport is not None and self._transport.ready_state != ReadyState.CLOSED:
            LOGGER.debug("Existing transport is stale or targets another URL; stopping")
            await self._close_transport()
        else:
            LOGGER.debug("Not connected yet")

        self._target.url = url
        self._target.credential = credential

        LOGGER.info("Connecting to %s (channel=%s)", url, self._channel)

        try:
            transport = self._transport_factory(url)
        except Exception as exc:
            LOGGER.warning("Failed connecting to %s: %s", url, exc)
            self._bus.emit(XmrEvent.ERROR, constants.FAILED_TO_CONNECT)
            return

        self._transport = transport
        transport.add_listener(TransportEvent.OPEN, lambda: self._handle_open(transport))
        transport.add_listener(
            TransportEvent.CLOSE, lambda: self._handle_close(transport)
        )
        transport.add_listener(
            TransportEvent.ERROR, lambda exc=None: self._handle_error(transport, exc)
        )
        transport.add_listener(
            TransportEvent.MESSAGE, lambda data: self._handle_message(transport, data)
        )

        try:
            transport.open()
        except Exception as exc:
            LOGGER.warning("Failed opening transport to %s: %s", url, exc)
            self._bus.emit(XmrEvent.ERROR, constants.FAILED_TO_CONNECT)

    async def _close_transport(self) -> None:
        LOGGER.debug("Stopping")
        transport = self._transport
        if transport is None:
            return

        LOGGER.debug("Closing active transport")
        self._state.connected = False
        await transport.close()

    def is_active(self) -> bool:
        """Connected and heard from within the liveness window."""

        silence = self._clock() - self._state.last_message_at
        return self._state.connected and silence < self._liveness_window

    def status(self) -> Dict[str, Any]:
        return {
            "channel": self._channel,
            "url": self._target.url,
            "connectionWanted": self._state.connection_wanted,
            "connected": self._state.connected,
            "active": self.is_active(),
            "lastMessageAt": self._state.last_message_at.isoformat(),
        }

    # ------------------------------------------------------------------
    # Transport listeners
    # ------------------------------------------------------------------
    def _is_current(self, transport: Transport, event: TransportEvent) -> bool:
        if transport is self._transport:
            return True
        LOGGER.debug("Ignoring %s from a replaced transport", event.value)
        return False

    def _handle_open(self, transport: Transport) -> None:
        if not self._is_current(transport, TransportEvent.OPEN):
            return
        if transport.ready_state != ReadyState.OPEN:
            LOGGER.info("Open event received but transport is not open")
            return

        transport.send(
            json.dumps(
                {
                    "type": "init",
                    "key": self._target.credential,
                    "channel": self._channel,
                }
            )
        )
        self._state.connected = True
        self._bus.emit(XmrEvent.CONNECTED)

    def _handle_close(self, transport: Transport) -> None:
        if not self._is_current(transport, TransportEvent.CLOSE):
            return
        self._state.connected = False
        self._bus.emit(XmrEvent.DISCONNECTED)

    def _handle_error(self, transport: Transport, exc: Optional[BaseException]) -> None:
        if not self._is_current(transport, TransportEvent.ERROR):
            return
        LOGGER.debug("Transport error: %s", exc)
        self._bus.emit(XmrEvent.ERROR, "error")

    def _handle_message(self, transport: Transport, data: str) -> None:
        if not self._is_current(transport, TransportEvent.MESSAGE):
            return

        self._state.last_message_at = self._clock()
        self._bus.emit(XmrEvent.STATUS_CHANGE, self._state.last_message_at.isoformat())
        self._decoder.handle(data)
