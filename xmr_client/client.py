"""Host-facing XMR client tying the bus, connection and watchdog together."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import aiohttp

from . import constants
from .config import XmrConfig
from .connection import ConnectionManager, TransportFactory
from .events import EventBus, EventHandler, Unsubscribe, XmrEvent
from .protocol import Clock
from .transport import WebSocketTransport
from .watchdog import Watchdog

LOGGER = logging.getLogger(__name__)


class XmrClient:
    """Push-notification channel client for a single channel.

    Typical use::

        client = XmrClient("player-channel")
        client.on(XmrEvent.COLLECT_NOW, collect)
        await client.init()
        await client.start("wss://cms.example.com/xmr", cms_key)
        ...
        await client.aclose()
    """

    def __init__(
        self,
        channel: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        transport_factory: Optional[TransportFactory] = None,
        clock: Optional[Clock] = None,
        watchdog_interval_seconds: float = constants.DEFAULT_WATCHDOG_INTERVAL_SECONDS,
        liveness_window: timedelta = constants.DEFAULT_LIVENESS_WINDOW,
        heartbeat_seconds: Optional[float] = None,
    ) -> None:
        self.bus = EventBus()
        self._session = session
        self._owns_session = session is None
        self._heartbeat = heartbeat_seconds
        self._manager = ConnectionManager(
            channel,
            self.bus,
            transport_factory=transport_factory or self._open_websocket,
            clock=clock,
            liveness_window=liveness_window,
        )
        self._watchdog = Watchdog(
            self._manager, interval_seconds=watchdog_interval_seconds
        )

    @classmethod
    def from_config(
        cls, config: XmrConfig, *, session: Optional[aiohttp.ClientSession] = None
    ) -> "XmrClient":
        return cls(
            config.xmr.channel,
            session=session,
            watchdog_interval_seconds=config.watchdog.interval_seconds,
            liveness_window=timedelta(seconds=config.watchdog.liveness_window_seconds),
            heartbeat_seconds=config.xmr.heartbeat_seconds,
        )

    @property
    def channel(self) -> str:
        return self._manager.channel

    @property
    def connection(self) -> ConnectionManager:
        return self._manager

    @property
    def watchdog(self) -> Watchdog:
        return self._watchdog

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def on(self, event: XmrEvent | str, handler: EventHandler) -> Unsubscribe:
        """Subscribe to a client event; returns the unsubscribe callable."""

        return self.bus.on(event, handler)

    async def init(self) -> None:
        """Start the watchdog. Call once before :meth:`start`."""

        self._watchdog.start()

    async def start(self, url: str, credential: str) -> None:
        await self._manager.start(url, credential)

    async def stop(self) -> None:
        await self._manager.stop()

    def is_active(self) -> bool:
        return self._manager.is_active()

    def status(self) -> Dict[str, Any]:
        snapshot = self._manager.status()
        snapshot["watchdogRunning"] = self._watchdog.running
        return snapshot

    async def aclose(self) -> None:
        """Cancel the watchdog, close the transport and owned session."""

        await self._watchdog.stop()
        await self._manager.stop()
        await self.bus.drain()

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "XmrClient":
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _open_websocket(self, url: str) -> WebSocketTransport:
        if self._owns_session and (self._session is None or self._session.closed):
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
        elif self._session is None or self._session.closed:
            LOGGER.warning("Host-supplied HTTP session is closed; cannot connect")
            raise RuntimeError("host session is closed")
        return WebSocketTransport(url, session=self._session, heartbeat=self._heartbeat)
