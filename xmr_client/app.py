"""Standalone listener that connects to a relay and logs received commands."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from .client import XmrClient
from .config import XmrConfig, load_config
from .events import Unsubscribe, XmrEvent
from .health import HealthServer
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)

COMMAND_EVENTS = (
    XmrEvent.COLLECT_NOW,
    XmrEvent.SCREEN_SHOT,
    XmrEvent.LICENCE_CHECK,
    XmrEvent.SHOW_STATUS_WINDOW,
    XmrEvent.FORCE_UPDATE_CHROME_OS,
    XmrEvent.CRITERIA_UPDATE,
    XmrEvent.CURRENT_GEO_LOCATION,
)


class XmrListenerApp:
    """Runs an :class:`XmrClient` from configuration until cancelled."""

    def __init__(
        self, config: Optional[XmrConfig] = None, *, client: Optional[XmrClient] = None
    ) -> None:
        self._config = config or load_config()
        self._client = client or XmrClient.from_config(self._config)
        self._health_server: Optional[HealthServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._subscriptions: List[Unsubscribe] = []
        self.received: List[tuple[str, tuple[Any, ...]]] = []

    @property
    def client(self) -> XmrClient:
        return self._client

    async def run(self) -> None:
        self._shutdown_event = asyncio.Event()
        LOGGER.info("xmr-client starting with config: %s", self._config.path)

        await self._start_services()
        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("xmr-client received shutdown signal")
            raise
        finally:
            await self._stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[XmrConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("xmr-client received shutdown signal")

    async def _start_services(self) -> None:
        client = self._client
        self._subscriptions.append(
            client.on(XmrEvent.CONNECTED, lambda: LOGGER.info("XMR connected"))
        )
        self._subscriptions.append(
            client.on(XmrEvent.DISCONNECTED, lambda: LOGGER.info("XMR disconnected"))
        )
        self._subscriptions.append(
            client.on(XmrEvent.ERROR, lambda message: LOGGER.warning("XMR error: %s", message))
        )
        for event in COMMAND_EVENTS:
            self._subscriptions.append(client.on(event, self._make_recorder(event)))

        health = self._config.health
        if health.enabled:
            self._health_server = HealthServer(client.status, health.host, health.port)
            await self._health_server.start()

        await client.init()
        settings = self._config.xmr
        await client.start(settings.url, settings.cms_key or "")

    async def _stop_services(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()

        await self._client.aclose()

        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

    def _make_recorder(self, event: XmrEvent):
        def _record(*args: Any) -> None:
            LOGGER.info("Received %s %s", event.value, list(args) if args else "")
            self.received.append((event.value, args))

        return _record


__all__ = ["COMMAND_EVENTS", "XmrListenerApp"]
