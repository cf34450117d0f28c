"""Periodic supervisor re-asserting the wanted connection state."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from . import constants
from .connection import ConnectionManager

LOGGER = logging.getLogger(__name__)


class Watchdog:
    """Restarts a wanted but inactive connection at a fixed interval.

    There is no backoff: reconnection attempts are paced only by the
    interval. The task runs until :meth:`stop` is awaited.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        *,
        interval_seconds: float = constants.DEFAULT_WATCHDOG_INTERVAL_SECONDS,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._manager = manager
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            LOGGER.warning("Watchdog already running")
            return
        self._task = asyncio.create_task(self._loop(), name="xmr-watchdog")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def tick(self) -> bool:
        """Run one check; returns ``True`` when a restart was requested."""

        manager = self._manager
        if not manager.connection_wanted or manager.is_active():
            return False

        LOGGER.debug("Connection wanted but inactive; restarting")
        await manager.start(
            manager.url or constants.DISABLED_URL,
            manager.credential or constants.UNSET_CREDENTIAL,
        )
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Watchdog check failed")
