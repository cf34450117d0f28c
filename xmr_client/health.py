"""Health endpoint exposing the XMR connection snapshot."""

from __future__ import annotations

import contextlib
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from aiohttp import web

LOGGER = logging.getLogger(__name__)

StatusProvider = Callable[[], Dict[str, Any]]


def build_health_payload(status: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap a connection snapshot with an overall ``ok``/``degraded`` verdict."""

    payload: Dict[str, Any] = {
        "status": "ok" if status.get("active") else "degraded",
        "checkedAt": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "connection": dict(status),
    }
    return payload


class HealthServer:
    """Minimal HTTP server exposing `/healthz` for status checks."""

    def __init__(self, status_provider: StatusProvider, host: str, port: int) -> None:
        self._status_provider = status_provider
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)

        self._runner = web.AppRunner(app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info(
            "Health endpoint listening on http://%s:%s/healthz", self._host, self._port
        )

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    async def _handle_health(self, request: web.Request) -> web.Response:
        payload = build_health_payload(self._status_provider())
        status = 200 if payload["status"] == "ok" else 503
        return web.json_response(payload, status=status)
