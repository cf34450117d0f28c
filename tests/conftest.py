from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

import pytest

from xmr_client.transport import ReadyState, TransportEvent


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeTransport:
    """In-memory transport driven explicitly by tests."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.ready_state = ReadyState.CONNECTING
        self.listeners: Dict[TransportEvent, List[Callable[..., None]]] = defaultdict(list)
        self.sent: List[str] = []
        self.opened = False
        self.close_calls = 0

    def add_listener(self, event: TransportEvent, listener: Callable[..., None]) -> None:
        self.listeners[TransportEvent(event)].append(listener)

    def open(self) -> None:
        self.opened = True

    def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.close_calls += 1
        if self.ready_state != ReadyState.CLOSED:
            self.ready_state = ReadyState.CLOSED
            self.fire(TransportEvent.CLOSE)

    def fire(self, event: TransportEvent, *args: Any) -> None:
        for listener in list(self.listeners[event]):
            listener(*args)

    def simulate_open(self) -> None:
        self.ready_state = ReadyState.OPEN
        self.fire(TransportEvent.OPEN)

    def simulate_message(self, data: str) -> None:
        self.fire(TransportEvent.MESSAGE, data)

    def simulate_error(self) -> None:
        self.fire(TransportEvent.ERROR, RuntimeError("socket error"))

    def simulate_remote_close(self) -> None:
        self.ready_state = ReadyState.CLOSED
        self.fire(TransportEvent.CLOSE)


class YieldingTransport(FakeTransport):
    """Transport whose close hands control back to the event loop."""

    async def close(self) -> None:
        await asyncio.sleep(0)
        await super().close()


class TransportRecorder:
    """Transport factory keeping every transport it creates."""

    def __init__(self) -> None:
        self.created: List[FakeTransport] = []
        self.fail = False
        self.transport_cls: type[FakeTransport] = FakeTransport

    def __call__(self, url: str) -> FakeTransport:
        if self.fail:
            raise ValueError(f"Unsupported websocket URL: {url!r}")
        transport = self.transport_cls(url)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]

    def still_open(self) -> List[FakeTransport]:
        return [t for t in self.created if t.ready_state != ReadyState.CLOSED]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def transports() -> TransportRecorder:
    return TransportRecorder()


@pytest.fixture
def yielding_transports(transports: TransportRecorder) -> TransportRecorder:
    transports.transport_cls = YieldingTransport
    return transports
