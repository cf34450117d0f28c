"""Inbound frame decoding for the XMR channel.

Frames are either the literal heartbeat ``"H"`` or a JSON envelope::

    {"action": "commandAction", "createdDt": "2024-01-01T10:00:00Z",
     "ttl": 600, "commandCode": "showStatusWindow|45"}

Envelopes whose ``createdDt + ttl`` lies in the past are dropped before any
command is produced.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

from . import constants
from .events import EventBus, XmrEvent

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True, slots=True)
class CollectNow:
    event: ClassVar[XmrEvent] = XmrEvent.COLLECT_NOW

    def args(self) -> Tuple[Any, ...]:
        return ()


@dataclass(frozen=True, slots=True)
class ScreenShot:
    event: ClassVar[XmrEvent] = XmrEvent.SCREEN_SHOT

    def args(self) -> Tuple[Any, ...]:
        return ()


@dataclass(frozen=True, slots=True)
class LicenceCheck:
    event: ClassVar[XmrEvent] = XmrEvent.LICENCE_CHECK

    def args(self) -> Tuple[Any, ...]:
        return ()


@dataclass(frozen=True, slots=True)
class ShowStatusWindow:
    timeout_seconds: int = constants.DEFAULT_STATUS_WINDOW_TIMEOUT

    event: ClassVar[XmrEvent] = XmrEvent.SHOW_STATUS_WINDOW

    def args(self) -> Tuple[Any, ...]:
        return (self.timeout_seconds,)


@dataclass(frozen=True, slots=True)
class ForceUpdateChromeOS:
    event: ClassVar[XmrEvent] = XmrEvent.FORCE_UPDATE_CHROME_OS

    def args(self) -> Tuple[Any, ...]:
        return ()


@dataclass(frozen=True, slots=True)
class CurrentGeoLocation:
    event: ClassVar[XmrEvent] = XmrEvent.CURRENT_GEO_LOCATION

    def args(self) -> Tuple[Any, ...]:
        return ()


@dataclass(frozen=True, slots=True)
class CriteriaUpdate:
    """Criteria values pushed by the CMS.

    ``updates`` is passed through exactly as received, typically a list of
    ``{"metric": str, "value": str, "ttl": int}`` dicts.
    """

    updates: Optional[List[Dict[str, Any]]] = field(default_factory=list)

    event: ClassVar[XmrEvent] = XmrEvent.CRITERIA_UPDATE

    def args(self) -> Tuple[Any, ...]:
        return (self.updates,)


InboundCommand = Union[
    CollectNow,
    ScreenShot,
    LicenceCheck,
    ShowStatusWindow,
    ForceUpdateChromeOS,
    CurrentGeoLocation,
    CriteriaUpdate,
]


class MalformedFrameError(ValueError):
    """Raised when a frame cannot be interpreted as an envelope."""


@dataclass(slots=True)
class RawEnvelope:
    action: str
    created_dt: datetime
    ttl: int
    command_code: Optional[str] = None
    criteria_updates: Any = None

    @property
    def expires_at(self) -> datetime:
        return self.created_dt + timedelta(seconds=self.ttl)

    def is_expired(self, now: datetime) -> bool:
        try:
            return self.expires_at < now
        except OverflowError:
            return self.ttl < 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RawEnvelope":
        """Build an envelope from a decoded JSON object.

        A missing or unparseable ``createdDt`` or ``ttl`` raises
        :class:`MalformedFrameError`. Such a frame has no expiry that can be
        checked, so it is dropped rather than dispatched.
        """

        action = payload.get("action")
        if not isinstance(action, str):
            raise MalformedFrameError(f"missing action: {action!r}")

        created_raw = payload.get("createdDt")
        created_dt = parse_timestamp(created_raw)
        if created_dt is None:
            raise MalformedFrameError(f"invalid createdDt: {created_raw!r}")

        ttl = parse_int_prefix(payload.get("ttl"))
        if ttl is None:
            raise MalformedFrameError(f"invalid ttl: {payload.get('ttl')!r}")

        command_code = payload.get("commandCode")
        return cls(
            action=action,
            created_dt=created_dt,
            ttl=ttl,
            command_code=command_code if isinstance(command_code, str) else None,
            criteria_updates=payload.get("criteriaUpdates"),
        )


def parse_int_prefix(value: Any) -> Optional[int]:
    """Parse the leading integer of ``value``; ``None`` when there is none."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return int(value)

    match = _INT_PREFIX.match(str(value))
    if match is None:
        return None
    return int(match.group(1))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp; naive values are taken as local time."""

    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def parse_status_window_timeout(command_code: str) -> int:
    parts = command_code.split("|")
    timeout = parse_int_prefix(parts[1]) if len(parts) > 1 else None
    # Zero falls back to the default as well
    return timeout or constants.DEFAULT_STATUS_WINDOW_TIMEOUT


def command_from_envelope(envelope: RawEnvelope) -> Optional[InboundCommand]:
    """Map an unexpired envelope to its command; ``None`` for unknown actions."""

    action = envelope.action
    if action == "collectNow":
        return CollectNow()
    if action == "screenShot":
        return ScreenShot()
    if action == "licenceCheck":
        return LicenceCheck()

    if action == "commandAction":
        code = envelope.command_code or ""
        if code.startswith("showStatusWindow"):
            return ShowStatusWindow(parse_status_window_timeout(code))
        if code.startswith("forceUpdateChromeOS"):
            return ForceUpdateChromeOS()
        if code.startswith("currentGeoLocation"):
            return CurrentGeoLocation()

    if action == "criteriaUpdate":
        return CriteriaUpdate(envelope.criteria_updates)

    return None


def decode_frame(frame: str, now: datetime) -> Optional[InboundCommand]:
    """Decode one inbound frame.

    Returns ``None`` for heartbeats, expired envelopes and unknown actions.

    Raises:
        MalformedFrameError: If the frame is not a valid envelope.
    """

    if frame == constants.HEARTBEAT_FRAME:
        LOGGER.debug("Heartbeat received")
        return None

    try:
        payload = json.loads(frame)
    except (TypeError, ValueError) as exc:
        raise MalformedFrameError(f"invalid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise MalformedFrameError(f"expected an object, got {type(payload).__name__}")

    envelope = RawEnvelope.from_payload(payload)
    LOGGER.debug("Message action is %s", envelope.action)

    if envelope.is_expired(now):
        LOGGER.debug(
            "Message expired (createdDt=%s, ttl=%ss)",
            envelope.created_dt.isoformat(),
            envelope.ttl,
        )
        return None

    command = command_from_envelope(envelope)
    if command is None:
        LOGGER.error(
            "Unknown action: %s (commandCode=%r)",
            envelope.action,
            envelope.command_code,
        )
    return command


class MessageDecoder:
    """Decodes frames and publishes the resulting commands on the bus."""

    def __init__(self, bus: EventBus, *, clock: Optional[Clock] = None) -> None:
        self._bus = bus
        self._clock = clock or utcnow

    def handle(self, frame: str) -> Optional[InboundCommand]:
        try:
            command = decode_frame(frame, self._clock())
        except MalformedFrameError as exc:
            LOGGER.warning("Dropping malformed frame: %s", exc)
            return None

        if command is not None:
            LOGGER.info("Dispatching %s", command.event.value)
            self._bus.emit(command.event, *command.args())
        return command


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
