"""Push-notification channel client for an XMR relay."""

from .client import XmrClient
from .events import EventBus, XmrEvent
from .protocol import (
    CollectNow,
    CriteriaUpdate,
    CurrentGeoLocation,
    ForceUpdateChromeOS,
    InboundCommand,
    LicenceCheck,
    ScreenShot,
    ShowStatusWindow,
)

__all__ = [
    "CollectNow",
    "CriteriaUpdate",
    "CurrentGeoLocation",
    "EventBus",
    "ForceUpdateChromeOS",
    "InboundCommand",
    "LicenceCheck",
    "ScreenShot",
    "ShowStatusWindow",
    "XmrClient",
    "XmrEvent",
]
