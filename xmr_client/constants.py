"""Constants used across the xmr-client package."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

APP_NAME = "xmr-client"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".xmr" / DEFAULT_CONFIG_FILENAME
DEFAULT_LOG_PATH = Path.home() / ".xmr" / "logs" / f"{APP_NAME}.log"

# Sentinels understood by the relay configuration
DISABLED_URL = "DISABLED"
UNKNOWN_CHANNEL = "unknown"
UNSET_CREDENTIAL = "n/a"

HEARTBEAT_FRAME = "H"

DEFAULT_WATCHDOG_INTERVAL_SECONDS = 60.0
DEFAULT_LIVENESS_WINDOW = timedelta(minutes=15)
INITIAL_LAST_MESSAGE_AGE = timedelta(days=365)

DEFAULT_STATUS_WINDOW_TIMEOUT = 60
FAILED_TO_CONNECT = "Failed to connect"
