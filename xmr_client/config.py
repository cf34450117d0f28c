"""Configuration loader for xmr-client."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


class ConfigurationError(ValueError):
    """Raised when the configuration cannot drive a connection."""


@dataclass(slots=True)
class XmrSettings:
    url: str = constants.DISABLED_URL
    cms_key: Optional[str] = None
    channel: str = constants.UNKNOWN_CHANNEL
    heartbeat_seconds: Optional[float] = None

    @property
    def channel_usable(self) -> bool:
        return bool(self.channel) and self.channel != constants.UNKNOWN_CHANNEL


@dataclass(slots=True)
class WatchdogConfig:
    interval_seconds: float = constants.DEFAULT_WATCHDOG_INTERVAL_SECONDS
    liveness_window_seconds: float = constants.DEFAULT_LIVENESS_WINDOW.total_seconds()


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class XmrConfig:
    xmr: XmrSettings
    watchdog: WatchdogConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path

    def require_channel(self) -> None:
        if not self.xmr.channel_usable:
            raise ConfigurationError(
                f"[xmr] channel must be set (got {self.xmr.channel!r})"
            )


def load_config(path: Optional[Path] = None) -> XmrConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "xmr": {
                "url": constants.DISABLED_URL,
                "channel": constants.UNKNOWN_CHANNEL,
            },
            "watchdog": {
                "interval_seconds": str(constants.DEFAULT_WATCHDOG_INTERVAL_SECONDS),
                "liveness_window_seconds": str(
                    constants.DEFAULT_LIVENESS_WINDOW.total_seconds()
                ),
            },
            "logging": {
                "level": "INFO",
                "path": "",
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    heartbeat_value = parser.get("xmr", "heartbeat_seconds", fallback="").strip()
    try:
        heartbeat_seconds = float(heartbeat_value) if heartbeat_value else None
    except ValueError:
        heartbeat_seconds = None

    xmr = XmrSettings(
        url=parser.get("xmr", "url").strip() or constants.DISABLED_URL,
        cms_key=parser.get("xmr", "cms_key", fallback=None),
        channel=parser.get("xmr", "channel").strip(),
        heartbeat_seconds=heartbeat_seconds,
    )

    watchdog_defaults = WatchdogConfig()
    watchdog = WatchdogConfig(
        interval_seconds=max(
            1.0,
            parser.getfloat(
                "watchdog",
                "interval_seconds",
                fallback=watchdog_defaults.interval_seconds,
            ),
        ),
        liveness_window_seconds=max(
            1.0,
            parser.getfloat(
                "watchdog",
                "liveness_window_seconds",
                fallback=watchdog_defaults.liveness_window_seconds,
            ),
        ),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=parser.getint("health", "port", fallback=0),
    )

    return XmrConfig(
        xmr=xmr,
        watchdog=watchdog,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )


def save_config(config: XmrConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
