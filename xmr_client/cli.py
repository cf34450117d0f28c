"""Command-line interface for xmr-client."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import XmrListenerApp
from .config import ConfigurationError, load_config

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xmr-client", description="Listen for XMR push notifications"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    listen_parser = subparsers.add_parser(
        "listen", help="Connect to the relay and log received commands"
    )
    listen_parser.add_argument("--url", help="Override the [xmr] url setting")
    listen_parser.add_argument("--channel", help="Override the [xmr] channel setting")
    listen_parser.add_argument("--key", help="Override the [xmr] cms_key setting")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "listen":
        if args.url:
            config.xmr.url = args.url
        if args.channel:
            config.xmr.channel = args.channel
        if args.key:
            config.xmr.cms_key = args.key
        try:
            config.require_channel()
        except ConfigurationError as exc:
            LOGGER.error("Cannot listen: %s", exc)
            return 1
        XmrListenerApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                if key == "cms_key" and value:
                    value = "********"
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
