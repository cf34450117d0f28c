"""Tests for root logging setup."""

from __future__ import annotations

import logging

import pytest

from xmr_client.logging import configure_logging

AIOHTTP_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiohttp.websocket")


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    network_levels = {name: logging.getLogger(name).level for name in AIOHTTP_LOGGERS}
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    for name, value in network_levels.items():
        logging.getLogger(name).setLevel(value)


def test_file_handler_writes_records(tmp_path):
    log_path = tmp_path / "logs" / "xmr.log"

    configure_logging("DEBUG", log_path=log_path)
    logging.getLogger("xmr_client.test").info("hello relay")
    for handler in logging.getLogger().handlers:
        handler.flush()

    file_handlers = [
        h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
    ]
    assert len(file_handlers) == 1
    assert "hello relay" in log_path.read_text()


def test_network_loggers_quieted_unless_requested():
    for name in AIOHTTP_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)

    configure_logging("DEBUG", log_network=True)
    assert all(logging.getLogger(n).level == logging.NOTSET for n in AIOHTTP_LOGGERS)

    configure_logging("DEBUG")
    assert all(logging.getLogger(n).level == logging.WARNING for n in AIOHTTP_LOGGERS)
