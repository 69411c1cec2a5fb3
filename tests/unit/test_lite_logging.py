"""Unit tests for kiosk_lite.lite_logging."""

import logging

import pytest

from kiosk_lite.api.middleware.correlation_id import request_id_var
from kiosk_lite.lite_logging import CorrelationIdFilter, configure_lite_logging, get_logging_status

pytestmark = [pytest.mark.unit, pytest.mark.fast]


@pytest.fixture
def isolated_root_logger():
    """Restore logger levels and strip added filters after each test."""
    root = logging.getLogger()
    names = ("kiosk_lite", "httpx", "aiohttp.access")
    saved_levels = {name: logging.getLogger(name).level for name in names}
    saved_root_level = root.level
    yield root
    for handler in root.handlers:
        for f in [f for f in handler.filters if isinstance(f, CorrelationIdFilter)]:
            handler.removeFilter(f)
    root.setLevel(saved_root_level)
    for name, level in saved_levels.items():
        logging.getLogger(name).setLevel(level)


def test_filter_stamps_request_id() -> None:
    record = logging.LogRecord("kiosk_lite.test", logging.INFO, __file__, 1, "msg", None, None)
    token = request_id_var.set("abc-123")
    try:
        assert CorrelationIdFilter().filter(record) is True
    finally:
        request_id_var.reset(token)

    assert record.request_id == "abc-123"


def test_filter_outside_request() -> None:
    record = logging.LogRecord("kiosk_lite.test", logging.INFO, __file__, 1, "msg", None, None)

    CorrelationIdFilter().filter(record)

    assert record.request_id == "no-request-id"


def test_configure_filters_handlers_and_quiets_third_party(isolated_root_logger) -> None:
    handler = logging.NullHandler()
    isolated_root_logger.addHandler(handler)
    try:
        configure_lite_logging(debug_mode=False)
    finally:
        isolated_root_logger.removeHandler(handler)

    assert any(isinstance(f, CorrelationIdFilter) for f in handler.filters)
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("kiosk_lite").level == logging.INFO


def test_configure_twice_does_not_duplicate_filters(isolated_root_logger) -> None:
    handler = logging.NullHandler()
    isolated_root_logger.addHandler(handler)
    try:
        configure_lite_logging()
        configure_lite_logging()
    finally:
        isolated_root_logger.removeHandler(handler)

    assert sum(isinstance(f, CorrelationIdFilter) for f in handler.filters) == 1


def test_env_debug_enables_debug(isolated_root_logger, monkeypatch) -> None:
    monkeypatch.setenv("KIOSK_DEBUG", "true")

    configure_lite_logging(debug_mode=False)

    assert logging.getLogger("kiosk_lite").level == logging.DEBUG


def test_force_debug_overrides_env(isolated_root_logger, monkeypatch) -> None:
    monkeypatch.setenv("KIOSK_DEBUG", "1")

    configure_lite_logging(force_debug=False)

    assert logging.getLogger("kiosk_lite").level == logging.INFO


def test_env_log_level_sets_root(isolated_root_logger, monkeypatch) -> None:
    monkeypatch.setenv("KIOSK_LOG_LEVEL", "warning")

    configure_lite_logging()

    assert get_logging_status()["root"] == "WARNING"
