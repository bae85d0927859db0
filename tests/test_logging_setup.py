from __future__ import annotations

import io
import logging

import pytest

from subscription_detection.logging_setup import configure_logging, get_logger


def test_library_logger_is_silent_until_configured():
    get_logger("subscription_detection.detection")
    pkg = logging.getLogger("subscription_detection")
    assert any(isinstance(h, logging.NullHandler) for h in pkg.handlers)


def test_configure_logging_attaches_one_stream_handler():
    buf = io.StringIO()
    configure_logging("DEBUG", fmt="%(name)s %(levelname)s %(message)s", stream=buf)
    configure_logging("ERROR", stream=io.StringIO())  # second call is a no-op

    get_logger("subscription_detection.detection").debug("detect:summary groups=%d", 3)

    pkg = logging.getLogger("subscription_detection")
    assert len(pkg.handlers) == 1
    assert pkg.propagate is False
    assert buf.getvalue() == "subscription_detection.detection DEBUG detect:summary groups=3\n"


def test_level_comes_from_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SUBSCRIPTION_DETECTION_LOG_LEVEL", "warning")
    buf = io.StringIO()
    configure_logging(stream=buf)

    log = get_logger("subscription_detection.external")
    log.info("detect_all:primary_ok")
    log.warning("detect_all:fallback")

    assert "primary_ok" not in buf.getvalue()
    assert "detect_all:fallback" in buf.getvalue()


def test_unknown_level_name_is_rejected():
    with pytest.raises(ValueError, match="unknown log level"):
        configure_logging("LOUD", stream=io.StringIO())
