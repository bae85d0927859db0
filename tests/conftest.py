"""Pytest configuration for test isolation.

Detection reads ``SD_*`` policy from the environment and the CLI configures
the package logger once per process. Both leak across tests unless reset, so
an autouse fixture clears the variables and restores the logger to its
library default (no handlers, propagating) around every test.
"""

from __future__ import annotations

import logging
import os

import pytest

import subscription_detection.logging_setup as logging_setup


@pytest.fixture(autouse=True)
def _isolate_env_and_logging(monkeypatch: pytest.MonkeyPatch):
    for var in list(os.environ):
        if var.startswith("SD_") or var == "SUBSCRIPTION_DETECTION_LOG_LEVEL":
            monkeypatch.delenv(var, raising=False)

    yield

    pkg_logger = logging.getLogger("subscription_detection")
    for h in list(pkg_logger.handlers):
        pkg_logger.removeHandler(h)
    pkg_logger.setLevel(logging.NOTSET)
    pkg_logger.propagate = True
    logging_setup._CONFIGURED = False
