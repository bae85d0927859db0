"""Fallback combinator for optional, failure-prone capabilities.

An enhancement (typically a model call) is attempted once under a timeout;
any failure, including the timeout, is logged and replaced by a deterministic
local computation. Callers therefore never see the enhancement's errors.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .logging_setup import get_logger

T = TypeVar("T")

_logger = get_logger("subscription_detection.fallback")


async def attempt_with_fallback(
    primary: Callable[[], Awaitable[T]],
    fallback: Callable[[], T],
    *,
    timeout: float | None,
    label: str,
) -> T:
    """Return ``await primary()``, or ``fallback()`` when it fails.

    No retries are made. ``timeout`` (seconds, ``None`` for unbounded) is
    applied to the primary attempt only. ``asyncio.CancelledError`` from the
    surrounding task is not intercepted.
    """

    t0 = time.perf_counter()
    try:
        result = await asyncio.wait_for(primary(), timeout=timeout)
    except Exception as e:  # noqa: BLE001 - every failure routes to the fallback
        dt_ms = (time.perf_counter() - t0) * 1000.0
        _logger.warning(
            "%s:fallback latency_ms=%.2f error=%s detail=%s",
            label,
            dt_ms,
            e.__class__.__name__,
            e,
        )
        return fallback()
    dt_ms = (time.perf_counter() - t0) * 1000.0
    _logger.info("%s:primary_ok latency_ms=%.2f", label, dt_ms)
    return result


__all__ = ["attempt_with_fallback"]
