"""Public API and orchestration for the ``subscription_detection`` package.

The entry points take their collaborators explicitly: a
:class:`~subscription_detection.sources.TransactionSource` to read a user's
transactions from and an optional
:class:`~subscription_detection.sources.CandidateSink` to hand the ranked
candidates to. Pure detection over an in-memory list is available directly as
:func:`detect_recurring_patterns` (statistical) and :func:`detect_all`
(external detector with statistical fallback), re-exported here.
"""

from __future__ import annotations

from .detection import detect_recurring_patterns
from .external import SubscriptionInference, detect_all
from .logging_setup import get_logger
from .models import SubscriptionCandidate
from .settings import DetectionSettings
from .sources import CandidateSink, TransactionSource

_logger = get_logger("subscription_detection.api")


def _deliver(
    user_id: str,
    candidates: list[SubscriptionCandidate],
    sink: CandidateSink | None,
) -> list[SubscriptionCandidate]:
    if sink is not None and candidates:
        written = sink.save_candidates(user_id, candidates)
        _logger.info("detect_subscriptions:saved user_id=%s rows=%d", user_id, written)
    return candidates


def detect_subscriptions(
    user_id: str,
    *,
    source: TransactionSource,
    sink: CandidateSink | None = None,
    settings: DetectionSettings | None = None,
) -> list[SubscriptionCandidate]:
    """Detect a user's subscriptions statistically and optionally persist them.

    Returns the ranked candidates (possibly empty). Errors raised by
    ``source`` or ``sink`` propagate unchanged.
    """

    transactions = source.list_transactions(user_id)
    _logger.info(
        "detect_subscriptions:start user_id=%s transactions=%d", user_id, len(transactions)
    )
    candidates = detect_recurring_patterns(transactions, settings=settings)
    return _deliver(user_id, candidates, sink)


async def detect_subscriptions_with_ai(
    user_id: str,
    *,
    source: TransactionSource,
    sink: CandidateSink | None = None,
    inference: SubscriptionInference | None = None,
    settings: DetectionSettings | None = None,
) -> list[SubscriptionCandidate]:
    """Like :func:`detect_subscriptions` but tries the external detector first.

    External failures never surface here; they fall back to the statistical
    result (see :func:`~subscription_detection.external.detect_all`).
    """

    transactions = source.list_transactions(user_id)
    _logger.info(
        "detect_subscriptions_with_ai:start user_id=%s transactions=%d",
        user_id,
        len(transactions),
    )
    candidates = await detect_all(transactions, inference=inference, settings=settings)
    return _deliver(user_id, candidates, sink)


__all__ = [
    "detect_all",
    "detect_recurring_patterns",
    "detect_subscriptions",
    "detect_subscriptions_with_ai",
]
