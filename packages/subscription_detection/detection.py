"""Statistical recurring-payment detection.

Public API:
    - :func:`detect_recurring_patterns`
    - :func:`analyze_merchant_group`

Each merchant group is scored on two signals: how stable its charge amounts
are and how closely the gaps between charges match a monthly (30 day) or
yearly (365 day) cycle. The overall score is ``0.6 * amount + 0.4 * cadence``
and groups below the configured threshold produce no candidate. No I/O
happens here; the only state is local to a single call.
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

from dateutil.relativedelta import relativedelta

from .logging_setup import get_logger
from .merchants import group_by_merchant, recurring_groups
from .models import (
    FrequencyEstimate,
    Frequency,
    SubscriptionCandidate,
    Transaction,
    Transactions,
)
from .ranking import rank_candidates
from .settings import DetectionSettings

# ---- Tunables (private) ------------------------------------------------------

_AMOUNT_WEIGHT: float = 0.6
_FREQUENCY_WEIGHT: float = 0.4

# (inclusive mean-interval window in days, reference period in days)
_MONTHLY_WINDOW: tuple[float, float] = (25.0, 35.0)
_MONTHLY_PERIOD: float = 30.0
_YEARLY_WINDOW: tuple[float, float] = (350.0, 380.0)
_YEARLY_PERIOD: float = 365.0

_BILLING_STEP: dict[str, relativedelta] = {
    "monthly": relativedelta(months=1),
    "yearly": relativedelta(years=1),
}

_logger = get_logger("subscription_detection.detection")


# ---- Statistics ----------------------------------------------------------------


def amount_consistency(amounts: Sequence[float]) -> float | None:
    """Return ``1 - stdev/mean`` over absolute amounts (population stdev).

    The result is not floored: wildly varying amounts legitimately score
    below zero. Returns ``None`` when the mean is zero (or ``amounts`` is
    empty), since the ratio is undefined.
    """

    if not amounts:
        return None
    mean = statistics.fmean(amounts)
    if mean == 0:
        return None
    return 1.0 - statistics.pstdev(amounts) / mean


def day_intervals(transactions: Sequence[Transaction]) -> list[int]:
    """Absolute day gaps between consecutive transactions (already date-sorted)."""

    return [
        abs((transactions[i].date - transactions[i - 1].date).days)
        for i in range(1, len(transactions))
    ]


def _cadence_confidence(intervals: Sequence[int], period: float) -> float:
    # Root-mean-square deviation from the reference period, scaled by it.
    rms = math.sqrt(statistics.fmean((i - period) ** 2 for i in intervals))
    return max(0.0, 1.0 - rms / period)


def classify_frequency(intervals: Sequence[int]) -> FrequencyEstimate:
    """Classify a list of day gaps as monthly, yearly or no cadence."""

    if not intervals:
        return FrequencyEstimate("none", 0.0)
    mean_interval = statistics.fmean(intervals)
    lo, hi = _MONTHLY_WINDOW
    if lo <= mean_interval <= hi:
        return FrequencyEstimate("monthly", _cadence_confidence(intervals, _MONTHLY_PERIOD))
    lo, hi = _YEARLY_WINDOW
    if lo <= mean_interval <= hi:
        return FrequencyEstimate("yearly", _cadence_confidence(intervals, _YEARLY_PERIOD))
    return FrequencyEstimate("none", 0.0)


def add_billing_period(last_charge: date, frequency: Frequency) -> date:
    """Advance ``last_charge`` by one billing period.

    Calendar-aware via ``relativedelta``: the day of month is kept when it
    exists in the target month and clamped to the month's last day otherwise
    (Jan 31 -> Feb 29 in 2024, Feb 29 -> Feb 28 the following year). The
    result is always strictly later than ``last_charge``.
    """

    return last_charge + _BILLING_STEP[frequency]


def mean_amount(transactions: Sequence[Transaction]) -> Decimal:
    """Mean of absolute amounts at full ``Decimal`` precision (not rounded)."""

    total = sum((abs(t.amount) for t in transactions), Decimal(0))
    return total / len(transactions)


# ---- Group analysis ------------------------------------------------------------


def analyze_merchant_group(
    merchant: str,
    transactions: Sequence[Transaction],
    *,
    settings: DetectionSettings | None = None,
) -> SubscriptionCandidate | None:
    """Score one merchant's transactions and return a candidate or ``None``.

    ``None`` covers every "no pattern" outcome: fewer than two transactions,
    a zero mean amount, no monthly/yearly cadence, or a confidence below
    ``settings.confidence_threshold``. Well-formed input never raises.
    """

    cfg = settings or DetectionSettings()
    # sorted() is stable: same-day charges keep their input order.
    ordered = sorted(transactions, key=lambda t: t.date)
    if len(ordered) < 2:
        return None

    consistency = amount_consistency([float(abs(t.amount)) for t in ordered])
    if consistency is None:
        _logger.debug("detect:group_rejected merchant=%s reason=zero_mean_amount", merchant)
        return None

    intervals = day_intervals(ordered)
    estimate = classify_frequency(intervals)
    if estimate.kind == "none":
        _logger.debug(
            "detect:group_rejected merchant=%s reason=no_cadence mean_interval=%.1f",
            merchant,
            statistics.fmean(intervals),
        )
        return None

    confidence = _AMOUNT_WEIGHT * consistency + _FREQUENCY_WEIGHT * estimate.confidence
    if confidence < cfg.confidence_threshold:
        _logger.debug(
            "detect:group_rejected merchant=%s reason=low_confidence confidence=%.3f",
            merchant,
            confidence,
        )
        return None

    return SubscriptionCandidate(
        merchant=merchant,
        amount=mean_amount(ordered),
        frequency=estimate.kind,
        confidence=confidence,
        member_transactions=tuple(ordered),
        next_billing_date=add_billing_period(ordered[-1].date, estimate.kind),
    )


def detect_recurring_patterns(
    transactions: Transactions,
    *,
    settings: DetectionSettings | None = None,
) -> list[SubscriptionCandidate]:
    """Detect subscriptions in one user's transactions, ranked by confidence.

    Parameters
    ----------
    transactions:
        The user's transactions in any order.
    settings:
        Detection policy; defaults to :class:`DetectionSettings` defaults.
        ``merchant_aliases`` feeds grouping, ``max_workers > 1`` analyzes
        merchant groups on a thread pool.

    Returns
    -------
    list[SubscriptionCandidate]
        Possibly empty; ties in confidence keep merchant first-seen order.
    """

    cfg = settings or DetectionSettings()
    groups = recurring_groups(group_by_merchant(transactions, aliases=cfg.merchant_aliases))

    def _analyze(item: tuple[str, list[Transaction]]) -> SubscriptionCandidate | None:
        merchant, txs = item
        return analyze_merchant_group(merchant, txs, settings=cfg)

    items = list(groups.items())
    if cfg.max_workers > 1 and len(items) > 1:
        workers = min(cfg.max_workers, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sd-group") as ex:
            # Executor.map yields in submission order.
            results = list(ex.map(_analyze, items))
    else:
        results = [_analyze(item) for item in items]

    candidates = [c for c in results if c is not None]
    _logger.info(
        "detect:summary groups=%d candidates=%d",
        len(items),
        len(candidates),
    )
    return rank_candidates(candidates)


__all__ = [
    "add_billing_period",
    "amount_consistency",
    "analyze_merchant_group",
    "classify_frequency",
    "day_intervals",
    "detect_recurring_patterns",
    "mean_amount",
]
