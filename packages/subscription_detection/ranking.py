"""Ordering of subscription candidates for presentation."""

from __future__ import annotations

from collections.abc import Iterable

from .models import SubscriptionCandidate


def rank_candidates(candidates: Iterable[SubscriptionCandidate]) -> list[SubscriptionCandidate]:
    """Return candidates by descending confidence.

    ``sorted`` is stable, so equal confidences keep the order the detector
    produced them in.
    """

    return sorted(candidates, key=lambda c: c.confidence, reverse=True)


__all__ = ["rank_candidates"]
