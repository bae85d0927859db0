"""Collaborator interfaces at the edges of detection.

Detection reads transactions from a :class:`TransactionSource` and may hand
its candidates to a :class:`CandidateSink`. Both are passed into the entry
points in :mod:`subscription_detection.api` explicitly; nothing here holds a
global client. Database-backed implementations live in
:mod:`subscription_detection.persistence`.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from .models import SubscriptionCandidate, Transaction


class TransactionSource(Protocol):
    def list_transactions(self, user_id: str) -> list[Transaction]:
        """Return every transaction for ``user_id`` (order unspecified)."""
        ...


class CandidateSink(Protocol):
    def save_candidates(self, user_id: str, candidates: Sequence[SubscriptionCandidate]) -> int:
        """Persist candidates keyed by ``(user_id, merchant)``; return the count written."""
        ...


class InMemoryTransactionSource:
    """Transactions held in a dict, keyed by user id."""

    def __init__(self, by_user: dict[str, Iterable[Transaction]] | None = None) -> None:
        self._by_user: dict[str, list[Transaction]] = {
            user_id: list(txs) for user_id, txs in (by_user or {}).items()
        }

    def add(self, user_id: str, transactions: Iterable[Transaction]) -> None:
        self._by_user.setdefault(user_id, []).extend(transactions)

    def list_transactions(self, user_id: str) -> list[Transaction]:
        return list(self._by_user.get(user_id, ()))


class InMemoryCandidateSink:
    """Keeps the latest candidate per ``(user_id, merchant)``."""

    def __init__(self) -> None:
        self.saved: dict[tuple[str, str], SubscriptionCandidate] = {}

    def save_candidates(self, user_id: str, candidates: Sequence[SubscriptionCandidate]) -> int:
        for c in candidates:
            self.saved[(user_id, c.merchant)] = c
        return len(candidates)

    def for_user(self, user_id: str) -> list[SubscriptionCandidate]:
        return [c for (uid, _), c in self.saved.items() if uid == user_id]


__all__ = [
    "CandidateSink",
    "InMemoryCandidateSink",
    "InMemoryTransactionSource",
    "TransactionSource",
]
