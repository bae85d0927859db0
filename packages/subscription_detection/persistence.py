# ruff: noqa: I001
"""Persistence integration for subscription_detection.

Functions here read transactions from and write detected subscriptions to the
shared database owned by ``libs/db``. They rely on the SQLAlchemy ORM models
in ``db.models.finance`` and sessions from ``db.client``.

Scope:
- Upsert ingested transactions into ``sd_transactions`` (idempotent by
  ``(user_id, external_id)`` when an id is present).
- Upsert subscription candidates into ``sd_subscriptions`` keyed by
  ``(user_id, merchant)``.
- :class:`DbTransactionSource` / :class:`DbSubscriptionSink` adapt both to the
  collaborator protocols in :mod:`subscription_detection.sources`.

Upserts are written as select-then-update so the same code runs on Postgres
and on the SQLite databases used in tests.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.client import session_scope
from db.models.finance import UserSubscription, UserTransaction

from .logging_setup import get_logger
from .models import SubscriptionCandidate, Transaction

_logger = get_logger("subscription_detection.persistence")


def _confidence_4(value: float) -> Decimal:
    d = Decimal(str(value)).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    # Column constraint is [0, 1]; statistical scores never exceed 1 but keep
    # float noise from tripping the CHECK.
    return min(max(d, Decimal(0)), Decimal(1))


def upsert_transactions(
    session: Session,
    *,
    user_id: str,
    transactions: Iterable[Transaction],
    source: str = "manual",
) -> int:
    """Insert or update transactions for ``user_id``; return rows written.

    Transactions with an ``id`` are matched on ``(user_id, external_id)`` and
    updated in place. Transactions without one are always inserted.
    """

    written = 0
    for tx in transactions:
        row: UserTransaction | None = None
        if tx.id is not None:
            row = session.scalars(
                select(UserTransaction).where(
                    UserTransaction.user_id == user_id,
                    UserTransaction.external_id == tx.id,
                )
            ).one_or_none()
        if row is None:
            row = UserTransaction(user_id=user_id, external_id=tx.id, source=source)
            session.add(row)
        row.date = tx.date
        row.merchant = tx.merchant
        row.amount = tx.amount
        row.description = tx.description
        written += 1
    session.flush()
    _logger.info("persist:transactions user_id=%s rows=%d", user_id, written)
    return written


def load_transactions(session: Session, *, user_id: str) -> list[Transaction]:
    """Return ``user_id``'s transactions ordered by date, then insertion."""

    rows = session.scalars(
        select(UserTransaction)
        .where(UserTransaction.user_id == user_id)
        .order_by(UserTransaction.date, UserTransaction.id)
    ).all()
    return [
        Transaction(
            id=r.external_id,
            date=r.date,
            merchant=r.merchant,
            amount=Decimal(r.amount),
            description=r.description or "",
        )
        for r in rows
    ]


def upsert_subscriptions(
    session: Session,
    *,
    user_id: str,
    candidates: Sequence[SubscriptionCandidate],
) -> int:
    """Write candidates as ``active`` subscriptions keyed by ``(user_id, merchant)``.

    Existing rows are refreshed (amount, frequency, confidence, next billing
    date, ``detected_at``) and re-activated; rows for merchants absent from
    ``candidates`` are left untouched.
    """

    for c in candidates:
        row = session.scalars(
            select(UserSubscription).where(
                UserSubscription.user_id == user_id,
                UserSubscription.merchant == c.merchant,
            )
        ).one_or_none()
        if row is None:
            row = UserSubscription(user_id=user_id, merchant=c.merchant)
            session.add(row)
        else:
            row.detected_at = func.now()
        row.amount = c.amount_cents
        row.frequency = c.frequency
        row.confidence = _confidence_4(c.confidence)
        row.next_billing_date = c.next_billing_date
        row.status = "active"
    session.flush()
    _logger.info("persist:subscriptions user_id=%s rows=%d", user_id, len(candidates))
    return len(candidates)


class DbTransactionSource:
    """:class:`~subscription_detection.sources.TransactionSource` over ``sd_transactions``."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self.database_url = database_url

    def list_transactions(self, user_id: str) -> list[Transaction]:
        with session_scope(database_url=self.database_url) as session:
            return load_transactions(session, user_id=user_id)


class DbSubscriptionSink:
    """:class:`~subscription_detection.sources.CandidateSink` over ``sd_subscriptions``."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self.database_url = database_url

    def save_candidates(self, user_id: str, candidates: Sequence[SubscriptionCandidate]) -> int:
        with session_scope(database_url=self.database_url) as session:
            return upsert_subscriptions(session, user_id=user_id, candidates=candidates)


__all__ = [
    "DbSubscriptionSink",
    "DbTransactionSource",
    "load_transactions",
    "upsert_subscriptions",
    "upsert_transactions",
]
