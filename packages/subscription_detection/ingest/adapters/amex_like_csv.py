"""Adapter for mapping an AmEx-like CSV export to transactions.

CSV header (exact keys expected):
Date, Description, Card Member, Account #, Amount, Extended Details,
Appears On Your Statement As, Address, City/State, Zip Code, Country,
Reference, Category

AmEx reports charges as positive amounts and credits as negative ones; the
sign is flipped so charges become debits (negative) like every other source.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from datetime import date, datetime

from ...logging_setup import get_logger
from ...models import Transaction
from ..utils import parse_amount, row_is_blank

REQUIRED_HEADERS: frozenset[str] = frozenset(
    {"Reference", "Description", "Amount", "Date", "Appears On Your Statement As"}
)

_logger = get_logger("subscription_detection.ingest.amex_like_csv")


def _clean_text(value: str | None) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", value).strip()


def _parse_date(value: str | None) -> date:
    s = (value or "").strip()
    # Attempt MM/DD/YYYY first; fall back to MM/DD/YY.
    for fmt in ("%m/%d/%Y", "%m/%d/%y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"invalid MM/DD/YYYY date: {value!r}")


def to_transactions(rows: Iterable[Mapping[str, str]]) -> Iterator[Transaction]:
    """Convert AmEx-like CSV rows to transactions.

    Mapping rules:
    - ``id``: ``Reference`` or ``None`` when empty
    - ``date``: ``Date`` (MM/DD/YYYY or MM/DD/YY)
    - ``merchant``: ``Description`` (the short payee name)
    - ``amount``: ``-Amount``
    - ``description``: ``Appears On Your Statement As``, else ``Description``

    Rows whose date or amount cannot be parsed are skipped with a warning.
    """

    for line_no, row in enumerate(rows, start=2):
        if row_is_blank(row):
            continue
        try:
            tx_date = _parse_date(row.get("Date"))
            amount = -parse_amount(row.get("Amount"))
        except ValueError as e:
            _logger.warning("ingest:row_skipped line=%d error=%s", line_no, e)
            continue
        merchant = _clean_text(row.get("Description"))
        ref = (row.get("Reference") or "").strip()
        yield Transaction(
            id=ref or None,
            date=tx_date,
            merchant=merchant,
            amount=amount,
            description=_clean_text(row.get("Appears On Your Statement As")) or merchant,
        )


__all__ = ["REQUIRED_HEADERS", "to_transactions"]
