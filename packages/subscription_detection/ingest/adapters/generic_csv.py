"""Adapter for plain transaction CSVs.

Expected header (case-insensitive, any order, extra columns ignored):
``date, merchant, amount, description`` and optionally ``id``. Dates are
ISO ``YYYY-MM-DD``; amounts are signed with debits negative.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from ...logging_setup import get_logger
from ...models import Transaction
from ..utils import parse_amount, row_is_blank

REQUIRED_HEADERS: frozenset[str] = frozenset({"date", "merchant", "amount"})

_logger = get_logger("subscription_detection.ingest.generic_csv")


def to_transactions(rows: Iterable[Mapping[str, str]]) -> Iterator[Transaction]:
    """Convert rows to transactions, skipping (and logging) malformed ones."""

    for line_no, row in enumerate(rows, start=2):
        if row_is_blank(row):
            continue
        # Overflow cells (key None) are not part of any named column.
        lowered = {k.strip().lower(): (v or "") for k, v in row.items() if k is not None}
        try:
            yield Transaction.from_mapping(
                {
                    "id": lowered.get("id"),
                    "date": lowered.get("date"),
                    "merchant": lowered.get("merchant", "").strip(),
                    "amount": parse_amount(lowered.get("amount")),
                    "description": lowered.get("description", "").strip(),
                }
            )
        except ValueError as e:
            _logger.warning("ingest:row_skipped line=%d error=%s", line_no, e)


__all__ = ["REQUIRED_HEADERS", "to_transactions"]
