"""Ingest utilities shared by CLI commands.

Exposes :func:`load_transactions_from_csv`, which picks the AmEx-like adapter
when the header carries its columns and the generic adapter otherwise, and
:func:`parse_amount`, the tolerant money parser both adapters use.
"""

from __future__ import annotations

import csv
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from os import PathLike
from pathlib import Path
from typing import Any

from ..models import Transaction


def parse_amount(raw: str | None) -> Decimal:
    """Parse a money string such as ``"-$1,234.56"``, ``"(12.00)"`` or ``"9.99"``.

    Parentheses mark a negative value regardless of any sign; ``$`` and
    thousands separators are dropped. Raises ``ValueError`` on empty or
    non-numeric input.
    """

    if raw is None:
        raise ValueError("amount is required")
    s = raw.strip()
    if not s:
        raise ValueError("amount is empty")
    negative = False

    # Strip leading sign, currency symbol and surrounding parentheses in any
    # order until stable.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s.startswith("$"):
            s = s[1:].lstrip()
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break

    s = s.replace(",", "").strip()
    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return -abs(d) if negative else d


def row_is_blank(row: Mapping[Any, Any]) -> bool:
    """True when every cell of a ``csv.DictReader`` row is empty.

    Cells beyond the header arrive under the ``None`` key as a list and count
    like any other cell.
    """

    for value in row.values():
        cells = value if isinstance(value, list) else [value]
        if any((c or "").strip() for c in cells):
            return False
    return True


def load_transactions_from_csv(csv_path: str | PathLike[str]) -> list[Transaction]:
    """Read a transactions CSV and return parsed transactions in file order.

    Raises ``csv.Error`` when the file has no header or matches neither the
    AmEx-like nor the generic column set. Malformed rows are skipped.
    """

    from .adapters import amex_like_csv, generic_csv

    p = Path(csv_path)
    with p.open(encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        headers = [h for h in (reader.fieldnames or []) if h is not None]
        if not headers:
            raise csv.Error(f"CSV appears to have no header row: {csv_path}")

        if amex_like_csv.REQUIRED_HEADERS.issubset(headers):
            return list(amex_like_csv.to_transactions(reader))

        lowered = {h.strip().lower() for h in headers}
        missing = sorted(generic_csv.REQUIRED_HEADERS - lowered)
        if missing:
            raise csv.Error(
                "CSV header not recognized. Expected AmEx-like columns or "
                "date/merchant/amount[/description/id]; missing: " + ", ".join(missing)
            )
        return list(generic_csv.to_transactions(reader))


__all__ = ["load_transactions_from_csv", "parse_amount", "row_is_blank"]
