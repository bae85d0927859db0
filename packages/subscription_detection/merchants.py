"""Merchant normalization and grouping.

Normalization is deliberately lossy: punctuation, non-ASCII letters and
separators are discarded, so ``"Netflix.com #123"`` and ``"NETFLIX.COM 123"``
land on the same key. A consequence is that different physical locations of
one chain (``"STARBUCKS #1234 TORONTO ON"`` vs ``"STARBUCKS #88 TORONTO ON"``
differ only in digits, ``"TIM HORTONS, OTTAWA"`` vs ``"TIM HORTONS OTTAWA"``
do not differ at all) may collapse into a single logical merchant. Detection
treats that merged merchant as one billing relationship.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from .models import MerchantGroup, Transactions

_NON_KEY_CHARS = re.compile(r"[^A-Z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_merchant(merchant: str) -> str:
    """Return the grouping key for a free-text merchant name.

    Uppercases, removes every character other than ASCII letters, digits and
    whitespace, collapses whitespace runs to one space and trims. Total and
    idempotent; ``""`` maps to ``""``.
    """

    s = _NON_KEY_CHARS.sub("", merchant.upper())
    return _WHITESPACE.sub(" ", s).strip()


def merchant_key(merchant: str, aliases: Mapping[str, str] | None = None) -> str:
    """Normalize ``merchant`` and resolve it through ``aliases`` (normalized keys)."""

    key = normalize_merchant(merchant)
    if aliases:
        return aliases.get(key, key)
    return key


def group_by_merchant(
    transactions: Transactions, *, aliases: Mapping[str, str] | None = None
) -> MerchantGroup:
    """Partition transactions by merchant key, preserving relative order."""

    groups: MerchantGroup = {}
    for tx in transactions:
        groups.setdefault(merchant_key(tx.merchant, aliases), []).append(tx)
    return groups


def recurring_groups(groups: MerchantGroup) -> MerchantGroup:
    """Drop groups with a single occurrence; they cannot show a recurrence."""

    return {key: txs for key, txs in groups.items() if len(txs) >= 2}


__all__ = ["group_by_merchant", "merchant_key", "normalize_merchant", "recurring_groups"]
