"""Data models and type aliases for ``subscription_detection``.

Transactions arrive from an upstream source (bank feed, statement ingestion,
database) and are treated as read-only. Everything else in this module is
derived per detection run and never persisted by the core itself.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

_CENT = Decimal("0.01")

# ---------------------------------------------------------------------------
# Core record and collections
# ---------------------------------------------------------------------------

type Frequency = Literal["monthly", "yearly"]
"""Billing cadence of an accepted subscription."""

type Cadence = Literal["monthly", "yearly", "none"]
"""Cadence classification of a merchant group, including "no pattern"."""


def _parse_date(raw: Any) -> date:
    if isinstance(raw, date):
        return raw
    if raw is None:
        raise ValueError("date is required")
    s = str(raw).strip()
    # Accept 'YYYY-MM-DD' optionally followed by a time component.
    first = s.split()[0] if s else s
    try:
        return date.fromisoformat(first.split("T", 1)[0])
    except ValueError as exc:
        raise ValueError(f"invalid date: {raw!r}") from exc


def _parse_amount(raw: Any) -> Decimal:
    if raw is None or isinstance(raw, bool):
        raise ValueError("amount is required")
    try:
        d = raw if isinstance(raw, Decimal) else Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"amount must be finite: {raw!r}")
    return d


@dataclass(frozen=True, slots=True)
class Transaction:
    """A single posted transaction for one user.

    Attributes
    ----------
    id:
        Upstream identifier, ``None`` when the source has none.
    date:
        Posting date.
    merchant:
        Free-text merchant name as delivered by the source.
    amount:
        Signed amount; negative values are debits.
    description:
        Free-text statement description.
    """

    id: str | None
    date: date
    merchant: str
    amount: Decimal
    description: str = ""

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> Transaction:
        """Build a transaction from a loose mapping (CSV row, JSON, DB row).

        ``date`` must be ISO ``YYYY-MM-DD`` (a trailing time is ignored) or a
        ``datetime.date``; ``amount`` anything ``Decimal`` accepts. Raises
        ``ValueError`` when either is missing or malformed.
        """

        tx_id = record.get("id")
        id_str = str(tx_id).strip() if tx_id is not None else ""
        return cls(
            id=id_str or None,
            date=_parse_date(record.get("date")),
            merchant=str(record.get("merchant") or ""),
            amount=_parse_amount(record.get("amount")),
            description=str(record.get("description") or ""),
        )


type Transactions = Iterable[Transaction]
"""Any iterable of transactions for a single user."""

type MerchantGroup = dict[str, list[Transaction]]
"""Normalized merchant key -> that merchant's transactions in input order."""


class FrequencyEstimate(NamedTuple):
    kind: Cadence
    confidence: float


@dataclass(frozen=True, slots=True)
class SubscriptionCandidate:
    """A merchant believed to bill on a recurring schedule.

    ``member_transactions`` holds the transactions that produced the
    candidate in ascending date order, and ``next_billing_date`` always lies
    strictly after the last of them. Candidates are recomputed on every run;
    persisting them is the caller's concern.
    """

    merchant: str
    amount: Decimal
    frequency: Frequency
    confidence: float
    member_transactions: tuple[Transaction, ...]
    next_billing_date: date

    @property
    def last_charge_date(self) -> date:
        return self.member_transactions[-1].date

    @property
    def amount_cents(self) -> Decimal:
        """``amount`` rounded half-up to cents, for display and storage."""

        return self.amount.quantize(_CENT, rounding=ROUND_HALF_UP)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view used by the CLI output."""

        return {
            "merchant": self.merchant,
            "amount": str(self.amount_cents),
            "frequency": self.frequency,
            "confidence": round(self.confidence, 4),
            "next_billing_date": self.next_billing_date.isoformat(),
            "transaction_ids": [t.id for t in self.member_transactions],
        }


# ---------------------------------------------------------------------------
# External detector DTOs
# ---------------------------------------------------------------------------


class ExternalSubscription(BaseModel):
    """One subscription as reported by the external inference service."""

    model_config = ConfigDict(
        extra="forbid", str_strip_whitespace=True, frozen=True, strict=True
    )

    merchant: str
    amount: float
    frequency: Frequency
    confidence: float

    @field_validator("merchant")
    @classmethod
    def _merchant_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("merchant must be non-empty")
        return v

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_interval(cls, v: float) -> float:
        if 0.0 <= v <= 1.0:
            return v
        raise ValueError("confidence must be within [0,1]")

    @field_validator("amount")
    @classmethod
    def _amount_finite(cls, v: float) -> float:
        if v != v or v in (float("inf"), float("-inf")):
            raise ValueError("amount must be finite")
        return v


class ExternalDetectionResponse(BaseModel):
    """Top-level JSON object returned by the external inference service."""

    model_config = ConfigDict(extra="forbid", strict=True)

    subscriptions: list[ExternalSubscription]
