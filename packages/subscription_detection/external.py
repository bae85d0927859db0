"""Model-assisted subscription detection with a statistical fallback.

Public API:
    - :class:`SubscriptionInference` (capability protocol)
    - :class:`OpenAISubscriptionInference`
    - :func:`detect_all`

The external service sees only ``merchant``, ``amount``, ``date`` and
``description`` for each transaction and answers with merchant-level
subscriptions. It does not echo transaction identities, so its answers are
re-attached to transactions through the same merchant key used by the
statistical detector. No side effects occur at import time (no client
creation, no environment reads).
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any, Protocol

from openai import AsyncOpenAI
from pydantic import ValidationError

from . import prompting
from .detection import add_billing_period, detect_recurring_patterns
from .fallback import attempt_with_fallback
from .logging_setup import get_logger
from .merchants import group_by_merchant, merchant_key
from .models import (
    ExternalDetectionResponse,
    ExternalSubscription,
    SubscriptionCandidate,
    Transaction,
    Transactions,
)
from .ranking import rank_candidates
from .settings import DetectionSettings

_logger = get_logger("subscription_detection.external")


class SubscriptionInference(Protocol):
    """A single-shot external detector.

    ``attempt`` raises on any failure (transport, malformed output, schema
    deviation); a returned list is a fully validated answer.
    """

    async def attempt(
        self, payload: Sequence[Mapping[str, Any]]
    ) -> list[ExternalSubscription]: ...


# ---- OpenAI-backed implementation ----------------------------------------------


def _extract_response_json_mapping(resp: Any) -> Mapping[str, Any]:
    """Decode the JSON object from an OpenAI Responses SDK result.

    Prefers ``resp.output_text`` and falls back to
    ``resp.output[0].content[0].text``. Raises ``ValueError`` when no text is
    present or it is not a JSON object.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        output = getattr(resp, "output", None)
        content = getattr(output[0], "content", None) if output else None
        if content:
            txt_obj = getattr(content[0], "text", None)
            if isinstance(txt_obj, str):
                text = txt_obj
            else:
                # Some SDKs expose text as an object with a ``value`` string.
                maybe_val = getattr(txt_obj, "value", None)
                if isinstance(maybe_val, str):
                    text = maybe_val
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output must be a JSON object at top level")
    return decoded


def parse_external_response(body: Mapping[str, Any]) -> list[ExternalSubscription]:
    """Validate a decoded response body; any schema deviation is a ``ValueError``."""

    try:
        return ExternalDetectionResponse.model_validate(body).subscriptions
    except ValidationError as e:
        raise ValueError(f"Invalid detection response: {e.error_count()} error(s)") from e


def _create_client() -> AsyncOpenAI:
    # One request per attempt; the caller owns the fallback.
    return AsyncOpenAI(max_retries=0)


class OpenAISubscriptionInference:
    """:class:`SubscriptionInference` backed by the OpenAI Responses API.

    The client is created lazily on each attempt (with SDK retries disabled)
    and closed afterwards, so constructing this class does not require
    ``OPENAI_API_KEY``.
    """

    def __init__(self, *, model: str = "gpt-5") -> None:
        self.model = model

    async def attempt(self, payload: Sequence[Mapping[str, Any]]) -> list[ExternalSubscription]:
        user_content = prompting.build_user_content(prompting.serialize_payload_to_json(payload))
        _logger.info("detect_all:llm_request transactions=%d model=%s", len(payload), self.model)

        async with _create_client() as client:
            resp = await client.responses.create(
                model=self.model,
                instructions=prompting.build_system_instructions(),
                input=user_content,
                text={"format": prompting.build_response_format()},
            )
        return parse_external_response(_extract_response_json_mapping(resp))


# ---- Re-association --------------------------------------------------------------


def _candidates_from_external(
    items: Sequence[ExternalSubscription],
    transactions: Sequence[Transaction],
    *,
    aliases: Mapping[str, str],
) -> list[SubscriptionCandidate]:
    groups = group_by_merchant(transactions, aliases=aliases)
    out: list[SubscriptionCandidate] = []
    seen: set[str] = set()
    for item in items:
        key = merchant_key(item.merchant, aliases)
        members = sorted(groups.get(key, ()), key=lambda t: t.date)
        if not members:
            _logger.warning('detect_all:unmatched_merchant merchant="%s"', item.merchant)
            continue
        if key in seen:
            _logger.warning('detect_all:duplicate_merchant merchant="%s"', item.merchant)
            continue
        seen.add(key)
        out.append(
            SubscriptionCandidate(
                merchant=key,
                amount=abs(Decimal(str(item.amount))),
                frequency=item.frequency,
                confidence=item.confidence,
                member_transactions=tuple(members),
                next_billing_date=add_billing_period(members[-1].date, item.frequency),
            )
        )
    return out


# ---- Entry point -------------------------------------------------------------------


async def detect_all(
    transactions: Transactions,
    *,
    inference: SubscriptionInference | None = None,
    settings: DetectionSettings | None = None,
) -> list[SubscriptionCandidate]:
    """Detect subscriptions via the external detector, falling back to statistics.

    Parameters
    ----------
    transactions:
        The user's transactions in any order.
    inference:
        External detector; defaults to :class:`OpenAISubscriptionInference`
        using ``settings.openai_model``.
    settings:
        Detection policy. ``external_timeout_seconds`` bounds the single
        external attempt.

    Returns
    -------
    list[SubscriptionCandidate]
        Ranked by confidence. When the external attempt fails for any reason
        this equals ``detect_recurring_patterns(transactions, settings=settings)``.
    """

    cfg = settings or DetectionSettings()
    txs = list(transactions)
    detector = inference or OpenAISubscriptionInference(model=cfg.openai_model)
    payload = prompting.build_payload(txs)

    async def _external() -> list[SubscriptionCandidate]:
        items = await detector.attempt(payload)
        return rank_candidates(
            _candidates_from_external(items, txs, aliases=cfg.merchant_aliases)
        )

    return await attempt_with_fallback(
        _external,
        lambda: detect_recurring_patterns(txs, settings=cfg),
        timeout=cfg.external_timeout_seconds,
        label="detect_all",
    )


__all__ = [
    "OpenAISubscriptionInference",
    "SubscriptionInference",
    "detect_all",
    "parse_external_response",
]
