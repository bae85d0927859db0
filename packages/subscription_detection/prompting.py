"""Prompt construction and payload serialization for external detection.

This module builds:
- A deterministic JSON serialization of the reduced transaction view sent to
  the model (fixed field order, ISO dates, float amounts).
- The system instructions and user content for the detection task.
- The strict ``text.format`` (JSON Schema) object for the OpenAI Responses API.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .models import Transaction

PAYLOAD_FIELD_ORDER: tuple[str, ...] = ("merchant", "amount", "date", "description")

BEGIN_MARKER = "BEGIN_TRANSACTIONS_JSON"
END_MARKER = "END_TRANSACTIONS_JSON"


def build_payload(transactions: Iterable[Transaction]) -> list[dict[str, Any]]:
    """Reduce transactions to the fields the external detector may see."""

    return [
        {
            "merchant": t.merchant,
            "amount": float(t.amount),
            "date": t.date.isoformat(),
            "description": t.description,
        }
        for t in transactions
    ]


def serialize_payload_to_json(items: Sequence[Mapping[str, Any]]) -> str:
    """Serialize payload items with keys exactly in ``PAYLOAD_FIELD_ORDER``."""

    arr = [{key: item.get(key) for key in PAYLOAD_FIELD_ORDER} for item in items]
    return json.dumps(arr, ensure_ascii=False)


def build_system_instructions() -> str:
    return (
        "You are a subscription detection expert. Identify recurring payment patterns "
        "in a user's transactions. Report only merchants that bill monthly or yearly. "
        "Output JSON only that conforms to the specified schema."
    )


def build_user_content(payload_json: str) -> str:
    """Embed the transactions between BEGIN_/END_ markers with task guidance."""

    return (
        "Analyze these transactions to identify recurring subscriptions.\n"
        "Look for: the same merchant appearing at regular monthly or yearly intervals, "
        "similar amounts each time, amounts typical for subscriptions (e.g. 9.99, 14.99), "
        'and descriptions mentioning "subscription", "monthly", "annual" and the like.\n'
        "For each subscription report the merchant name as it appears in the data, the "
        "typical charge as a positive number, the frequency, and a confidence in [0, 1].\n\n"
        f"{BEGIN_MARKER}\n{payload_json}\n{END_MARKER}\n"
    )


def build_response_format() -> ResponseFormatTextJSONSchemaConfigParam:
    """Return the strict JSON Schema response format.

    Shape: ``{"subscriptions": [{"merchant", "amount", "frequency",
    "confidence"}]}`` with ``frequency`` restricted to ``monthly``/``yearly``.
    """

    result: ResponseFormatTextJSONSchemaConfigParam = {
        "type": "json_schema",
        "name": "detected_subscriptions",
        "schema": {
            "type": "object",
            "properties": {
                "subscriptions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "merchant": {"type": "string"},
                            "amount": {"type": "number"},
                            "frequency": {"type": "string", "enum": ["monthly", "yearly"]},
                            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                        },
                        "required": ["merchant", "amount", "frequency", "confidence"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["subscriptions"],
            "additionalProperties": False,
        },
        "strict": True,
    }
    return result


__all__ = [
    "BEGIN_MARKER",
    "END_MARKER",
    "PAYLOAD_FIELD_ORDER",
    "build_payload",
    "build_response_format",
    "build_system_instructions",
    "build_user_content",
    "serialize_payload_to_json",
]
