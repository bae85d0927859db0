"""Runtime policy for subscription detection.

The defaults are heuristics rather than invariants, so each one can be
overridden through the environment (the CLI loads a local ``.env`` first):

- ``SD_CONFIDENCE_THRESHOLD``: minimum overall confidence for a candidate.
- ``SD_EXTERNAL_TIMEOUT_SECONDS``: bound on the external detector call.
- ``SD_OPENAI_MODEL``: model name for the OpenAI-backed detector.
- ``SD_MAX_WORKERS``: thread fan-out across merchant groups (1 = serial).
- ``SD_MERCHANT_ALIASES``: JSON object mapping merchant spellings onto one
  canonical merchant, e.g. ``{"Netflix Inc": "NETFLIX.COM"}``.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .merchants import normalize_merchant

_ENV_FIELDS: dict[str, str] = {
    "confidence_threshold": "SD_CONFIDENCE_THRESHOLD",
    "external_timeout_seconds": "SD_EXTERNAL_TIMEOUT_SECONDS",
    "openai_model": "SD_OPENAI_MODEL",
    "max_workers": "SD_MAX_WORKERS",
    "merchant_aliases": "SD_MERCHANT_ALIASES",
}


class DetectionSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    external_timeout_seconds: float = Field(default=30.0, gt=0.0)
    openai_model: str = Field(default="gpt-5", min_length=1)
    max_workers: int = Field(default=1, ge=1, le=32)
    merchant_aliases: dict[str, str] = Field(default_factory=dict)

    @field_validator("merchant_aliases")
    @classmethod
    def _normalize_aliases(cls, v: dict[str, str]) -> dict[str, str]:
        # Both sides are compared against normalized keys during grouping.
        out: dict[str, str] = {}
        for alias, canonical in v.items():
            a = normalize_merchant(alias)
            c = normalize_merchant(canonical)
            if not a or not c:
                raise ValueError(f"merchant alias entries must be non-blank: {alias!r}")
            if a != c:
                out[a] = c
        # Grouping applies the map once, so chains are collapsed to their end.
        resolved: dict[str, str] = {}
        for alias, target in out.items():
            seen = {alias}
            while target in out:
                if target in seen:
                    raise ValueError(f"merchant aliases form a cycle through {alias!r}")
                seen.add(target)
                target = out[target]
            resolved[alias] = target
        return resolved


def load_settings(
    environ: Mapping[str, str] | None = None, **overrides: Any
) -> DetectionSettings:
    """Build :class:`DetectionSettings` from ``SD_*`` variables.

    ``overrides`` win over the environment and are typically CLI flags; keys
    whose value is ``None`` are ignored. Raises ``ValueError`` with the
    offending variable named when a value does not validate.
    """

    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for field_name, var in _ENV_FIELDS.items():
        raw = env.get(var)
        if raw is None or not raw.strip():
            continue
        if field_name == "merchant_aliases":
            try:
                values[field_name] = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ValueError(f"{var} must be a JSON object: {e}") from e
        else:
            values[field_name] = raw
    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return DetectionSettings.model_validate(values)
    except ValidationError as e:
        raise ValueError(f"invalid detection settings: {e}") from e


__all__ = ["DetectionSettings", "load_settings"]
