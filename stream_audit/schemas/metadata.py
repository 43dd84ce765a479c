"""Decoding and rendering of the loosely-typed metadata payload.

Producers store metadata as a serialized string in one of two encodings:

* a JSON object: ``{"company": "Acme", "amount": 120.5}``
* the legacy bracketed map text: ``{company=Acme, amount=120.5}``

:func:`decode_metadata` tries them in that order and reports which one matched,
or carries a :class:`MetadataDecodeError` when neither did. It never raises.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import BaseModel, Field

from ..exceptions import MetadataDecodeError

EMPTY_RENDER = "-"

# Split only on commas that start a new ``key=`` pair so values may contain commas.
_LEGACY_PAIR_SPLIT = re.compile(r",\s*(?=[^,=\s][^,=]*=)")

KNOWN_FIELDS = ("company", "amount", "currency", "region")
_FIELD_ALIASES = {"company_name": "company"}


@dataclass(frozen=True, slots=True)
class MetadataDecodeResult:
    """Outcome of decoding one metadata payload."""

    fields: dict[str, Any] | None = None
    encoding: Literal["json", "legacy"] | None = None
    error: MetadataDecodeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def typed(self) -> PaymentMetadata | None:
        """Return the typed view, or None when decoding failed."""

        if self.fields is None:
            return None
        return PaymentMetadata.from_fields(self.fields)


class PaymentMetadata(BaseModel):
    """Known payment fields plus an escape hatch for anything else."""

    company: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    region: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_fields(cls, fields: dict[str, Any]) -> PaymentMetadata:
        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in fields.items():
            name = _FIELD_ALIASES.get(key, key)
            if name == "amount":
                parsed = _parse_amount(value)
                if parsed is None and value is not None:
                    extra[key] = value
                else:
                    known[name] = parsed
            elif name in KNOWN_FIELDS and name not in known:
                known[name] = None if value is None else str(value)
            else:
                extra[key] = value
        return cls(**known, extra=extra)


def _parse_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _decode_json(text: str) -> dict[str, Any] | None:
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def _decode_legacy(text: str) -> dict[str, str] | None:
    if not (text.startswith("{") and text.endswith("}")):
        return None
    inner = text[1:-1].strip()
    if not inner:
        return {}
    fields: dict[str, str] = {}
    for pair in _LEGACY_PAIR_SPLIT.split(inner):
        key, separator, value = pair.partition("=")
        if not separator or not key.strip():
            return None
        fields[key.strip()] = value.strip()
    return fields


def decode_metadata(raw: str | None) -> MetadataDecodeResult:
    """Decode ``raw`` as JSON, falling back to the legacy bracketed format."""

    if raw is None or not raw.strip():
        return MetadataDecodeResult(fields={}, encoding=None)

    text = raw.strip()
    fields: dict[str, Any] | None = _decode_json(text)
    if fields is not None:
        return MetadataDecodeResult(fields=fields, encoding="json")

    fields = _decode_legacy(text)
    if fields is not None:
        return MetadataDecodeResult(fields=fields, encoding="legacy")

    return MetadataDecodeResult(
        error=MetadataDecodeError(raw, "neither a JSON object nor a {key=value} map"),
    )


def encode_metadata(fields: dict[str, Any]) -> str:
    """Serialize metadata the way the writers store it."""

    return json.dumps(fields, default=str, sort_keys=True)


def render_metadata(raw: str | None) -> str:
    """Return a one-line display string, ``-`` when there is nothing to show."""

    result = decode_metadata(raw)
    if not result.ok:
        return raw.strip() if raw and raw.strip() else EMPTY_RENDER
    if not result.fields:
        return EMPTY_RENDER
    return ", ".join(f"{key}: {value}" for key, value in result.fields.items())
