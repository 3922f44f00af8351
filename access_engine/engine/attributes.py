"""
Typed attribute values for users and resources.

Attributes are persisted as (name, value, attribute_type) rows where the type is
either ``"json"`` or a plain string. Decoding is split into two steps:

- ``parse_attribute`` is pure and returns either a decoded value or an
  ``AttributeParseError``; it never raises.
- ``decode_attributes`` folds a batch of stored rows into a mapping and takes
  the explicit fallback branch (keep the raw string) for any row that failed
  to parse. One bad row never affects the others.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Iterable, Mapping, Union

logger = logging.getLogger(__name__)

JSON_TYPE = "json"


@dataclass(frozen=True)
class StringValue:
    value: str


@dataclass(frozen=True)
class JsonValue:
    value: Any


AttributeValue = Union[StringValue, JsonValue]


@dataclass(frozen=True)
class AttributeParseError:
    """Why a stored value could not be decoded as its declared type."""

    raw: str
    message: str


@dataclass(frozen=True)
class StoredAttribute:
    """Attribute row as the stores return it."""

    name: str
    value: str
    attribute_type: str = "string"


def parse_attribute(raw: str, attribute_type: str) -> AttributeValue | AttributeParseError:
    if attribute_type != JSON_TYPE:
        return StringValue(raw)
    try:
        return JsonValue(json.loads(raw))
    except (TypeError, ValueError) as exc:
        return AttributeParseError(raw=raw, message=str(exc))


def decode_attributes(rows: Iterable[StoredAttribute]) -> dict[str, AttributeValue]:
    attributes: dict[str, AttributeValue] = {}
    for row in rows:
        parsed = parse_attribute(row.value, row.attribute_type)
        if isinstance(parsed, AttributeParseError):
            # Fallback: keep the raw text for this attribute only.
            logger.debug("Attribute %r is not valid JSON (%s); using raw string", row.name, parsed.message)
            parsed = StringValue(row.value)
        attributes[row.name] = parsed
    return attributes


def plain(attributes: Mapping[str, AttributeValue]) -> dict[str, Any]:
    """Unwrap tagged values for matching and audit snapshots."""
    return {name: attr.value for name, attr in attributes.items()}
