"""Normalisation helpers for ILCD/TIDAS documents expressed as XML-derived JSON.

A field in these documents may arrive as a bare scalar, as a ``{"value": ...}`` or
``{"@value": ...}`` wrapper, as a ``{"@xml:lang": ..., "#text": ...}`` entry, or as a
list of such entries. Everything downstream of this module works on plain
``str | None`` / ``float | None`` values.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Sequence

from tiangong_lca_snapshot.core.models import DatasetRef

DEFAULT_LANGUAGE_PREFERENCE: tuple[str, ...] = ("zh", "zh-cn", "en")

_TRUE_TOKENS = {"true", "1", "yes"}


def to_list(value: Any) -> list[Any]:
    if value is None or value == "" or value == {}:
        return []
    if isinstance(value, list):
        return value
    return [value]


def first_of(value: Any) -> Any:
    entries = to_list(value)
    return entries[0] if entries else None


def read_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        if "value" in value:
            return value["value"]
        if "@value" in value:
            return value["@value"]
    return value


def get_nested(mapping: Any, path: Sequence[str]) -> Any:
    current = mapping
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def text_or_none(value: Any) -> str | None:
    """Return a stripped identifier-like string, or ``None`` when empty."""
    raw = read_value(value)
    if isinstance(raw, Mapping):
        raw = raw.get("#text")
    if raw is None or isinstance(raw, (Mapping, list)):
        return None
    if isinstance(raw, bool):
        return str(raw).lower()
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    text = str(raw).strip()
    return text or None


def numeric_or_none(value: Any) -> float | None:
    """Parse a finite number from a scalar or wrapper; anything else yields ``None``."""
    raw = read_value(value)
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        number = float(raw)
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def flag_is_set(value: Any) -> bool:
    raw = read_value(value)
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() in _TRUE_TOKENS
    return False


def parse_reference(node: Any) -> DatasetRef | None:
    """Return the ``@refObjectId``/``@version`` pair of a ``referenceTo...`` block."""
    if not isinstance(node, Mapping):
        return None
    ref_id = text_or_none(node.get("@refObjectId"))
    if not ref_id:
        return None
    return DatasetRef(id=ref_id, version=text_or_none(node.get("@version")))


def localized_text(
    value: Any,
    preferred: Iterable[str] = DEFAULT_LANGUAGE_PREFERENCE,
) -> str | None:
    """Pick one human readable string out of a multi-language or wrapped name field."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return _pick_language_entry(value, preferred)
    if isinstance(value, Mapping):
        text = value.get("#text")
        if isinstance(text, str) and text:
            return text
        for key in ("value", "baseName", "common:name"):
            nested = value.get(key)
            if nested:
                return localized_text(nested, preferred)
    return None


def _pick_language_entry(entries: list[Any], preferred: Iterable[str]) -> str | None:
    candidates: list[tuple[str | None, str]] = []
    for entry in entries:
        if isinstance(entry, str) and entry:
            candidates.append((None, entry))
        elif isinstance(entry, Mapping):
            text = entry.get("#text")
            if isinstance(text, str) and text:
                lang = entry.get("@xml:lang")
                candidates.append((str(lang).lower() if lang else None, text))
    if not candidates:
        return None
    for language in preferred:
        target = language.lower()
        for lang, text in candidates:
            if lang == target:
                return text
    return candidates[0][1]


__all__ = [
    "DEFAULT_LANGUAGE_PREFERENCE",
    "first_of",
    "flag_is_set",
    "get_nested",
    "localized_text",
    "numeric_or_none",
    "parse_reference",
    "read_value",
    "text_or_none",
    "to_list",
]
