# cs_platform/sources.py
# CineStream - Video source names and their legacy numeric ids
# Copyright (c) 2025-2026 CineStream
from __future__ import annotations

from typing import Any

from .errors import ValidationError

__all__ = [
    "SOURCE_IDS",
    "SOURCE_NAMES",
    "DEFAULT_SOURCE",
    "name_to_id",
    "id_to_name",
    "normalize_source",
    "is_valid_source",
]

# Canonical name -> legacy numeric id (as stored by older clients)
SOURCE_IDS: dict[str, str] = {
    "videasy": "1",
    "vidlink": "2",
    "vidnest": "3",
    "vidsrc": "4",
    "vidrock": "5",
}
SOURCE_NAMES: dict[str, str] = {v: k for k, v in SOURCE_IDS.items()}

DEFAULT_SOURCE = "videasy"


def _clean(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip().lower()


def name_to_id(value: Any) -> str | None:
    """'vidlink' -> '2'; an already numeric id passes through; unknown -> None."""
    v = _clean(value)
    if not v:
        return None
    if v in SOURCE_NAMES:
        return v
    return SOURCE_IDS.get(v)


def id_to_name(value: Any) -> str | None:
    """'2' -> 'vidlink'; a canonical name passes through; unknown -> None."""
    v = _clean(value)
    if not v:
        return None
    if v in SOURCE_IDS:
        return v
    return SOURCE_NAMES.get(v)


def is_valid_source(value: Any) -> bool:
    return id_to_name(value) is not None


def normalize_source(value: Any) -> str:
    name = id_to_name(value)
    if name is None:
        raise ValidationError(f"Invalid video source: {value!r}")
    return name
