"""
Incoming payloads: create/replace bodies and the three patch shapes.

Every field is presence-aware. ``UNSET`` means the key was not sent at all;
``None`` means it was sent as null. The reconciler currently treats both as
"keep the previous value", but the distinction survives parsing so callers
and future explicit-clear support can tell them apart.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from .errors import InvalidArgumentError
from .types import PREVIEW_FIELDS

# ASCII digits only; str.isdigit() also accepts superscripts int() rejects
_INT_PATTERN = re.compile(r"-?[0-9]+")


class _Unset:
    """Marker for a field that was not present in the payload."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def is_given(value: Any) -> bool:
    """True when a payload field carries a value (present and not null)."""
    return value is not UNSET and value is not None


def to_int(value: Any) -> int | None:
    """Lenient integer conversion; None when the value isn't integral.

    Accepts ints, integral floats and digit strings. Booleans are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        s = value.strip()
        if _INT_PATTERN.fullmatch(s):
            return int(s)
    return None


def _require_int(value: Any, name: str) -> Any:
    if value is UNSET or value is None:
        return value
    n = to_int(value)
    if n is None:
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
    return n


def _require_str(value: Any, name: str) -> Any:
    if value is UNSET or value is None:
        return value
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{name} must be a string, got {type(value).__name__}")
    return value


def _require_list(value: Any, name: str) -> Any:
    if value is UNSET or value is None:
        return value
    if isinstance(value, (str, bytes, Mapping)) or not hasattr(value, "__iter__"):
        raise InvalidArgumentError(f"{name} must be a list")
    return list(value)


_INT_FIELDS = ("samples", "size_x", "size_y", "size_z")
_STR_FIELDS = ("title", "type", "formula", "expr", "axis_order")
_LIST_FIELDS = ("tags", "links")

# python name -> wire name, for every payload field
_WIRE_NAMES = {
    "title": "title",
    "type": "type",
    **PREVIEW_FIELDS,
    "tags": "tags",
    "content": "content",
    "links": "links",
}


def _validate(payload) -> None:
    """Check and normalize every field in place, however the payload was built."""
    for f in fields(payload):
        value = getattr(payload, f.name)
        if f.name in _INT_FIELDS:
            value = _require_int(value, _WIRE_NAMES[f.name])
        elif f.name in _STR_FIELDS:
            value = _require_str(value, f.name)
        elif f.name in _LIST_FIELDS:
            value = _require_list(value, f.name)
        object.__setattr__(payload, f.name, value)


def _parse(cls, d: Mapping[str, Any]):
    if not isinstance(d, Mapping):
        raise InvalidArgumentError(f"Expected a JSON object, got {type(d).__name__}")
    return cls(**{f.name: d.get(_WIRE_NAMES[f.name], UNSET) for f in fields(cls)})


@dataclass(frozen=True)
class VaultUpsert:
    """Create or full-replace body.

    On create only ``type`` is required. On replace every field is optional
    and missing fields keep their previous value.
    """
    title: Any = UNSET
    type: Any = UNSET
    formula: Any = UNSET
    expr: Any = UNSET
    samples: Any = UNSET
    axis_order: Any = UNSET
    size_x: Any = UNSET
    size_y: Any = UNSET
    size_z: Any = UNSET
    tags: Any = UNSET
    content: Any = UNSET
    links: Any = UNSET

    def __post_init__(self):
        _validate(self)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "VaultUpsert":
        """Parse a camelCase wire body."""
        return _parse(cls, d)


@dataclass(frozen=True)
class ItemPatch(VaultUpsert):
    """Partial update of any item field; same shape as VaultUpsert."""


@dataclass(frozen=True)
class MetaPatch:
    """Title/tags edit. ``formula`` only applies to equations."""
    title: Any = UNSET
    tags: Any = UNSET
    formula: Any = UNSET

    def __post_init__(self):
        _validate(self)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "MetaPatch":
        return _parse(cls, d)


def unwrap_content(body: Any) -> Any:
    """Accept either the content tree itself or ``{"content": tree}``."""
    if isinstance(body, Mapping) and "content" in body:
        return body["content"]
    return body
