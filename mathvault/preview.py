"""
Preview field synchronization.

``expr`` and ``samples`` are lightweight copies of what an item's content
holds, kept on the record so listings and search never have to open the
payload. Whenever content changes they are re-derived here.
"""

from collections.abc import Mapping
from typing import Any, Optional

from .inputs import to_int
from .types import CURVE3D, SURFACE3D

SURFACE_EXPR_KEYS = ("expr", "zExpr", "formula")
SURFACE_SAMPLES_KEYS = ("samples", "nx")
CURVE_SAMPLES_KEYS = ("samples", "nSamples", "n")

# (label, candidate keys) per component, first present key wins
CURVE_COMPONENTS = (
    ("x", ("xExpr", "x")),
    ("y", ("yExpr", "y")),
    ("z", ("zExpr", "z")),
)


def _first_text(content: Mapping, keys: tuple[str, ...]) -> Optional[str]:
    """First value under ``keys`` that is a non-blank scalar, trimmed."""
    for key in keys:
        value = content.get(key)
        if value is None or isinstance(value, (Mapping, list, bool)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _first_int(content: Mapping, keys: tuple[str, ...]) -> Optional[int]:
    for key in keys:
        n = to_int(content.get(key))
        if n is not None:
            return n
    return None


def curve_expr(content: Mapping) -> Optional[str]:
    """Synthesize ``x(t)=.., y(t)=.., z(t)=..`` from curve content.

    Components missing from the content are left out of the string; None if
    there are none at all.
    """
    parts = []
    for label, keys in CURVE_COMPONENTS:
        text = _first_text(content, keys)
        if text is not None:
            parts.append(f"{label}(t)={text}")
    return ", ".join(parts) if parts else None


def sync_preview(
    item_type: str,
    content: Any,
    expr: Optional[str],
    samples: Optional[int],
) -> tuple[Optional[str], Optional[int]]:
    """
    Re-derive (expr, samples) from content for the given item type.

    Values the content doesn't provide fall back to the prior ``expr`` /
    ``samples``. Equations and arrays are returned unchanged, as is any
    content that isn't a mapping.
    """
    if not isinstance(content, Mapping):
        return expr, samples

    if item_type == SURFACE3D:
        new_expr = _first_text(content, SURFACE_EXPR_KEYS)
        new_samples = _first_int(content, SURFACE_SAMPLES_KEYS)
    elif item_type == CURVE3D:
        new_expr = curve_expr(content)
        new_samples = _first_int(content, CURVE_SAMPLES_KEYS)
    else:
        return expr, samples

    return (
        new_expr if new_expr is not None else expr,
        new_samples if new_samples is not None else samples,
    )
