"""Dimension inference for array3d items (content is content[z][y][x])."""

from typing import Any

from .types import ARRAY3D, DEFAULT_AXIS_ORDER, ArrayBody


def _length(value: Any) -> int:
    return len(value) if isinstance(value, list) else 0


def infer_array_dims(item_type: str, body: Any, content: Any) -> Any:
    """
    Fill in unknown array dimensions from nested list content.

    Returns ``body`` unchanged unless the type is array3d, some size is
    still unknown, and content is a non-empty list. An inferred 0 carries no
    information and never replaces a known size. ``axis_order`` defaults to
    "zyx" when inference happens.
    """
    if item_type != ARRAY3D or not isinstance(body, ArrayBody):
        return body
    if body.dims_known:
        return body
    if not isinstance(content, list) or not content:
        return body

    z = len(content)
    first = content[0]
    y = _length(first)
    x = _length(first[0]) if y else 0

    return ArrayBody(
        axis_order=body.axis_order or DEFAULT_AXIS_ORDER,
        size_x=x or body.size_x,
        size_y=y or body.size_y,
        size_z=z or body.size_z,
    )
