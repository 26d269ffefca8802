"""
Reconciliation: turn an incoming payload plus the previous item into the
next full item.

All functions here are pure. They never touch a store; the caller commits
the returned item. Every step runs on a flat working copy of the preview
fields and the result is folded back into the body for the final type, so
fields the type doesn't use are dropped at the end.

Merge rules shared by every update shape:

- a field that is absent or null keeps its previous value
- blank strings for title/formula/expr/axisOrder keep the previous value
- new content re-derives expr/samples (see preview.sync_preview)
- array dimensions are inferred after every merge (see dims.infer_array_dims)
- updated_at never moves backwards
"""

from dataclasses import replace
from datetime import datetime
from typing import Any

from .dims import infer_array_dims
from .inputs import MetaPatch, VaultUpsert, is_given
from .preview import sync_preview
from .types import (
    DEFAULT_TITLES,
    EQUATION,
    PREVIEW_FIELDS,
    ItemBody,
    VaultItem,
    body_fields,
    make_body,
    normalize_tags,
    validate_type,
)

_TEXT_FIELDS = ("formula", "expr", "axis_order")
_INT_FIELDS = ("samples", "size_x", "size_y", "size_z")


def _text(value: Any, fallback: Any) -> Any:
    """Trimmed text, or ``fallback`` when absent/null/blank."""
    if not is_given(value):
        return fallback
    text = str(value).strip()
    return text if text else fallback


def _value(value: Any, fallback: Any) -> Any:
    return value if is_given(value) else fallback


def _merged_type(requested: Any, previous: str) -> str:
    if is_given(requested) and str(requested).strip():
        return validate_type(requested)
    return previous


def _apply_fields(values: dict[str, Any], payload: VaultUpsert) -> None:
    for name in _TEXT_FIELDS:
        values[name] = _text(getattr(payload, name), values[name])
    for name in _INT_FIELDS:
        values[name] = _value(getattr(payload, name), values[name])


def _resync(item_type: str, values: dict[str, Any], content: Any) -> None:
    values["expr"], values["samples"] = sync_preview(
        item_type, content, values["expr"], values["samples"],
    )


def _finish(item_type: str, values: dict[str, Any], content: Any) -> ItemBody:
    body = make_body(item_type, values)
    return infer_array_dims(item_type, body, content)


def _next_timestamp(prev: VaultItem, now: datetime) -> datetime:
    return now if now >= prev.updated_at else prev.updated_at


def build_created(
    item_id: str,
    owner_id: str,
    payload: VaultUpsert,
    now: datetime,
) -> VaultItem:
    """
    Build a brand-new item from a create payload.

    Raises:
        InvalidArgumentError: ``type`` missing or not one of ITEM_TYPES
    """
    item_type = validate_type(payload.type if is_given(payload.type) else None)

    values: dict[str, Any] = {name: None for name in PREVIEW_FIELDS}
    _apply_fields(values, payload)

    content = _value(payload.content, None)
    if is_given(payload.content):
        _resync(item_type, values, content)

    return VaultItem(
        id=item_id,
        owner_id=owner_id,
        title=_text(payload.title, DEFAULT_TITLES[item_type]),
        body=_finish(item_type, values, content),
        tags=normalize_tags(_value(payload.tags, None)),
        content=content,
        links=list(_value(payload.links, [])),
        updated_at=now,
    )


def merge_upsert(prev: VaultItem, payload: VaultUpsert, now: datetime) -> VaultItem:
    """
    Merge a full-replace body or an ItemPatch into ``prev``.

    The type may change; formula survives only when the resulting type is
    an equation, and likewise for the other type-specific fields.
    """
    item_type = _merged_type(payload.type, prev.type)

    values = body_fields(prev.body)
    _apply_fields(values, payload)

    content = prev.content
    if is_given(payload.content):
        content = payload.content
        _resync(item_type, values, content)

    tags = normalize_tags(payload.tags) if is_given(payload.tags) else list(prev.tags)
    links = list(payload.links) if is_given(payload.links) else list(prev.links)

    return replace(
        prev,
        title=_text(payload.title, prev.title),
        body=_finish(item_type, values, content),
        tags=tags,
        content=content,
        links=links,
        updated_at=_next_timestamp(prev, now),
    )


def merge_item_patch(prev: VaultItem, patch: VaultUpsert, now: datetime) -> VaultItem:
    """Apply a partial item update; same rules as merge_upsert."""
    return merge_upsert(prev, patch, now)


def merge_meta(prev: VaultItem, patch: MetaPatch, now: datetime) -> VaultItem:
    """
    Apply a title/tags edit.

    ``formula`` is honoured only when ``prev`` is an equation; for any other
    type it is silently ignored.
    """
    values = body_fields(prev.body)
    if prev.type == EQUATION:
        values["formula"] = _text(patch.formula, values["formula"])

    tags = normalize_tags(patch.tags) if is_given(patch.tags) else list(prev.tags)

    return replace(
        prev,
        title=_text(patch.title, prev.title),
        body=_finish(prev.type, values, prev.content),
        tags=tags,
        updated_at=_next_timestamp(prev, now),
    )


def merge_content(prev: VaultItem, content: Any, now: datetime) -> VaultItem:
    """
    Replace content and re-derive preview fields for the item's type.

    A null ``content`` keeps the previous payload.
    """
    values = body_fields(prev.body)
    next_content = prev.content
    if content is not None:
        next_content = content
        _resync(prev.type, values, next_content)

    return replace(
        prev,
        body=_finish(prev.type, values, next_content),
        content=next_content,
        updated_at=_next_timestamp(prev, now),
    )
