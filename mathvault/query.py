"""Tag / free-text filtering and recency ordering for listings."""

from typing import Iterable, Optional

from .types import ARRAY3D, VaultItem


def dims_label(item: VaultItem) -> str:
    """``"XxYxZ"`` for arrays with known sizes, else empty."""
    if item.type != ARRAY3D:
        return ""
    sizes = (item.size_x, item.size_y, item.size_z)
    if None in sizes:
        return ""
    return "x".join(str(s) for s in sizes)


def search_fields(item: VaultItem) -> list[str]:
    """Lower-cased fields that free-text search looks at."""
    parts = [
        item.title or "",
        item.type,
        item.formula or "",
        item.expr or "",
        " ".join(item.tags),
        dims_label(item),
    ]
    return [p.lower() for p in parts if p]


def matches_query(item: VaultItem, q: Optional[str]) -> bool:
    """Case-insensitive substring match; blank query matches everything."""
    if q is None or not q.strip():
        return True
    needle = q.strip().lower()
    return any(needle in part for part in search_fields(item))


def matches_tag(item: VaultItem, tag: Optional[str]) -> bool:
    if tag is None or not tag.strip():
        return True
    return tag in item.tags


def sort_recent(items: Iterable[VaultItem]) -> list[VaultItem]:
    """Most recently updated first; equal timestamps ordered by id."""
    by_id = sorted(items, key=lambda it: it.id)
    return sorted(by_id, key=lambda it: it.updated_at, reverse=True)


def filter_items(
    items: Iterable[VaultItem],
    tag: Optional[str] = None,
    q: Optional[str] = None,
) -> list[VaultItem]:
    """Apply tag and text filters, then order by recency."""
    return sort_recent(
        it for it in items if matches_tag(it, tag) and matches_query(it, q)
    )
