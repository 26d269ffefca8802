"""
Data types for the math vault.

A vault item is a tagged union: the common envelope (id, owner, title, tags,
content, links, timestamp) plus one body per item type carrying only the
fields that type uses. The flat shape with every field present is only the
wire/storage projection (``to_dict`` / ``from_dict``).
"""

from dataclasses import dataclass, field, fields as dataclass_fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Iterable, Optional, Union

from .errors import InvalidArgumentError


EQUATION = "equation"
CURVE3D = "curve3d"
SURFACE3D = "surface3d"
ARRAY3D = "array3d"

ITEM_TYPES = (EQUATION, CURVE3D, SURFACE3D, ARRAY3D)

DEFAULT_TITLES = {
    EQUATION: "Equation",
    CURVE3D: "3D Curve",
    SURFACE3D: "3D Surface",
    ARRAY3D: "3D Array",
}

# Array content is stored as content[z][y][x]
DEFAULT_AXIS_ORDER = "zyx"

# Type-specific fields: python name -> wire name
PREVIEW_FIELDS = {
    "formula": "formula",
    "expr": "expr",
    "samples": "samples",
    "axis_order": "axisOrder",
    "size_x": "sizeX",
    "size_y": "sizeY",
    "size_z": "sizeZ",
}


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Canonical wire format: ISO 8601, UTC, microsecond precision."""
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Accepts a trailing 'Z' as well as explicit offsets; naive values are
    taken to be UTC.
    """
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def validate_type(item_type: Optional[str]) -> str:
    """Return the trimmed item type, or raise InvalidArgumentError."""
    if item_type is None or not str(item_type).strip():
        raise InvalidArgumentError("type is required")
    t = str(item_type).strip()
    if t not in ITEM_TYPES:
        raise InvalidArgumentError(
            f"Unknown item type: {t!r} (allowed: {', '.join(ITEM_TYPES)})"
        )
    return t


def normalize_tags(tags: Optional[Iterable[Any]]) -> list[str]:
    """Trim, drop blanks and duplicates, keep first-seen order.

    >>> normalize_tags(["a", " a ", "b", ""])
    ['a', 'b']
    """
    if tags is None:
        return []
    result: list[str] = []
    seen: set[str] = set()
    for tag in tags:
        if tag is None:
            continue
        t = str(tag).strip()
        if not t or t in seen:
            continue
        seen.add(t)
        result.append(t)
    return result


# ---------------------------------------------------------------------------
# Per-type bodies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EquationBody:
    """y = f(x) style equation; the formula is authoritative."""
    type: ClassVar[str] = EQUATION
    formula: Optional[str] = None


@dataclass(frozen=True)
class CurveBody:
    """Parametric 3D curve. expr is a preview synthesized from content."""
    type: ClassVar[str] = CURVE3D
    expr: Optional[str] = None
    samples: Optional[int] = None


@dataclass(frozen=True)
class SurfaceBody:
    """z = f(x, y) surface. expr/samples mirror content."""
    type: ClassVar[str] = SURFACE3D
    expr: Optional[str] = None
    samples: Optional[int] = None


@dataclass(frozen=True)
class ArrayBody:
    """3D array; dimensions describe content[z][y][x]."""
    type: ClassVar[str] = ARRAY3D
    axis_order: Optional[str] = None
    size_x: Optional[int] = None
    size_y: Optional[int] = None
    size_z: Optional[int] = None

    @property
    def dims_known(self) -> bool:
        return None not in (self.size_x, self.size_y, self.size_z)


ItemBody = Union[EquationBody, CurveBody, SurfaceBody, ArrayBody]

_BODY_CLASSES = {
    EQUATION: EquationBody,
    CURVE3D: CurveBody,
    SURFACE3D: SurfaceBody,
    ARRAY3D: ArrayBody,
}


def make_body(item_type: str, values: dict[str, Any]) -> ItemBody:
    """Build the body for ``item_type`` from a flat field dict.

    Fields the type does not use are dropped.
    """
    cls = _BODY_CLASSES[validate_type(item_type)]
    names = {f.name for f in dataclass_fields(cls)}
    return cls(**{k: v for k, v in values.items() if k in names})


def body_fields(body: ItemBody) -> dict[str, Any]:
    """Flat view of a body: every preview field, None where unused."""
    values = {name: None for name in PREVIEW_FIELDS}
    for f in dataclass_fields(body):
        values[f.name] = getattr(body, f.name)
    return values


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VaultItem:
    """
    A stored mathematical object.

    This is a read-only snapshot. Mutations go through the Vault, which
    returns a new VaultItem.

    Attributes:
        id: Generated identifier, never changes
        owner_id: Owning tenant, never changes
        title: Display title
        body: Type-specific fields (EquationBody, CurveBody, ...)
        tags: Normalized tag list
        content: Opaque nested payload with the full type-specific data
        links: Opaque references, kept in order
        updated_at: Time of the last mutation (aware UTC)
    """
    id: str
    owner_id: str
    title: str
    body: ItemBody
    tags: list[str] = field(default_factory=list)
    content: Any = None
    links: list[Any] = field(default_factory=list)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def type(self) -> str:
        return self.body.type

    @property
    def formula(self) -> Optional[str]:
        return getattr(self.body, "formula", None)

    @property
    def expr(self) -> Optional[str]:
        return getattr(self.body, "expr", None)

    @property
    def samples(self) -> Optional[int]:
        return getattr(self.body, "samples", None)

    @property
    def axis_order(self) -> Optional[str]:
        return getattr(self.body, "axis_order", None)

    @property
    def size_x(self) -> Optional[int]:
        return getattr(self.body, "size_x", None)

    @property
    def size_y(self) -> Optional[int]:
        return getattr(self.body, "size_y", None)

    @property
    def size_z(self) -> Optional[int]:
        return getattr(self.body, "size_z", None)

    def to_dict(self) -> dict[str, Any]:
        """Flat wire/storage projection."""
        d: dict[str, Any] = {
            "id": self.id,
            "ownerId": self.owner_id,
            "title": self.title,
            "type": self.type,
        }
        for name, value in body_fields(self.body).items():
            d[PREVIEW_FIELDS[name]] = value
        d["tags"] = list(self.tags)
        d["content"] = self.content
        d["links"] = list(self.links)
        d["updatedAt"] = format_timestamp(self.updated_at)
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "VaultItem":
        """Rebuild from the flat projection. Fields the type doesn't use are dropped."""
        values = {name: d.get(wire) for name, wire in PREVIEW_FIELDS.items()}
        return cls(
            id=d["id"],
            owner_id=d["ownerId"],
            title=d.get("title") or "",
            body=make_body(d["type"], values),
            tags=normalize_tags(d.get("tags")),
            content=d.get("content"),
            links=list(d.get("links") or []),
            updated_at=parse_utc_timestamp(d["updatedAt"]),
        )

    def __str__(self) -> str:
        return f"{self.id} [{self.type}] {self.title}"


@dataclass(frozen=True)
class VaultItemSummary:
    """Listing view of a VaultItem: no content, links or owner."""
    id: str
    title: str
    type: str
    formula: Optional[str]
    expr: Optional[str]
    samples: Optional[int]
    axis_order: Optional[str]
    size_x: Optional[int]
    size_y: Optional[int]
    size_z: Optional[int]
    tags: list[str]
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "title": self.title, "type": self.type}
        for name, wire in PREVIEW_FIELDS.items():
            d[wire] = getattr(self, name)
        d["tags"] = list(self.tags)
        d["updatedAt"] = format_timestamp(self.updated_at)
        return d


def to_summary(item: VaultItem) -> VaultItemSummary:
    """Project a full item onto its listing view."""
    return VaultItemSummary(
        id=item.id,
        title=item.title,
        type=item.type,
        tags=list(item.tags),
        updated_at=item.updated_at,
        **body_fields(item.body),
    )
