"""
Math Vault

A multi-tenant store of mathematical objects: equations, parametric 3D
curves, 3D surfaces and 3D arrays. Items are replaced in full or patched
piecemeal, and lightweight preview fields (expr, samples, array sizes) are
kept in sync with each item's content.

Quick Start:
    from mathvault import Vault
    from mathvault.store import MemoryRecordStore

    vault = Vault(MemoryRecordStore())
    item = vault.create("alice", {"type": "curve3d",
                                  "content": {"xExpr": "cos(t)", "yExpr": "sin(t)", "zExpr": "t"}})
    item.expr   # 'x(t)=cos(t), y(t)=sin(t), z(t)=t'

CLI Usage:
    mathvault create '{"type": "equation", "formula": "y=x^2"}'
    mathvault list -q 5x5x5
    mathvault patch ID --meta '{"tags": ["calculus"]}'

Default Store:
    ~/.mathvault/ (created automatically).
    Override with MATHVAULT_STORE_PATH or --store.
"""

from .api import Vault
from .errors import InvalidArgumentError, NotFoundError, VaultError
from .inputs import ItemPatch, MetaPatch, VaultUpsert
from .types import ITEM_TYPES, VaultItem, VaultItemSummary

__version__ = "0.1.0"
__all__ = [
    "Vault",
    "VaultItem",
    "VaultItemSummary",
    "VaultUpsert",
    "MetaPatch",
    "ItemPatch",
    "VaultError",
    "NotFoundError",
    "InvalidArgumentError",
    "ITEM_TYPES",
]
