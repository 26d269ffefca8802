"""
Tests for the Vault API.

Runs against both store backends (via the ``vault`` fixture) with a fake
clock and an in-memory history log.
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from mathvault import (
    InvalidArgumentError,
    ItemPatch,
    MetaPatch,
    NotFoundError,
    Vault,
    VaultItem,
    VaultItemSummary,
    VaultUpsert,
)
from mathvault.history import MemoryHistoryLog
from mathvault.store import MemoryRecordStore

CUBE = [[[1, 2], [3, 4]], [[5, 6], [7, 8]]]


class BrokenHistory(MemoryHistoryLog):
    """History log whose appends always fail."""

    def append(self, *args, **kwargs):
        raise RuntimeError("history backend unavailable")


# -----------------------------------------------------------------------------
# Create / get
# -----------------------------------------------------------------------------

class TestCreate:

    def test_returns_full_item(self, vault):
        item = vault.create("alice", {"type": "equation", "title": "Line", "formula": "y=x"})
        assert isinstance(item, VaultItem)
        assert item.owner_id == "alice"
        assert item.formula == "y=x"
        assert vault.get_owned("alice", item.id) == item

    def test_ids_unique(self, vault):
        ids = {vault.create("alice", {"type": "equation"}).id for _ in range(20)}
        assert len(ids) == 20

    def test_accepts_parsed_payload(self, vault):
        item = vault.create("alice", VaultUpsert(type="surface3d", expr="x*y"))
        assert item.expr == "x*y"

    def test_parsed_payload_validated(self, vault, record_store):
        with pytest.raises(InvalidArgumentError):
            vault.create("alice", VaultUpsert(type="equation", tags="abc"))
        with pytest.raises(InvalidArgumentError):
            vault.create("alice", VaultUpsert(type="surface3d", samples="lots"))
        assert record_store.count("alice") == 0

    def test_malformed_size_string_is_invalid_argument(self, vault, record_store):
        with pytest.raises(InvalidArgumentError, match="sizeX"):
            vault.create("alice", {"type": "array3d", "sizeX": "--5"})
        assert record_store.count("alice") == 0

    def test_timestamp_never_behind_previous(self, vault, clock):
        first = vault.create("alice", {"type": "equation"})
        clock.set(first.updated_at - timedelta(days=1))
        second = vault.create("alice", {"type": "equation"})
        assert second.updated_at >= first.updated_at

    def test_timestamp_not_behind_other_vault_on_same_store(self, record_store, clock):
        later = clock.now + timedelta(hours=1)
        first = Vault(record_store, clock=lambda: later).create("alice", {"type": "equation"})
        second = Vault(record_store, clock=clock).create("alice", {"type": "equation"})
        assert second.updated_at >= first.updated_at

    def test_missing_type_leaves_store_untouched(self, vault, record_store, history):
        with pytest.raises(InvalidArgumentError):
            vault.create("alice", {"title": "Nope"})
        assert record_store.count("alice") == 0
        assert history.query("alice") == []

    def test_unknown_type(self, vault):
        with pytest.raises(InvalidArgumentError, match="Unknown item type"):
            vault.create("alice", {"type": "tensor"})

    @pytest.mark.parametrize("body", [
        {"type": "array3d", "sizeX": "wide"},
        {"type": "equation", "tags": "not-a-list"},
        {"type": "equation", "links": {"id": "x"}},
    ])
    def test_malformed_fields(self, vault, record_store, body):
        with pytest.raises(InvalidArgumentError):
            vault.create("alice", body)
        assert record_store.count("alice") == 0

    def test_non_object_body(self, vault):
        with pytest.raises(InvalidArgumentError):
            vault.create("alice", ["equation"])

    def test_array_dims_inferred(self, vault):
        item = vault.create("alice", {"type": "array3d", "content": CUBE})
        stored = vault.get_owned("alice", item.id)
        assert (stored.size_x, stored.size_y, stored.size_z) == (2, 2, 2)
        assert stored.axis_order == "zyx"

    def test_curve_expr_derived(self, vault):
        item = vault.create("alice", {
            "type": "curve3d",
            "content": {"xExpr": "t", "yExpr": "t^2", "zExpr": "0"},
        })
        assert item.expr == "x(t)=t, y(t)=t^2, z(t)=0"

    def test_tags_normalized(self, vault):
        item = vault.create("alice", {"type": "equation", "tags": ["a", " a ", "b", ""]})
        assert item.tags == ["a", "b"]


class TestGetOwned:

    def test_unknown_id(self, vault):
        with pytest.raises(NotFoundError, match="not found"):
            vault.get_owned("alice", "missing")

    def test_other_owner_is_not_found(self, vault):
        item = vault.create("bob", {"type": "equation"})
        with pytest.raises(NotFoundError):
            vault.get_owned("alice", item.id)

    def test_not_found_is_lookup_error(self, vault):
        with pytest.raises(LookupError):
            vault.get_owned("alice", "missing")


# -----------------------------------------------------------------------------
# Updates
# -----------------------------------------------------------------------------

class TestUpdate:

    def test_keeps_identity(self, vault):
        item = vault.create("alice", {"type": "equation", "title": "A"})
        updated = vault.update("alice", item.id, {"title": "B"})
        assert (updated.id, updated.owner_id) == (item.id, "alice")
        assert updated.title == "B"
        assert updated.updated_at > item.updated_at

    def test_missing_fields_retained(self, vault):
        item = vault.create("alice", {"type": "surface3d", "expr": "x+y", "samples": 32, "tags": ["s"]})
        updated = vault.update("alice", item.id, {"title": "Plane"})
        assert (updated.expr, updated.samples, updated.tags) == ("x+y", 32, ["s"])

    def test_not_found(self, vault):
        with pytest.raises(NotFoundError):
            vault.update("alice", "missing", {"title": "x"})

    def test_cross_owner_cannot_update(self, vault):
        item = vault.create("bob", {"type": "equation", "title": "Mine"})
        with pytest.raises(NotFoundError):
            vault.update("alice", item.id, {"title": "Stolen"})
        assert vault.get_owned("bob", item.id).title == "Mine"

    def test_rejected_update_leaves_item(self, vault):
        item = vault.create("alice", {"type": "array3d", "sizeX": 2})
        with pytest.raises(InvalidArgumentError):
            vault.update("alice", item.id, {"sizeX": "two", "title": "Changed"})
        assert vault.get_owned("alice", item.id) == item

    def test_invalid_type_leaves_item(self, vault):
        item = vault.create("alice", {"type": "equation"})
        with pytest.raises(InvalidArgumentError):
            vault.update("alice", item.id, {"type": "polygon"})
        assert vault.get_owned("alice", item.id).type == "equation"


class TestPatchMeta:

    def test_title_and_tags(self, vault):
        item = vault.create("alice", {"type": "curve3d", "title": "Helix"})
        patched = vault.patch_meta("alice", item.id, {"title": "Spiral", "tags": ["x", "x", "y"]})
        assert patched.title == "Spiral"
        assert patched.tags == ["x", "y"]

    def test_formula_on_equation(self, vault):
        item = vault.create("alice", {"type": "equation", "formula": "y=x"})
        assert vault.patch_meta("alice", item.id, MetaPatch(formula="y=2x")).formula == "y=2x"

    @pytest.mark.parametrize("item_type", ["curve3d", "surface3d", "array3d"])
    def test_formula_ignored_for_other_types(self, vault, item_type):
        item = vault.create("alice", {"type": item_type})
        patched = vault.patch_meta("alice", item.id, {"formula": "y=x"})
        assert patched.formula == item.formula

    def test_keeps_identity(self, vault):
        item = vault.create("alice", {"type": "equation"})
        patched = vault.patch_meta("alice", item.id, {"title": "T"})
        assert (patched.id, patched.owner_id) == (item.id, item.owner_id)


class TestPatchContent:

    def test_bare_tree(self, vault):
        item = vault.create("alice", {"type": "surface3d"})
        patched = vault.patch_content("alice", item.id, {"zExpr": "sin(x)", "nx": 48})
        assert patched.content == {"zExpr": "sin(x)", "nx": 48}
        assert (patched.expr, patched.samples) == ("sin(x)", 48)

    def test_wrapped_tree(self, vault):
        item = vault.create("alice", {"type": "array3d"})
        patched = vault.patch_content("alice", item.id, {"content": CUBE})
        assert patched.content == CUBE
        assert (patched.size_x, patched.size_y, patched.size_z) == (2, 2, 2)

    def test_keeps_identity(self, vault):
        item = vault.create("alice", {"type": "curve3d"})
        patched = vault.patch_content("alice", item.id, {"x": "t"})
        assert (patched.id, patched.owner_id, patched.type) == (item.id, "alice", "curve3d")

    def test_not_found(self, vault):
        with pytest.raises(NotFoundError):
            vault.patch_content("alice", "missing", {"x": "t"})

    @pytest.mark.parametrize("samples", ["--5", "²"])
    def test_malformed_samples_in_content_ignored(self, vault, samples):
        item = vault.create("alice", {"type": "surface3d", "samples": 16})
        patched = vault.patch_content("alice", item.id, {"zExpr": "x", "samples": samples})
        assert (patched.expr, patched.samples) == ("x", 16)
        assert patched.content["samples"] == samples


class TestPatchItem:

    def test_subset_of_fields(self, vault):
        item = vault.create("alice", {"type": "surface3d", "title": "S", "expr": "x"})
        patched = vault.patch_item("alice", item.id, {"samples": 64})
        assert (patched.title, patched.expr, patched.samples) == ("S", "x", 64)

    def test_type_change(self, vault):
        item = vault.create("alice", {"type": "surface3d", "expr": "x*y"})
        patched = vault.patch_item("alice", item.id, {"type": "equation", "formula": "z=x*y"})
        assert patched.type == "equation"
        assert patched.formula == "z=x*y"
        assert patched.to_dict()["expr"] is None

    def test_parsed_patches_validated(self, vault):
        item = vault.create("alice", {"type": "surface3d", "tags": ["s"]})
        with pytest.raises(InvalidArgumentError):
            vault.patch_item("alice", item.id, ItemPatch(samples="lots"))
        with pytest.raises(InvalidArgumentError):
            vault.patch_meta("alice", item.id, MetaPatch(tags="abc"))
        assert vault.get_owned("alice", item.id) == item

    def test_accepts_parsed_payload(self, vault):
        item = vault.create("alice", {"type": "array3d"})
        patched = vault.patch_item("alice", item.id, VaultUpsert(size_x=3, size_y=3, size_z=3))
        assert (patched.size_x, patched.size_y, patched.size_z) == (3, 3, 3)

    def test_keeps_identity(self, vault):
        item = vault.create("alice", {"type": "equation"})
        patched = vault.patch_item("alice", item.id, {"tags": ["t"]})
        assert (patched.id, patched.owner_id) == (item.id, item.owner_id)


# -----------------------------------------------------------------------------
# Delete
# -----------------------------------------------------------------------------

class TestDelete:

    def test_then_get_is_not_found(self, vault):
        item = vault.create("alice", {"type": "equation"})
        assert vault.delete("alice", item.id) is True
        with pytest.raises(NotFoundError):
            vault.get_owned("alice", item.id)

    def test_missing_is_noop(self, vault):
        assert vault.delete("alice", "missing") is False

    def test_other_owner_cannot_delete(self, vault):
        item = vault.create("bob", {"type": "equation"})
        assert vault.delete("alice", item.id) is False
        assert vault.get_owned("bob", item.id).id == item.id


# -----------------------------------------------------------------------------
# Listings
# -----------------------------------------------------------------------------

class TestListings:

    def _populate(self, vault):
        return [
            vault.create("alice", {"type": "equation", "title": "Wave", "formula": "y=sin(x)", "tags": ["trig"]}),
            vault.create("alice", {"type": "array3d", "title": "Cube", "content": [[[0] * 5] * 5] * 5}),
            vault.create("alice", {"type": "array3d", "title": "Slab", "sizeX": 5, "sizeY": 5, "sizeZ": 1}),
            vault.create("bob", {"type": "equation", "title": "Wave"}),
        ]

    def test_full_most_recent_first(self, vault):
        wave, cube, slab, _ = self._populate(vault)
        assert [it.id for it in vault.list_full("alice")] == [slab.id, cube.id, wave.id]

    def test_owner_scoped(self, vault):
        self._populate(vault)
        assert len(vault.list_full("bob")) == 1
        assert vault.list_full("carol") == []

    def test_summary_hides_content_and_links(self, vault):
        self._populate(vault)
        summaries = vault.list_summary("alice")
        assert all(isinstance(s, VaultItemSummary) for s in summaries)
        for s in summaries:
            d = s.to_dict()
            assert "content" not in d
            assert "links" not in d

    def test_tag_filter(self, vault):
        wave, *_ = self._populate(vault)
        assert [s.id for s in vault.list_summary("alice", tag="trig")] == [wave.id]

    def test_dims_query(self, vault):
        _, cube, _, _ = self._populate(vault)
        assert [s.id for s in vault.list_summary("alice", q="5x5x5")] == [cube.id]

    def test_update_moves_item_to_front(self, vault):
        wave, _, _, _ = self._populate(vault)
        vault.patch_meta("alice", wave.id, {"title": "Wave 2"})
        assert vault.list_full("alice")[0].id == wave.id

    def test_explicit_limit(self, vault):
        self._populate(vault)
        assert len(vault.list_full("alice", limit=2)) == 2

    def test_default_cap(self, clock):
        vault = Vault(MemoryRecordStore(), clock=clock, max_results=2)
        for _ in range(4):
            vault.create("alice", {"type": "equation"})
        assert len(vault.list_summary("alice")) == 2
        assert len(vault.list_summary("alice", limit=3)) == 3


# -----------------------------------------------------------------------------
# History side effects
# -----------------------------------------------------------------------------

class TestHistory:

    def test_events_recorded(self, vault):
        item = vault.create("alice", {"type": "equation", "title": "A"})
        vault.update("alice", item.id, {"title": "B"})
        vault.patch_meta("alice", item.id, {"tags": ["t"]})
        vault.delete("alice", item.id)
        events = vault.history("alice", entity_id=item.id)
        assert [e.type for e in events] == ["DELETE", "UPDATE", "UPDATE", "CREATE"]
        assert all(e.scope == "VAULT" for e in events)

    def test_payload_is_flat_record(self, vault):
        item = vault.create("alice", {"type": "equation", "title": "A"})
        payload = vault.history("alice")[0].payload
        assert payload == item.to_dict()

    def test_noop_delete_not_recorded(self, vault):
        vault.delete("alice", "missing")
        assert vault.history("alice") == []

    def test_owner_scoped(self, vault):
        vault.create("alice", {"type": "equation"})
        assert vault.history("bob") == []

    def test_failed_create_not_recorded(self, vault):
        with pytest.raises(InvalidArgumentError):
            vault.create("alice", {})
        assert vault.history("alice") == []

    def test_disabled(self, memory_vault):
        memory_vault.create("alice", {"type": "equation"})
        assert memory_vault.history("alice") == []

    def test_broken_sink_does_not_fail_write(self, clock, caplog):
        vault = Vault(MemoryRecordStore(), history=BrokenHistory(), clock=clock)
        with caplog.at_level(logging.WARNING, logger="mathvault"):
            item = vault.create("alice", {"type": "equation"})
        assert vault.get_owned("alice", item.id) == item
        assert "History append failed" in caplog.text


# -----------------------------------------------------------------------------
# Open / lifecycle
# -----------------------------------------------------------------------------

class TestOpen:

    def test_open_creates_store(self, tmp_path):
        with Vault.open(tmp_path) as vault:
            item = vault.create("alice", {"type": "equation", "title": "Persisted"})
        assert (tmp_path / "mathvault.toml").exists()
        assert (tmp_path / "mathvault-ops.log").exists()
        with Vault.open(tmp_path) as vault:
            assert vault.get_owned("alice", item.id).title == "Persisted"
            assert [e.type for e in vault.history("alice")] == ["CREATE"]

    def test_ops_log_records_mutations(self, tmp_path):
        with Vault.open(tmp_path) as vault:
            item = vault.create("alice", {"type": "equation"})
        assert item.id in (tmp_path / "mathvault-ops.log").read_text()

    def test_sequential_ids(self, memory_vault):
        first = memory_vault.create("alice", {"type": "equation"})
        second = memory_vault.create("alice", {"type": "equation"})
        assert (first.id, second.id) == ("item-0001", "item-0002")

    def test_uses_injected_clock(self, memory_vault, clock):
        start = clock.now
        item = memory_vault.create("alice", {"type": "equation"})
        assert item.updated_at == start
        assert item.updated_at.tzinfo is not None
        assert item.updated_at >= datetime(2026, 1, 1, tzinfo=timezone.utc)
