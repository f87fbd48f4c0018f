from __future__ import annotations

from hueshare.models import Category, Tag
from hueshare.pending import PendingChanges


def test_upsert_replaces_in_place():
    pending = PendingChanges()
    pending.upsert_category(Category(id="a", name="A"))
    pending.upsert_category(Category(id="b", name="B"))
    pending.upsert_category(Category(id="a", name="A2"))

    assert [(item.id, item.name) for item in pending.categories] == [("a", "A2"), ("b", "B")]


def test_has_changes_tracks_every_list():
    pending = PendingChanges()
    assert not pending.has_changes

    pending.queue_tag_delete("t1")
    pending.queue_tag_delete("t1")
    assert pending.has_changes
    assert pending.deleted_tags == ["t1"]

    pending.clear()
    assert not pending.has_changes


def test_snapshot_round_trip_keeps_parent_semantics():
    pending = PendingChanges()
    pending.upsert_category(Category(id="temp-1", name="New", organization_id="org", is_new=True))
    pending.upsert_tag(Tag(id="t-keep", name="Keep"))
    pending.upsert_tag(Tag(id="t-clear", name="Clear", pending_parent_tags=[]))
    pending.queue_category_delete("c-old")

    snapshot = pending.snapshot()
    restored = PendingChanges.from_snapshot(snapshot)

    assert snapshot["deletedCategories"] == ["c-old"]
    assert "pendingParentTags" not in snapshot["tags"][0]
    assert snapshot["tags"][1]["pendingParentTags"] == []
    assert restored.get_tag("t-keep").pending_parent_tags is None
    assert restored.get_tag("t-clear").pending_parent_tags == []
    assert restored.get_category("temp-1").is_new
    assert restored.snapshot() == snapshot


def test_copy_is_independent():
    pending = PendingChanges()
    pending.upsert_category(Category(id="a", name="A"))

    clone = pending.copy()
    clone.forget_category("a")

    assert pending.get_category("a") is not None
    assert clone.get_category("a") is None
