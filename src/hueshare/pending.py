from __future__ import annotations

from typing import Any

from .identifiers import normalize_id_list
from .models import Category, Tag


class PendingChanges:
    """Uncommitted creates, updates and deletes relative to the last sync.

    Categories and tags are keyed by id so an upsert keeps the entity in
    the slot it was first buffered in.
    """

    def __init__(self) -> None:
        self._categories: dict[str, Category] = {}
        self._tags: dict[str, Tag] = {}
        self.deleted_categories: list[str] = []
        self.deleted_tags: list[str] = []

    @property
    def categories(self) -> list[Category]:
        return list(self._categories.values())

    @property
    def tags(self) -> list[Tag]:
        return list(self._tags.values())

    @property
    def has_changes(self) -> bool:
        return bool(self._categories or self._tags or self.deleted_categories or self.deleted_tags)

    def get_category(self, category_id: str) -> Category | None:
        return self._categories.get(category_id)

    def get_tag(self, tag_id: str) -> Tag | None:
        return self._tags.get(tag_id)

    def upsert_category(self, category: Category) -> None:
        self._categories[category.id] = category

    def upsert_tag(self, tag: Tag) -> None:
        self._tags[tag.id] = tag

    def forget_category(self, category_id: str) -> Category | None:
        return self._categories.pop(category_id, None)

    def forget_tag(self, tag_id: str) -> Tag | None:
        return self._tags.pop(tag_id, None)

    def queue_category_delete(self, category_id: str) -> None:
        if category_id not in self.deleted_categories:
            self.deleted_categories.append(category_id)

    def queue_tag_delete(self, tag_id: str) -> None:
        if tag_id not in self.deleted_tags:
            self.deleted_tags.append(tag_id)

    def clear(self) -> None:
        self._categories.clear()
        self._tags.clear()
        self.deleted_categories = []
        self.deleted_tags = []

    def copy(self) -> "PendingChanges":
        return PendingChanges.from_snapshot(self.snapshot())

    def snapshot(self) -> dict[str, Any]:
        return {
            "categories": [item.to_payload() for item in self._categories.values()],
            "tags": [item.to_payload() for item in self._tags.values()],
            "deletedCategories": list(self.deleted_categories),
            "deletedTags": list(self.deleted_tags),
        }

    @classmethod
    def from_snapshot(cls, payload: Any) -> "PendingChanges":
        source = payload if isinstance(payload, dict) else {}
        pending = cls()
        for raw in source.get("categories") or []:
            if isinstance(raw, dict):
                category = Category.from_payload(raw)
                if category.id:
                    pending.upsert_category(category)
        for raw in source.get("tags") or []:
            if isinstance(raw, dict):
                tag = Tag.from_payload(raw)
                if tag.id:
                    pending.upsert_tag(tag)
        pending.deleted_categories = normalize_id_list(source.get("deletedCategories") or [])
        pending.deleted_tags = normalize_id_list(source.get("deletedTags") or [])
        return pending
