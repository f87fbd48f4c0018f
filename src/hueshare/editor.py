"""Client-side editing session for one organization's categories and tags.

Every create, edit and delete lands in a :class:`PendingChanges` buffer and in
the displayed lists straight away; nothing reaches the store until
:meth:`SharingTagsEditor.save` hands the buffer to the commit engine.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from threading import RLock
from typing import Any, Callable

from .commit import CommitEngine, CommitInProgressError, CommitReport
from .errors import TaxonomyNotFoundError, TaxonomyValidationError
from .hierarchy import HierarchyEntry, build_category_hierarchy
from .identifiers import is_canonical_id, new_temporary_id, normalize_id
from .models import Category, Tag, TagEdge
from .pending import PendingChanges
from .store import CATEGORIES, TAG_HIERARCHIES, TAGS, TaxonomyStore

logger = logging.getLogger(__name__)

StateChangeCallback = Callable[[bool, dict[str, Any]], None]


def _as_category(candidate: Category | dict[str, Any]) -> Category:
    if isinstance(candidate, Category):
        return Category(**vars(candidate))
    if isinstance(candidate, dict):
        return Category.from_payload(candidate)
    raise TaxonomyValidationError("Category payload must be an object.")


def _as_tag(candidate: Tag | dict[str, Any]) -> Tag:
    if isinstance(candidate, Tag):
        return Tag.from_payload(candidate.to_payload())
    if isinstance(candidate, dict):
        return Tag.from_payload(candidate)
    raise TaxonomyValidationError("Tag payload must be an object.")


class SharingTagsEditor:
    def __init__(
        self,
        store: TaxonomyStore,
        organization_id: str,
        *,
        editing: bool = False,
        engine: CommitEngine | None = None,
        on_state_change: StateChangeCallback | None = None,
    ) -> None:
        org = normalize_id(organization_id)
        if org is None:
            raise TaxonomyValidationError("Organization not found.", field="organization_id")
        self.store = store
        self.organization_id = org
        self.editing = editing
        self.engine = engine or CommitEngine(store)
        self.pending = PendingChanges()
        self.categories: list[Category] = []
        self.tags: list[Tag] = []
        self.selected_category_id: str | None = None
        self._on_state_change = on_state_change
        self._lock = RLock()
        self._saving = False

    # -- canonical state -------------------------------------------------

    def reload(self) -> None:
        """Replace the displayed lists with the store's current rows."""
        category_rows = self.store.select_all(CATEGORIES, self.organization_id, order_by="name")
        tag_rows = self.store.select_all(TAGS, self.organization_id, order_by="name")
        edge_rows = self.store.select_all(TAG_HIERARCHIES, self.organization_id, order_by="tag_id")

        categories = [Category.from_payload(row) for row in category_rows if isinstance(row, dict)]
        tags = [Tag.from_payload(row) for row in tag_rows if isinstance(row, dict)]
        names = {tag.id: tag.name for tag in tags}
        parent_names: dict[str, list[str]] = defaultdict(list)
        for row in edge_rows:
            edge = TagEdge.from_row(row) if isinstance(row, dict) else None
            if edge is not None:
                parent_names[edge.tag_id].append(names.get(edge.parent_tag_id, edge.parent_tag_id))
        for tag in tags:
            tag.display_parent_tags = parent_names.get(tag.id, [])

        with self._lock:
            self.categories = [item for item in categories if item.id]
            self.tags = [item for item in tags if item.id]
            self._reconcile_selection()
        logger.debug(
            "reloaded %s: %d categories, %d tags",
            self.organization_id,
            len(self.categories),
            len(self.tags),
        )

    def _reconcile_selection(self) -> None:
        if not self.categories:
            self.selected_category_id = None
            return
        if not any(item.id == self.selected_category_id for item in self.categories):
            self.selected_category_id = self.categories[0].id

    # -- derived views ---------------------------------------------------

    @property
    def has_pending_changes(self) -> bool:
        return self.pending.has_changes

    @property
    def displayed_categories(self) -> list[HierarchyEntry]:
        return build_category_hierarchy(self.categories)

    @property
    def selected_category(self) -> Category | None:
        return self._find_category(self.selected_category_id)

    @property
    def filtered_tags(self) -> list[Tag]:
        selected = self.selected_category
        if selected is None:
            return []
        return [tag for tag in self.tags if tag.category_id == selected.id]

    @property
    def parent_category(self) -> Category | None:
        selected = self.selected_category
        if selected is None or not selected.parent_id:
            return None
        return self._find_category(selected.parent_id)

    @property
    def parent_category_tags(self) -> list[Tag]:
        parent = self.parent_category
        if parent is None:
            return []
        return [tag for tag in self.tags if tag.category_id == parent.id]

    def select_category(self, category_id: Any) -> Category:
        ident = normalize_id(category_id)
        category = self._find_category(ident)
        if category is None:
            raise TaxonomyNotFoundError("category", ident)
        self.selected_category_id = category.id
        return category

    def set_editing(self, editing: bool) -> None:
        self.editing = bool(editing)

    def parent_tag_ids(self, tag_id: Any) -> list[str]:
        """Parent ids an edit dialog should start from."""
        ident = normalize_id(tag_id)
        if ident is None:
            return []
        buffered = self.pending.get_tag(ident) or self._find_tag(ident)
        if buffered is not None and buffered.pending_parent_tags is not None:
            return list(buffered.pending_parent_tags)
        if not is_canonical_id(ident):
            return []
        rows = self.store.select_all(TAG_HIERARCHIES, self.organization_id, order_by="tag_id")
        out: list[str] = []
        for row in rows:
            edge = TagEdge.from_row(row) if isinstance(row, dict) else None
            if edge is not None and edge.tag_id == ident and edge.parent_tag_id not in out:
                out.append(edge.parent_tag_id)
        return out

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "organization_id": self.organization_id,
                "editing": self.editing,
                "saving": self._saving,
                "categories": [entry.to_payload() for entry in self.displayed_categories],
                "tags": [tag.to_payload() for tag in self.tags],
                "selected_category_id": self.selected_category_id,
                "filtered_tags": [tag.to_payload() for tag in self.filtered_tags],
                "parent_category": self.parent_category.to_payload() if self.parent_category else None,
                "parent_category_tags": [tag.to_payload() for tag in self.parent_category_tags],
                "pending_changes": self.pending.snapshot(),
                "has_pending_changes": self.pending.has_changes,
            }

    # -- edit intake -----------------------------------------------------

    def add_category(self, candidate: Category | dict[str, Any]) -> Category | None:
        category = _as_category(candidate)
        if not category.is_new:
            # Already written by someone else; the store is the source of truth.
            self.reload()
            return None
        self._validate(category.name, "Category")
        self._validate_scope(category, required=True)
        if not category.id:
            category.id = new_temporary_id()
        with self._lock:
            self._require_idle()
            self._check_category_ref(category.parent_id, "parent_id")
            self.pending.upsert_category(category)
            first = not self.categories
            self.categories.append(category)
            if first:
                self.selected_category_id = category.id
        self._notify()
        return category

    def update_category(self, candidate: Category | dict[str, Any]) -> Category | None:
        category = _as_category(candidate)
        if not self.editing:
            self.reload()
            return None
        if not category.id:
            raise TaxonomyValidationError("Category id is required.", field="id")
        self._validate(category.name, "Category")
        with self._lock:
            self._require_idle()
            existing = self.pending.get_category(category.id) or self._find_category(category.id)
            if existing is None:
                raise TaxonomyNotFoundError("category", category.id)
            category.is_new = category.is_new or existing.is_new
            if category.organization_id is None:
                category.organization_id = existing.organization_id
            self._validate_scope(category, required=False)
            self._check_category_ref(category.parent_id, "parent_id")
            self.pending.upsert_category(category)
            self.categories = [category if item.id == category.id else item for item in self.categories]
        self._notify()
        return category

    def add_tag(self, candidate: Tag | dict[str, Any]) -> Tag | None:
        tag = _as_tag(candidate)
        if not tag.is_new:
            self.reload()
            return None
        self._validate(tag.name, "Tag")
        if not tag.category_id:
            raise TaxonomyValidationError("A category must be selected.", field="category_id")
        self._validate_scope(tag, required=True)
        if not tag.id:
            tag.id = new_temporary_id()
        with self._lock:
            self._require_idle()
            self._check_category_ref(tag.category_id, "category_id")
            self._check_parent_tag_refs(tag.pending_parent_tags)
            if tag.pending_parent_tags is not None:
                tag.display_parent_tags = self._parent_names(tag.pending_parent_tags)
            self.pending.upsert_tag(tag)
            self.tags.append(tag)
        self._notify()
        return tag

    def update_tag(self, candidate: Tag | dict[str, Any]) -> Tag | None:
        tag = _as_tag(candidate)
        if not self.editing:
            self.reload()
            return None
        if not tag.id:
            raise TaxonomyValidationError("Tag id is required.", field="id")
        self._validate(tag.name, "Tag")
        with self._lock:
            self._require_idle()
            existing = self.pending.get_tag(tag.id) or self._find_tag(tag.id)
            if existing is None:
                raise TaxonomyNotFoundError("tag", tag.id)
            tag.is_new = tag.is_new or existing.is_new
            tag.category_id = tag.category_id or existing.category_id
            if tag.organization_id is None:
                tag.organization_id = existing.organization_id
            if tag.pending_parent_tags is None:
                tag.pending_parent_tags = existing.pending_parent_tags
            self._validate_scope(tag, required=False)
            self._check_category_ref(tag.category_id, "category_id")
            self._check_parent_tag_refs(tag.pending_parent_tags)
            if tag.pending_parent_tags is not None:
                tag.display_parent_tags = self._parent_names(tag.pending_parent_tags)
            else:
                tag.display_parent_tags = list(existing.display_parent_tags)
            self.pending.upsert_tag(tag)
            self.tags = [tag if item.id == tag.id else item for item in self.tags]
        self._notify()
        return tag

    def delete_category(self, category_id: Any) -> bool:
        if not self.editing:
            return False
        ident = normalize_id(category_id)
        if ident is None:
            return False
        with self._lock:
            self._require_idle()
            if self.pending.get_category(ident) is None and self._find_category(ident) is None:
                raise TaxonomyNotFoundError("category", ident)
            buffered = self.pending.forget_category(ident)
            if buffered is None or not buffered.is_new:
                self.pending.queue_category_delete(ident)
            self.categories = [item for item in self.categories if item.id != ident]
            if self.selected_category_id == ident:
                self.selected_category_id = self.categories[0].id if self.categories else None
        self._notify()
        return True

    def delete_tag(self, tag_id: Any) -> bool:
        if not self.editing:
            return False
        ident = normalize_id(tag_id)
        if ident is None:
            return False
        with self._lock:
            self._require_idle()
            if self.pending.get_tag(ident) is None and self._find_tag(ident) is None:
                raise TaxonomyNotFoundError("tag", ident)
            buffered = self.pending.forget_tag(ident)
            if buffered is None or not buffered.is_new:
                self.pending.queue_tag_delete(ident)
            self.tags = [item for item in self.tags if item.id != ident]
        self._notify()
        return True

    # -- commit / discard ------------------------------------------------

    def save(self) -> CommitReport:
        """Commit the buffer; on failure the buffer is kept for a retry."""
        with self._lock:
            self._require_idle()
            self._saving = True
        try:
            report = self.engine.commit(self.pending, self.organization_id)
            with self._lock:
                self.pending.clear()
            self._notify()
            self.reload()
            return report
        finally:
            with self._lock:
                self._saving = False

    def discard(self) -> None:
        with self._lock:
            self._require_idle()
            self.pending.clear()
        self._notify()
        self.reload()

    # -- helpers ---------------------------------------------------------

    def _require_idle(self) -> None:
        if self._saving:
            raise CommitInProgressError("Changes are being saved; try again when the save finishes.")

    def _validate(self, name: str, label: str) -> None:
        if not name:
            raise TaxonomyValidationError(f"{label} name cannot be empty.", field="name")

    def _validate_scope(self, item: Category | Tag, *, required: bool) -> None:
        if item.organization_id is None:
            if required:
                raise TaxonomyValidationError("Organization not found.", field="organization_id")
            item.organization_id = self.organization_id
            return
        if item.organization_id != self.organization_id:
            raise TaxonomyValidationError(
                "Entity belongs to a different organization.",
                field="organization_id",
            )

    def _check_category_ref(self, category_id: str | None, field: str) -> None:
        # Canonical references must point at this organization's own rows.
        if not is_canonical_id(category_id):
            return
        if self.pending.get_category(category_id) is None and self._find_category(category_id) is None:
            raise TaxonomyValidationError(
                f"Category '{category_id}' is not part of this organization.",
                field=field,
            )

    def _check_parent_tag_refs(self, parent_ids: list[str] | None) -> None:
        for parent_id in parent_ids or []:
            if not is_canonical_id(parent_id):
                continue
            if self.pending.get_tag(parent_id) is None and self._find_tag(parent_id) is None:
                raise TaxonomyValidationError(
                    f"Parent tag '{parent_id}' is not part of this organization.",
                    field="pendingParentTags",
                )

    def _parent_names(self, parent_ids: list[str]) -> list[str]:
        names = {tag.id: tag.name for tag in self.tags}
        return [names.get(parent_id, parent_id) for parent_id in parent_ids]

    def _find_category(self, category_id: str | None) -> Category | None:
        if not category_id:
            return None
        return next((item for item in self.categories if item.id == category_id), None)

    def _find_tag(self, tag_id: str | None) -> Tag | None:
        if not tag_id:
            return None
        return next((item for item in self.tags if item.id == tag_id), None)

    def _notify(self) -> None:
        if self._on_state_change is None:
            return
        self._on_state_change(self.pending.has_changes, self.pending.snapshot())
