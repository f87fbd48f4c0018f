"""Flush a :class:`PendingChanges` buffer to the store in dependency order.

Phases run strictly one after another because later phases read the
temporary -> canonical tables filled by earlier ones:

1. create categories (parents only when already canonical)
2. update existing categories
3. point newly created categories at their newly created parents
4. create tags
5. rename existing tags
6. replace the parent-tag edges of every tag that carries a parent list
7. delete categories
8. delete tags and every edge they take part in

Within a phase the per-item store calls may run on a thread pool.  Nothing
wraps the phases in a store transaction, so a failure in a late phase leaves
the earlier phases applied.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Iterator, Sequence, TypeVar

from .hierarchy import find_category_cycles
from .identifiers import Identifier
from .models import Category, Tag
from .pending import PendingChanges
from .resolver import DependencyResolver, ResolutionTable
from .store import CATEGORIES, TAG_HIERARCHIES, TAGS, StoreError, TaxonomyStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

PHASE_NAMES: dict[int, str] = {
    1: "create categories",
    2: "update categories",
    3: "repair category parents",
    4: "create tags",
    5: "update tags",
    6: "reconcile tag hierarchy",
    7: "delete categories",
    8: "delete tags",
}


@dataclass
class CommitReport:
    organization_id: str
    category_ids: dict[str, str] = field(default_factory=dict)
    tag_ids: dict[str, str] = field(default_factory=dict)
    counts: dict[str, int] = field(default_factory=dict)
    category_cycles: list[list[str]] = field(default_factory=list)
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def bump(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self.counts[key] = self.counts.get(key, 0) + amount

    def to_payload(self) -> dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "category_ids": dict(self.category_ids),
            "tag_ids": dict(self.tag_ids),
            "counts": dict(self.counts),
            "category_cycles": [list(cycle) for cycle in self.category_cycles],
        }


class CommitError(RuntimeError):
    """A store call failed; ``report`` shows what had already been written."""

    def __init__(self, message: str, *, phase: int, report: CommitReport) -> None:
        super().__init__(message)
        self.phase = phase
        self.phase_name = PHASE_NAMES.get(phase, "")
        self.report = report


class CommitInProgressError(RuntimeError):
    pass


@dataclass(frozen=True)
class _CategoryPlan:
    ident: Identifier
    name: str
    parent: Identifier | None
    organization_id: str | None
    is_new: bool


@dataclass(frozen=True)
class _TagPlan:
    ident: Identifier
    name: str
    category: Identifier | None
    organization_id: str | None
    is_new: bool
    parents: tuple[Identifier, ...] | None


def _plan_category(category: Category) -> _CategoryPlan | None:
    ident = Identifier.classify(category.id)
    if ident is None:
        return None
    return _CategoryPlan(
        ident=ident,
        name=category.name,
        parent=Identifier.classify(category.parent_id),
        organization_id=category.organization_id,
        is_new=category.is_new,
    )


def _plan_tag(tag: Tag) -> _TagPlan | None:
    ident = Identifier.classify(tag.id)
    if ident is None:
        return None
    parents = None
    if tag.pending_parent_tags is not None:
        parents = tuple(Identifier.classify_all(tag.pending_parent_tags))
    return _TagPlan(
        ident=ident,
        name=tag.name,
        category=Identifier.classify(tag.category_id),
        organization_id=tag.organization_id,
        is_new=tag.is_new,
        parents=parents,
    )


class CommitEngine:
    def __init__(
        self,
        store: TaxonomyStore,
        *,
        max_workers: int = 4,
        on_committed: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.max_workers = max(1, int(max_workers))
        self.on_committed = on_committed
        self._in_flight = Lock()

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def commit(self, pending: PendingChanges, organization_id: str) -> CommitReport:
        """Write ``pending`` to the store; the buffer itself is never modified."""
        if not self._in_flight.acquire(blocking=False):
            raise CommitInProgressError("A commit is already running for this organization.")
        try:
            return self._commit(pending, organization_id)
        finally:
            self._in_flight.release()

    def _run(self, items: Sequence[T], fn: Callable[[T], R]) -> list[R]:
        if self.max_workers <= 1 or len(items) <= 1:
            return [fn(item) for item in items]
        results: list[Any] = []
        first_error: BaseException | None = None
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(items))) as executor:
            futures = [executor.submit(fn, item) for item in items]
            for future in futures:
                try:
                    results.append(future.result())
                except Exception as exc:
                    if first_error is None:
                        first_error = exc
                    results.append(None)
        if first_error is not None:
            raise first_error
        return results

    @contextmanager
    def _phase(self, number: int, report: CommitReport) -> Iterator[None]:
        name = PHASE_NAMES[number]
        logger.debug("commit %s: phase %d (%s) starting", report.organization_id, number, name)
        try:
            yield
        except StoreError as exc:
            logger.exception("commit %s: phase %d (%s) failed: %s", report.organization_id, number, name, exc)
            raise CommitError(f"{name} failed: {exc}", phase=number, report=report) from exc

    def _commit(self, pending: PendingChanges, organization_id: str) -> CommitReport:
        report = CommitReport(organization_id=organization_id)
        category_plans = [plan for plan in map(_plan_category, pending.categories) if plan is not None]
        tag_plans = [plan for plan in map(_plan_tag, pending.tags) if plan is not None]
        deleted_categories = Identifier.classify_all(pending.deleted_categories)
        deleted_tags = Identifier.classify_all(pending.deleted_tags)

        new_categories = [plan for plan in category_plans if plan.is_new]
        existing_categories = [plan for plan in category_plans if not plan.is_new]
        new_tags = [plan for plan in tag_plans if plan.is_new]
        existing_tags = [plan for plan in tag_plans if not plan.is_new]

        category_table = ResolutionTable("category")
        tag_table = ResolutionTable("tag")
        categories: DependencyResolver[_CategoryPlan] = DependencyResolver(category_table, key=lambda plan: plan.ident)
        tags: DependencyResolver[_TagPlan] = DependencyResolver(tag_table, key=lambda plan: plan.ident)

        logger.info(
            "commit %s: %d new/%d changed categories, %d new/%d changed tags, %d+%d deletes",
            organization_id,
            len(new_categories),
            len(existing_categories),
            len(new_tags),
            len(existing_tags),
            len(deleted_categories),
            len(deleted_tags),
        )

        def create_category(plan: _CategoryPlan) -> str | None:
            row = self.store.insert(
                CATEGORIES,
                {
                    "name": plan.name,
                    "parent_id": categories.early(plan.parent),
                    "organization_id": plan.organization_id or organization_id,
                },
                organization_id,
            )
            report.bump("categories_created")
            return str(row["id"]) if row and row.get("id") else None

        with self._phase(1, report):
            try:
                categories.materialize(new_categories, create_category, run=self._run)
            finally:
                report.category_ids = category_table.as_dict()

        def update_category(plan: _CategoryPlan) -> None:
            if plan.ident.temporary:
                logger.warning("skipping update of never-created category %s", plan.ident.value)
                return
            parent_id = category_table.resolve(plan.parent)
            if plan.parent is not None and parent_id is None:
                logger.warning(
                    "category %s: parent %s was never created; clearing parent",
                    plan.ident.value,
                    plan.parent.value,
                )
            self.store.update(CATEGORIES, plan.ident.value, {"name": plan.name, "parent_id": parent_id})
            report.bump("categories_updated")

        with self._phase(2, report):
            self._run(existing_categories, update_category)

        def repair_parent(entry: tuple[_CategoryPlan, str]) -> None:
            plan, parent_id = entry
            category_id = category_table.resolve(plan.ident)
            if category_id is None:
                return
            self.store.update(CATEGORIES, category_id, {"parent_id": parent_id})
            report.bump("category_parents_repaired")

        with self._phase(3, report):
            self._run(categories.deferred(new_categories, lambda plan: plan.parent), repair_parent)

        report.category_cycles = self._category_cycles(category_plans, category_table)

        def create_tag(plan: _TagPlan) -> str | None:
            category_id = category_table.resolve(plan.category)
            if plan.category is not None and category_id is None:
                logger.warning("tag %s: category %s was never created", plan.ident.value, plan.category.value)
            row = self.store.insert(
                TAGS,
                {
                    "name": plan.name,
                    "category_id": category_id,
                    "organization_id": plan.organization_id or organization_id,
                },
                organization_id,
            )
            report.bump("tags_created")
            return str(row["id"]) if row and row.get("id") else None

        with self._phase(4, report):
            try:
                tags.materialize(new_tags, create_tag, run=self._run)
            finally:
                report.tag_ids = tag_table.as_dict()

        def update_tag(plan: _TagPlan) -> None:
            if plan.ident.temporary:
                logger.warning("skipping update of never-created tag %s", plan.ident.value)
                return
            self.store.update(TAGS, plan.ident.value, {"name": plan.name})
            report.bump("tags_updated")

        with self._phase(5, report):
            self._run(existing_tags, update_tag)

        def replace_edges(plan: _TagPlan) -> None:
            tag_id = tag_table.resolve(plan.ident)
            if tag_id is None:
                logger.warning("skipping parent tags of never-created tag %s", plan.ident.value)
                return
            self.store.delete_where(TAG_HIERARCHIES, {"tag_id": tag_id})
            for parent_id in tag_table.resolve_all(plan.parents or ()):
                self.store.insert(TAG_HIERARCHIES, {"tag_id": tag_id, "parent_tag_id": parent_id}, organization_id)
                report.bump("tag_edges_created")
            report.bump("tag_hierarchies_replaced")

        with self._phase(6, report):
            self._run([plan for plan in tag_plans if plan.parents is not None], replace_edges)

        def delete_category(ident: Identifier) -> None:
            if ident.temporary:
                logger.debug("category %s was never stored; nothing to delete", ident.value)
                return
            self.store.delete(CATEGORIES, ident.value)
            report.bump("categories_deleted")

        with self._phase(7, report):
            self._run(deleted_categories, delete_category)

        def delete_tag(ident: Identifier) -> None:
            if ident.temporary:
                logger.debug("tag %s was never stored; nothing to delete", ident.value)
                return
            self.store.delete_where(TAG_HIERARCHIES, {"tag_id": ident.value, "parent_tag_id": ident.value}, any_of=True)
            self.store.delete(TAGS, ident.value)
            report.bump("tags_deleted")

        with self._phase(8, report):
            self._run(deleted_tags, delete_tag)

        if self.on_committed is not None:
            self.on_committed(organization_id)
        logger.info("commit %s finished: %s", organization_id, report.counts)
        return report

    @staticmethod
    def _category_cycles(plans: list[_CategoryPlan], table: ResolutionTable) -> list[list[str]]:
        parent_by_id: dict[str, str | None] = {}
        for plan in plans:
            category_id = table.resolve(plan.ident)
            if category_id is not None:
                parent_by_id[category_id] = table.resolve(plan.parent)
        cycles = find_category_cycles(parent_by_id)
        for cycle in cycles:
            logger.warning("committed categories form a parent cycle: %s", " -> ".join(cycle))
        return cycles
