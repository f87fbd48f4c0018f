"""Indented display order for the category tree."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .models import Category


@dataclass(frozen=True)
class HierarchyEntry:
    category: Category
    level: int

    def to_payload(self) -> dict[str, Any]:
        return {**self.category.to_payload(), "level": self.level}


def build_category_hierarchy(categories: Iterable[Category]) -> list[HierarchyEntry]:
    """Return categories depth-first, each parent directly ahead of its subtree.

    Roots are categories without a parent or whose parent is not in the list.
    Sibling order follows input order.  Categories caught in a parent cycle
    never hang off a root; they are appended afterwards, starting at level 0
    from the first unvisited member, so the walk always terminates.
    """
    items: list[Category] = []
    by_id: dict[str, Category] = {}
    for category in categories:
        if category.id in by_id:
            continue
        by_id[category.id] = category
        items.append(category)

    children: dict[str, list[Category]] = defaultdict(list)
    roots: list[Category] = []
    for category in items:
        parent_id = category.parent_id
        if parent_id and parent_id != category.id and parent_id in by_id:
            children[parent_id].append(category)
        else:
            roots.append(category)

    out: list[HierarchyEntry] = []
    visited: set[str] = set()

    def _walk(start: Category) -> None:
        stack: list[tuple[Category, int]] = [(start, 0)]
        while stack:
            node, level = stack.pop()
            if node.id in visited:
                continue
            visited.add(node.id)
            out.append(HierarchyEntry(category=node, level=level))
            for child in reversed(children.get(node.id, [])):
                if child.id not in visited:
                    stack.append((child, level + 1))

    for root in roots:
        _walk(root)
    for category in items:
        if category.id not in visited:
            _walk(category)
    return out


def find_category_cycles(parent_by_id: Mapping[str, str | None]) -> list[list[str]]:
    """Return each parent cycle once, as the ids along the cycle."""
    cycles: list[list[str]] = []
    done: set[str] = set()
    for start in parent_by_id:
        path: list[str] = []
        position: dict[str, int] = {}
        node: str | None = start
        while node is not None and node in parent_by_id and node not in done and node not in position:
            position[node] = len(path)
            path.append(node)
            node = parent_by_id[node]
        if node is not None and node in position:
            cycles.append(path[position[node]:])
        done.update(path)
    return cycles
