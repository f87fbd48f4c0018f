from __future__ import annotations

import time
from threading import Lock
from typing import Any, Callable, Iterable

from .models import Category, Tag

LookupLoader = Callable[[str], list[dict[str, Any]]]


def build_tag_lookup_rows(categories: Iterable[Category], tags: Iterable[Tag]) -> list[dict[str, Any]]:
    """Select-box rows for assigning tags, labelled ``"<category>: <tag>"``."""
    category_names = {item.id: item.name for item in categories}
    rows: list[dict[str, Any]] = []
    for tag in tags:
        category_name = category_names.get(tag.category_id or "")
        label = f"{category_name}: {tag.name}" if category_name else tag.name
        rows.append({"value": tag.id, "label": label, "category_id": tag.category_id})
    rows.sort(key=lambda row: row["label"].casefold())
    return rows


class TagLookupCache:
    """Per-tenant tag lookup rows with a time-to-live.

    Every invalidation bumps the tenant's generation; rows loaded across a
    generation change are returned to that caller but never cached.
    """

    def __init__(self, ttl_seconds: int = 300, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, list[dict[str, Any]]]] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._lock = Lock()

    def _generation(self, tenant: str) -> tuple[int, int]:
        return self._epoch, self._generations.get(tenant, 0)

    def get(self, tenant: str, loader: LookupLoader) -> list[dict[str, Any]]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(tenant)
            if entry is not None and now - entry[0] < self.ttl_seconds:
                return list(entry[1])
            generation = self._generation(tenant)
        rows = loader(tenant)
        with self._lock:
            if self._generation(tenant) == generation:
                self._entries[tenant] = (now, list(rows))
        return list(rows)

    def invalidate(self, tenant: str | None = None) -> None:
        with self._lock:
            if tenant:
                self._entries.pop(tenant, None)
                self._generations[tenant] = self._generations.get(tenant, 0) + 1
            else:
                self._entries.clear()
                self._epoch += 1

    def __contains__(self, tenant: object) -> bool:
        with self._lock:
            entry = self._entries.get(str(tenant))
            return entry is not None and self._clock() - entry[0] < self.ttl_seconds
