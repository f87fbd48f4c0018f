"""Two-pass resolution of temporary ids for entities created in one batch."""

from __future__ import annotations

import logging
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar

from .identifiers import Identifier

logger = logging.getLogger(__name__)

T = TypeVar("T")
Runner = Callable[[Sequence[Any], Callable[[Any], Any]], list[Any]]


def _run_sequential(items: Sequence[T], fn: Callable[[T], str | None]) -> list[str | None]:
    return [fn(item) for item in items]


class ResolutionTable:
    """Temporary id -> canonical id, filled while a commit runs."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._mapping: dict[str, str] = {}

    def record(self, ident: Identifier, canonical: str | None) -> None:
        if not ident.temporary:
            return
        if canonical:
            self._mapping[ident.value] = canonical
        else:
            logger.warning("store returned no id for new %s %s", self.kind, ident.value)

    def resolve(self, ident: Identifier | None) -> str | None:
        if ident is None:
            return None
        if not ident.temporary:
            return ident.value
        return self._mapping.get(ident.value)

    def resolve_all(self, idents: Iterable[Identifier]) -> list[str]:
        out: list[str] = []
        for ident in idents:
            resolved = self.resolve(ident)
            if resolved is None:
                logger.warning("skipping unresolved %s reference %s", self.kind, ident.value)
                continue
            if resolved not in out:
                out.append(resolved)
        return out

    def as_dict(self) -> dict[str, str]:
        return dict(self._mapping)


class DependencyResolver(Generic[T]):
    """Create entities first, then rewrite the references that pointed at siblings.

    :meth:`materialize` is the first pass: every item is created with only the
    references that are already canonical (see :meth:`early`) and the ids the
    store hands back are recorded in the table.  :meth:`deferred` is the second
    pass: it returns the items whose reference was temporary, paired with the
    canonical id it resolves to now that the whole batch exists.
    """

    def __init__(self, table: ResolutionTable, *, key: Callable[[T], Identifier]) -> None:
        self.table = table
        self._key = key

    @staticmethod
    def early(ref: Identifier | None) -> str | None:
        if ref is None or ref.temporary:
            return None
        return ref.value

    def materialize(
        self,
        items: Sequence[T],
        create: Callable[[T], str | None],
        *,
        run: Runner | None = None,
    ) -> None:
        def _create_and_record(item: T) -> str | None:
            canonical = create(item)
            self.table.record(self._key(item), canonical)
            return canonical

        runner = run or _run_sequential
        runner(items, _create_and_record)

    def deferred(self, items: Iterable[T], ref: Callable[[T], Identifier | None]) -> list[tuple[T, str]]:
        out: list[tuple[T, str]] = []
        for item in items:
            target = ref(item)
            if target is None or not target.temporary:
                continue
            resolved = self.table.resolve(target)
            if resolved is None:
                logger.warning(
                    "skipping deferred %s reference %s -> %s: never created",
                    self.table.kind,
                    self._key(item).value,
                    target.value,
                )
                continue
            out.append((item, resolved))
        return out
