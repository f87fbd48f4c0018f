"""Identifier normalization for categories, tags and their references.

References reach the editor in several shapes: a raw id string, a select
option (``{"value": ..., "label": ...}``), a full row (``{"id": ...}``) or
nothing at all.  Everything is funnelled through :func:`normalize_id` so the
rest of the package only ever sees ``str | None``.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Any, Iterable

TEMPORARY_ID_PREFIX = "temp-"
_CANONICAL_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def normalize_id(value: Any) -> str | None:
    if value is None or value is False:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        for key in ("value", "id"):
            candidate = value.get(key)
            if candidate:
                return normalize_id(candidate)
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    for attr in ("value", "id"):
        candidate = getattr(value, attr, None)
        if candidate:
            return normalize_id(candidate)
    return None


def normalize_id_list(values: Any) -> list[str]:
    """Normalize every entry, dropping blanks and repeats (first wins)."""
    if not isinstance(values, (list, tuple, set, frozenset)):
        return []
    out: list[str] = []
    seen: set[str] = set()
    for item in values:
        ident = normalize_id(item)
        if ident is None or ident in seen:
            continue
        seen.add(ident)
        out.append(ident)
    return out


def is_canonical_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_CANONICAL_ID_RE.match(value))


def new_temporary_id() -> str:
    return f"{TEMPORARY_ID_PREFIX}{uuid.uuid4().hex}"


@dataclass(frozen=True)
class Identifier:
    """An id tagged once as canonical (store-assigned) or temporary."""

    value: str
    temporary: bool

    @classmethod
    def canonical(cls, value: str) -> "Identifier":
        return cls(value=value, temporary=False)

    @classmethod
    def temporary_id(cls, value: str) -> "Identifier":
        return cls(value=value, temporary=True)

    @classmethod
    def classify(cls, raw: Any) -> "Identifier | None":
        value = normalize_id(raw)
        if value is None:
            return None
        if is_canonical_id(value):
            return cls.canonical(value)
        return cls.temporary_id(value)

    @classmethod
    def classify_all(cls, raw: Iterable[Any]) -> list["Identifier"]:
        out: list[Identifier] = []
        for item in normalize_id_list(list(raw)):
            ident = cls.classify(item)
            if ident is not None:
                out.append(ident)
        return out

    def __str__(self) -> str:
        return self.value
