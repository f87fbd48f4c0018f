from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .identifiers import normalize_id, normalize_id_list


def _normalize_name(value: Any) -> str:
    text = str(value or "").strip()
    return " ".join(text.split())


def _flag(payload: dict[str, Any], *keys: str) -> bool:
    for key in keys:
        if key in payload:
            return bool(payload[key])
    return False


@dataclass
class Category:
    id: str
    name: str
    parent_id: str | None = None
    organization_id: str | None = None
    is_new: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Category":
        return cls(
            id=normalize_id(payload.get("id")) or "",
            name=_normalize_name(payload.get("name")),
            parent_id=normalize_id(payload.get("parent_id")),
            organization_id=normalize_id(payload.get("organization_id")),
            is_new=_flag(payload, "isNew", "is_new"),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "organization_id": self.organization_id,
            "isNew": self.is_new,
        }


@dataclass
class Tag:
    id: str
    name: str
    category_id: str | None = None
    organization_id: str | None = None
    is_new: bool = False
    # None means "parents untouched"; a list (even empty) replaces every remote edge.
    pending_parent_tags: list[str] | None = None
    display_parent_tags: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Tag":
        pending: list[str] | None = None
        for key in ("pendingParentTags", "pending_parent_tags"):
            if key in payload and payload[key] is not None:
                pending = normalize_id_list(payload[key])
                break
        display = payload.get("displayParentTags") or payload.get("display_parent_tags") or []
        return cls(
            id=normalize_id(payload.get("id")) or "",
            name=_normalize_name(payload.get("name")),
            category_id=normalize_id(payload.get("category_id")),
            organization_id=normalize_id(payload.get("organization_id")),
            is_new=_flag(payload, "isNew", "is_new"),
            pending_parent_tags=pending,
            display_parent_tags=[str(item) for item in display if item] if isinstance(display, list) else [],
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
            "organization_id": self.organization_id,
            "isNew": self.is_new,
            "displayParentTags": list(self.display_parent_tags),
        }
        if self.pending_parent_tags is not None:
            payload["pendingParentTags"] = list(self.pending_parent_tags)
        return payload


@dataclass(frozen=True)
class TagEdge:
    tag_id: str
    parent_tag_id: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "TagEdge | None":
        tag_id = normalize_id(row.get("tag_id"))
        parent_tag_id = normalize_id(row.get("parent_tag_id"))
        if tag_id is None or parent_tag_id is None:
            return None
        return cls(tag_id=tag_id, parent_tag_id=parent_tag_id)
