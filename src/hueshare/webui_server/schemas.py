from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _strip_name(value: str) -> str:
    text = " ".join(str(value or "").split())
    if not text:
        raise ValueError("Name cannot be empty.")
    return text


class CategoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    name: str = Field(min_length=1)
    parent_id: str | None = None
    organization_id: str | None = None
    is_new: bool = Field(default=True, alias="isNew")

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _strip_name(value)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "organization_id": self.organization_id,
            "isNew": self.is_new,
        }


class TagRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    name: str = Field(min_length=1)
    category_id: str | None = None
    organization_id: str | None = None
    is_new: bool = Field(default=True, alias="isNew")
    pending_parent_tags: list[str] | None = Field(default=None, alias="pendingParentTags")

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return _strip_name(value)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
            "organization_id": self.organization_id,
            "isNew": self.is_new,
        }
        if self.pending_parent_tags is not None:
            payload["pendingParentTags"] = list(self.pending_parent_tags)
        return payload


class EditingRequest(BaseModel):
    editing: bool


class SelectRequest(BaseModel):
    category_id: str = Field(min_length=1)
