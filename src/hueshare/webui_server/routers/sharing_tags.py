from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ...commit import CommitError, CommitInProgressError
from ...editor import SharingTagsEditor
from ...errors import TaxonomyNotFoundError, TaxonomyValidationError
from ..deps import Services, load_tag_lookup, require_editor, require_organization, require_services
from ..schemas import CategoryRequest, EditingRequest, SelectRequest, TagRequest

router = APIRouter(tags=["sharing-tags"])

_BASE = "/organizations/{organization_id}/sharing-tags"


def _scoped(payload: dict[str, Any], organization_id: str, *, is_new: bool | None = None) -> dict[str, Any]:
    scoped = dict(payload)
    scoped["organization_id"] = scoped.get("organization_id") or organization_id
    if is_new is not None:
        scoped["isNew"] = is_new
    return scoped


def _intake(action, *args) -> Any:
    try:
        return action(*args)
    except TaxonomyNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except TaxonomyValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except CommitInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.get(_BASE)
async def get_sharing_tags(
    refresh: bool = False,
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    if refresh and not editor.has_pending_changes:
        await asyncio.to_thread(editor.reload)
    return editor.snapshot()


@router.post(f"{_BASE}/editing")
async def set_editing(
    payload: EditingRequest,
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    editor.set_editing(payload.editing)
    return editor.snapshot()


@router.post(f"{_BASE}/categories", status_code=201)
async def add_category(
    payload: CategoryRequest,
    org: str = Depends(require_organization),
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    category = _intake(editor.add_category, _scoped(payload.to_payload(), org))
    return {"item": category.to_payload() if category else None, "state": editor.snapshot()}


@router.put(f"{_BASE}/categories/{{category_id}}")
async def update_category(
    category_id: str,
    payload: CategoryRequest,
    org: str = Depends(require_organization),
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    body = _scoped(payload.to_payload(), org, is_new=False)
    body["id"] = category_id
    category = _intake(editor.update_category, body)
    return {"item": category.to_payload() if category else None, "state": editor.snapshot()}


@router.delete(f"{_BASE}/categories/{{category_id}}")
async def delete_category(
    category_id: str,
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    deleted = _intake(editor.delete_category, category_id)
    return {"deleted": deleted, "state": editor.snapshot()}


@router.post(f"{_BASE}/tags", status_code=201)
async def add_tag(
    payload: TagRequest,
    org: str = Depends(require_organization),
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    body = _scoped(payload.to_payload(), org)
    body["category_id"] = body.get("category_id") or editor.selected_category_id
    tag = _intake(editor.add_tag, body)
    return {"item": tag.to_payload() if tag else None, "state": editor.snapshot()}


@router.put(f"{_BASE}/tags/{{tag_id}}")
async def update_tag(
    tag_id: str,
    payload: TagRequest,
    org: str = Depends(require_organization),
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    body = _scoped(payload.to_payload(), org, is_new=False)
    body["id"] = tag_id
    tag = _intake(editor.update_tag, body)
    return {"item": tag.to_payload() if tag else None, "state": editor.snapshot()}


@router.delete(f"{_BASE}/tags/{{tag_id}}")
async def delete_tag(
    tag_id: str,
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    deleted = _intake(editor.delete_tag, tag_id)
    return {"deleted": deleted, "state": editor.snapshot()}


@router.get(f"{_BASE}/tags/{{tag_id}}/parents")
async def get_tag_parents(
    tag_id: str,
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    parent_ids = await asyncio.to_thread(editor.parent_tag_ids, tag_id)
    return {"tag_id": tag_id, "items": parent_ids}


@router.post(f"{_BASE}/select")
async def select_category(
    payload: SelectRequest,
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    _intake(editor.select_category, payload.category_id)
    return editor.snapshot()


@router.post(f"{_BASE}/commit")
async def commit_changes(
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    try:
        report = await asyncio.to_thread(editor.save)
    except CommitInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except CommitError as exc:
        raise HTTPException(status_code=502, detail=f"Saving changes failed: {exc}")
    return {"report": report.to_payload(), "state": editor.snapshot()}


@router.post(f"{_BASE}/discard")
async def discard_changes(
    editor: SharingTagsEditor = Depends(require_editor),
) -> dict[str, Any]:
    try:
        await asyncio.to_thread(editor.discard)
    except CommitInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return editor.snapshot()


@router.get(f"{_BASE}/tag-lookup")
async def tag_lookup(
    org: str = Depends(require_organization),
    services: Services = Depends(require_services),
) -> dict[str, Any]:
    rows = await asyncio.to_thread(services.tag_cache.get, org, lambda tenant: load_tag_lookup(services.store, tenant))
    return {"items": rows}
