from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

from fastapi import Depends, HTTPException, Request

from ..commit import CommitEngine
from ..editor import SharingTagsEditor
from ..errors import TaxonomyValidationError
from ..identifiers import normalize_id
from ..models import Category, Tag
from ..rest_store import RestTaxonomyStore
from ..store import CATEGORIES, TAGS, SqliteTaxonomyStore, TaxonomyStore
from ..tag_cache import TagLookupCache, build_tag_lookup_rows
from .settings import WebUISettings

logger = logging.getLogger(__name__)


class EditorRegistry:
    """One editing session per organization, created on first use."""

    def __init__(self, store: TaxonomyStore, tag_cache: TagLookupCache, settings: WebUISettings) -> None:
        self.store = store
        self.tag_cache = tag_cache
        self.settings = settings
        self._editors: dict[str, SharingTagsEditor] = {}
        self._lock = Lock()

    def get(self, organization_id: str) -> SharingTagsEditor:
        with self._lock:
            editor = self._editors.get(organization_id)
        if editor is not None:
            return editor
        engine = CommitEngine(
            self.store,
            max_workers=self.settings.commit_workers,
            on_committed=self.tag_cache.invalidate,
        )
        editor = SharingTagsEditor(
            self.store,
            organization_id,
            editing=self.settings.start_editing,
            engine=engine,
        )
        # Only a session that loaded successfully is kept.
        editor.reload()
        with self._lock:
            kept = self._editors.setdefault(organization_id, editor)
        if kept is editor:
            logger.info("opened editing session for organization %s", organization_id)
        return kept


@dataclass(frozen=True)
class Services:
    settings: WebUISettings
    store: TaxonomyStore
    tag_cache: TagLookupCache
    editors: EditorRegistry = field(repr=False)


def build_store(settings: WebUISettings) -> TaxonomyStore:
    if settings.store_kind == "rest":
        return RestTaxonomyStore(base_url=settings.rest_url, api_key=settings.rest_key)
    store = SqliteTaxonomyStore(settings.db_path)
    store.initialize()
    return store


def load_tag_lookup(store: TaxonomyStore, organization_id: str) -> list[dict[str, Any]]:
    categories = [Category.from_payload(row) for row in store.select_all(CATEGORIES, organization_id)]
    tags = [Tag.from_payload(row) for row in store.select_all(TAGS, organization_id)]
    return build_tag_lookup_rows(categories, tags)


def require_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Web UI services are not initialized.")
    return services


def require_organization(organization_id: str) -> str:
    org = normalize_id(organization_id)
    if org is None:
        raise HTTPException(status_code=404, detail="Organization not found.")
    return org


def require_editor(
    org: str = Depends(require_organization),
    services: Services = Depends(require_services),
) -> SharingTagsEditor:
    try:
        return services.editors.get(org)
    except TaxonomyValidationError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
