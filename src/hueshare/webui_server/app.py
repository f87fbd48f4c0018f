from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from .. import __version__
from ..store import StoreError
from ..tag_cache import TagLookupCache
from .deps import EditorRegistry, Services, build_store
from .routers.sharing_tags import router as sharing_tags_router
from .settings import load_webui_settings

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = load_webui_settings()
    store = build_store(settings)
    tag_cache = TagLookupCache(settings.tag_cache_ttl)
    services = Services(
        settings=settings,
        store=store,
        tag_cache=tag_cache,
        editors=EditorRegistry(store, tag_cache, settings),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = services
        print(
            f"[start] hueshare webui listening on http://{settings.bind_host}:{settings.bind_port}{settings.base_path}"
            f" (store: {settings.store_kind})",
            flush=True,
        )
        try:
            yield
        finally:
            tag_cache.invalidate()

    app = FastAPI(title="HueShare Sharing Tags", version="1.0", lifespan=lifespan)
    api_prefix = f"{settings.base_path}/api/v1"

    @app.exception_handler(StoreError)
    async def store_error_handler(_request: Request, exc: StoreError) -> JSONResponse:
        logger.error("store %s on %s failed: %s", exc.operation, exc.collection, exc)
        return JSONResponse(status_code=502, content={"detail": f"Store request failed: {exc}"})

    @app.get("/")
    async def root_redirect() -> Response:
        return RedirectResponse(url=f"{api_prefix}/health", status_code=307)

    @app.get(f"{api_prefix}/health")
    async def health() -> dict[str, Any]:
        return {
            "ok": True,
            "base_path": settings.base_path,
            "version": __version__,
            "store": settings.store_kind,
        }

    app.include_router(sharing_tags_router, prefix=api_prefix)
    return app
