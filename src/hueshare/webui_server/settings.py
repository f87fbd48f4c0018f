from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ..config import REPO_ROOT

DEFAULT_BASE_PATH = "/hueshare"
DEFAULT_DB_PATH = "cache/webui/taxonomy.db"
DEFAULT_BIND_HOST = "0.0.0.0"
DEFAULT_BIND_PORT = 4820
DEFAULT_STORE_KIND = "sqlite"
DEFAULT_COMMIT_WORKERS = 4
DEFAULT_TAG_CACHE_TTL = 300
DEFAULT_LOG_FILE = "logs/webui/hueshare.log"
DEFAULT_LOG_LEVEL = "WARNING"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
STORE_KINDS = frozenset({"sqlite", "rest"})


@dataclass(frozen=True)
class WebUISettings:
    bind_host: str
    bind_port: int
    base_path: str
    store_kind: str
    db_path: Path
    rest_url: str
    rest_key: str
    commit_workers: int
    tag_cache_ttl: int
    start_editing: bool
    log_file: Path
    log_level: str


def _normalize_base_path(raw: str) -> str:
    base = raw.strip() or DEFAULT_BASE_PATH
    if not base.startswith("/"):
        base = f"/{base}"
    return base.rstrip("/") or DEFAULT_BASE_PATH


def _int_env(name: str, default: int, *, min_val: int | None = None, max_val: int | None = None) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    value = int(raw)
    if min_val is not None and value < min_val:
        print(f"[webui] WARNING: {name}={value} is below minimum {min_val}, using {min_val}", flush=True)
        return min_val
    if max_val is not None and value > max_val:
        print(f"[webui] WARNING: {name}={value} is above maximum {max_val}, using {max_val}", flush=True)
        return max_val
    return value


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw not in {"0", "false", "no", "off"}


def _resolve_path(raw: str) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = REPO_ROOT / path
    return path.resolve()


def load_webui_settings() -> WebUISettings:
    bind_host = os.environ.get("WEB_BIND_HOST", DEFAULT_BIND_HOST).strip() or DEFAULT_BIND_HOST
    bind_port = _int_env("WEB_BIND_PORT", DEFAULT_BIND_PORT, min_val=1, max_val=65535)
    base_path = _normalize_base_path(os.environ.get("WEB_BASE_PATH", DEFAULT_BASE_PATH))

    store_kind = os.environ.get("HUESHARE_STORE", DEFAULT_STORE_KIND).strip().lower() or DEFAULT_STORE_KIND
    if store_kind not in STORE_KINDS:
        raise RuntimeError(f"HUESHARE_STORE must be one of: {', '.join(sorted(STORE_KINDS))}.")
    db_path = _resolve_path(os.environ.get("HUESHARE_DB_PATH", DEFAULT_DB_PATH).strip() or DEFAULT_DB_PATH)

    rest_url = os.environ.get("HUESHARE_REST_URL", "").strip().rstrip("/")
    rest_key = os.environ.get("HUESHARE_REST_KEY", "").strip()
    if store_kind == "rest" and not (rest_url and rest_key):
        raise RuntimeError("HUESHARE_STORE=rest requires both HUESHARE_REST_URL and HUESHARE_REST_KEY.")

    commit_workers = _int_env("HUESHARE_COMMIT_WORKERS", DEFAULT_COMMIT_WORKERS, min_val=1, max_val=32)
    tag_cache_ttl = _int_env("HUESHARE_TAG_CACHE_TTL", DEFAULT_TAG_CACHE_TTL, min_val=0)
    start_editing = _bool_env("HUESHARE_START_EDITING", False)

    log_file = _resolve_path(os.environ.get("HUESHARE_LOG_FILE", DEFAULT_LOG_FILE).strip() or DEFAULT_LOG_FILE)
    log_level = os.environ.get("HUESHARE_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper() or DEFAULT_LOG_LEVEL
    if log_level not in LOG_LEVELS:
        raise RuntimeError(f"HUESHARE_LOG_LEVEL must be one of: {', '.join(LOG_LEVELS)}.")

    return WebUISettings(
        bind_host=bind_host,
        bind_port=bind_port,
        base_path=base_path,
        store_kind=store_kind,
        db_path=db_path,
        rest_url=rest_url,
        rest_key=rest_key,
        commit_workers=commit_workers,
        tag_cache_ttl=tag_cache_ttl,
        start_editing=start_editing,
        log_file=log_file,
        log_level=log_level,
    )
