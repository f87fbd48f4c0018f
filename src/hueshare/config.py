from __future__ import annotations

import os
from pathlib import Path


def _resolve_repo_root() -> Path:
    raw = os.environ.get("HUESHARE_ROOT", "").strip()
    if raw:
        return Path(raw).expanduser().resolve()
    return Path(__file__).resolve().parents[2]


REPO_ROOT = _resolve_repo_root()
