from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

import uvicorn

from .app import create_app
from .settings import WebUISettings, load_webui_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_MAX_BYTES = 2 * 1024 * 1024
LOG_BACKUPS = 5

# Chatty third-party loggers the store clients pull in.
QUIET_LOGGERS = ("urllib3.connectionpool", "httpx", "httpcore", "uvicorn.access")


def configure_logging(log_file: Path, *, console_level: str = "WARNING") -> list[logging.Handler]:
    """Send everything from ``hueshare`` to a rotating file; only ``console_level`` and up to stderr.

    Returns the installed handlers so callers (and tests) can remove them.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(console_level)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    for handler in (file_handler, console):
        root.addHandler(handler)
    logging.getLogger("hueshare").setLevel(logging.DEBUG)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return [file_handler, console]


def run(settings: WebUISettings) -> None:
    configure_logging(settings.log_file, console_level=settings.log_level)
    logging.getLogger(__name__).info(
        "serving %s store on %s:%d", settings.store_kind, settings.bind_host, settings.bind_port
    )
    uvicorn.run(
        create_app(),
        host=settings.bind_host,
        port=settings.bind_port,
        # keep the handlers installed above
        log_config=None,
        access_log=False,
    )


def main() -> int:
    run(load_webui_settings())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
