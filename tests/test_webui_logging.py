from __future__ import annotations

import logging
from pathlib import Path

from hueshare.webui_server.main import configure_logging


def test_configure_logging_writes_package_records_to_file(tmp_path: Path):
    log_file = tmp_path / "logs" / "server.log"
    root = logging.getLogger()
    previous_level = root.level
    package = logging.getLogger("hueshare")
    previous_package_level = package.level
    handlers = configure_logging(log_file, console_level="ERROR")
    try:
        logging.getLogger("hueshare.commit").debug("phase %d done", 3)
        logging.getLogger("urllib3.connectionpool").info("new connection")
        for handler in handlers:
            handler.flush()

        text = log_file.read_text(encoding="utf-8")
        assert "[hueshare.commit] phase 3 done" in text
        assert "new connection" not in text
        assert handlers[1].level == logging.ERROR
    finally:
        for handler in handlers:
            root.removeHandler(handler)
            handler.close()
        root.setLevel(previous_level)
        package.setLevel(previous_package_level)
