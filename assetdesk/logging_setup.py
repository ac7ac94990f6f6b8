# assetdesk/logging_setup.py
from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from flask import Flask

LOG_FILENAME = "assetdesk.log"


def configure_logging(app: Flask) -> Path | None:
    """Set app log level and, when LOG_DIR is configured, add a rotating file log."""
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL") or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO
    app.logger.setLevel(level)

    log_dir = app.config.get("LOG_DIR")
    if not log_dir:
        return None

    path = Path(log_dir).expanduser()
    path.mkdir(parents=True, exist_ok=True)
    log_path = path / LOG_FILENAME

    # avoid duplicate handlers when create_app runs more than once
    for h in app.logger.handlers:
        if isinstance(h, logging.handlers.RotatingFileHandler) and getattr(h, "baseFilename", "").endswith(LOG_FILENAME):
            return log_path

    handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler.setLevel(level)
    app.logger.addHandler(handler)

    # SQLAlchemy warnings/errors go to the same file
    logging.getLogger("sqlalchemy").addHandler(handler)

    return log_path
