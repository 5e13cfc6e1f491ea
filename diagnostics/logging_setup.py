from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

LOGGER_NAME = "widgetpreview"
RUNTIME_LOGGERS = ("widget_runtime", "preview_bridge")
_FORMAT = "ts=%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s"

_CONFIGURED = False
_HANDLER: Optional[logging.Handler] = None


def _file_handler(log_path: Path) -> logging.Handler:
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FORMAT))
    return handler


def configure_logging(base_dir: Optional[Path] = None, level: int = logging.INFO) -> Dict[str, str]:
    """Send application and runtime logs to ``<base>/logs/widgetpreview.log``.

    Calling it again for the default location is a no-op; a ``base_dir``
    (tests) gets its own ``widgetpreview.test`` logger tree.
    """
    global _CONFIGURED, _HANDLER
    root = base_dir or Path("data/roaming")
    log_dir = root / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "widgetpreview.log"

    logger_name = LOGGER_NAME if base_dir is None else f"{LOGGER_NAME}.test"
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False

    if base_dir is None and not _CONFIGURED:
        handler = _file_handler(log_path)
        logger.addHandler(handler)
        for name in RUNTIME_LOGGERS:
            runtime_logger = logging.getLogger(name)
            runtime_logger.setLevel(level)
            runtime_logger.addHandler(handler)
        _HANDLER = handler
        _CONFIGURED = True
    elif base_dir is not None and not logger.handlers:
        logger.addHandler(_file_handler(log_path))

    return {
        "log_path": str(log_path),
        "format": "kv",
        "handlers": "file",
        "logger_name": logger_name,
    }


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)
