from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List

DEFAULT_LOG_PATH = "/var/log/evl-installer.log"
FALLBACK_LOG_NAME = "evl-installer.log"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _open_file_handler(log_path: str) -> logging.FileHandler:
    """Open the requested log file, falling back to the working directory."""

    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path)
    except OSError:
        return logging.FileHandler(str(Path.cwd() / FALLBACK_LOG_NAME))


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    *,
    verbose: bool = False,
    also_console: bool = True,
) -> str:
    """Configure root logging once: a log file plus the console (stderr).

    stdout is left to the verification report. Every record carries a
    timestamp and its level (INFO/WARNING/ERROR). Returns the log file path
    actually in use.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    existing = [h for h in root.handlers if getattr(h, "_evl_installer", False)]
    if existing:
        return next((h.baseFilename for h in existing if isinstance(h, logging.FileHandler)), log_path)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    file_handler = _open_file_handler(log_path)
    handlers: List[logging.Handler] = [file_handler]
    if also_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    for h in handlers:
        h.setFormatter(fmt)
        setattr(h, "_evl_installer", True)
        root.addHandler(h)

    chosen = file_handler.baseFilename
    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen)
    return chosen
