# sqliter/logging_setup.py
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import apsw
import apsw.ext

ENGINE_LOGGER = "sqliter.engine"


def setup_logging(
    debug: bool = False,
    log_file: Optional[Path] = None,
    forward_sqlite_log: bool = False,
) -> None:
    """
    Configure application-wide logging.

    - Logs to ~/.sqliter/sqliter.log unless log_file is given
      (rotating, max ~1 MB, 3 backups)
    - Also logs to console (stderr) for interactive runs
    - Optionally forwards SQLite's own error log to the sqliter.engine logger
    """
    if log_file is None:
        log_file = Path.home() / ".sqliter" / "sqliter.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers (useful if re-running in dev/REPL)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    # File handler with rotation
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=1_000_000,  # ~1 MB
        backupCount=3,
        encoding="utf-8",
    )
    file_fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
    )
    file_handler.setFormatter(file_fmt)
    file_handler.setLevel(level)
    root_logger.addHandler(file_handler)

    # Console handler (simple readable format)
    console_handler = logging.StreamHandler()
    console_fmt = logging.Formatter("[%(levelname)s] %(name)s - %(message)s")
    console_handler.setFormatter(console_fmt)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    root_logger.info("Logging initialized")
    root_logger.info(f"Log file: {log_file}")

    if forward_sqlite_log:
        forward_engine_log()


def forward_engine_log() -> bool:
    """
    Route SQLite's error log into the sqliter.engine logger.

    SQLite only accepts this before its first connection is opened.

    Returns:
        True if the engine accepted the log handler
    """
    try:
        apsw.ext.log_sqlite(logger=logging.getLogger(ENGINE_LOGGER))
    except apsw.MisuseError as exc:
        logging.getLogger(__name__).warning(
            f"SQLite log forwarding unavailable after initialization: {exc}"
        )
        return False
    return True
