from __future__ import annotations

import logging
import os
import time
from collections import deque
from contextlib import suppress
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 5
LOG_LEVELS = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def resolve_log_file() -> Path:
    override_dir = os.getenv("DOTAKEEPER_LOG_DIR")
    if override_dir:
        return Path(override_dir) / "dotakeeper.log"
    return Path("logs") / "dotakeeper.log"


def resolve_log_level(value=None) -> int:
    """Map LOG_LEVEL (ERROR, WARN, INFO, DEBUG; *_DETAILED accepted) to a logging level."""
    raw = str(value if value is not None else os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    raw = raw.replace("_DETAILED", "")
    return LOG_LEVELS.get(raw, logging.INFO)


def _rotating_handler(log_file: Path) -> RotatingFileHandler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8")


def configure_rotating_logger(
    logger_name: str,
    preferred_log_file: Path,
    fallback_log_file: Path,
    level: int = logging.INFO,
) -> tuple[logging.Logger, Path]:
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger, preferred_log_file

    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    effective_log_file = preferred_log_file
    try:
        file_handler = _rotating_handler(preferred_log_file)
    except OSError:
        # Read-only working directory or a locked file.
        file_handler = _rotating_handler(fallback_log_file)
        effective_log_file = fallback_log_file

    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = False
    return logger, effective_log_file


def _print_last_lines(handle, lines: int) -> None:
    if lines == 0:
        handle.seek(0, os.SEEK_END)
        return
    for line in deque(handle, maxlen=lines):
        print(line, end="")


def _follow(handle, poll_interval: float) -> None:
    while True:
        line = handle.readline()
        if not line:
            time.sleep(poll_interval)
            continue
        print(line, end="", flush=True)


def tail_logs(
    log_file: Path,
    lines: int = 100,
    follow: bool = True,
    poll_interval: float = 0.5,
) -> int:
    """Print the last ``lines`` of the watcher log, then follow it until Ctrl+C."""
    if lines < 0:
        print("--tail-lines must be >= 0")
        return 2
    if not log_file.exists():
        print(f"Log file does not exist yet: {log_file}")
        return 1

    with log_file.open("r", encoding="utf-8", errors="replace") as handle:
        _print_last_lines(handle, lines)
        if follow:
            with suppress(KeyboardInterrupt):
                _follow(handle, poll_interval)
    return 0
