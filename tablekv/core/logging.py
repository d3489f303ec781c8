"""
Logging setup — console output plus an optional detailed log file.
"""

from __future__ import annotations

import logging
from pathlib import Path


def setup_logging(
    console_level: int | str = logging.WARNING,
    log_file: Path | str | None = None,
    file_level: int = logging.DEBUG,
) -> logging.Logger:
    """
    Setup tablekv logging.

    Args:
        console_level: Minimum level for console output (int or level name)
        log_file: Optional file receiving detailed output
        file_level: Minimum level for file output

    Returns:
        The configured "tablekv" logger
    """
    if isinstance(console_level, str):
        console_level = logging.getLevelName(console_level.upper())
        if not isinstance(console_level, int):
            console_level = logging.WARNING

    logger = logging.getLogger("tablekv")
    logger.setLevel(logging.DEBUG)

    # Clear existing handlers
    logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)
        logger.info(f"Logging initialized. File: {log_path}")

    return logger
