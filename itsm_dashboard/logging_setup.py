"""Logging sinks for the dashboard tools."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict

from rich.logging import RichHandler

from .config import resolve_path

DEFAULT_LOG_PATH = "logs/itsm_dashboard.log"


def configure_logging(config: Dict[str, Any], *, base_dir: Path | None = None) -> Path | None:
    """Install console and file handlers from the ``logging`` config section.

    Returns the log file path when file logging is enabled.
    """
    root = logging.getLogger()
    logging.captureWarnings(True)
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    logging_config = config.get("logging", {})
    console_cfg = logging_config.get("console", {})
    file_cfg = logging_config.get("file", {})

    if console_cfg.get("enabled", True):
        level = console_cfg.get("level", "INFO")
        if console_cfg.get("rich_format", False):
            console: logging.Handler = RichHandler(level=level, rich_tracebacks=True)
            console.setFormatter(logging.Formatter("%(message)s"))
        else:
            console = logging.StreamHandler(sys.stdout)
            console.setLevel(level)
            console.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
        root.addHandler(console)

    if not file_cfg.get("enabled", True):
        return None
    file_path = resolve_path(file_cfg.get("path", DEFAULT_LOG_PATH), base=base_dir)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(file_path, mode="a", encoding="utf-8")
    file_handler.setLevel(file_cfg.get("level", "DEBUG"))
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(file_handler)
    # Third-party chatter stays out of the DEBUG file log.
    for noisy in ("urllib3", "matplotlib", "fontTools", "PIL"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return file_path
