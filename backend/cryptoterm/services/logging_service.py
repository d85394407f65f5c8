"""Process-wide logging setup."""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import TerminalSettings

logger = logging.getLogger(__name__)

# Base logs directory
LOGS_BASE_DIR = Path(__file__).parent.parent.parent / "logs"


def resolve_log_file(log_file: Optional[str]) -> Optional[Path]:
    """Resolve a configured log file name; relative names land in the logs directory."""
    if not log_file:
        return None
    path = Path(log_file)
    if not path.is_absolute():
        path = LOGS_BASE_DIR / path
    return path


def configure_logging(settings: TerminalSettings) -> None:
    """Apply level, format and optional file output from settings.

    Args:
        settings: Loaded terminal settings
    """
    root = logging.getLogger()
    root.setLevel(settings.log_level)
    formatter = logging.Formatter(settings.log_format)

    if not any(getattr(h, "_cryptoterm", False) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        console._cryptoterm = True
        root.addHandler(console)

    log_path = resolve_log_file(settings.log_file)
    already_open = any(
        isinstance(h, RotatingFileHandler) and log_path is not None and h.baseFilename == os.path.abspath(log_path)
        for h in root.handlers
    )
    if log_path is not None and not already_open:
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError as e:
            logger.error(f"Failed to open log file {log_path}: {e}")

    # aiohttp access noise is not useful at INFO
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
