"""Utility functions for form-catalog."""

import re
import sys
import unicodedata
from pathlib import Path
from typing import Optional

from loguru import logger
from unidecode import unidecode


def setup_logging(
    level: str = "INFO",
    home: Optional[Path] = None,
    log_file: Optional[str] = None,
) -> None:
    """Configure loguru sinks for stderr and an optional rotating log file."""
    logger.remove()
    logger.add(sys.stderr, level=level, colorize=True)

    if home and log_file:
        log_path = home / log_file
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_path, level="DEBUG", rotation="10 MB", retention="10 days")


def sanitize_name(name: str) -> str:
    """
    Sanitize a form id or version for filesystem use:
    - Transliterate unicode to ascii
    - Replace anything outside [A-Za-z0-9._-] with underscores
    - Collapse multiple underscores
    - Trim leading/trailing underscores and dots
    """
    name = unicodedata.normalize("NFKC", name)
    name = unidecode(name)
    name = re.sub(r"[^A-Za-z0-9._-]", "_", name)
    name = re.sub(r"_+", "_", name).strip("_.")

    return name or "form"
