"""Utilities for file operations."""
import hashlib
import os
from pathlib import Path

from loguru import logger


class FileError(Exception):
    """Base exception for file operations."""
    pass


class FileWriteError(FileError):
    """Raised when file operations fail."""
    pass


class ParseError(FileError):
    """Raised when parsing file content fails."""
    pass


def compute_checksum(content: bytes) -> str:
    """
    Compute SHA-256 checksum of content.

    Args:
        content: Raw bytes to hash

    Returns:
        SHA-256 hex digest
    """
    return hashlib.sha256(content).hexdigest()


def ensure_directory(path: Path) -> None:
    """
    Ensure directory exists, creating if necessary.

    Args:
        path: Directory path to ensure

    Raises:
        FileWriteError: If directory creation fails
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to create directory: {path}: {e}")
        raise FileWriteError(f"Failed to create directory {path}: {e}") from e


def temp_path_for(path: Path) -> Path:
    """Temporary sibling used while writing ``path``; hidden and not ``*.xml``."""
    return path.with_name(f".{path.name}.tmp")


def write_file_atomic(path: Path, content: bytes) -> None:
    """
    Write file with atomic operation using temporary file.

    Args:
        path: Target file path
        content: Content to write

    Raises:
        FileWriteError: If write operation fails
    """
    temp_path = temp_path_for(path)
    try:
        with open(temp_path, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        temp_path.replace(path)
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        logger.error(f"Failed to write file: {path}: {e}")
        raise FileWriteError(f"Failed to write file {path}: {e}") from e
