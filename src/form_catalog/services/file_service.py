"""Service for form artifact storage with checksum tracking."""

import asyncio
import hashlib
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Set, Tuple

from loguru import logger

from form_catalog.services.exceptions import StorageError
from form_catalog.utils import sanitize_name
from form_catalog.utils.file_utils import (
    FileError,
    compute_checksum,
    ensure_directory,
    write_file_atomic,
)

FORM_SUFFIX = ".xml"
MEDIA_DIR_SUFFIX = "-media"
LOCK_SUFFIX = ".lock"
SEGMENT_SEP = "__"


def _stat_all(paths: List[Path]) -> Dict[Path, Optional[Tuple[int, int]]]:
    stats: Dict[Path, Optional[Tuple[int, int]]] = {}
    for path in paths:
        try:
            st = path.stat()
        except OSError:
            stats[path] = None
        else:
            stats[path] = (st.st_size, st.st_mtime_ns)
    return stats


@dataclass(frozen=True)
class Artifact:
    """A form artifact found on disk."""

    # path relative to the forms directory
    path: str
    content: bytes
    checksum: str


class FileService:
    """
    Service for handling form artifacts on disk.

    Features:
    - Stable path scheme derived from (form_id, version)
    - Atomic writes through a hidden temp file
    - Scanning that never yields partially written files
    - Error handling
    """

    def __init__(self, base_path: Path, settle_seconds: float = 0.0):
        self.base_path = base_path
        self.settle_seconds = settle_seconds

    def form_path(
        self, form_id: str, version: Optional[str], disambiguate: bool = False
    ) -> str:
        """Relative path where a downloaded form version is stored.

        Segments are joined with a double underscore, which sanitized names
        never contain, so distinct (form_id, version) pairs never share a
        path: ``("x", "1")`` is ``x__v1.xml`` while unversioned ``"x_v1"`` is
        ``x_v1.xml``. Names that sanitizing changed, or that the caller found
        taken, get a short digest of the identity as an extra segment.
        """
        name = sanitize_name(form_id)
        version_name = sanitize_name(version) if version is not None else None
        if disambiguate or name != form_id or (version is not None and version_name != version):
            digest = hashlib.sha1(f"{form_id}\0{version or ''}".encode()).hexdigest()[:8]
            name = f"{name}{SEGMENT_SEP}{digest}"
        if version_name is not None:
            name = f"{name}{SEGMENT_SEP}v{version_name}"
        return f"{name}{FORM_SUFFIX}"

    def media_dir(self, form_path: str) -> Path:
        rel = Path(form_path)
        return self.base_path / rel.parent / f"{rel.stem}{MEDIA_DIR_SUFFIX}"

    def fingerprint(self, content: bytes) -> str:
        return compute_checksum(content)

    def exists(self, path: str) -> bool:
        return (self.base_path / path).exists()

    def modified_time(self, path: str) -> datetime:
        """Last modification time of an artifact as a naive local datetime."""
        return datetime.fromtimestamp((self.base_path / path).stat().st_mtime)

    async def scan_for_artifacts(self) -> AsyncIterator[Artifact]:
        """
        Yield every complete form artifact under the forms directory.

        Files are visited in path order. Hidden and temp files, media
        directories, files with a ``.lock`` marker and files still growing
        are skipped. A single unreadable file is logged and skipped.

        Raises:
            StorageError: If the forms directory cannot be read
        """
        candidates = await asyncio.to_thread(self._list_candidates)
        logger.debug(f"Found {len(candidates)} candidate form files in {self.base_path}")

        unstable = await self._unstable(candidates) if self.settle_seconds else set()

        for path in candidates:
            rel_path = path.relative_to(self.base_path).as_posix()
            if path in unstable:
                logger.info(f"Skipping {rel_path}: file is still being written")
                continue
            try:
                content = await asyncio.to_thread(path.read_bytes)
            except OSError as e:
                logger.error(f"Failed to read {rel_path}: {e}")
                continue
            yield Artifact(path=rel_path, content=content, checksum=compute_checksum(content))

    def _list_candidates(self) -> List[Path]:
        root = self.base_path
        if not root.is_dir():
            raise StorageError(f"Forms directory does not exist: {root}")
        try:
            with os.scandir(root) as entries:
                next(entries, None)
            found = sorted(root.rglob(f"*{FORM_SUFFIX}"))
        except OSError as e:
            raise StorageError(f"Forms directory is not readable: {root}: {e}") from e

        candidates = []
        for path in found:
            rel = path.relative_to(root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if any(part.endswith(MEDIA_DIR_SUFFIX) for part in rel.parts[:-1]):
                continue
            if path.with_name(path.name + LOCK_SUFFIX).exists():
                logger.debug(f"Skipping locked file: {rel}")
                continue
            if path.is_file():
                candidates.append(path)
        return candidates

    async def _unstable(self, paths: List[Path]) -> Set[Path]:
        """Paths whose size or mtime changes across one settle interval."""
        before = await asyncio.to_thread(_stat_all, paths)
        await asyncio.sleep(self.settle_seconds)
        after = await asyncio.to_thread(_stat_all, paths)
        return {p for p in paths if before[p] is None or before[p] != after[p]}

    async def write_form(
        self,
        form_id: str,
        version: Optional[str],
        content: bytes,
        disambiguate: bool = False,
    ) -> str:
        """
        Write a form artifact atomically and return its relative path.

        Raises:
            StorageError: If the forms directory is not writable
        """
        rel_path = self.form_path(form_id, version, disambiguate)
        await self._write(self.base_path / rel_path, content)
        logger.debug(f"Wrote form {form_id} version {version} to {rel_path}")
        return rel_path

    async def write_media(self, form_path: str, filename: str, content: bytes) -> Path:
        """Write one media file next to its form."""
        name = Path(filename).name
        if not name or name.startswith("."):
            raise StorageError(f"Refusing to write media file named {filename!r}")
        path = self.media_dir(form_path) / name
        await self._write(path, content)
        return path

    async def _write(self, path: Path, content: bytes) -> None:
        try:
            ensure_directory(path.parent)
            await asyncio.to_thread(write_file_atomic, path, content)
        except FileError as e:
            raise StorageError(str(e)) from e
