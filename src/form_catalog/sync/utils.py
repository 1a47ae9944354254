"""Result types for disk scans and catalog syncs."""

from dataclasses import dataclass, field
from typing import Dict, Optional, Set, Tuple


@dataclass
class ScanReport:
    """Report of a disk scan compared to the index.

    Attributes:
        new: Files on disk that were not indexed
        modified: Indexed files whose checksum changed
        restored: Files flagged missing that came back unchanged
        missing: Indexed files no longer on disk
        errors: Files skipped, mapped to the reason
        checksums: Current checksums for files on disk
        upserts: Number of index writes made for scanned files
    """

    new: Set[str] = field(default_factory=set)
    modified: Set[str] = field(default_factory=set)
    restored: Set[str] = field(default_factory=set)
    missing: Set[str] = field(default_factory=set)
    errors: Dict[str, str] = field(default_factory=dict)
    checksums: Dict[str, str] = field(default_factory=dict)
    upserts: int = 0

    @property
    def total_changes(self) -> int:
        """Total number of files that needed attention."""
        return len(self.new) + len(self.modified) + len(self.restored) + len(self.missing)

    @property
    def summary_message(self) -> str:
        if self.total_changes == 0 and not self.errors:
            return f"Scanned {len(self.checksums)} forms, everything up to date"
        parts = [
            f"{len(self.new)} new",
            f"{len(self.modified)} modified",
            f"{len(self.missing)} missing",
        ]
        if self.restored:
            parts.append(f"{len(self.restored)} restored")
        message = f"Scanned {len(self.checksums)} forms ({', '.join(parts)})"
        if self.errors:
            message += f"; {len(self.errors)} skipped:"
            message += "".join(f"\n  {path}: {error}" for path, error in sorted(self.errors.items()))
        return message


@dataclass(frozen=True)
class SyncFailure:
    form_id: str
    version: Optional[str]
    error_kind: str
    message: str


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one catalog sync. Immutable once built."""

    added: int = 0
    updated: int = 0
    failures: Tuple[SyncFailure, ...] = ()
    summary_message: str = ""

    @classmethod
    def build(cls, added: int, updated: int, failures: Tuple[SyncFailure, ...]) -> "SyncResult":
        message = f"Catalog sync finished: {added} added, {updated} updated, {len(failures)} failed"
        for failure in failures:
            version = f" version {failure.version}" if failure.version else ""
            message += f"\n  {failure.form_id}{version}: {failure.error_kind}: {failure.message}"
        return cls(added=added, updated=updated, failures=failures, summary_message=message)

    @property
    def ok(self) -> bool:
        return not self.failures
