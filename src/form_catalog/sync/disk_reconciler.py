"""Reconciles form artifacts on disk with the form index."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

import logfire
from loguru import logger

from form_catalog.forms import FormParser
from form_catalog.models import FormRecord
from form_catalog.repository import FormRepository
from form_catalog.services.file_service import Artifact, FileService
from form_catalog.sync.utils import ScanReport
from form_catalog.utils.file_utils import ParseError

FormKey = Tuple[str, Optional[str]]


class ReconcilerState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    RECONCILING = "reconciling"


class DiskReconciler:
    """
    Brings the index in line with the forms directory.
    The filesystem is treated as the source of truth for local artifacts.

    A rerun with no filesystem change writes nothing: unchanged artifacts are
    recognised by checksum and skipped.
    """

    def __init__(
        self,
        file_service: FileService,
        form_repository: FormRepository,
        form_parser: FormParser,
    ):
        self.file_service = file_service
        self.form_repository = form_repository
        self.form_parser = form_parser
        self.state = ReconcilerState.IDLE

    async def run(self) -> ScanReport:
        """Scan the forms directory and reconcile the index.

        Raises:
            StorageError: If the forms directory cannot be read
        """
        with logfire.span("disk scan", directory=str(self.file_service.base_path)):
            report = ScanReport()
            try:
                self.state = ReconcilerState.SCANNING
                artifacts = [a async for a in self.file_service.scan_for_artifacts()]

                self.state = ReconcilerState.RECONCILING
                records = await self.form_repository.find_all()
                by_path: Dict[str, FormRecord] = {r.file_path: r for r in records}
                by_key: Dict[FormKey, FormRecord] = {r.key: r for r in records}
                scanned = {a.path: a.checksum for a in artifacts}
                displaced: Dict[FormKey, FormRecord] = {}

                for artifact in artifacts:
                    report.checksums[artifact.path] = artifact.checksum
                    try:
                        await self.reconcile_artifact(
                            artifact, by_path, by_key, scanned, displaced, report
                        )
                    except ParseError as e:
                        logger.warning(f"Skipping unparseable form {artifact.path}: {e}")
                        report.errors[artifact.path] = str(e)

                await self.mark_missing(list(by_path.values()), scanned, report)
            finally:
                self.state = ReconcilerState.IDLE

            logger.info(report.summary_message)
            return report

    async def reconcile_artifact(
        self,
        artifact: Artifact,
        by_path: Dict[str, FormRecord],
        by_key: Dict[FormKey, FormRecord],
        scanned: Dict[str, str],
        displaced: Dict[FormKey, FormRecord],
        report: ScanReport,
    ) -> None:
        existing = by_path.get(artifact.path)

        if existing is not None and existing.checksum == artifact.checksum:
            if existing.deleted:
                logger.debug(f"Form file is back: {artifact.path}")
                record = await self.form_repository.upsert(
                    {"form_id": existing.form_id, "version": existing.version, "deleted": False}
                )
                self._track(record, by_path, by_key)
                report.restored.add(artifact.path)
                report.upserts += 1
            return

        header = self.form_parser.parse(artifact.content, source=artifact.path)
        key = (header.form_id, header.version)

        holder = by_key.get(key)
        if holder is not None and holder.file_path != artifact.path:
            holder_changed = scanned.get(holder.file_path, holder.checksum) != holder.checksum
            if holder.file_path in scanned and not holder_changed:
                message = f"duplicate of {holder.file_path} ({header.form_id} version {header.version})"
                logger.warning(f"Skipping {artifact.path}: {message}")
                report.errors[artifact.path] = message
                return
            # a vanished path is a move; a rewritten one will be reconciled on its own turn
            logger.debug(f"Form {header.form_id} moved: {holder.file_path} -> {artifact.path}")
            by_path.pop(holder.file_path, None)

        if existing is not None and existing.key != key:
            logger.debug(f"{artifact.path} now holds {key}, dropping {existing.key}")
            await self.form_repository.remove(*existing.key)
            by_key.pop(existing.key, None)
            displaced[existing.key] = existing

        record = await self.form_repository.upsert(
            {
                "form_id": header.form_id,
                "version": header.version,
                "display_name": header.title,
                "file_path": artifact.path,
                "checksum": artifact.checksum,
                "last_modified": self._modified_time(artifact.path),
                "deleted": False,
                **self._catalog_fields(displaced.pop(key, None)),
            }
        )
        self._track(record, by_path, by_key)
        report.upserts += 1
        if existing is not None:
            report.modified.add(artifact.path)
        else:
            report.new.add(artifact.path)

    async def mark_missing(
        self, records: List[FormRecord], scanned: Dict[str, str], report: ScanReport
    ) -> None:
        """Flag indexed forms whose artifact is gone from disk."""
        for record in records:
            if record.deleted or record.file_path in scanned:
                continue
            # skipped in-progress or unreadable files are still present
            if self.file_service.exists(record.file_path):
                continue
            logger.debug(f"Form file missing: {record.file_path}")
            await self.form_repository.mark_missing(record.form_id, record.version)
            report.missing.add(record.file_path)

    @staticmethod
    def _catalog_fields(record: Optional[FormRecord]) -> dict:
        """Catalog links of a record dropped earlier in this run, for the record that replaces it."""
        if record is None:
            return {}
        return {"download_url": record.download_url, "manifest_url": record.manifest_url}

    def _modified_time(self, path: str) -> datetime:
        try:
            return self.file_service.modified_time(path)
        except OSError:
            return datetime.now()

    @staticmethod
    def _track(
        record: FormRecord, by_path: Dict[str, FormRecord], by_key: Dict[FormKey, FormRecord]
    ) -> None:
        by_path[record.file_path] = record
        by_key[record.key] = record
