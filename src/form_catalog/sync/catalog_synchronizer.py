"""Synchronizes the form index with a remote catalog."""

import asyncio
from collections import defaultdict
from enum import Enum
from typing import Dict, List, Optional, Tuple

import logfire
from loguru import logger

from form_catalog.clients import RemoteCatalogClient
from form_catalog.models import FormRecord
from form_catalog.models.form import version_key
from form_catalog.repository import FormRepository
from form_catalog.schemas.catalog import Credentials, RemoteCatalogEntry
from form_catalog.services.exceptions import AuthError, StorageError
from form_catalog.services.file_service import FileService
from form_catalog.sync.utils import SyncFailure, SyncResult


class SyncAction(str, Enum):
    ADD = "add"
    UPDATE = "update"


class CatalogSynchronizer:
    """Downloads catalog forms the index does not have yet.

    Published content is treated as immutable per (form_id, version): forms
    already indexed are never fetched again, and older versions are kept when
    a newer one arrives. Forms that disappear from the server are left alone.
    """

    def __init__(
        self,
        client: RemoteCatalogClient,
        file_service: FileService,
        form_repository: FormRepository,
        max_concurrent_downloads: int = 4,
    ):
        self.client = client
        self.file_service = file_service
        self.form_repository = form_repository
        self.max_concurrent_downloads = max_concurrent_downloads
        self.path_lock = asyncio.Lock()

    async def synchronize(
        self,
        server_url: str,
        list_path: str,
        credentials: Optional[Credentials] = None,
    ) -> SyncResult:
        """
        Bring the index up to date with the remote catalog.

        Args:
            server_url: Base URL of the server
            list_path: Path of the form list
            credentials: Optional credentials for the server

        Returns:
            SyncResult with counts and per-form failures

        Raises:
            NetworkError, AuthError, ParseError: When the form list itself
                cannot be fetched; the index is untouched in that case
            AuthError: When the server rejects the credentials for a download
        """
        with logfire.span("catalog sync", server_url=server_url):
            entries = await self.client.fetch_catalog(server_url, list_path, credentials)
            plan = await self.plan(entries)
            logger.info(f"{len(plan)} of {len(entries)} catalog forms need downloading")

            semaphore = asyncio.Semaphore(self.max_concurrent_downloads)
            form_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
            abort = asyncio.Event()
            outcomes = await asyncio.gather(
                *(
                    self.process_entry(
                        entry, credentials, semaphore, form_locks[entry.form_id], abort
                    )
                    for entry, _ in plan
                ),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome

            added = updated = 0
            failures: List[SyncFailure] = []
            for (entry, action), failure in zip(plan, outcomes):
                if failure is not None:
                    failures.append(failure)
                elif action == SyncAction.UPDATE:
                    updated += 1
                else:
                    added += 1

            result = SyncResult.build(added, updated, tuple(failures))
            logger.info(result.summary_message)
            return result

    async def plan(
        self, entries: List[RemoteCatalogEntry]
    ) -> List[Tuple[RemoteCatalogEntry, SyncAction]]:
        """Diff catalog entries against the index by (form_id, version).

        Records flagged deleted do not count as present, so a form whose file
        was removed locally is fetched again.
        """
        records = [r for r in await self.form_repository.find_all() if not r.deleted]
        local_keys = {r.key for r in records}
        local_versions: Dict[str, List[tuple]] = defaultdict(list)
        for record in records:
            local_versions[record.form_id].append(record.version_key)

        plan = []
        seen = set()
        for entry in entries:
            if entry.key in seen:
                logger.debug(f"Catalog lists {entry.key} more than once")
                continue
            seen.add(entry.key)

            if entry.key in local_keys:
                continue

            known = local_versions.get(entry.form_id)
            if known and version_key(entry.version) > max(known):
                plan.append((entry, SyncAction.UPDATE))
            else:
                plan.append((entry, SyncAction.ADD))
        return plan

    async def process_entry(
        self,
        entry: RemoteCatalogEntry,
        credentials: Optional[Credentials],
        semaphore: asyncio.Semaphore,
        form_lock: asyncio.Lock,
        abort: asyncio.Event,
    ) -> Optional[SyncFailure]:
        """Download one entry, turning any failure into a SyncFailure.

        Rejected credentials abort the run: the AuthError is raised and entries
        that have not started yet are skipped.
        """
        async with form_lock, semaphore:
            if abort.is_set():
                return None
            try:
                await self.download_entry(entry, credentials)
            except AuthError:
                abort.set()
                raise
            except Exception as e:
                logger.warning(f"Failed to download {entry.form_id} version {entry.version}: {e}")
                return SyncFailure(
                    form_id=entry.form_id,
                    version=entry.version,
                    error_kind=type(e).__name__,
                    message=str(e),
                )
        return None

    async def download_entry(
        self, entry: RemoteCatalogEntry, credentials: Optional[Credentials] = None
    ) -> FormRecord:
        """Download, store and index one catalog entry."""
        downloaded = await self.client.download_artifact(entry, credentials)
        media = [
            (item, await self.client.download_media(item, credentials)) for item in downloaded.media
        ]

        # the path stays reserved until the record holding it is committed
        async with self.path_lock:
            for disambiguate in (False, True):
                path = self.file_service.form_path(entry.form_id, entry.version, disambiguate)
                if not await self.path_taken(path, entry):
                    break
            else:
                raise StorageError(f"No free path for {entry.form_id} version {entry.version}")

            file_path = await self.file_service.write_form(
                entry.form_id, entry.version, downloaded.content, disambiguate=disambiguate
            )
            for item, content in media:
                await self.file_service.write_media(file_path, item.filename, content)

            record = await self.form_repository.upsert(
                {
                    "form_id": entry.form_id,
                    "version": entry.version,
                    "display_name": downloaded.header.title,
                    "file_path": file_path,
                    "checksum": self.file_service.fingerprint(downloaded.content),
                    "last_modified": self.file_service.modified_time(file_path),
                    "deleted": False,
                    "download_url": entry.download_url,
                    "manifest_url": entry.manifest_url,
                }
            )
        logger.info(f"Downloaded {entry.form_id} version {entry.version} to {file_path}")
        return record

    async def path_taken(self, path: str, entry: RemoteCatalogEntry) -> bool:
        """A path is taken by another form's record, or by a file the index does not know."""
        holder = await self.form_repository.get_by_file_path(path)
        if holder is not None:
            return holder.key != entry.key
        return self.file_service.exists(path)
