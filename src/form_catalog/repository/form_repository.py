"""Repository for the local form index."""

import asyncio
from collections import defaultdict
from enum import Enum
from typing import Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import ColumnElement, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from form_catalog import db
from form_catalog.models.form import FormRecord
from form_catalog.repository.repository import Repository


class SortOrder(str, Enum):
    """Sort orders offered to the presentation layer."""

    NAME_ASC = "name-asc"
    NAME_DESC = "name-desc"
    DATE_ASC = "date-asc"
    DATE_DESC = "date-desc"


def latest_versions(records: Iterable[FormRecord]) -> List[FormRecord]:
    """Reduce records to one representative per form_id.

    The representative has the greatest version; ties go to the most
    recently modified record.
    """
    groups: Dict[str, List[FormRecord]] = defaultdict(list)
    for record in records:
        groups[record.form_id].append(record)
    return [
        max(group, key=lambda r: (r.version_key, r.last_modified)) for group in groups.values()
    ]


def sort_records(records: Iterable[FormRecord], sort: SortOrder) -> List[FormRecord]:
    if sort in (SortOrder.NAME_ASC, SortOrder.NAME_DESC):
        key = lambda r: (r.display_name.casefold(), r.version_key, r.id)  # noqa: E731
    else:
        key = lambda r: (r.last_modified, r.version_key, r.id)  # noqa: E731
    reverse = sort in (SortOrder.NAME_DESC, SortOrder.DATE_DESC)
    return sorted(records, key=key, reverse=reverse)


class FormRepository(Repository[FormRecord]):
    """Repository for FormRecord model.

    The index has two writers (the disk reconciler and the catalog
    synchronizer) which may run at the same time. Every write goes through
    one lock and commits before returning, so readers always see whole
    records.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        """Initialize with session maker."""
        super().__init__(session_maker, FormRecord)
        self.write_lock = asyncio.Lock()

    @staticmethod
    def key_clause(form_id: str, version: Optional[str]) -> ColumnElement[bool]:
        if version is None:
            return and_(FormRecord.form_id == form_id, FormRecord.version.is_(None))
        return and_(FormRecord.form_id == form_id, FormRecord.version == version)

    async def get_by_key(self, form_id: str, version: Optional[str]) -> Optional[FormRecord]:
        """Get a record by its (form_id, version) identity."""
        return await self.find_one(self.select().where(self.key_clause(form_id, version)))

    async def get_by_file_path(self, file_path: str) -> Optional[FormRecord]:
        """Get a record by the relative path of its artifact."""
        return await self.find_one(self.select().where(FormRecord.file_path == file_path))

    async def find_by_form_id(self, form_id: str) -> List[FormRecord]:
        """All indexed versions of one form, deleted ones included."""
        return await self.find_many(self.select().where(FormRecord.form_id == form_id))

    async def upsert(self, record_data: dict) -> FormRecord:
        """Insert or replace the record identified by (form_id, version)."""
        data = self.get_model_data(record_data)
        form_id, version = data["form_id"], data.get("version")

        async with self.write_lock:
            async with db.scoped_session(self.session_maker) as session:
                query = self.select().where(self.key_clause(form_id, version))
                record = (await session.execute(query)).scalars().one_or_none()
                if record is None:
                    logger.debug(f"Indexing new form {form_id} version {version}")
                    record = FormRecord(**data)
                    session.add(record)
                else:
                    logger.debug(f"Replacing indexed form {form_id} version {version}")
                    for key, value in data.items():
                        setattr(record, key, value)
                await session.flush()
                return record

    async def mark_missing(self, form_id: str, version: Optional[str]) -> bool:
        """Flag a record whose artifact disappeared from storage; the record is kept."""
        async with self.write_lock:
            async with db.scoped_session(self.session_maker) as session:
                query = self.select().where(self.key_clause(form_id, version))
                record = (await session.execute(query)).scalars().one_or_none()
                if record is None:
                    return False
                record.deleted = True
                return True

    async def remove(self, form_id: str, version: Optional[str]) -> bool:
        """Delete a record outright."""
        async with self.write_lock:
            async with db.scoped_session(self.session_maker) as session:
                query = self.select().where(self.key_clause(form_id, version))
                record = (await session.execute(query)).scalars().one_or_none()
                if record is None:
                    return False
                await session.delete(record)
                return True

    async def query(
        self,
        filter_text: str = "",
        sort: SortOrder = SortOrder.NAME_ASC,
        hide_old_versions: bool = False,
        include_deleted: bool = False,
    ) -> List[FormRecord]:
        """
        Query the index for presentation.

        Records are grouped by form_id and reduced to their latest version
        first (when hide_old_versions is set); the filter on display_name and
        the sort are applied to the reduced set.

        Args:
            filter_text: Case-insensitive substring matched against display_name
            sort: One of the SortOrder values
            hide_old_versions: Keep only the newest version of each form
            include_deleted: Also return records whose artifact is missing

        Returns:
            Ordered snapshot of matching records
        """
        query = self.select()
        if not include_deleted:
            query = query.where(FormRecord.deleted.is_(False))
        records = await self.find_many(query)

        if hide_old_versions:
            records = latest_versions(records)

        if filter_text:
            needle = filter_text.casefold()
            records = [r for r in records if needle in r.display_name.casefold()]

        return sort_records(records, SortOrder(sort))
