"""Tests for the form index repository."""

from datetime import datetime, timedelta
from typing import Optional

import pytest

from form_catalog.models.form import version_key
from form_catalog.repository import FormRepository, SortOrder

T0 = datetime(2024, 1, 1, 12, 0)


def record(
    form_id: str,
    version: Optional[str] = None,
    name: Optional[str] = None,
    modified: datetime = T0,
    deleted: bool = False,
) -> dict:
    return {
        "form_id": form_id,
        "version": version,
        "display_name": name or form_id,
        "file_path": f"{form_id}_v{version}.xml" if version else f"{form_id}.xml",
        "checksum": f"{form_id}-{version}",
        "last_modified": modified,
        "deleted": deleted,
    }


@pytest.mark.asyncio
async def test_upsert_inserts(form_repository: FormRepository):
    created = await form_repository.upsert(record("household", "1"))

    assert created.id is not None
    found = await form_repository.get_by_key("household", "1")
    assert found is not None
    assert found.file_path == "household_v1.xml"
    assert found.deleted is False


@pytest.mark.asyncio
async def test_upsert_replaces_by_key(form_repository: FormRepository):
    first = await form_repository.upsert(record("household", "1"))
    second = await form_repository.upsert({**record("household", "1"), "checksum": "changed"})

    assert second.id == first.id
    all_records = await form_repository.find_all()
    assert len(all_records) == 1
    assert all_records[0].checksum == "changed"


@pytest.mark.asyncio
async def test_versions_of_one_form_coexist(form_repository: FormRepository):
    await form_repository.upsert(record("household", "1"))
    await form_repository.upsert(record("household", "2"))
    await form_repository.upsert(record("household"))

    versions = {r.version for r in await form_repository.find_by_form_id("household")}
    assert versions == {"1", "2", None}


@pytest.mark.asyncio
async def test_unversioned_key(form_repository: FormRepository):
    """Test that a NULL version is its own identity."""
    await form_repository.upsert(record("household"))
    await form_repository.upsert({**record("household"), "display_name": "Renamed"})

    records = await form_repository.find_by_form_id("household")
    assert len(records) == 1
    assert records[0].display_name == "Renamed"
    assert await form_repository.get_by_key("household", "1") is None


@pytest.mark.asyncio
async def test_get_by_file_path(form_repository: FormRepository):
    await form_repository.upsert(record("household", "1"))
    assert (await form_repository.get_by_file_path("household_v1.xml")).form_id == "household"
    assert await form_repository.get_by_file_path("nope.xml") is None


@pytest.mark.asyncio
async def test_mark_missing_keeps_record(form_repository: FormRepository):
    await form_repository.upsert(record("household", "1"))

    assert await form_repository.mark_missing("household", "1") is True
    assert await form_repository.mark_missing("other", "1") is False

    found = await form_repository.get_by_key("household", "1")
    assert found.deleted is True
    assert await form_repository.query() == []
    assert len(await form_repository.query(include_deleted=True)) == 1


@pytest.mark.asyncio
async def test_remove(form_repository: FormRepository):
    await form_repository.upsert(record("household", "1"))

    assert await form_repository.remove("household", "1") is True
    assert await form_repository.remove("household", "1") is False
    assert await form_repository.get_by_key("household", "1") is None


@pytest.mark.asyncio
async def test_query_filter_is_case_insensitive_substring(form_repository: FormRepository):
    await form_repository.upsert(record("a", "1", name="Household Survey"))
    await form_repository.upsert(record("b", "1", name="Water Point"))

    results = await form_repository.query("SURV")
    assert [r.form_id for r in results] == ["a"]
    assert len(await form_repository.query("")) == 2


@pytest.mark.asyncio
async def test_query_sort_orders(form_repository: FormRepository):
    await form_repository.upsert(record("a", "1", name="Bravo", modified=T0))
    await form_repository.upsert(record("b", "1", name="alpha", modified=T0 + timedelta(days=2)))
    await form_repository.upsert(record("c", "1", name="Charlie", modified=T0 + timedelta(days=1)))

    async def names(sort: SortOrder):
        return [r.display_name for r in await form_repository.query(sort=sort)]

    assert await names(SortOrder.NAME_ASC) == ["alpha", "Bravo", "Charlie"]
    assert await names(SortOrder.NAME_DESC) == ["Charlie", "Bravo", "alpha"]
    assert await names(SortOrder.DATE_ASC) == ["Bravo", "Charlie", "alpha"]
    assert await names(SortOrder.DATE_DESC) == ["alpha", "Charlie", "Bravo"]


@pytest.mark.asyncio
async def test_query_accepts_sort_value(form_repository: FormRepository):
    await form_repository.upsert(record("a", "1", name="A"))
    await form_repository.upsert(record("b", "1", name="B"))
    results = await form_repository.query(sort="name-desc")
    assert [r.display_name for r in results] == ["B", "A"]


@pytest.mark.asyncio
async def test_version_grouping(form_repository: FormRepository):
    """Test only the newest version of a form is shown when old versions are hidden."""
    await form_repository.upsert(record("x", "1", modified=T0))
    await form_repository.upsert(record("x", "2", modified=T0 + timedelta(hours=1)))

    latest = await form_repository.query("", SortOrder.DATE_DESC, hide_old_versions=True)
    assert [(r.form_id, r.version) for r in latest] == [("x", "2")]

    every = await form_repository.query("", SortOrder.DATE_DESC, hide_old_versions=False)
    assert [r.version for r in every] == ["2", "1"]


@pytest.mark.asyncio
async def test_version_grouping_uses_natural_version_order(form_repository: FormRepository):
    await form_repository.upsert(record("x", "9", modified=T0 + timedelta(days=1)))
    await form_repository.upsert(record("x", "10", modified=T0))

    latest = await form_repository.query(hide_old_versions=True)
    assert [r.version for r in latest] == ["10"]


@pytest.mark.asyncio
async def test_version_grouping_tie_break_on_date(form_repository: FormRepository):
    """Test equal version keys fall back to the latest modification."""
    await form_repository.upsert(record("x", "v1", modified=T0))
    await form_repository.upsert(record("x", "V1", modified=T0 + timedelta(minutes=5)))

    latest = await form_repository.query(hide_old_versions=True)
    assert [r.version for r in latest] == ["V1"]


@pytest.mark.asyncio
async def test_grouping_happens_before_filtering(form_repository: FormRepository):
    """Test an old version matching the filter does not stand in for a newer one."""
    await form_repository.upsert(record("x", "1", name="Legacy census"))
    await form_repository.upsert(record("x", "2", name="Population count"))

    assert await form_repository.query("census", hide_old_versions=True) == []
    assert [r.version for r in await form_repository.query("census")] == ["1"]


@pytest.mark.asyncio
async def test_deleted_versions_do_not_represent_a_form(form_repository: FormRepository):
    await form_repository.upsert(record("x", "1"))
    await form_repository.upsert(record("x", "2", deleted=True))

    latest = await form_repository.query(hide_old_versions=True)
    assert [r.version for r in latest] == ["1"]


def test_version_key_ordering():
    assert version_key(None) < version_key("1")
    assert version_key("2") < version_key("10")
    assert version_key("1.9") < version_key("1.10")
    assert version_key("2023123101") < version_key("2024010101")
    assert version_key("alpha") > version_key("1")
