"""Tests for file utilities."""

from pathlib import Path

import pytest

from form_catalog.utils import sanitize_name
from form_catalog.utils.file_utils import (
    FileWriteError,
    compute_checksum,
    ensure_directory,
    temp_path_for,
    write_file_atomic,
)


def test_compute_checksum():
    """Test checksum is a stable sha256 digest."""
    checksum = compute_checksum(b"<form/>")
    assert checksum == compute_checksum(b"<form/>")
    assert checksum != compute_checksum(b"<form />")
    assert len(checksum) == 64


def test_write_file_atomic(tmp_path: Path):
    """Test atomic write leaves only the target behind."""
    target = tmp_path / "survey.xml"
    write_file_atomic(target, b"content")

    assert target.read_bytes() == b"content"
    assert not temp_path_for(target).exists()
    assert [p.name for p in tmp_path.iterdir()] == ["survey.xml"]


def test_write_file_atomic_replaces_existing(tmp_path: Path):
    target = tmp_path / "survey.xml"
    target.write_bytes(b"old")
    write_file_atomic(target, b"new")
    assert target.read_bytes() == b"new"


def test_write_file_atomic_missing_directory(tmp_path: Path):
    """Test writing into a missing directory fails cleanly."""
    with pytest.raises(FileWriteError):
        write_file_atomic(tmp_path / "missing" / "survey.xml", b"content")


def test_temp_path_is_hidden_and_not_a_form(tmp_path: Path):
    temp = temp_path_for(tmp_path / "survey.xml")
    assert temp.name.startswith(".")
    assert not temp.name.endswith(".xml")


def test_ensure_directory(tmp_path: Path):
    path = tmp_path / "a" / "b"
    ensure_directory(path)
    ensure_directory(path)
    assert path.is_dir()


@pytest.mark.parametrize(
    "name,expected",
    [
        ("household_survey", "household_survey"),
        ("Household Survey", "Household_Survey"),
        ("café/v2", "cafe_v2"),
        ("../etc", "etc"),
        ("???", "form"),
    ],
)
def test_sanitize_name(name, expected):
    assert sanitize_name(name) == expected
