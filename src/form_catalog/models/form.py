"""Form index models."""

import re
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from form_catalog.models.base import Base


def version_key(version: Optional[str]) -> tuple:
    """Natural ordering key for form versions.

    Unversioned forms sort lowest; digit runs compare numerically so that
    "10" is newer than "9" and "2024010102" is newer than "2023123101".

    Examples:
        >>> version_key("10") > version_key("9")
        True
        >>> version_key("1.2") < version_key("1.10")
        True
    """
    if version is None:
        return (0,)
    parts = []
    for chunk in re.split(r"(\d+)", version):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk), ""))
        else:
            parts.append((1, 0, chunk.lower()))
    return (1, tuple(parts))


class FormRecord(Base):
    """
    One indexed version of one form definition.

    Each record:
    - Is identified by (form_id, version) as declared by the form author
    - Maps to a single artifact file relative to the forms directory
    - Keeps a checksum of the artifact bytes for change detection
    - Stays in the index flagged as deleted when its artifact disappears
    """

    __tablename__ = "form"
    __table_args__ = (
        UniqueConstraint("form_id", "version", name="uix_form_id_version"),
        Index("ix_form_form_id", "form_id"),
        Index("ix_form_display_name", "display_name"),
        Index("ix_form_last_modified", "last_modified"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    form_id: Mapped[str] = mapped_column(String)
    version: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    display_name: Mapped[str] = mapped_column(String)

    # path relative to the forms directory
    file_path: Mapped[str] = mapped_column(String, unique=True, index=True)
    checksum: Mapped[str] = mapped_column(String)
    last_modified: Mapped[datetime] = mapped_column(DateTime)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)

    # remembered from the remote catalog, if the form came from there
    download_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    manifest_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=text("CURRENT_TIMESTAMP"))

    @property
    def key(self) -> tuple[str, Optional[str]]:
        return self.form_id, self.version

    @property
    def version_key(self) -> tuple:
        return version_key(self.version)

    def __repr__(self) -> str:
        return (
            f"FormRecord(id={self.id}, form_id='{self.form_id}', version={self.version!r}, "
            f"file_path='{self.file_path}', deleted={self.deleted})"
        )
