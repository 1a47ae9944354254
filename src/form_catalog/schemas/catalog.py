"""Schemas for the remote catalog protocol.

These values are produced by the catalog client and consumed by the
synchronizer. They are never persisted.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


def normalize_version(value: object) -> Optional[str]:
    """Versions may arrive as integers or strings; blank means unversioned."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class Credentials(BaseModel):
    """Credentials for the remote catalog server."""

    username: str
    password: SecretStr = SecretStr("")
    scheme: Literal["basic", "digest"] = "basic"


class RemoteCatalogEntry(BaseModel):
    """One form advertised by the remote catalog."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    form_id: str = Field(alias="formID")
    version: Optional[str] = None
    display_name: str = Field(alias="name")
    download_url: str = Field(alias="downloadUrl")
    manifest_url: Optional[str] = Field(default=None, alias="manifestUrl")
    hash: Optional[str] = None

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v):
        return normalize_version(v)

    @field_validator("manifest_url", mode="before")
    @classmethod
    def blank_manifest(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def key(self) -> tuple[str, Optional[str]]:
        return self.form_id, self.version


class MediaFile(BaseModel):
    """A media file listed in a form's manifest."""

    filename: str
    hash: Optional[str] = None
    download_url: str = Field(alias="downloadUrl")

    model_config = ConfigDict(populate_by_name=True)
