"""
Module proxy documents.

Pydantic models for the JSON documents served by the Go module proxy
and its index.  Field aliases match the proxy's capitalised keys.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Origin(BaseModel):
    """Provenance of a module version, as recorded by the proxy."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    vcs: str | None = Field(default=None, alias="VCS")
    url: str | None = Field(default=None, alias="URL")
    hash: str | None = Field(default=None, alias="Hash")


class ModuleInfo(BaseModel):
    """Response of the ``@latest`` and ``@v/<version>.info`` endpoints."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    version: str = Field(alias="Version")
    time: datetime | None = Field(default=None, alias="Time")
    origin: Origin | None = Field(default=None, alias="Origin")


class IndexEntry(BaseModel):
    """One record of the proxy index feed."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    path: str = Field(alias="Path")
    version: str = Field(alias="Version")
    timestamp: datetime = Field(alias="Timestamp")
