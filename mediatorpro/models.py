from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Visibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class ObjectPermission(str, Enum):
    READ = "read"
    WRITE = "write"


class FileMetadata(BaseModel):
    """Descriptive metadata supplied by the uploader."""

    model_config = ConfigDict(populate_by_name=True)

    content_type: str = Field("application/octet-stream", alias="contentType")
    size: int = Field(0, ge=0)
    uploaded_at: datetime = Field(default_factory=_utcnow, alias="uploadedAt")


class ObjectRecord(FileMetadata):
    """
    The ACL sidecar stored next to every blob: descriptive metadata plus
    ownership and visibility.
    """

    visibility: Visibility = Visibility.PRIVATE
    owner: Optional[str] = None
    allowed_users: List[str] = Field(default_factory=list, alias="allowedUsers")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class AclPolicy(BaseModel):
    """Partial ACL update; only fields that were explicitly set are merged."""

    model_config = ConfigDict(populate_by_name=True)

    visibility: Optional[Visibility] = None
    allowed_users: Optional[List[str]] = Field(None, alias="allowedUsers")
    owner: Optional[str] = None


# ---- HTTP payloads ----
class UploadURLResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    upload_url: str = Field(alias="uploadURL")


class AclUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    object_url: str = Field(alias="objectURL", min_length=1)
    visibility: Optional[Visibility] = None
    allowed_users: Optional[List[str]] = Field(None, alias="allowedUsers")


class ObjectPathResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    object_path: str = Field(alias="objectPath")


class StoredDocument(ObjectPathResponse):
    content_type: str = Field(alias="contentType")
    size: int
