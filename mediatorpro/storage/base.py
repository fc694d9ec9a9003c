from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional

from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from .. import acl, paths
from ..errors import ObjectNotFoundError
from ..models import AclPolicy, FileMetadata, ObjectPermission, ObjectRecord, Visibility

log = logging.getLogger("mediatorpro.storage")

DEFAULT_CONTENT_TYPE = "application/octet-stream"
CHUNK_SIZE = 64 * 1024


@dataclass
class BlobInfo:
    size: int
    content_type: Optional[str] = None


class FileStore(ABC):
    """
    Blob storage with a JSON ACL sidecar per object.

    Subclasses only move bytes around; path handling, the sidecar format,
    access decisions and response building live here so both backends
    behave identically.
    """

    # ---- backend primitives ----
    @abstractmethod
    def get_upload_path(self, original_file_name: Optional[str] = None):
        raise NotImplementedError

    @abstractmethod
    def get_object_entity_upload_url(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def _commit(self, object_id: str, data: bytes, record: ObjectRecord) -> None:
        """Persist blob and sidecar so that a crash never leaves a blob without metadata."""
        raise NotImplementedError

    @abstractmethod
    def _stat_blob(self, object_id: str) -> Optional[BlobInfo]:
        raise NotImplementedError

    @abstractmethod
    def _open_blob(self, object_id: str) -> Iterator[bytes]:
        """Open the blob eagerly and return an iterator over its chunks."""
        raise NotImplementedError

    @abstractmethod
    def _delete_blob(self, object_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def _read_record(self, object_id: str) -> Optional[bytes]:
        raise NotImplementedError

    @abstractmethod
    def _write_record(self, object_id: str, record: ObjectRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def _delete_record(self, object_id: str) -> None:
        raise NotImplementedError

    # ---- paths ----
    def normalize_object_path(self, raw_path: str) -> str:
        return paths.normalize_object_path(raw_path)

    def file_exists(self, object_path: str) -> bool:
        try:
            object_id = paths.object_id_from_path(object_path)
        except ObjectNotFoundError:
            return False
        return self._stat_blob(object_id) is not None

    # ---- save ----
    def save_file(
        self,
        data: bytes,
        metadata: FileMetadata,
        owner_id: Optional[str] = None,
        original_file_name: Optional[str] = None,
    ) -> str:
        object_id = paths.new_object_id(original_file_name)
        record = ObjectRecord(
            content_type=metadata.content_type,
            size=metadata.size,
            uploaded_at=metadata.uploaded_at,
            visibility=Visibility.PRIVATE,
            owner=owner_id,
            allowed_users=[owner_id] if owner_id else [],
        )
        self._commit(object_id, data, record)
        object_path = paths.logical_path(object_id)
        log.info("Saved %s (%d bytes, owner=%s)", object_path, len(data), owner_id)
        return object_path

    # ---- metadata / ACL ----
    def get_metadata(self, object_path: str) -> Optional[ObjectRecord]:
        """Return the sidecar, or None when it is missing or unreadable."""
        try:
            object_id = paths.object_id_from_path(object_path)
        except ObjectNotFoundError:
            return None
        raw = self._read_record(object_id)
        if raw is None:
            return None
        try:
            return ObjectRecord.model_validate_json(raw)
        except ValidationError as exc:
            log.warning("Ignoring malformed ACL sidecar for %s: %s", object_path, exc)
            return None

    def set_acl_policy(self, object_path: str, policy: AclPolicy, create: bool = False) -> ObjectRecord:
        """
        Merge ``policy`` over the stored sidecar.

        Without a sidecar, an existing blob gets a default private record
        built from its stat; with neither, the object is not found unless
        ``create`` asks for a record to be provisioned ahead of the upload.
        """
        object_id = paths.object_id_from_path(object_path)
        existing = self.get_metadata(object_path)
        if existing is None:
            info = self._stat_blob(object_id)
            if info is not None:
                existing = ObjectRecord(content_type=info.content_type or DEFAULT_CONTENT_TYPE, size=info.size)
            elif create:
                existing = ObjectRecord()
            else:
                raise ObjectNotFoundError(object_path)

        update = policy.model_dump(exclude_unset=True, exclude_none=True)
        if existing.owner is not None and "owner" in update:
            if update["owner"] != existing.owner:
                log.warning("Refusing to change owner of %s from %s", object_path, existing.owner)
            del update["owner"]

        updated = existing.model_copy(update=update)
        self._write_record(object_id, updated)
        return updated

    def try_set_acl_policy(self, raw_path: str, policy: AclPolicy) -> str:
        object_path = self.normalize_object_path(raw_path)
        if not object_path.startswith(paths.OBJECTS_PREFIX):
            return object_path
        self.set_acl_policy(object_path, policy)
        return object_path

    def can_access_file(
        self,
        object_path: str,
        user_id: Optional[str] = None,
        permission: ObjectPermission = ObjectPermission.READ,
    ) -> bool:
        return acl.is_allowed(self.get_metadata(object_path), user_id, permission)

    # ---- download ----
    def download_file(self, object_path: str, cache_ttl_sec: int = 3600) -> StreamingResponse:
        object_id = paths.object_id_from_path(object_path)
        info = self._stat_blob(object_id)
        if info is None:
            raise ObjectNotFoundError(object_path)

        record = self.get_metadata(object_path)
        content_type = record.content_type if record else DEFAULT_CONTENT_TYPE
        is_public = record is not None and record.visibility == Visibility.PUBLIC

        chunks = self._open_blob(object_id)
        headers = {
            "Content-Type": content_type,
            "Content-Length": str(info.size),
            "Cache-Control": f"{'public' if is_public else 'private'}, max-age={cache_ttl_sec}",
        }
        return StreamingResponse(
            self._stream(object_path, chunks),
            headers=headers,
        )

    def _stream(self, object_path: str, chunks: Iterator[bytes]) -> Iterator[bytes]:
        # Headers are already on the wire by the time this runs.
        try:
            yield from chunks
        except Exception:
            log.exception("Error streaming %s after response started", object_path)

    # ---- delete ----
    def delete_file(self, object_path: str) -> None:
        object_id = paths.object_id_from_path(object_path)
        if self._stat_blob(object_id) is None:
            raise ObjectNotFoundError(object_path)
        self._delete_blob(object_id)
        try:
            self._delete_record(object_id)
        except Exception as exc:
            log.warning("Could not remove ACL sidecar for %s: %s", object_path, exc)
        log.info("Deleted %s", object_path)
