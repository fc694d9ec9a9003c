from __future__ import annotations

import logging
import mimetypes
import os
from pathlib import Path
from typing import Iterator, Optional, Union

from .. import paths
from ..models import ObjectRecord
from .base import CHUNK_SIZE, BlobInfo, FileStore

log = logging.getLogger("mediatorpro.storage")


class LocalFileStore(FileStore):
    """
    Self-hosted storage: blobs under ``<root>/documents``, staging under
    ``<root>/temp`` and one JSON sidecar per blob under ``<root>/.acl``.
    """

    def __init__(self, upload_dir: Union[str, os.PathLike] = "./uploads", upload_endpoint: str = "/api/documents/upload-local"):
        self.root = Path(upload_dir)
        self.documents_dir = self.root / "documents"
        self.temp_dir = self.root / "temp"
        self.acl_dir = self.root / ".acl"
        self.upload_endpoint = upload_endpoint
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        for directory in (self.documents_dir, self.temp_dir, self.acl_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def get_upload_path(self, original_file_name: Optional[str] = None) -> Path:
        return self.documents_dir / paths.new_object_id(original_file_name)

    def get_object_entity_upload_url(self) -> str:
        # Local uploads are posted as multipart to our own endpoint.
        return self.upload_endpoint

    def _blob_path(self, object_id: str) -> Path:
        return self.documents_dir / object_id

    def _acl_path(self, object_id: str) -> Path:
        return self.acl_dir / f"{object_id}.json"

    def _commit(self, object_id: str, data: bytes, record: ObjectRecord) -> None:
        staged = self.temp_dir / object_id
        staged.write_bytes(data)
        try:
            self._write_record(object_id, record)
        except OSError:
            staged.unlink(missing_ok=True)
            raise
        os.replace(staged, self._blob_path(object_id))

    def _stat_blob(self, object_id: str) -> Optional[BlobInfo]:
        try:
            stat = self._blob_path(object_id).stat()
        except FileNotFoundError:
            return None
        content_type, _ = mimetypes.guess_type(object_id)
        return BlobInfo(size=stat.st_size, content_type=content_type)

    def _open_blob(self, object_id: str) -> Iterator[bytes]:
        handle = self._blob_path(object_id).open("rb")

        def chunks() -> Iterator[bytes]:
            with handle:
                while True:
                    block = handle.read(CHUNK_SIZE)
                    if not block:
                        break
                    yield block

        return chunks()

    def _delete_blob(self, object_id: str) -> None:
        self._blob_path(object_id).unlink()

    def _read_record(self, object_id: str) -> Optional[bytes]:
        try:
            return self._acl_path(object_id).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            log.warning("Could not read ACL sidecar for %s: %s", object_id, exc)
            return None

    def _write_record(self, object_id: str, record: ObjectRecord) -> None:
        self._acl_path(object_id).write_text(record.to_json(), encoding="utf-8")

    def _delete_record(self, object_id: str) -> None:
        self._acl_path(object_id).unlink()
