from __future__ import annotations

import logging
from datetime import timedelta
from io import BytesIO
from typing import Iterator, Optional
from urllib.parse import urlsplit

from minio import Minio
from minio.error import S3Error

from .. import paths
from ..models import ObjectRecord
from .base import CHUNK_SIZE, BlobInfo, FileStore

log = logging.getLogger("mediatorpro.storage")

MISSING_CODES = frozenset({"NoSuchKey", "NoSuchObject", "NotFound", "ResourceNotFound"})


def _is_missing(exc: S3Error) -> bool:
    return getattr(exc, "code", None) in MISSING_CODES


class RemoteFileStore(FileStore):
    """
    S3-compatible storage through the MinIO client. Blobs live under
    ``<documents_prefix>/<id>``, sidecars under ``<acl_prefix>/<id>.json``
    in the same bucket.
    """

    def __init__(
        self,
        client: Minio,
        bucket_name: str,
        documents_prefix: str = "documents",
        acl_prefix: str = ".acl",
        signed_url_ttl_sec: int = 900,
    ):
        self.client = client
        self.bucket_name = bucket_name
        self.documents_prefix = documents_prefix.strip("/")
        self.acl_prefix = acl_prefix.strip("/")
        self.signed_url_ttl_sec = signed_url_ttl_sec
        self._ensure_bucket()

    @classmethod
    def from_settings(cls, settings) -> "RemoteFileStore":
        client = Minio(
            endpoint=settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
        )
        return cls(
            client,
            settings.MINIO_BUCKET,
            documents_prefix=settings.MINIO_DOCUMENTS_PREFIX,
            acl_prefix=settings.MINIO_ACL_PREFIX,
            signed_url_ttl_sec=settings.SIGNED_URL_TTL_SECONDS,
        )

    def _ensure_bucket(self) -> None:
        if not self.client.bucket_exists(bucket_name=self.bucket_name):
            self.client.make_bucket(bucket_name=self.bucket_name)

    def _blob_key(self, object_id: str) -> str:
        return f"{self.documents_prefix}/{object_id}"

    def _acl_key(self, object_id: str) -> str:
        return f"{self.acl_prefix}/{object_id}.json"

    def get_upload_path(self, original_file_name: Optional[str] = None) -> str:
        return self._blob_key(paths.new_object_id(original_file_name))

    def get_object_entity_upload_url(self) -> str:
        return self.client.presigned_put_object(
            bucket_name=self.bucket_name,
            object_name=self.get_upload_path(),
            expires=timedelta(seconds=self.signed_url_ttl_sec),
        )

    def normalize_object_path(self, raw_path: str) -> str:
        # Presigned URLs point at /<bucket>/<documents_prefix>/<id>
        if raw_path.startswith(("http://", "https://")):
            try:
                pathname = urlsplit(raw_path).path
            except ValueError:
                return raw_path
            bucket_prefix = f"/{self.bucket_name}/{self.documents_prefix}/"
            if pathname.startswith(bucket_prefix):
                return paths.logical_path(pathname[len(bucket_prefix):])
        return super().normalize_object_path(raw_path)

    def _put(self, key: str, data: bytes, content_type: str) -> None:
        self.client.put_object(
            bucket_name=self.bucket_name,
            object_name=key,
            data=BytesIO(data),
            length=len(data),
            content_type=content_type,
        )

    def _commit(self, object_id: str, data: bytes, record: ObjectRecord) -> None:
        # Sidecar first: a failed blob upload leaves metadata that downloads as 404.
        self._write_record(object_id, record)
        self._put(self._blob_key(object_id), data, record.content_type)

    def _stat_blob(self, object_id: str) -> Optional[BlobInfo]:
        try:
            stat = self.client.stat_object(bucket_name=self.bucket_name, object_name=self._blob_key(object_id))
        except S3Error as exc:
            if _is_missing(exc):
                return None
            raise
        return BlobInfo(size=stat.size, content_type=stat.content_type)

    def _open_blob(self, object_id: str) -> Iterator[bytes]:
        response = self.client.get_object(bucket_name=self.bucket_name, object_name=self._blob_key(object_id))

        def chunks() -> Iterator[bytes]:
            try:
                yield from response.stream(CHUNK_SIZE)
            finally:
                response.close()
                response.release_conn()

        return chunks()

    def _delete_blob(self, object_id: str) -> None:
        self.client.remove_object(bucket_name=self.bucket_name, object_name=self._blob_key(object_id))

    def _read_record(self, object_id: str) -> Optional[bytes]:
        try:
            response = self.client.get_object(bucket_name=self.bucket_name, object_name=self._acl_key(object_id))
        except S3Error as exc:
            if not _is_missing(exc):
                log.warning("Could not read ACL sidecar for %s: %s", object_id, exc)
            return None
        try:
            return response.read()
        except Exception as exc:
            log.warning("Could not read ACL sidecar for %s: %s", object_id, exc)
            return None
        finally:
            response.close()
            response.release_conn()

    def _write_record(self, object_id: str, record: ObjectRecord) -> None:
        self._put(self._acl_key(object_id), record.to_json().encode("utf-8"), "application/json")

    def _delete_record(self, object_id: str) -> None:
        self.client.remove_object(bucket_name=self.bucket_name, object_name=self._acl_key(object_id))
