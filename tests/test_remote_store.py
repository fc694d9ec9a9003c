import asyncio
import json

import pytest

from mediatorpro.errors import ObjectNotFoundError
from mediatorpro.models import AclPolicy, FileMetadata, ObjectPermission, Visibility
from mediatorpro.storage import RemoteFileStore


def read_body(response) -> bytes:
    async def collect():
        return b"".join([chunk async for chunk in response.body_iterator])

    return asyncio.run(collect())


def _save(store, data=b"0123456789", content_type="text/plain", owner="u1"):
    return store.save_file(data, FileMetadata(content_type=content_type, size=len(data)), owner)


def test_bucket_created_on_startup(fake_minio):
    RemoteFileStore(fake_minio, "fresh-bucket")
    assert "fresh-bucket" in fake_minio.buckets


def test_save_writes_blob_and_sidecar(remote_store, fake_minio):
    object_path = _save(remote_store)
    object_id = object_path.rsplit("/", 1)[1]

    blob, content_type = fake_minio.objects[("case-docs", f"documents/{object_id}")]
    assert blob == b"0123456789"
    assert content_type == "text/plain"

    sidecar, sidecar_type = fake_minio.objects[("case-docs", f".acl/{object_id}.json")]
    assert sidecar_type == "application/json"
    assert json.loads(sidecar)["owner"] == "u1"


def test_round_trip_download(remote_store):
    object_path = _save(remote_store, data=b"%PDF-1.4 remote", content_type="application/pdf")

    response = remote_store.download_file(object_path)

    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["cache-control"] == "private, max-age=3600"
    assert read_body(response) == b"%PDF-1.4 remote"


def test_access_rules_match_local_backend(remote_store):
    object_path = _save(remote_store)

    assert remote_store.can_access_file(object_path, "u1") is True
    assert remote_store.can_access_file(object_path, "u2") is False
    assert remote_store.can_access_file(object_path, None) is False

    remote_store.set_acl_policy(object_path, AclPolicy(allowed_users=["u2"]))
    assert remote_store.can_access_file(object_path, "u2") is True
    assert remote_store.can_access_file(object_path, "u3") is False

    remote_store.set_acl_policy(object_path, AclPolicy(visibility=Visibility.PUBLIC))
    assert remote_store.can_access_file(object_path, None) is True
    assert remote_store.can_access_file(object_path, "u2", ObjectPermission.WRITE) is False


def test_missing_sidecar_denies(remote_store):
    assert remote_store.can_access_file("/objects/unknown", "u1") is False


def test_download_missing_blob_raises(remote_store):
    with pytest.raises(ObjectNotFoundError):
        remote_store.download_file("/objects/unknown")


def test_presigned_upload_url(remote_store):
    url = remote_store.get_object_entity_upload_url()
    assert url.startswith("http://minio.local:9000/case-docs/documents/")
    assert "X-Amz-Expires=900" in url


def test_presigned_url_normalizes_to_object_path(remote_store):
    url = remote_store.get_object_entity_upload_url()
    object_id = url.split("?", 1)[0].rsplit("/", 1)[1]

    assert remote_store.normalize_object_path(url) == f"/objects/{object_id}"
    assert remote_store.normalize_object_path("https://example.com/objects/f1") == "/objects/f1"
    assert remote_store.normalize_object_path("gs://bucket/x") == "gs://bucket/x"


def test_register_presigned_upload(remote_store, fake_minio):
    url = remote_store.get_object_entity_upload_url()
    key = url.split("?", 1)[0].split("/case-docs/", 1)[1]
    fake_minio.objects[("case-docs", key)] = (b"uploaded directly", "application/msword")

    object_path = remote_store.try_set_acl_policy(url, AclPolicy(owner="u1", visibility=Visibility.PRIVATE))
    record = remote_store.get_metadata(object_path)

    assert record.owner == "u1"
    assert record.content_type == "application/msword"
    assert record.size == len(b"uploaded directly")
    assert remote_store.can_access_file(object_path, "u1") is True


def test_register_unknown_upload_raises(remote_store):
    url = remote_store.get_object_entity_upload_url()
    with pytest.raises(ObjectNotFoundError):
        remote_store.try_set_acl_policy(url, AclPolicy(owner="u1"))


def test_delete_and_second_delete(remote_store, fake_minio):
    object_path = _save(remote_store)

    remote_store.delete_file(object_path)
    assert fake_minio.objects == {}

    with pytest.raises(ObjectNotFoundError):
        remote_store.delete_file(object_path)


def test_malformed_sidecar_fails_closed(remote_store, fake_minio):
    object_path = _save(remote_store)
    object_id = object_path.rsplit("/", 1)[1]
    fake_minio.objects[("case-docs", f".acl/{object_id}.json")] = (b"[]", "application/json")

    assert remote_store.get_metadata(object_path) is None
    assert remote_store.can_access_file(object_path, "u1") is False


class BrokenResponse:
    def read(self):
        raise ConnectionResetError("connection dropped")

    def close(self):
        pass

    def release_conn(self):
        pass


def test_sidecar_read_failure_fails_closed(remote_store, fake_minio, monkeypatch, caplog):
    object_path = _save(remote_store)
    monkeypatch.setattr(fake_minio, "get_object", lambda bucket_name, object_name: BrokenResponse())

    with caplog.at_level("WARNING", logger="mediatorpro.storage"):
        assert remote_store.get_metadata(object_path) is None
    assert remote_store.can_access_file(object_path, "u1") is False
    assert "Could not read ACL sidecar" in caplog.text
