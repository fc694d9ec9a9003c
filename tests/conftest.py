from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from minio.error import S3Error

from mediatorpro.main import app, get_file_store
from mediatorpro.storage import LocalFileStore, RemoteFileStore


class FakeNoSuchKey(S3Error):
    code = "NoSuchKey"

    def __init__(self, object_name: str):
        Exception.__init__(self, f"NoSuchKey: {object_name}")

    def __str__(self) -> str:
        return self.args[0]


class FakeResponse:
    def __init__(self, data: bytes):
        self._data = data
        self.closed = False
        self.released = False

    def read(self) -> bytes:
        return self._data

    def stream(self, amt: int):
        for start in range(0, len(self._data), amt):
            yield self._data[start:start + amt]

    def close(self) -> None:
        self.closed = True

    def release_conn(self) -> None:
        self.released = True


class FakeMinio:
    """In-memory stand-in for minio.Minio covering the calls the store makes."""

    def __init__(self):
        self.buckets = set()
        self.objects = {}

    def bucket_exists(self, bucket_name):
        return bucket_name in self.buckets

    def make_bucket(self, bucket_name):
        self.buckets.add(bucket_name)

    def put_object(self, bucket_name, object_name, data, length, content_type="application/octet-stream"):
        self.objects[(bucket_name, object_name)] = (data.read(length), content_type)

    def stat_object(self, bucket_name, object_name):
        if (bucket_name, object_name) not in self.objects:
            raise FakeNoSuchKey(object_name)
        data, content_type = self.objects[(bucket_name, object_name)]
        return SimpleNamespace(size=len(data), content_type=content_type)

    def get_object(self, bucket_name, object_name):
        if (bucket_name, object_name) not in self.objects:
            raise FakeNoSuchKey(object_name)
        return FakeResponse(self.objects[(bucket_name, object_name)][0])

    def remove_object(self, bucket_name, object_name):
        self.objects.pop((bucket_name, object_name), None)

    def presigned_put_object(self, bucket_name, object_name, expires):
        return (
            f"http://minio.local:9000/{bucket_name}/{object_name}"
            f"?X-Amz-Expires={int(expires.total_seconds())}&X-Amz-Signature=deadbeef"
        )


@pytest.fixture()
def local_store(tmp_path) -> LocalFileStore:
    return LocalFileStore(tmp_path / "uploads")


@pytest.fixture()
def fake_minio() -> FakeMinio:
    return FakeMinio()


@pytest.fixture()
def remote_store(fake_minio) -> RemoteFileStore:
    return RemoteFileStore(fake_minio, "case-docs")


@pytest.fixture()
def client(local_store):
    app.dependency_overrides[get_file_store] = lambda: local_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def remote_client(remote_store):
    app.dependency_overrides[get_file_store] = lambda: remote_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
