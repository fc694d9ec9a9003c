from __future__ import annotations

from ..config import Settings
from .base import FileStore
from .local import LocalFileStore
from .remote import RemoteFileStore


def build_file_store(settings: Settings) -> FileStore:
    """Pick the backend once at startup; callers only see FileStore."""
    if settings.STORAGE_BACKEND == "remote":
        return RemoteFileStore.from_settings(settings)
    return LocalFileStore(settings.UPLOAD_DIR, upload_endpoint=settings.LOCAL_UPLOAD_ENDPOINT)


__all__ = ["FileStore", "LocalFileStore", "RemoteFileStore", "build_file_store"]
