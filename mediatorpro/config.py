from __future__ import annotations

from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=True)

    APP_NAME: str = "Mediator Pro Documents"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Which FileStore backs /objects/*
    STORAGE_BACKEND: Literal["local", "remote"] = "local"

    # Local disk storage
    UPLOAD_DIR: str = "./uploads"
    LOCAL_UPLOAD_ENDPOINT: str = "/api/documents/upload-local"

    # Serving and uploads
    DEFAULT_CACHE_TTL_SECONDS: int = 3600
    SIGNED_URL_TTL_SECONDS: int = 900
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024
    ALLOWED_UPLOAD_MIME_TYPES: List[str] = [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ]

    # Principal id injected by the login proxy
    USER_HEADER: str = "X-User-Id"

    # MinIO / S3 settings
    MINIO_ENDPOINT: str = "localhost:9000"
    MINIO_ACCESS_KEY: str = "minioadmin"
    MINIO_SECRET_KEY: str = "minioadmin"
    MINIO_BUCKET: str = "mediator-documents"
    MINIO_SECURE: bool = False
    MINIO_DOCUMENTS_PREFIX: str = "documents"
    MINIO_ACL_PREFIX: str = ".acl"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
