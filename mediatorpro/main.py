from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, Response, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config, paths
from .errors import ObjectNotFoundError
from .models import (
    AclPolicy,
    AclUpdateRequest,
    FileMetadata,
    ObjectPathResponse,
    ObjectPermission,
    StoredDocument,
    UploadURLResponse,
)
from .storage import FileStore, build_file_store


# ---- App Setup ----
settings = config.get_settings()

app = FastAPI(title=settings.APP_NAME, version=settings.VERSION)
log = logging.getLogger("mediatorpro")
logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---- DI Setup ----
def get_settings() -> config.Settings:
    return config.get_settings()


@lru_cache()
def get_file_store() -> FileStore:
    return build_file_store(get_settings())


def get_current_user(request: Request) -> str:
    user_id = request.headers.get(get_settings().USER_HEADER)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id


# ---- API Endpoints ----
@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "service": settings.APP_NAME, "backend": get_settings().STORAGE_BACKEND}


@app.get("/objects/{object_path:path}")
def download_object(
    object_path: str,
    user_id: str = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
):
    logical = paths.logical_path(object_path)
    if not store.can_access_file(logical, user_id, ObjectPermission.READ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return store.download_file(logical, get_settings().DEFAULT_CACHE_TTL_SECONDS)


@app.delete("/objects/{object_path:path}", status_code=status.HTTP_204_NO_CONTENT)
def delete_object(
    object_path: str,
    user_id: str = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
) -> Response:
    logical = paths.logical_path(object_path)
    if not store.can_access_file(logical, user_id, ObjectPermission.WRITE):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    store.delete_file(logical)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/api/objects/upload", response_model=UploadURLResponse)
def request_upload_url(
    user_id: str = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
) -> UploadURLResponse:
    upload_url = store.get_object_entity_upload_url()
    log.info("Issued upload target for user %s", user_id)
    return UploadURLResponse(upload_url=upload_url)


@app.post("/api/documents/upload-local", response_model=StoredDocument)
def upload_local(
    document: Optional[UploadFile] = File(default=None),
    user_id: str = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
) -> StoredDocument:
    if document is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

    current = get_settings()
    content_type = document.content_type or "application/octet-stream"
    if content_type not in current.ALLOWED_UPLOAD_MIME_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unsupported file type: {content_type}")

    content = document.file.read(current.MAX_UPLOAD_BYTES + 1)
    if len(content) > current.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large")

    object_path = store.save_file(
        content,
        FileMetadata(content_type=content_type, size=len(content)),
        owner_id=user_id,
        original_file_name=document.filename,
    )
    return StoredDocument(object_path=object_path, content_type=content_type, size=len(content))


@app.put("/api/objects/acl", response_model=ObjectPathResponse)
def update_acl(
    body: AclUpdateRequest,
    user_id: str = Depends(get_current_user),
    store: FileStore = Depends(get_file_store),
) -> ObjectPathResponse:
    object_path = store.normalize_object_path(body.object_url)
    if not object_path.startswith(paths.OBJECTS_PREFIX):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Not an object URL")

    update = body.model_dump(exclude_unset=True, exclude={"object_url"})
    record = store.get_metadata(object_path)
    if record is None:
        # Fresh presigned upload: the caller registering it becomes the owner.
        if not store.file_exists(object_path):
            raise ObjectNotFoundError(object_path)
        update["owner"] = user_id
    elif not store.can_access_file(object_path, user_id, ObjectPermission.WRITE):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    object_path = store.try_set_acl_policy(object_path, AclPolicy(**update))
    return ObjectPathResponse(object_path=object_path)


@app.exception_handler(ObjectNotFoundError)
async def object_not_found_handler(request, exc):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "Object not found"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc):
    log.error("Unhandled error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
