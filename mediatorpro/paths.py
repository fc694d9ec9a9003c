from __future__ import annotations

import posixpath
import uuid
from typing import Optional
from urllib.parse import urlsplit

from .errors import ObjectNotFoundError

OBJECTS_PREFIX = "/objects/"


def new_object_id(original_file_name: Optional[str] = None) -> str:
    object_id = uuid.uuid4().hex
    if original_file_name:
        ext = posixpath.splitext(original_file_name.replace("\\", "/"))[1]
        object_id += ext.lower()
    return object_id


def logical_path(object_id: str) -> str:
    return f"{OBJECTS_PREFIX}{object_id}"


def is_safe_object_id(object_id: str) -> bool:
    if not object_id or object_id in (".", ".."):
        return False
    return "/" not in object_id and "\\" not in object_id and "\x00" not in object_id


def object_id_from_path(object_path: str) -> str:
    """Resolve ``/objects/<id>`` to ``<id>``; anything else is not found."""
    if not object_path.startswith(OBJECTS_PREFIX):
        raise ObjectNotFoundError(object_path)
    object_id = object_path[len(OBJECTS_PREFIX):]
    if not is_safe_object_id(object_id):
        raise ObjectNotFoundError(object_path)
    return object_id


def normalize_object_path(raw_path: str) -> str:
    """
    Map an external reference onto its canonical ``/objects/<id>`` form.

    Already-canonical paths lose any query string or fragment, full URLs whose
    path is ``/objects/<id>`` are reduced to that path. Anything else,
    including malformed URLs, comes back unchanged.
    """
    if raw_path.startswith(OBJECTS_PREFIX):
        return urlsplit(raw_path).path

    if raw_path.startswith(("http://", "https://")):
        try:
            pathname = urlsplit(raw_path).path
        except ValueError:
            return raw_path
        if pathname.startswith(OBJECTS_PREFIX):
            return pathname

    return raw_path
