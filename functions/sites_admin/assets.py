"""
Upload and delete site assets together with their index records.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Optional

from sites_admin.db import DbClient, ImageRecord
from sites_admin.reconcile import user_prefix
from sites_admin.storage import ObjectNotFound, StorageClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_CONTENT_TYPES = ("image/*",)

_UNSAFE_SEGMENT_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class InvalidUpload(ValueError):
    pass


def _content_type_allowed(content_type: str, allowed: tuple[str, ...]) -> bool:
    for pattern in allowed:
        if pattern.endswith("/*"):
            if content_type.startswith(pattern[:-1]):
                return True
        elif content_type == pattern:
            return True
    return False


def validate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    *,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    allowed_types: tuple[str, ...] = ALLOWED_CONTENT_TYPES,
) -> None:
    if not filename:
        raise InvalidUpload("No file selected")
    if size > max_bytes:
        raise InvalidUpload(
            f"File size should be less than {max_bytes / (1024 * 1024):g}MB"
        )
    if not content_type or not _content_type_allowed(content_type, allowed_types):
        raise InvalidUpload("Invalid file type")


def _safe_segment(value: str) -> str:
    cleaned = _UNSAFE_SEGMENT_CHARS.sub("-", value).strip("-.")
    if not cleaned:
        raise InvalidUpload(f"Invalid path segment: {value!r}")
    return cleaned


def asset_path(
    user_id: str,
    folder: str,
    filename: str,
    timestamp_ms: int,
    *,
    users_root: str = "users",
) -> str:
    """Storage path for an upload: ``<users_root>/<user>/<folder>/<ms>-<name>``."""
    folders = [_safe_segment(part) for part in folder.split("/") if part]
    if not folders:
        raise InvalidUpload("Upload folder is required")
    name = f"{timestamp_ms}-{_safe_segment(filename)}"
    return "/".join([user_prefix(user_id, users_root), *folders, name])


def upload_asset(
    storage: StorageClient,
    index: DbClient,
    user_id: str,
    folder: str,
    filename: str,
    data: bytes,
    content_type: Optional[str],
    *,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    users_root: str = "users",
) -> ImageRecord:
    """
    Store ``data`` for ``user_id`` and index it.

    The index record is written before the object so orphan cleanup never
    sees a finished upload without a record. If the object write fails the
    record is removed again and the error propagates.
    """
    validate_upload(filename, content_type, len(data), max_bytes=max_bytes)
    path = asset_path(
        user_id, folder, filename, int(time.time() * 1000), users_root=users_root
    )
    record = index.add_image_record(
        user_id,
        path,
        filename=path.rsplit("/", 1)[-1],
        content_type=content_type,
        size=len(data),
    )
    try:
        storage.upload_bytes(path, data, content_type)
    except Exception:
        logger.exception("Upload of %s failed, removing its index record", path)
        index.delete_image_record(user_id, path)
        raise
    logger.info("Uploaded %s (%d bytes)", path, len(data))
    return record


def delete_asset(
    storage: StorageClient,
    index: DbClient,
    user_id: str,
    path: str,
    *,
    users_root: str = "users",
) -> None:
    """Delete one of the user's objects and its index record.

    An object that is already gone is not an error; its record is still removed.
    """
    prefix = user_prefix(user_id, users_root)
    if not path.startswith(f"{prefix}/") or ".." in path.split("/"):
        raise InvalidUpload(f"Path {path!r} does not belong to user {user_id}")
    try:
        storage.delete(path)
    except ObjectNotFound:
        logger.warning("File already deleted or does not exist: %s", path)
    index.delete_image_record(user_id, path)
    logger.info("Deleted asset %s", path)
