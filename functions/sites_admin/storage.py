"""
Storage abstraction for S3-compatible object storage and in-memory testing.

Objects are addressed by slash-separated paths. A listing returns the
immediate children of a prefix: objects directly under it ("items") and the
virtual folders below it ("prefixes"), both as full paths without the
trailing delimiter. Keys may contain empty segments (``a//b``), so a prefix
returned by a listing is passed back to ``list_all`` unchanged; only a
caller-supplied root goes through ``normalize_prefix``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError


class StorageError(Exception):
    """Base class for failures on a single storage node."""

    def __init__(self, path: str, reason: object = None):
        self.path = path
        self.reason = reason
        message = path if reason is None else f"{path}: {reason}"
        super().__init__(message)


class MetadataUnavailable(StorageError):
    """One object's metadata could not be read."""


class SubtreeUnavailable(StorageError):
    """One prefix could not be listed."""


class DeleteFailed(StorageError):
    """One object could not be removed."""


class ObjectNotFound(DeleteFailed):
    """The object to remove does not exist."""


@dataclass(frozen=True)
class ListResult:
    items: list[str]
    prefixes: list[str]


@dataclass(frozen=True)
class ObjectMetadata:
    path: str
    size: Optional[int]
    content_type: Optional[str] = None


DELIMITER = "/"


def normalize_prefix(prefix: str | None) -> str:
    return (prefix or "").strip("/")


class StorageClient(Protocol):
    """Defines the operations the admin backend needs from object storage."""

    def list_all(self, prefix: str) -> ListResult:
        ...

    def get_metadata(self, path: str) -> ObjectMetadata:
        ...

    def delete(self, path: str) -> None:
        ...

    def upload_bytes(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions.

    Paths listed in the ``unreadable_paths``, ``unlistable_prefixes`` and
    ``undeletable_paths`` sets fail the matching operation, which lets tests
    simulate permission errors on single nodes.
    """

    stored_objects: dict = None
    content_types: dict = None
    unreadable_paths: set = field(default_factory=set)
    unlistable_prefixes: set = field(default_factory=set)
    undeletable_paths: set = field(default_factory=set)

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}
        if self.content_types is None:
            self.content_types = {}

    def list_all(self, prefix: str) -> ListResult:
        if prefix in self.unlistable_prefixes:
            raise SubtreeUnavailable(prefix, "permission denied")

        items: set[str] = set()
        prefixes: set[str] = set()
        base = f"{prefix}{DELIMITER}" if prefix else ""
        for path in self.stored_objects:
            if not path.startswith(base):
                continue
            head, sep, _ = path[len(base):].partition(DELIMITER)
            if sep:
                prefixes.add(base + head)
            else:
                items.add(path)
        return ListResult(items=sorted(items), prefixes=sorted(prefixes))

    def get_metadata(self, path: str) -> ObjectMetadata:
        if path in self.unreadable_paths:
            raise MetadataUnavailable(path, "permission denied")
        stored = self.stored_objects.get(path)
        if stored is None:
            raise MetadataUnavailable(path, "object not found")
        return ObjectMetadata(
            path=path, size=len(stored), content_type=self.content_types.get(path)
        )

    def delete(self, path: str) -> None:
        if path in self.undeletable_paths:
            raise DeleteFailed(path, "permission denied")
        if path not in self.stored_objects:
            raise ObjectNotFound(path, "object not found")
        del self.stored_objects[path]
        self.content_types.pop(path, None)

    def upload_bytes(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        self.stored_objects[path] = bytes(data)
        if content_type:
            self.content_types[path] = content_type

    def reset(self) -> None:
        """Clear all stored objects and injected failures (useful in tests)."""
        self.stored_objects.clear()
        self.content_types.clear()
        self.unreadable_paths.clear()
        self.unlistable_prefixes.clear()
        self.undeletable_paths.clear()


@dataclass
class S3StorageClient:
    """
    Storage client for any S3-compatible endpoint.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def list_all(self, prefix: str) -> ListResult:
        search = f"{prefix}{DELIMITER}" if prefix else ""
        items: list[str] = []
        prefixes: list[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(
                Bucket=self.bucket, Prefix=search, Delimiter=DELIMITER
            ):
                for entry in page.get("Contents", []):
                    # Skip zero-byte folder markers created by some consoles.
                    if entry["Key"] != search:
                        items.append(entry["Key"])
                for common in page.get("CommonPrefixes", []):
                    prefixes.append(common["Prefix"][: -len(DELIMITER)])
        except (BotoCoreError, ClientError) as exc:
            raise SubtreeUnavailable(prefix, exc) from exc
        return ListResult(items=items, prefixes=prefixes)

    def get_metadata(self, path: str) -> ObjectMetadata:
        try:
            response = self._client.head_object(Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as exc:
            raise MetadataUnavailable(path, exc) from exc
        return ObjectMetadata(
            path=path,
            size=response.get("ContentLength"),
            content_type=response.get("ContentType"),
        )

    def delete(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=path)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey"):
                raise ObjectNotFound(path, exc) from exc
            raise DeleteFailed(path, exc) from exc
        except BotoCoreError as exc:
            raise DeleteFailed(path, exc) from exc

    def upload_bytes(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type or "application/octet-stream",
            CacheControl="public, max-age=31536000",
        )
