"""
Storage usage accounting.

Walks a prefix-addressed storage tree and sums content bytes plus a fixed
metadata overhead per object and per folder. A node that cannot be read is
logged and skipped, so the report undercounts unreachable subtrees instead
of failing.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterator

from sites_admin.storage import (
    MetadataUnavailable,
    StorageClient,
    SubtreeUnavailable,
    normalize_prefix,
)

logger = logging.getLogger(__name__)

# Estimated billing overhead; keep these values as-is.
OBJECT_OVERHEAD_BYTES = 1024
FOLDER_OVERHEAD_BYTES = 500

QUOTA_MB = 5120
QUOTA_BYTES = 5 * 1024 * 1024 * 1024


@dataclass(frozen=True)
class UsageReport:
    total_bytes: int
    total_mb: float
    quota_mb: int
    percentage: float

    def as_dict(self) -> dict:
        return {
            "total_bytes": self.total_bytes,
            "total_mb": self.total_mb,
            "quota_mb": self.quota_mb,
            "percentage": self.percentage,
        }


@dataclass
class _FolderFrame:
    prefix: str
    pending: deque
    total: int = 0


@dataclass
class _WalkFrame:
    pending: deque = field(default_factory=deque)


def _leaf_bytes(storage: StorageClient, path: str) -> int:
    """Bytes charged for one object, or 0 when its metadata is unavailable."""
    try:
        metadata = storage.get_metadata(path)
    except MetadataUnavailable as exc:
        logger.warning("Skipping object %s: %s", path, exc.reason)
        return 0
    logger.debug("Object %s: %s bytes", path, metadata.size)
    return (metadata.size or 0) + OBJECT_OVERHEAD_BYTES


def _open_folder(storage: StorageClient, prefix: str) -> _FolderFrame:
    listing = storage.list_all(prefix)
    total = sum(_leaf_bytes(storage, path) for path in listing.items)
    return _FolderFrame(prefix=prefix, pending=deque(listing.prefixes), total=total)


def folder_size(storage: StorageClient, prefix: str) -> int:
    """
    Return the accounted size of everything under ``prefix``.

    Each sub-folder contributes its own total plus FOLDER_OVERHEAD_BYTES;
    sub-folders that cannot be listed contribute nothing. Raises
    SubtreeUnavailable only when ``prefix`` itself cannot be listed.
    """
    stack = [_open_folder(storage, normalize_prefix(prefix))]
    while True:
        frame = stack[-1]
        if frame.pending:
            child = frame.pending.popleft()
            logger.debug("Processing folder %s", child)
            try:
                stack.append(_open_folder(storage, child))
            except SubtreeUnavailable as exc:
                logger.warning("Skipping folder %s: %s", child, exc.reason)
            continue

        stack.pop()
        if not stack:
            return frame.total
        stack[-1].total += frame.total + FOLDER_OVERHEAD_BYTES


def iter_leaves(storage: StorageClient, prefix: str) -> Iterator[str]:
    """
    Yield every object path under ``prefix``, depth first.

    Sub-folders that cannot be listed are logged and skipped. Raises
    SubtreeUnavailable only when ``prefix`` itself cannot be listed.
    """
    root = storage.list_all(normalize_prefix(prefix))
    yield from root.items
    stack = [_WalkFrame(pending=deque(root.prefixes))]
    while stack:
        frame = stack[-1]
        if not frame.pending:
            stack.pop()
            continue
        child = frame.pending.popleft()
        try:
            listing = storage.list_all(child)
        except SubtreeUnavailable as exc:
            logger.warning("Skipping folder %s: %s", child, exc.reason)
            continue
        yield from listing.items
        stack.append(_WalkFrame(pending=deque(listing.prefixes)))


def build_usage_report(total_bytes: int) -> UsageReport:
    percentage = total_bytes / QUOTA_BYTES * 100
    return UsageReport(
        total_bytes=total_bytes,
        total_mb=round(total_bytes / (1024 * 1024), 2),
        quota_mb=QUOTA_MB,
        percentage=min(percentage, 100.0),
    )


def calculate_storage_usage(storage: StorageClient, prefix: str = "") -> UsageReport:
    """Walk ``prefix`` (the bucket root by default) and report usage against the quota."""
    logger.info("Starting storage calculation from %s", prefix or "<root>")
    total_bytes = folder_size(storage, prefix)
    report = build_usage_report(total_bytes)
    logger.info(
        "Storage usage for %s: %s bytes (%.2f MB, %.2f%%)",
        prefix or "<root>",
        report.total_bytes,
        report.total_mb,
        report.percentage,
    )
    return report
