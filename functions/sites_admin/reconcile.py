"""
Orphaned asset cleanup.

An orphan is an object under a user's storage prefix that no index record
points at. Cleanup is a single mark-and-sweep pass with no grace period.
Storage is listed before the index is read, so a writer that creates the
index record before the object (see sites_admin.assets.upload_asset) is never
swept. An object written before its record still looks like an orphan. An
orphan that is already gone when the sweep reaches it is skipped.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

from sites_admin.db import DbClient
from sites_admin.storage import DeleteFailed, ObjectNotFound, StorageClient
from sites_admin.usage import iter_leaves

logger = logging.getLogger(__name__)


class DeletePolicy(str, enum.Enum):
    """What to do when deleting one orphan fails."""

    CONTINUE = "continue"
    ABORT = "abort"


@dataclass(frozen=True)
class OrphanReport:
    deleted_count: int
    deleted_paths: tuple[str, ...] = ()
    failed_paths: tuple[str, ...] = ()
    scanned_count: int = 0
    aborted: bool = False
    dry_run: bool = False

    def as_dict(self) -> dict:
        return {
            "deleted_count": self.deleted_count,
            "deleted_paths": list(self.deleted_paths),
            "failed_paths": list(self.failed_paths),
            "scanned_count": self.scanned_count,
            "aborted": self.aborted,
            "dry_run": self.dry_run,
        }


@dataclass
class _Sweep:
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    aborted: bool = False


def user_prefix(user_id: str, root: str = "users") -> str:
    if not user_id or "/" in user_id:
        raise ValueError(f"Invalid user id: {user_id!r}")
    root = root.strip("/")
    return f"{root}/{user_id}" if root else user_id


def referenced_paths(index: DbClient, user_id: str) -> set[str]:
    return {record.path for record in index.list_image_records(user_id) if record.path}


def find_orphans(
    storage: StorageClient,
    index: DbClient,
    user_id: str,
    *,
    users_root: str = "users",
) -> list[str]:
    """Return the stored paths under the user's prefix that no index record references."""
    leaves = list(iter_leaves(storage, user_prefix(user_id, users_root)))
    live = referenced_paths(index, user_id)
    return [path for path in leaves if path not in live]


def delete_orphans(
    storage: StorageClient,
    index: DbClient,
    user_id: str,
    *,
    policy: DeletePolicy = DeletePolicy.CONTINUE,
    dry_run: bool = False,
    users_root: str = "users",
) -> OrphanReport:
    """
    Delete every object under the user's prefix with no index record.

    With DeletePolicy.CONTINUE a failed delete is logged and the sweep moves
    on; with DeletePolicy.ABORT the sweep stops at the first failure. Either
    way the report only counts objects actually deleted. A dry run reports
    the candidates in ``deleted_paths`` and deletes nothing.
    """
    policy = DeletePolicy(policy)
    # Storage is listed before the index is read, so an upload that writes
    # its record first can never look orphaned.
    leaves = list(iter_leaves(storage, user_prefix(user_id, users_root)))
    live = referenced_paths(index, user_id)
    candidates = [path for path in leaves if path not in live]
    logger.info(
        "User %s: %d stored objects, %d referenced, %d orphaned",
        user_id,
        len(leaves),
        len(live),
        len(candidates),
    )

    if dry_run:
        return OrphanReport(
            deleted_count=0,
            deleted_paths=tuple(candidates),
            scanned_count=len(leaves),
            dry_run=True,
        )

    sweep = _Sweep()
    for path in candidates:
        try:
            storage.delete(path)
        except ObjectNotFound:
            logger.info("Orphan %s is already gone", path)
            continue
        except DeleteFailed as exc:
            sweep.failed.append(path)
            logger.warning("Failed to delete orphan %s: %s", path, exc.reason)
            if policy is DeletePolicy.ABORT:
                sweep.aborted = True
                break
            continue
        sweep.deleted.append(path)
        logger.debug("Deleted orphan %s", path)

    logger.info(
        "Deleted %d orphaned objects for user %s (%d failed%s)",
        len(sweep.deleted),
        user_id,
        len(sweep.failed),
        ", aborted" if sweep.aborted else "",
    )
    return OrphanReport(
        deleted_count=len(sweep.deleted),
        deleted_paths=tuple(sweep.deleted),
        failed_paths=tuple(sweep.failed),
        scanned_count=len(leaves),
        aborted=sweep.aborted,
    )
