"""
Delete a user's stored objects that no index record references.

Usage:
  python scripts/cleanup_orphans.py <user_id> [--dry-run] [--policy continue|abort]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sites_admin.config import get_settings
from sites_admin.dependencies import get_db_client, get_storage_client
from sites_admin.reconcile import DeletePolicy, delete_orphans
from sites_admin.storage import SubtreeUnavailable

logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Orphaned asset cleanup")
    parser.add_argument("user_id", help="User whose storage prefix is swept")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List orphans without deleting them",
    )
    parser.add_argument(
        "--policy",
        choices=[policy.value for policy in DeletePolicy],
        default=settings.orphan_delete_policy,
        help="Continue past failed deletes or stop at the first one",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level.upper())
    try:
        report = delete_orphans(
            get_storage_client(),
            get_db_client(),
            args.user_id,
            policy=DeletePolicy(args.policy),
            dry_run=args.dry_run,
            users_root=settings.users_root,
        )
    except (SubtreeUnavailable, ValueError) as exc:
        logger.error("Failed to delete orphaned images: %s", exc)
        return 1

    if report.dry_run:
        for path in report.deleted_paths[:200]:
            print("would delete:", path)
        if len(report.deleted_paths) > 200:
            print("... and", len(report.deleted_paths) - 200, "more")
        return 0

    for path in report.failed_paths:
        print("failed:", path)
    print(f"Scanned={report.scanned_count} deleted={report.deleted_count}")
    return 1 if report.failed_paths else 0


if __name__ == "__main__":
    sys.exit(main())
