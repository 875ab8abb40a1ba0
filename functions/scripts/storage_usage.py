"""
CLI helper to report storage usage for the whole bucket or one prefix.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sites_admin.config import get_settings
from sites_admin.dependencies import get_storage_client
from sites_admin.storage import SubtreeUnavailable
from sites_admin.usage import calculate_storage_usage

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Storage usage report")
    parser.add_argument(
        "-p",
        "--prefix",
        type=str,
        default="",
        help="Prefix to account (default: bucket root)",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    try:
        report = calculate_storage_usage(get_storage_client(), args.prefix)
    except SubtreeUnavailable as exc:
        logger.error("Failed to calculate storage usage: %s", exc)
        return 1
    print(json.dumps({"prefix": args.prefix, **report.as_dict()}, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
