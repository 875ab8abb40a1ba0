import unittest
from unittest.mock import patch

from sites_admin.storage import InMemoryStorageClient, ObjectMetadata, SubtreeUnavailable
from sites_admin.usage import (
    QUOTA_BYTES,
    build_usage_report,
    calculate_storage_usage,
    folder_size,
    iter_leaves,
)


class FolderSizeTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient()

    def test_single_object_adds_object_overhead(self):
        self.storage.upload_bytes("leafA", b"x" * 1000)
        self.assertEqual(folder_size(self.storage, ""), 2024)

    def test_folder_adds_folder_overhead(self):
        self.storage.upload_bytes("folder1/leafA", b"x" * 1000)
        self.assertEqual(folder_size(self.storage, ""), 2524)

    def test_unreadable_object_contributes_nothing(self):
        self.storage.upload_bytes("leafA", b"x" * 1000)
        self.storage.unreadable_paths.add("leafA")
        with self.assertLogs("sites_admin.usage", level="WARNING"):
            self.assertEqual(folder_size(self.storage, ""), 0)

    def test_unlistable_folder_skipped_without_overhead(self):
        self.storage.upload_bytes("top.png", b"x" * 10)
        self.storage.upload_bytes("ok/a.png", b"x" * 20)
        self.storage.upload_bytes("locked/b.png", b"x" * 30)
        self.storage.unlistable_prefixes.add("locked")
        expected = (10 + 1024) + (20 + 1024 + 500)
        self.assertEqual(folder_size(self.storage, ""), expected)

    def test_nested_failure_keeps_parent_overhead(self):
        self.storage.upload_bytes("a/b/c.png", b"x" * 100)
        self.storage.upload_bytes("a/d.png", b"x" * 50)
        self.storage.unlistable_prefixes.add("a/b")
        self.assertEqual(folder_size(self.storage, ""), (50 + 1024) + 500)

    def test_sums_every_level(self):
        self.storage.upload_bytes("users/u1/logos/1-a.png", b"x" * 1000)
        self.storage.upload_bytes("users/u1/team/2-b.png", b"x" * 2000)
        self.storage.upload_bytes("users/u2/3-c.png", b"x" * 3000)
        logos = (1000 + 1024) + 500
        team = (2000 + 1024) + 500
        u1 = logos + team + 500
        u2 = (3000 + 1024) + 500
        users = u1 + u2 + 500
        self.assertEqual(folder_size(self.storage, ""), users)
        self.assertEqual(folder_size(self.storage, "users/u1"), logos + team)

    def test_missing_size_counts_overhead_only(self):
        self.storage.upload_bytes("a.png", b"")
        with patch.object(
            self.storage,
            "get_metadata",
            return_value=ObjectMetadata(path="a.png", size=None),
        ):
            self.assertEqual(folder_size(self.storage, ""), 1024)

    def test_root_listing_failure_raises(self):
        self.storage.unlistable_prefixes.add("users")
        with self.assertRaises(SubtreeUnavailable):
            folder_size(self.storage, "users")

    def test_deep_tree_does_not_recurse(self):
        depth = 3000
        path = "/".join(f"d{i}" for i in range(depth)) + "/leaf"
        self.storage.upload_bytes(path, b"x")
        self.assertEqual(folder_size(self.storage, ""), 1 + 1024 + 500 * depth)

    def test_wide_folder_counts_every_sibling(self):
        width = 500
        for i in range(width):
            self.storage.upload_bytes(f"wide/f{i:04d}/leaf", b"x")
        self.assertEqual(
            folder_size(self.storage, "wide"), width * (1 + 1024 + 500)
        )


class IterLeavesTests(unittest.TestCase):
    def test_walks_full_subtree(self):
        storage = InMemoryStorageClient()
        for path in ("u1/a.png", "u1/x/b.png", "u1/x/y/c.png", "u2/d.png"):
            storage.upload_bytes(path, b"1")
        self.assertEqual(
            sorted(iter_leaves(storage, "u1")),
            ["u1/a.png", "u1/x/b.png", "u1/x/y/c.png"],
        )

    def test_skips_unlistable_folders(self):
        storage = InMemoryStorageClient()
        storage.upload_bytes("u1/a.png", b"1")
        storage.upload_bytes("u1/x/b.png", b"1")
        storage.unlistable_prefixes.add("u1/x")
        self.assertEqual(list(iter_leaves(storage, "u1")), ["u1/a.png"])

    def test_siblings_walked_in_listing_order(self):
        storage = InMemoryStorageClient()
        paths = [f"u1/f{i:04d}/leaf.png" for i in range(300)]
        for path in reversed(paths):
            storage.upload_bytes(path, b"1")
        self.assertEqual(list(iter_leaves(storage, "/u1/")), paths)


class UsageReportTests(unittest.TestCase):
    def test_converts_to_megabytes(self):
        report = build_usage_report(3 * 1024 * 1024 + 512 * 1024)
        self.assertEqual(report.total_mb, 3.5)
        self.assertEqual(report.quota_mb, 5120)

    def test_percentage_is_monotonic_and_clamped(self):
        sizes = [0, 1, 1024, QUOTA_BYTES // 2, QUOTA_BYTES, QUOTA_BYTES * 3]
        percentages = [build_usage_report(size).percentage for size in sizes]
        self.assertEqual(percentages, sorted(percentages))
        self.assertEqual(percentages[0], 0)
        self.assertAlmostEqual(percentages[3], 50.0)
        self.assertEqual(percentages[-1], 100.0)

    def test_repeated_runs_are_identical(self):
        storage = InMemoryStorageClient()
        storage.upload_bytes("users/u1/a.png", b"x" * 4096)
        storage.upload_bytes("b.png", b"x" * 10)
        first = calculate_storage_usage(storage)
        second = calculate_storage_usage(storage)
        self.assertEqual(first, second)
        self.assertEqual(first.total_bytes, (4096 + 1024 + 500 + 500) + (10 + 1024))

    def test_report_is_immutable(self):
        report = build_usage_report(10)
        with self.assertRaises(AttributeError):
            report.total_bytes = 20


if __name__ == "__main__":
    unittest.main()
