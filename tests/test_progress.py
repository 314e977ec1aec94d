"""
Unit tests for ProgressTracker.
"""

import pytest

from partition_migrator.migrations.progress import ProgressEntry, ProgressTracker


class TestProgressTracker:
    def test_initializes_every_partition(self):
        tracker = ProgressTracker(["a", "b"])

        assert len(tracker) == 2
        assert tracker.get("a") == ProgressEntry("a", 0, None, 0)
        assert tracker.get("b") == ProgressEntry("b", 0, None, 0)

    def test_duplicate_ids_are_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            ProgressTracker(["a", "a"])

    def test_record_page_accumulates_and_replaces_token(self):
        tracker = ProgressTracker(["a"])

        tracker.record_page("a", 3, "t1")
        entry = tracker.record_page("a", 2, "t2")

        assert entry.documents_transferred == 5
        assert entry.continuation_token == "t2"
        assert entry.pages == 2

    def test_empty_token_is_stored_as_absent(self):
        tracker = ProgressTracker(["a"])
        tracker.record_page("a", 1, "")
        assert tracker.get("a").continuation_token is None

    def test_negative_page_size_is_rejected(self):
        tracker = ProgressTracker(["a"])
        with pytest.raises(ValueError):
            tracker.record_page("a", -1, None)

    def test_unknown_partition(self):
        tracker = ProgressTracker(["a"])
        with pytest.raises(KeyError):
            tracker.record_page("b", 1, None)
        assert "b" not in tracker
        assert "a" in tracker

    def test_partitions_are_independent(self):
        tracker = ProgressTracker(["a", "b"])

        tracker.record_page("a", 4, "t")

        assert tracker.get("b").documents_transferred == 0
        assert tracker.total_documents == 4

    def test_returned_entries_are_copies(self):
        tracker = ProgressTracker(["a"])

        entry = tracker.record_page("a", 1, "t")
        entry.documents_transferred = 100

        assert tracker.get("a").documents_transferred == 1

    def test_snapshot_is_read_only(self):
        tracker = ProgressTracker(["a"])
        tracker.record_page("a", 2, None)

        snapshot = tracker.snapshot()
        with pytest.raises(TypeError):
            snapshot["a"] = ProgressEntry("a")
        snapshot["a"].documents_transferred = 99

        assert tracker.get("a").documents_transferred == 2
        assert dict(snapshot)["a"].partition_id == "a"
