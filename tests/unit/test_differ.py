"""
Unit tests for reconciliation differ module.

Tests set-difference garbage collection of published artifacts.
"""

import pytest


class TestArtifactDiffer:
    """Test artifact change detection."""

    @pytest.fixture
    def differ(self):
        """Create an ArtifactDiffer instance."""
        from prometheus_puppetdb.reconciliation.differ import ArtifactDiffer
        return ArtifactDiffer()

    @pytest.fixture
    def previous(self):
        return ["puppetdb-node.yml", "puppetdb-apache.yml", "puppetdb-mysql.yml"]

    @pytest.fixture
    def current(self):
        return ["puppetdb-node.yml", "puppetdb-redis.yml"]

    def test_find_stale(self, differ, previous, current):
        """Test artifacts no longer desired are reported sorted."""
        assert differ.find_stale(previous, current) == ["puppetdb-apache.yml", "puppetdb-mysql.yml"]

    def test_empty_previous_has_no_stale(self, differ, current):
        assert differ.find_stale([], current) == []

    def test_build_name_index(self, differ):
        objects = [{"metadata": {"name": "a"}}, {"metadata": {"name": "b"}}]

        index = differ.build_name_index(objects, lambda obj: obj["metadata"]["name"])

        assert set(index) == {"a", "b"}
        assert index["a"] is objects[0]

    def test_build_name_index_rejects_nameless(self, differ):
        with pytest.raises(ValueError):
            differ.build_name_index([{"metadata": {}}], lambda obj: obj["metadata"].get("name"))


class TestArtifactTracker:
    """Test the tracked artifact set across cycles."""

    @pytest.fixture
    def tracker(self):
        from prometheus_puppetdb.reconciliation.differ import ArtifactTracker
        return ArtifactTracker("test")

    def test_starts_empty(self, tracker):
        assert tracker.previous == set()
        assert tracker.stale(["a"]) == []

    def test_reconcile_deletes_stale(self, tracker):
        """Test artifacts of the previous cycle are deleted when they disappear."""
        deleted = []
        tracker.reconcile(["a", "b"], deleted.append)

        removed = tracker.reconcile(["a"], deleted.append)

        assert removed == ["b"]
        assert deleted == ["b"]
        assert tracker.previous == {"a"}

    def test_reconcile_converges(self, tracker):
        """Test a repeated snapshot deletes nothing."""
        deleted = []
        tracker.reconcile(["a"], deleted.append)
        tracker.reconcile(["a"], deleted.append)

        assert deleted == []

    def test_failed_delete_keeps_state(self, tracker):
        """Test state is not committed when a deletion fails."""
        tracker.commit(["a", "b"])

        def fail(artifact):
            raise OSError("read-only file system")

        with pytest.raises(OSError):
            tracker.reconcile(["a"], fail)

        assert tracker.previous == {"a", "b"}

    def test_previous_is_a_copy(self, tracker):
        tracker.commit(["a"])
        tracker.previous.add("b")

        assert tracker.previous == {"a"}

    def test_remember_merges_partial_writes(self, tracker):
        """Test artifacts of a failed cycle become stale for the next one."""
        tracker.commit(["a"])

        tracker.remember(["b"])

        assert tracker.previous == {"a", "b"}
        assert tracker.stale(["a"]) == ["b"]
