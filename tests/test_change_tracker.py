"""
Tests for ChangeTracker event reconciliation.
"""

import threading

from vault_kb.models.core import VaultFile
from vault_kb.services.change_tracker import ChangeTracker


def paths(files):
    return sorted(file.path for file in files)


class TestDisjointPaths:
    """Create/modify/delete sequences on unrelated paths."""

    def test_create_and_modify_are_changed(self):
        tracker = ChangeTracker()
        a, b = VaultFile("a.md"), VaultFile("b.md")
        tracker.record_create(a)
        tracker.record_modify(b)
        tracker.record_modify(a)

        assert paths(tracker.changed_files()) == ["a.md", "b.md"]
        assert tracker.deleted_paths() == []

    def test_terminal_delete_wins(self):
        tracker = ChangeTracker()
        a, b = VaultFile("a.md"), VaultFile("b.md")
        tracker.record_create(a)
        tracker.record_create(b)
        tracker.record_delete(a)

        assert paths(tracker.changed_files()) == ["b.md"]
        assert tracker.deleted_paths() == ["a.md"]

    def test_recreate_after_delete_is_changed_only(self):
        tracker = ChangeTracker()
        tracker.record_delete(VaultFile("a.md"))
        recreated = VaultFile("a.md")
        tracker.record_create(recreated)

        assert tracker.changed_files() == [recreated]
        assert tracker.deleted_paths() == []

    def test_changed_files_deduplicated_by_identity(self):
        tracker = ChangeTracker()
        a = VaultFile("a.md")
        for _ in range(3):
            tracker.record_modify(a)

        assert tracker.changed_files() == [a]


class TestRename:

    def test_rename_marks_old_path_deleted(self):
        tracker = ChangeTracker()
        note = VaultFile("old.md")
        tracker.record_create(note)
        note.path = "new.md"
        tracker.record_rename(note, "old.md")

        assert tracker.changed_files() == [note]
        assert tracker.deleted_paths() == ["old.md"]

    def test_rename_onto_pending_deletion_resurrects_path(self):
        """delete(A) then rename(B -> A): A is changed and no longer deleted."""
        tracker = ChangeTracker()
        tracker.record_delete(VaultFile("a.md"))

        moved = VaultFile("b.md")
        moved.path = "a.md"
        tracker.record_rename(moved, "b.md")

        assert "a.md" in paths(tracker.changed_files())
        assert "a.md" not in tracker.deleted_paths()


class TestDrain:

    def test_drain_returns_everything_and_empties_tracker(self):
        tracker = ChangeTracker()
        tracker.record_create(VaultFile("a.md"))
        tracker.record_delete(VaultFile("b.md"))

        change_set = tracker.drain()

        assert paths(change_set.changed_files) == ["a.md"]
        assert change_set.deleted_paths == ["b.md"]
        assert tracker.changed_files() == []
        assert tracker.deleted_paths() == []
        assert tracker.drain().is_empty()

    def test_concurrent_records_are_not_lost(self):
        tracker = ChangeTracker()

        def worker(n):
            for i in range(100):
                tracker.record_create(VaultFile(f"w{n}/{i}.md"))

        threads = [threading.Thread(target=worker, args=(n, )) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(tracker.drain().changed_files) == 400
