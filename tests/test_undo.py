"""Test the undo manager and tree snapshots."""

import unittest
from types import SimpleNamespace

from eqedit.session import EditorSession
from eqedit.undo import TreeSnapshot, UndoEntry, UndoManager


def make_entry(label):
    before = TreeSnapshot(equation=[], context_path=f"{label}-before")
    after = TreeSnapshot(equation=[], context_path=f"{label}-after")
    return UndoEntry(before=before, after=after)


class RecordingSession(SimpleNamespace):
    """Stands in for a session and records which snapshots get applied."""

    def __init__(self):
        super().__init__(applied=[])

    def _apply_snapshot(self, snapshot):
        self.applied.append(snapshot.context_path)


class TestUndoManager(unittest.TestCase):
    """Test undo and redo stacks."""

    def setUp(self):
        self.manager = UndoManager(max_entries=3)
        self.session = RecordingSession()

    def test_empty_history(self):
        self.assertFalse(self.manager.can_undo())
        self.assertFalse(self.manager.can_redo())
        self.assertFalse(self.manager.undo(self.session))
        self.assertFalse(self.manager.redo(self.session))

    def test_undo_applies_before_and_redo_applies_after(self):
        self.manager.push(make_entry("one"))
        self.assertTrue(self.manager.undo(self.session))
        self.assertTrue(self.manager.can_redo())
        self.assertTrue(self.manager.redo(self.session))
        self.assertEqual(self.session.applied, ["one-before", "one-after"])

    def test_push_clears_redo(self):
        self.manager.push(make_entry("one"))
        self.manager.undo(self.session)
        self.manager.push(make_entry("two"))
        self.assertFalse(self.manager.can_redo())

    def test_history_is_capped(self):
        for label in ("a", "b", "c", "d"):
            self.manager.push(make_entry(label))
        while self.manager.undo(self.session):
            pass
        self.assertEqual(self.session.applied, ["d-before", "c-before", "b-before"])

    def test_clear(self):
        self.manager.push(make_entry("one"))
        self.manager.clear()
        self.assertFalse(self.manager.can_undo())


class TestTreeSnapshot(unittest.TestCase):
    """Test that snapshots are independent of the live tree."""

    def test_capture_copies_tree_and_selection(self):
        session = EditorSession()
        session.insert_text("ab")
        session.select_all()
        snapshot = TreeSnapshot.capture(session)

        session.insert_text("z")
        self.assertEqual([node.value for node in snapshot.equation], ["a", "b"])
        self.assertEqual(snapshot.context_path, "root")
        self.assertEqual(snapshot.cursor_position, 2)
        self.assertTrue(snapshot.selection.active)
        self.assertFalse(session.selection.selection.active)


if __name__ == '__main__':
    unittest.main()
