import copy
from dataclasses import dataclass
from typing import Optional

from .constants import EditorConstants
from .model import Node
from .selection import Selection


@dataclass
class TreeSnapshot:
    equation: list[Node]
    context_path: Optional[str] = None
    cursor_position: int = 0
    selection: Optional[Selection] = None

    @classmethod
    def capture(cls, session) -> "TreeSnapshot":
        return cls(
            equation=copy.deepcopy(session.builder.get_equation()),
            context_path=session.context.active_context_path,
            cursor_position=session.context.cursor_position,
            selection=copy.copy(session.selection.selection),
        )


@dataclass
class UndoEntry:
    before: TreeSnapshot
    after: TreeSnapshot


class UndoManager:
    def __init__(self, max_entries: int = EditorConstants.DEFAULT_UNDO_LIMIT):
        self._undo_stack: list[UndoEntry] = []
        self._redo_stack: list[UndoEntry] = []
        self._max_entries = max_entries

    def clear(self):
        self._undo_stack.clear()
        self._redo_stack.clear()

    def push(self, entry: UndoEntry):
        self._undo_stack.append(entry)
        # Cap history
        if len(self._undo_stack) > self._max_entries:
            self._undo_stack.pop(0)
        # Any new edit invalidates redo history
        self._redo_stack.clear()

    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    def undo(self, session) -> bool:
        if not self._undo_stack:
            return False
        entry = self._undo_stack.pop()
        session._apply_snapshot(entry.before)
        self._redo_stack.append(entry)
        return True

    def redo(self, session) -> bool:
        if not self._redo_stack:
            return False
        entry = self._redo_stack.pop()
        session._apply_snapshot(entry.after)
        self._undo_stack.append(entry)
        return True
