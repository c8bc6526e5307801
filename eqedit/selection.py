"""Range selection within a single container."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .context import ContextManager, split_path
from .errors import InvalidFormattingError
from .model import FORMATTING_KEYS, WRAPPER_KINDS, EquationBuilder, Node

logger = logging.getLogger(__name__)


@dataclass
class Selection:
    """A ``[start_position, end_position)`` range in one container."""
    active: bool = False
    context_path: Optional[str] = None
    start_position: int = 0
    end_position: int = 0
    anchor: int = 0  # Position where the selection began

    def __len__(self) -> int:
        return self.end_position - self.start_position if self.active else 0


class SelectionManager:
    """Selection state plus the operations that act on the selected range.

    The cursor stays owned by the ContextManager; extending a selection
    moves the cursor to the moving end, so the two never disagree.
    """

    def __init__(self, context: ContextManager, builder: EquationBuilder):
        self.context = context
        self.builder = builder
        self.selection = Selection()

    # State

    def has_selection(self) -> bool:
        return self.selection.active and self.selection.start_position < self.selection.end_position

    def clear_selection(self) -> None:
        self.selection = Selection()

    def set_selection(self, path: str, start: int, end: int) -> bool:
        """Select ``[start, end)`` in ``path`` and put the cursor at ``end``."""
        context = self.context.get_context(path)
        if context is None:
            return False
        length = len(context.container)
        start = max(0, min(start, length))
        end = max(0, min(end, length))
        self.context.active_context_path = path
        self.context.cursor_position = end
        self._set_range(path, start, end)
        return True

    def _set_range(self, path: str, anchor: int, cursor: int) -> None:
        start, end = sorted((anchor, cursor))
        self.selection = Selection(active=start != end, context_path=path,
                                   start_position=start, end_position=end, anchor=anchor)

    def _anchor_for_extension(self) -> int:
        """Anchor of the current selection, starting one at the cursor if needed."""
        if self.selection.active and self.selection.context_path == self.context.active_context_path:
            return self.selection.anchor
        return self.context.cursor_position

    def _resolve_selection(self):
        if not self.has_selection():
            return None
        context = self.context.get_context(self.selection.context_path)
        if context is None:
            logger.debug(f"Selection path {self.selection.context_path} no longer resolves")
            self.clear_selection()
            return None
        return context

    def get_selected_nodes(self) -> List[Node]:
        context = self._resolve_selection()
        if context is None:
            return []
        return context.container[self.selection.start_position:self.selection.end_position]

    # Growing and shrinking

    def extend_selection(self, delta: int) -> bool:
        context = self.context.get_current_context()
        if context is None:
            return False
        anchor = self._anchor_for_extension()
        cursor = max(0, min(self.context.cursor_position + delta, len(context.container)))
        if cursor == self.context.cursor_position:
            return False
        self.context.cursor_position = cursor
        self._set_range(self.context.active_context_path, anchor, cursor)
        return True

    def extend_selection_to_structure(self, delta: int) -> bool:
        """Extend by whole siblings, growing to the owning structure at a boundary."""
        context = self.context.get_current_context()
        if context is None:
            return False
        target = self.context.cursor_position + delta
        if 0 <= target <= len(context.container):
            return self.extend_selection(delta)
        if context.parent is None:
            return False
        return self.select_parent_structure(forward=delta > 0)

    def select_structure_at_cursor(self) -> bool:
        """Select the structural node right of the cursor, else the one left of it."""
        context = self.context.get_current_context()
        if context is None:
            return False
        cursor = self.context.cursor_position
        container = context.container
        if cursor < len(container) and container[cursor].is_structural:
            self._set_range(self.context.active_context_path, cursor, cursor + 1)
            self.context.cursor_position = cursor + 1
            return True
        if cursor > 0 and container[cursor - 1].is_structural:
            self._set_range(self.context.active_context_path, cursor - 1, cursor)
            return True
        return False

    def select_parent_structure(self, forward: bool = True) -> bool:
        """Select the structural node that owns the current context."""
        path = self.context.active_context_path
        if path is None or self.context.get_current_context() is None:
            return False
        parent_path, element_id, _ = split_path(path)
        if element_id is None:
            return False
        parent_context = self.context.get_context(parent_path)
        if parent_context is None:
            return False
        for index, node in enumerate(parent_context.container):
            if node.id == element_id:
                self.context.active_context_path = parent_path
                if forward:
                    self.context.cursor_position = index + 1
                    self._set_range(parent_path, index, index + 1)
                else:
                    self.context.cursor_position = index
                    self._set_range(parent_path, index + 1, index)
                return True
        return False

    def select_current_context(self) -> bool:
        context = self.context.get_current_context()
        if context is None:
            return False
        length = len(context.container)
        self.context.cursor_position = length
        self._set_range(self.context.active_context_path, 0, length)
        return True

    # Formatting

    def apply_formatting_to_selection(self, attrs: Dict[str, Any]) -> int:
        """Set formatting attributes on every selected node and its descendants.

        Returns:
            Number of nodes changed.
        """
        values = {key: _normalize_formatting(key, value) for key, value in attrs.items()}
        changed = 0
        for node in self.get_selected_nodes():
            for _, _, target in self.builder.iter_locations([node]):
                for key, value in values.items():
                    setattr(target, key, value)
                changed += 1
        return changed

    def toggle_formatting(self, key: str) -> bool:
        """Turn ``key`` off if every selected leaf has it, on otherwise."""
        leaves = [n for node in self.get_selected_nodes()
                  for _, _, n in self.builder.iter_locations([node]) if not n.is_structural]
        if not leaves:
            return False
        enabled = all(getattr(leaf, key) for leaf in leaves)
        self.apply_formatting_to_selection({key: not enabled})
        return not enabled

    def apply_wrapper_formatting_to_selection(self, attrs: Dict[str, Any]) -> List[str]:
        """Group the selected run under one new wrapper per formatting kind.

        A falsy value removes the wrapper of that kind from the whole group
        it belongs to, including nodes outside the selection.

        Returns:
            Ids of the wrappers created.
        """
        for kind in attrs:
            if kind not in WRAPPER_KINDS:
                raise InvalidFormattingError(f"Unsupported wrapper kind: {kind}")
        nodes = self.get_selected_nodes()
        if not nodes:
            return []
        created = []
        for kind, value in attrs.items():
            if kind == "underline" and value is True:
                value = "single"
            if not value:
                wrapper_ids = {n.wrappers[kind].id for n in nodes if kind in n.wrappers}
                for wrapper_id in wrapper_ids:
                    self.builder.remove_wrapper(wrapper_id)
                continue
            wrapper = self.builder.create_wrapper(kind, value)
            for node in nodes:
                node.wrappers[kind] = wrapper
            created.append(wrapper.id)
        return created

    def remove_wrapper(self, wrapper_id: str) -> int:
        return self.builder.remove_wrapper(wrapper_id)

    # Deletion

    def delete_selection(self) -> List[Node]:
        """Remove the selected slice; the cursor collapses to its start."""
        context = self._resolve_selection()
        if context is None:
            return []
        start, end = self.selection.start_position, self.selection.end_position
        removed = context.container[start:end]
        del context.container[start:end]
        self.context.active_context_path = self.selection.context_path
        self.context.cursor_position = start
        self.clear_selection()
        return removed


def _normalize_formatting(key: str, value: Any) -> Any:
    if key not in FORMATTING_KEYS:
        raise InvalidFormattingError(f"Unsupported formatting attribute: {key}")
    if key == "underline":
        if value is True:
            return "single"
        if not value:
            return None
        if value not in ("single", "double"):
            raise InvalidFormattingError(f"Unsupported underline style: {value}")
        return value
    if key == "color":
        return value or None
    if key == "italic":
        return value if value is None else bool(value)
    return bool(value)
