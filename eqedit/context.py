"""Context path resolution and cursor navigation.

A context path names one container: ``root`` for the document itself, or
``root/<id>/<container>/<id>/<container>...`` for a container nested inside
structural nodes. Paths are resolved by id every time they are used, so a
path that points at a deleted node simply stops resolving. That condition
is reported as ``None``/``False`` and never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .constants import EditorConstants
from .model import EquationBuilder, Node, NodeType

logger = logging.getLogger(__name__)

ROOT = EditorConstants.ROOT_PATH
SEP = EditorConstants.PATH_SEPARATOR

_UP_KEYS = ("up", "arrowup", "shift-tab")
_DOWN_KEYS = ("down", "arrowdown", "tab")


@dataclass
class ContextInfo:
    """A resolved context: the container list and the node owning it."""
    container: List[Node]
    parent: Optional[Node]


def split_path(path: str) -> Tuple[str, Optional[str], Optional[str]]:
    """Split a path into (parent path, element id, container name).

    For the root path the id and name are None.
    """
    if path == ROOT:
        return ROOT, None, None
    parts = path.split(SEP)
    if len(parts) < 3:
        return ROOT, None, None
    return SEP.join(parts[:-2]), parts[-2], parts[-1]


def join_path(parent_path: str, element_id: str, container_name: str) -> str:
    return f"{parent_path}{SEP}{element_id}{SEP}{container_name}"


def path_depth(path: str) -> int:
    """Number of structural levels below root."""
    if path == ROOT:
        return 0
    return (len(path.split(SEP)) - 1) // 2


class ContextManager:
    """Owns the active context path and the cursor position within it."""

    def __init__(self, builder: EquationBuilder):
        self.builder = builder
        self.active_context_path: Optional[str] = None
        self.cursor_position = 0

    # State

    def is_active(self) -> bool:
        return self.active_context_path is not None

    def exit_editing_mode(self) -> None:
        self.active_context_path = None

    def enter_root_context(self) -> None:
        self.active_context_path = ROOT
        self.cursor_position = len(self.builder.get_equation())

    def enter_context_path(self, path: str, position: int = 0) -> bool:
        """Activate ``path`` with the cursor at ``position`` (clamped)."""
        context = self.get_context(path)
        if context is None:
            return False
        self.active_context_path = path
        self.cursor_position = max(0, min(position, len(context.container)))
        return True

    # Resolution

    def get_context(self, path: Optional[str]) -> Optional[ContextInfo]:
        if path is None:
            return None
        if path == ROOT:
            return ContextInfo(self.builder.get_equation(), None)
        parent_path, element_id, container_name = split_path(path)
        if element_id is None:
            logger.debug(f"Malformed context path: {path}")
            return None
        element = self.builder.find_by_id(self.builder.get_equation(), element_id)
        if element is None:
            logger.debug(f"Context path {path} refers to missing element {element_id}")
            return None
        container = element.get_container(container_name)
        if container is None:
            logger.debug(f"{element.type.value} element {element_id} has no container {container_name}")
            return None
        return ContextInfo(container, element)

    def get_current_context(self) -> Optional[ContextInfo]:
        return self.get_context(self.active_context_path)

    def parent_path(self, path: Optional[str] = None) -> Optional[str]:
        path = self.active_context_path if path is None else path
        if path is None or path == ROOT:
            return None
        return split_path(path)[0]

    def clamp_cursor(self) -> None:
        """Pull the cursor back inside the active container after a mutation."""
        context = self.get_current_context()
        if context is None:
            return
        self.cursor_position = max(0, min(self.cursor_position, len(context.container)))

    # Movement

    def move_cursor(self, delta: int) -> bool:
        context = self.get_current_context()
        if context is None:
            return False
        new_position = self.cursor_position + delta
        if 0 <= new_position <= len(context.container):
            self.cursor_position = new_position
            return True
        if self.active_context_path != ROOT:
            return self.navigate_out_of_context("forward" if delta > 0 else "backward")
        return False

    def move_to_start(self) -> bool:
        if self.get_current_context() is None:
            return False
        self.cursor_position = 0
        return True

    def move_to_end(self) -> bool:
        context = self.get_current_context()
        if context is None:
            return False
        self.cursor_position = len(context.container)
        return True

    def navigate_out_of_context(self, direction: str) -> bool:
        """Leave the active container, landing beside its owning element."""
        if self.active_context_path is None or self.active_context_path == ROOT:
            return False
        parent_path, element_id, _ = split_path(self.active_context_path)
        parent_context = self.get_context(parent_path)
        if parent_context is None or element_id is None:
            return False
        for index, node in enumerate(parent_context.container):
            if node.id == element_id:
                self.active_context_path = parent_path
                self.cursor_position = index + 1 if direction == "forward" else index
                return True
        return False

    def navigate_up_down(self, key: str) -> bool:
        """Move between sibling containers of the active context's owner."""
        key = key.lower()
        if key in _DOWN_KEYS:
            down = True
        elif key in _UP_KEYS:
            down = False
        else:
            raise ValueError(f"Unknown vertical navigation key: {key}")

        if self.active_context_path is None or self.active_context_path == ROOT:
            return False
        context = self.get_current_context()
        if context is None or context.parent is None:
            return False

        parent = context.parent
        parent_path, element_id, current = split_path(self.active_context_path)
        exit_direction = "forward" if down else "backward"

        def go(container_name: str, at_end: bool = False) -> bool:
            target = parent.containers[container_name]
            self.active_context_path = join_path(parent_path, element_id, container_name)
            self.cursor_position = len(target) if at_end else 0
            return True

        if parent.type in (NodeType.FRACTION, NodeType.BEVELLED_FRACTION):
            if down and current == "numerator":
                return go("denominator")
            if not down and current == "denominator":
                return go("numerator")
        elif parent.type is NodeType.NTHROOT:
            if down and current == "index":
                return go("radicand")
            if not down and current == "radicand":
                return go("index")
        elif parent.type is NodeType.SCRIPT:
            has_sup = "superscript" in parent.containers
            has_sub = "subscript" in parent.containers
            if down:
                if current == "base" and has_sup:
                    return go("superscript")
                if current == "base" and has_sub:
                    return go("subscript")
                if current == "superscript" and has_sub:
                    return go("subscript")
            else:
                if current == "subscript":
                    return go("superscript") if has_sup else go("base", at_end=True)
                if current == "superscript":
                    return go("base", at_end=True)
        return self.navigate_out_of_context(exit_direction)

    # Editing

    def handle_backspace(self) -> bool:
        """Delete the node before the cursor.

        At the start of a nested container the cursor leaves the structure
        instead and nothing is deleted. Returns whether a node was removed,
        so leaving a structure returns False.
        """
        context = self.get_current_context()
        if context is None:
            return False
        if self.cursor_position > 0:
            self.builder.remove(context.container, self.cursor_position - 1)
            self.cursor_position -= 1
            return True
        if self.active_context_path != ROOT:
            self.navigate_out_of_context("backward")
        return False

    def handle_delete(self) -> bool:
        context = self.get_current_context()
        if context is None:
            return False
        if self.cursor_position < len(context.container):
            self.builder.remove(context.container, self.cursor_position)
            return True
        return False

    def insert_element_at_cursor(self, node: Node) -> bool:
        context = self.get_current_context()
        if context is None:
            return False
        self.cursor_position = max(0, min(self.cursor_position, len(context.container)))
        self.builder.insert(node, context.container, self.cursor_position)
        self.cursor_position += 1
        return True

    def insert_text_at_cursor(self, value: str) -> bool:
        if self.get_current_context() is None:
            return False
        return self.insert_element_at_cursor(self.builder.create_text_element(value))

    def get_element_context_path(self, element_id: str, container_name: str) -> str:
        base = self.active_context_path or ROOT
        return join_path(base, element_id, container_name)
