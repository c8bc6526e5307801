"""Editing session tying the equation tree, navigation, selection and markup together.

An EditorSession is the single owner of all editing state. Front ends
(the terminal editor, tests, an embedding host) drive it through the
operations below and read back ``to_latex()`` or ``render_state()``.
"""

import copy
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from .constants import EditorConstants
from .context import ContextManager
from .latex import LatexConverter
from .model import FIRST_EDITABLE_CONTAINER, EquationBuilder, Node, NodeType
from .selection import SelectionManager
from .symbols import LATEX_TO_UNICODE
from .undo import TreeSnapshot, UndoEntry, UndoManager

logger = logging.getLogger(__name__)


class EditorSession:
    """One equation being edited.

    Args:
        differential_style: ``"italic"`` or ``"roman"``, passed to the converter.
        fraction_display_mode: Display mode for fractions inserted interactively.
        large_operator_display_mode: Display mode for inserted large operators,
            integrals and derivatives.
        undo_limit: Maximum number of undo entries kept.
    """

    def __init__(self, differential_style: str = "italic",
                 fraction_display_mode: str = "inline",
                 large_operator_display_mode: str = "inline",
                 undo_limit: int = EditorConstants.DEFAULT_UNDO_LIMIT):
        self.builder = EquationBuilder()
        self.context = ContextManager(self.builder)
        self.selection = SelectionManager(self.context, self.builder)
        self.converter = LatexConverter(self.builder, differential_style)
        self.history = UndoManager(max_entries=undo_limit)
        self.clipboard: List[Node] = []
        self.fraction_display_mode = fraction_display_mode
        self.large_operator_display_mode = large_operator_display_mode
        self.bold = False  # applied to typed leaves
        self.context.enter_root_context()

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> "EditorSession":
        """Build a session from a persisted settings dictionary."""
        return cls(
            differential_style=settings.get("differential_style", "italic"),
            fraction_display_mode=settings.get("fraction_display_mode", "inline"),
            large_operator_display_mode=settings.get("large_operator_display_mode", "inline"),
            undo_limit=settings.get("undo_limit", EditorConstants.DEFAULT_UNDO_LIMIT),
        )

    # Undo plumbing

    def _snapshot_state(self) -> TreeSnapshot:
        return TreeSnapshot.capture(self)

    def _apply_snapshot(self, snapshot: TreeSnapshot) -> None:
        self.builder.set_equation(copy.deepcopy(snapshot.equation))
        self.context.active_context_path = snapshot.context_path
        self.context.cursor_position = snapshot.cursor_position
        self.selection.selection = copy.copy(snapshot.selection)
        self._refresh_layout()
        if self.context.is_active() and self.context.get_current_context() is None:
            self.context.enter_root_context()

    def _edit(self, action: Callable[[], Any]) -> bool:
        """Run a mutating action, recording one undo entry if it changed anything."""
        before = self._snapshot_state()
        changed = bool(action())
        if changed:
            self._refresh_layout()
            self.history.push(UndoEntry(before=before, after=self._snapshot_state()))
        return changed

    def _refresh_layout(self) -> None:
        self.builder.update_bracket_nesting()
        self.builder.update_parentheses_scaling()
        self.context.clamp_cursor()

    def _ensure_active(self) -> None:
        if not self.context.is_active() or self.context.get_current_context() is None:
            self.context.enter_root_context()

    # Insertion

    def insert_structure(self, kind: Union[NodeType, str], **props) -> bool:
        """Insert a structural node at the cursor and descend into it.

        Any selection is replaced. ``props`` are passed to the builder
        factory for ``kind``.
        """
        node_type = NodeType(kind)
        factories = {
            NodeType.FRACTION: self.builder.create_fraction_element,
            NodeType.BEVELLED_FRACTION: self.builder.create_bevelled_fraction_element,
            NodeType.SQRT: self.builder.create_sqrt_element,
            NodeType.NTHROOT: self.builder.create_nthroot_element,
            NodeType.SCRIPT: self.builder.create_script_element,
            NodeType.BRACKET: self.builder.create_bracket_element,
            NodeType.LARGE_OPERATOR: self.builder.create_large_operator_element,
            NodeType.INTEGRAL: self.builder.create_integral_element,
            NodeType.DERIVATIVE: self.builder.create_derivative_element,
            NodeType.MATRIX: self.builder.create_matrix_element,
            NodeType.STACK: self.builder.create_stack_element,
            NodeType.CASES: self.builder.create_cases_element,
            NodeType.ACCENT: self.builder.create_accent_element,
            NodeType.FUNCTION: self.builder.create_function_element,
        }
        if node_type not in factories:
            raise ValueError(f"{node_type.value} is not a structure")
        if node_type is NodeType.FRACTION:
            props.setdefault("display_mode", self.fraction_display_mode)
        elif node_type in (NodeType.LARGE_OPERATOR, NodeType.INTEGRAL, NodeType.DERIVATIVE):
            props.setdefault("display_mode", self.large_operator_display_mode)
        node = factories[node_type](**props)

        def insert() -> bool:
            self._replace_selection()
            if not self.context.insert_element_at_cursor(node):
                return False
            path = self.context.get_element_context_path(node.id, FIRST_EDITABLE_CONTAINER[node_type])
            self.context.enter_context_path(path, 0)
            return True

        return self._edit(insert)

    def insert_fraction(self, display_mode: Optional[str] = None) -> bool:
        if display_mode is None:
            return self.insert_structure(NodeType.FRACTION)
        return self.insert_structure(NodeType.FRACTION, display_mode=display_mode)

    def insert_bevelled_fraction(self) -> bool:
        return self.insert_structure(NodeType.BEVELLED_FRACTION)

    def insert_sqrt(self) -> bool:
        return self.insert_structure(NodeType.SQRT)

    def insert_nthroot(self) -> bool:
        return self.insert_structure(NodeType.NTHROOT)

    def insert_script(self, superscript: bool = True, subscript: bool = False) -> bool:
        return self.insert_structure(NodeType.SCRIPT, superscript=superscript, subscript=subscript)

    def insert_bracket(self, left: str = "(", right: str = ")") -> bool:
        return self.insert_structure(NodeType.BRACKET, left=left, right=right)

    def insert_large_operator(self, operator: str = "∑", **props) -> bool:
        return self.insert_structure(NodeType.LARGE_OPERATOR, operator=operator, **props)

    def insert_integral(self, integral_type: str = "single", has_limits: bool = False) -> bool:
        return self.insert_structure(NodeType.INTEGRAL, integral_type=integral_type,
                                     has_limits=has_limits)

    def insert_derivative(self, order: Optional[int] = 1, is_long_form: bool = False,
                          is_partial: bool = False) -> bool:
        return self.insert_structure(NodeType.DERIVATIVE, order=order,
                                     is_long_form=is_long_form, is_partial=is_partial)

    def insert_matrix(self, rows: int = EditorConstants.DEFAULT_MATRIX_ROWS,
                      cols: int = EditorConstants.DEFAULT_MATRIX_COLS,
                      matrix_type: str = "parentheses") -> bool:
        return self.insert_structure(NodeType.MATRIX, rows=rows, cols=cols, matrix_type=matrix_type)

    def insert_stack(self, rows: int = 2, cols: int = 1) -> bool:
        return self.insert_structure(NodeType.STACK, rows=rows, cols=cols)

    def insert_cases(self, rows: int = 2) -> bool:
        return self.insert_structure(NodeType.CASES, rows=rows)

    def insert_accent(self, accent_type: str = "hat", labeled: bool = False) -> bool:
        return self.insert_structure(NodeType.ACCENT, accent_type=accent_type, labeled=labeled)

    def insert_function(self, name: str) -> bool:
        return self.insert_structure(NodeType.FUNCTION, name=name)

    def insert_text(self, value: str) -> bool:
        """Insert one text leaf per character of ``value`` at the cursor."""
        if not value:
            return False

        def insert() -> bool:
            self._replace_selection()
            for char in value:
                leaf = self.builder.create_text_element(char)
                if self.bold:
                    leaf.bold = True
                if not self.context.insert_element_at_cursor(leaf):
                    return False
            return True

        return self._edit(insert)

    def insert_symbol(self, command: str) -> bool:
        """Insert the symbol for a LaTeX command such as ``\\alpha``."""
        if not command.startswith("\\"):
            command = "\\" + command
        symbol = LATEX_TO_UNICODE.get(command)
        if symbol is None:
            raise ValueError(f"Unknown symbol command: {command}")
        return self.insert_text(symbol)

    def _replace_selection(self) -> None:
        if self.selection.has_selection():
            self.selection.delete_selection()
        self._ensure_active()

    # Deletion

    def backspace(self) -> bool:
        if self.selection.has_selection():
            return self._edit(self.selection.delete_selection)
        if self.context.cursor_position == 0:
            # Nothing to delete here; only leaves the container
            return self.context.navigate_out_of_context("backward")
        return self._edit(self.context.handle_backspace)

    def delete(self) -> bool:
        if self.selection.has_selection():
            return self._edit(self.selection.delete_selection)
        return self._edit(self.context.handle_delete)

    # Movement and selection

    def move(self, delta: int) -> bool:
        self.selection.clear_selection()
        self._ensure_active()
        return self.context.move_cursor(delta)

    def move_to_start(self) -> bool:
        self.selection.clear_selection()
        return self.context.move_to_start()

    def move_to_end(self) -> bool:
        self.selection.clear_selection()
        return self.context.move_to_end()

    def navigate_up_down(self, key: str) -> bool:
        self.selection.clear_selection()
        return self.context.navigate_up_down(key)

    def extend_selection(self, delta: int) -> bool:
        return self.selection.extend_selection(delta)

    def extend_selection_to_structure(self, delta: int) -> bool:
        return self.selection.extend_selection_to_structure(delta)

    def select_all(self) -> bool:
        return self.selection.select_current_context()

    def click(self, path: str, index: int) -> bool:
        """Place the cursor at ``index`` in the container named by ``path``."""
        self.selection.clear_selection()
        return self.context.enter_context_path(path, index)

    # Formatting

    def toggle_bold(self) -> bool:
        """Toggle bold on the selection, or for subsequently typed leaves."""
        if not self.selection.has_selection():
            self.bold = not self.bold
            return self.bold
        state = {}

        def toggle() -> bool:
            state["bold"] = self.selection.toggle_formatting("bold")
            return True

        self._edit(toggle)
        return state["bold"]

    def apply_formatting(self, attrs: Dict[str, Any]) -> bool:
        return self._edit(lambda: self.selection.apply_formatting_to_selection(attrs))

    def apply_wrapper_formatting(self, attrs: Dict[str, Any]) -> List[str]:
        created: List[str] = []

        def apply() -> bool:
            created.extend(self.selection.apply_wrapper_formatting_to_selection(attrs))
            return bool(created) or any(not value for value in attrs.values())

        self._edit(apply)
        return created

    def toggle_underline(self) -> bool:
        """Underline the selection as one group, or remove the underline if it has one."""
        nodes = self.selection.get_selected_nodes()
        if not nodes:
            return False
        underlined = all("underline" in node.wrappers for node in nodes)
        self.apply_wrapper_formatting({"underline": not underlined})
        return not underlined

    # Clipboard

    def copy(self) -> bool:
        nodes = self.selection.get_selected_nodes()
        if not nodes:
            return False
        self.clipboard = self.builder.clone_nodes(nodes)
        return True

    def cut(self) -> bool:
        if not self.copy():
            return False
        return self._edit(self.selection.delete_selection)

    def paste(self) -> bool:
        if not self.clipboard:
            return False
        return self.insert_nodes(self.builder.clone_nodes(self.clipboard))

    def insert_nodes(self, nodes: List[Node]) -> bool:
        """Insert already built nodes at the cursor, replacing any selection."""
        if not nodes:
            return False

        def insert() -> bool:
            self._replace_selection()
            for node in nodes:
                if not self.context.insert_element_at_cursor(node):
                    return False
            return True

        return self._edit(insert)

    # History

    def undo(self) -> bool:
        return self.history.undo(self)

    def redo(self) -> bool:
        return self.history.redo(self)

    # Markup

    def to_latex(self) -> str:
        return self.converter.serialize(self.builder.get_equation())

    def load_latex(self, text: str) -> bool:
        """Replace the document with parsed markup; the cursor goes to the end of root."""
        nodes = self.converter.parse(text)

        def load() -> bool:
            self.selection.clear_selection()
            self.builder.set_equation(nodes)
            self.context.enter_root_context()
            return True

        return self._edit(load)

    def clear(self) -> bool:
        def clear() -> bool:
            self.selection.clear_selection()
            self.builder.clear()
            self.context.enter_root_context()
            return True

        return self._edit(clear)

    # Rendering contract

    def render_state(self) -> Dict[str, Any]:
        """Everything a renderer needs to draw the equation and map clicks back."""
        selection = None
        if self.selection.has_selection():
            current = self.selection.selection
            selection = {
                "context_path": current.context_path,
                "start_position": current.start_position,
                "end_position": current.end_position,
            }
        return {
            "locations": [
                {"context_path": path, "index": index, "id": node.id, "type": node.type.value,
                 "value": node.value, "scale_factor": node.scale_factor,
                 "nesting_depth": node.nesting_depth}
                for path, index, node in self.builder.iter_locations()
            ],
            "active_context_path": self.context.active_context_path,
            "cursor_position": self.context.cursor_position,
            "selection": selection,
        }
