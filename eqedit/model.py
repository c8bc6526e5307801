"""Equation tree model.

An equation is an ordered list of nodes. Structural nodes own named child
containers (ordered node lists); which containers a node may have is fixed
by its type in ``CONTAINER_LAYOUT``. Nodes are addressed from outside by
context paths (``root/<id>/<container>/...``) that are resolved through
``EquationBuilder.find_by_id`` on demand, never through cached references.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .constants import EditorConstants
from .symbols import (
    ACCENTS,
    EVALUATION_BRACKETS,
    LABELED_ACCENTS,
    LARGE_OPERATORS,
    function_structure_type,
)

logger = logging.getLogger(__name__)


class NodeType(Enum):
    """Types of equation nodes."""
    TEXT = "text"
    FRACTION = "fraction"
    BEVELLED_FRACTION = "bevelled-fraction"
    SQRT = "sqrt"
    NTHROOT = "nthroot"
    SCRIPT = "script"
    BRACKET = "bracket"
    LARGE_OPERATOR = "large-operator"
    DERIVATIVE = "derivative"
    INTEGRAL = "integral"
    MATRIX = "matrix"
    STACK = "stack"
    CASES = "cases"
    ACCENT = "accent"
    FUNCTION = "function"


# Node type -> (required containers, optional containers)
CONTAINER_LAYOUT: Dict[NodeType, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    NodeType.TEXT: ((), ()),
    NodeType.FRACTION: (("numerator", "denominator"), ()),
    NodeType.BEVELLED_FRACTION: (("numerator", "denominator"), ()),
    NodeType.SQRT: (("radicand",), ()),
    NodeType.NTHROOT: (("index", "radicand"), ()),
    NodeType.SCRIPT: (("base",), ("superscript", "subscript")),
    NodeType.BRACKET: (("content",), ("superscript", "subscript")),
    NodeType.LARGE_OPERATOR: (("lower_limit", "upper_limit", "operand"), ()),
    NodeType.DERIVATIVE: (("function", "variable"), ("order",)),
    NodeType.INTEGRAL: (("integrand", "differential_variable"), ("lower_limit", "upper_limit")),
    NodeType.ACCENT: (("accent_base",), ("accent_label",)),
    NodeType.FUNCTION: (("function_argument",), ("function_base",)),
}

# Grid types declare one container per cell, derived from rows/cols
GRID_TYPES = frozenset({NodeType.MATRIX, NodeType.STACK, NodeType.CASES})

# First container a freshly inserted structure should receive the cursor in
FIRST_EDITABLE_CONTAINER: Dict[NodeType, str] = {
    NodeType.FRACTION: "numerator",
    NodeType.BEVELLED_FRACTION: "numerator",
    NodeType.SQRT: "radicand",
    NodeType.NTHROOT: "index",
    NodeType.SCRIPT: "base",
    NodeType.BRACKET: "content",
    NodeType.LARGE_OPERATOR: "operand",
    NodeType.DERIVATIVE: "function",
    NodeType.INTEGRAL: "integrand",
    NodeType.MATRIX: "cell_0_0",
    NodeType.STACK: "cell_0_0",
    NodeType.CASES: "cell_0_0",
    NodeType.ACCENT: "accent_base",
    NodeType.FUNCTION: "function_argument",
}

FORMATTING_KEYS = ("bold", "italic", "underline", "color", "cancel", "strikethrough")

# Wrapper kinds, outermost first when serialized
WRAPPER_KINDS = ("color", "cancel", "strikethrough", "underline")


def cell_name(row: int, col: int) -> str:
    return f"cell_{row}_{col}"


@dataclass
class Wrapper:
    """Formatting annotation shared by every node of a contiguous run."""
    id: str
    kind: str
    value: Any = True


@dataclass
class Node:
    """A single equation node.

    Text leaves carry ``value``. Structural nodes carry their child
    containers in ``containers`` and type specific settings in ``props``
    (e.g. ``display_mode`` for fractions, ``rows``/``cols`` for grids).
    """
    id: str
    type: NodeType
    value: Optional[str] = None
    containers: Dict[str, List["Node"]] = field(default_factory=dict)
    props: Dict[str, Any] = field(default_factory=dict)
    bold: Optional[bool] = None
    italic: Optional[bool] = None  # False means explicitly roman
    underline: Optional[str] = None  # None, "single" or "double"
    color: Optional[str] = None
    cancel: bool = False
    strikethrough: bool = False
    wrappers: Dict[str, Wrapper] = field(default_factory=dict)
    scale_factor: float = 1.0
    nesting_depth: int = 0

    @property
    def is_structural(self) -> bool:
        return self.type is not NodeType.TEXT

    def declared_containers(self) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        """Return (required, optional) container names for this node's type."""
        if self.type in GRID_TYPES:
            rows = self.props.get("rows", 0)
            cols = self.props.get("cols", 0)
            return tuple(cell_name(r, c) for r in range(rows) for c in range(cols)), ()
        return CONTAINER_LAYOUT[self.type]

    def declares_container(self, name: str) -> bool:
        required, optional = self.declared_containers()
        return name in required or name in optional

    def get_container(self, name: str) -> Optional[List["Node"]]:
        """Return the named container, or None if undeclared or absent."""
        if not self.declares_container(name):
            return None
        return self.containers.get(name)

    def container_names(self) -> List[str]:
        """Names of the containers present on this node, in declared order."""
        required, optional = self.declared_containers()
        return [name for name in required + optional if name in self.containers]

    def add_container(self, name: str) -> List["Node"]:
        if not self.declares_container(name):
            raise KeyError(f"{self.type.value} nodes have no container {name!r}")
        return self.containers.setdefault(name, [])

    def drop_container(self, name: str) -> None:
        required, _ = self.declared_containers()
        if name in required:
            raise KeyError(f"Container {name!r} is required for {self.type.value} nodes")
        self.containers.pop(name, None)

    def formatting(self) -> Tuple[Any, ...]:
        return tuple(getattr(self, key) for key in FORMATTING_KEYS)

    def __repr__(self) -> str:
        if self.type is NodeType.TEXT:
            return f"Node({self.id}, text {self.value!r})"
        return f"Node({self.id}, {self.type.value}, {self.container_names()})"


class EquationBuilder:
    """Creates, stores and mutates the equation tree.

    Ids come from a counter that is never reset, so an id is never reused
    for the lifetime of the builder, even across ``clear()``.
    """

    def __init__(self):
        self._equation: List[Node] = []
        self._next_element_id = 0
        self._next_wrapper_id = 0

    # Storage

    def get_equation(self) -> List[Node]:
        return self._equation

    def set_equation(self, nodes: List[Node]) -> None:
        """Replace the document contents, keeping the root list identity."""
        self._equation[:] = nodes

    def clear(self) -> None:
        self._equation.clear()

    def is_empty(self) -> bool:
        return not self._equation

    # Identifiers

    def generate_element_id(self) -> str:
        self._next_element_id += 1
        return f"{EditorConstants.ELEMENT_ID_PREFIX}{self._next_element_id}"

    def generate_wrapper_id(self) -> str:
        self._next_wrapper_id += 1
        return f"{EditorConstants.WRAPPER_ID_PREFIX}{self._next_wrapper_id}"

    def create_wrapper(self, kind: str, value: Any = True) -> Wrapper:
        return Wrapper(id=self.generate_wrapper_id(), kind=kind, value=value)

    # Factories

    def _create(self, node_type: NodeType, **props) -> Node:
        node = Node(id=self.generate_element_id(), type=node_type, props=props)
        required, _ = node.declared_containers()
        for name in required:
            node.containers[name] = []
        return node

    def create_text_element(self, value: str) -> Node:
        return Node(id=self.generate_element_id(), type=NodeType.TEXT, value=value)

    def create_fraction_element(self, display_mode: str = "inline") -> Node:
        return self._create(NodeType.FRACTION, display_mode=display_mode)

    def create_bevelled_fraction_element(self) -> Node:
        return self._create(NodeType.BEVELLED_FRACTION)

    def create_sqrt_element(self) -> Node:
        return self._create(NodeType.SQRT)

    def create_nthroot_element(self) -> Node:
        return self._create(NodeType.NTHROOT)

    def create_script_element(self, superscript: bool = True, subscript: bool = False) -> Node:
        if not (superscript or subscript):
            raise ValueError("A script needs a superscript or a subscript")
        node = self._create(NodeType.SCRIPT)
        if superscript:
            node.add_container("superscript")
        if subscript:
            node.add_container("subscript")
        return node

    def create_bracket_element(self, left: str = "(", right: str = ")") -> Node:
        return self._create(NodeType.BRACKET, left_symbol=left, right_symbol=right)

    def create_evaluation_bracket_element(self, bracket_type: str = "bar") -> Node:
        """Bracket with both limit slots: ``f(x)|_a^b`` (bar) or ``[f(x)]_a^b`` (square)."""
        if bracket_type not in EVALUATION_BRACKETS:
            raise ValueError(f"Unknown evaluation bracket type {bracket_type!r}")
        node = self.create_bracket_element(*EVALUATION_BRACKETS[bracket_type])
        node.add_container("superscript")
        node.add_container("subscript")
        return node

    def create_large_operator_element(self, operator: str = "∑", display_mode: str = "inline",
                                      limit_mode: str = "limits") -> Node:
        operator = LARGE_OPERATORS.get(operator, operator)
        return self._create(NodeType.LARGE_OPERATOR, operator=operator,
                            display_mode=display_mode, limit_mode=limit_mode)

    def create_derivative_element(self, order: Optional[int] = 1, is_long_form: bool = False,
                                  is_partial: bool = False, display_mode: str = "inline") -> Node:
        """Create a derivative; ``order=None`` means an nth order held in the ``order`` container."""
        node = self._create(NodeType.DERIVATIVE, order=order, is_long_form=is_long_form,
                            is_partial=is_partial, display_mode=display_mode)
        if order is None:
            node.add_container("order")
        return node

    def create_integral_element(self, integral_type: str = "single", has_limits: bool = False,
                                display_mode: str = "inline") -> Node:
        node = self._create(NodeType.INTEGRAL, integral_type=integral_type,
                            display_mode=display_mode)
        if has_limits:
            node.add_container("lower_limit")
            node.add_container("upper_limit")
        return node

    def create_matrix_element(self, rows: int = EditorConstants.DEFAULT_MATRIX_ROWS,
                              cols: int = EditorConstants.DEFAULT_MATRIX_COLS,
                              matrix_type: str = "parentheses") -> Node:
        self._check_grid(rows, cols)
        return self._create(NodeType.MATRIX, rows=rows, cols=cols, matrix_type=matrix_type)

    def create_stack_element(self, rows: int = 2, cols: int = 1) -> Node:
        self._check_grid(rows, cols)
        return self._create(NodeType.STACK, rows=rows, cols=cols)

    def create_cases_element(self, rows: int = 2) -> Node:
        self._check_grid(rows, 2)
        return self._create(NodeType.CASES, rows=rows, cols=2)

    def create_accent_element(self, accent_type: str = "hat", labeled: bool = False) -> Node:
        if accent_type not in ACCENTS:
            raise ValueError(f"Unknown accent type: {accent_type}")
        position = ACCENTS[accent_type][1]
        node = self._create(NodeType.ACCENT, accent_type=accent_type, position=position)
        if labeled and accent_type in LABELED_ACCENTS:
            node.add_container("accent_label")
        return node

    def create_function_element(self, name: str) -> Node:
        function_type = function_structure_type(name)
        node = self._create(NodeType.FUNCTION, function_name=name, function_type=function_type)
        if function_type in ("functionsub", "functionlim"):
            node.add_container("function_base")
        return node

    @staticmethod
    def _check_grid(rows: int, cols: int) -> None:
        if rows < 1 or cols < 1:
            raise ValueError(f"Grid dimensions must be positive, got {rows}x{cols}")

    # Mutation primitives

    def insert(self, node: Node, container: List[Node], index: int) -> None:
        if index < 0 or index > len(container):
            raise IndexError(f"Insert index {index} outside 0..{len(container)}")
        container.insert(index, node)

    def remove(self, container: List[Node], index: int) -> Optional[Node]:
        """Remove and return the subtree at ``index``; no-op when out of bounds."""
        if 0 <= index < len(container):
            return container.pop(index)
        return None

    # Lookup

    def find_by_id(self, elements: List[Node], element_id: str) -> Optional[Node]:
        for node in elements:
            if node.id == element_id:
                return node
            for name in node.container_names():
                found = self.find_by_id(node.containers[name], element_id)
                if found is not None:
                    return found
        return None

    def iter_locations(self, elements: Optional[List[Node]] = None,
                       path: str = EditorConstants.ROOT_PATH) -> Iterator[Tuple[str, int, Node]]:
        """Yield ``(context_path, index, node)`` for every node, depth first.

        This is what a renderer needs to map a click on a node back to a
        position the navigation engine understands.
        """
        if elements is None:
            elements = self._equation
        sep = EditorConstants.PATH_SEPARATOR
        for index, node in enumerate(elements):
            yield path, index, node
            for name in node.container_names():
                yield from self.iter_locations(node.containers[name], f"{path}{sep}{node.id}{sep}{name}")

    def nodes_with_wrapper(self, wrapper_id: str) -> List[Node]:
        return [node for _, _, node in self.iter_locations()
                if any(w.id == wrapper_id for w in node.wrappers.values())]

    def remove_wrapper(self, wrapper_id: str) -> int:
        """Detach a wrapper group from every node carrying it; return the count."""
        removed = 0
        for node in self.nodes_with_wrapper(wrapper_id):
            for kind in [k for k, w in node.wrappers.items() if w.id == wrapper_id]:
                del node.wrappers[kind]
            removed += 1
        return removed

    # Layout bookkeeping

    def update_bracket_nesting(self) -> None:
        self._update_nesting(self._equation, 0)

    def _update_nesting(self, elements: List[Node], depth: int) -> None:
        for node in elements:
            if node.type is NodeType.BRACKET:
                node.nesting_depth = depth
            for name in node.container_names():
                inner = depth + 1 if node.type is NodeType.BRACKET and name == "content" else depth
                self._update_nesting(node.containers[name], inner)

    def max_bracket_depth(self, elements: Optional[List[Node]] = None) -> int:
        if elements is None:
            elements = self._equation
        deepest = 0
        for node in elements:
            if node.type is NodeType.BRACKET:
                deepest = max(deepest, node.nesting_depth)
            for name in node.container_names():
                deepest = max(deepest, self.max_bracket_depth(node.containers[name]))
        return deepest

    def update_parentheses_scaling(self) -> None:
        self._scale_parentheses(self._equation)

    def _scale_parentheses(self, container: List[Node]) -> None:
        scales = EditorConstants.PAREN_SCALES
        open_stack: List[int] = []
        for i, node in enumerate(container):
            if node.type is not NodeType.TEXT:
                continue
            if node.value == "(":
                node.scale_factor = 1.0
                open_stack.append(i)
            elif node.value == ")":
                node.scale_factor = 1.0
                if not open_stack:
                    continue  # unmatched closer
                start = open_stack.pop()
                depth = max((fraction_depth(n) for n in container[start + 1:i]), default=0)
                scale = scales[min(depth, len(scales) - 1)]
                container[start].scale_factor = scale
                node.scale_factor = scale
        for node in container:
            for name in node.container_names():
                self._scale_parentheses(node.containers[name])

    # Copies

    def clone_nodes(self, nodes: List[Node]) -> List[Node]:
        """Deep copy ``nodes`` giving every element and wrapper a fresh id.

        Wrappers shared within ``nodes`` stay shared among the copies.
        """
        copies = copy.deepcopy(nodes)
        renamed: Dict[str, Wrapper] = {}
        for _, _, node in self.iter_locations(copies):
            node.id = self.generate_element_id()
            for kind, wrapper in list(node.wrappers.items()):
                if wrapper.id not in renamed:
                    renamed[wrapper.id] = self.create_wrapper(wrapper.kind, wrapper.value)
                node.wrappers[kind] = renamed[wrapper.id]
        return copies

    def clone(self, node: Node) -> Node:
        return self.clone_nodes([node])[0]


def fraction_depth(node: Node) -> int:
    """How many fractions are stacked inside ``node``, counting itself."""
    inner = 0
    for name in node.container_names():
        for child in node.containers[name]:
            inner = max(inner, fraction_depth(child))
    if node.type in (NodeType.FRACTION, NodeType.BEVELLED_FRACTION):
        return inner + 1
    return inner


def structure_signature(nodes: List[Node]) -> Tuple:
    """Id-free description of a node list, for structural comparison."""
    result = []
    for node in nodes:
        wrappers = tuple(sorted((k, w.value) for k, w in node.wrappers.items()))
        containers = tuple(
            (name, structure_signature(node.containers[name])) for name in node.container_names()
        )
        props = tuple(sorted(node.props.items()))
        result.append((node.type.value, node.value, props, node.formatting(), wrappers, containers))
    return tuple(result)


def format_tree(nodes: List[Node], indent: int = 0) -> str:
    """Render a node list as an indented outline."""
    lines = []
    pad = "  " * indent
    for node in nodes:
        if node.type is NodeType.TEXT:
            lines.append(f"{pad}{node.id} text {node.value!r}")
            continue
        details = " ".join(f"{k}={v}" for k, v in sorted(node.props.items()))
        lines.append(f"{pad}{node.id} {node.type.value}" + (f" [{details}]" if details else ""))
        for name in node.container_names():
            lines.append(f"{pad}  {name}:")
            child = format_tree(node.containers[name], indent + 2)
            if child:
                lines.append(child)
    return "\n".join(lines)
