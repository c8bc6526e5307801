"""LaTeX markup parser and serializer for equation trees.

The parser is a hand written recursive descent over the character stream.
It is deliberately forgiving: unbalanced braces close at end of input and
unknown commands are skipped, so half typed markup still yields a usable
tree. Everything the serializer emits parses back to the same structure.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from .constants import EditorConstants
from .errors import MarkupTooLargeError
from .model import WRAPPER_KINDS, EquationBuilder, Node, NodeType, cell_name
from .symbols import (
    ACCENT_TYPES_BY_COMMAND,
    ACCENTS,
    BRACKET_DELIMITERS,
    BRACKET_PAIRS,
    BRACKET_SIZE_LEFT,
    BRACKET_SIZE_RIGHT,
    BUILTIN_FUNCTIONS,
    DELIMITER_TOKENS,
    ESCAPED_CHARACTERS,
    EVALUATION_BRACKETS,
    FUNCTION_CONFIG,
    INTEGRAL_PREFIXES,
    INTEGRAL_TYPES_BY_PREFIX,
    LARGE_OPERATOR_COMMANDS,
    LARGE_OPERATORS,
    LATEX_TO_UNICODE,
    MATRIX_ENVIRONMENTS,
    MATRIX_TYPES_BY_ENVIRONMENT,
    TEXT_ESCAPES,
    UNICODE_TO_LATEX,
    function_structure_type,
    get_latex_command_length,
    is_operator,
)

logger = logging.getLogger(__name__)

_INTEGRAL_COMMAND = re.compile(r"^\\(int|iint|iiint|oint)([id])(l?)$")
_TRAILING_COMMAND = re.compile(r"\\[A-Za-z]+$")
_TRAILING_EXPONENT = re.compile(r"\^\{([^{}]*)\}\s*$")

_SPACING_COMMANDS = frozenset({"\\,", "\\;", "\\:", "\\!", "\\quad", "\\qquad", "\\\\"})
_FORMAT_COMMANDS = {
    "\\mathbf": {"bold": True},
    "\\textbf": {"bold": True},
    "\\mathit": {"italic": True},
    "\\textit": {"italic": True},
    "\\boldsymbol": {"bold": True, "italic": True},
    "\\mathrm": {"italic": False},
}
_WRAPPER_COMMANDS = {
    "\\underline": "underline",
    "\\cancel": "cancel",
    "\\sout": "strikethrough",
}


def parse_group(text: str, start: int) -> Tuple[str, int]:
    """Read one argument starting at ``start``.

    Returns the group content and the index just past it. A brace group is
    matched with a depth counter; if it never closes, the rest of the input
    is the content. A bare command is taken whole, any other character
    alone.
    """
    n = len(text)
    if start >= n:
        return "", n
    if text[start] != "{":
        if text[start] == "\\" and start + 1 < n:
            name = read_command_name(text, start)
            return name, start + len(name)
        return text[start], start + 1
    depth = 0
    i = start
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2  # escaped character, never a delimiter
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start + 1:i], i + 1
        i += 1
    return text[start + 1:], n


def read_command_name(text: str, start: int) -> str:
    """Return the command at ``start``: a backslash and letters, or a backslash and one character."""
    end = start + 1
    while end < len(text) and text[end].isalpha() and text[end].isascii():
        end += 1
    if end == start + 1:
        end = min(start + 2, len(text))
    return text[start:end]


def skip_spaces(text: str, i: int) -> int:
    while i < len(text) and text[i].isspace():
        i += 1
    return i


def read_optional_argument(text: str, i: int) -> Tuple[Optional[str], int]:
    """Read a ``[...]`` argument at ``i`` if present.

    Brace groups and escaped characters inside the argument are skipped,
    so ``[{]}]`` reads as ``{]}``.
    """
    if i >= len(text) or text[i] != "[":
        return None, i
    depth = 1
    j = i + 1
    while j < len(text) and depth > 0:
        if text[j] == "\\":
            j += 2
            continue
        if text[j] == "{":
            _, j = parse_group(text, j)
            continue
        if text[j] == "[":
            depth += 1
        elif text[j] == "]":
            depth -= 1
        j += 1
    j = min(j, len(text))
    end = j - 1 if depth == 0 else j
    return text[i + 1:end], j


def split_top_level(body: str, separator: str) -> List[str]:
    """Split ``body`` on ``separator`` where it is outside braces and environments."""
    parts = []
    depth = 0
    env_depth = 0
    current = 0
    i = 0
    while i < len(body):
        if body.startswith("\\begin", i):
            env_depth += 1
            i += 6
            continue
        if body.startswith("\\end", i):
            env_depth -= 1
            i += 4
            continue
        if depth == 0 and env_depth == 0 and body.startswith(separator, i):
            parts.append(body[current:i])
            i += len(separator)
            current = i
            continue
        ch = body[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        i += 1
    parts.append(body[current:])
    return parts


_EVALUATION_DELIMITERS = frozenset(EVALUATION_BRACKETS.values())


def _is_evaluation_bracket(node: Node) -> bool:
    return (node.type is NodeType.BRACKET
            and (node.props.get("left_symbol"), node.props.get("right_symbol"))
            in _EVALUATION_DELIMITERS)


class LatexConverter:
    """Converts between node lists and LaTeX markup.

    Args:
        builder: Builder used to create nodes, so parsed nodes get ids from
            the same never reused sequence as interactively created ones.
        differential_style: ``"italic"`` writes derivatives with the
            ``\\derivfrac`` family and integrals with italic d macros;
            ``"roman"`` uses the physics package ``\\dv``/``\\pdv`` and the
            roman d macros.
    """

    def __init__(self, builder: EquationBuilder, differential_style: str = "italic"):
        self.builder = builder
        self.differential_style = differential_style

    # Serialization

    def serialize(self, nodes: List[Node]) -> str:
        max_depth = _deepest_bracket(nodes, 0)
        return self._serialize_list(nodes, 0, max_depth, frozenset()).strip()

    def _group(self, nodes: Optional[List[Node]], depth: int, max_depth: int) -> str:
        """Serialize a container for use inside braces; empty becomes a space."""
        if not nodes:
            return " "
        return self._serialize_list(nodes, depth, max_depth, frozenset()).strip() or " "

    def _serialize_list(self, nodes: List[Node], depth: int, max_depth: int,
                        handled: frozenset) -> str:
        chunks: List[str] = []
        i = 0
        while i < len(nodes):
            node = nodes[i]
            wrapper = _outermost_wrapper(node, handled)
            if wrapper is not None:
                j = i + 1
                while j < len(nodes) and nodes[j].wrappers.get(wrapper.kind) is wrapper:
                    j += 1
                inner = self._serialize_list(nodes[i:j], depth, max_depth, handled | {wrapper.id})
                chunks.append(_wrap(wrapper.kind, wrapper.value, inner.strip() or " "))
                i = j
            elif node.type is NodeType.TEXT:
                key = _formatting_key(node)
                j = i
                leaves = []
                while (j < len(nodes) and nodes[j].type is NodeType.TEXT
                       and _outermost_wrapper(nodes[j], handled) is None
                       and _formatting_key(nodes[j]) == key):
                    leaves.append(_text_to_latex(nodes[j].value or ""))
                    j += 1
                chunks.append(_apply_direct_formatting(_join_chunks(leaves), key))
                i = j
            else:
                chunks.append(self._serialize_node(node, depth, max_depth))
                i += 1
        return _join_chunks(chunks)

    def _serialize_node(self, node: Node, depth: int, max_depth: int) -> str:
        def g(name: str, level: int = depth) -> str:
            return self._group(node.containers.get(name), level, max_depth)

        props = node.props
        t = node.type
        if t is NodeType.FRACTION:
            command = "\\dfrac" if props.get("display_mode") == "display" else "\\frac"
            return f"{command}{{{g('numerator')}}}{{{g('denominator')}}}"
        if t is NodeType.BEVELLED_FRACTION:
            return f"{{{g('numerator')}}}/{{{g('denominator')}}}"
        if t is NodeType.SQRT:
            return f"\\sqrt{{{g('radicand')}}}"
        if t is NodeType.NTHROOT:
            index = g("index")
            if "[" in index or "]" in index:
                index = f"{{{index}}}"
            return f"\\sqrt[{index}]{{{g('radicand')}}}"
        if t is NodeType.SCRIPT:
            return f"{{{g('base')}}}" + self._scripts(node, depth, max_depth)
        if t is NodeType.BRACKET:
            left, right = _bracket_commands(props.get("left_symbol", "("),
                                            props.get("right_symbol", ")"),
                                            max_depth - depth)
            content = self._group(node.containers.get("content"), depth + 1, max_depth)
            return _join_chunks([left, content, right]) + self._scripts(node, depth, max_depth)
        if t is NodeType.LARGE_OPERATOR:
            return self._serialize_large_operator(node, g)
        if t is NodeType.INTEGRAL:
            return self._serialize_integral(node, g)
        if t is NodeType.DERIVATIVE:
            return self._serialize_derivative(node, g)
        if t in (NodeType.MATRIX, NodeType.STACK, NodeType.CASES):
            return self._serialize_grid(node, depth, max_depth)
        if t is NodeType.ACCENT:
            command = ACCENTS[props.get("accent_type", "hat")][0]
            latex = f"{command}{{{g('accent_base')}}}"
            if "accent_label" in node.containers:
                mark = "_" if props.get("position") == "under" else "^"
                latex += f"{mark}{{{g('accent_label')}}}"
            return latex
        if t is NodeType.FUNCTION:
            return self._serialize_function(node, g)
        raise ValueError(f"Cannot serialize node type {t}")

    def _scripts(self, node: Node, depth: int, max_depth: int) -> str:
        latex = ""
        if "superscript" in node.containers:
            latex += f"^{{{self._group(node.containers['superscript'], depth, max_depth)}}}"
        if "subscript" in node.containers:
            latex += f"_{{{self._group(node.containers['subscript'], depth, max_depth)}}}"
        return latex

    def _serialize_large_operator(self, node: Node, g) -> str:
        operator = node.props.get("operator", "∑")
        latex = LARGE_OPERATOR_COMMANDS.get(operator, operator)
        limit_mode = node.props.get("limit_mode")
        if limit_mode == "limits":
            latex += "\\limits"
        elif limit_mode == "nolimits":
            latex += "\\nolimits"
        latex += f"_{{{g('lower_limit')}}}^{{{g('upper_limit')}}}{{{g('operand')}}}"
        return _with_display_mode(latex, node)

    def _serialize_integral(self, node: Node, g) -> str:
        prefix = INTEGRAL_PREFIXES.get(node.props.get("integral_type", "single"), "int")
        style = "d" if self.differential_style == "roman" else "i"
        definite = "lower_limit" in node.containers
        latex = f"\\{prefix}{style}{'l' if definite else ''}"
        latex += f"{{{g('integrand')}}}{{{g('differential_variable')}}}"
        if definite:
            latex += f"{{{g('lower_limit')}}}{{{g('upper_limit')}}}"
        return _with_display_mode(latex, node)

    def _serialize_derivative(self, node: Node, g) -> str:
        props = node.props
        order = props.get("order", 1)
        if "order" in node.containers:
            order_latex = g("order")
        else:
            order_latex = "" if order in (None, 1) else str(order)
        function = g("function")
        variable = g("variable")
        long_form = props.get("is_long_form", False)
        partial = props.get("is_partial", False)
        display = props.get("display_mode") == "display"

        if self.differential_style == "roman":
            latex = "\\pdv" if partial else "\\dv"
            if order_latex:
                latex += f"[{order_latex}]"
            if long_form:
                latex += f"{{{variable}}}\\grande{{{function}}}"
            else:
                latex += f"{{{function}}}{{{variable}}}"
            return f"{{\\displaystyle {latex}}}" if display else latex

        d = "\\partial" if partial else "d"
        power = f"^{{{order_latex}}}" if order_latex else ""
        denominator = _join_chunks([d, variable.strip() or " "]) + power
        if long_form:
            command = "\\derivldfrac" if display else "\\derivlfrac"
            return f"{command}{{{d}{power}}}{{{denominator}}}{{{function}}}"
        numerator = _join_chunks([d + power, function.strip() or " "])
        command = "\\derivdfrac" if display else "\\derivfrac"
        return f"{command}{{{numerator}}}{{{denominator}}}"

    def _serialize_grid(self, node: Node, depth: int, max_depth: int) -> str:
        rows = node.props.get("rows", 1)
        cols = node.props.get("cols", 1)
        lines = []
        for r in range(rows):
            # Empty cells are written as {} so an empty last row is not mistaken for a trailing \\
            cells = [self._serialize_list(node.containers.get(cell_name(r, c), []), depth,
                                          max_depth, frozenset()).strip() or "{}"
                     for c in range(cols)]
            lines.append(" & ".join(cells))
        body = " \\\\ ".join(lines)
        if node.type is NodeType.MATRIX:
            env = MATRIX_ENVIRONMENTS.get(node.props.get("matrix_type", "parentheses"), "pmatrix")
            return f"\\begin{{{env}}}{body}\\end{{{env}}}"
        if node.type is NodeType.STACK:
            return f"\\begin{{array}}{{{'c' * cols}}}{body}\\end{{array}}"
        return f"\\begin{{cases}}{body}\\end{{cases}}"

    def _serialize_function(self, node: Node, g) -> str:
        name = node.props.get("function_name", "")
        function_type = node.props.get("function_type", "function")
        if name == "logn":
            head = "\\log"
        elif name in BUILTIN_FUNCTIONS:
            head = f"\\{name}"
        elif function_type == "functionlim":
            head = f"\\operatorname*{{{name}}}"
        else:
            head = f"\\operatorname{{{name}}}"
        base = node.containers.get("function_base")
        if base or name == "logn":
            head += f"_{{{g('function_base')}}}"
        return f"{head}{{{g('function_argument')}}}"

    # Parsing

    def parse(self, text: str) -> List[Node]:
        """Parse markup into a new node list.

        Raises:
            MarkupTooLargeError: if the markup exceeds MAX_MARKUP_SIZE.
        """
        if len(text) > EditorConstants.MAX_MARKUP_SIZE:
            raise MarkupTooLargeError(len(text), EditorConstants.MAX_MARKUP_SIZE)
        return self._parse(text)

    def _parse(self, text: str) -> List[Node]:
        result: List[Node] = []
        state: Dict[str, Optional[str]] = {"display_mode": None}
        n = len(text)
        i = 0
        while i < n:
            ch = text[i]
            if ch.isspace():
                i += 1
            elif ch == "{":
                i = self._parse_brace_group(text, i, result)
            elif ch in "^_":
                i = self._attach_script(text, i, result)
            elif ch == "\\":
                i = self._parse_command(text, i, result, state)
            else:
                result.append(self.builder.create_text_element(ch))
                i += 1
        return result

    def _parse_brace_group(self, text: str, i: int, result: List[Node]) -> int:
        content, end = parse_group(text, i)
        after = skip_spaces(text, end)
        if after < len(text) and text[after] in "^_":
            # Braced script base is kept whole rather than spliced
            return self._attach_script(text, after, result, base=self._parse(content))
        denominator_start = skip_spaces(text, after + 1)
        if (after < len(text) and text[after] == "/" and denominator_start < len(text)
                and text[denominator_start] == "{"):
            denominator, end = parse_group(text, denominator_start)
            fraction = self.builder.create_bevelled_fraction_element()
            fraction.containers["numerator"] = self._parse(content)
            fraction.containers["denominator"] = self._parse(denominator)
            result.append(fraction)
            return end
        result.extend(self._parse(content))
        return end

    def _attach_script(self, text: str, i: int, result: List[Node],
                       base: Optional[List[Node]] = None) -> int:
        """Attach a ``^``/``_`` argument at ``i``.

        With ``base`` given a new script is always started. Otherwise the
        previous node is extended when it is a script or evaluation bracket
        missing this slot, or else becomes the base of a new script.
        """
        slot = "superscript" if text[i] == "^" else "subscript"
        content, end = parse_group(text, skip_spaces(text, i + 1))
        nodes = self._parse(content)
        previous = result[-1] if result else None
        if (base is None and previous is not None and slot not in previous.containers
                and (previous.type is NodeType.SCRIPT or _is_evaluation_bracket(previous))):
            previous.containers[slot] = nodes
            return end
        if base is None and previous is not None:
            base = [result.pop()]
        target = self.builder.create_script_element(superscript=slot == "superscript",
                                                    subscript=slot == "subscript")
        target.containers["base"] = base or []
        target.containers[slot] = nodes
        result.append(target)
        return end

    def _parse_command(self, text: str, i: int, result: List[Node],
                       state: Dict[str, Optional[str]]) -> int:
        name = read_command_name(text, i)
        pos = i + len(name)
        b = self.builder

        if name == "\\displaystyle":
            state["display_mode"] = "display"
            return pos
        if name == "\\textstyle":
            state["display_mode"] = "inline"
            return pos
        if name in ESCAPED_CHARACTERS:
            result.append(b.create_text_element(ESCAPED_CHARACTERS[name]))
            return pos
        if name in _SPACING_COMMANDS or name in ("\\limits", "\\nolimits"):
            return pos

        if name in ("\\frac", "\\dfrac", "\\tfrac"):
            numerator, pos = parse_group(text, skip_spaces(text, pos))
            denominator, pos = parse_group(text, skip_spaces(text, pos))
            node = b.create_fraction_element("display" if name == "\\dfrac" else "inline")
            node.containers["numerator"] = self._parse(numerator)
            node.containers["denominator"] = self._parse(denominator)
            result.append(node)
            return pos

        if name == "\\sqrt":
            index, pos = read_optional_argument(text, skip_spaces(text, pos))
            radicand, pos = parse_group(text, skip_spaces(text, pos))
            if index is None:
                node = b.create_sqrt_element()
            else:
                node = b.create_nthroot_element()
                node.containers["index"] = self._parse(index)
            node.containers["radicand"] = self._parse(radicand)
            result.append(node)
            return pos

        if name in BRACKET_SIZE_LEFT:
            return self._parse_bracket(text, i, name, result)
        if name in BRACKET_SIZE_RIGHT:
            # Stray closer: drop it along with its delimiter
            _, end = _read_delimiter(text, skip_spaces(text, pos))
            return end

        if name in LARGE_OPERATORS:
            return self._parse_large_operator(text, pos, name, result, state)

        match = _INTEGRAL_COMMAND.match(name)
        if match:
            return self._parse_integral(text, pos, match, result, state)

        if name in ("\\dv", "\\pdv"):
            return self._parse_physics_derivative(text, pos, name == "\\pdv", result, state)
        if name in ("\\derivfrac", "\\derivdfrac", "\\derivlfrac", "\\derivldfrac"):
            return self._parse_derivative_fraction(text, pos, name, result)

        if name == "\\begin":
            return self._parse_environment(text, pos, result)

        if name in ACCENT_TYPES_BY_COMMAND:
            return self._parse_accent(text, pos, ACCENT_TYPES_BY_COMMAND[name], result)

        if name == "\\operatorname":
            starred = pos < len(text) and text[pos] == "*"
            function_name, pos = parse_group(text, skip_spaces(text, pos + (1 if starred else 0)))
            return self._parse_function(text, pos, function_name.strip(), result)
        if name[1:] in FUNCTION_CONFIG and name[1:] in BUILTIN_FUNCTIONS:
            return self._parse_function(text, pos, name[1:], result)

        if name in _FORMAT_COMMANDS:
            content, pos = parse_group(text, skip_spaces(text, pos))
            nodes = self._parse(content)
            for node in nodes:
                for _, _, leaf in b.iter_locations([node]):
                    if not leaf.is_structural:
                        for key, value in _FORMAT_COMMANDS[name].items():
                            setattr(leaf, key, value)
            result.extend(nodes)
            return pos
        if name in _WRAPPER_COMMANDS:
            return self._parse_wrapper(text, pos, _WRAPPER_COMMANDS[name], result)
        if name in ("\\textcolor", "\\color"):
            color, pos = parse_group(text, skip_spaces(text, pos))
            content, pos = parse_group(text, skip_spaces(text, pos))
            self._wrap_nodes(self._parse(content), "color", color.strip(), result)
            return pos

        if name == "\\text":
            content, pos = parse_group(text, skip_spaces(text, pos))
            if content:
                result.append(b.create_text_element(content))
            return pos
        if name == "\\textasciitilde":
            result.append(b.create_text_element("~"))
            return pos + 2 if text.startswith("{}", pos) else pos
        if name == "\\grande":
            content, pos = parse_group(text, skip_spaces(text, pos))
            result.extend(self._parse(content))
            return pos

        if name in LATEX_TO_UNICODE:
            result.append(b.create_text_element(LATEX_TO_UNICODE[name]))
            return pos
        length = get_latex_command_length(text, i)
        if length:
            result.append(b.create_text_element(LATEX_TO_UNICODE[text[i:i + length]]))
            return i + length

        logger.debug(f"Skipping unknown command {name} at offset {i}")
        return i + 1

    def _parse_bracket(self, text: str, i: int, left_command: str, result: List[Node]) -> int:
        pos = skip_spaces(text, i + len(left_command))
        left_symbol, pos = _read_delimiter(text, pos)
        if left_symbol is None:
            return i + len(left_command)

        content_start = pos
        depth = 1
        j = pos
        right_symbol = None
        end = len(text)
        content_end = len(text)
        while j < len(text):
            if text[j] != "\\":
                j += 1
                continue
            name = read_command_name(text, j)
            if name in BRACKET_SIZE_LEFT:
                depth += 1
            elif name in BRACKET_SIZE_RIGHT:
                symbol, after = _read_delimiter(text, skip_spaces(text, j + len(name)))
                depth -= 1
                if depth == 0:
                    right_symbol = symbol
                    content_end = j
                    end = after
                    break
                j = after
                continue
            j += len(name)

        if right_symbol is None:
            right_symbol = dict(BRACKET_PAIRS).get(left_symbol, left_symbol)
            logger.debug(f"Unclosed bracket {left_command}{left_symbol}; closing at end of input")
        node = self.builder.create_bracket_element(left_symbol, right_symbol)
        node.containers["content"] = self._parse(text[content_start:content_end])
        result.append(node)
        return end

    def _parse_large_operator(self, text: str, pos: int, command: str, result: List[Node],
                              state: Dict[str, Optional[str]]) -> int:
        limit_mode = "default"
        pos = skip_spaces(text, pos)
        if text.startswith("\\limits", pos):
            limit_mode, pos = "limits", pos + len("\\limits")
        elif text.startswith("\\nolimits", pos):
            limit_mode, pos = "nolimits", pos + len("\\nolimits")
        node = self.builder.create_large_operator_element(
            command, display_mode=state["display_mode"] or "inline", limit_mode=limit_mode)
        state["display_mode"] = None
        for _ in range(2):
            pos = skip_spaces(text, pos)
            if pos < len(text) and text[pos] in "_^":
                slot = "lower_limit" if text[pos] == "_" else "upper_limit"
                content, pos = parse_group(text, skip_spaces(text, pos + 1))
                node.containers[slot] = self._parse(content)
        pos = skip_spaces(text, pos)
        if pos < len(text) and text[pos] == "{":
            content, pos = parse_group(text, pos)
            node.containers["operand"] = self._parse(content)
        result.append(node)
        return pos

    def _parse_integral(self, text: str, pos: int, match, result: List[Node],
                        state: Dict[str, Optional[str]]) -> int:
        integral_type = INTEGRAL_TYPES_BY_PREFIX[match.group(1)]
        definite = bool(match.group(3))
        node = self.builder.create_integral_element(
            integral_type, has_limits=definite, display_mode=state["display_mode"] or "inline")
        state["display_mode"] = None
        slots = ["integrand", "differential_variable"]
        if definite:
            slots += ["lower_limit", "upper_limit"]
        for slot in slots:
            content, pos = parse_group(text, skip_spaces(text, pos))
            node.containers[slot] = self._parse(content)
        result.append(node)
        return pos

    def _new_derivative(self, order_text: Optional[str], long_form: bool, partial: bool,
                        display_mode: str) -> Node:
        if order_text is None:
            return self.builder.create_derivative_element(1, long_form, partial, display_mode)
        order_text = order_text.strip()
        if order_text.isdigit():
            return self.builder.create_derivative_element(int(order_text), long_form, partial,
                                                          display_mode)
        node = self.builder.create_derivative_element(None, long_form, partial, display_mode)
        node.containers["order"] = self._parse(order_text)
        return node

    def _parse_physics_derivative(self, text: str, pos: int, partial: bool, result: List[Node],
                                  state: Dict[str, Optional[str]]) -> int:
        display_mode = state["display_mode"] or "inline"
        state["display_mode"] = None
        order, pos = read_optional_argument(text, skip_spaces(text, pos))
        first, pos = parse_group(text, skip_spaces(text, pos))
        after = skip_spaces(text, pos)
        if after < len(text) and text[after] == "{":
            second, pos = parse_group(text, after)
            node = self._new_derivative(order, False, partial, display_mode)
            node.containers["function"] = self._parse(first)
            node.containers["variable"] = self._parse(second)
        else:
            node = self._new_derivative(order, True, partial, display_mode)
            node.containers["variable"] = self._parse(first)
            if text.startswith("\\grande", after):
                function, pos = parse_group(text, skip_spaces(text, after + len("\\grande")))
                node.containers["function"] = self._parse(function)
        result.append(node)
        return pos

    def _parse_derivative_fraction(self, text: str, pos: int, command: str,
                                   result: List[Node]) -> int:
        display_mode = "display" if command in ("\\derivdfrac", "\\derivldfrac") else "inline"
        long_form = command in ("\\derivlfrac", "\\derivldfrac")
        numerator, pos = parse_group(text, skip_spaces(text, pos))
        denominator, pos = parse_group(text, skip_spaces(text, pos))
        function = None
        if long_form:
            function, pos = parse_group(text, skip_spaces(text, pos))

        num = _split_differential(numerator)
        den = _split_differential(denominator)
        if num is None or den is None:
            node = self.builder.create_fraction_element(display_mode)
            node.containers["numerator"] = self._parse(numerator)
            node.containers["denominator"] = self._parse(denominator)
            result.append(node)
            if function is not None:
                result.extend(self._parse(function))
            return pos

        partial, num_order, num_rest = num
        _, _, den_rest = den
        # The denominator power only repeats the order; otherwise it belongs to the variable
        exponent = _TRAILING_EXPONENT.search(den_rest)
        if (num_order is not None and exponent
                and exponent.group(1).strip() == num_order.strip()):
            den_rest = den_rest[:exponent.start()]
        node = self._new_derivative(num_order, long_form, partial, display_mode)
        node.containers["function"] = self._parse(function if long_form else num_rest)
        node.containers["variable"] = self._parse(den_rest)
        result.append(node)
        return pos

    def _parse_environment(self, text: str, pos: int, result: List[Node]) -> int:
        env, pos = parse_group(text, pos)
        env = env.strip()
        opener = f"\\begin{{{env}}}"
        closer = f"\\end{{{env}}}"
        depth = 1
        j = pos
        body_end = len(text)
        end = len(text)
        while j < len(text):
            if text.startswith(opener, j):
                depth += 1
                j += len(opener)
            elif text.startswith(closer, j):
                depth -= 1
                if depth == 0:
                    body_end = j
                    end = j + len(closer)
                    break
                j += len(closer)
            else:
                j += 1
        body = text[pos:body_end]

        if env == "array":
            _, column_end = parse_group(body, skip_spaces(body, 0))
            body = body[column_end:]
            node_factory = lambda rows, cols: self.builder.create_stack_element(rows, cols)
        elif env == "cases":
            node_factory = lambda rows, cols: self.builder.create_cases_element(rows)
        elif env in MATRIX_TYPES_BY_ENVIRONMENT:
            matrix_type = MATRIX_TYPES_BY_ENVIRONMENT[env]
            node_factory = lambda rows, cols: self.builder.create_matrix_element(rows, cols, matrix_type)
        else:
            logger.debug(f"Unknown environment {env}; parsing body inline")
            result.extend(self._parse(body))
            return end

        rows = split_top_level(body, "\\\\")
        if len(rows) > 1 and not rows[-1].strip():
            rows.pop()
        cells = [split_top_level(row, "&") for row in rows]
        cols = max(len(row) for row in cells)
        node = node_factory(len(cells), cols)
        for r, row in enumerate(cells):
            for c, cell in enumerate(row[:node.props["cols"]]):
                node.containers[cell_name(r, c)] = self._parse(cell)
        result.append(node)
        return end

    def _parse_accent(self, text: str, pos: int, accent_type: str, result: List[Node]) -> int:
        base, pos = parse_group(text, skip_spaces(text, pos))
        label_mark = {"overbrace": "^", "underbrace": "_"}.get(accent_type)
        after = skip_spaces(text, pos)
        labeled = label_mark is not None and after < len(text) and text[after] == label_mark
        node = self.builder.create_accent_element(accent_type, labeled=labeled)
        node.containers["accent_base"] = self._parse(base)
        if labeled:
            label, pos = parse_group(text, skip_spaces(text, after + 1))
            node.containers["accent_label"] = self._parse(label)
        result.append(node)
        return pos

    def _parse_function(self, text: str, pos: int, name: str, result: List[Node]) -> int:
        pos = skip_spaces(text, pos)
        base = None
        if pos < len(text) and text[pos] == "_":
            base, pos = parse_group(text, skip_spaces(text, pos + 1))
            pos = skip_spaces(text, pos)
            if name == "log":
                name = "logn"
        node = self.builder.create_function_element(name)
        if base is not None:
            node.add_container("function_base")
            node.containers["function_base"] = self._parse(base)
        if pos < len(text) and text[pos] == "{":
            argument, pos = parse_group(text, pos)
            node.containers["function_argument"] = self._parse(argument)
        result.append(node)
        return pos

    def _parse_wrapper(self, text: str, pos: int, kind: str, result: List[Node]) -> int:
        content, pos = parse_group(text, skip_spaces(text, pos))
        value = True
        if kind == "underline":
            value = "single"
            inner = content.strip()
            if inner.startswith("\\underline"):
                inner_content, inner_end = parse_group(inner, skip_spaces(inner, len("\\underline")))
                if inner_end == len(inner):
                    value = "double"
                    content = inner_content
        self._wrap_nodes(self._parse(content), kind, value, result)
        return pos

    def _wrap_nodes(self, nodes: List[Node], kind: str, value, result: List[Node]) -> None:
        if nodes:
            wrapper = self.builder.create_wrapper(kind, value)
            for node in nodes:
                node.wrappers.setdefault(kind, wrapper)
        result.extend(nodes)


# Serialization helpers

def _deepest_bracket(nodes: List[Node], depth: int) -> int:
    deepest = 0
    for node in nodes:
        if node.type is NodeType.BRACKET:
            deepest = max(deepest, depth)
        for name in node.container_names():
            inner = depth + 1 if node.type is NodeType.BRACKET and name == "content" else depth
            deepest = max(deepest, _deepest_bracket(node.containers[name], inner))
    return deepest


def _outermost_wrapper(node: Node, handled: frozenset):
    for kind in WRAPPER_KINDS:
        wrapper = node.wrappers.get(kind)
        if wrapper is not None and wrapper.id not in handled:
            return wrapper
    return None


def _wrap(kind: str, value, inner: str) -> str:
    if kind == "color":
        return f"\\textcolor{{{value}}}{{{inner}}}"
    if kind == "cancel":
        return f"\\cancel{{{inner}}}"
    if kind == "strikethrough":
        return f"\\sout{{{inner}}}"
    if value == "double":
        return f"\\underline{{\\underline{{{inner}}}}}"
    return f"\\underline{{{inner}}}"


def _formatting_key(node: Node) -> Tuple:
    return (bool(node.bold), node.italic, node.underline or None, node.color or None,
            bool(node.cancel), bool(node.strikethrough))


def _apply_direct_formatting(latex: str, key: Tuple) -> str:
    bold, italic, underline, color, cancel, strikethrough = key
    if bold and italic:
        latex = (f"\\textit{{\\textbf{{{latex}}}}}" if latex.strip().isdigit()
                 else f"\\boldsymbol{{{latex}}}")
    elif bold:
        latex = f"\\mathbf{{{latex}}}"
    elif italic:
        latex = f"\\mathit{{{latex}}}"
    elif italic is False:
        latex = f"\\mathrm{{{latex}}}"
    if underline:
        latex = _wrap("underline", underline, latex)
    if strikethrough:
        latex = _wrap("strikethrough", True, latex)
    if cancel:
        latex = _wrap("cancel", True, latex)
    if color:
        latex = _wrap("color", color, latex)
    return latex


def _text_to_latex(value: str) -> str:
    if value in UNICODE_TO_LATEX:
        latex = UNICODE_TO_LATEX[value]
    elif value in TEXT_ESCAPES:
        latex = TEXT_ESCAPES[value]
    elif len(value) > 1:
        latex = f"\\text{{{value}}}"
    else:
        latex = value
    if is_operator(value):
        return f" {latex} "
    return latex


def _join_chunks(chunks: List[str]) -> str:
    """Concatenate chunks, keeping a command name from running into a letter."""
    out = ""
    for chunk in chunks:
        if out and chunk and chunk[0].isalpha() and _TRAILING_COMMAND.search(out):
            out += " "
        out += chunk
    return out


def _bracket_commands(left: str, right: str, distance: int) -> Tuple[str, str]:
    """Left and right delimiter markup; size grows with distance from the innermost bracket."""
    size = min(max(distance, 0), len(BRACKET_SIZE_LEFT) - 1)
    left_token = BRACKET_DELIMITERS.get(left, left)
    right_token = BRACKET_DELIMITERS.get(right, right)
    return BRACKET_SIZE_LEFT[size] + left_token, BRACKET_SIZE_RIGHT[size] + right_token


def _read_delimiter(text: str, pos: int) -> Tuple[Optional[str], int]:
    for token, symbol in DELIMITER_TOKENS:
        if text.startswith(token, pos):
            end = pos + len(token)
            # Named delimiters must end at a word boundary
            if token[-1].isalpha() and end < len(text) and text[end].isalpha():
                continue
            return symbol, end
    return None, pos


def _split_differential(latex: str) -> Optional[Tuple[bool, Optional[str], str]]:
    """Split ``d^{n}rest`` or ``\\partial^{n}rest`` into (partial, order, rest)."""
    latex = latex.strip()
    if latex.startswith("\\partial") and not latex[len("\\partial"):][:1].isalpha():
        partial, rest = True, latex[len("\\partial"):]
    elif latex.startswith("d"):
        partial, rest = False, latex[1:]
    else:
        return None
    rest = rest.lstrip()
    order = None
    if rest.startswith("^"):
        order, end = parse_group(rest, skip_spaces(rest, 1))
        rest = rest[end:]
    return partial, order, rest.strip()


def _with_display_mode(latex: str, node: Node) -> str:
    if node.props.get("display_mode") == "display":
        return f"{{\\displaystyle {latex}}}"
    return latex
