"""eqedit - A structural equation editor core with LaTeX import and export."""

from .context import ContextInfo, ContextManager
from .errors import EquationError, InvalidFormattingError, MarkupTooLargeError
from .latex import LatexConverter
from .model import EquationBuilder, Node, NodeType, Wrapper
from .selection import Selection, SelectionManager
from .session import EditorSession

__all__ = [
    'ContextInfo',
    'ContextManager',
    'EditorSession',
    'EquationBuilder',
    'EquationError',
    'InvalidFormattingError',
    'LatexConverter',
    'MarkupTooLargeError',
    'Node',
    'NodeType',
    'Selection',
    'SelectionManager',
    'Wrapper',
]
