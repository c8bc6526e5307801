"""Exceptions raised by the equation editor core.

Most editing conditions (a stale context path, a container name the node
type does not declare, unbalanced braces in markup) are recovered locally
and reported through falsy return values. The classes here cover API
misuse that callers are expected to handle.
"""


class EquationError(Exception):
    """Base class for eqedit errors."""


class MarkupTooLargeError(EquationError):
    """Raised when markup exceeds EditorConstants.MAX_MARKUP_SIZE."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Markup size {size} exceeds limit of {limit} characters")
        self.size = size
        self.limit = limit


class InvalidFormattingError(EquationError, ValueError):
    """Raised for formatting keys or values the model does not support."""
