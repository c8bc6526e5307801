"""Constants and configuration for the eqedit editor."""

class EditorConstants:
    """Central configuration constants for the editor."""

    # Context paths
    ROOT_PATH = "root"  # Path of the top-level equation container
    PATH_SEPARATOR = "/"

    # Identifiers (never reused for the lifetime of a builder)
    ELEMENT_ID_PREFIX = "element-"
    WRAPPER_ID_PREFIX = "wrapper-"

    # Markup limits
    MAX_MARKUP_SIZE = 1024 * 1024  # Refuse to parse markup larger than 1 MiB
    MAX_COMMAND_LENGTH = 20  # Longest symbol command considered when matching

    # Parentheses scaling by fraction stacking depth inside the pair
    PAREN_SCALES = (1.0, 1.5, 1.75, 2.0)

    # Undo history
    DEFAULT_UNDO_LIMIT = 500

    # Matrix defaults
    DEFAULT_MATRIX_ROWS = 2
    DEFAULT_MATRIX_COLS = 2

    # Terminal front end
    MIN_TERMINAL_WIDTH = 40
    EMPTY_EQUATION_PLACEHOLDER = "(empty)"
    TERMINAL_TOO_NARROW_MESSAGE = "Terminal too narrow! Need at least {} columns."
    CURRENT_WIDTH_MESSAGE = "Current width: {} columns."
