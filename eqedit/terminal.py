"""Terminal interface using Blessed for display and Curtsies for input."""

import blessed
from typing import Optional
import sys
import select


class TerminalInterface:
    """Handles terminal I/O using Blessed."""

    def __init__(self, terminal: Optional[blessed.Terminal] = None):
        """Initialize with a terminal instance (or create one)."""
        self.term = terminal or blessed.Terminal()
        self.is_fullscreen = False
        self._curtsies_input: Optional[object] = None
        self._curtsies_active: bool = False

    def setup(self):
        """Enter fullscreen mode and prepare terminal."""
        print(self.term.enter_fullscreen)
        print(self.term.hide_cursor)
        print(self.term.clear)
        self.is_fullscreen = True
        if self._curtsies_input is None:
            try:
                from curtsies import Input  # type: ignore
                # Enter raw mode immediately so reads work
                self._curtsies_input = Input(keynames='curtsies')  # type: ignore
                self._curtsies_input.__enter__()
                self._curtsies_active = True
            except Exception:
                # Justification: curtsies may fail to initialize on limited
                # terminals (CI, pipes). Run without input rather than crash.
                self._curtsies_input = None
                self._curtsies_active = False

    def cleanup(self):
        """Exit fullscreen mode and restore terminal."""
        if self.is_fullscreen:
            print(self.term.exit_fullscreen)
            print(self.term.normal_cursor)
            self.is_fullscreen = False
        if self._curtsies_input is not None:
            try:
                if self._curtsies_active:
                    self._curtsies_input.__exit__(None, None, None)  # type: ignore
            except Exception:
                # Justification: teardown should never crash the app. Any
                # failure to exit raw mode is non-fatal at this point.
                pass
            finally:
                self._curtsies_input = None
                self._curtsies_active = False

    def draw_lines(self, lines: list[str], cursor_y: int, cursor_x: int,
                   left_margin: int = 0, status_override: Optional[str] = None,
                   selection_ranges: Optional[list] = None):
        """Draw text lines and position the cursor.

        Args:
            lines: List of strings to display
            cursor_y: Cursor row position (0-based)
            cursor_x: Cursor column position (0-based)
            left_margin: Number of spaces to indent from left
            status_override: Status message to display instead of the help hint
            selection_ranges: Per-line (start, end) column ranges to highlight
        """
        print(self.term.home + self.term.clear, end='')
        view_width = max(0, self.term.width - left_margin)

        for y, line in enumerate(lines):
            print(self.term.move(y, left_margin), end='')
            display_line = line[:view_width]
            if selection_ranges and y < len(selection_ranges) and selection_ranges[y]:
                start_col, end_col = selection_ranges[y]
                print(display_line[:start_col], end='')
                print(self.term.reverse + display_line[start_col:end_col] + self.term.normal, end='')
                print(display_line[end_col:], end='')
            else:
                print(display_line, end='')

        print(self.term.move(self.term.height - 1, 0), end='')
        if status_override:
            print(status_override[:self.term.width].ljust(self.term.width), end='')
        else:
            help_text = "F1 for help"
            print(' ' * self.term.width, end='')
            print(self.term.move(self.term.height - 1, self.term.width - len(help_text) - 1), end='')
            print(help_text, end='')

        if status_override and status_override.startswith(' \\'):
            # Cursor follows the command being typed
            print(self.term.move(self.term.height - 1, len(status_override)) + self.term.normal_cursor,
                  end='', flush=True)
        else:
            print(self.term.move(cursor_y, cursor_x + left_margin) + self.term.normal_cursor,
                  end='', flush=True)

    def draw_error_message(self, message1: str, message2: str = ""):
        """Draw an error message in the center of the screen.

        Args:
            message1: Primary error message
            message2: Secondary information
        """
        print(self.term.home + self.term.clear, end='')

        center_y = self.term.height // 2
        box_width = max(len(message1), len(message2)) + 4
        left_margin = max(0, (self.term.width - box_width) // 2)

        print(self.term.move(center_y - 2, left_margin) + "╔" + "═" * (box_width - 2) + "╗", end='')
        print(self.term.move(center_y - 1, left_margin) + "║ " + message1.center(box_width - 4) + " ║", end='')
        if message2:
            print(self.term.move(center_y, left_margin) + "║ " + message2.center(box_width - 4) + " ║", end='')
            print(self.term.move(center_y + 1, left_margin) + "╚" + "═" * (box_width - 2) + "╝", end='')
        else:
            print(self.term.move(center_y, left_margin) + "╚" + "═" * (box_width - 2) + "╝", end='')

        help_text = "Ctrl-Q to quit | Resize terminal to continue"
        help_pos = max(0, (self.term.width - len(help_text)) // 2)
        print(self.term.move(self.term.height - 1, help_pos), end='')
        print(help_text, end='', flush=True)

    def get_key(self, timeout=None):
        """Get a single keypress from the user.

        Args:
            timeout: Timeout in seconds (None for blocking, 0 for non-blocking)

        Returns:
            The curtsies key name as a string, or None when nothing arrived.
        """
        if self._curtsies_input is None:
            return None
        if timeout is None:
            return str(next(self._curtsies_input))
        r, _, _ = select.select([sys.stdin], [], [], float(timeout))
        if not r:
            return None
        return str(next(self._curtsies_input))

    @property
    def width(self):
        """Terminal width in columns."""
        return self.term.width

    @property
    def height(self):
        """Terminal height in rows (excluding status line)."""
        return self.term.height - 1  # Reserve one line for status
