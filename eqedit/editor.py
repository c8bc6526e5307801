"""Interactive terminal equation editor."""

import logging
import os
import select
import signal
import sys
import termios
from typing import Optional

from .commands import CommandRegistry
from .constants import EditorConstants
from .errors import EquationError
from .keyboard import KeyboardHandler, KeyEvent, KeyType
from .session import EditorSession
from .settings_persistence import get_persistence
from .symbols import ACCENT_TYPES_BY_COMMAND, FUNCTION_CONFIG, LARGE_OPERATORS, LATEX_TO_UNICODE
from .terminal import TerminalInterface

logger = logging.getLogger(__name__)

CONTENT_INDENT = 2


class Editor:
    """Main equation editor controller."""

    def __init__(self, session: Optional[EditorSession] = None):
        """Initialize the editor components."""
        self.terminal = TerminalInterface()
        self.keyboard = KeyboardHandler(self.terminal)
        self.session = session or EditorSession.from_settings(get_persistence().load_settings())
        self.command_registry = CommandRegistry()
        self.running = False
        self.error_mode = False  # True when terminal is too narrow
        self._resize_pipe_r, self._resize_pipe_w = os.pipe()
        self.status_message = None
        self.prompt_mode = None  # None or 'command'
        self.prompt_input = ""

    def _handle_resize(self, signum, frame):
        """Handle terminal resize signal."""
        del signum, frame  # Unused
        os.write(self._resize_pipe_w, b'R')

    def run(self):
        """Run the main editor loop."""
        self.terminal.setup()
        self.running = True
        original_winch_handler = signal.signal(signal.SIGWINCH, self._handle_resize)

        try:
            with self.terminal.term.cbreak():
                old_settings = None
                try:
                    # Let Ctrl-Q, Ctrl-S and Ctrl-V reach the editor
                    old_settings = termios.tcgetattr(sys.stdin)
                    new_settings = list(old_settings)
                    new_settings[0] &= ~(termios.IXON | termios.IXOFF)
                    new_settings[3] &= ~termios.IEXTEN
                    termios.tcsetattr(sys.stdin, termios.TCSANOW, new_settings)
                except (termios.error, AttributeError, OSError):
                    old_settings = None

                need_draw = True
                while self.running:
                    if need_draw:
                        if self.terminal.width < EditorConstants.MIN_TERMINAL_WIDTH:
                            self.error_mode = True
                            self._draw_error()
                        else:
                            self.error_mode = False
                            self._draw()
                        need_draw = False

                    ready, _, _ = select.select([0, self._resize_pipe_r], [], [])
                    if self._resize_pipe_r in ready:
                        os.read(self._resize_pipe_r, 1024)
                        need_draw = True
                    elif 0 in ready:
                        key_event = self.keyboard.get_key_event(timeout=0)
                        if key_event:
                            self._handle_key_event(key_event)
                            need_draw = True

                if old_settings:
                    try:
                        termios.tcsetattr(sys.stdin, termios.TCSANOW, old_settings)
                    except (termios.error, OSError):
                        pass
        except KeyboardInterrupt:
            pass
        finally:
            signal.signal(signal.SIGWINCH, original_winch_handler)
            os.close(self._resize_pipe_r)
            os.close(self._resize_pipe_w)
            self.terminal.cleanup()

    def build_lines(self):
        """Lay out the screen.

        Returns:
            (lines, cursor_y, cursor_x, selection_ranges). The last line shows
            the active container one fragment per node, which is where the
            cursor and any selection are drawn.
        """
        session = self.session
        latex = session.to_latex() or EditorConstants.EMPTY_EQUATION_PLACEHOLDER
        path = session.context.active_context_path or EditorConstants.ROOT_PATH
        context = session.context.get_current_context()
        container = context.container if context is not None else []

        fragments = [session.converter.serialize([node]) or "·" for node in container]
        starts = []
        x = CONTENT_INDENT
        for fragment in fragments:
            starts.append(x)
            x += len(fragment) + 1
        cursor = session.context.cursor_position
        cursor_x = starts[cursor] if cursor < len(starts) else x

        lines = [latex, "", f"in {path}", " " * CONTENT_INDENT + " ".join(fragments)]
        selection_ranges = [None] * len(lines)
        current = session.selection.selection
        if session.selection.has_selection() and current.context_path == path:
            start, end = current.start_position, current.end_position
            selection_ranges[-1] = (starts[start], starts[end - 1] + len(fragments[end - 1]))
        return lines, len(lines) - 1, cursor_x, selection_ranges

    def _draw(self):
        """Draw the current editor state to terminal."""
        lines, cursor_y, cursor_x, selection_ranges = self.build_lines()
        status_override = None
        if self.prompt_mode == 'command':
            status_override = f" \\{self.prompt_input}"
        elif self.status_message:
            status_override = f" {self.status_message}"
        self.terminal.draw_lines(lines, cursor_y, cursor_x, left_margin=1,
                                 status_override=status_override,
                                 selection_ranges=selection_ranges)

    def _draw_error(self):
        """Draw error message when terminal is too narrow."""
        self.terminal.draw_error_message(
            EditorConstants.TERMINAL_TOO_NARROW_MESSAGE.format(EditorConstants.MIN_TERMINAL_WIDTH),
            EditorConstants.CURRENT_WIDTH_MESSAGE.format(self.terminal.width)
        )

    def _handle_key_event(self, key_event: KeyEvent):
        """Handle a keyboard event."""
        if self.status_message and not self.prompt_mode:
            self.status_message = None

        if self.prompt_mode == 'command':
            self._handle_command_prompt(key_event)
            return

        # Only quitting works while the terminal is too narrow
        if self.error_mode and not (key_event.key_type == KeyType.CTRL and key_event.value == 'q'):
            return

        if key_event.key_type == KeyType.SPECIAL and key_event.value == 'escape':
            self.session.selection.clear_selection()
            return

        self.command_registry.execute(self, key_event)

    def _handle_command_prompt(self, key_event: KeyEvent):
        """Collect a command name after '\\'; Enter inserts it, Escape cancels."""
        if key_event.key_type == KeyType.SPECIAL and key_event.value == 'escape':
            self.prompt_mode = None
        elif key_event.key_type == KeyType.SPECIAL and key_event.value == 'backspace':
            if self.prompt_input:
                self.prompt_input = self.prompt_input[:-1]
            else:
                self.prompt_mode = None
        elif key_event.key_type == KeyType.SPECIAL and key_event.value in ('enter', 'tab'):
            name = self.prompt_input
            self.prompt_mode = None
            self.prompt_input = ""
            self.status_message = None if self.insert_command(name) else f"Unknown command \\{name}"
        elif key_event.key_type == KeyType.REGULAR:
            self.prompt_input += key_event.value

    def insert_command(self, name: str) -> bool:
        """Insert whatever a typed command name stands for.

        Symbols, large operators, functions and accents are looked up by
        name; anything else is parsed as markup.
        """
        command = "\\" + name
        session = self.session
        if command in LATEX_TO_UNICODE:
            return session.insert_symbol(command)
        if command in LARGE_OPERATORS:
            return session.insert_large_operator(command)
        if command in ACCENT_TYPES_BY_COMMAND:
            return session.insert_accent(ACCENT_TYPES_BY_COMMAND[command])
        if name in FUNCTION_CONFIG:
            return session.insert_function(name)
        try:
            nodes = session.converter.parse(command)
        except EquationError as e:
            logger.warning(f"Could not parse {command}: {e}")
            return False
        if not any(node.is_structural for node in nodes):
            return False
        return session.insert_nodes(nodes)

    def load_latex(self, text: str):
        """Load initial markup into the session."""
        self.session.load_latex(text)
        self.session.history.clear()
