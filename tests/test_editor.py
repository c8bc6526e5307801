"""Test the terminal editor controller without a real terminal."""

import os
import unittest
from unittest.mock import patch

from eqedit.editor import CONTENT_INDENT, Editor
from eqedit.keyboard import KeyEvent, KeyType
from eqedit.session import EditorSession


def regular(ch):
    return KeyEvent(key_type=KeyType.REGULAR, value=ch, raw=ch)


def special(name):
    return KeyEvent(key_type=KeyType.SPECIAL, value=name, raw=name, is_sequence=True)


def ctrl(ch):
    return KeyEvent(key_type=KeyType.CTRL, value=ch, raw=ch, is_ctrl=True)


class TestEditor(unittest.TestCase):
    """Test key handling, the command prompt and screen layout."""

    def setUp(self):
        patcher = patch('eqedit.editor.TerminalInterface')
        self.terminal_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.editor = Editor(session=EditorSession())

    def tearDown(self):
        os.close(self.editor._resize_pipe_r)
        os.close(self.editor._resize_pipe_w)

    def type_command(self, name):
        self.editor._handle_key_event(regular('\\'))
        for ch in name:
            self.editor._handle_key_event(regular(ch))
        self.editor._handle_key_event(special('enter'))

    def test_command_prompt_inserts_symbol(self):
        self.type_command("alpha")
        self.assertIsNone(self.editor.prompt_mode)
        self.assertIsNone(self.editor.status_message)
        self.assertEqual(self.editor.session.to_latex(), "\\alpha")

    def test_command_prompt_inserts_structures(self):
        self.type_command("frac")
        self.assertEqual(self.editor.session.to_latex(), "\\frac{ }{ }")
        self.type_command("sum")
        self.type_command("sin")
        self.type_command("hat")
        self.assertTrue(self.editor.session.context.active_context_path.endswith("/accent_base"))
        self.assertEqual(self.editor.session.to_latex(),
                         "\\frac{ }{ }\\sum\\limits_{ }^{ }{\\sin{\\hat{ }}}")

    def test_unknown_command(self):
        self.type_command("nosuch")
        self.assertEqual(self.editor.status_message, "Unknown command \\nosuch")
        self.assertEqual(self.editor.session.to_latex(), "")

    def test_command_prompt_editing(self):
        self.editor._handle_key_event(regular('\\'))
        self.editor._handle_key_event(regular('p'))
        self.editor._handle_key_event(regular('x'))
        self.editor._handle_key_event(special('backspace'))
        self.editor._handle_key_event(regular('i'))
        self.assertEqual(self.editor.prompt_input, "pi")
        self.editor._handle_key_event(special('escape'))
        self.assertIsNone(self.editor.prompt_mode)
        self.assertEqual(self.editor.session.to_latex(), "")

    def test_backspace_on_empty_prompt_cancels(self):
        self.editor._handle_key_event(regular('\\'))
        self.editor._handle_key_event(special('backspace'))
        self.assertIsNone(self.editor.prompt_mode)

    def test_error_mode_only_allows_quit(self):
        self.editor.running = True
        self.editor.error_mode = True
        self.editor._handle_key_event(regular('x'))
        self.assertEqual(self.editor.session.to_latex(), "")
        self.editor._handle_key_event(ctrl('q'))
        self.assertFalse(self.editor.running)

    def test_escape_clears_selection(self):
        self.editor._handle_key_event(regular('x'))
        self.editor._handle_key_event(ctrl('a'))
        self.assertTrue(self.editor.session.selection.has_selection())
        self.editor._handle_key_event(special('escape'))
        self.assertFalse(self.editor.session.selection.has_selection())

    def test_build_lines_empty(self):
        lines, cursor_y, cursor_x, ranges = self.editor.build_lines()
        self.assertEqual(lines[0], "(empty)")
        self.assertEqual(lines[2], "in root")
        self.assertEqual(cursor_y, 3)
        self.assertEqual(cursor_x, CONTENT_INDENT)
        self.assertEqual(ranges, [None, None, None, None])

    def test_build_lines_cursor_and_selection(self):
        self.editor.session.insert_text("ab")
        lines, _, cursor_x, _ = self.editor.build_lines()
        self.assertEqual(lines[0], "ab")
        self.assertEqual(lines[3], "  a b")
        self.assertEqual(cursor_x, 6)

        self.editor.session.move(-1)
        self.editor.session.extend_selection(-1)
        lines, _, cursor_x, ranges = self.editor.build_lines()
        self.assertEqual(cursor_x, 2)
        self.assertEqual(ranges[3], (2, 3))

    def test_load_latex_clears_history(self):
        self.editor.load_latex("\\sqrt{2}")
        self.assertEqual(self.editor.session.to_latex(), "\\sqrt{2}")
        self.assertFalse(self.editor.session.history.can_undo())

    def test_draw_passes_prompt_to_terminal(self):
        self.editor._handle_key_event(regular('\\'))
        self.editor._handle_key_event(regular('a'))
        self.editor._draw()
        kwargs = self.editor.terminal.draw_lines.call_args.kwargs
        self.assertEqual(kwargs['status_override'], " \\a")


if __name__ == '__main__':
    unittest.main()
