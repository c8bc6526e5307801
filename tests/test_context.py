"""Test context path resolution and cursor navigation."""

import unittest

import pytest

from eqedit.context import ContextManager, join_path, path_depth, split_path
from eqedit.model import EquationBuilder


def test_split_path():
    assert split_path("root") == ("root", None, None)
    assert split_path("root/element-1/numerator") == ("root", "element-1", "numerator")
    assert split_path("root/element-1/base/element-4/superscript") == (
        "root/element-1/base", "element-4", "superscript")


def test_join_path_and_depth():
    path = join_path("root", "element-2", "radicand")
    assert path == "root/element-2/radicand"
    assert path_depth("root") == 0
    assert path_depth(path) == 1
    assert path_depth(join_path(path, "element-5", "index")) == 2


class TestContextManager(unittest.TestCase):
    """Test navigation rules between containers."""

    def setUp(self):
        self.builder = EquationBuilder()
        self.context = ContextManager(self.builder)
        self.context.enter_root_context()

    def insert_structure(self, node):
        self.context.insert_element_at_cursor(node)
        return node

    def test_get_context_for_missing_element(self):
        self.assertIsNone(self.context.get_context("root/element-42/numerator"))
        self.assertIsNone(self.context.get_context(None))

    def test_get_context_for_undeclared_container(self):
        fraction = self.insert_structure(self.builder.create_fraction_element())
        self.assertIsNone(self.context.get_context(f"root/{fraction.id}/radicand"))
        info = self.context.get_context(f"root/{fraction.id}/numerator")
        self.assertIs(info.parent, fraction)
        self.assertIs(info.container, fraction.containers["numerator"])

    def test_enter_context_clamps_position(self):
        fraction = self.insert_structure(self.builder.create_fraction_element())
        path = f"root/{fraction.id}/numerator"
        self.assertTrue(self.context.enter_context_path(path, 10))
        self.assertEqual(self.context.cursor_position, 0)
        self.assertFalse(self.context.enter_context_path("root/element-99/numerator"))
        self.assertEqual(self.context.active_context_path, path)

    def test_move_right_leaves_structure_after_it(self):
        fraction = self.insert_structure(self.builder.create_fraction_element())
        self.context.enter_context_path(f"root/{fraction.id}/numerator")
        self.context.insert_text_at_cursor("1")

        self.assertTrue(self.context.move_cursor(1))
        self.assertEqual(self.context.active_context_path, "root")
        self.assertEqual(self.context.cursor_position, 1)

    def test_move_left_leaves_structure_before_it(self):
        self.context.insert_text_at_cursor("a")
        sqrt = self.insert_structure(self.builder.create_sqrt_element())
        self.context.enter_context_path(f"root/{sqrt.id}/radicand")

        self.assertTrue(self.context.move_cursor(-1))
        self.assertEqual(self.context.active_context_path, "root")
        self.assertEqual(self.context.cursor_position, 1)

    def test_move_at_root_boundary_is_noop(self):
        self.context.insert_text_at_cursor("a")
        self.assertFalse(self.context.move_cursor(1))
        self.assertEqual(self.context.cursor_position, 1)
        self.context.move_to_start()
        self.assertFalse(self.context.move_cursor(-1))
        self.assertEqual(self.context.cursor_position, 0)

    def test_home_and_end(self):
        for value in "abc":
            self.context.insert_text_at_cursor(value)
        self.context.move_to_start()
        self.assertEqual(self.context.cursor_position, 0)
        self.context.move_to_end()
        self.assertEqual(self.context.cursor_position, 3)

    def test_fraction_up_down(self):
        fraction = self.insert_structure(self.builder.create_fraction_element())
        numerator = f"root/{fraction.id}/numerator"
        self.context.enter_context_path(numerator)

        self.assertTrue(self.context.navigate_up_down("down"))
        self.assertEqual(self.context.active_context_path, f"root/{fraction.id}/denominator")
        self.assertTrue(self.context.navigate_up_down("up"))
        self.assertEqual(self.context.active_context_path, numerator)

    def test_down_from_denominator_exits_forward(self):
        fraction = self.insert_structure(self.builder.create_fraction_element())
        self.context.enter_context_path(f"root/{fraction.id}/denominator")
        self.assertTrue(self.context.navigate_up_down("down"))
        self.assertEqual(self.context.active_context_path, "root")
        self.assertEqual(self.context.cursor_position, 1)

    def test_script_navigation(self):
        script = self.insert_structure(
            self.builder.create_script_element(superscript=True, subscript=True))
        self.context.enter_context_path(f"root/{script.id}/base")
        self.context.insert_text_at_cursor("x")

        self.context.navigate_up_down("tab")
        self.assertEqual(self.context.active_context_path, f"root/{script.id}/superscript")
        self.context.navigate_up_down("down")
        self.assertEqual(self.context.active_context_path, f"root/{script.id}/subscript")
        self.context.navigate_up_down("up")
        self.context.navigate_up_down("shift-tab")
        self.assertEqual(self.context.active_context_path, f"root/{script.id}/base")
        self.assertEqual(self.context.cursor_position, 1)

    def test_subscript_only_goes_up_to_base(self):
        script = self.insert_structure(
            self.builder.create_script_element(superscript=False, subscript=True))
        self.context.enter_context_path(f"root/{script.id}/subscript")
        self.context.navigate_up_down("up")
        self.assertEqual(self.context.active_context_path, f"root/{script.id}/base")

    def test_nthroot_index_and_radicand(self):
        root = self.insert_structure(self.builder.create_nthroot_element())
        self.context.enter_context_path(f"root/{root.id}/index")
        self.context.navigate_up_down("down")
        self.assertEqual(self.context.active_context_path, f"root/{root.id}/radicand")
        self.context.navigate_up_down("up")
        self.assertEqual(self.context.active_context_path, f"root/{root.id}/index")

    def test_vertical_navigation_at_root(self):
        self.assertFalse(self.context.navigate_up_down("down"))
        self.assertEqual(self.context.active_context_path, "root")

    def test_unknown_vertical_key(self):
        with pytest.raises(ValueError):
            self.context.navigate_up_down("sideways")

    def test_backspace_at_start_exits_structure(self):
        sqrt = self.insert_structure(self.builder.create_sqrt_element())
        self.context.enter_context_path(f"root/{sqrt.id}/radicand")
        self.assertFalse(self.context.handle_backspace())
        self.assertEqual(self.context.active_context_path, "root")
        self.assertEqual(self.context.cursor_position, 0)
        self.assertEqual(len(self.builder.get_equation()), 1)

    def test_backspace_at_start_keeps_siblings(self):
        self.context.insert_text_at_cursor("a")
        sqrt = self.insert_structure(self.builder.create_sqrt_element())
        self.context.insert_text_at_cursor("b")
        before = [node.id for node in self.builder.get_equation()]

        self.context.enter_context_path(f"root/{sqrt.id}/radicand", 0)
        self.assertFalse(self.context.handle_backspace())
        self.assertEqual(self.context.active_context_path, "root")
        self.assertEqual(self.context.cursor_position, 1)
        self.assertEqual([node.id for node in self.builder.get_equation()], before)
        self.assertEqual([n.value for n in self.builder.get_equation()], ["a", None, "b"])

    def test_backspace_at_root_start_does_nothing(self):
        self.context.insert_text_at_cursor("a")
        self.context.move_to_start()
        self.assertFalse(self.context.handle_backspace())
        self.assertEqual(len(self.builder.get_equation()), 1)

    def test_backspace_and_delete_remove_nodes(self):
        for value in "abc":
            self.context.insert_text_at_cursor(value)
        self.assertTrue(self.context.handle_backspace())
        self.assertEqual([n.value for n in self.builder.get_equation()], ["a", "b"])
        self.context.move_to_start()
        self.assertTrue(self.context.handle_delete())
        self.assertEqual([n.value for n in self.builder.get_equation()], ["b"])
        self.context.move_to_end()
        self.assertFalse(self.context.handle_delete())

    def test_stale_path_reports_failure(self):
        fraction = self.insert_structure(self.builder.create_fraction_element())
        self.context.enter_context_path(f"root/{fraction.id}/numerator")
        self.builder.clear()

        self.assertIsNone(self.context.get_current_context())
        self.assertFalse(self.context.move_cursor(1))
        self.assertFalse(self.context.insert_text_at_cursor("x"))

    def test_clamp_cursor_after_external_removal(self):
        for value in "ab":
            self.context.insert_text_at_cursor(value)
        self.builder.clear()
        self.context.clamp_cursor()
        self.assertEqual(self.context.cursor_position, 0)

    def test_parent_path(self):
        fraction = self.insert_structure(self.builder.create_fraction_element())
        self.context.enter_context_path(f"root/{fraction.id}/numerator")
        self.assertEqual(self.context.parent_path(), "root")
        self.assertIsNone(self.context.parent_path("root"))


if __name__ == '__main__':
    unittest.main()
