"""Test the equation tree model and builder."""

import unittest

from eqedit.model import (
    EquationBuilder,
    NodeType,
    cell_name,
    fraction_depth,
    format_tree,
    structure_signature,
)


class TestEquationBuilder(unittest.TestCase):
    """Test node creation and tree mutation."""

    def setUp(self):
        self.builder = EquationBuilder()
        self.root = self.builder.get_equation()

    def test_ids_are_unique_and_never_reused(self):
        first = self.builder.create_text_element("a")
        second = self.builder.create_text_element("b")
        self.assertNotEqual(first.id, second.id)

        self.builder.insert(first, self.root, 0)
        self.builder.clear()
        third = self.builder.create_text_element("c")
        self.assertNotIn(third.id, (first.id, second.id))
        self.assertTrue(third.id.startswith("element-"))

    def test_fraction_has_empty_required_containers(self):
        fraction = self.builder.create_fraction_element()
        self.assertEqual(fraction.containers, {"numerator": [], "denominator": []})
        self.assertEqual(fraction.props["display_mode"], "inline")
        self.assertTrue(fraction.is_structural)

    def test_script_defaults_to_superscript_only(self):
        script = self.builder.create_script_element()
        self.assertEqual(script.container_names(), ["base", "superscript"])

        both = self.builder.create_script_element(superscript=True, subscript=True)
        self.assertEqual(both.container_names(), ["base", "superscript", "subscript"])

    def test_undeclared_container_access(self):
        fraction = self.builder.create_fraction_element()
        self.assertIsNone(fraction.get_container("radicand"))
        with self.assertRaises(KeyError):
            fraction.add_container("radicand")

    def test_optional_container_absent_until_added(self):
        integral = self.builder.create_integral_element()
        self.assertIsNone(integral.get_container("lower_limit"))
        definite = self.builder.create_integral_element(has_limits=True)
        self.assertEqual(definite.get_container("lower_limit"), [])

    def test_required_container_cannot_be_dropped(self):
        script = self.builder.create_script_element()
        script.drop_container("superscript")
        self.assertNotIn("superscript", script.containers)
        with self.assertRaises(KeyError):
            script.drop_container("base")

    def test_script_needs_a_slot(self):
        with self.assertRaises(ValueError):
            self.builder.create_script_element(superscript=False, subscript=False)
        subscript_only = self.builder.create_script_element(superscript=False, subscript=True)
        self.assertEqual(subscript_only.container_names(), ["base", "subscript"])

    def test_evaluation_bracket_forms(self):
        bar = self.builder.create_evaluation_bracket_element()
        self.assertEqual((bar.props["left_symbol"], bar.props["right_symbol"]), (".", "|"))
        self.assertEqual(bar.container_names(), ["content", "superscript", "subscript"])

        square = self.builder.create_evaluation_bracket_element("square")
        self.assertEqual((square.props["left_symbol"], square.props["right_symbol"]), ("[", "]"))
        self.assertIn("subscript", square.containers)

        with self.assertRaises(ValueError):
            self.builder.create_evaluation_bracket_element("round")

    def test_grid_containers_follow_dimensions(self):
        matrix = self.builder.create_matrix_element(2, 3, "brackets")
        self.assertEqual(len(matrix.containers), 6)
        self.assertIn(cell_name(1, 2), matrix.containers)
        self.assertEqual(matrix.get_container("cell_1_2"), [])
        self.assertIsNone(matrix.get_container("cell_2_0"))

        cases = self.builder.create_cases_element(3)
        self.assertEqual(cases.props["cols"], 2)
        with self.assertRaises(ValueError):
            self.builder.create_matrix_element(0, 2)

    def test_function_base_only_for_sub_and_limit_functions(self):
        self.assertNotIn("function_base", self.builder.create_function_element("sin").containers)
        self.assertIn("function_base", self.builder.create_function_element("lim").containers)
        self.assertIn("function_base", self.builder.create_function_element("logn").containers)
        self.assertEqual(self.builder.create_function_element("f").props["function_type"], "function")

    def test_large_operator_maps_command_to_symbol(self):
        node = self.builder.create_large_operator_element("\\prod")
        self.assertEqual(node.props["operator"], "∏")
        self.assertEqual(node.props["limit_mode"], "limits")

    def test_insert_and_remove_bounds(self):
        node = self.builder.create_text_element("x")
        with self.assertRaises(IndexError):
            self.builder.insert(node, self.root, 1)
        self.builder.insert(node, self.root, 0)
        self.assertIsNone(self.builder.remove(self.root, 5))
        self.assertIs(self.builder.remove(self.root, 0), node)
        self.assertTrue(self.builder.is_empty())

    def test_find_by_id_searches_every_container(self):
        fraction = self.builder.create_fraction_element()
        sqrt = self.builder.create_sqrt_element()
        leaf = self.builder.create_text_element("y")
        sqrt.containers["radicand"].append(leaf)
        fraction.containers["denominator"].append(sqrt)
        self.builder.insert(fraction, self.root, 0)

        self.assertIs(self.builder.find_by_id(self.root, leaf.id), leaf)
        self.assertIs(self.builder.find_by_id(self.root, sqrt.id), sqrt)
        self.assertIsNone(self.builder.find_by_id(self.root, "element-999"))

    def test_iter_locations_reports_context_paths(self):
        fraction = self.builder.create_fraction_element()
        leaf = self.builder.create_text_element("1")
        fraction.containers["numerator"].append(leaf)
        self.builder.insert(fraction, self.root, 0)

        locations = [(path, index, node.id) for path, index, node in self.builder.iter_locations()]
        self.assertEqual(locations, [
            ("root", 0, fraction.id),
            (f"root/{fraction.id}/numerator", 0, leaf.id),
        ])

    def test_bracket_nesting_depth(self):
        outer = self.builder.create_bracket_element()
        inner = self.builder.create_bracket_element("[", "]")
        outer.containers["content"].append(inner)
        self.builder.insert(outer, self.root, 0)

        self.builder.update_bracket_nesting()
        self.assertEqual(outer.nesting_depth, 0)
        self.assertEqual(inner.nesting_depth, 1)
        self.assertEqual(self.builder.max_bracket_depth(), 1)

    def test_parentheses_scale_with_fraction_depth(self):
        nested = self.builder.create_fraction_element()
        nested.containers["numerator"].append(self.builder.create_fraction_element())
        for node in (self.builder.create_text_element("("), nested, self.builder.create_text_element(")")):
            self.builder.insert(node, self.root, len(self.root))

        self.builder.update_parentheses_scaling()
        self.assertEqual(fraction_depth(nested), 2)
        self.assertEqual(self.root[0].scale_factor, 1.75)
        self.assertEqual(self.root[2].scale_factor, 1.75)

    def test_unmatched_parenthesis_keeps_default_scale(self):
        self.builder.insert(self.builder.create_text_element(")"), self.root, 0)
        self.builder.update_parentheses_scaling()
        self.assertEqual(self.root[0].scale_factor, 1.0)

    def test_wrapper_removal_detaches_whole_group(self):
        wrapper = self.builder.create_wrapper("cancel")
        for value in "ab":
            leaf = self.builder.create_text_element(value)
            leaf.wrappers["cancel"] = wrapper
            self.builder.insert(leaf, self.root, len(self.root))

        self.assertEqual(len(self.builder.nodes_with_wrapper(wrapper.id)), 2)
        self.assertEqual(self.builder.remove_wrapper(wrapper.id), 2)
        self.assertTrue(all(not leaf.wrappers for leaf in self.root))

    def test_clone_gives_fresh_ids_and_keeps_shared_wrappers(self):
        wrapper = self.builder.create_wrapper("color", "red")
        fraction = self.builder.create_fraction_element()
        leaf = self.builder.create_text_element("x")
        leaf.wrappers["color"] = wrapper
        fraction.wrappers["color"] = wrapper
        fraction.containers["numerator"].append(leaf)

        copies = self.builder.clone_nodes([fraction])
        copy = copies[0]
        copied_leaf = copy.containers["numerator"][0]
        self.assertNotEqual(copy.id, fraction.id)
        self.assertNotEqual(copied_leaf.id, leaf.id)
        self.assertIs(copy.wrappers["color"], copied_leaf.wrappers["color"])
        self.assertNotEqual(copy.wrappers["color"].id, wrapper.id)
        self.assertEqual(structure_signature(copies), structure_signature([fraction]))

    def test_set_equation_keeps_root_identity(self):
        root = self.builder.get_equation()
        self.builder.set_equation([self.builder.create_text_element("z")])
        self.assertIs(self.builder.get_equation(), root)
        self.assertEqual(root[0].value, "z")

    def test_format_tree_outline(self):
        sqrt = self.builder.create_sqrt_element()
        sqrt.containers["radicand"].append(self.builder.create_text_element("2"))
        outline = format_tree([sqrt])
        self.assertIn("sqrt", outline)
        self.assertIn("radicand:", outline)
        self.assertIn("text '2'", outline)
        self.assertEqual(NodeType("bevelled-fraction"), NodeType.BEVELLED_FRACTION)


if __name__ == '__main__':
    unittest.main()
