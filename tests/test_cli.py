"""Test the command line entry point."""

from unittest.mock import patch

from eqedit.__main__ import USAGE, main
from eqedit.constants import EditorConstants


def test_parse_prints_markup_and_tree(capsys):
    assert main(["--parse", "\\frac 12"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "\\frac{1}{2}"
    assert "fraction" in out[1]
    assert any("numerator:" in line for line in out)


def test_parse_empty_markup(capsys):
    assert main(["--parse", ""]) == 0
    assert capsys.readouterr().out == "\n"


def test_parse_requires_one_argument(capsys):
    assert main(["--parse"]) == 2
    assert USAGE in capsys.readouterr().err


def test_parse_too_large(capsys):
    markup = "x" * (EditorConstants.MAX_MARKUP_SIZE + 1)
    assert main(["--parse", markup]) == 1
    assert capsys.readouterr().err.startswith("eqedit: Markup size")


def test_version(capsys):
    with patch("eqedit.__main__.get_version_string", return_value="eqedit 9.9"):
        assert main(["--version"]) == 0
    assert capsys.readouterr().out.strip() == "eqedit 9.9"


def test_help(capsys):
    assert main(["--help"]) == 0
    assert capsys.readouterr().out.strip() == USAGE


def test_interactive_prints_final_markup(capsys):
    with patch("eqedit.editor.Editor") as editor_class:
        editor = editor_class.return_value
        editor.session.to_latex.return_value = "\\sqrt{2}"
        assert main(["\\sqrt{2}"]) == 0
    editor.load_latex.assert_called_once_with("\\sqrt{2}")
    editor.run.assert_called_once_with()
    assert capsys.readouterr().out.strip() == "\\sqrt{2}"
