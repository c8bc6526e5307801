"""eqedit CLI entry point.

Allows running via `python -m eqedit` and provides the console script
defined in `pyproject.toml`.
"""

from __future__ import annotations

import logging
import sys

from .errors import EquationError
from .version import get_version_string

USAGE = "usage: eqedit [--version] [--debug] [--parse MARKUP | MARKUP]"


def run_parse(markup: str) -> int:
    """Parse markup, print the re-serialized markup and the tree outline."""
    from .model import format_tree
    from .session import EditorSession

    session = EditorSession()
    session.load_latex(markup)
    print(session.to_latex())
    outline = format_tree(session.builder.get_equation())
    if outline:
        print(outline)
    return 0


def main(argv: list[str] | None = None) -> int:
    # Small hand-rolled argument parsing: version, debug logging, parse mode, optional markup
    args = list(sys.argv[1:] if argv is None else argv)
    if args and args[0] in ("--version", "-V"):
        print(get_version_string())
        return 0
    if "--debug" in args:
        args.remove("--debug")
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    if args and args[0] in ("-h", "--help"):
        print(USAGE)
        return 0

    try:
        if args and args[0] == "--parse":
            if len(args) != 2:
                print(USAGE, file=sys.stderr)
                return 2
            return run_parse(args[1])

        # Lazy import to avoid importing UI deps for --version and --parse
        from .editor import Editor
        editor = Editor()
        if args:
            editor.load_latex(args[0])
        editor.run()
    except EquationError as e:
        print(f"eqedit: {e}", file=sys.stderr)
        return 1
    print(editor.session.to_latex())
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
