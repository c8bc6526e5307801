"""Symbol tables shared by the model, the converter and the key bindings.

The tables map LaTeX command names to the Unicode characters stored in text
leaves, classify operators for spacing, and describe the structural commands
(large operators, brackets, functions, accents, matrix environments) that the
converter knows how to read and write.
"""

from typing import Dict, Optional, Tuple

from .constants import EditorConstants


# LaTeX command -> Unicode symbol held by a text leaf
LATEX_TO_UNICODE: Dict[str, str] = {
    # Arithmetic
    "\\times": "×",
    "\\div": "÷",
    "\\pm": "±",
    "\\mp": "∓",
    "\\cdot": "·",
    "\\ast": "∗",
    "\\star": "⋆",
    "\\circ": "∘",
    "\\bullet": "•",

    # Relations
    "\\neq": "≠",
    "\\sim": "∼",
    "\\simeq": "≃",
    "\\approx": "≈",
    "\\equiv": "≡",
    "\\cong": "≅",
    "\\ncong": "≇",
    "\\propto": "∝",
    "\\leq": "≤",
    "\\geq": "≥",
    "\\nless": "≮",
    "\\ngtr": "≯",
    "\\nleq": "≰",
    "\\ngeq": "≱",
    "\\prec": "≺",
    "\\succ": "≻",
    "\\preceq": "⪯",
    "\\succeq": "⪰",
    "\\ll": "≪",
    "\\gg": "≫",

    # Sets
    "\\cap": "∩",
    "\\cup": "∪",
    "\\setminus": "∖",
    "\\in": "∈",
    "\\ni": "∋",
    "\\notin": "∉",
    "\\subset": "⊂",
    "\\supset": "⊃",
    "\\subseteq": "⊆",
    "\\supseteq": "⊇",
    "\\nsubseteq": "⊈",
    "\\nsupseteq": "⊉",
    "\\subsetneq": "⊊",
    "\\supsetneq": "⊋",
    "\\emptyset": "∅",

    # Binary operators
    "\\oplus": "⊕",
    "\\ominus": "⊖",
    "\\otimes": "⊗",
    "\\oslash": "⊘",
    "\\odot": "⊙",
    "\\triangleleft": "◁",
    "\\triangleright": "▷",
    "\\wr": "≀",

    # Calculus
    "\\partial": "∂",
    "\\infty": "∞",
    "\\nabla": "∇",

    # Logic
    "\\wedge": "∧",
    "\\vee": "∨",
    "\\neg": "¬",
    "\\forall": "∀",
    "\\exists": "∃",
    "\\vdash": "⊢",
    "\\models": "⊨",
    "\\top": "⊤",
    "\\bot": "⊥",

    # Arrows
    "\\to": "→",
    "\\leftarrow": "←",
    "\\Rightarrow": "⇒",
    "\\Leftarrow": "⇐",
    "\\Leftrightarrow": "⇔",
    "\\mapsto": "↦",

    # Miscellaneous
    "\\bowtie": "⋈",
    "\\diamond": "⋄",
    "\\asymp": "≍",
    "\\triangleq": "≜",
    "\\therefore": "∴",
    "\\because": "∵",
    "\\ldots": "…",
    "\\cdots": "⋯",
    "\\hbar": "ℏ",
    "\\ell": "ℓ",
    "\\backslash": "\\",

    # Greek lowercase
    "\\alpha": "α",
    "\\beta": "β",
    "\\gamma": "γ",
    "\\delta": "δ",
    "\\epsilon": "ϵ",
    "\\varepsilon": "ε",
    "\\zeta": "ζ",
    "\\eta": "η",
    "\\theta": "θ",
    "\\vartheta": "ϑ",
    "\\iota": "ι",
    "\\kappa": "κ",
    "\\lambda": "λ",
    "\\mu": "μ",
    "\\nu": "ν",
    "\\xi": "ξ",
    "\\omicron": "ο",
    "\\pi": "π",
    "\\varpi": "ϖ",
    "\\rho": "ρ",
    "\\varrho": "ϱ",
    "\\sigma": "σ",
    "\\varsigma": "ς",
    "\\tau": "τ",
    "\\upsilon": "υ",
    "\\phi": "ϕ",
    "\\varphi": "φ",
    "\\chi": "χ",
    "\\psi": "ψ",
    "\\omega": "ω",

    # Greek uppercase
    "\\Gamma": "Γ",
    "\\Delta": "Δ",
    "\\Theta": "Θ",
    "\\Lambda": "Λ",
    "\\Xi": "Ξ",
    "\\Pi": "Π",
    "\\Sigma": "Σ",
    "\\Upsilon": "Υ",
    "\\Phi": "Φ",
    "\\Psi": "Ψ",
    "\\Omega": "Ω",
}

# Unicode symbol -> LaTeX command; first command listed wins on collisions
UNICODE_TO_LATEX: Dict[str, str] = {}
for _command, _symbol in LATEX_TO_UNICODE.items():
    UNICODE_TO_LATEX.setdefault(_symbol, _command)

# Text leaves that get surrounding spaces when serialized
OPERATOR_SYMBOLS = frozenset(
    "+-=<>"
    "×÷±∓·∗⋆∘•"
    "≠∼≃≈≡≅≇∝≤≥≮≯≰≱≺≻⪯⪰≪≫"
    "∩∪∖∈∋∉⊂⊃⊆⊇⊈⊉⊊⊋"
    "⊕⊖⊗⊘⊙◁▷≀"
    "∧∨⊢⊨→←⇒⇐⇔↦≍≜"
)

# Large operators: command -> symbol stored on the node
LARGE_OPERATORS: Dict[str, str] = {
    "\\sum": "∑",
    "\\prod": "∏",
    "\\coprod": "∐",
    "\\bigcup": "⋃",
    "\\bigcap": "⋂",
    "\\bigvee": "⋁",
    "\\bigwedge": "⋀",
    "\\bigoplus": "⨁",
    "\\bigotimes": "⨂",
    "\\bigodot": "⨀",
    "\\biguplus": "⨄",
    "\\int": "∫",
    "\\oint": "∮",
}
LARGE_OPERATOR_COMMANDS: Dict[str, str] = {v: k for k, v in LARGE_OPERATORS.items()}

# Integral macros are \<prefix><i|d>[l]{integrand}{var}[{lower}{upper}]
INTEGRAL_PREFIXES: Dict[str, str] = {
    "single": "int",
    "double": "iint",
    "triple": "iiint",
    "contour": "oint",
}
INTEGRAL_TYPES_BY_PREFIX: Dict[str, str] = {v: k for k, v in INTEGRAL_PREFIXES.items()}
INTEGRAL_SYMBOLS: Dict[str, str] = {
    "single": "∫",
    "double": "∬",
    "triple": "∭",
    "contour": "∮",
}

# Bracket symbol -> LaTeX delimiter token used after \left, \right, \bigl, ...
BRACKET_DELIMITERS: Dict[str, str] = {
    "(": "(",
    ")": ")",
    "[": "[",
    "]": "]",
    "{": "\\{",
    "}": "\\}",
    "|": "|",
    "‖": "\\|",
    "⟨": "\\langle",
    "⟩": "\\rangle",
    "⌊": "\\lfloor",
    "⌋": "\\rfloor",
    "⌈": "\\lceil",
    "⌉": "\\rceil",
    ".": ".",
}
# Longest tokens first so "\\|" is not read as "\\" followed by "|"
DELIMITER_TOKENS = sorted(
    ((token, symbol) for symbol, token in BRACKET_DELIMITERS.items()),
    key=lambda item: len(item[0]),
    reverse=True,
)

# Evaluation bracket forms and their (left, right) delimiters
EVALUATION_BRACKETS: Dict[str, Tuple[str, str]] = {
    "bar": (".", "|"),
    "square": ("[", "]"),
}

BRACKET_PAIRS = [
    ("(", ")"),
    ("[", "]"),
    ("{", "}"),
    ("⟨", "⟩"),
    ("⌊", "⌋"),
    ("⌈", "⌉"),
    ("|", "|"),
    ("‖", "‖"),
]

# Size commands by distance from the innermost bracket
BRACKET_SIZE_LEFT = ("\\left", "\\bigl", "\\Bigl", "\\biggl", "\\Biggl")
BRACKET_SIZE_RIGHT = ("\\right", "\\bigr", "\\Bigr", "\\biggr", "\\Biggr")

# Function catalogue: name -> (structure type, has a builtin LaTeX command)
FUNCTION_CONFIG: Dict[str, tuple] = {
    "sin": ("simple", True),
    "cos": ("simple", True),
    "tan": ("simple", True),
    "sec": ("simple", True),
    "csc": ("simple", True),
    "cot": ("simple", True),
    "asin": ("simple", False),
    "acos": ("simple", False),
    "atan": ("simple", False),
    "sinh": ("simple", True),
    "cosh": ("simple", True),
    "tanh": ("simple", True),
    "asinh": ("simple", False),
    "acosh": ("simple", False),
    "atanh": ("simple", False),
    "log": ("simple", True),
    "logn": ("functionsub", False),
    "ln": ("simple", True),
    "exp": ("simple", True),
    "max": ("functionlim", True),
    "min": ("functionlim", True),
    "lim": ("functionlim", True),
    "sup": ("functionlim", True),
    "inf": ("functionlim", True),
    "argmax": ("functionlim", False),
    "argmin": ("functionlim", False),
}

BUILTIN_FUNCTIONS = frozenset(
    name for name, (_, builtin) in FUNCTION_CONFIG.items() if builtin
)

# Accent type -> (LaTeX command, position)
ACCENTS: Dict[str, tuple] = {
    "hat": ("\\hat", "over"),
    "bar": ("\\bar", "over"),
    "vec": ("\\vec", "over"),
    "dot": ("\\dot", "over"),
    "ddot": ("\\ddot", "over"),
    "tilde": ("\\tilde", "over"),
    "widehat": ("\\widehat", "over"),
    "widetilde": ("\\widetilde", "over"),
    "overline": ("\\overline", "over"),
    "overrightarrow": ("\\overrightarrow", "over"),
    "overleftarrow": ("\\overleftarrow", "over"),
    "overbrace": ("\\overbrace", "over"),
    "underbrace": ("\\underbrace", "under"),
}
ACCENT_TYPES_BY_COMMAND: Dict[str, str] = {cmd: name for name, (cmd, _) in ACCENTS.items()}
LABELED_ACCENTS = frozenset({"overbrace", "underbrace"})

# Matrix type -> environment name
MATRIX_ENVIRONMENTS: Dict[str, str] = {
    "parentheses": "pmatrix",
    "brackets": "bmatrix",
    "braces": "Bmatrix",
    "bars": "vmatrix",
    "double-bars": "Vmatrix",
    "none": "matrix",
}
MATRIX_TYPES_BY_ENVIRONMENT: Dict[str, str] = {v: k for k, v in MATRIX_ENVIRONMENTS.items()}

# Characters that must be escaped in markup
TEXT_ESCAPES: Dict[str, str] = {
    "{": "\\{",
    "}": "\\}",
    "#": "\\#",
    "%": "\\%",
    "&": "\\&",
    "_": "\\_",
    "$": "\\$",
    "~": "\\textasciitilde{}",
    "^": "\\text{^}",
    " ": "\\text{ }",
}
ESCAPED_CHARACTERS: Dict[str, str] = {
    "\\{": "{",
    "\\}": "}",
    "\\#": "#",
    "\\%": "%",
    "\\&": "&",
    "\\_": "_",
    "\\$": "$",
    "\\ ": " ",
}


def latex_to_unicode(command: str) -> Optional[str]:
    """Return the Unicode symbol for a LaTeX command, if known."""
    return LATEX_TO_UNICODE.get(command)


def unicode_to_latex(symbol: str) -> Optional[str]:
    """Return the LaTeX command for a Unicode symbol, if known."""
    return UNICODE_TO_LATEX.get(symbol)


def is_operator(value: Optional[str]) -> bool:
    return bool(value) and value in OPERATOR_SYMBOLS


def get_latex_command_length(text: str, start: int) -> int:
    """Length of the longest symbol command starting at ``start``, or 0."""
    longest = min(EditorConstants.MAX_COMMAND_LENGTH, len(text) - start)
    for length in range(longest, 1, -1):
        if text[start:start + length] in LATEX_TO_UNICODE:
            return length
    return 0


def function_structure_type(name: str) -> str:
    """Structure type for a function name; unknown names are user functions."""
    entry = FUNCTION_CONFIG.get(name)
    return entry[0] if entry else "function"
