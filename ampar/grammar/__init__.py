# ampar/grammar/__init__.py
"""문법 DSL 프런트엔드: .g 원문 → AST → GrammarPackage."""

from .ast import Grammar
from .loader import load_grammar_text, normalize_newlines
from .package import GrammarPackage, build_package, compile_grammar, load_package
from .parser import parse_grammar
