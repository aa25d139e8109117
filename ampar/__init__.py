# ampar/__init__.py
"""ampar: 모드 렉서 + 적응형 LL(*) 예측 파서.

    pkg = ampar.build_package(open("lang.g").read(), predicates={"is_type": is_type})
    result = ampar.parse(pkg, source_text)
    for d in result.diagnostics:
        print(d.format(source_text))
"""

import logging

from .config import EngineOptions
from .errors import (AmparError, Diagnostic, DiagnosticKind, GrammarError,
                     InternalConsistencyError, LexicalError, ParseError)
from .grammar import GrammarPackage, build_package, load_package
from .lex.tokens import Channel, Token
from .ll.predicates import PredicateContext
from .lex.modes import LexerContext
from .session import ParseResult, ParseSession, parse, tokenize
from .tree import ParseTree, ParseTreeListener, ParseTreeWalker, RuleListener, RuleNode

__version__ = "0.3.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "EngineOptions",
    "AmparError", "Diagnostic", "DiagnosticKind", "GrammarError",
    "InternalConsistencyError", "LexicalError", "ParseError",
    "GrammarPackage", "build_package", "load_package",
    "Channel", "Token", "PredicateContext", "LexerContext",
    "ParseResult", "ParseSession", "parse", "tokenize",
    "ParseTree", "ParseTreeListener", "ParseTreeWalker", "RuleListener", "RuleNode",
]
