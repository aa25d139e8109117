"""Shared fixtures for ampar tests."""

from pathlib import Path
from typing import List

import pytest

import ampar
from ampar.lex.tokens import Channel, Token


GRAMMARS = Path(__file__).parent / "grammars"


def is_type(ctx) -> bool:
    """Semantic predicate used by the cast grammar: LT(1) names a known type."""
    return ctx.text(1) in ctx.env.get("types", ())


@pytest.fixture(scope="session")
def grammar_path():
    """Factory returning the path of a fixture grammar."""
    def _path(name: str) -> Path:
        return GRAMMARS / f"{name}.g"
    return _path


@pytest.fixture(scope="session")
def expr_pkg():
    return ampar.load_package(GRAMMARS / "expr.g")


@pytest.fixture(scope="session")
def stmts_pkg():
    return ampar.load_package(GRAMMARS / "stmts.g")


@pytest.fixture(scope="session")
def interp_pkg():
    return ampar.load_package(GRAMMARS / "interp.g")


@pytest.fixture(scope="session")
def cast_pkg():
    return ampar.load_package(GRAMMARS / "cast.g", predicates={"is_type": is_type})


@pytest.fixture(scope="session")
def generics_pkg():
    return ampar.load_package(GRAMMARS / "generics.g")


@pytest.fixture
def build():
    """Factory for packages built from inline grammar text."""
    def _build(src: str, **kw) -> ampar.GrammarPackage:
        return ampar.build_package(src, **kw)
    return _build


class TokenHelpers:
    """Helper utilities for looking at token lists."""

    @staticmethod
    def types(tokens: List[Token], channel: int = Channel.DEFAULT) -> List[str]:
        """Token types on one channel, EOF included."""
        return [t.type for t in tokens if t.channel == channel or t.is_eof]

    @staticmethod
    def texts(tokens: List[Token]) -> List[str]:
        return [t.text for t in tokens if not t.is_eof]

    @staticmethod
    def round_trip(tokens: List[Token]) -> str:
        """Concatenation of every token's text, all channels."""
        return "".join(t.text for t in tokens)


@pytest.fixture
def tok():
    return TokenHelpers
