"""
Tests for ParseSession, ParseResult and the module level entry points.
"""
import pytest

import ampar
from ampar import Channel, DiagnosticKind


class TestParseResult:
    """Views over a finished parse."""

    def test_ok_ignores_ambiguity(self, generics_pkg):
        """Test ambiguity reports do not make a parse fail."""
        result = ampar.parse(generics_pkg, "a < b > (c);", report_ambiguity=True)
        assert [d.kind for d in result.diagnostics] == [DiagnosticKind.AMBIGUITY]
        assert result.ok
        assert result.errors == ()

    def test_errors_exclude_ambiguity(self, expr_pkg):
        """Test errors lists lexical and syntax diagnostics only."""
        result = ampar.parse(expr_pkg, "a = 1 @;")
        assert [d.kind for d in result.errors] == [DiagnosticKind.LEXICAL]
        assert not result.ok

    def test_channels(self, expr_pkg):
        """Test tokens_on and hidden_tokens."""
        result = ampar.parse(expr_pkg, "a = 1; # note\n")
        assert [t.text for t in result.hidden_tokens] == [" ", " ", " ", "# note", "\n"]
        assert [t.type for t in result.tokens_on(Channel.DEFAULT)] == ["ID", "=", "NUM", ";"]
        assert result.tokens[-1].is_eof
        assert "".join(t.text for t in result.tokens) == "a = 1; # note\n"

    def test_format_diagnostics_empty(self, expr_pkg):
        """Test a clean parse formats to an empty string."""
        assert ampar.parse(expr_pkg, "a = 1;").format_diagnostics() == ""


class TestOptionPrecedence:
    """Call arguments over %option over defaults."""

    def test_call_overrides_grammar_option(self, generics_pkg):
        """Test a keyword argument wins over %option."""
        assert ampar.ParseSession(generics_pkg, max_lookahead=4).options.max_lookahead == 4

    def test_grammar_option_over_default(self, generics_pkg):
        """Test %option wins over the built-in default."""
        options = ampar.ParseSession(generics_pkg).options
        assert options.max_lookahead == 16
        assert options.max_steps == ampar.EngineOptions().max_steps

    def test_none_keeps_package_value(self, generics_pkg):
        """Test None overrides are ignored."""
        assert ampar.ParseSession(generics_pkg, max_lookahead=None).options.max_lookahead == 16

    def test_unknown_override(self, expr_pkg):
        """Test a misspelt option is rejected."""
        with pytest.raises(TypeError):
            ampar.ParseSession(expr_pkg, max_lookahed=4)

    @pytest.mark.parametrize("name", ["max_lookahead", "max_steps", "max_mode_depth", "max_call_depth"])
    def test_limits_must_be_positive(self, expr_pkg, name):
        """Test call-time limits are checked like %option values."""
        with pytest.raises(ValueError):
            ampar.ParseSession(expr_pkg, **{name: 0})

    def test_limit_type_checked(self, expr_pkg):
        """Test a non-integer limit is rejected."""
        with pytest.raises(TypeError):
            ampar.parse(expr_pkg, "a;", max_lookahead="8")


class TestSession:
    """Reusing one package for many inputs."""

    def test_parse_counter(self, expr_pkg):
        """Test the session counts its parses."""
        session = ampar.ParseSession(expr_pkg)
        for text in ["a;", "b;", "c = 1;"]:
            assert session.parse(text).ok
        assert session.parses == 3

    def test_start_rule_override(self, expr_pkg):
        """Test parsing from a rule other than the start rule."""
        session = ampar.ParseSession(expr_pkg)
        assert session.parse("1 + 2", rule="expr").tree.root.rule == "expr"
        assert session.parse("1 + 2;").tree.root.rule == "file"

    def test_session_env_reaches_predicates(self, cast_pkg):
        """Test the session environment is passed to every parse."""
        session = ampar.ParseSession(cast_pkg, env={"types": {"T"}})
        assert len(session.parse("(T) x;").tree.find_all("cast")) == 1

    def test_tokenize_matches_parse_tokens(self, expr_pkg):
        """Test tokenize returns the same tokens a parse sees."""
        text = "x = (1 + y) * 2; # c"
        tokens = ampar.tokenize(expr_pkg, text)
        assert [(t.type, t.text) for t in tokens] == \
            [(t.type, t.text) for t in ampar.parse(expr_pkg, text).tokens]

    def test_bom_option(self, expr_pkg):
        """Test strip_bom controls whether a leading BOM is dropped."""
        assert ampar.parse(expr_pkg, "\ufeffa;").ok
        assert not ampar.parse(expr_pkg, "\ufeffa;", strip_bom=False).ok


class TestRaiseForErrors:
    """Turning recorded diagnostics into exceptions after the parse."""

    def test_clean_parse_returns_result(self, expr_pkg):
        """Test no exception and chaining on success."""
        result = ampar.parse(expr_pkg, "a = 1;")
        assert result.raise_for_errors() is result

    def test_lexical_error(self, expr_pkg):
        """Test the first error is raised as LexicalError when it came from the lexer."""
        result = ampar.parse(expr_pkg, "a = 1 @;")
        with pytest.raises(ampar.LexicalError) as exc:
            result.raise_for_errors()
        assert exc.value.diagnostic is result.diagnostics[0]

    def test_syntax_error(self, expr_pkg):
        """Test syntax errors raise ParseError."""
        with pytest.raises(ampar.ParseError) as exc:
            ampar.parse(expr_pkg, "a b;").raise_for_errors()
        assert exc.value.diagnostic.message == "no viable alternative at input 'a b'"

    def test_ambiguity_is_not_an_error(self, generics_pkg):
        """Test ambiguity reports never raise."""
        ampar.parse(generics_pkg, "a < b > (c);", report_ambiguity=True).raise_for_errors()
