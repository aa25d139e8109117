"""
Tests for syntax error recovery and diagnostics.
"""
import pytest

import ampar
from ampar import DiagnosticKind, ParseError


def messages(result):
    return [d.message for d in result.diagnostics]


class TestSingleTokenRepairs:
    """Deletion and insertion at a mismatched token."""

    def test_missing_token_is_conjured(self, stmts_pkg):
        """Test a missing ';' is inserted as a virtual error leaf."""
        result = ampar.parse(stmts_pkg, "a = 1\nb = 2;")
        assert messages(result) == ["missing ';' at 'b'"]
        diag = result.diagnostics[0]
        assert (diag.line, diag.column) == (2, 1)
        assert diag.rule == "stmt"
        assert diag.expected == (";",)
        first, second = result.tree.find_all("stmt")
        (virtual,) = [c for c in first.children if getattr(c, "is_error", False)]
        assert virtual.token.virtual
        assert virtual.token.type == ";"
        assert first.text == "a=1"
        assert second.text == "b=2;"

    def test_extraneous_token_is_deleted(self, stmts_pkg):
        """Test a stray token before a viable one becomes an error leaf."""
        result = ampar.parse(stmts_pkg, "a = 1 1;")
        assert len(result.diagnostics) == 1
        assert messages(result)[0].startswith("extraneous input '1' expecting")
        (stmt,) = result.tree.find_all("stmt")
        errors = [c for c in stmt.child("expr").children if getattr(c, "is_error", False)]
        assert [e.text for e in errors] == ["1"]
        assert stmt.token(";") is not None

    def test_missing_closing_brace_at_eof(self, stmts_pkg):
        """Test insertion at end of input."""
        result = ampar.parse(stmts_pkg, "{ a = 1;")
        assert messages(result) == ["missing '}' at <EOF>"]
        assert len(result.tree.find_all("block")) == 1

    def test_independent_errors_each_reported(self, stmts_pkg):
        """Test that a successful match ends error mode."""
        result = ampar.parse(stmts_pkg, "a = 1 1;\nb = 2 2;")
        assert len(result.diagnostics) == 2
        assert [d.line for d in result.diagnostics] == [1, 2]
        assert len(result.tree.find_all("stmt")) == 2


class TestDecisionErrors:
    """Errors found while predicting."""

    def test_mismatched_input(self, stmts_pkg):
        """Test the expected set lists every viable terminal."""
        result = ampar.parse(stmts_pkg, "b = ;\n{ }")
        assert messages(result) == ["mismatched input ';' expecting {'(', ID, NUM}"]
        assert result.diagnostics[0].expected == ("(", "ID", "NUM")
        assert len(result.tree.find_all("stmt")) == 2
        assert len(result.tree.find_all("block")) == 1

    def test_no_viable_alternative(self, expr_pkg):
        """Test the message quotes the input consumed during prediction."""
        result = ampar.parse(expr_pkg, "a b;")
        assert messages(result) == ["no viable alternative at input 'a b'"]
        diag = result.diagnostics[0]
        assert diag.offending.text == "b"
        assert diag.column == 3
        assert diag.rule == "stmt"

    def test_error_mode_suppresses_cascades(self, expr_pkg):
        """Test one report per error region."""
        result = ampar.parse(expr_pkg, "a = ) ) );")
        assert len(result.diagnostics) == 1

    def test_rule_node_records_exception(self, stmts_pkg):
        """Test the rule that bailed out keeps its diagnostic."""
        result = ampar.parse(stmts_pkg, "b = ;\n{ }")
        bailed = [n for n in result.tree.find_all("atom") if n.exception is not None]
        assert len(bailed) == 1
        assert bailed[0].exception is result.diagnostics[0]


class TestTrailingInput:
    """Tokens left after the start rule completes."""

    def test_extraneous_after_rule(self, expr_pkg):
        """Test leftovers become error leaves on the root."""
        result = ampar.parse(expr_pkg, "1 + 2 )", rule="expr")
        assert messages(result) == ["extraneous input ')' expecting <EOF>"]
        last = result.tree.root.children[-1]
        assert last.is_error and last.text == ")"
        assert result.tree.root.has_error


class TestFailFast:
    """recover=False."""

    def test_first_syntax_error_raises(self, stmts_pkg):
        """Test ParseError carries the diagnostic."""
        with pytest.raises(ParseError) as exc:
            ampar.parse(stmts_pkg, "b = ;", recover=False)
        assert exc.value.diagnostic.message == "mismatched input ';' expecting {'(', ID, NUM}"
        assert exc.value.diagnostic.kind == DiagnosticKind.SYNTAX

    def test_recover_off_directive(self, build):
        """Test %recover off makes fail-fast the package default."""
        pkg = build('%token X "x" ; %recover off ; r : X X ;')
        with pytest.raises(ParseError):
            ampar.parse(pkg, "x")
        assert not ampar.parse(pkg, "x", recover=True).ok

    def test_lexical_errors_do_not_raise(self, expr_pkg):
        """Test only syntax errors abort the parse."""
        result = ampar.parse(expr_pkg, "a = 1 @;", recover=False)
        assert [d.kind for d in result.diagnostics] == [DiagnosticKind.LEXICAL]
        assert not result.ok

    def test_parse_error_is_a_syntax_error(self):
        """Test the exception hierarchy."""
        assert issubclass(ParseError, SyntaxError)
        assert issubclass(ParseError, ampar.AmparError)


class TestPredicatesAndModes:
    """Failed predicates and unterminated modes."""

    def test_failed_predicate(self, build):
        """Test a predicate that fails outside a decision."""
        pkg = build('%token A "a" ; r : {never}? A ;', predicates={"never": lambda ctx: False})
        result = ampar.parse(pkg, "a")
        assert messages(result)[0] == "rule r failed predicate: {never}?"

    def test_unterminated_mode_reports_once(self, interp_pkg):
        """Test errors at an EOF inside a pushed mode are left to the lexer."""
        result = ampar.parse(interp_pkg, '"x={y')
        assert len(result.diagnostics) == 1
        assert result.diagnostics[0].kind == DiagnosticKind.LEXICAL
        assert not result.ok

    def test_lexer_error_tokens_skip_the_parser(self, expr_pkg):
        """Test the parser never sees ERROR channel tokens."""
        result = ampar.parse(expr_pkg, "a = 1 @ + 2;")
        assert [d.kind for d in result.diagnostics] == [DiagnosticKind.LEXICAL]
        assert result.tree.find_all("stmt")[0].text == "a=1+2;"


class TestDiagnosticOrder:
    """Diagnostics from lexer and parser merged by position."""

    def test_sorted_by_offset(self, expr_pkg):
        """Test lexical and syntax diagnostics interleave by offset."""
        result = ampar.parse(expr_pkg, "a = 1 1;\nb @ = 2;")
        offsets = [d.offset for d in result.diagnostics]
        assert offsets == sorted(offsets)
        assert [d.kind for d in result.diagnostics] == [DiagnosticKind.SYNTAX, DiagnosticKind.LEXICAL]

    def test_format_with_caret(self, stmts_pkg):
        """Test formatting with a source snippet."""
        result = ampar.parse(stmts_pkg, "a = 1\nb = 2;")
        assert result.format_diagnostics() == "2:1: syntax error: missing ';' at 'b'\nb = 2;\n^"


class TestErrorLocality:
    """One corruption, one diagnostic, neighbouring statements intact."""

    TEXT = "{ b = 3; }\nd = 5;"

    def _boundaries(self, pkg):
        starts = [t.start for t in ampar.tokenize(pkg, self.TEXT) if t.channel == ampar.Channel.DEFAULT and not t.is_eof]
        return starts + [len(self.TEXT)]

    def test_resync_onto_expected_token_continues_the_rule(self, stmts_pkg):
        """Test skipping to the expected terminal keeps the construct whole."""
        result = ampar.parse(stmts_pkg, "if (a) == 2) { b = 3; } else { c = 4; }\nd = 5;")
        assert messages(result) == ["mismatched input '==' expecting '{'"]
        stmts = result.tree.root.rule_children
        assert [s.text for s in stmts] == ["if(a)==2){b=3;}else{c=4;}", "d=5;"]
        assert [b.rule for b in stmts[0].rule_children] == ["expr", "block", "block"]

    def test_injected_lexical_error(self, stmts_pkg):
        """Test an unknown character at any token boundary is one lexical diagnostic."""
        clean = [s.text for s in ampar.parse(stmts_pkg, self.TEXT).tree.root.rule_children]
        for pos in self._boundaries(stmts_pkg):
            text = self.TEXT[:pos] + "@" + self.TEXT[pos:]
            result = ampar.parse(stmts_pkg, text)
            assert [d.kind for d in result.diagnostics] == [DiagnosticKind.LEXICAL], text
            assert [s.text for s in result.tree.root.rule_children] == clean, text

    def test_injected_stray_token(self, stmts_pkg):
        """Test a stray ')' at any token boundary is one syntax diagnostic."""
        d_start = self.TEXT.index("d")
        for pos in self._boundaries(stmts_pkg):
            text = self.TEXT[:pos] + ")" + self.TEXT[pos:]
            result = ampar.parse(stmts_pkg, text)
            assert [d.kind for d in result.diagnostics] == [DiagnosticKind.SYNTAX], text
            stmts = [s.text for s in result.tree.root.rule_children]
            assert len(stmts) == 2, text
            untouched = "d=5;" if pos <= d_start else "{b=3;}"
            assert untouched in stmts, text
