"""
Tests for PEG-defined tokens.
"""
import pytest

import ampar
from ampar import Channel, GrammarError
from ampar.lex.peg import PegMatcher, parse_peg_block


NESTED_COMMENTS = r"""
%peg Cm { Comment <- '/*' (Comment / !'*/' .)* '*/' };
%token ID /[a-z]+/ ;
%ignore /\s+/ ;
%ignore COMMENT %peg(Cm.Comment) ;
start : ID* ;
"""


def matcher(body, text):
    return PegMatcher(parse_peg_block("T", body), text)


class TestPegBlocks:
    """Parsing %peg block bodies."""

    def test_rules_in_order(self):
        """Test that rules are read in declaration order."""
        g = parse_peg_block("B", "A <- 'a' B\nB <- [0-9]+ / 'x'")
        assert [name for name, _ in g.rules] == ["A", "B"]
        assert g.has_rule("B") and not g.has_rule("C")

    def test_comments_in_body(self):
        """Test the comment forms allowed inside a block."""
        g = parse_peg_block("B", "# one\nA <- 'a' // two\n/* three */ B <- 'b'")
        assert [name for name, _ in g.rules] == ["A", "B"]

    @pytest.mark.parametrize("body, fragment", [
        ("A <- B", "undefined 'B'"),
        ("A <- 'a'\nA <- 'b'", "duplicate rule"),
        ("A <- 'abc", "unterminated string"),
        ("A <- [abc", "unterminated char class"),
        ("", "empty PEG block"),
        ("A <- '\\x4", "truncated escape"),
    ])
    def test_block_errors(self, body, fragment):
        """Test malformed blocks are grammar errors."""
        with pytest.raises(GrammarError) as exc:
            parse_peg_block("B", body)
        assert fragment in str(exc.value)


class TestPegMatcher:
    """The packrat matcher."""

    def test_nested_comment(self):
        """Test a recursive rule matches balanced nesting."""
        m = matcher("C <- '/*' (C / !'*/' .)* '*/'", "/* a /* b */ c */ tail")
        assert m.match("C", 0) == len("/* a /* b */ c */")

    def test_unbalanced_fails(self):
        """Test an unterminated nested comment does not match."""
        assert matcher("C <- '/*' (C / !'*/' .)* '*/'", "/* a /* b */").match("C", 0) == -1

    def test_lookahead_consumes_nothing(self):
        """Test & and ! predicates."""
        m = matcher("K <- 'if' ![a-z]", "if(")
        assert m.match("K", 0) == 2
        assert matcher("K <- 'if' ![a-z]", "iffy").match("K", 0) == -1
        assert matcher("P <- &'a' .", "ab").match("P", 0) == 1

    def test_ordered_choice(self):
        """Test the first matching alternative wins even if shorter."""
        assert matcher("R <- 'a' / 'ab'", "ab").match("R", 0) == 1

    def test_char_classes_and_escapes(self):
        """Test ranges, negation and escapes."""
        assert matcher(r"H <- '0x' [0-9a-fA-F]+", "0xBEEFz").match("H", 0) == 6
        assert matcher(r"N <- [^\n]*", "abc\ndef").match("N", 0) == 3
        assert matcher(r"T <- '\t' 'A'", "\tA").match("T", 0) == 2

    def test_repetition_forms(self):
        """Test ?, * and +."""
        assert matcher("R <- 'a'? 'b'", "b").match("R", 0) == 1
        assert matcher("R <- 'a'*", "").match("R", 0) == 0
        assert matcher("R <- 'a'+", "").match("R", 0) == -1

    def test_left_recursion_fails_instead_of_looping(self):
        """Test re-entering a rule at the same position fails."""
        assert matcher("E <- E '+' 'n' / 'n'", "n+n").match("E", 0) == 1

    def test_match_at_offset(self):
        """Test matching in the middle of the text."""
        assert matcher("W <- [a-z]+", "12abc").match("W", 2) == 3


class TestPegTokens:
    """PEG rules used as lexer tokens."""

    def test_nested_comment_token(self, build, tok):
        """Test a PEG token recognises nested comments the regex rules cannot."""
        pkg = build(NESTED_COMMENTS)
        text = "a /* x /* y */ z */ b"
        tokens = ampar.tokenize(pkg, text)
        comments = [t for t in tokens if t.type == "COMMENT"]
        assert [t.text for t in comments] == ["/* x /* y */ z */"]
        assert comments[0].channel == Channel.HIDDEN
        assert tok.types(tokens) == ["ID", "ID", "EOF"]
        assert tok.round_trip(tokens) == text

    def test_unterminated_nested_comment(self, build):
        """Test a failed PEG match falls back to error tokens."""
        pkg = build(NESTED_COMMENTS)
        result = ampar.parse(pkg, "a /* b")
        assert not any(t.type == "COMMENT" for t in result.tokens)
        assert [d.kind for d in result.diagnostics] == [ampar.DiagnosticKind.LEXICAL] * 2

    def test_inline_peg_reference(self, build):
        """Test @peg(Block.Rule) in a rule becomes a DEFAULT token."""
        pkg = build(r"""
            %peg Num { Hex <- '0x' [0-9a-f]+ };
            %ignore /\s+/ ;
            start : @peg(Num.Hex)+ ;
        """)
        assert "__peg_Num_Hex" in pkg.symbols.terms
        result = ampar.parse(pkg, "0x1f 0xa")
        assert result.ok
        assert [t.text for t in result.tree.root.terminals()] == ["0x1f", "0xa"]

    def test_inline_peg_reuses_declared_token(self, build):
        """Test an inline reference to a declared PEG token uses that token."""
        pkg = build(r"""
            %peg Num { Hex <- '0x' [0-9a-f]+ };
            %token HEX %peg(Num.Hex) ;
            %ignore /\s+/ ;
            start : HEX @peg(Num.Hex) ;
        """)
        assert not any(t.startswith("__peg_") for t in pkg.symbols.terms)
        assert ampar.parse(pkg, "0x1 0x2").ok

    def test_undefined_peg_rule(self, build):
        """Test a token naming a missing PEG rule."""
        with pytest.raises(GrammarError) as exc:
            build(r"""
                %peg Num { Hex <- '0x' [0-9a-f]+ };
                %token X %peg(Num.Dec) ;
                start : X ;
            """)
        assert "Num.Dec" in str(exc.value)

    def test_undefined_peg_block(self, build):
        """Test an inline reference to a missing block."""
        with pytest.raises(GrammarError) as exc:
            build("start : @peg(Nope.R) ;")
        assert "Nope" in str(exc.value)

    def test_unterminated_block(self):
        """Test a %peg block without its closing brace."""
        with pytest.raises(GrammarError):
            ampar.build_package("%peg B { R <- 'x' \nstart : R ;")
