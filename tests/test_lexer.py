"""
Tests for the mode-stack lexer.
"""
import pytest

import ampar
from ampar import Channel, DiagnosticKind, InternalConsistencyError
from ampar.lex import LexerEngine
from ampar.lex.modes import BUILTIN_LEXER_PREDICATES, LexerSpec, LexRule, Mode


KEYWORDS = r"""
%token ID /[a-z]+/ ;
%ignore /\s+/ ;
"if" : "if" ;
"=" : "=" ;
"==" : "==" ;
start : (ID | "if" | "=" | "==")* ;
"""


class TestMaximalMunch:
    """Longest match wins, equal lengths go to the first declared rule."""

    def test_keyword_beats_identifier_of_same_length(self, build, tok):
        """Test that a keyword wins a tie against the identifier rule."""
        pkg = build(KEYWORDS)
        tokens = ampar.tokenize(pkg, "if iff i")
        assert tok.types(tokens) == ["if", "ID", "ID", "EOF"]

    def test_longer_operator_wins(self, build, tok):
        """Test that '==' is one token, not two '='."""
        pkg = build(KEYWORDS)
        tokens = ampar.tokenize(pkg, "a == b = c")
        assert tok.types(tokens) == ["ID", "==", "ID", "=", "ID", "EOF"]

    def test_tie_goes_to_first_declared_token(self, build, tok):
        """Test the declaration order tie-break between two regex rules."""
        pkg = build(r"""
            %token AB /ab/ ;
            %token WORD /[a-z]+/ ;
            start : (AB | WORD)* ;
        """)
        assert tok.types(ampar.tokenize(pkg, "ab")) == ["AB", "EOF"]
        assert tok.types(ampar.tokenize(pkg, "abc")) == ["WORD", "EOF"]

    def test_same_input_same_tokens(self, expr_pkg):
        """Test that lexing is deterministic."""
        text = "x = (1 + 2) * y; # done\n"
        first = ampar.tokenize(expr_pkg, text)
        second = ampar.tokenize(expr_pkg, text)
        assert first == second


class TestChannels:
    """Hidden, error and custom channels."""

    def test_round_trip_over_all_channels(self, expr_pkg, tok):
        """Test that all tokens together reproduce the input exactly."""
        text = "a = 1;  # note\n\tb = a*2 ;\n"
        assert tok.round_trip(ampar.tokenize(expr_pkg, text)) == text

    def test_ignored_tokens_are_hidden(self, expr_pkg):
        """Test that %ignore tokens are on the HIDDEN channel."""
        tokens = ampar.tokenize(expr_pkg, "a # c\n")
        by_type = {t.type: t.channel for t in tokens}
        assert by_type["WS"] == Channel.HIDDEN
        assert by_type["COMMENT"] == Channel.HIDDEN
        assert by_type["ID"] == Channel.DEFAULT

    def test_custom_channel(self, build):
        """Test channel(NAME) routes a token to a declared channel."""
        pkg = build(r"""
            %channel DOCS ;
            %token DOC /##[^\n]*/ -> channel(DOCS) ;
            %token ID /[a-z]+/ ;
            %ignore /\s+/ ;
            start : ID* ;
        """)
        tokens = ampar.tokenize(pkg, "## hello\nx")
        doc = [t for t in tokens if t.type == "DOC"][0]
        assert doc.channel == Channel.FIRST_CUSTOM
        assert pkg.lexer_spec.channels["DOCS"] == Channel.FIRST_CUSTOM

    def test_skip_drops_the_token(self, build, tok):
        """Test that skip removes the lexeme from the token list."""
        pkg = build(r"""
            %token WS /\s+/ -> skip ;
            %token ID /[a-z]+/ ;
            start : ID* ;
        """)
        tokens = ampar.tokenize(pkg, "a  b")
        assert [t.type for t in tokens] == ["ID", "ID", "EOF"]
        assert tok.round_trip(tokens) == "ab"

    def test_unknown_character_becomes_error_token(self, expr_pkg):
        """Test one error token and one lexical diagnostic per unmatched character."""
        diags = []
        lexer = expr_pkg.new_lexer("a @ b", diagnostics=diags)
        tokens = lexer.tokenize()
        errors = [t for t in tokens if t.channel == Channel.ERROR]
        assert len(errors) == 1
        assert errors[0].text == "@"
        assert errors[0].type_id == -1
        assert len(diags) == 1
        assert diags[0].kind == DiagnosticKind.LEXICAL
        assert diags[0].column == 3
        assert "'@'" in diags[0].message

    def test_positions(self, expr_pkg):
        """Test offsets, inclusive stops and 1-based line/column."""
        tokens = ampar.tokenize(expr_pkg, "ab\n  cd")
        cd = [t for t in tokens if t.text == "cd"][0]
        assert (cd.start, cd.stop, cd.line, cd.col) == (5, 6, 2, 3)
        eof = tokens[-1]
        assert eof.is_eof and eof.start == 7 and eof.stop == 6
        assert [t.index for t in tokens] == list(range(len(tokens)))


class TestModes:
    """Mode stack behaviour."""

    def test_interpolated_string(self, interp_pkg, tok):
        """Test that a push/pop pair switches rule sets."""
        tokens = ampar.tokenize(interp_pkg, '"a {b} c"')
        assert tok.types(tokens) == [
            "STR_START", "STR_TEXT", "EXPR_START", "ID", "EXPR_END", "STR_TEXT", "STR_END", "EOF"]

    def test_nested_modes_balance(self, interp_pkg, tok):
        """Test that nested pushes unwind back to DEFAULT."""
        text = '"x{"y{z}"}" w'
        lexer = interp_pkg.new_lexer(text)
        tokens = lexer.tokenize()
        assert lexer.mode_stack == ("DEFAULT",)
        assert not lexer.unterminated_at_eof
        assert tok.round_trip(tokens) == text
        assert tok.types(tokens).count("STR_START") == 2
        assert tok.types(tokens).count("STR_END") == 2

    def test_unterminated_mode_at_eof(self, interp_pkg):
        """Test a single diagnostic when input ends inside a pushed mode."""
        diags = []
        lexer = interp_pkg.new_lexer('"abc', diagnostics=diags)
        tokens = lexer.tokenize()
        assert tokens[-1].is_eof
        assert lexer.unterminated_at_eof
        assert len(diags) == 1
        assert diags[0].kind == DiagnosticKind.LEXICAL
        assert "unterminated STR mode" in diags[0].message

    def test_pop_in_default_mode_is_fatal(self, build):
        """Test that a mode stack underflow raises."""
        pkg = build(r"""
            %token CLOSE ")" -> pop ;
            start : CLOSE* ;
        """)
        assert any("pops" in w for w in pkg.warnings)
        with pytest.raises(InternalConsistencyError):
            ampar.tokenize(pkg, ")")

    def test_conditional_pop_in_default_mode(self, build, tok):
        """Test that pop? is a no-op at the bottom of the stack."""
        pkg = build(r"""
            %token CLOSE ")" -> pop? ;
            start : CLOSE* ;
        """)
        assert tok.types(ampar.tokenize(pkg, "))")) == ["CLOSE", "CLOSE", "EOF"]

    def test_mode_stack_overflow(self, build):
        """Test that pushing past max_mode_depth raises."""
        pkg = build(r"""
            %token OPEN "(" -> push(DEFAULT) ;
            start : OPEN* ;
        """)
        with pytest.raises(InternalConsistencyError):
            ampar.tokenize(pkg, "((((", max_mode_depth=3)


class TestLexerPredicates:
    """Rules gated by [when=...]."""

    def test_builtin_line_start_predicate(self, build, tok):
        """Test that a gated rule only matches where its predicate holds."""
        pkg = build(r"""
            %token DIRECTIVE /#[a-z]+/ [when='at_line_start'] ;
            %token TAG /#[a-z]+/ ;
            %ignore /[ \n]+/ ;
            start : (DIRECTIVE | TAG)* ;
        """)
        assert tok.types(ampar.tokenize(pkg, "#def #x\n#end")) == ["DIRECTIVE", "TAG", "DIRECTIVE", "EOF"]

    def test_user_predicate(self, build, tok):
        """Test a lexer predicate supplied at build time."""
        def after_dot(ctx):
            return ctx.previous is not None and ctx.previous.text == "."

        pkg = build(r"""
            %token FIELD /[a-z]+/ [when=after_dot] ;
            %token NAME /[a-z]+/ ;
            "." : "." ;
            start : (FIELD | NAME | ".")* ;
        """, lexer_predicates={"after_dot": after_dot})
        assert tok.types(ampar.tokenize(pkg, "a.b")) == ["NAME", ".", "FIELD", "EOF"]

    def test_unknown_lexer_predicate_is_a_grammar_error(self, build):
        """Test build-time validation of predicate names."""
        with pytest.raises(ampar.GrammarError):
            build(r"""
                %token X /x/ [when=nope] ;
                start : X ;
            """)

    def test_trigger_character(self, build, tok):
        """Test that a trigger-gated rule is only tried at its trigger character."""
        pkg = build(r"""
            %token VAR /\$[a-z]+/ [trigger='$'] ;
            %token WORD /[a-z$]+/ ;
            start : (VAR | WORD)* ;
        """)
        assert tok.types(ampar.tokenize(pkg, "$ab")) == ["VAR", "EOF"]


class TestLexerEngine:
    """Direct use of the engine."""

    def test_next_token_repeats_eof(self, expr_pkg):
        """Test that EOF is sticky."""
        lexer = LexerEngine(expr_pkg.lexer_spec, "a", token_ids=expr_pkg.token_ids)
        lexer.next_token()
        first = lexer.next_token()
        again = lexer.next_token()
        assert first.is_eof and again is first

    def test_bom_stripped_before_lexing(self, expr_pkg):
        """Test that offsets are relative to the BOM-free text."""
        tokens = ampar.tokenize(expr_pkg, "\ufeffab")
        assert tokens[0].text == "ab"
        assert tokens[0].start == 0


class TestLexerSpec:
    """Immutable lexer configuration."""

    def test_default_predicates(self):
        """Test a spec built without predicates gets the built-in ones."""
        spec = LexerSpec(modes={"DEFAULT": Mode("DEFAULT", (LexRule("A", "literal", "a", 0),))})
        assert dict(spec.predicates) == dict(BUILTIN_LEXER_PREDICATES)
        assert dict(spec.pegs) == {} and dict(spec.channels) == {}

    def test_missing_default_mode(self):
        """Test a spec without a DEFAULT mode is rejected."""
        with pytest.raises(ampar.GrammarError):
            LexerSpec(modes={"OTHER": Mode("OTHER", ())})
