"""
Tests for the serialisable grammar package IR.
"""
import json

import pytest

import ampar
from ampar import GrammarError
from ampar.codegen import build_ir, dump_ir, load_ir, load_ir_file, write_ir_file
from ampar.codegen.ir import IR_FORMAT


def is_type(ctx):
    return ctx.text(1) in ctx.env.get("types", ())


def same_result(a, b, text, **kw):
    ra = ampar.parse(a, text, **kw)
    rb = ampar.parse(b, text, **kw)
    assert ra.tree.to_sexpr() == rb.tree.to_sexpr()
    assert [d.message for d in ra.diagnostics] == [d.message for d in rb.diagnostics]
    assert [(t.type, t.text, t.channel) for t in ra.tokens] == [(t.type, t.text, t.channel) for t in rb.tokens]


class TestIRRoundTrip:
    """Packages restored from IR behave like the originals."""

    def test_expression_grammar(self, expr_pkg):
        """Test trees, tokens and diagnostics survive a JSON round trip."""
        restored = load_ir(dump_ir(expr_pkg))
        assert restored.symbols.terms == expr_pkg.symbols.terms
        assert restored.rule_names == expr_pkg.rule_names
        for text in ["a = 1 + 2 * (3 - b);", "x y;", "a = 1\nb = 2;", "1 + 2 )"]:
            same_result(expr_pkg, restored, text)

    def test_modes_and_recovery_sync(self, interp_pkg, stmts_pkg):
        """Test mode stacks and %sync sets are preserved."""
        same_result(interp_pkg, load_ir(build_ir(interp_pkg)), '"a {b} {"c{d}"}" "x={y')
        restored = load_ir(build_ir(stmts_pkg))
        assert restored.global_sync == stmts_pkg.global_sync
        assert dict(restored.rule_sync) == dict(stmts_pkg.rule_sync)
        same_result(stmts_pkg, restored, "if (a) { b = ; } else { c = 1 }")

    def test_predicates_rebound_by_name(self, cast_pkg):
        """Test semantic predicates are supplied again when loading."""
        data = build_ir(cast_pkg)
        assert data["predicates"] == ["is_type"]
        restored = load_ir(data, predicates={"is_type": is_type})
        same_result(cast_pkg, restored, "(T) x; (a); f(x);", env={"types": {"T"}})

    def test_missing_predicate(self, cast_pkg):
        """Test loading fails when a predicate is not supplied."""
        with pytest.raises(GrammarError):
            load_ir(build_ir(cast_pkg))

    def test_peg_tokens(self, build):
        """Test PEG blocks are rebuilt from their source."""
        pkg = build(r"""
            %peg Cm { Comment <- '/*' (Comment / !'*/' .)* '*/' };
            %token ID /[a-z]+/ ;
            %ignore /\s+/ ;
            %ignore COMMENT %peg(Cm.Comment) ;
            start : ID* ;
        """)
        same_result(pkg, load_ir(dump_ir(pkg)), "a /* b /* c */ */ d")

    def test_options_preserved(self, generics_pkg):
        """Test engine options travel with the IR."""
        restored = load_ir(dump_ir(generics_pkg))
        assert restored.options == generics_pkg.options
        same_result(generics_pkg, restored, "f<a,b>(x); a < b > (c);", report_ambiguity=True)

    def test_file_round_trip(self, expr_pkg, tmp_path):
        """Test writing and reading an IR file."""
        path = tmp_path / "expr.json"
        write_ir_file(expr_pkg, path)
        assert json.loads(path.read_text(encoding="utf-8"))["format"] == IR_FORMAT
        same_result(expr_pkg, load_ir_file(path), "a = 1;")


class TestIRValidation:
    """Malformed or foreign IR."""

    def test_wrong_format(self, expr_pkg):
        """Test the format marker is checked."""
        data = build_ir(expr_pkg)
        data["format"] = "something-else"
        with pytest.raises(GrammarError):
            load_ir(data)

    def test_wrong_version(self, expr_pkg):
        """Test the version is checked."""
        data = build_ir(expr_pkg)
        data["version"] = 999
        with pytest.raises(GrammarError):
            load_ir(data)

    def test_inconsistent_terminals(self, expr_pkg):
        """Test shuffled terminal names are rejected."""
        data = build_ir(expr_pkg)
        data["symbols"]["terms"] = list(reversed(data["symbols"]["terms"]))
        with pytest.raises(GrammarError):
            load_ir(data)

    def test_ir_is_plain_json(self, expr_pkg):
        """Test the IR contains only JSON types."""
        data = build_ir(expr_pkg)
        assert json.loads(json.dumps(data)) == data
