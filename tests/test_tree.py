"""
Tests for tree walking, events, bottom-up processing and path queries.
"""
import operator

import pytest

import ampar
from ampar.tree import (ParseTreeProcessor, PatternWalker, Phase, RuleListener,
                        match_path, rule_path)

OPS = {"+": operator.add, "-": operator.sub, "*": operator.mul, "/": operator.floordiv}


def fold(node, results):
    """Left-associative fold over `operand (op operand)*` children."""
    children = node.children
    value = results[children[0]]
    for i in range(1, len(children) - 1, 2):
        value = OPS[children[i].text](value, results[children[i + 1]])
    return value


def factor(node, results):
    if node.token("NUM") is not None:
        return int(node.token("NUM").text)
    if node.child("expr") is not None:
        return results[node.child("expr")]
    if node.child("factor") is not None:
        return -results[node.child("factor")]
    return 0


@pytest.fixture
def calculator():
    return (ParseTreeProcessor()
            .register("factor", factor)
            .register("term", fold)
            .register("expr", fold))


class TestWalker:
    """Depth-first walking after the parse."""

    def test_walk_matches_parse_time_events(self, expr_pkg):
        """Test a later walk sees the same sequence as parse-time listeners."""
        live, later = [], []

        class Recorder(ampar.ParseTreeListener):
            def __init__(self, out):
                self.out = out

            def enter_rule(self, node):
                self.out.append(("enter", node.rule))

            def exit_rule(self, node):
                self.out.append(("exit", node.rule))

            def visit_terminal(self, node):
                self.out.append(("term", node.text))

            def visit_error(self, node):
                self.out.append(("error", node.text))

        result = ampar.parse(expr_pkg, "a = 1 1;", listeners=[Recorder(live)])
        result.tree.walk(Recorder(later))
        assert live == later
        assert ("error", "1") in later

    def test_rule_listener_with_enum_keys(self, expr_pkg):
        """Test callbacks registered by rule kind member."""
        names = []
        listener = RuleListener().on_enter(expr_pkg.kinds.factor, lambda n: names.append(n.text))
        ampar.parse(expr_pkg, "x * (y);").tree.walk(listener)
        assert names == ["x", "(y)", "y"]

    def test_events_stream(self, expr_pkg):
        """Test the (phase, kind, node) event stream."""
        tree = ampar.parse(expr_pkg, "1;").tree
        phases = [(phase, getattr(kind, "name", kind)) for phase, kind, _ in tree.events()]
        assert phases == [
            (Phase.ENTER, "file"), (Phase.ENTER, "stmt"), (Phase.ENTER, "expr"),
            (Phase.ENTER, "term"), (Phase.ENTER, "factor"), (Phase.TERMINAL, "NUM"),
            (Phase.EXIT, "factor"), (Phase.EXIT, "term"), (Phase.EXIT, "expr"),
            (Phase.TERMINAL, ";"), (Phase.EXIT, "stmt"), (Phase.TERMINAL, "EOF"),
            (Phase.EXIT, "file"),
        ]

    def test_error_events(self, expr_pkg):
        """Test error leaves show up as ERROR events."""
        tree = ampar.parse(expr_pkg, "1 )", rule="expr").tree
        errors = [node.text for phase, _, node in tree.events() if phase is Phase.ERROR]
        assert errors == [")"]


class TestProcessor:
    """Bottom-up evaluation."""

    @pytest.mark.parametrize("text, value", [
        ("1 + 2 * 3;", 7),
        ("(1 + 2) * 3;", 9),
        ("10 - 4 - 3;", 3),
        ("-(2 * -3);", 6),
        ("8 / 2 / 2;", 2),
    ])
    def test_evaluate(self, expr_pkg, calculator, text, value):
        """Test evaluating an arithmetic expression from the leaves up."""
        root = ampar.parse(expr_pkg, text).tree.find_all("expr")[0]
        assert calculator.process(root) == value

    def test_children_before_parents(self, expr_pkg):
        """Test the processing order is post-order."""
        root = ampar.parse(expr_pkg, "1 + 2;").tree.root
        order = [n.rule for n in ParseTreeProcessor().order(root)]
        assert order == ["factor", "term", "factor", "term", "expr", "stmt", "file"]

    def test_default_handler(self, expr_pkg):
        """Test a default handler covers unregistered rules."""
        root = ampar.parse(expr_pkg, "1;").tree.root
        proc = ParseTreeProcessor(default=lambda node, results: node.rule)
        assert proc.process(root) == "file"
        assert len(proc.results) == 5

    def test_unhandled_rules_are_skipped(self, expr_pkg):
        """Test no result is stored for rules without a handler."""
        root = ampar.parse(expr_pkg, "1;").tree.root
        proc = ParseTreeProcessor().register("factor", lambda node, results: 1)
        assert proc.process(root) is None
        assert list(proc.results.values()) == [1]


class TestPathQueries:
    """Rule path patterns."""

    def test_rule_path(self, expr_pkg):
        """Test the path from the root."""
        tree = ampar.parse(expr_pkg, "1;").tree
        (factor_node,) = tree.find_all("factor")
        assert rule_path(factor_node) == ["file", "stmt", "expr", "term", "factor"]

    def test_match_path(self, expr_pkg):
        """Test direct-child and wildcard patterns."""
        tree = ampar.parse(expr_pkg, "(1);").tree
        outer, inner = tree.find_all("factor")
        assert match_path(outer, ["term", "factor"])
        assert match_path(inner, ["factor", "*", "factor"])
        assert not match_path(outer, ["factor", "*", "factor"])
        assert match_path(inner, ["stmt", "*", "term", "factor"])
        assert not match_path(inner, ["stmt", "factor"])
        assert not match_path(inner, [])

    def test_pattern_walker(self, expr_pkg):
        """Test converters run for matching nodes in registration order."""
        seen = []
        walker = (PatternWalker()
                  .add(["factor", "*", "factor"], lambda n: seen.append(("nested", n.text)))
                  .add(["stmt", "*"], lambda n: seen.append(("under-stmt", n.rule))))
        ampar.parse(expr_pkg, "(a);").tree.walk(walker)
        assert ("nested", "a") in seen
        assert ("under-stmt", "expr") in seen
        assert ("nested", "(a)") not in seen

    def test_wildcard_and_named_patterns_keep_registration_order(self, expr_pkg):
        """Test a pattern ending in '*' registered first also runs first."""
        calls = []
        walker = (PatternWalker()
                  .add(["term", "*"], lambda n: calls.append("any"))
                  .add(["term", "factor"], lambda n: calls.append("named")))
        ampar.parse(expr_pkg, "1;").tree.walk(walker)
        assert calls == ["any", "named"]

    def test_empty_pattern_rejected(self):
        """Test an empty pattern is an error."""
        with pytest.raises(ValueError):
            PatternWalker().add([], lambda n: None)


class TestNodeHelpers:
    """Small node utilities."""

    def test_find_all_preorder(self, expr_pkg):
        """Test find_all visits nodes in pre-order."""
        tree = ampar.parse(expr_pkg, "a; b; c;").tree
        assert [n.text for n in tree.find_all("stmt")] == ["a;", "b;", "c;"]

    def test_empty_rule_source_text(self, build):
        """Test a rule that matched nothing has empty source text."""
        pkg = build(r"""
            %token A "a" ;
            %ignore /\s+/ ;
            r : opt A ;
            opt : A A | ;
        """)
        tree = ampar.parse(pkg, "a").tree
        (opt,) = tree.find_all("opt")
        assert opt.children == []
        assert opt.source_text(tree.source) == ""
        assert opt.text == ""

    def test_repr(self, expr_pkg):
        """Test the debugging representations."""
        tree = ampar.parse(expr_pkg, "1;").tree
        assert repr(tree).startswith("ParseTree(root=file")
        assert repr(tree.root) == "RuleNode(file, children=2)"
