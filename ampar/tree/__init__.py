# ampar/tree/__init__.py
from .nodes import ErrorNode, ParseTree, RuleNode, TerminalNode, make_rule_kinds
from .builder import TreeBuilder
from .listener import ParseTreeListener, ParseTreeWalker, Phase, RuleListener, events
from .processor import ParseTreeProcessor
from .query import PatternWalker, match_path, rule_path

__all__ = [
    "ErrorNode", "ParseTree", "RuleNode", "TerminalNode", "make_rule_kinds",
    "TreeBuilder",
    "ParseTreeListener", "ParseTreeWalker", "Phase", "RuleListener", "events",
    "ParseTreeProcessor",
    "PatternWalker", "match_path", "rule_path",
]
