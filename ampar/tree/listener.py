# ampar/tree/listener.py
"""트리 순회 인터페이스.

- ParseTreeListener : enter_rule / exit_rule / visit_terminal / visit_error (모든 규칙 공통)
- RuleListener      : 규칙 이름별 콜백 등록 (`on_enter("expr", fn)`)
- ParseTreeWalker   : 재귀 없는 깊이 우선 순회
- events(root)      : (Phase, kind, node) 튜플 스트림
"""

from __future__ import annotations
from enum import Enum
from typing import Callable, Dict, Iterator, List, Tuple

from .nodes import ErrorNode, Node, RuleNode, TerminalNode


class ParseTreeListener:
    """기본 구현은 아무것도 하지 않는다. 필요한 메서드만 덮어쓰면 된다."""

    def enter_rule(self, node: RuleNode) -> None:
        pass

    def exit_rule(self, node: RuleNode) -> None:
        pass

    def visit_terminal(self, node: TerminalNode) -> None:
        pass

    def visit_error(self, node: ErrorNode) -> None:
        pass


Callback = Callable[[RuleNode], None]


class RuleListener(ParseTreeListener):
    """
    RuleListener
    ============
    규칙 이름(또는 IntEnum 멤버)별 enter/exit 콜백 테이블.

        lst = RuleListener()
        lst.on_enter("call", lambda n: calls.append(n.text))
        tree.walk(lst)
    """

    def __init__(self):
        self._enter: Dict[str, List[Callback]] = {}
        self._exit: Dict[str, List[Callback]] = {}

    @staticmethod
    def _key(rule) -> str:
        return rule if isinstance(rule, str) else rule.name

    def on_enter(self, rule, fn: Callback) -> "RuleListener":
        self._enter.setdefault(self._key(rule), []).append(fn)
        return self

    def on_exit(self, rule, fn: Callback) -> "RuleListener":
        self._exit.setdefault(self._key(rule), []).append(fn)
        return self

    def enter_rule(self, node: RuleNode) -> None:
        for fn in self._enter.get(node.kind.name, ()):
            fn(node)

    def exit_rule(self, node: RuleNode) -> None:
        for fn in self._exit.get(node.kind.name, ()):
            fn(node)


class ParseTreeWalker:
    """명시적 스택으로 순회하므로 깊은 트리에서도 재귀 한도에 걸리지 않는다."""

    DEFAULT: "ParseTreeWalker"

    def walk(self, listener: ParseTreeListener, root: Node) -> None:
        stack: List[Tuple[Node, bool]] = [(root, False)]
        while stack:
            node, done = stack.pop()
            if isinstance(node, RuleNode):
                if done:
                    listener.exit_rule(node)
                    continue
                listener.enter_rule(node)
                stack.append((node, True))
                for c in reversed(node.children):
                    stack.append((c, False))
            elif node.is_error:
                listener.visit_error(node)
            else:
                listener.visit_terminal(node)


ParseTreeWalker.DEFAULT = ParseTreeWalker()


class Phase(Enum):
    ENTER = "enter"
    EXIT = "exit"
    TERMINAL = "terminal"
    ERROR = "error"


def events(root: RuleNode) -> Iterator[Tuple[Phase, object, Node]]:
    """(phase, kind, node). 단말이면 kind 자리에 토큰 타입 이름."""
    stack: List[Tuple[Node, bool]] = [(root, False)]
    while stack:
        node, done = stack.pop()
        if isinstance(node, RuleNode):
            if done:
                yield Phase.EXIT, node.kind, node
                continue
            yield Phase.ENTER, node.kind, node
            stack.append((node, True))
            for c in reversed(node.children):
                stack.append((c, False))
        elif node.is_error:
            yield Phase.ERROR, node.token.type, node
        else:
            yield Phase.TERMINAL, node.token.type, node
