# ampar/tree/builder.py
"""파싱 중 트리를 쌓는 빌더.

- enter_rule : 새 RuleNode를 만들어 현재 노드의 자식으로 **즉시** 붙이고 listener.enter_rule
- terminal   : TerminalNode 추가 (listener.visit_terminal)
- error      : ErrorNode 추가 (listener.visit_error)
- exit_rule  : stop 토큰 기록, listener.exit_rule, 부모로 복귀

복구로 규칙을 빠져나와도 exit_rule 은 반드시 호출되므로 enter/exit 짝이 맞는다.
"""

from __future__ import annotations
from enum import IntEnum
from typing import List, Optional

from ..errors import InternalConsistencyError
from ..lex.tokens import Token
from .nodes import ErrorNode, RuleNode, TerminalNode


class TreeBuilder:
    def __init__(self, kinds: type, listeners: Optional[List] = None):
        self.kinds = kinds
        self.listeners = list(listeners or [])
        self.root: Optional[RuleNode] = None
        self.current: Optional[RuleNode] = None
        self._last: Optional[Token] = None

    def enter_rule(self, rule_index: int, start: Token) -> RuleNode:
        kind: IntEnum = self.kinds(rule_index)
        node = RuleNode(kind, self.current, start)
        if self.current is None:
            if self.root is not None:
                raise InternalConsistencyError("second root rule entered")
            self.root = node
        else:
            self.current.children.append(node)
        self.current = node
        for lst in self.listeners:
            lst.enter_rule(node)
        return node

    def exit_rule(self) -> RuleNode:
        node = self.current
        if node is None:
            raise InternalConsistencyError("exit_rule without a matching enter_rule")
        # 아무 토큰도 소비하지 않은 규칙: stop 은 start 직전 토큰(= 마지막 소비 토큰), 없으면 None
        node.stop = self._last
        for lst in self.listeners:
            lst.exit_rule(node)
        self.current = node.parent
        return node

    def terminal(self, token: Token) -> TerminalNode:
        leaf = TerminalNode(token, self.current)
        self.current.children.append(leaf)
        if not token.virtual:
            self._last = token
        for lst in self.listeners:
            lst.visit_terminal(leaf)
        return leaf

    def error(self, token: Token) -> ErrorNode:
        leaf = ErrorNode(token, self.current)
        self.current.children.append(leaf)
        if not token.virtual:
            self._last = token
        for lst in self.listeners:
            lst.visit_error(leaf)
        return leaf
