# ampar/tree/processor.py
"""상향식(bottom-up) 트리 처리기.

자식이 모두 처리된 뒤에 부모를 처리한다(잎 먼저). 규칙별 처리 함수의 반환값은
`results[node]`로 모여 부모 처리 함수가 꺼내 쓸 수 있다.

    proc = ParseTreeProcessor()
    proc.register("term", lambda node, results: int(node.text))
    proc.register("expr", lambda node, results: sum(results[c] for c in node.rule_children))
    value = proc.process(tree.root)
"""

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .nodes import Node, RuleNode

logger = logging.getLogger(__name__)

Handler = Callable[[RuleNode, Dict[RuleNode, Any]], Any]


class ParseTreeProcessor:
    def __init__(self, default: Optional[Handler] = None):
        self._handlers: Dict[str, Handler] = {}
        self._default = default

    def register(self, rule, fn: Handler) -> "ParseTreeProcessor":
        key = rule if isinstance(rule, str) else rule.name
        self._handlers[key] = fn
        return self

    def order(self, root: RuleNode) -> List[RuleNode]:
        """후위 순서(자식 → 부모)의 규칙 노드 목록."""
        out: List[RuleNode] = []
        stack: List[Tuple[Node, bool]] = [(root, False)]
        while stack:
            node, done = stack.pop()
            if not isinstance(node, RuleNode):
                continue
            if done:
                out.append(node)
                continue
            stack.append((node, True))
            for c in reversed(node.children):
                stack.append((c, False))
        return out

    def process(self, root: RuleNode) -> Any:
        """모든 규칙 노드를 상향식으로 처리하고 루트의 결과를 돌려준다."""
        results: Dict[RuleNode, Any] = {}
        for node in self.order(root):
            fn = self._handlers.get(node.kind.name, self._default)
            if fn is None:
                continue
            results[node] = fn(node, results)
        self.results = results
        logger.debug("processed %d rule nodes", len(results))
        return results.get(root)
