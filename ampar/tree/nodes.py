# ampar/tree/nodes.py
"""파스 트리 노드.

규칙마다 클래스를 만드는 대신, 하나의 `RuleNode`가 `kind`(규칙 IntEnum)를 가진다.
규칙 IntEnum은 문법의 규칙 이름으로부터 패키지 빌드 시 만들어진다(`make_rule_kinds`).

- RuleNode    : 규칙 호출 1회. children = RuleNode | TerminalNode | ErrorNode
- TerminalNode: 매치된 토큰 1개
- ErrorNode   : 복구 중 삭제/삽입/건너뛴 토큰
- ParseTree   : 루트 + 전체 토큰 목록(모든 채널) + 원문
"""

from __future__ import annotations
from enum import IntEnum
from typing import Iterator, List, Optional, Sequence, Union

from ..lex.tokens import Token


def make_rule_kinds(rule_names: Sequence[str], name: str = "RuleKind") -> type:
    """규칙 이름 → IntEnum. 값은 규칙 번호(선언 순서, 0부터)."""
    return IntEnum(name, [(r, i) for i, r in enumerate(rule_names)])


class TerminalNode:
    __slots__ = ("token", "parent")

    is_error = False

    def __init__(self, token: Token, parent: Optional["RuleNode"] = None):
        self.token = token
        self.parent = parent

    @property
    def text(self) -> str:
        return self.token.text

    @property
    def symbol(self) -> str:
        return self.token.type

    def __repr__(self) -> str:
        return f"{self.token.type}{self.token.text!r}"


class ErrorNode(TerminalNode):
    __slots__ = ()

    is_error = True

    def __repr__(self) -> str:
        return f"<error {self.token.text!r}>"


Node = Union["RuleNode", TerminalNode]


class RuleNode:
    """
    RuleNode
    ========
    - kind       : 규칙 IntEnum 멤버
    - children   : 순서 있는 자식 목록
    - parent     : 부모 RuleNode(소유하지 않음), 루트는 None
    - start/stop : 첫/마지막 토큰 (비어 있는 규칙이면 stop이 start 앞 토큰)
    - exception  : 복구로 빠져나온 경우 그 진단
    """
    __slots__ = ("kind", "children", "parent", "start", "stop", "exception")

    def __init__(self, kind: IntEnum, parent: Optional["RuleNode"] = None,
                 start: Optional[Token] = None):
        self.kind = kind
        self.parent = parent
        self.children: List[Node] = []
        self.start = start
        self.stop: Optional[Token] = None
        self.exception = None

    @property
    def rule(self) -> str:
        return self.kind.name

    @property
    def start_index(self) -> int:
        return -1 if self.start is None else self.start.index

    @property
    def stop_index(self) -> int:
        return -1 if self.stop is None else self.stop.index

    # ---- 접근자 ----
    def child(self, name: str, i: int = 0) -> Optional[Node]:
        """이름(규칙 이름 또는 토큰 타입)이 같은 i번째 자식."""
        for c in self._named(name):
            if i == 0:
                return c
            i -= 1
        return None

    def children_of(self, name: str) -> List[Node]:
        return list(self._named(name))

    def token(self, name: str, i: int = 0) -> Optional[Token]:
        """토큰 타입이 name인 i번째 (오류가 아닌) 단말 자식의 토큰."""
        for c in self.children:
            if isinstance(c, TerminalNode) and not c.is_error and c.token.type == name:
                if i == 0:
                    return c.token
                i -= 1
        return None

    def _named(self, name: str) -> Iterator[Node]:
        for c in self.children:
            if isinstance(c, RuleNode):
                if c.kind.name == name:
                    yield c
            elif not c.is_error and c.token.type == name:
                yield c

    @property
    def rule_children(self) -> List["RuleNode"]:
        return [c for c in self.children if isinstance(c, RuleNode)]

    def terminals(self) -> Iterator[TerminalNode]:
        """하위 단말(오류 포함)을 왼쪽부터. 재귀 없이 순회."""
        stack: List[Node] = [self]
        while stack:
            n = stack.pop()
            if isinstance(n, RuleNode):
                stack.extend(reversed(n.children))
            else:
                yield n

    @property
    def text(self) -> str:
        """가상 토큰을 뺀 하위 토큰 텍스트의 연결(숨은 채널 제외)."""
        return "".join(t.token.text for t in self.terminals() if not t.token.virtual)

    def source_text(self, source: str) -> str:
        """원문에서 start~stop 구간(숨은 토큰 포함)."""
        if self.start is None or self.stop is None or self.stop.end <= self.start.start:
            return ""
        return source[self.start.start:self.stop.end]

    @property
    def has_error(self) -> bool:
        return any(t.is_error for t in self.terminals())

    def depth(self) -> int:
        d = 0
        p = self.parent
        while p is not None:
            d += 1
            p = p.parent
        return d

    def to_sexpr(self) -> str:
        """`expr(term(IDENT"a"), PLUS, term(IDENT"b"))` 형태(테스트/디버깅용)."""
        out: List[str] = []
        # (node, 닫을 차례인가)
        stack: List[tuple] = [(self, False)]
        pending_comma: List[bool] = [False]
        while stack:
            n, closing = stack.pop()
            if closing:
                out.append(")")
                pending_comma.pop()
                continue
            if pending_comma[-1]:
                out.append(", ")
            pending_comma[-1] = True
            if isinstance(n, RuleNode):
                out.append(f"{n.kind.name}(")
                stack.append((n, True))
                pending_comma.append(False)
                for c in reversed(n.children):
                    stack.append((c, False))
            elif n.is_error:
                out.append(f"<error {n.token.text!r}>")
            elif n.token.type == n.token.text or n.token.is_eof:
                out.append(n.token.type)
            else:
                out.append(f'{n.token.type}"{n.token.text}"')
        return "".join(out)

    def __repr__(self) -> str:
        return f"RuleNode({self.kind.name}, children={len(self.children)})"


class ParseTree:
    """파싱 결과 트리. root와 전체 토큰 목록, 원문을 함께 보관한다."""

    def __init__(self, root: RuleNode, tokens: List[Token], source: str, kinds: type):
        self.root = root
        self.tokens = tokens
        self.source = source
        self.kinds = kinds

    def walk(self, listener) -> None:
        from .listener import ParseTreeWalker
        ParseTreeWalker.DEFAULT.walk(listener, self.root)

    def events(self):
        from .listener import events
        return events(self.root)

    def find_all(self, rule: str) -> List[RuleNode]:
        """전위 순서로 규칙 이름이 rule인 노드들."""
        out: List[RuleNode] = []
        stack: List[Node] = [self.root]
        while stack:
            n = stack.pop()
            if isinstance(n, RuleNode):
                if n.kind.name == rule:
                    out.append(n)
                stack.extend(reversed(n.children))
        return out

    def to_sexpr(self) -> str:
        return self.root.to_sexpr()

    def __repr__(self) -> str:
        return f"ParseTree(root={self.root.kind.name}, tokens={len(self.tokens)})"
