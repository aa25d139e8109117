# ampar/lex/peg.py
"""PEG 기반 어휘 오토마톤.

정규식으로 표현할 수 없는 토큰(중첩 블록 주석 `/* /* */ */` 등)을
`%peg NAME { ... };` 블록으로 정의하고 `%token T %peg(NAME.Rule);`로 참조한다.

지원 문법(부분집합)
------------------
    rule     := IDENT "<-" expr
    expr     := seq ("/" seq)*
    seq      := prefix*
    prefix   := ("&" | "!")? suffix
    suffix   := primary ("?" | "*" | "+")?
    primary  := IDENT | literal | class | "." | "(" expr ")"

리터럴은 '...' / "..." (\\n \\r \\t \\\\ \\' \\" \\xHH \\uXXXX), 클래스는 [^a-z_].
주석은 `#`, `//`, `/* */`.

매처는 packrat 메모(rule, pos) → end 를 **같은 텍스트에 대해서만** 재사용한다.
좌재귀는 지원하지 않는다(진행 중 재진입은 실패로 취급).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from ..errors import GrammarError


# ---------- AST ----------

@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class CharClass:
    negated: bool
    ranges: Tuple[Tuple[int, int], ...] = ()
    singles: frozenset = field(default_factory=frozenset)

    def accepts(self, ch: str) -> bool:
        cp = ord(ch)
        hit = ch in self.singles or any(lo <= cp <= hi for lo, hi in self.ranges)
        return hit != self.negated


@dataclass(frozen=True)
class AnyChar:
    pass


@dataclass(frozen=True)
class Ref:
    name: str


@dataclass(frozen=True)
class Lookahead:
    node: "Node"
    positive: bool  # & = True, ! = False


@dataclass(frozen=True)
class Repeat:
    node: "Node"
    kind: str  # '?', '*', '+'


@dataclass(frozen=True)
class Sequence:
    items: Tuple["Node", ...]


@dataclass(frozen=True)
class Choice:
    alts: Tuple["Node", ...]


Node = Union[Literal, CharClass, AnyChar, Ref, Lookahead, Repeat, Sequence, Choice]


@dataclass(frozen=True)
class PegGrammar:
    name: str
    rules: Tuple[Tuple[str, Node], ...]
    source: str

    def rule(self, name: str) -> Node:
        for n, node in self.rules:
            if n == name:
                return node
        raise GrammarError(f"PEG block '{self.name}': undefined rule '{name}'")

    def has_rule(self, name: str) -> bool:
        return any(n == name for n, _ in self.rules)


# ---------- 블록 파서 ----------

_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "'": "'", '"': '"', "\\": "\\",
            "[": "[", "]": "]", "-": "-"}


class _PegReader:
    """%peg 블록 본문을 읽는 재귀 하강 파서."""

    def __init__(self, name: str, src: str):
        self.name = name
        self.s = src
        self.i = 0

    def _err(self, msg: str) -> GrammarError:
        return GrammarError(f"PEG block '{self.name}' at offset {self.i}: {msg}")

    def _eof(self) -> bool:
        return self.i >= len(self.s)

    def _peek(self) -> Optional[str]:
        return None if self._eof() else self.s[self.i]

    def _skip_ws(self) -> None:
        s = self.s
        while not self._eof():
            if s.startswith("/*", self.i):
                j = s.find("*/", self.i + 2)
                if j < 0:
                    raise self._err("unclosed block comment")
                self.i = j + 2
            elif s.startswith("//", self.i) or s[self.i] == "#":
                j = s.find("\n", self.i)
                self.i = len(s) if j < 0 else j
            elif s[self.i] in " \t\r\n":
                self.i += 1
            else:
                return

    def _try(self, lit: str) -> bool:
        self._skip_ws()
        if self.s.startswith(lit, self.i):
            self.i += len(lit)
            return True
        return False

    def _expect(self, lit: str) -> None:
        if not self._try(lit):
            raise self._err(f"expected {lit!r}")

    def _ident(self) -> str:
        self._skip_ws()
        start = self.i
        if self._eof() or not (self.s[self.i].isalpha() or self.s[self.i] == "_"):
            raise self._err("expected identifier")
        while not self._eof() and (self.s[self.i].isalnum() or self.s[self.i] == "_"):
            self.i += 1
        return self.s[start:self.i]

    def _at_rule_head(self) -> bool:
        save = self.i
        try:
            self._ident()
            return self._try("<-")
        except GrammarError:
            return False
        finally:
            self.i = save

    def _escape(self) -> str:
        c = self._peek()
        if c is None:
            raise self._err("unterminated escape")
        self.i += 1
        if c in _ESCAPES:
            return _ESCAPES[c]
        width = {"x": 2, "u": 4}.get(c)
        if width is None:
            return c
        digits = self.s[self.i:self.i + width]
        if len(digits) != width:
            raise self._err("truncated escape")
        self.i += width
        try:
            return chr(int(digits, 16))
        except ValueError:
            raise self._err(f"invalid hex escape {digits!r}")

    def grammar(self) -> PegGrammar:
        rules: List[Tuple[str, Node]] = []
        seen = set()
        while True:
            self._skip_ws()
            if self._eof():
                break
            name = self._ident()
            self._expect("<-")
            if name in seen:
                raise self._err(f"duplicate rule '{name}'")
            seen.add(name)
            rules.append((name, self._expr()))
        if not rules:
            raise self._err("empty PEG block")
        return PegGrammar(self.name, tuple(rules), self.s)

    def _expr(self) -> Node:
        alts = [self._seq()]
        while self._try("/"):
            alts.append(self._seq())
        return alts[0] if len(alts) == 1 else Choice(tuple(alts))

    def _seq(self) -> Node:
        items: List[Node] = []
        while True:
            self._skip_ws()
            ch = self._peek()
            if ch is None or ch in ")/" or self._at_rule_head():
                break
            items.append(self._prefix())
        if len(items) == 1:
            return items[0]
        return Sequence(tuple(items))

    def _prefix(self) -> Node:
        if self._try("&"):
            return Lookahead(self._suffix(), True)
        if self._try("!"):
            return Lookahead(self._suffix(), False)
        return self._suffix()

    def _suffix(self) -> Node:
        node = self._primary()
        for kind in ("?", "*", "+"):
            if self._try(kind):
                return Repeat(node, kind)
        return node

    def _primary(self) -> Node:
        self._skip_ws()
        ch = self._peek()
        if ch == "(":
            self.i += 1
            node = self._expr()
            self._expect(")")
            return node
        if ch == ".":
            self.i += 1
            return AnyChar()
        if ch in ("'", '"'):
            return self._literal(ch)
        if ch == "[":
            return self._class()
        return Ref(self._ident())

    def _literal(self, quote: str) -> Literal:
        self.i += 1
        out: List[str] = []
        while True:
            c = self._peek()
            if c is None:
                raise self._err("unterminated string")
            self.i += 1
            if c == quote:
                return Literal("".join(out))
            out.append(self._escape() if c == "\\" else c)

    def _class(self) -> CharClass:
        self.i += 1  # '['
        negated = False
        if self._peek() == "^":
            negated = True
            self.i += 1
        ranges: List[Tuple[int, int]] = []
        singles = set()
        while True:
            c = self._peek()
            if c is None:
                raise self._err("unterminated char class")
            self.i += 1
            if c == "]":
                break
            lo = self._escape() if c == "\\" else c
            if self._peek() == "-" and self.s[self.i + 1:self.i + 2] not in ("]", ""):
                self.i += 1
                c2 = self.s[self.i]
                self.i += 1
                hi = self._escape() if c2 == "\\" else c2
                a, b = sorted((ord(lo), ord(hi)))
                ranges.append((a, b))
            else:
                singles.add(lo)
        return CharClass(negated, tuple(ranges), frozenset(singles))


def parse_peg_block(name: str, src: str) -> PegGrammar:
    """`%peg NAME { ... }` 본문(중괄호 제외)을 파싱."""
    g = _PegReader(name, src).grammar()
    # 참조 검증: 정의되지 않은 규칙은 빌드 시점에 실패시킨다
    for rule_name, node in g.rules:
        for ref in _refs(node):
            if not g.has_rule(ref):
                raise GrammarError(f"PEG block '{name}': rule '{rule_name}' references undefined '{ref}'")
    return g


def _refs(node: Node):
    if isinstance(node, Ref):
        yield node.name
    elif isinstance(node, (Lookahead, Repeat)):
        yield from _refs(node.node)
    elif isinstance(node, Sequence):
        for it in node.items:
            yield from _refs(it)
    elif isinstance(node, Choice):
        for it in node.alts:
            yield from _refs(it)


# ---------- packrat 매처 ----------

_IN_PROGRESS = -2


class PegMatcher:
    """한 입력 텍스트에 대한 packrat 매처.

    `match(rule, pos)`는 일치한 길이(0 이상)를, 실패면 -1을 돌려준다.
    메모는 (rule, pos) 키로 텍스트 수명 동안 유지된다.
    """

    def __init__(self, grammar: PegGrammar, text: str):
        self.grammar = grammar
        self.text = text
        self._memo: Dict[Tuple[str, int], int] = {}

    def match(self, rule: str, pos: int) -> int:
        end = self._apply(rule, pos)
        return -1 if end < 0 else end - pos

    def _apply(self, name: str, pos: int) -> int:
        key = (name, pos)
        hit = self._memo.get(key)
        if hit is not None:
            # 좌재귀/재진입 → 실패
            return -1 if hit == _IN_PROGRESS else hit
        self._memo[key] = _IN_PROGRESS
        end = self._eval(self.grammar.rule(name), pos)
        self._memo[key] = end
        return end

    def _eval(self, node: Node, pos: int) -> int:
        """성공 시 끝 위치, 실패 시 -1."""
        text = self.text
        if isinstance(node, Literal):
            return pos + len(node.text) if text.startswith(node.text, pos) else -1
        if isinstance(node, AnyChar):
            return pos + 1 if pos < len(text) else -1
        if isinstance(node, CharClass):
            return pos + 1 if pos < len(text) and node.accepts(text[pos]) else -1
        if isinstance(node, Ref):
            return self._apply(node.name, pos)
        if isinstance(node, Lookahead):
            ok = self._eval(node.node, pos) >= 0
            return pos if ok == node.positive else -1
        if isinstance(node, Repeat):
            if node.kind == "?":
                end = self._eval(node.node, pos)
                return pos if end < 0 else end
            cur = pos
            count = 0
            while True:
                end = self._eval(node.node, cur)
                if end < 0 or end == cur:
                    break
                cur = end
                count += 1
            if node.kind == "+" and count == 0:
                return -1
            return cur
        if isinstance(node, Sequence):
            cur = pos
            for item in node.items:
                cur = self._eval(item, cur)
                if cur < 0:
                    return -1
            return cur
        if isinstance(node, Choice):
            for alt in node.alts:
                end = self._eval(alt, pos)
                if end >= 0:
                    return end
            return -1
        raise AssertionError(f"unknown PEG node: {node!r}")
