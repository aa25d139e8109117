# ampar/lex/modes.py
"""렉서 모드/규칙 정의 (불변).

- LexRule : 하나의 어휘 규칙(리터럴 / 정규식 / PEG) + 채널 + 명령(push/pop/pop?/skip)
- Mode    : 모드 이름 + 선언 순서대로의 규칙 튜플
- LexerSpec: 모드 전체 + PEG 블록 + 채널 이름표 (GrammarPackage가 공유)
- LexerContext: 렉서 술어(`[when='...']`)가 읽을 수 있는 읽기 전용 뷰

정규식은 서드파티 `regex`로 컴파일한다(\\p{XID_Start} 등 유니코드 속성).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple, TYPE_CHECKING

import regex

from ..errors import GrammarError
from .peg import PegGrammar

if TYPE_CHECKING:
    from .peg import PegMatcher
    from .tokens import Token


DEFAULT_MODE = "DEFAULT"

_FLAG_MAP = {
    "i": regex.IGNORECASE,
    "m": regex.MULTILINE,
    "s": regex.DOTALL,
    "x": regex.VERBOSE,
    "A": regex.ASCII,
}


def compile_pattern(pattern: str, flags: str = "") -> "regex.Pattern":
    f = 0
    for ch in flags:
        if ch not in _FLAG_MAP:
            raise GrammarError(f"Unknown regex flag {ch!r} in /{pattern}/{flags}")
        f |= _FLAG_MAP[ch]
    try:
        return regex.compile(pattern, f)
    except regex.error as e:
        raise GrammarError(f"Invalid token regex /{pattern}/: {e}")


# ---- 명령 ----

@dataclass(frozen=True)
class LexCommand:
    """규칙 매치 후 실행할 명령. kind ∈ {'push', 'pop', 'pop?', 'skip'}"""
    kind: str
    mode: Optional[str] = None

    def __str__(self) -> str:
        return f"push({self.mode})" if self.kind == "push" else self.kind


# ---- 규칙 ----

@dataclass(frozen=True)
class LexRule:
    """
    LexRule
    =======
    - name    : 산출 토큰 타입 이름(키워드는 리터럴 그대로)
    - kind    : 'literal' | 'regex' | 'peg'
    - pattern : 리터럴 텍스트 / 정규식 원문 / 'Block.Rule'
    - order   : 모드 안 선언 순서(동률 해소용)
    - channel : 산출 채널 번호
    - commands: 매치 후 순서대로 실행되는 명령들
    - when    : 렉서 술어 이름(선택)
    - trigger : 첫 글자 트리거(선택, PEG 규칙의 광범위 시도 방지)
    """
    name: str
    kind: str
    pattern: str
    order: int
    channel: int = 0
    flags: str = ""
    commands: Tuple[LexCommand, ...] = ()
    when: Optional[str] = None
    trigger: Optional[str] = None
    _rx: Optional["regex.Pattern"] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.kind == "regex":
            object.__setattr__(self, "_rx", compile_pattern(self.pattern, self.flags))
        elif self.kind == "peg":
            if self.pattern.count(".") != 1:
                raise GrammarError(f"%peg reference must be Block.Rule, got {self.pattern!r}")
        elif self.kind != "literal":
            raise GrammarError(f"Unknown lexical rule kind {self.kind!r}")
        elif not self.pattern:
            raise GrammarError(f"Token {self.name!r} has an empty literal")

    @property
    def skip(self) -> bool:
        return any(c.kind == "skip" for c in self.commands)

    @property
    def peg_ref(self) -> Tuple[str, str]:
        block, rule = self.pattern.split(".")
        return block, rule

    def match(self, text: str, pos: int, pegs: Mapping[str, "PegMatcher"]) -> int:
        """pos에서의 매치 길이. 불일치면 -1."""
        if self.trigger is not None and not text.startswith(self.trigger, pos):
            return -1
        if self.kind == "literal":
            return len(self.pattern) if text.startswith(self.pattern, pos) else -1
        if self.kind == "regex":
            m = self._rx.match(text, pos)
            return -1 if m is None else m.end() - pos
        block, rule = self.peg_ref
        return pegs[block].match(rule, pos)


@dataclass(frozen=True)
class Mode:
    name: str
    rules: Tuple[LexRule, ...]

    def __iter__(self):
        return iter(self.rules)


# ---- 렉서 술어 ----

@dataclass(frozen=True)
class LexerContext:
    """렉서 술어 인자. 현재 토큰이 시작될 위치 기준의 읽기 전용 정보."""
    text: str
    offset: int
    line: int
    column: int
    mode_stack: Tuple[str, ...]
    previous: Optional["Token"] = None

    @property
    def depth(self) -> int:
        return len(self.mode_stack)

    def char(self, k: int = 1) -> str:
        """현재 위치 기준 k번째 문자(음수면 뒤쪽). 범위 밖이면 ''."""
        j = self.offset + k - 1 if k > 0 else self.offset + k
        return self.text[j] if 0 <= j < len(self.text) else ""


LexerPredicate = Callable[[LexerContext], bool]


def _at_file_start(ctx: LexerContext) -> bool:
    return ctx.offset == 0


def _at_line_start(ctx: LexerContext) -> bool:
    return ctx.offset == 0 or ctx.text[ctx.offset - 1] == "\n"


def _nested(ctx: LexerContext) -> bool:
    return ctx.depth > 1


BUILTIN_LEXER_PREDICATES: Mapping[str, LexerPredicate] = MappingProxyType({
    "at_file_start": _at_file_start,
    "at_line_start": _at_line_start,
    "nested": _nested,
})


# ---- 전체 명세 ----

@dataclass(frozen=True)
class LexerSpec:
    """
    LexerSpec
    =========
    빌드 후 변하지 않는 렉서 구성.
    - modes     : 모드 이름 → Mode (DEFAULT 필수)
    - pegs      : %peg 블록 이름 → PegGrammar
    - channels  : 채널 이름 → 번호 (DEFAULT/HIDDEN/ERROR + 사용자 채널)
    - predicates: 렉서 술어 이름 → 함수 (내장 + 사용자)
    """
    modes: Mapping[str, Mode]
    pegs: Mapping[str, PegGrammar] = field(default_factory=lambda: MappingProxyType({}))
    channels: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    predicates: Mapping[str, LexerPredicate] = field(default_factory=lambda: BUILTIN_LEXER_PREDICATES)

    def __post_init__(self):
        if DEFAULT_MODE not in self.modes:
            raise GrammarError("Lexer has no DEFAULT mode")
        for mode in self.modes.values():
            for rule in mode.rules:
                self._check_rule(mode, rule)

    def _check_rule(self, mode: Mode, rule: LexRule) -> None:
        for cmd in rule.commands:
            if cmd.kind == "push" and cmd.mode not in self.modes:
                raise GrammarError(f"Token {rule.name!r} pushes undefined mode {cmd.mode!r}")
        if rule.when is not None and rule.when not in self.predicates:
            raise GrammarError(f"Token {rule.name!r} uses unknown lexer predicate {rule.when!r}")
        if rule.kind == "peg":
            block, peg_rule = rule.peg_ref
            grammar = self.pegs.get(block)
            if grammar is None:
                raise GrammarError(f"Token {rule.name!r} references undefined %peg block {block!r}")
            if not grammar.has_rule(peg_rule):
                raise GrammarError(f"Token {rule.name!r} references undefined PEG rule {block}.{peg_rule}")

    def mode(self, name: str) -> Mode:
        return self.modes[name]

    def token_names(self) -> Tuple[str, ...]:
        """모든 모드의 토큰 이름(선언 첫 등장 순서, skip 규칙 제외)."""
        seen: Dict[str, None] = {}
        for mode in self.modes.values():
            for rule in mode.rules:
                if not rule.skip:
                    seen.setdefault(rule.name, None)
        return tuple(seen)
