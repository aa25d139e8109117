# ampar/ll/predicates.py
"""의미 술어(semantic predicate) 등록/평가.

문법에서 `{name}?` / `{!name}?` 로 참조하는 이름을 순수 함수에 연결한다.
함수는 `PredicateContext` 하나를 받아 bool을 돌려준다.

    def is_type(ctx):
        return ctx.text(1) in ctx.env["types"]

컨텍스트는 **술어가 놓인 토큰 위치**에 고정되므로 시뮬레이션과 실제 파싱이
같은 입력을 본다. 함수가 토큰 스트림을 움직이면 InternalConsistencyError.
"""

from __future__ import annotations
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping, Optional, Tuple

from ..errors import GrammarError, InternalConsistencyError
from ..lex.tokens import Token


class PredicateContext:
    """술어 함수가 읽을 수 있는 읽기 전용 뷰."""

    __slots__ = ("_stream", "_index", "_rule_stack", "env")

    def __init__(self, stream, index: int, rule_stack: Tuple[str, ...] = (),
                 env: Optional[Mapping[str, Any]] = None):
        self._stream = stream
        self._index = index
        self._rule_stack = rule_stack
        self.env: Mapping[str, Any] = env if env is not None else MappingProxyType({})

    @property
    def index(self) -> int:
        """LT(1)의 토큰 버퍼 인덱스."""
        return self._index

    @property
    def rule_stack(self) -> Tuple[str, ...]:
        """바깥 → 안쪽 순서의 규칙 이름. 마지막이 술어가 속한 규칙."""
        return self._rule_stack

    def LT(self, k: int = 1) -> Optional[Token]:
        return self._stream.lt_from(self._index, k)

    def LA(self, k: int = 1) -> int:
        tok = self.LT(k)
        return 0 if tok is None else tok.type_id

    def LB(self, k: int = 1) -> Optional[Token]:
        return self.LT(-k)

    def text(self, k: int = 1) -> str:
        tok = self.LT(k)
        return "" if tok is None else tok.text

    def adjacent(self, a: int = 1, b: int = 2) -> bool:
        """LT(a)와 LT(b)가 원문에서 공백 없이 붙어 있는가."""
        ta, tb = self.LT(a), self.LT(b)
        if ta is None or tb is None or ta.is_eof or tb.is_eof:
            return False
        if ta.start > tb.start:
            ta, tb = tb, ta
        return ta.stop + 1 == tb.start


PredicateFn = Callable[[PredicateContext], bool]


def _adjacent(ctx: PredicateContext) -> bool:
    return ctx.adjacent(1, 2)


BUILTIN_PREDICATES: Mapping[str, PredicateFn] = MappingProxyType({
    "adjacent": _adjacent,
})


class PredicateRegistry(Mapping[str, PredicateFn]):
    """
    PredicateRegistry
    =================
    이름 → 함수의 불변 매핑(내장 술어 포함). 패키지 빌드 시 한 번 만들어져 공유된다.
    """

    def __init__(self, predicates: Optional[Mapping[str, PredicateFn]] = None):
        merged = dict(BUILTIN_PREDICATES)
        for name, fn in (predicates or {}).items():
            if not callable(fn):
                raise GrammarError(f"Predicate {name!r} is not callable")
            merged[name] = fn
        self._fns = MappingProxyType(merged)

    def __getitem__(self, name: str) -> PredicateFn:
        return self._fns[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fns)

    def __len__(self) -> int:
        return len(self._fns)

    def require(self, names) -> None:
        """문법이 쓰는 술어 이름이 모두 등록되어 있는지 확인."""
        missing = sorted(set(names) - set(self._fns))
        if missing:
            raise GrammarError(f"Unknown semantic predicate(s): {', '.join(missing)}")

    def evaluate(self, name: str, negated: bool, stream, index: int,
                 rule_stack: Tuple[str, ...], env: Optional[Mapping[str, Any]]) -> bool:
        fn = self._fns[name]
        before = stream.index
        result = bool(fn(PredicateContext(stream, index, rule_stack, env)))
        if stream.index != before:
            raise InternalConsistencyError(f"predicate {name!r} moved the token stream")
        return result != negated

    def __repr__(self) -> str:
        return f"PredicateRegistry({sorted(self._fns)})"
