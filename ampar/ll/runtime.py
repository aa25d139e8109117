# ampar/ll/runtime.py
"""예측 파서 런타임(ATN 인터프리터).

- `GrammarPackage`(ATN/테이블/술어)와 `TokenStream`을 받아 파스 트리를 만든다.
- 규칙 호출은 파이썬 재귀가 아니라 **명시적 복귀 상태 스택**(follow_stack)으로 처리한다.
- 결정 지점에서는 `Simulator.predict()`로 대안을 고른다.
- 오류는 `ErrorStrategy`가 복구하고 진단으로 남긴다(recover=False 면 ParseError).

상태별 동작
----------
    RULE_STOP  → 규칙 종료(exit_rule), 스택이 있으면 복귀 상태로
    결정 상태   → 예측 → 고른 대안의 ε 전이 대상으로
    EPSILON    → 대상으로
    ATOM       → LT(1) 매치, 실패하면 복구
    RULE       → 복귀 상태 push, enter_rule, 피호출 규칙 시작 상태로
    PRED       → 평가, 실패하면 보고 후 규칙 탈출
"""

from __future__ import annotations
import logging
from typing import Any, FrozenSet, List, Mapping, Optional

from ..config import EngineOptions
from ..errors import Diagnostic, InternalConsistencyError
from ..lex.tokens import EOF_TYPE, Token
from ..tree.builder import TreeBuilder
from ..tree.nodes import ParseTree
from .atn import ATOM, EPSILON, PRED, RULE, StateKind
from .recovery import BAIL, RETRY, ErrorStrategy
from .simulator import PredictionCache, Simulator

logger = logging.getLogger(__name__)


class Parser:
    """
    Parser
    ======
    한 번의 파싱을 담당한다(재사용하지 않는다). 세션 캐시는 바깥에서 넘겨 공유할 수 있다.

    사용 예
    -------
        stream = TokenStream(LexerEngine(pkg.lexer_spec, text, token_ids=pkg.symbols.token_ids))
        parser = Parser(pkg, stream)
        parser.add_listener(my_listener)
        tree = parser.parse()
    """

    def __init__(self,
                 package,
                 stream,
                 *,
                 options: Optional[EngineOptions] = None,
                 env: Optional[Mapping[str, Any]] = None,
                 diagnostics: Optional[List[Diagnostic]] = None,
                 cache: Optional[PredictionCache] = None,
                 lexer=None,
                 source: str = ""):
        self.package = package
        self.atn = package.atn
        self.tables = package.tables
        self.symbols = package.symbols
        self.stream = stream
        self.options = options if options is not None else package.options
        self.env = env
        self.diagnostics: List[Diagnostic] = diagnostics if diagnostics is not None else []
        self.lexer = lexer
        self.source = source
        self.global_sync: FrozenSet[int] = package.global_sync
        self.rule_sync: Mapping[int, FrozenSet[int]] = package.rule_sync
        self.simulator = Simulator(
            self.atn, self.tables, package.predicates, stream, self.options,
            env=env, cache=cache, diagnostics=self.diagnostics,
        )
        self.listeners: List = []
        self.follow_stack: List[int] = []
        self.builder: Optional[TreeBuilder] = None
        self.recovery: Optional[ErrorStrategy] = None
        self._state = -1
        self._used = False

    # ---- 리스너 ----
    def add_listener(self, listener) -> None:
        """파싱 중 enter_rule/exit_rule/visit_terminal/visit_error 를 받는다."""
        self.listeners.append(listener)

    def remove_listener(self, listener) -> None:
        self.listeners.remove(listener)

    # ---- 복구 전략이 읽는 상태 ----
    @property
    def current_rule_name(self) -> Optional[str]:
        if self._state < 0:
            return None
        return self.atn.rule_of_state(self._state)

    def display_name(self, term_id: int) -> str:
        """메시지용 단말 표기: 키워드는 따옴표, EOF는 <EOF>."""
        name = self.symbols.display(term_id)
        if name in self.package.literals:
            return f"'{name}'"
        return name

    def match_current(self) -> Token:
        tok = self.stream.consume()
        self.builder.terminal(tok)
        self.recovery.end_error()
        return tok

    # ---- 파싱 ----
    def parse(self, rule: Optional[str] = None) -> ParseTree:
        if self._used:
            raise InternalConsistencyError("Parser instances parse exactly once")
        self._used = True

        start = self.symbols.start_index if rule is None else self.symbols.rule_index(rule)
        atn = self.atn
        states = atn.states
        stream = self.stream
        self.builder = TreeBuilder(self.package.kinds, self.listeners)
        self.recovery = strategy = ErrorStrategy(self)
        follow_stack = self.follow_stack

        self.builder.enter_rule(start, stream.LT(1))
        s = atn.rule_start[start]
        while True:
            self._state = s
            st = states[s]

            if st.kind == StateKind.RULE_STOP:
                if not follow_stack:
                    self._finish_root()
                    self.builder.exit_rule()
                    break
                self.builder.exit_rule()
                s = follow_stack.pop()
                continue

            if st.is_decision:
                alt = self._decide(st)
                if alt == RETRY:
                    continue
                if alt == BAIL:
                    s = self._bail(st)
                    continue
                s = st.transitions[alt - 1].target
                continue

            t = st.transitions[0]
            if t.kind == EPSILON:
                s = t.target
            elif t.kind == ATOM:
                if stream.LA(1) == t.label:
                    self.match_current()
                    s = t.target
                elif strategy.recover_atom(st):
                    s = t.target
                else:
                    s = self._bail(st)
            elif t.kind == RULE:
                follow_stack.append(t.follow)
                self.builder.enter_rule(t.label, stream.LT(1))
                s = t.target
            elif t.kind == PRED:
                ok = self.package.predicates.evaluate(
                    t.pred, t.negated, stream, stream.index, self._rule_stack(s), self.env)
                if ok:
                    s = t.target
                else:
                    strategy.failed_predicate(st)
                    s = self._bail(st)
            else:
                raise InternalConsistencyError(f"unknown transition kind {t.kind} at state {s}")

        logger.debug("parse finished: %d diagnostics, %d simulations, %d cache hits",
                     len(self.diagnostics), self.simulator.simulations, self.simulator.cache.hits)
        stream.fill()
        return ParseTree(self.builder.root, stream.tokens, self.source, self.package.kinds)

    # ---- 내부 ----
    def _rule_stack(self, state: int) -> tuple:
        names = self.atn.rule_names
        states = self.atn.states
        return tuple(names[states[f].rule] for f in self.follow_stack) + (names[states[state].rule],)

    def _decide(self, st) -> int:
        prediction = self.simulator.predict(st.decision, tuple(self.follow_stack))
        if prediction.alt:
            if prediction.source != "table":
                logger.debug("decision %d (%s): alt %d via %s, depth %d",
                             st.decision, self.atn.rule_names[st.rule],
                             prediction.alt, prediction.source, prediction.depth)
            return prediction.alt
        return self.recovery.recover_decision(st, prediction)

    def _bail(self, st) -> int:
        """현재 규칙을 오류로 빠져나간다: 규칙 정지 상태로 점프."""
        node = self.builder.current
        if node is not None and node.exception is None:
            node.exception = self.recovery.last_diagnostic
        return self.atn.rule_stop[st.rule]

    def _finish_root(self) -> None:
        """시작 규칙이 EOF 전에 끝났으면 진단 1건 + 남은 토큰을 루트의 ErrorNode로."""
        stream = self.stream
        if stream.LA(1) == EOF_TYPE:
            return
        tok = stream.LT(1)
        self.recovery.report(
            f"extraneous input {tok.display()} expecting {self.display_name(EOF_TYPE)}",
            tok, [EOF_TYPE], force=True)
        n = 0
        while stream.LA(1) != EOF_TYPE:
            self.builder.error(stream.consume())
            n += 1
        logger.debug("attached %d trailing token(s) to the root as error leaves", n)


__all__ = ["Parser"]
