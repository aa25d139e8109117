# ampar/ll/recovery.py
"""구문 오류 복구 전략.

단말 불일치(ATOM)
----------------
1) 단일 토큰 삭제 : LA(2)가 기대 단말이면 LT(1)을 ErrorNode로 버리고 매치
2) 단일 토큰 삽입 : LA(1)이 '기대 단말 다음'에 올 수 있으면 가상 토큰을 만들어 넣음
3) 재동기화      : 복구 집합에 닿을 때까지 토큰을 ErrorNode로 소비.
                  멈춘 곳이 기대 단말이면 매치하고 계속, 아니면 규칙을 빠져나감

결정 지점에서 맞는 대안이 없을 때
------------------------------
- `?`, `*`, `+` : 삭제로 살릴 수 있으면 삭제, 아니면 조용히 '생략' 대안으로 빠진다
                  (오류 보고는 그 다음 불일치 지점이 한다)
- `(a|b)`       : 삭제, 아니면 보고 후 (기대 집합 ∪ 복구 집합)까지 소비.
                  소비 후 LA(1)이 기대 집합에 있으면 다시 예측, 아니면 규칙 탈출

복구 집합 = 호출 스택의 모든 복귀 상태 FIRST ∪ 현재 규칙 %sync ∪ 전역 %sync ∪ EOF

보고 억제: 한 번 보고하면 토큰이 정상 매치될 때까지 다음 보고는 버린다.
무한 루프 방지: 같은 토큰 위치·같은 상태에서 다시 재동기화하면 토큰 하나를 강제로 소비.
"""

from __future__ import annotations
import logging
from typing import Dict, FrozenSet, Iterable, Optional, Set

from ..errors import Diagnostic, DiagnosticKind, ParseError
from ..lex.tokens import EOF_TYPE, Token, conjure
from .atn import ATNState, StateKind
from .first_follow import FALLOFF, look
from .simulator import Prediction

logger = logging.getLogger(__name__)

# 결정 복구 결과
RETRY = -1   # 같은 결정에서 다시 예측
BAIL = 0     # 현재 규칙 탈출


class ErrorStrategy:
    """Parser 하나에 붙는 복구 상태. 파싱마다 새로 만든다."""

    def __init__(self, parser):
        self.parser = parser
        self.error_mode = False
        self.last_error_index = -1
        self.last_error_states: Set[int] = set()
        self.last_diagnostic: Optional[Diagnostic] = None
        self._first_of: Dict[int, FrozenSet[int]] = {}

    # ---- 보고 ----
    def begin_error(self) -> None:
        self.error_mode = True

    def end_error(self) -> None:
        """토큰이 정상 매치되었다."""
        self.error_mode = False
        self.last_error_states.clear()
        self.last_error_index = -1

    def report(self, message: str, token: Token, expected: Iterable[int] = (),
               *, force: bool = False) -> Optional[Diagnostic]:
        if self.error_mode and not force:
            logger.debug("suppressed: %s", message)
            return None
        self.begin_error()
        p = self.parser
        diag = Diagnostic(
            kind=DiagnosticKind.SYNTAX,
            message=message,
            line=token.line,
            column=token.col,
            offset=token.start,
            rule=p.current_rule_name,
            expected=tuple(sorted(p.symbols.display(t) for t in expected)),
            offending=token,
        )
        self.last_diagnostic = diag
        lexer = p.lexer
        if token.is_eof and lexer is not None and lexer.unterminated_at_eof:
            # 닫히지 않은 모드는 렉서가 이미 한 번 보고했다
            logger.debug("suppressed at unterminated EOF: %s", message)
            return None
        if not p.options.recover:
            raise ParseError(diag)
        p.diagnostics.append(diag)
        logger.debug("syntax error at %d:%d in %s: %s", token.line, token.col, diag.rule, message)
        return diag

    # ---- 집합 ----
    def _first(self, state: int) -> FrozenSet[int]:
        got = self._first_of.get(state)
        if got is None:
            got = frozenset(look(self.parser.atn, state) - {FALLOFF})
            self._first_of[state] = got
        return got

    def recovery_set(self, rule: int) -> Set[int]:
        p = self.parser
        out: Set[int] = {EOF_TYPE}
        for f in p.follow_stack:
            out |= self._first(f)
        out |= p.rule_sync.get(rule, frozenset())
        out |= p.global_sync
        return out

    # ---- 공통 동작 ----
    def _consume_error(self) -> Token:
        p = self.parser
        tok = p.stream.consume()
        p.builder.error(tok)
        return tok

    def consume_until(self, stop: Set[int]) -> int:
        """LA(1) ∈ stop 이 될 때까지 ErrorNode로 소비. 소비한 개수를 돌려준다."""
        p = self.parser
        n = 0
        while True:
            la = p.stream.LA(1)
            if la in stop or la == EOF_TYPE:
                return n
            self._consume_error()
            n += 1

    def _guard(self, state: int) -> int:
        """같은 위치·상태에서 반복 실패하면 토큰 하나를 강제로 소비."""
        p = self.parser
        index = p.stream.index
        forced = 0
        if self.last_error_index == index and state in self.last_error_states:
            if p.stream.LA(1) != EOF_TYPE:
                logger.debug("forcing progress at token %d (state %d)", index, state)
                self._consume_error()
                forced = 1
        if self.last_error_index != p.stream.index:
            self.last_error_states.clear()
        self.last_error_index = p.stream.index
        self.last_error_states.add(state)
        return forced

    def _fmt(self, ids: Iterable[int]) -> str:
        names = sorted(self.parser.display_name(t) for t in ids)
        if len(names) == 1:
            return names[0]
        return "{" + ", ".join(names) + "}"

    # ---- 단말 불일치 ----
    def recover_atom(self, state: ATNState) -> bool:
        """
        state 의 ATOM 전이가 LT(1)과 맞지 않을 때.
        True  → 기대 단말 자리가 채워졌으니(삭제 후 매치 또는 삽입) 전이 대상으로 진행
        False → 재동기화 후에도 기대 단말이 아니니 현재 규칙을 빠져나간다
        """
        p = self.parser
        stream = p.stream
        t = state.transitions[0]
        expected = t.label
        tok = stream.LT(1)

        # 1) 단일 토큰 삭제
        if not tok.is_eof and stream.LA(2) == expected:
            self.report(f"extraneous input {tok.display()} expecting {self._fmt([expected])}",
                        tok, [expected])
            logger.debug("recovery: deleted %r before %s", tok.text, p.symbols.display(expected))
            self._consume_error()
            p.match_current()
            return True

        # 2) 단일 토큰 삽입
        after = look(p.atn, t.target, tuple(p.follow_stack), p.tables.follow)
        if tok.type_id in after:
            self.report(f"missing {self._fmt([expected])} at {tok.display()}", tok, [expected])
            virtual = conjure(p.symbols.name_of(expected), expected, tok)
            logger.debug("recovery: conjured %s at %d:%d", virtual.type, tok.line, tok.col)
            p.builder.error(virtual)
            return True

        # 3) 재동기화
        self.report(f"mismatched input {tok.display()} expecting {self._fmt([expected])}",
                    tok, [expected])
        self.resync(state)
        if stream.LA(1) == expected:
            p.match_current()
            return True
        return False

    def resync(self, state: ATNState, extra: FrozenSet[int] = frozenset()) -> int:
        forced = self._guard(state.id)
        stop = self.recovery_set(state.rule) | extra
        n = self.consume_until(stop)
        logger.debug("recovery: resynced after %d token(s) in %s",
                     n + forced, self.parser.atn.rule_names[state.rule])
        return n + forced

    # ---- 결정 실패 ----
    def recover_decision(self, state: ATNState, prediction: Prediction) -> int:
        """
        예측이 alt 0을 돌려준 결정 지점.
        반환값: 1 이상 = 택할 대안, RETRY = 다시 예측, BAIL = 규칙 탈출
        """
        p = self.parser
        stream = p.stream
        info = p.tables.decisions[state.decision]
        expected = info.expected
        tok = stream.LT(1)

        if not tok.is_eof and tok.type_id not in expected and stream.LA(2) in expected:
            self.report(f"extraneous input {tok.display()} expecting {self._fmt(expected)}",
                        tok, expected)
            self._consume_error()
            return RETRY

        if state.kind in StateKind.OPTIONAL_EXITS:
            logger.debug("decision %d: no viable loop/optional entry at %r, exiting",
                         state.decision, tok.text)
            return len(state.transitions)

        if prediction.error_index > tok.index >= 0:
            offending = stream.get(prediction.error_index)
            text = stream.get_text(tok.index, prediction.error_index)
            self.report(f"no viable alternative at input {text!r}", offending, expected)
        else:
            self.report(f"mismatched input {tok.display()} expecting {self._fmt(expected)}",
                        tok, expected)
        consumed = self.resync(state, expected)
        if consumed and stream.LA(1) in expected:
            return RETRY
        return BAIL

    # ---- 술어 실패 ----
    def failed_predicate(self, state: ATNState) -> None:
        p = self.parser
        t = state.transitions[0]
        bang = "!" if t.negated else ""
        rule = p.atn.rule_names[state.rule]
        self.report(f"rule {rule} failed predicate: {{{bang}{t.pred}}}?", p.stream.LT(1))


__all__ = ["ErrorStrategy", "RETRY", "BAIL"]
