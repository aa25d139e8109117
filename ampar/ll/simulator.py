# ampar/ll/simulator.py
"""적응형 예측(adaptive prediction).

결정 지점에서 대안을 고르는 순서
------------------------------
1) 결정 테이블 `(decision, LA(1))`: LL(1) 빠른 경로
2) 세션 캐시: (decision, 바깥 호출 스택) → 토큰 타입 경로 trie → alt
3) 제한된 시뮬레이션: 구성(configuration) 집합을 토큰 하나씩 전진
   - 구성 = (ATN 상태, 대안 번호, 복귀 상태 스택)
   - 시작 스택은 파서의 **실제** 호출 스택(전체 문맥)
   - 클로저는 ε / 규칙 호출·복귀 / 술어를 따라간다. 술어는 **그 위치의 토큰**에서 평가
   - 종료 조건
       * 살아남은 대안이 하나 → 그 대안
       * 모든 구성 부분집합이 같은 대안 집합으로 충돌 → 진짜 모호성, 가장 앞 대안
       * EOF → 끝날 수 있는 구성/명시적 EOF 단말로 판정
       * 예산(max_lookahead 토큰, max_steps 클로저 연산) 소진 → 가장 앞 대안 + AMBIGUITY 진단
       * 아무 대안도 없음 → alt 0 (구문 오류)

토큰 스트림은 mark/seek 로 감싸 시뮬레이션 후 원래 위치로 돌아간다.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from ..config import EngineOptions
from ..errors import Diagnostic, DiagnosticKind
from .atn import ATN, ATOM, EPSILON, PRED, RULE, StateKind
from .predicates import PredicateRegistry
from .table import Tables

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Config:
    state: int
    alt: int
    stack: Tuple[int, ...]


@dataclass(frozen=True)
class Prediction:
    """
    - alt        : 1부터. 0이면 가능한 대안 없음
    - source     : 'table' | 'cache' | 'sim' | 'ambiguous' | 'exhausted' | 'none'
    - depth      : 판정까지 본 룩어헤드 토큰 수
    - error_index: alt==0 일 때 모든 후보가 죽은 토큰의 버퍼 인덱스
    """
    alt: int
    source: str
    depth: int = 0
    error_index: int = -1


# ---- 예측 캐시 ----

class _TrieNode:
    __slots__ = ("alt", "children")

    def __init__(self):
        self.alt = 0
        self.children: Dict[int, "_TrieNode"] = {}


class PredictionCache:
    """
    PredictionCache
    ===============
    세션(한 번의 파싱) 전용 캐시. 술어를 평가하지 않고 유일하게 해소된 시뮬레이션만 담는다.
    키: (decision, 바깥 스택 튜플) → 토큰 타입 경로 trie.
    """

    def __init__(self):
        self._roots: Dict[Tuple[int, Tuple[int, ...]], _TrieNode] = {}
        self.hits = 0
        self.stores = 0

    def lookup(self, decision: int, stack: Tuple[int, ...], stream) -> Tuple[int, int]:
        """(alt, depth). 없으면 (0, 0)."""
        node = self._roots.get((decision, stack))
        k = 1
        while node is not None:
            if node.alt:
                self.hits += 1
                return node.alt, k - 1
            node = node.children.get(stream.LA(k))
            k += 1
        return 0, 0

    def store(self, decision: int, stack: Tuple[int, ...], path: List[int], alt: int) -> None:
        node = self._roots.setdefault((decision, stack), _TrieNode())
        for ttype in path:
            if node.alt:
                return
            node = node.children.setdefault(ttype, _TrieNode())
        node.alt = alt
        node.children.clear()
        self.stores += 1

    def __len__(self) -> int:
        return self.stores


class _BudgetExhausted(Exception):
    pass


# ---- 시뮬레이터 ----

class Simulator:
    def __init__(self,
                 atn: ATN,
                 tables: Tables,
                 predicates: PredicateRegistry,
                 stream,
                 options: EngineOptions,
                 *,
                 env: Optional[Mapping[str, Any]] = None,
                 cache: Optional[PredictionCache] = None,
                 diagnostics: Optional[List[Diagnostic]] = None):
        self.atn = atn
        self.tables = tables
        self.predicates = predicates
        self.stream = stream
        self.options = options
        self.env = env
        self.cache = cache if cache is not None else PredictionCache()
        self.diagnostics = diagnostics if diagnostics is not None else []
        self._steps = 0
        self._used_preds = False
        self.simulations = 0

    # ---- 공개 API ----
    def predict(self, decision: int, stack: Tuple[int, ...]) -> Prediction:
        stream = self.stream
        # 1) LL(1) 테이블
        alt = self.tables.lookup(decision, stream.LA(1))
        if alt:
            return Prediction(alt, "table", 1)

        # 2) 캐시
        if self.options.cache_predictions:
            alt, depth = self.cache.lookup(decision, stack, stream)
            if alt:
                logger.debug("decision %d: cache hit -> alt %d (depth %d)", decision, alt, depth)
                return Prediction(alt, "cache", depth)

        # 3) 시뮬레이션
        start = stream.index
        marker = stream.mark()
        try:
            result, path = self._simulate(decision, stack)
        finally:
            stream.seek(start)
            stream.release(marker)

        if (result.source == "sim" and not self._used_preds
                and self.options.cache_predictions):
            self.cache.store(decision, stack, path, result.alt)
        return result

    # ---- 내부 ----
    def _rule_stack(self, stack: Tuple[int, ...], state: int) -> Tuple[str, ...]:
        names = self.atn.rule_names
        states = self.atn.states
        return tuple(names[states[f].rule] for f in stack) + (names[states[state].rule],)

    def _closure(self, configs: List[Config]) -> List[Config]:
        """ε/호출/복귀/술어를 따라가 '단말 대기' 또는 '최종' 구성만 남긴다."""
        states = self.atn.states
        out: List[Config] = []
        seen: Set[Config] = set()
        work = list(reversed(configs))
        index = self.stream.index
        while work:
            c = work.pop()
            if c in seen:
                continue
            seen.add(c)
            self._steps += 1
            if self._steps > self.options.max_steps:
                raise _BudgetExhausted()
            st = states[c.state]
            if st.kind == StateKind.RULE_STOP:
                if c.stack:
                    work.append(Config(c.stack[-1], c.alt, c.stack[:-1]))
                else:
                    out.append(c)
                continue
            for t in reversed(st.transitions):
                if t.kind == ATOM:
                    out.append(c)
                elif t.kind == EPSILON:
                    work.append(Config(t.target, c.alt, c.stack))
                elif t.kind == RULE:
                    if len(c.stack) >= self.options.max_call_depth:
                        logger.debug("simulation call depth limit hit at state %d", c.state)
                        continue
                    work.append(Config(t.target, c.alt, c.stack + (t.follow,)))
                elif t.kind == PRED:
                    self._used_preds = True
                    ok = self.predicates.evaluate(
                        t.pred, t.negated, self.stream, index,
                        self._rule_stack(c.stack, c.state), self.env)
                    if ok:
                        work.append(Config(t.target, c.alt, c.stack))
        return out

    @staticmethod
    def _exact_ambiguity(configs: List[Config]) -> bool:
        groups: Dict[Tuple[int, Tuple[int, ...]], Set[int]] = {}
        for c in configs:
            groups.setdefault((c.state, c.stack), set()).add(c.alt)
        sets = list(groups.values())
        return len(sets[0]) > 1 and all(s == sets[0] for s in sets)

    def _simulate(self, decision: int, stack: Tuple[int, ...]) -> Tuple[Prediction, List[int]]:
        atn = self.atn
        stream = self.stream
        dstate = atn.decision_state(decision)
        self._steps = 0
        self._used_preds = False
        self.simulations += 1
        start_tok = stream.LT(1)

        initial = [Config(t.target, alt, stack) for alt, t in enumerate(dstate.transitions, start=1)]
        path: List[int] = []
        depth = 0
        candidates = sorted({c.alt for c in initial})
        try:
            configs = self._closure(initial)
            while True:
                alts = sorted({c.alt for c in configs})
                if not alts:
                    logger.debug("decision %d: no viable alternative at depth %d", decision, depth)
                    return Prediction(0, "none", depth, stream.index), path
                candidates = alts
                if len(alts) == 1:
                    logger.debug("decision %d: alt %d by simulation (depth %d)", decision, alts[0], depth)
                    return Prediction(alts[0], "sim", depth), path
                if self._exact_ambiguity(configs):
                    return self._ambiguous(decision, alts, depth, start_tok), path

                tok = stream.LT(1)
                if tok.is_eof:
                    path.append(tok.type_id)
                    viable = sorted({c.alt for c in configs if self._accepts_eof(c)})
                    if not viable:
                        return Prediction(0, "none", depth, stream.index), path
                    if len(viable) == 1:
                        return Prediction(viable[0], "sim", depth + 1), path
                    return self._ambiguous(decision, viable, depth + 1, start_tok), path

                if depth >= self.options.max_lookahead:
                    return self._exhausted(decision, alts, depth, start_tok), path

                moved = self._move(configs, tok.type_id)
                if not moved:
                    logger.debug("decision %d: no viable alternative at depth %d", decision, depth)
                    return Prediction(0, "none", depth, tok.index), path
                path.append(tok.type_id)
                stream.consume()
                depth += 1
                candidates = sorted({c.alt for c in moved}) or candidates
                configs = self._closure(moved)
        except _BudgetExhausted:
            return self._exhausted(decision, candidates, depth, start_tok), path

    def _accepts_eof(self, c: Config) -> bool:
        st = self.atn.states[c.state]
        if st.kind == StateKind.RULE_STOP:
            return True
        t = st.transitions[0]
        return t.kind == ATOM and t.label == 0

    def _move(self, configs: List[Config], ttype: int) -> List[Config]:
        states = self.atn.states
        out: List[Config] = []
        for c in configs:
            st = states[c.state]
            if st.kind == StateKind.RULE_STOP:
                continue
            t = st.transitions[0]
            if t.kind == ATOM and t.label == ttype:
                out.append(Config(t.target, c.alt, c.stack))
        return out

    def _rule_name(self, decision: int) -> str:
        return self.atn.rule_names[self.atn.decision_state(decision).rule]

    def _ambiguous(self, decision: int, alts: List[int], depth: int, start_tok) -> Prediction:
        chosen = alts[0]
        logger.debug("decision %d: exact ambiguity between alts %s, chose %d", decision, alts, chosen)
        if self.options.report_ambiguity:
            self._report(decision, start_tok,
                         f"ambiguous input for decision {decision}: alternatives "
                         f"{', '.join(map(str, alts))} all match; chose {chosen}")
        return Prediction(chosen, "ambiguous", depth)

    def _exhausted(self, decision: int, alts: List[int], depth: int, start_tok) -> Prediction:
        chosen = alts[0]
        logger.debug("decision %d: budget exhausted after %d tokens / %d steps, alts %s",
                     decision, depth, self._steps, alts)
        self._report(decision, start_tok,
                     f"lookahead budget exhausted for decision {decision} after {depth} tokens; "
                     f"alternatives {', '.join(map(str, alts))} remain, chose {chosen}")
        return Prediction(chosen, "exhausted", depth)

    def _report(self, decision: int, tok, message: str) -> None:
        self.diagnostics.append(Diagnostic(
            kind=DiagnosticKind.AMBIGUITY,
            message=message,
            line=tok.line,
            column=tok.col,
            offset=tok.start,
            rule=self._rule_name(decision),
            offending=tok,
        ))
