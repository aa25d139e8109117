# ampar/ll/atn.py
"""ATN (augmented transition network).

문법 규칙의 EBNF를 Thompson 방식으로 상태 그래프로 펼친 것.
파서 런타임과 예측 시뮬레이터가 같은 네트워크를 공유한다.

전이 종류
--------
- EPSILON : 입력 소비 없음
- ATOM    : 단말 하나 소비 (label = 단말 ID)
- RULE    : 규칙 호출 (target = 피호출 규칙 시작 상태, follow = 복귀 상태)
- PRED    : 의미 술어 (pred = 이름, negated = `{!p}?`)

결정 상태
--------
전이가 2개 이상인 상태. 모두 EPSILON 전이이며, 전이 순서 = 대안 번호(1부터).
블록 `(a|b)`, `?`, `*`, `+` 마다 하나씩 생기고 선언 순서대로 번호가 붙는다.

    X?  : D ─1→ X ─→ E,  D ─2→ E
    X*  : D ─1→ X ─→ D,  D ─2→ E
    X+  : X ─→ L,  L ─1→ X,  L ─2→ E
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..errors import GrammarError


EPSILON, ATOM, RULE, PRED = 0, 1, 2, 3
TRANSITION_NAMES = {EPSILON: "eps", ATOM: "atom", RULE: "rule", PRED: "pred"}


class StateKind:
    BASIC = "basic"
    RULE_START = "rule_start"
    RULE_STOP = "rule_stop"
    BLOCK = "block"          # (a|b) 결정
    OPTIONAL = "optional"    # X? 결정
    STAR = "star"            # X* 결정(루프 진입)
    PLUS = "plus"            # X+ 결정(루프 백)

    DECISIONS = (BLOCK, OPTIONAL, STAR, PLUS)
    # 빠져나가는 대안(마지막)이 '생략'인 결정
    OPTIONAL_EXITS = (OPTIONAL, STAR, PLUS)


@dataclass(frozen=True)
class Transition:
    kind: int
    target: int
    label: int = -1
    follow: int = -1
    pred: Optional[str] = None
    negated: bool = False

    def __str__(self) -> str:
        if self.kind == ATOM:
            return f"-{self.label}->{self.target}"
        if self.kind == RULE:
            return f"-call->{self.target}(ret {self.follow})"
        if self.kind == PRED:
            bang = "!" if self.negated else ""
            return f"-{{{bang}{self.pred}}}?->{self.target}"
        return f"-eps->{self.target}"


@dataclass(frozen=True)
class ATNState:
    id: int
    rule: int
    kind: str = StateKind.BASIC
    transitions: Tuple[Transition, ...] = ()
    decision: int = -1

    @property
    def is_decision(self) -> bool:
        return self.decision >= 0


@dataclass(frozen=True)
class ATN:
    """
    ATN
    ===
    - states          : 상태 튜플 (id = 인덱스)
    - rule_start/stop : 규칙 번호 → 시작/정지 상태 id
    - decisions       : 결정 번호 → 상태 id
    - rule_names      : 규칙 번호 → 이름
    """
    states: Tuple[ATNState, ...]
    rule_start: Tuple[int, ...]
    rule_stop: Tuple[int, ...]
    decisions: Tuple[int, ...]
    rule_names: Tuple[str, ...]

    def state(self, sid: int) -> ATNState:
        return self.states[sid]

    def decision_state(self, decision: int) -> ATNState:
        return self.states[self.decisions[decision]]

    def rule_of_state(self, sid: int) -> str:
        return self.rule_names[self.states[sid].rule]

    def dump(self) -> str:
        """디버깅용 텍스트 덤프."""
        lines: List[str] = []
        for st in self.states:
            dec = f" d{st.decision}" if st.is_decision else ""
            trs = " ".join(str(t) for t in st.transitions)
            lines.append(f"{st.id:4d} [{self.rule_names[st.rule]}:{st.kind}{dec}] {trs}")
        return "\n".join(lines)


# ---------- 빌더 ----------

@dataclass
class _MState:
    id: int
    rule: int
    kind: str = StateKind.BASIC
    transitions: List[Transition] = field(default_factory=list)
    decision: int = -1


class ATNBuilder:
    """규칙 단위로 상태를 만들어 가는 가변 빌더. `finish()`로 불변 ATN을 얻는다."""

    def __init__(self, rule_names: List[str]):
        self.rule_names = list(rule_names)
        self._states: List[_MState] = []
        self._decisions: List[int] = []
        self.rule_start: List[int] = []
        self.rule_stop: List[int] = []
        for r in range(len(rule_names)):
            self.rule_start.append(self.new_state(r, StateKind.RULE_START))
            self.rule_stop.append(self.new_state(r, StateKind.RULE_STOP))

    def new_state(self, rule: int, kind: str = StateKind.BASIC) -> int:
        sid = len(self._states)
        self._states.append(_MState(sid, rule, kind))
        return sid

    def epsilon(self, src: int, dst: int) -> None:
        self._states[src].transitions.append(Transition(EPSILON, dst))

    def atom(self, src: int, dst: int, term_id: int) -> None:
        self._states[src].transitions.append(Transition(ATOM, dst, label=term_id))

    def call(self, src: int, rule: int, follow: int) -> None:
        self._states[src].transitions.append(
            Transition(RULE, self.rule_start[rule], label=rule, follow=follow))

    def pred(self, src: int, dst: int, name: str, negated: bool = False) -> None:
        self._states[src].transitions.append(Transition(PRED, dst, pred=name, negated=negated))

    def mark_decision(self, sid: int, kind: str) -> int:
        st = self._states[sid]
        st.kind = kind
        st.decision = len(self._decisions)
        self._decisions.append(sid)
        return st.decision

    def finish(self) -> ATN:
        states = []
        for s in self._states:
            if s.decision < 0 and len(s.transitions) > 1:
                raise GrammarError(f"internal: state {s.id} has {len(s.transitions)} transitions but no decision")
            states.append(ATNState(s.id, s.rule, s.kind, tuple(s.transitions), s.decision))
        return ATN(
            states=tuple(states),
            rule_start=tuple(self.rule_start),
            rule_stop=tuple(self.rule_stop),
            decisions=tuple(self._decisions),
            rule_names=tuple(self.rule_names),
        )


# ---------- 정적 분석 ----------

def nullable_rules(atn: ATN) -> frozenset:
    """입력 소비 없이 끝날 수 있는 규칙 번호 집합(술어는 통과 가능으로 본다)."""
    nullable = set()
    changed = True
    while changed:
        changed = False
        for r, start in enumerate(atn.rule_start):
            if r in nullable:
                continue
            if reaches_without_input(atn, start, atn.rule_stop[r], nullable):
                nullable.add(r)
                changed = True
    return frozenset(nullable)


def reaches_without_input(atn: ATN, start: int, stop: int, nullable) -> bool:
    """start에서 입력을 소비하지 않고 stop에 닿을 수 있는가."""
    seen = {start}
    work = [start]
    while work:
        sid = work.pop()
        if sid == stop:
            return True
        for t in atn.states[sid].transitions:
            if t.kind == ATOM:
                continue
            nxt = t.follow if t.kind == RULE else t.target
            if t.kind == RULE and t.label not in nullable:
                continue
            if nxt not in seen:
                seen.add(nxt)
                work.append(nxt)
    return False


def left_calls(atn: ATN, nullable) -> Dict[int, List[int]]:
    """규칙별로 입력을 소비하기 전에 호출될 수 있는 규칙들."""
    out: Dict[int, List[int]] = {}
    for r, start in enumerate(atn.rule_start):
        calls: List[int] = []
        seen = {start}
        work = [start]
        while work:
            sid = work.pop()
            for t in atn.states[sid].transitions:
                if t.kind == ATOM:
                    continue
                if t.kind == RULE:
                    if t.label not in calls:
                        calls.append(t.label)
                    if t.label not in nullable:
                        continue
                    nxt = t.follow
                else:
                    nxt = t.target
                if nxt not in seen:
                    seen.add(nxt)
                    work.append(nxt)
        out[r] = calls
    return out


def check_left_recursion(atn: ATN) -> None:
    """좌재귀(직접/간접)가 있으면 GrammarError. 메시지에 순환 경로를 담는다."""
    calls = left_calls(atn, nullable_rules(atn))
    WHITE, GREY, BLACK = 0, 1, 2
    color = {r: WHITE for r in calls}
    for root in calls:
        if color[root] != WHITE:
            continue
        # 반복 DFS: (rule, 다음 자식 인덱스)
        path: List[int] = [root]
        idx: List[int] = [0]
        color[root] = GREY
        while path:
            r = path[-1]
            if idx[-1] < len(calls[r]):
                child = calls[r][idx[-1]]
                idx[-1] += 1
                if color[child] == GREY:
                    cyc = path[path.index(child):] + [child]
                    names = " -> ".join(atn.rule_names[c] for c in cyc)
                    raise GrammarError(f"Left recursion is not supported: {names}")
                if color[child] == WHITE:
                    color[child] = GREY
                    path.append(child)
                    idx.append(0)
            else:
                color[r] = BLACK
                path.pop()
                idx.pop()


def reachable_rules(atn: ATN, start_rule: int) -> frozenset:
    seen = {start_rule}
    work = [start_rule]
    while work:
        r = work.pop()
        for st in atn.states:
            if st.rule != r:
                continue
            for t in st.transitions:
                if t.kind == RULE and t.label not in seen:
                    seen.add(t.label)
                    work.append(t.label)
    return frozenset(seen)
