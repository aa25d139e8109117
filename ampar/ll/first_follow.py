# ampar/ll/first_follow.py
"""FIRST / FOLLOW / LOOK 계산 (ATN 위에서)."""

from __future__ import annotations
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from ..lex.tokens import EOF_TYPE
from .atn import ATN, ATOM, EPSILON, PRED, RULE, StateKind, nullable_rules

# LOOK 결과에서 "규칙 끝을 지나 바깥으로 떨어짐"을 나타내는 표식
FALLOFF = -2


def look(atn: ATN,
         state: int,
         stack: Tuple[int, ...] = (),
         follow: Optional[Dict[int, FrozenSet[int]]] = None) -> Set[int]:
    """
    look
    ====
    `state`에서 다음에 소비될 수 있는 단말 ID 집합(LL(1) 룩어헤드).

    - 술어 전이는 통과 가능한 것으로 본다(정적 근사).
    - 규칙 정지 상태에 닿으면
        * stack 에 복귀 상태가 남아 있으면 거기로 이어서 본다(전체 문맥)
        * stack 이 비었고 follow 가 주어지면 FOLLOW(규칙)을 더한다(SLL 근사)
        * 둘 다 아니면 FALLOFF 를 더한다
    - 시작 규칙의 FOLLOW 에는 EOF 가 들어 있으므로, 전체 문맥 + follow 조합이면
      'EOF 뒤로 떨어짐'은 생기지 않는다.
    """
    out: Set[int] = set()
    seen: Set[Tuple[int, Tuple[int, ...]]] = set()
    work: List[Tuple[int, Tuple[int, ...]]] = [(state, tuple(stack))]
    while work:
        sid, stk = work.pop()
        if (sid, stk) in seen:
            continue
        seen.add((sid, stk))
        st = atn.states[sid]
        if st.kind == StateKind.RULE_STOP:
            if stk:
                work.append((stk[-1], stk[:-1]))
            elif follow is not None:
                out |= follow[st.rule]
            else:
                out.add(FALLOFF)
            continue
        for t in st.transitions:
            if t.kind == ATOM:
                out.add(t.label)
            elif t.kind == RULE:
                work.append((t.target, stk + (t.follow,)))
            elif t.kind in (EPSILON, PRED):
                work.append((t.target, stk))
    return out


def compute_follow(atn: ATN, start_rule: int) -> Dict[int, FrozenSet[int]]:
    """
    compute_follow
    ==============
    규칙 번호 → FOLLOW(단말 ID 집합). 시작 규칙에는 EOF가 들어간다.

    고정점 반복:
      호출 지점 A ─call B→ f 마다 FOLLOW(B) ⊇ LOOK(f) \\ {FALLOFF},
      LOOK(f)에 FALLOFF 가 있으면 FOLLOW(B) ⊇ FOLLOW(A).
    """
    # 호출 지점별 LOOK(f)는 고정점 동안 변하지 않으므로 한 번만 계산
    sites: List[Tuple[int, int, Set[int]]] = []  # (caller, callee, look(f))
    for st in atn.states:
        for t in st.transitions:
            if t.kind == RULE:
                sites.append((st.rule, t.label, look(atn, t.follow)))

    follow: Dict[int, Set[int]] = {r: set() for r in range(len(atn.rule_start))}
    follow[start_rule].add(EOF_TYPE)
    changed = True
    while changed:
        changed = False
        for caller, callee, la in sites:
            before = len(follow[callee])
            follow[callee] |= la - {FALLOFF}
            if FALLOFF in la:
                follow[callee] |= follow[caller]
            if len(follow[callee]) != before:
                changed = True
    return {r: frozenset(s) for r, s in follow.items()}


def compute_first(atn: ATN) -> Dict[int, FrozenSet[int]]:
    """규칙 번호 → FIRST(단말 ID 집합). nullable 여부는 `nullable_rules`."""
    return {r: frozenset(look(atn, start) - {FALLOFF}) for r, start in enumerate(atn.rule_start)}


def has_left_predicate(atn: ATN, state: int) -> bool:
    """state에서 첫 단말을 소비하기 전에 술어를 만날 수 있는가(규칙 호출 포함)."""
    seen: Set[Tuple[int, Tuple[int, ...]]] = set()
    work: List[Tuple[int, Tuple[int, ...]]] = [(state, ())]
    while work:
        sid, stk = work.pop()
        if (sid, stk) in seen:
            continue
        seen.add((sid, stk))
        st = atn.states[sid]
        if st.kind == StateKind.RULE_STOP:
            # 결정이 속한 규칙 밖(호출자 쪽)의 술어는 대안 구분에 쓰이지 않는다
            if stk:
                work.append((stk[-1], stk[:-1]))
            continue
        for t in st.transitions:
            if t.kind == PRED:
                return True
            if t.kind == RULE:
                work.append((t.target, stk + (t.follow,)))
            elif t.kind == EPSILON:
                work.append((t.target, stk))
    return False


__all__ = ["FALLOFF", "look", "compute_follow", "compute_first",
           "has_left_predicate", "nullable_rules"]
