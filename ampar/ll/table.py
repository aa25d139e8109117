# ampar/ll/table.py
"""
결정 테이블(LL(1) 빠른 경로)과 결정별 정적 정보.

- `(decision, LA(1) 단말 ID) → alt` 항목은 **오직 한 대안**의 LOOK에만 속한 단말에 대해서만 만든다.
- 어떤 대안이든 왼쪽 가장자리에 술어가 있으면 그 결정은 항목을 만들지 않는다
  (항상 시뮬레이션 + 술어로 해소).
- 둘 이상의 대안 LOOK에 겹치는 단말은 충돌(conflict)로 기록하고 시뮬레이션에 맡긴다.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, List, Mapping, Tuple

from .atn import ATN
from .first_follow import FALLOFF, has_left_predicate, look

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecisionInfo:
    """
    DecisionInfo
    ============
    - decision : 결정 번호
    - state    : ATN 상태 id
    - rule     : 규칙 번호
    - kind     : StateKind (block/optional/star/plus)
    - alt_looks: 대안별 LOOK(SLL 근사, FOLLOW 포함)
    - predicated: 대안 중 하나라도 왼쪽 가장자리 술어가 있는가
    """
    decision: int
    state: int
    rule: int
    kind: str
    alt_looks: Tuple[FrozenSet[int], ...]
    predicated: bool

    @property
    def expected(self) -> FrozenSet[int]:
        out = frozenset()
        for s in self.alt_looks:
            out |= s
        return out

    @property
    def is_ll1(self) -> bool:
        if self.predicated:
            return False
        seen = set()
        for s in self.alt_looks:
            if seen & s:
                return False
            seen |= s
        return True


@dataclass(frozen=True)
class Tables:
    """
    Tables
    ======
    예측 테이블과 디버그 정보를 담는 불변 컨테이너.

    필드
    ----
    - decision_table: (decision, term_id) -> alt(1-based)
    - decisions     : 결정 번호 -> DecisionInfo
    - follow        : 규칙 번호 -> FOLLOW 집합
    - conflicts     : (decision, term_id, alts): 둘 이상의 대안이 같은 LA(1)을 가짐

    사용
    ----
    - 런타임은 decision_table 을 먼저 조회하고 없으면 시뮬레이션으로 넘어간다.
    - 오류 메시지의 expected 집합은 DecisionInfo.expected 로 계산한다.
    - pretty_conflicts()는 id->name 콜백을 받아 사람이 읽기 좋은 내용을 만든다.
    """
    decision_table: Mapping[Tuple[int, int], int]
    decisions: Tuple[DecisionInfo, ...]
    follow: Mapping[int, FrozenSet[int]]
    conflicts: Tuple[Tuple[int, int, Tuple[int, ...]], ...]

    def lookup(self, decision: int, term_id: int) -> int:
        return self.decision_table.get((decision, term_id), 0)

    @property
    def ll1_count(self) -> int:
        return sum(1 for d in self.decisions if d.is_ll1)

    def pretty_conflicts(self, id_to_name: Callable[[int], str]) -> str:
        """
        충돌 목록을 사람이 읽기 좋은 문자열로 변환합니다.
        충돌이 없으면 '(no conflicts)' 반환.
        """
        if not self.conflicts:
            return "(no conflicts)"
        lines: List[str] = []
        for dec, sym, alts in self.conflicts:
            try:
                sym_name = id_to_name(sym)
            except (IndexError, KeyError):
                sym_name = f"#{sym}"
            alt_s = "/".join(str(a) for a in alts)
            lines.append(f"decision {dec}, on {sym_name}: alts {alt_s} (resolved by simulation)")
        return "\n".join(lines)


def build_tables(atn: ATN, follow: Mapping[int, FrozenSet[int]]) -> Tables:
    table: Dict[Tuple[int, int], int] = {}
    infos: List[DecisionInfo] = []
    conflicts: List[Tuple[int, int, Tuple[int, ...]]] = []

    for dec, sid in enumerate(atn.decisions):
        st = atn.states[sid]
        alt_looks: List[FrozenSet[int]] = []
        predicated = False
        for t in st.transitions:
            la = look(atn, t.target, (), follow)
            la.discard(FALLOFF)
            alt_looks.append(frozenset(la))
            if has_left_predicate(atn, t.target):
                predicated = True
        info = DecisionInfo(dec, sid, st.rule, st.kind, tuple(alt_looks), predicated)
        infos.append(info)

        owners: Dict[int, List[int]] = {}
        for alt, la in enumerate(alt_looks, start=1):
            for term in la:
                owners.setdefault(term, []).append(alt)
        for term in sorted(owners):
            alts = owners[term]
            if len(alts) > 1:
                conflicts.append((dec, term, tuple(alts)))
            elif not predicated:
                table[(dec, term)] = alts[0]

    result = Tables(
        decision_table=MappingProxyType(table),
        decisions=tuple(infos),
        follow=MappingProxyType(dict(follow)),
        conflicts=tuple(conflicts),
    )
    logger.debug("decision table: %d decisions, %d LL(1), %d entries, %d conflicts",
                 len(infos), result.ll1_count, len(table), len(conflicts))
    return result
