# ampar/tree/query.py
"""규칙 경로 패턴 매칭.

패턴은 루트 쪽 → 노드 쪽 순서의 규칙 이름 목록이다. `*`는 0개 이상의 임의 조상.

    match_path(node, ["classDecl", "*", "functionDecl"])
      → node 가 functionDecl 이고, 그 조상 어딘가에 classDecl 이 있으면 True

`*`가 아닌 인접 원소끼리는 조상 체인에서도 **연속**이어야 한다
(`["a", "b"]`는 "a 바로 아래의 b"). 패턴 앞쪽의 조상은 무엇이든 상관없다.
"""

from __future__ import annotations
from typing import Callable, Dict, List, Sequence, Tuple

from .listener import ParseTreeListener
from .nodes import RuleNode

WILDCARD = "*"


def rule_path(node: RuleNode) -> List[str]:
    """루트 → node 규칙 이름 목록."""
    out: List[str] = []
    n = node
    while n is not None:
        out.append(n.kind.name)
        n = n.parent
    out.reverse()
    return out


def match_path(node: RuleNode, pattern: Sequence[str]) -> bool:
    """node의 조상 체인 끝(= node 쪽)이 pattern 과 맞는가."""
    path = rule_path(node)
    pat = list(pattern)
    if not pat:
        return False
    # 앞쪽 조상은 자유 → 암묵적 '*'. dp[i][j] = path[:i] 가 pat[:j] 와 맞는가
    pat = [WILDCARD] + pat
    n, m = len(path), len(pat)
    dp = [[False] * (m + 1) for _ in range(n + 1)]
    dp[0][0] = True
    for j in range(1, m + 1):
        dp[0][j] = dp[0][j - 1] and pat[j - 1] == WILDCARD
    for i in range(1, n + 1):
        for j in range(1, m + 1):
            p = pat[j - 1]
            if p == WILDCARD:
                dp[i][j] = dp[i][j - 1] or dp[i - 1][j]
            else:
                dp[i][j] = dp[i - 1][j - 1] and p == path[i - 1]
    return dp[n][m]


Converter = Callable[[RuleNode], None]
_Entry = Tuple[int, Tuple[str, ...], Converter]


class PatternWalker(ParseTreeListener):
    """
    PatternWalker
    =============
    규칙 경로 패턴 → 변환 함수 목록. 규칙에 들어갈 때 마지막 원소(규칙 이름)로 후보를
    좁힌 뒤 전체 경로를 검사해 맞으면 변환 함수를 부른다. `*`로 끝나는 패턴도 섞여서
    등록 순서대로 실행.
    """

    def __init__(self):
        self._by_rule: Dict[str, List[_Entry]] = {}
        self._any: List[_Entry] = []
        self._count = 0

    def add(self, pattern: Sequence[str], fn: Converter) -> "PatternWalker":
        pat = tuple(pattern)
        if not pat:
            raise ValueError("empty rule path pattern")
        entry = (self._count, pat, fn)
        self._count += 1
        if pat[-1] == WILDCARD:
            self._any.append(entry)
        else:
            self._by_rule.setdefault(pat[-1], []).append(entry)
        return self

    def enter_rule(self, node: RuleNode) -> None:
        named = self._by_rule.get(node.kind.name, [])
        for _, pat, fn in sorted(named + self._any, key=lambda e: e[0]):
            if match_path(node, pat):
                fn(node)
