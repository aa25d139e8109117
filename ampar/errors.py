# ampar/errors.py
"""ampar 오류 분류와 진단(Diagnostic) 레코드.

분류
----
- GrammarError            : 문법 텍스트/테이블 빌드 단계의 오류 (즉시 raise)
- LexicalError            : 현재 모드의 어떤 규칙도 맞지 않음 (국소 복구 → 진단 기록)
- ParseError              : 기대 집합 밖의 토큰, 예산 소진 후 미해결 모호성 (국소 복구 → 진단 기록)
- InternalConsistencyError: 모드 스택 언더/오버플로, 술어 부작용 등 엔진 전제 위반 (치명적, 즉시 중단)

복구 가능한 오류는 예외 대신 `Diagnostic`으로 누적되며, 파싱은 계속된다.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .lex.tokens import Token


class AmparError(Exception):
    """ampar의 모든 예외의 베이스."""


class GrammarError(AmparError, SyntaxError):
    """문법 DSL 파싱/검증 실패."""


class LexicalError(AmparError):
    """어떤 어휘 규칙도 현재 문자에 맞지 않음. 렉서는 진단만 남기고, raise 는 ParseResult.raise_for_errors() 가 한다."""

    def __init__(self, diagnostic: "Diagnostic"):
        super().__init__(diagnostic.message)
        self.diagnostic = diagnostic


class ParseError(AmparError, SyntaxError):
    """구문 오류. 복구가 꺼져 있으면 첫 오류에서 raise 된다."""

    def __init__(self, diagnostic: "Diagnostic"):
        super().__init__(diagnostic.message)
        self.diagnostic = diagnostic


class InternalConsistencyError(AmparError, RuntimeError):
    """엔진 전제 위반. 현재 파싱을 즉시 중단한다."""


# ---------- 진단 레코드 ----------

class DiagnosticKind(str, Enum):
    LEXICAL = "lexical"
    SYNTAX = "syntax"
    AMBIGUITY = "ambiguity"


@dataclass(frozen=True)
class Diagnostic:
    """
    Diagnostic
    ==========
    복구된 오류 1건에 대한 구조화된 기록.

    필드
    ----
    - kind      : lexical | syntax | ambiguity
    - message   : 사람이 읽는 메시지
    - line/column: 1-based 위치
    - offset    : 원문 절대 오프셋(0-based)
    - rule      : 오류 당시 감싸고 있던 규칙 이름(렉서 오류면 모드 이름)
    - expected  : 기대 토큰 이름들(정렬됨)
    - offending : 문제의 토큰(없으면 None)
    """
    kind: DiagnosticKind
    message: str
    line: int
    column: int
    offset: int
    rule: Optional[str] = None
    expected: Tuple[str, ...] = field(default_factory=tuple)
    offending: Optional["Token"] = None

    @property
    def position(self) -> Tuple[int, int]:
        return self.line, self.column

    def format(self, source: Optional[str] = None) -> str:
        """`line:col: kind: message` 형태. source가 주어지면 캐럿 스니펫을 덧붙인다."""
        head = f"{self.line}:{self.column}: {self.kind.value} error: {self.message}"
        if source is None:
            return head
        return head + "\n" + caret_snippet(source, self.offset)

    def __str__(self) -> str:
        return self.format()


# ---------- 스니펫 유틸 ----------

def line_bounds(src: str, pos: int) -> Tuple[int, int]:
    """pos가 속한 라인의 [start, end) 범위를 반환."""
    start = src.rfind("\n", 0, pos)
    start = 0 if start < 0 else start + 1
    end = src.find("\n", pos)
    end = len(src) if end < 0 else end
    return start, end


def caret_snippet(src: str, pos: int) -> str:
    """절대 오프셋 pos에 캐럿(^)을 찍은 스니펫을 생성."""
    pos = max(0, min(pos, len(src)))
    start, end = line_bounds(src, pos)
    line = src[start:end]
    caret = " " * (pos - start) + "^"
    return f"{line}\n{caret}"
