# ampar/lex/tokens.py
"""토큰 레코드와 채널 상수."""

from __future__ import annotations
from dataclasses import dataclass, replace


class Channel:
    """토큰 채널. 파서는 DEFAULT만 직접 본다.

    - DEFAULT(0): 파서 기본 뷰
    - HIDDEN(1) : 공백/일반 주석(%ignore)
    - ERROR(2)  : 렉서 오류 토큰(1문자)
    - 사용자 채널은 `%channel NAME;` 선언 순서대로 3부터
    """
    DEFAULT = 0
    HIDDEN = 1
    ERROR = 2
    FIRST_CUSTOM = 3

    BUILTIN = {"DEFAULT": DEFAULT, "HIDDEN": HIDDEN, "ERROR": ERROR}


EOF_NAME = "EOF"
EOF_TYPE = 0
ERROR_NAME = "<error>"
ERROR_TYPE = -1


@dataclass(frozen=True)
class Token:
    """
    Token
    =====
    - type    : 토큰 이름(문법 심볼 이름과 정확히 일치; 키워드는 리터럴 그대로)
    - type_id : 심볼테이블 단말 ID (EOF=0, 렉서 오류=-1)
    - text    : 원문 lexeme
    - channel : Channel.*
    - start/stop: 원문 절대 오프셋 [start, stop] (stop 포함, 빈 토큰이면 stop=start-1)
    - line/col: 1-based
    - index   : 토큰 버퍼 내 단조 증가 인덱스 (가상 토큰은 -1)
    - virtual : 오류 복구가 만들어 낸 '없는 토큰'
    """
    type: str
    type_id: int
    text: str
    channel: int
    start: int
    stop: int
    line: int
    col: int
    index: int = -1
    virtual: bool = False

    @property
    def is_eof(self) -> bool:
        return self.type_id == EOF_TYPE

    @property
    def end(self) -> int:
        """반개구간 끝(stop + 1)."""
        return self.stop + 1

    def with_index(self, index: int) -> "Token":
        return replace(self, index=index)

    def display(self) -> str:
        """진단 메시지용 표현: '<EOF>' 또는 원문 텍스트 따옴표."""
        if self.is_eof:
            return "<EOF>"
        return repr(self.text)

    def __repr__(self) -> str:
        extra = " virtual" if self.virtual else ""
        return f"Token({self.type!r}, {self.text!r}, {self.line}:{self.col}, #{self.index}, ch={self.channel}{extra})"


def conjure(type_name: str, type_id: int, at: Token) -> Token:
    """오류 복구용 가상 토큰. 위치는 현재 토큰(at)의 위치를 빌린다."""
    label = "EOF" if type_id == EOF_TYPE else type_name
    return Token(
        type=type_name,
        type_id=type_id,
        text=f"<missing {label}>",
        channel=Channel.DEFAULT,
        start=at.start,
        stop=at.start - 1,
        line=at.line,
        col=at.col,
        index=-1,
        virtual=True,
    )
