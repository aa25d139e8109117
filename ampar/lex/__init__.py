# ampar/lex/__init__.py
"""ampar 렉서 런타임: 모드 스택 기반 최장일치 토크나이저.

특징
----
- 활성 모드(스택 top)의 **모든 규칙**을 현재 위치에서 시도
  - 가장 긴 (비어 있지 않은) 매치가 이긴다
  - 길이가 같으면 **먼저 선언된 규칙**이 이긴다 (입력과 무관하게 결정적)
- 규칙 명령
  - channel(C) : 채널 지정 (%ignore 는 HIDDEN)
  - push(M)    : 토큰 방출 후 모드 M 진입
  - pop        : 현재 모드 이탈 (DEFAULT에서 pop → InternalConsistencyError)
  - pop?       : 중첩되어 있을 때만 pop
  - skip       : 토큰을 버림
- 어떤 규칙도 맞지 않으면 ERROR 채널의 1문자 오류 토큰 + 진단 1건, 계속 진행
- EOF에서 모드가 남아 있으면 진단 1건("unterminated ... mode") 후 EOF 방출


API
---
- `LexerEngine(spec, text, ...)`
    - `next_token() -> Token`   # EOF 이후에는 같은 EOF 토큰을 반복
    - `tokenize() -> List[Token]`  # EOF 포함 전체
    - `mode`, `mode_stack`, `diagnostics`, `unterminated_at_eof`
"""

from __future__ import annotations
import logging
from typing import Dict, List, Mapping, Optional, Tuple

from ..config import EngineOptions
from ..errors import Diagnostic, DiagnosticKind, InternalConsistencyError
from .chars import CharacterStream
from .modes import DEFAULT_MODE, LexerContext, LexerSpec, LexRule
from .peg import PegMatcher
from .tokens import Channel, EOF_NAME, EOF_TYPE, ERROR_NAME, ERROR_TYPE, Token

logger = logging.getLogger(__name__)


class LexerEngine:
    """
    LexerEngine
    ===========
    한 입력 텍스트에 대한 1회용 렉서. `LexerSpec`은 공유(불변), 이 객체는 공유 금지.

    token_ids: 토큰 이름 → 단말 ID (문법 심볼테이블). 없는 이름은 ERROR_TYPE.
    """

    def __init__(self,
                 spec: LexerSpec,
                 text: str,
                 *,
                 token_ids: Optional[Mapping[str, int]] = None,
                 options: Optional[EngineOptions] = None,
                 diagnostics: Optional[List[Diagnostic]] = None,
                 name: str = "<input>"):
        self.spec = spec
        self.options = options or EngineOptions()
        self.chars = CharacterStream(text, strip_bom=self.options.strip_bom, name=name)
        self._token_ids = token_ids or {}
        self._modes: List[str] = [DEFAULT_MODE]
        self._pegs: Dict[str, PegMatcher] = {
            name: PegMatcher(g, self.chars.text) for name, g in spec.pegs.items()
        }
        self._index = 0
        self._last: Optional[Token] = None
        self._eof: Optional[Token] = None
        self.diagnostics: List[Diagnostic] = diagnostics if diagnostics is not None else []
        self.unterminated_at_eof = False

    # ---- 모드 스택 ----
    @property
    def mode(self) -> str:
        return self._modes[-1]

    @property
    def mode_stack(self) -> Tuple[str, ...]:
        return tuple(self._modes)

    def push_mode(self, name: str) -> None:
        if name not in self.spec.modes:
            raise InternalConsistencyError(f"push of undefined mode {name!r}")
        if len(self._modes) >= self.options.max_mode_depth:
            raise InternalConsistencyError(
                f"mode stack overflow: depth {len(self._modes)} exceeds max_mode_depth "
                f"at {self.chars.line}:{self.chars.column}")
        self._modes.append(name)

    def pop_mode(self) -> str:
        if len(self._modes) <= 1:
            raise InternalConsistencyError(
                f"mode stack underflow: pop in mode {self.mode} at {self.chars.line}:{self.chars.column}")
        return self._modes.pop()

    # ---- 공개 API ----
    @property
    def text(self) -> str:
        return self.chars.text

    def tokenize(self) -> List[Token]:
        out: List[Token] = []
        while True:
            tok = self.next_token()
            out.append(tok)
            if tok.is_eof:
                return out

    def __iter__(self):
        while True:
            tok = self.next_token()
            yield tok
            if tok.is_eof:
                return

    def next_token(self) -> Token:
        chars = self.chars
        while True:
            if self._eof is not None:
                return self._eof
            if chars.at_eof():
                return self._emit_eof()

            start, line, col = chars.index, chars.line, chars.column
            rule, length = self._longest_match()
            if rule is None:
                return self._error_token()

            lexeme = chars.advance(length)
            for cmd in rule.commands:
                self._apply(cmd)
            if rule.skip:
                continue
            tok = self._make(rule.name, lexeme, rule.channel, start, line, col)
            return tok

    # ---- 내부 ----
    def _longest_match(self) -> Tuple[Optional[LexRule], int]:
        text = self.chars.text
        pos = self.chars.index
        ctx: Optional[LexerContext] = None
        best: Optional[LexRule] = None
        best_len = 0
        for rule in self.spec.modes[self.mode].rules:
            n = rule.match(text, pos, self._pegs)
            # 동률은 먼저 선언된 규칙 유지 → '>' 만 갱신
            if n <= best_len:
                continue
            if rule.when is not None:
                if ctx is None:
                    ctx = LexerContext(text, pos, self.chars.line, self.chars.column,
                                       self.mode_stack, self._last)
                if not self.spec.predicates[rule.when](ctx):
                    continue
            best, best_len = rule, n
        return best, best_len

    def _apply(self, cmd) -> None:
        if cmd.kind == "push":
            self.push_mode(cmd.mode)
        elif cmd.kind == "pop":
            self.pop_mode()
        elif cmd.kind == "pop?":
            if len(self._modes) > 1:
                self._modes.pop()

    def _make(self, type_name: str, lexeme: str, channel: int,
              start: int, line: int, col: int) -> Token:
        tok = Token(
            type=type_name,
            type_id=self._token_ids.get(type_name, ERROR_TYPE),
            text=lexeme,
            channel=channel,
            start=start,
            stop=start + len(lexeme) - 1,
            line=line,
            col=col,
            index=self._index,
        )
        self._index += 1
        self._last = tok
        return tok

    def _error_token(self) -> Token:
        chars = self.chars
        start, line, col = chars.index, chars.line, chars.column
        ch = chars.consume()
        tok = self._make(ERROR_NAME, ch, Channel.ERROR, start, line, col)
        self.diagnostics.append(Diagnostic(
            kind=DiagnosticKind.LEXICAL,
            message=f"token recognition error at: {ch!r}",
            line=line,
            column=col,
            offset=start,
            rule=self.mode,
            offending=tok,
        ))
        logger.debug("lexical error %r at %d:%d (mode %s)", ch, line, col, self.mode)
        return tok

    def _emit_eof(self) -> Token:
        chars = self.chars
        tok = Token(
            type=EOF_NAME,
            type_id=EOF_TYPE,
            text="",
            channel=Channel.DEFAULT,
            start=chars.index,
            stop=chars.index - 1,
            line=chars.line,
            col=chars.column,
            index=self._index,
        )
        self._index += 1
        self._eof = tok
        if len(self._modes) > 1:
            # 모드가 닫히지 않은 채 끝남: 진단 1건만 남기고 EOF는 정상 방출
            self.unterminated_at_eof = True
            self.diagnostics.append(Diagnostic(
                kind=DiagnosticKind.LEXICAL,
                message=f"unterminated {self.mode} mode at end of input",
                line=tok.line,
                column=tok.col,
                offset=tok.start,
                rule=self.mode,
                offending=tok,
            ))
            logger.debug("EOF inside mode stack %s", "/".join(self._modes))
        return tok


def tokenize(spec: LexerSpec, text: str, **kwargs) -> List[Token]:
    """편의 함수: 전체 토큰(모든 채널 + EOF)."""
    return LexerEngine(spec, text, **kwargs).tokenize()


__all__ = ["LexerEngine", "tokenize"]
