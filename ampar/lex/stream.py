# ampar/lex/stream.py
"""TokenStream: 렉서 위의 지연(lazy) 토큰 버퍼.

- 버퍼는 **모든 채널**의 토큰을 렉서 방출 순서대로 보관한다(token.index == 버퍼 위치).
- 파서 뷰는 한 채널(기본 DEFAULT)만 본다: LT/LA/consume 은 다른 채널 토큰을 건너뛴다.
- 위치(`index`)는 현재 LT(1)의 버퍼 인덱스. 한 번 본 위치로는 언제든 `seek` 가능.
- `mark()`/`release()` 는 추측(시뮬레이션) 구간을 감싸는 LIFO 마커.
"""

from __future__ import annotations
import itertools
from typing import Iterable, List, Optional, Tuple

from ..errors import InternalConsistencyError
from .tokens import Channel, Token


class TokenStream:
    def __init__(self, source, *, channel: int = Channel.DEFAULT):
        """source: `next_token() -> Token` 를 가진 객체(LexerEngine 등)."""
        self.source = source
        self.channel = channel
        self._tokens: List[Token] = []
        self._fetched_eof = False
        self._marks: List[Tuple[int, int]] = []  # (id, 위치)
        self._mark_ids = itertools.count()
        self._p = -1  # 지연 초기화

    # ---- 버퍼 채우기 ----
    def _fetch(self, n: int) -> int:
        if self._fetched_eof:
            return 0
        for i in range(n):
            tok = self.source.next_token()
            if tok.index != len(self._tokens):
                tok = tok.with_index(len(self._tokens))
            self._tokens.append(tok)
            if tok.is_eof:
                self._fetched_eof = True
                return i + 1
        return n

    def _sync(self, i: int) -> bool:
        """버퍼에 인덱스 i가 있도록 채운다."""
        need = i - len(self._tokens) + 1
        if need > 0:
            return self._fetch(need) >= need
        return True

    def fill(self) -> None:
        while not self._fetched_eof:
            self._fetch(1000)

    def _lazy_init(self) -> None:
        if self._p == -1:
            self._sync(0)
            self._p = self._next_on_channel(0)

    def _next_on_channel(self, i: int) -> int:
        self._sync(i)
        if i >= len(self._tokens):
            return len(self._tokens) - 1
        tok = self._tokens[i]
        while tok.channel != self.channel:
            if tok.is_eof:
                return i
            i += 1
            self._sync(i)
            tok = self._tokens[i]
        return i

    def _prev_on_channel(self, i: int) -> int:
        self._sync(i)
        if i >= len(self._tokens):
            return len(self._tokens) - 1
        while i >= 0:
            tok = self._tokens[i]
            if tok.is_eof or tok.channel == self.channel:
                return i
            i -= 1
        return i

    # ---- 파서 뷰 ----
    @property
    def index(self) -> int:
        self._lazy_init()
        return self._p

    def lt_from(self, i: int, k: int) -> Optional[Token]:
        """버퍼 위치 i(채널 토큰)를 LT(1)로 보았을 때의 LT(k)."""
        if k == 0:
            raise ValueError("LT(0) is undefined")
        if k < 0:
            j = i
            for _ in range(-k):
                j = self._prev_on_channel(j - 1)
                if j < 0:
                    return None
            return self._tokens[j]
        j = i
        for _ in range(k - 1):
            if self._tokens[j].is_eof:
                break
            j = self._next_on_channel(j + 1)
        return self._tokens[j]

    def LT(self, k: int = 1) -> Optional[Token]:
        self._lazy_init()
        return self.lt_from(self._p, k)

    def LA(self, k: int = 1) -> int:
        tok = self.LT(k)
        return 0 if tok is None else tok.type_id

    def LB(self, k: int = 1) -> Optional[Token]:
        return self.LT(-k)

    def consume(self) -> Token:
        """LT(1)을 소비해 돌려준다. EOF 에서는 움직이지 않는다."""
        self._lazy_init()
        tok = self._tokens[self._p]
        if not tok.is_eof:
            self._p = self._next_on_channel(self._p + 1)
        return tok

    def seek(self, i: int) -> None:
        """버퍼 위치 i 이후 첫 채널 토큰으로 이동."""
        self._lazy_init()
        if i < 0:
            raise ValueError(f"cannot seek to {i}")
        self._p = self._next_on_channel(i)

    # ---- mark / release ----
    def mark(self) -> int:
        self._lazy_init()
        marker = next(self._mark_ids)
        self._marks.append((marker, self._p))
        return marker

    def release(self, marker: int) -> None:
        if not self._marks or self._marks[-1][0] != marker:
            raise InternalConsistencyError(f"token stream marks released out of order ({marker})")
        self._marks.pop()

    def rewind(self, marker: int) -> None:
        for live, p in self._marks:
            if live == marker:
                self._p = p
                return
        raise InternalConsistencyError(f"token stream mark {marker} is not live")

    # ---- 조회 ----
    def __len__(self) -> int:
        return len(self._tokens)

    @property
    def tokens(self) -> List[Token]:
        return list(self._tokens)

    def get(self, i: int) -> Token:
        if not self._sync(i):
            raise IndexError(f"token index {i} out of range")
        return self._tokens[i]

    def get_tokens(self, start: int, stop: int, channel: Optional[int] = None) -> List[Token]:
        """버퍼 [start, stop] 구간(포함). channel 지정 시 해당 채널만."""
        self._sync(stop)
        out = self._tokens[start:stop + 1]
        if channel is not None:
            out = [t for t in out if t.channel == channel]
        return out

    def get_text(self, start: int = 0, stop: Optional[int] = None) -> str:
        if stop is None:
            self.fill()
            stop = len(self._tokens) - 1
        return "".join(t.text for t in self.get_tokens(start, stop))

    def _off_channel_run(self, indices: Iterable[int], channel: Optional[int]) -> List[Token]:
        out: List[Token] = []
        for j in indices:
            if not self._sync(j):
                break
            tok = self._tokens[j]
            if tok.channel == self.channel or tok.is_eof:
                break
            if channel is None or tok.channel == channel:
                out.append(tok)
        return out

    def hidden_tokens_to_left(self, i: int, channel: Optional[int] = None) -> List[Token]:
        """토큰 i 바로 앞의 비-파서 채널 토큰들(원문 순서)."""
        self._sync(i)
        run = self._off_channel_run(range(i - 1, -1, -1), channel)
        run.reverse()
        return run

    def hidden_tokens_to_right(self, i: int, channel: Optional[int] = None) -> List[Token]:
        """토큰 i 바로 뒤의 비-파서 채널 토큰들."""
        self._sync(i)
        return self._off_channel_run(itertools.count(i + 1), channel)

    def __repr__(self) -> str:
        return f"TokenStream(buffered={len(self._tokens)}, index={self._p})"
