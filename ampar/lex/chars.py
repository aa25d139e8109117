# ampar/lex/chars.py
"""CharacterStream: 원문 위의 유한 룩어헤드 + mark/rewind.

불변식
------
- 커서는 단조 증가한다. 되돌리기는 **살아 있는 mark**로의 rewind만 허용.
- mark는 중첩 가능. 바깥 mark를 release 하면 그 뒤에 만든 안쪽 mark도 모두 무효.
- 범위를 벗어난 peek/consume은 예외 대신 EOF 센티널("")을 돌려준다.
"""

from __future__ import annotations
import itertools
from typing import List, Tuple

EOF = ""
BOM = "\ufeff"


class CharacterStream:
    """불변 텍스트 버퍼 위의 커서. 줄/칸(1-based)을 함께 추적한다."""

    EOF = EOF

    def __init__(self, text: str, *, strip_bom: bool = True, name: str = "<input>"):
        if strip_bom and text.startswith(BOM):
            text = text[len(BOM):]
        self._text = text
        self._n = len(text)
        self._i = 0
        self._line = 1
        self._col = 1
        self.name = name
        # (id, index, line, col) 스냅샷
        self._marks: List[Tuple[int, int, int, int]] = []
        self._mark_ids = itertools.count()

    # ---- 조회 ----
    @property
    def text(self) -> str:
        return self._text

    @property
    def index(self) -> int:
        return self._i

    @property
    def line(self) -> int:
        return self._line

    @property
    def column(self) -> int:
        return self._col

    def __len__(self) -> int:
        return self._n

    def at_eof(self) -> bool:
        return self._i >= self._n

    def peek(self, k: int = 1) -> str:
        """LA(k). k=1이 현재 문자. 음수 k는 이미 지난 문자(LA(-1)=직전 문자)."""
        if k == 0:
            raise ValueError("peek(0) is undefined")
        j = self._i + k - 1 if k > 0 else self._i + k
        if j < 0 or j >= self._n:
            return EOF
        return self._text[j]

    def substring(self, start: int, stop: int) -> str:
        """[start, stop] (stop 포함) 구간 텍스트."""
        return self._text[start:stop + 1]

    # ---- 이동 ----
    def consume(self) -> str:
        """현재 문자를 소비해 돌려준다. EOF에서는 움직이지 않고 EOF를 돌려준다."""
        if self._i >= self._n:
            return EOF
        ch = self._text[self._i]
        self._i += 1
        if ch == "\n":
            self._line += 1
            self._col = 1
        else:
            self._col += 1
        return ch

    def advance(self, n: int) -> str:
        """n개 문자를 한 번에 소비하고 소비된 텍스트를 돌려준다."""
        if n < 0:
            raise ValueError("advance() cannot move backwards")
        seg = self._text[self._i:self._i + n]
        nl = seg.count("\n")
        if nl:
            self._line += nl
            self._col = len(seg) - seg.rfind("\n")
        else:
            self._col += len(seg)
        self._i += len(seg)
        return seg

    # ---- mark / release / rewind ----
    def mark(self) -> int:
        """현재 위치에 mark를 걸고 마커 id를 돌려준다. id는 재사용되지 않는다."""
        marker = next(self._mark_ids)
        self._marks.append((marker, self._i, self._line, self._col))
        return marker

    def release(self, marker: int) -> None:
        """marker와 그 뒤에 생성된 모든 안쪽 mark를 해제한다."""
        del self._marks[self._depth(marker):]

    def rewind(self, marker: int) -> None:
        """살아 있는 mark 위치로 커서를 되돌린다. mark 자체는 유지된다."""
        depth = self._depth(marker)
        _, self._i, self._line, self._col = self._marks[depth]
        # 더 안쪽 mark는 되돌린 위치보다 뒤를 가리키므로 무효화
        del self._marks[depth + 1:]

    def _depth(self, marker: int) -> int:
        for depth, entry in enumerate(self._marks):
            if entry[0] == marker:
                return depth
        raise ValueError(f"mark {marker} is not live")

    def __repr__(self) -> str:
        return f"CharacterStream({self.name!r}, index={self._i}, line={self._line}, col={self._col})"
