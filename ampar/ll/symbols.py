"""심볼에 정수 ID를 부여해 ATN/예측 테이블에서 사용하기 쉽게 합니다."""
from __future__     import annotations
from dataclasses    import dataclass, field
from typing         import Dict, Iterable, List, Optional, Tuple

from ..errors import GrammarError
from ..lex.tokens import EOF_NAME, EOF_TYPE


@dataclass
class SymbolTable:
    """
    SymbolTable
    ===========
    단말/비단말 **이름 ↔ 정수 ID 매핑**을 관리하는 테이블입니다.
    렉서(토큰 type_id), ATN, 결정 테이블, 런타임이 모두 같은 ID를 쓰도록
    freeze() 한 뒤에는 바꾸지 않습니다.

    설계 원칙
    --------
    - 단말 ID: 0 .. T-1, **EOF는 항상 0**번
      - 나머지 단말은 이름 정렬 순서(디버깅 편의)
    - 비단말(규칙) ID: T .. T+N-1, **선언 순서** 유지
      - `rule_index(name)`은 0부터 시작하는 규칙 번호(= ATN 규칙 번호)
    """

    _name_to_id: Dict[str, int] = field(default_factory=dict)
    _id_to_name: List[str] = field(default_factory=list)
    _term_count: int = 0
    _nonterm_count: int = 0
    _frozen: bool = False
    _start: Optional[str] = None

    def freeze(self, terms: Iterable[str], nonterms: Iterable[str], start: str) -> None:
        if self._frozen:
            return

        term_names = sorted(set(terms) - {EOF_NAME})
        term_names.insert(0, EOF_NAME)
        nonterm_names = list(dict.fromkeys(nonterms))

        clash = set(term_names) & set(nonterm_names)
        if clash:
            raise GrammarError(f"Names used both as token and rule: {', '.join(sorted(clash))}")
        if start not in nonterm_names:
            raise GrammarError(f"Start rule {start!r} is not defined")

        # 단말 먼저
        for i, nm in enumerate(term_names):
            self._name_to_id[nm] = i
            self._id_to_name.append(nm)
        self._term_count = len(term_names)

        # 비단말
        for j, nm in enumerate(nonterm_names):
            self._name_to_id[nm] = self._term_count + j
            self._id_to_name.append(nm)
        self._nonterm_count = len(nonterm_names)

        self._start = start
        self._frozen = True

    # ----- 조회 / 유틸 -----
    def id_of(self, name: str) -> int:
        """심볼 이름을 ID로 변환합니다. 존재하지 않으면 KeyError."""
        return self._name_to_id[name]

    def name_of(self, id_: int) -> str:
        """심볼 ID를 이름으로 변환합니다. 범위를 벗어나면 IndexError."""
        if id_ < 0:
            raise IndexError(id_)
        return self._id_to_name[id_]

    def display(self, term_id: int) -> str:
        """진단용 단말 표기. EOF는 <EOF>."""
        if term_id == EOF_TYPE:
            return "<EOF>"
        try:
            return self.name_of(term_id)
        except IndexError:
            return f"#{term_id}"

    def has(self, name: str) -> bool:
        return name in self._name_to_id

    def is_term_id(self, id_: int) -> bool:
        return 0 <= id_ < self._term_count

    def is_nonterm_id(self, id_: int) -> bool:
        return self._term_count <= id_ < (self._term_count + self._nonterm_count)

    def rule_index(self, name: str) -> int:
        id_ = self._name_to_id[name]
        if not self.is_nonterm_id(id_):
            raise KeyError(name)
        return id_ - self._term_count

    def rule_name(self, index: int) -> str:
        return self._id_to_name[self._term_count + index]

    @property
    def eof_id(self) -> int:
        return EOF_TYPE

    @property
    def term_count(self) -> int:
        return self._term_count

    @property
    def nonterm_count(self) -> int:
        return self._nonterm_count

    @property
    def terms(self) -> Tuple[str, ...]:
        return tuple(self._id_to_name[:self._term_count])

    @property
    def rules(self) -> Tuple[str, ...]:
        return tuple(self._id_to_name[self._term_count:])

    @property
    def token_ids(self) -> Dict[str, int]:
        """렉서용: 단말 이름 → ID."""
        return {nm: i for i, nm in enumerate(self._id_to_name[:self._term_count])}

    @property
    def start(self) -> str:
        return self._start

    @property
    def start_index(self) -> int:
        return self.rule_index(self._start)

    def __repr__(self) -> str:
        return f"SymbolTable(terms={list(self.terms)}, rules={list(self.rules)}, start={self._start})"
