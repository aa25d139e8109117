# ampar/grammar/ast.py
"""Grammar AST
- TokenDecl  : %token NAME /re/ | "lit" | %peg(B.R)  [attrs] [-> commands] ;
               %ignore [NAME] /re/ ... ;  (ignore=True, HIDDEN 채널)
- KeywordDecl: "lit" : "lit" ;
- Expr/Seq/Atom: EBNF 표현을 그대로 보존(?,*,+ 포함)
- 선언은 모두 직전 `%mode NAME;` 의 모드에 속한다(처음엔 DEFAULT)
"""

from __future__     import annotations
from dataclasses    import dataclass, field
from typing         import Dict, List, Optional, Union

from ..lex.modes import DEFAULT_MODE


@dataclass
class Span:
    start: int
    end: int
    line: int
    col: int


@dataclass
class CommandDecl:
    """-> 뒤의 렉서 명령 1개: push(M) | pop | pop? | skip | channel(C)"""
    kind: str
    arg: Optional[str] = None


@dataclass
class TokenDecl:
    """
    어휘 규칙 1개.
    - kind   : 'regex' | 'literal' | 'peg'
    - pattern: 정규식 원문 / 리터럴 텍스트 / 'Block.Rule'
    - ignore : %ignore 로 선언됨(기본 채널 HIDDEN)
    """
    name: str
    kind: str
    pattern: str
    flags: str = ""
    mode: str = DEFAULT_MODE
    ignore: bool = False
    when: Optional[str] = None
    trigger: Optional[str] = None
    commands: List[CommandDecl] = field(default_factory=list)
    span: Optional[Span] = None


@dataclass
class KeywordDecl:
    lexeme: str
    mode: str = DEFAULT_MODE
    span: Optional[Span] = None


class Suffix:
    NONE = "none"
    OPT  = "opt"
    STAR = "star"
    PLUS = "plus"


@dataclass
class Name:
    ident: str
    span: Optional[Span] = None


@dataclass
class Lit:
    text: str
    span: Optional[Span] = None


@dataclass
class Group:
    expr: "Expr"
    span: Optional[Span] = None


@dataclass
class PegExprRef:
    """RHS용 국소 PEG 임베딩: @peg(Block.Rule)"""
    block: str
    rule: str
    span: Optional[Span] = None


@dataclass
class PredRef:
    """의미 술어 `{name}?` / `{!name}?`"""
    name: str
    negated: bool = False
    span: Optional[Span] = None


AtomKind = Union[Name, Lit, Group, PegExprRef, PredRef]

# EBNF 표현 구조

@dataclass
class Atom:
    node: AtomKind
    suffix: str = Suffix.NONE
    span: Optional[Span] = None


@dataclass
class Seq:
    """대안(alt) 하나의 시퀀스. 빈 리스트면 ε."""
    items: List[Atom]


@dataclass
class Expr:
    alts: List[Seq]


@dataclass
class Rule:
    name: str
    expr: Expr
    span: Optional[Span] = None


# ====== PEG 통합용 노드

@dataclass
class PegBlockDecl:
    """%peg NAME { ... };: PEG 블록 원문을 그대로 보존"""
    name: str
    src: str    # 중괄호 내부 원문(문자 그대로)


@dataclass
class Grammar:
    # 어휘 선언(선언 순서 유지, %ignore 포함)
    decl_tokens: List[TokenDecl] = field(default_factory=list)
    decl_keywords: List[KeywordDecl] = field(default_factory=list)
    decl_modes: List[str] = field(default_factory=lambda: [DEFAULT_MODE])
    decl_channels: List[str] = field(default_factory=list)

    # PEG 선언
    decl_peg_blocks: List[PegBlockDecl] = field(default_factory=list)

    # 규칙 섹션
    rules: List[Rule] = field(default_factory=list)
    start: Optional[str] = None

    # %option name value;
    options: Dict[str, str] = field(default_factory=dict)

    # ===== 오류 복구 =====
    # - recover_mode: None|"off"|"panic" (None → EngineOptions 기본값)
    # - sync_labels : 전역 동기화 토큰 라벨 목록(예: [")", ";", "EOF"])
    # - rule_sync   : 규칙별 동기화 라벨 (%sync Rule : labels;)
    recover_mode: Optional[str] = None
    sync_labels: List[str] = field(default_factory=list)
    rule_sync: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def decl_ignores(self) -> List[TokenDecl]:
        return [t for t in self.decl_tokens if t.ignore]

    def tokens_in(self, mode: str) -> List[TokenDecl]:
        return [t for t in self.decl_tokens if t.mode == mode]

    def keywords_in(self, mode: str) -> List[KeywordDecl]:
        return [k for k in self.decl_keywords if k.mode == mode]

    def rule(self, name: str) -> Optional[Rule]:
        for r in self.rules:
            if r.name == name:
                return r
        return None
