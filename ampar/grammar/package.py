# ampar/grammar/package.py
"""문법 원문 → GrammarPackage (빌드 후 불변, 여러 스레드/세션이 공유)."""

from __future__     import annotations
import logging
from dataclasses    import dataclass
from pathlib        import Path
from types          import MappingProxyType
from typing         import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from ..config       import EngineOptions
from ..errors       import Diagnostic, GrammarError
from ..lex          import LexerEngine
from ..lex.modes    import LexerSpec
from ..lex.tokens   import EOF_NAME
from ..ll.atn       import ATN
from ..ll.first_follow import compute_follow
from ..ll.predicates import PredicateRegistry
from ..ll.symbols   import SymbolTable
from ..ll.table     import Tables, build_tables
from ..tree.nodes   import make_rule_kinds
from .ast           import Grammar
from .loader        import load_grammar_text, normalize_newlines
from .parser        import parse_grammar
from .transform     import (LiteralResolver, build_atn, build_lexer_spec,
                            lower_inline_peg_to_tokens, resolve_literals, unreachable_rules)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GrammarPackage:
    """
    GrammarPackage
    ==============
    한 문법을 빌드한 결과 전체.

    - lexer_spec : 모드/규칙/PEG/채널/렉서 술어
    - symbols    : 단말/규칙 ID (EOF = 0)
    - atn, tables: 파서 네트워크와 LL(1) 결정 테이블
    - predicates : 의미 술어 레지스트리
    - kinds      : 규칙 이름 IntEnum (트리 노드 kind)
    - literals   : 키워드(따옴표로 표시할 단말) 이름
    - global_sync / rule_sync: 복구 동기화 토큰 ID
    - options    : 문법의 %option / %recover 를 반영한 기본 엔진 옵션
    - warnings   : 빌드 경고(도달 불가 규칙 등)
    """
    name: str
    source: str
    lexer_spec: LexerSpec
    symbols: SymbolTable
    atn: ATN
    tables: Tables
    predicates: PredicateRegistry
    kinds: type
    literals: FrozenSet[str]
    global_sync: FrozenSet[int]
    rule_sync: Mapping[int, FrozenSet[int]]
    options: EngineOptions
    token_ids: Mapping[str, int]
    predicate_names: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def start(self) -> str:
        return self.symbols.start

    @property
    def rule_names(self) -> Tuple[str, ...]:
        return self.symbols.rules

    def new_lexer(self,
                  text: str,
                  *,
                  options: Optional[EngineOptions] = None,
                  diagnostics: Optional[List[Diagnostic]] = None,
                  name: str = "<input>") -> LexerEngine:
        return LexerEngine(self.lexer_spec, text,
                           token_ids=self.token_ids,
                           options=options or self.options,
                           diagnostics=diagnostics,
                           name=name)

    def summary(self) -> str:
        t = self.tables
        return (f"{self.name}: {self.symbols.term_count} terminals, "
                f"{self.symbols.nonterm_count} rules, {len(self.atn.states)} ATN states, "
                f"{len(t.decisions)} decisions ({t.ll1_count} LL(1)), "
                f"{len(t.conflicts)} LA(1) conflicts")

    def __repr__(self) -> str:
        return f"GrammarPackage({self.name!r}, start={self.start!r})"


# ---- 동기화 라벨 ----

def _sync_id(label: str, sym: SymbolTable, resolver: LiteralResolver, where: str) -> int:
    if label.startswith('"') and label.endswith('"') and len(label) >= 2:
        text = label[1:-1]
        name = resolver.lookup(text)
        if name is None:
            raise GrammarError(f"Unknown %sync label {text!r}{where}: no token matches this literal")
        return sym.id_of(name)
    if label == EOF_NAME or (sym.has(label) and sym.is_term_id(sym.id_of(label))):
        return sym.id_of(label)
    raise GrammarError(f"Unknown %sync label {label!r}{where}")


def _sync_sets(g: Grammar, sym: SymbolTable, resolver: LiteralResolver
               ) -> Tuple[FrozenSet[int], Mapping[int, FrozenSet[int]]]:
    global_sync = frozenset(_sync_id(lb, sym, resolver, "") for lb in g.sync_labels)
    per_rule: Dict[int, FrozenSet[int]] = {}
    for rule, labels in g.rule_sync.items():
        if g.rule(rule) is None:
            raise GrammarError(f"%sync names undefined rule {rule!r}")
        where = f" for rule {rule}"
        per_rule[sym.rule_index(rule)] = frozenset(_sync_id(lb, sym, resolver, where) for lb in labels)
    return global_sync, MappingProxyType(per_rule)


# ---- 빌드 ----

def compile_grammar(g: Grammar,
                    src: str,
                    *,
                    predicates: Optional[Mapping[str, Callable[..., Any]]] = None,
                    lexer_predicates: Optional[Mapping[str, Callable[..., Any]]] = None,
                    name: str = "<grammar>") -> GrammarPackage:
    """파싱된 Grammar 를 검사하고 런타임 패키지로 만든다."""
    warnings: List[str] = []

    g = lower_inline_peg_to_tokens(g, src)
    literals, resolver = resolve_literals(g)
    lexer_spec = build_lexer_spec(g, lexer_predicates, src, warnings)

    sym = SymbolTable()
    sym.freeze(set(lexer_spec.token_names()) | {EOF_NAME}, [r.name for r in g.rules], g.start)

    atn, used_predicates = build_atn(g, sym, literals, src)
    registry = PredicateRegistry(predicates)
    registry.require(used_predicates)

    for rule in unreachable_rules(atn, sym.start_index):
        warnings.append(f"rule {rule} is unreachable from the start rule {sym.start}")

    follow = compute_follow(atn, sym.start_index)
    tables = build_tables(atn, follow)
    global_sync, rule_sync = _sync_sets(g, sym, resolver)

    options = EngineOptions.from_grammar_options(g.options)
    if g.recover_mode is not None:
        options = options.merged(recover=(g.recover_mode == "panic"))

    package = GrammarPackage(
        name=name,
        source=src,
        lexer_spec=lexer_spec,
        symbols=sym,
        atn=atn,
        tables=tables,
        predicates=registry,
        kinds=make_rule_kinds(sym.rules),
        literals=frozenset(resolver.keywords),
        global_sync=global_sync,
        rule_sync=rule_sync,
        options=options,
        token_ids=MappingProxyType(sym.token_ids),
        predicate_names=used_predicates,
        warnings=tuple(warnings),
    )
    logger.debug("built %s", package.summary())
    if tables.conflicts:
        logger.debug("LA(1) conflicts:\n%s", tables.pretty_conflicts(sym.display))
    return package


def build_package(source: str,
                  *,
                  predicates: Optional[Mapping[str, Callable[..., Any]]] = None,
                  lexer_predicates: Optional[Mapping[str, Callable[..., Any]]] = None,
                  name: str = "<grammar>") -> GrammarPackage:
    """
    문법 원문을 빌드한다.

    predicates       : 의미 술어 이름 → fn(PredicateContext) -> bool
    lexer_predicates : 렉서 술어 이름 → fn(LexerContext) -> bool
    문법 오류는 GrammarError (위치와 캐럿 스니펫 포함).
    """
    src = normalize_newlines(source)
    return compile_grammar(parse_grammar(src), src,
                           predicates=predicates,
                           lexer_predicates=lexer_predicates,
                           name=name)


def load_package(path: Union[str, Path], **kw) -> GrammarPackage:
    """.g 파일에서 빌드."""
    kw.setdefault("name", Path(path).name)
    return build_package(load_grammar_text(path), **kw)
