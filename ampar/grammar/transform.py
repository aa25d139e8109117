# ampar/grammar/transform.py
"""Grammar AST → 런타임 구성 요소.

1) 인라인 `@peg(B.R)` → DEFAULT 모드의 PEG 토큰으로 치환
2) 규칙 안의 리터럴 해석: 선언된 키워드 → 같은 리터럴의 %token 이름 → 암묵적 DEFAULT 키워드
3) 모드별 LexRule 목록(키워드 먼저, 그다음 선언 순서) → LexerSpec
4) EBNF(?,*,+)를 Thompson 방식으로 ATN에 펼침 (BNF 전개 없음)
5) 정적 검사: 정의되지 않은 심볼, 좌재귀, 빈 문자열을 매치하는 반복, 도달 불가 규칙(경고)
"""

from __future__     import annotations
import logging
from types          import MappingProxyType
from typing         import Dict, List, Mapping, Optional, Set, Tuple

from ..errors       import GrammarError, caret_snippet
from ..lex.modes    import (BUILTIN_LEXER_PREDICATES, DEFAULT_MODE, LexCommand, LexerSpec,
                            LexRule, Mode)
from ..lex.peg      import parse_peg_block
from ..lex.tokens   import Channel, EOF_NAME
from ..ll.atn       import (ATN, ATNBuilder, StateKind, check_left_recursion, nullable_rules,
                            reachable_rules, reaches_without_input)
from ..ll.symbols   import SymbolTable
from .ast           import (Atom, Expr, Grammar, Group, KeywordDecl, Lit, Name, PegExprRef,
                            PredRef, Seq, Span, Suffix, TokenDecl)

logger = logging.getLogger(__name__)


def _where(src: Optional[str], span: Optional[Span]) -> str:
    if src is None or span is None:
        return ""
    return f" at {span.line}:{span.col}\n{caret_snippet(src, span.start)}"


# --- inline PEG on RHS -> global PEG token lowering ---------------------

def _canon_peg_term_name(block: str, rule: str, taken: Set[str]) -> str:
    """인라인 @peg(Block.Rule)용 고유 토큰 이름 생성.
    - 기본: __peg_{Block}_{Rule}
    - 중복 시: __peg_{Block}_{Rule}__N
    """
    base = f"__peg_{block}_{rule}"
    name = base
    n = 1
    while name in taken:
        n += 1
        name = f"{base}__{n}"
    return name


def lower_inline_peg_to_tokens(g: Grammar, src: Optional[str] = None) -> Grammar:
    """
    Grammar 안의 RHS `@peg(Block.Rule)`(PegExprRef)들을 전부
    'DEFAULT 모드 PEG 토큰'으로 치환한다.
      - 같은 참조의 PEG 토큰이 DEFAULT 모드에 이미 선언되어 있으면 그 이름을 재사용
      - 없으면 TokenDecl 을 새로 추가
      - 규칙 RHS의 PegExprRef → Name(peg_token_name) 으로 교체
    """
    taken = {t.name for t in g.decl_tokens} | {kw.lexeme for kw in g.decl_keywords}
    have_block = {pb.name for pb in g.decl_peg_blocks}

    ref2name: Dict[str, str] = {}
    for t in g.tokens_in(DEFAULT_MODE):
        if t.kind == "peg" and not t.ignore and t.trigger is None and not t.commands:
            ref2name.setdefault(t.pattern, t.name)

    def _rewrite_expr(expr: Expr) -> Expr:
        return Expr([Seq([_rewrite_atom(it) for it in s.items]) for s in expr.alts])

    def _rewrite_atom(a: Atom) -> Atom:
        node = a.node
        if isinstance(node, PegExprRef):
            if node.block not in have_block:
                raise GrammarError(f"Inline @peg references unknown %peg block '{node.block}'"
                                   + _where(src, node.span))
            ref = f"{node.block}.{node.rule}"
            tok = ref2name.get(ref)
            if tok is None:
                tok = _canon_peg_term_name(node.block, node.rule, taken)
                taken.add(tok)
                g.decl_tokens.append(TokenDecl(name=tok, kind="peg", pattern=ref, span=node.span))
                ref2name[ref] = tok
            return Atom(node=Name(tok, node.span), suffix=a.suffix, span=a.span)
        if isinstance(node, Group):
            return Atom(node=Group(_rewrite_expr(node.expr), node.span), suffix=a.suffix, span=a.span)
        return a

    for rule in g.rules:
        rule.expr = _rewrite_expr(rule.expr)
    return g


# --- 리터럴 해석 ------------------------------------------------------

class LiteralResolver:
    """
    규칙/%sync 에 쓰인 리터럴("(" 등)을 단말 이름으로.
    우선순위: 선언된 키워드 → 리터럴이 같은 %token 의 이름 → (규칙에서만) 암묵적 DEFAULT 키워드
    """

    def __init__(self, g: Grammar):
        self.g = g
        self.keywords: Set[str] = {kw.lexeme for kw in g.decl_keywords}
        self.literal_tokens: Dict[str, str] = {}
        for t in g.decl_tokens:
            if t.kind == "literal" and not t.ignore:
                self.literal_tokens.setdefault(t.pattern, t.name)
        self.implicit: List[str] = []

    def lookup(self, text: str) -> Optional[str]:
        if text in self.keywords:
            return text
        return self.literal_tokens.get(text)

    def resolve(self, text: str) -> str:
        got = self.lookup(text)
        if got is not None:
            return got
        self.g.decl_keywords.append(KeywordDecl(text, DEFAULT_MODE))
        self.keywords.add(text)
        self.implicit.append(text)
        return text


def resolve_literals(g: Grammar) -> Tuple[Dict[str, str], LiteralResolver]:
    """모든 규칙의 리터럴을 해석해 {리터럴 텍스트: 단말 이름} 을 돌려준다(암묵 키워드 추가)."""
    resolver = LiteralResolver(g)
    out: Dict[str, str] = {}
    work: List[Expr] = [r.expr for r in g.rules]
    while work:
        expr = work.pop()
        for seq in expr.alts:
            for atom in seq.items:
                if isinstance(atom.node, Lit):
                    out[atom.node.text] = resolver.resolve(atom.node.text)
                elif isinstance(atom.node, Group):
                    work.append(atom.node.expr)
    if resolver.implicit:
        logger.debug("implicit keywords: %s", ", ".join(resolver.implicit))
    return out, resolver


# --- 렉서 명세 -------------------------------------------------------

def _channels(g: Grammar) -> Dict[str, int]:
    channels = dict(Channel.BUILTIN)
    for i, name in enumerate(g.decl_channels):
        if name in channels:
            raise GrammarError(f"Channel {name!r} is already defined")
        channels[name] = Channel.FIRST_CUSTOM + i
    return channels


def _lex_rule(t: TokenDecl, order: int, channels: Mapping[str, int], src: Optional[str],
              warnings: List[str]) -> LexRule:
    channel = Channel.HIDDEN if t.ignore else Channel.DEFAULT
    commands: List[LexCommand] = []
    for c in t.commands:
        if c.kind == "channel":
            if c.arg not in channels:
                raise GrammarError(f"Token {t.name!r} uses undeclared channel {c.arg!r}"
                                   + _where(src, t.span))
            channel = channels[c.arg]
        elif c.kind == "push":
            commands.append(LexCommand("push", c.arg))
        else:
            commands.append(LexCommand(c.kind))
        if c.kind == "pop" and t.mode == DEFAULT_MODE:
            msg = f"token {t.name} pops in the {DEFAULT_MODE} mode"
            logger.warning(msg)
            warnings.append(msg)
    return LexRule(
        name=t.name,
        kind=t.kind,
        pattern=t.pattern,
        order=order,
        channel=channel,
        flags=t.flags,
        commands=tuple(commands),
        when=t.when,
        trigger=t.trigger,
    )


def build_lexer_spec(g: Grammar,
                     lexer_predicates: Optional[Mapping[str, object]] = None,
                     src: Optional[str] = None,
                     warnings: Optional[List[str]] = None) -> LexerSpec:
    """모드별 규칙 목록. 키워드가 먼저 와서 같은 길이 매치(식별자 규칙 등)를 이긴다."""
    if warnings is None:
        warnings = []
    channels = _channels(g)
    pegs = {pb.name: parse_peg_block(pb.name, pb.src) for pb in g.decl_peg_blocks}

    modes: Dict[str, Mode] = {}
    for mode in g.decl_modes:
        rules: List[LexRule] = []
        names: Set[str] = set()
        for kw in g.keywords_in(mode):
            if kw.lexeme in names:
                continue
            names.add(kw.lexeme)
            rules.append(LexRule(name=kw.lexeme, kind="literal", pattern=kw.lexeme, order=len(rules)))
        for t in g.tokens_in(mode):
            if t.name == EOF_NAME:
                raise GrammarError(f"Token name {EOF_NAME} is reserved" + _where(src, t.span))
            if t.name in names:
                raise GrammarError(f"Duplicate token {t.name!r} in mode {mode}" + _where(src, t.span))
            names.add(t.name)
            rules.append(_lex_rule(t, len(rules), channels, src, warnings))
        if not rules:
            raise GrammarError(f"Mode {mode} declares no tokens")
        modes[mode] = Mode(mode, tuple(rules))

    predicates = dict(BUILTIN_LEXER_PREDICATES)
    for name, fn in (lexer_predicates or {}).items():
        if not callable(fn):
            raise GrammarError(f"Lexer predicate {name!r} is not callable")
        predicates[name] = fn

    return LexerSpec(
        modes=MappingProxyType(modes),
        pegs=MappingProxyType(pegs),
        channels=MappingProxyType(channels),
        predicates=MappingProxyType(predicates),
    )


# --- ATN 전개 --------------------------------------------------------

class _Lowering:
    """규칙 EBNF → ATN. 반복 구간은 나중에 '빈 문자열 반복' 검사에 쓰도록 기록한다."""

    def __init__(self, g: Grammar, sym: SymbolTable, literals: Mapping[str, str],
                 src: Optional[str] = None):
        self.g = g
        self.sym = sym
        self.literals = literals
        self.src = src
        self.b = ATNBuilder(list(sym.rules))
        self.loops: List[Tuple[int, int, int]] = []   # (rule, entry, exit)
        self.predicates: List[str] = []

    def lower(self) -> ATN:
        b = self.b
        for r in self.g.rules:
            ri = self.sym.rule_index(r.name)
            entry, exit_ = self._expr(ri, r.expr)
            b.epsilon(b.rule_start[ri], entry)
            b.epsilon(exit_, b.rule_stop[ri])
        return b.finish()

    def _expr(self, r: int, expr: Expr) -> Tuple[int, int]:
        if len(expr.alts) == 1:
            return self._seq(r, expr.alts[0])
        b = self.b
        d = b.new_state(r)
        b.mark_decision(d, StateKind.BLOCK)
        end = b.new_state(r)
        for seq in expr.alts:
            entry, exit_ = self._seq(r, seq)
            b.epsilon(d, entry)
            b.epsilon(exit_, end)
        return d, end

    def _seq(self, r: int, seq: Seq) -> Tuple[int, int]:
        b = self.b
        first = cur = b.new_state(r)
        for atom in seq.items:
            entry, exit_ = self._atom(r, atom)
            b.epsilon(cur, entry)
            cur = exit_
        return first, cur

    def _atom(self, r: int, atom: Atom) -> Tuple[int, int]:
        b = self.b
        if atom.suffix == Suffix.NONE:
            return self._base(r, atom)
        if atom.suffix == Suffix.PLUS:
            # X+ : X ─→ L,  L ─1→ X,  L ─2→ E
            entry, exit_ = self._base(r, atom)
            loop = b.new_state(r)
            b.mark_decision(loop, StateKind.PLUS)
            end = b.new_state(r)
            b.epsilon(exit_, loop)
            b.epsilon(loop, entry)
            b.epsilon(loop, end)
            self.loops.append((r, entry, exit_))
            return entry, end

        # X? / X* : 결정 상태 D 가 먼저 번호를 받는다
        d = b.new_state(r)
        b.mark_decision(d, StateKind.OPTIONAL if atom.suffix == Suffix.OPT else StateKind.STAR)
        entry, exit_ = self._base(r, atom)
        end = b.new_state(r)
        b.epsilon(d, entry)
        if atom.suffix == Suffix.OPT:
            b.epsilon(exit_, end)
        elif atom.suffix == Suffix.STAR:
            b.epsilon(exit_, d)
            self.loops.append((r, entry, exit_))
        else:
            raise ValueError(f"unknown suffix: {atom.suffix}")
        b.epsilon(d, end)
        return d, end

    def _base(self, r: int, atom: Atom) -> Tuple[int, int]:
        b = self.b
        node = atom.node
        if isinstance(node, Group):
            return self._expr(r, node.expr)
        s = b.new_state(r)
        t = b.new_state(r)
        if isinstance(node, Name):
            ident = node.ident
            if self.g.rule(ident) is not None:
                b.call(s, self.sym.rule_index(ident), t)
            elif self.sym.has(ident) and self.sym.is_term_id(self.sym.id_of(ident)):
                b.atom(s, t, self.sym.id_of(ident))
            else:
                raise GrammarError(
                    f"Undefined symbol '{ident}' in rule '{self.sym.rule_name(r)}'"
                    + _where(self.src, node.span))
        elif isinstance(node, Lit):
            b.atom(s, t, self.sym.id_of(self.literals[node.text]))
        elif isinstance(node, PredRef):
            b.pred(s, t, node.name, node.negated)
            if node.name not in self.predicates:
                self.predicates.append(node.name)
        else:
            raise TypeError(f"unlowered atom node {type(node).__name__}")
        return s, t


def build_atn(g: Grammar, sym: SymbolTable, literals: Mapping[str, str],
              src: Optional[str] = None) -> Tuple[ATN, Tuple[str, ...]]:
    """ATN 과 문법이 쓰는 술어 이름들."""
    lowering = _Lowering(g, sym, literals, src)
    atn = lowering.lower()
    check_left_recursion(atn)
    check_closures(atn, lowering.loops)
    return atn, tuple(lowering.predicates)


def check_closures(atn: ATN, loops: List[Tuple[int, int, int]]) -> None:
    """`X*`/`X+` 의 X 가 빈 문자열을 매치할 수 있으면 GrammarError."""
    nullable = nullable_rules(atn)
    for rule, entry, exit_ in loops:
        if reaches_without_input(atn, entry, exit_, nullable):
            raise GrammarError(
                f"Rule '{atn.rule_names[rule]}' has a closure whose operand can match the empty string")


def unreachable_rules(atn: ATN, start: int) -> List[str]:
    """시작 규칙에서 도달할 수 없는 규칙 이름(경고용)."""
    reach = reachable_rules(atn, start)
    out = [name for i, name in enumerate(atn.rule_names) if i not in reach]
    for name in out:
        logger.warning("rule %s is unreachable from the start rule %s", name, atn.rule_names[start])
    return out
