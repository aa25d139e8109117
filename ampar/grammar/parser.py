# ampar/grammar/parser.py
"""ampar 문법 DSL 파서
- %token NAME /re/flags | "lit" | %peg(Block.Rule)  [trigger='x', when='pred']  [-> cmd, ...] ;
    cmd: push(MODE) | pop | pop? | skip | channel(NAME)
- %ignore [NAME] /re/ [...] [-> ...] ;     (HIDDEN 채널 토큰)
- %mode NAME ;          이후 어휘 선언이 속할 모드 (처음엔 DEFAULT)
- %channel NAME(, NAME)* ;
- %start NAME ;
- %recover off|panic ;
- %sync label(, label)* ;          전역 동기화 라벨
- %sync Rule : label(, label)* ;   규칙별 동기화 라벨
- %option name value ;
- %peg NAME { ... } ;
- "lit" : "lit" ;                  키워드 (현재 모드)
- 규칙: RuleName : expr ;  원자: IDENT | "lit" | ( expr ) | @peg(B.R) | {pred}? | {!pred}?
- 세미콜론(;)은 모든 선언/규칙 종료에 **반드시 필요**
"""

from __future__ import annotations
import ast as _pyast
from dataclasses import dataclass
from typing import List, Optional, Tuple

import regex as re

from ..errors import GrammarError, caret_snippet
from ..lex.modes import DEFAULT_MODE
from .ast import (
    Atom, CommandDecl, Expr, Grammar, Group, KeywordDecl, Lit, Name, PegBlockDecl,
    PegExprRef, PredRef, Rule, Seq, Span, Suffix, TokenDecl,
)

# ---- Lexer 토큰 ----
_TOKEN_SPEC = [
    ("AT",       r"@"),
    ("WS",       r"[ \t\f\r]+"),
    ("NEWLINE",  r"\n"),
    ("COMMENT",  r"//[^\n]*"),
    ("MCOMMENT", r"/\*.*?\*/"),
    ("ARROW",    r"->"),
    ("PERCENT",  r"%"),
    ("COLON",    r":"),
    ("SEMI",     r";"),
    ("COMMA",    r","),
    ("OR",       r"\|"),
    ("LPAREN",   r"\("),
    ("RPAREN",   r"\)"),
    ("LBRACE",   r"\{"),
    ("RBRACE",   r"\}"),
    ("LBRACK",   r"\["),
    ("RBRACK",   r"\]"),
    ("DOT",      r"\."),
    ("EQ",       r"="),
    ("BANG",     r"!"),
    ("QMARK",    r"\?"),
    ("STAR",     r"\*"),
    ("PLUS",     r"\+"),
    ("REGEX",    r"/(?:\\.|[^/\n])+/[imsxA]*"),
    ("STRING",   r'"(?:\\.|[^"\\])*"'),
    ("SSTRING",  r"'(?:\\.|[^'\\])*'"),
    ("NUMBER",   r"[0-9]+"),
    ("IDENT",    r"[A-Za-z_][A-Za-z0-9_]*"),
]
MASTER_RE = re.compile("|".join(f"(?P<{n}>{p})" for n, p in _TOKEN_SPEC), re.S)

# %peg 블록 시작 패턴을 정밀 감지:
#   % [공백]* peg \b [공백]+ IDENT [공백]* {
_PEG_BLOCK_DETECT_RE = re.compile(
    r"%[ \t\f\r\n]*peg\b[ \t\f\r\n]+[A-Za-z_][A-Za-z0-9_]*[ \t\f\r\n]*\{",
    re.S
)

_LABEL_KINDS = ("IDENT", "STRING", "SSTRING")


@dataclass
class Tok:
    kind: str
    lexeme: str
    start: int
    end: int
    line: int
    col: int

    @property
    def span(self) -> Span:
        return Span(self.start, self.end, self.line, self.col)


def _scan(src: str) -> List[Tok]:
    """개행은 줄/칼럼 갱신만 하고 토큰스트림에는 **넣지 않는다**."""
    toks: List[Tok] = []
    line = col = 1
    i = 0
    while i < len(src):
        # --- %peg 블록은 '정말로' 블록 패턴일 때만 특수 처리 ---
        if src[i] == "%" and _looks_like_peg_block(src, i):
            peg_toks, i, line, col = _scan_peg_block(src, i, line, col)
            toks.extend(peg_toks)
            continue

        m = MASTER_RE.match(src, i)
        if not m:
            raise GrammarError(f"Unexpected char {src[i]!r} at {line}:{col}\n{caret_snippet(src, i)}")
        kind = m.lastgroup or ""
        lex = m.group(0)
        start, end = i, m.end()
        nl_count = lex.count("\n")

        # NEWLINE도 WS/주석처럼 **토큰 미배출**
        if kind not in ("WS", "COMMENT", "MCOMMENT", "NEWLINE"):
            toks.append(Tok(kind, lex, start, end, line, col))

        # 위치 갱신
        if nl_count:
            line += nl_count
            col = len(lex) - lex.rfind("\n")
        else:
            col += len(lex)
        i = end

    toks.append(Tok("EOF", "", len(src), len(src), line, col))
    return toks


# ---------- error handling utils ----------
def _snippet_with_caret(src: str, tok: Tok) -> str:
    """토큰 시작 위치에 캐럿"""
    return caret_snippet(src, tok.start)


# --- 토큰 스트림 ---
class _TS:
    def __init__(self, toks: List[Tok], src: str):
        self.toks = toks
        self.i = 0
        self.src = src

    def la(self, k: int = 0) -> Tok:
        return self.toks[min(self.i + k, len(self.toks) - 1)]

    def prev(self) -> Tok:
        return self.toks[self.i - 1] if self.i > 0 else self.toks[0]

    def eat(self, kind: str) -> Tok:
        t = self.la()
        if t.kind != kind:
            snippet = _snippet_with_caret(self.src, t)
            raise GrammarError(
                f"Expected {kind}, got {t.kind} at {t.line}:{t.col}\n{snippet}"
            )
        self.i += 1
        return t

    def match(self, kind: str) -> Optional[Tok]:
        if self.la().kind == kind:
            return self.eat(kind)
        return None

    def error(self, msg: str, tok: Optional[Tok] = None) -> GrammarError:
        tok = tok or self.la()
        return GrammarError(f"{msg} at {tok.line}:{tok.col}\n{_snippet_with_caret(self.src, tok)}")


def _unquote(s: str) -> str:
    # s는 따옴표를 포함한 토큰 원문. Python의 안전한 리터럴 파서로 정확히 복원.
    return _pyast.literal_eval(s)


def _strip_regex(s: str) -> Tuple[str, str]:
    last = s.rfind("/")
    return s[1:last], s[last + 1:]


def _require_semi(ts: _TS, context: str, example: str, anchor: Optional[Tok] = None) -> None:
    """
    세미콜론 강제. 없으면:
      - Found: 다음 토큰/EOF 위치는 부가 정보로,
      - 캐럿은 anchor(직전 토큰)의 '끝 위치'에 찍음 → 올바른 줄에 표시됨.
    """
    if ts.match("SEMI"):
        return
    got = ts.la()
    where = f"{got.line}:{got.col}"
    found = "EOF" if got.kind == "EOF" else got.kind
    if anchor is not None:
        snippet = caret_snippet(ts.src, anchor.end)
    else:
        snippet = _snippet_with_caret(ts.src, got)
    msg = (
        f"Missing ';' after {context} (semicolon is mandatory).\n"
        f"- Found: {found} at {where}\n"
        f"- Example: {example}\n\n"
        f"{snippet}"
    )
    raise GrammarError(msg)


# --- 공용 파싱 유틸 ---
def _label(ts: _TS) -> str:
    """IDENT 또는 문자열 하나를 소비해 일반 문자열로 돌려줍니다. 문자열 라벨은 따옴표를 유지."""
    t = ts.la()
    if t.kind == "IDENT":
        return ts.eat("IDENT").lexeme
    if t.kind in ("STRING", "SSTRING"):
        ts.i += 1
        return '"' + _unquote(t.lexeme) + '"'
    raise ts.error(f"Expected IDENT or STRING, got {t.kind}", t)


def _label_list(ts: _TS, directive: str) -> List[str]:
    """label(, label)*: 쉼표는 선택(공백만으로도 구분 가능)."""
    labels: List[str] = []
    while ts.la().kind in _LABEL_KINDS:
        labels.append(_label(ts))
        ts.match("COMMA")
    if not labels:
        raise ts.error(f"{directive} requires at least one label")
    return labels


def _peg_call(ts: _TS) -> Tuple[str, str, Tok]:
    """`(Block.Rule)` 부분. 반환: (block, rule, ')' 토큰)"""
    ts.eat("LPAREN")
    block = ts.eat("IDENT").lexeme
    ts.eat("DOT")
    rule = ts.eat("IDENT").lexeme
    rp = ts.eat("RPAREN")
    return block, rule, rp


def _parse_peg_rhs_ref(ts: _TS) -> PegExprRef:
    """
    RHS용 @peg(Block.Rule) 단축 표기 파서.
    예: @peg(FStr.FString)
    """
    at = ts.eat("AT")
    kw_tok = ts.eat("IDENT")
    if kw_tok.lexeme != "peg":
        raise ts.error(f"Expected 'peg' after '@', got {kw_tok.lexeme}", kw_tok)
    block, rule, _ = _peg_call(ts)
    return PegExprRef(block=block, rule=rule, span=at.span)


# --- helpers for %peg block raw capture ---------------------------------

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def _looks_like_peg_block(src: str, pos: int) -> bool:
    """src[pos:]가 '%peg <Ident> {' 형태로 시작하면 True.
    '%peg(' 같은 인라인 호출은 False."""
    return _PEG_BLOCK_DETECT_RE.match(src, pos) is not None


def _skip_blank(src: str, i: int, line: int, col: int) -> Tuple[int, int, int]:
    while i < len(src) and src[i] in " \t\f\r\n":
        if src[i] == "\n":
            line, col = line + 1, 1
        else:
            col += 1
        i += 1
    return i, line, col


def _scan_peg_block(src: str, i: int, line: int, col: int):
    """
    src[i:]가 '%peg'로 시작한다고 가정하고,
    토큰 시퀀스 [PERCENT, IDENT('peg'), IDENT(name), LBRACE, PEG_BODY, RBRACE]
    를 만들어 돌려준다.
    반환: (tokens, new_i, new_line, new_col)
    """
    toks: List[Tok] = [Tok("PERCENT", "%", i, i + 1, line, col)]
    i += 1
    col += 1
    i, line, col = _skip_blank(src, i, line, col)

    toks.append(Tok("IDENT", "peg", i, i + 3, line, col))
    i += 3
    col += 3
    i, line, col = _skip_blank(src, i, line, col)

    m = _IDENT_RE.match(src, i)
    toks.append(Tok("IDENT", m.group(0), m.start(), m.end(), line, col))
    col += m.end() - i
    i = m.end()
    i, line, col = _skip_blank(src, i, line, col)

    toks.append(Tok("LBRACE", "{", i, i + 1, line, col))
    i += 1
    col += 1

    # 본문 캡처(문자 단위, 따옴표/클래스/이스케이프 고려, 중괄호 중첩)
    depth = 1
    start_body = i
    quote: Optional[str] = None   # "'", '"', ']' (클래스 안)
    escape = False
    while i < len(src):
        ch = src[i]
        if ch == "\n":
            line, col = line + 1, 1
        else:
            col += 1
        i += 1
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if quote is not None:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "[":
            quote = "]"
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                body_end = i - 1
                toks.append(Tok("PEG_BODY", src[start_body:body_end], start_body, body_end, line, col))
                toks.append(Tok("RBRACE", "}", body_end, i, line, col - 1))
                return toks, i, line, col

    raise GrammarError(f"Unterminated %peg block (missing '}}')\n{caret_snippet(src, start_body - 1)}")


# ---------- 선언 ----------

def _parse_recover_decl(ts: _TS, g: Grammar) -> None:
    """%recover off|panic ;"""
    mode_tok = ts.eat("IDENT")
    mode = mode_tok.lexeme
    if mode not in ("off", "panic"):
        raise ts.error(f"Unknown recover mode '{mode}'", mode_tok)
    _require_semi(ts, "%recover directive", "%recover panic;", anchor=mode_tok)
    g.recover_mode = mode


def _parse_sync_decl(ts: _TS, g: Grammar) -> None:
    """
    %sync LABEL(, LABEL)* ;            전역
    %sync Rule : LABEL(, LABEL)* ;     규칙별
    LABEL은 IDENT, 문자열, 또는 특별히 'EOF'.
    """
    if ts.la().kind == "IDENT" and ts.la(1).kind == "COLON":
        rule = ts.eat("IDENT").lexeme
        ts.eat("COLON")
        labels = _label_list(ts, "%sync")
        _require_semi(ts, "%sync directive", f'%sync {rule} : ";", "}}";', anchor=ts.prev())
        g.rule_sync.setdefault(rule, []).extend(labels)
        return
    labels = _label_list(ts, "%sync")
    _require_semi(ts, "%sync directive", '%sync ")", "]", "}", ";", EOF;', anchor=ts.prev())
    g.sync_labels.extend(labels)


def _parse_peg_block(ts: _TS, g: Grammar) -> None:
    """
    %peg NAME { ... } ;
    본문은 스캐너에서 PEG_BODY 하나로 들어온다.
    """
    name_tok = ts.eat("IDENT")
    block_name = name_tok.lexeme
    ts.eat("LBRACE")
    body_tok = ts.eat("PEG_BODY")  # %peg 블록 전체를 하나의 토큰처럼 소비
    rbrace_tok = ts.eat("RBRACE")
    if any(pb.name == block_name for pb in g.decl_peg_blocks):
        raise ts.error(f"Duplicate %peg block '{block_name}'", name_tok)
    g.decl_peg_blocks.append(PegBlockDecl(block_name, body_tok.lexeme))
    _require_semi(ts, f"%peg {block_name} block", f"%peg {block_name} {{ ... }};", anchor=rbrace_tok)


def _parse_attrs(ts: _TS, decl: TokenDecl) -> None:
    """[trigger='x', when='pred']"""
    while True:
        attr = ts.eat("IDENT")
        ts.eat("EQ")
        vtok = ts.la()
        if vtok.kind in ("STRING", "SSTRING"):
            value = _unquote(ts.eat(vtok.kind).lexeme)
        elif vtok.kind == "IDENT" and attr.lexeme == "when":
            value = ts.eat("IDENT").lexeme
        else:
            raise ts.error(f"{attr.lexeme} expects quoted string", vtok)
        if attr.lexeme == "trigger":
            if not value:
                raise ts.error("trigger must not be empty", vtok)
            decl.trigger = value[0]
        elif attr.lexeme == "when":
            decl.when = value
        else:
            raise ts.error(f"Unknown attribute '{attr.lexeme}' in %token [...]", attr)
        if not ts.match("COMMA"):
            break
    ts.eat("RBRACK")


def _parse_commands(ts: _TS) -> List[CommandDecl]:
    """-> push(M), pop, pop?, skip, channel(C)"""
    cmds: List[CommandDecl] = []
    while True:
        kw = ts.eat("IDENT")
        if kw.lexeme in ("push", "channel"):
            ts.eat("LPAREN")
            arg = ts.eat("IDENT").lexeme
            ts.eat("RPAREN")
            cmds.append(CommandDecl(kw.lexeme, arg))
        elif kw.lexeme == "pop":
            cmds.append(CommandDecl("pop?" if ts.match("QMARK") else "pop"))
        elif kw.lexeme == "skip":
            cmds.append(CommandDecl("skip"))
        else:
            raise ts.error(f"Unknown lexer command '{kw.lexeme}' (push/pop/pop?/skip/channel)", kw)
        if not ts.match("COMMA"):
            return cmds


def _parse_lexical(ts: _TS, g: Grammar, mode: str, ignore: bool) -> None:
    """
    %token NAME <pattern> [attrs] [-> commands] ;
    %ignore [NAME] <pattern> [attrs] [-> commands] ;
    <pattern> = /regex/flags | "literal" | %peg(Block.Rule)
    """
    first = ts.la()
    if ignore:
        name = ts.eat("IDENT").lexeme if first.kind == "IDENT" else ""
    else:
        name = ts.eat("IDENT").lexeme
    nxt = ts.la()
    flags = ""
    if nxt.kind == "REGEX":
        kind = "regex"
        pattern, flags = _strip_regex(ts.eat("REGEX").lexeme)
    elif nxt.kind in ("STRING", "SSTRING"):
        kind = "literal"
        pattern = _unquote(ts.eat(nxt.kind).lexeme)
        if not pattern:
            raise ts.error("Empty literal token", nxt)
    elif nxt.kind == "PERCENT":
        ts.eat("PERCENT")
        kw = ts.eat("IDENT")
        if kw.lexeme != "peg":
            raise ts.error(f"Expected %peg after %token NAME, got %{kw.lexeme}", kw)
        block, rule, _ = _peg_call(ts)
        kind = "peg"
        pattern = f"{block}.{rule}"
    else:
        what = "%ignore" if ignore else f"%token {name}"
        raise ts.error(f"Expected /regex/, \"literal\" or %peg(...) after {what}, got {nxt.kind}", nxt)

    if ignore and not name:
        name = f"_IGNORE{len(g.decl_ignores) + 1}"
    decl = TokenDecl(name=name, kind=kind, pattern=pattern, flags=flags, mode=mode,
                     ignore=ignore, span=first.span)
    if ts.match("LBRACK"):
        _parse_attrs(ts, decl)
    if ts.match("ARROW"):
        decl.commands = _parse_commands(ts)
    example = "%ignore /\\s+/;" if ignore else "%token NAME /regex/ -> push(MODE);"
    _require_semi(ts, "%ignore declaration" if ignore else "%token declaration", example,
                  anchor=ts.prev())
    g.decl_tokens.append(decl)


def _parse_option(ts: _TS, g: Grammar) -> None:
    """%option name value ;"""
    name_tok = ts.eat("IDENT")
    v = ts.la()
    if v.kind in ("IDENT", "NUMBER"):
        value = ts.eat(v.kind).lexeme
    elif v.kind in ("STRING", "SSTRING"):
        value = _unquote(ts.eat(v.kind).lexeme)
    else:
        raise ts.error(f"%option {name_tok.lexeme} expects a value", v)
    _require_semi(ts, "%option directive", "%option max_lookahead 16;", anchor=ts.prev())
    g.options[name_tok.lexeme] = value


def _parse_keyword(ts: _TS, g: Grammar, mode: str) -> None:
    """키워드 매핑: "lit" : "lit" ;"""
    lit1_tok = ts.eat(ts.la().kind)
    lit1 = _unquote(lit1_tok.lexeme)
    ts.eat("COLON")
    lit2_tok = ts.la()
    if lit2_tok.kind not in ("STRING", "SSTRING"):
        raise ts.error("Keyword mapping expects a string on the right-hand side", lit2_tok)
    ts.i += 1
    lit2 = _unquote(lit2_tok.lexeme)
    if lit1 != lit2:
        raise ts.error(f'Keyword mapping must be identical on both sides: "{lit1}" : "{lit2}"', lit1_tok)
    if not lit1:
        raise ts.error("Empty keyword literal", lit1_tok)
    g.decl_keywords.append(KeywordDecl(lit1, mode, lit1_tok.span))
    _require_semi(ts, 'keyword literal mapping (e.g. "+" : "+")', '"+" : "+";', anchor=lit2_tok)


# --- Grammar Parsing ---
def parse_grammar(src: str) -> Grammar:
    ts = _TS(_scan(src), src)
    g = Grammar()
    mode = DEFAULT_MODE

    while ts.la().kind != "EOF":
        t = ts.la()
        if t.kind == "PERCENT":
            ts.eat("PERCENT")
            look = ts.la()
            if look.kind != "IDENT":
                raise ts.error(f"Expected directive name after '%', got {look.kind}", look)
            ident_tok = ts.eat("IDENT")
            ident = ident_tok.lexeme

            if ident == "token":
                _parse_lexical(ts, g, mode, ignore=False)
            elif ident == "ignore":
                _parse_lexical(ts, g, mode, ignore=True)
            elif ident == "mode":
                mode_tok = ts.eat("IDENT")
                mode = mode_tok.lexeme
                if mode not in g.decl_modes:
                    g.decl_modes.append(mode)
                _require_semi(ts, "%mode declaration", "%mode STRING;", anchor=mode_tok)
            elif ident == "channel":
                for name in _label_list(ts, "%channel"):
                    if name.startswith('"'):
                        raise ts.error("%channel expects identifiers", ts.prev())
                    if name not in g.decl_channels:
                        g.decl_channels.append(name)
                _require_semi(ts, "%channel declaration", "%channel COMMENTS;", anchor=ts.prev())
            elif ident == "start":
                start_tok = ts.eat("IDENT")
                g.start = start_tok.lexeme
                _require_semi(ts, "%start declaration", "%start StartSymbol;", anchor=start_tok)
            elif ident == "recover":
                _parse_recover_decl(ts, g)
            elif ident == "sync":
                _parse_sync_decl(ts, g)
            elif ident == "option":
                _parse_option(ts, g)
            elif ident == "peg":
                _parse_peg_block(ts, g)
            else:
                raise ts.error(f"Unknown directive %{ident}", ident_tok)

        elif t.kind in ("STRING", "SSTRING"):
            _parse_keyword(ts, g, mode)

        elif t.kind == "IDENT":
            lhs_tok = ts.eat("IDENT")
            ts.eat("COLON")
            expr = _parse_expr(ts)
            _require_semi(ts, f"rule '{lhs_tok.lexeme}'", f"{lhs_tok.lexeme} : ... ;", anchor=ts.prev())
            if g.rule(lhs_tok.lexeme) is not None:
                raise ts.error(f"Duplicate rule '{lhs_tok.lexeme}'", lhs_tok)
            g.rules.append(Rule(lhs_tok.lexeme, expr, lhs_tok.span))

        else:
            raise ts.error(f"Unexpected token {t.kind}", t)

    if not g.rules:
        raise GrammarError("Grammar defines no rules")
    if not g.start:
        g.start = g.rules[0].name

    # %sync 중복 제거
    g.sync_labels = list(dict.fromkeys(g.sync_labels))
    for rule, labels in g.rule_sync.items():
        g.rule_sync[rule] = list(dict.fromkeys(labels))

    return g


def _parse_expr(ts: _TS) -> Expr:
    alts = [_parse_seq(ts)]
    while ts.match("OR"):
        alts.append(_parse_seq(ts))
    return Expr(alts)


def _parse_seq(ts: _TS) -> Seq:
    """시퀀스: (IDENT | STRING | "(" expr ")" | @peg(Block.Rule) | {pred}?)*"""
    items: List[Atom] = []
    while ts.la().kind in ("IDENT", "STRING", "SSTRING", "LPAREN", "AT", "LBRACE"):
        items.append(_parse_atom(ts))
    return Seq(items)


def _parse_atom(ts: _TS) -> Atom:
    t = ts.la()
    if t.kind == "IDENT":
        node = Name(ts.eat("IDENT").lexeme, t.span)
    elif t.kind in ("STRING", "SSTRING"):
        node = Lit(_unquote(ts.eat(t.kind).lexeme), t.span)
    elif t.kind == "LPAREN":
        ts.eat("LPAREN")
        node = Group(_parse_expr(ts), t.span)
        ts.eat("RPAREN")
    elif t.kind == "AT":
        node = _parse_peg_rhs_ref(ts)
    elif t.kind == "LBRACE":
        # 의미 술어: {name}? / {!name}?  (수식자 불가)
        ts.eat("LBRACE")
        negated = ts.match("BANG") is not None
        name = ts.eat("IDENT").lexeme
        ts.eat("RBRACE")
        ts.eat("QMARK")
        return Atom(PredRef(name, negated, t.span), Suffix.NONE, t.span)
    else:
        raise ts.error(f"Unexpected token {t.kind}", t)

    # EBNF 수식자
    suf = Suffix.NONE
    if ts.match("QMARK"):
        suf = Suffix.OPT
    elif ts.match("STAR"):
        suf = Suffix.STAR
    elif ts.match("PLUS"):
        suf = Suffix.PLUS
    return Atom(node, suf, t.span)
