# ampar/session.py
"""파싱 진입점.

- `parse(package, text)`    : 한 번 파싱하고 ParseResult 를 돌려준다
- `tokenize(package, text)` : 모든 채널의 토큰(EOF 포함)
- `ParseSession`            : 같은 패키지로 여러 입력을 파싱할 때 예측 캐시를 재사용한다

세션은 스레드 간에 공유하지 않는다. GrammarPackage 는 공유해도 된다.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .config import EngineOptions
from .errors import Diagnostic, DiagnosticKind, LexicalError, ParseError
from .grammar.package import GrammarPackage
from .lex.stream import TokenStream
from .lex.tokens import Channel, Token
from .ll.runtime import Parser
from .ll.simulator import PredictionCache
from .tree.nodes import ParseTree

logger = logging.getLogger(__name__)


def _ordered(lexical: List[Diagnostic], syntax: List[Diagnostic]) -> Tuple[Diagnostic, ...]:
    """소스 위치 순. 같은 위치면 렉서 진단이 먼저, 나머지는 발생 순서."""
    tagged = [(d.offset, 0, i, d) for i, d in enumerate(lexical)]
    tagged += [(d.offset, 1, i, d) for i, d in enumerate(syntax)]
    tagged.sort(key=lambda t: t[:3])
    return tuple(d for *_, d in tagged)


@dataclass(frozen=True)
class ParseResult:
    """
    ParseResult
    ===========
    - tree       : 구조적으로 완전한 트리(오류가 있어도 루트까지 닫혀 있음)
    - tokens     : HIDDEN/ERROR 채널을 포함한 전체 토큰(EOF 포함)
    - diagnostics: 위치 순 진단
    """
    tree: ParseTree
    tokens: Tuple[Token, ...]
    diagnostics: Tuple[Diagnostic, ...]

    @property
    def ok(self) -> bool:
        return not any(d.kind != DiagnosticKind.AMBIGUITY for d in self.diagnostics)

    @property
    def errors(self) -> Tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.kind != DiagnosticKind.AMBIGUITY)

    def tokens_on(self, channel: int) -> List[Token]:
        return [t for t in self.tokens if t.channel == channel and not t.is_eof]

    @property
    def hidden_tokens(self) -> List[Token]:
        return self.tokens_on(Channel.HIDDEN)

    def format_diagnostics(self) -> str:
        return "\n".join(d.format(self.tree.source) for d in self.diagnostics)

    def raise_for_errors(self) -> "ParseResult":
        """첫 오류 진단을 예외로 올린다. 오류가 없으면 self."""
        errors = self.errors
        if errors:
            first = errors[0]
            raise (LexicalError if first.kind == DiagnosticKind.LEXICAL else ParseError)(first)
        return self


class ParseSession:
    """
    ParseSession
    ============
    패키지 1개 + 옵션 + 예측 캐시. 옵션 우선순위: 호출 인자 > 문법 %option > 기본값.

        session = ParseSession(pkg, max_lookahead=8)
        result = session.parse(text)
    """

    def __init__(self,
                 package: GrammarPackage,
                 *,
                 env: Optional[Mapping[str, Any]] = None,
                 listeners: Iterable = (),
                 **overrides):
        self.package = package
        self.env = env
        self.listeners = list(listeners)
        self.options: EngineOptions = package.options.merged(**overrides)
        self.cache = PredictionCache()
        self.parses = 0

    def tokenize(self, text: str, *, name: str = "<input>") -> List[Token]:
        return self.package.new_lexer(text, options=self.options, name=name).tokenize()

    def parse(self,
              text: str,
              rule: Optional[str] = None,
              *,
              listeners: Iterable = (),
              name: str = "<input>") -> ParseResult:
        """
        text 를 파싱한다. rule 을 주면 시작 규칙 대신 그 규칙에서 시작한다.
        recover=False 이면 첫 구문 오류에서 ParseError.
        """
        lexical: List[Diagnostic] = []
        syntax: List[Diagnostic] = []
        lexer = self.package.new_lexer(text, options=self.options, diagnostics=lexical, name=name)
        stream = TokenStream(lexer)
        parser = Parser(
            self.package, stream,
            options=self.options,
            env=self.env,
            diagnostics=syntax,
            cache=self.cache if self.options.cache_predictions else None,
            lexer=lexer,
            source=lexer.text,
        )
        for listener in self.listeners:
            parser.add_listener(listener)
        for listener in listeners:
            parser.add_listener(listener)

        tree = parser.parse(rule)
        self.parses += 1
        result = ParseResult(tree, tuple(stream.tokens), _ordered(lexical, syntax))
        logger.debug("%s: %d tokens, %d diagnostics, %d simulations, cache %d hits / %d stores",
                     name, len(result.tokens), len(result.diagnostics),
                     parser.simulator.simulations, self.cache.hits, self.cache.stores)
        return result


def parse(package: GrammarPackage,
          text: str,
          rule: Optional[str] = None,
          *,
          listeners: Iterable = (),
          env: Optional[Mapping[str, Any]] = None,
          name: str = "<input>",
          **overrides) -> ParseResult:
    return ParseSession(package, env=env, **overrides).parse(text, rule, listeners=listeners, name=name)


def tokenize(package: GrammarPackage, text: str, *, name: str = "<input>", **overrides) -> List[Token]:
    """모든 채널의 토큰 목록(EOF 포함). 렉서 진단은 버린다. 필요하면 package.new_lexer 를 직접 쓴다."""
    return ParseSession(package, **overrides).tokenize(text, name=name)
