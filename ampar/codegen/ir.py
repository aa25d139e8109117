# ampar/codegen/ir.py
"""
ampar 테이블 아티팩트 IR
=======

GrammarPackage(렉서 모드, ATN, 결정 테이블, 동기화 집합)를 **JSON 직렬화 가능한 dict** 로
바꾸고, 다시 동일한 GrammarPackage 로 되돌린다. 문법 DSL 없이 미리 빌드된 테이블만으로
파서를 띄울 때 쓴다.

설계 포인트
-----------
- 모든 ID(단말/규칙/상태/결정)는 패키지의 것을 그대로 쓴다. 로드 시 SymbolTable 을
  다시 freeze 해서 같은 ID 가 나오는지 확인한다.
- ATN 전이는 [kind, target, label, follow, pred, negated] 리스트.
- 결정 테이블 항목은 [decision, term_id, alt] 리스트 (decision, term_id 오름차순).
- 술어 함수는 직렬화하지 않는다. 이름만 담고, 로드할 때 같은 이름의 함수를 넘겨야 한다.
- PEG 블록은 원문을 담고 로드 시 다시 파싱한다.

주의
----
- terms[0]은 항상 'EOF' 여야 한다(SymbolTable 규약).
- format/version 이 다르면 GrammarError.
"""

from __future__ import annotations
import json
import logging
from dataclasses import asdict
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..config import EngineOptions
from ..errors import GrammarError
from ..grammar.package import GrammarPackage
from ..lex.modes import BUILTIN_LEXER_PREDICATES, LexCommand, LexerSpec, LexRule, Mode
from ..lex.peg import parse_peg_block
from ..lex.tokens import EOF_NAME
from ..ll.atn import ATN, ATNState, Transition
from ..ll.predicates import PredicateRegistry
from ..ll.symbols import SymbolTable
from ..ll.table import DecisionInfo, Tables
from ..tree.nodes import make_rule_kinds

logger = logging.getLogger(__name__)

IR_FORMAT = "ampar-ir"
IR_VERSION = 1


# ---- package → IR ----

def _rule_ir(rule: LexRule) -> Dict[str, Any]:
    return {
        "name": rule.name,
        "kind": rule.kind,
        "pattern": rule.pattern,
        "flags": rule.flags,
        "channel": rule.channel,
        "commands": [[c.kind, c.mode] for c in rule.commands],
        "when": rule.when,
        "trigger": rule.trigger,
    }


def _lexer_ir(spec: LexerSpec) -> Dict[str, Any]:
    used_preds = sorted({r.when for m in spec.modes.values() for r in m.rules if r.when is not None})
    return {
        "channels": dict(spec.channels),
        "modes": [{"name": m.name, "rules": [_rule_ir(r) for r in m.rules]} for m in spec.modes.values()],
        "pegs": [{"name": name, "source": g.source} for name, g in spec.pegs.items()],
        "predicates": used_preds,
    }


def _atn_ir(atn: ATN) -> Dict[str, Any]:
    return {
        "rule_start": list(atn.rule_start),
        "rule_stop": list(atn.rule_stop),
        "decisions": list(atn.decisions),
        "states": [
            [s.rule, s.kind, s.decision,
             [[t.kind, t.target, t.label, t.follow, t.pred, t.negated] for t in s.transitions]]
            for s in atn.states
        ],
    }


def _tables_ir(tables: Tables) -> Dict[str, Any]:
    return {
        "entries": [[d, t, alt] for (d, t), alt in sorted(tables.decision_table.items())],
        "decisions": [
            [info.state, info.rule, info.kind, [sorted(la) for la in info.alt_looks], info.predicated]
            for info in tables.decisions
        ],
        "follow": [[r, sorted(ids)] for r, ids in sorted(tables.follow.items())],
        "conflicts": [[d, t, list(alts)] for d, t, alts in tables.conflicts],
    }


def build_ir(package: GrammarPackage) -> Dict[str, Any]:
    """
    build_ir(package) -> dict
    -------------------------
    GrammarPackage 를 JSON 으로 내보낼 수 있는 dict 로 변환한다.
    """
    sym = package.symbols
    return {
        "format": IR_FORMAT,
        "version": IR_VERSION,
        "name": package.name,
        "options": asdict(package.options),
        "lexer": _lexer_ir(package.lexer_spec),
        "symbols": {"terms": list(sym.terms), "rules": list(sym.rules), "start": sym.start},
        "atn": _atn_ir(package.atn),
        "tables": _tables_ir(package.tables),
        "sync": {
            "global": sorted(package.global_sync),
            "rules": [[r, sorted(ids)] for r, ids in sorted(package.rule_sync.items())],
        },
        "literals": sorted(package.literals),
        "predicates": list(package.predicate_names),
        "warnings": list(package.warnings),
    }


def dump_ir(package: GrammarPackage, indent: Optional[int] = None) -> str:
    return json.dumps(build_ir(package), ensure_ascii=False, indent=indent)


# ---- IR → package ----

def _load_lexer(data: Mapping[str, Any],
                lexer_predicates: Optional[Mapping[str, Callable[..., Any]]]) -> LexerSpec:
    modes: Dict[str, Mode] = {}
    for m in data["modes"]:
        rules = tuple(
            LexRule(
                name=r["name"],
                kind=r["kind"],
                pattern=r["pattern"],
                order=i,
                channel=r["channel"],
                flags=r["flags"],
                commands=tuple(LexCommand(kind, mode) for kind, mode in r["commands"]),
                when=r["when"],
                trigger=r["trigger"],
            )
            for i, r in enumerate(m["rules"])
        )
        modes[m["name"]] = Mode(m["name"], rules)

    predicates = dict(BUILTIN_LEXER_PREDICATES)
    predicates.update(lexer_predicates or {})
    missing = sorted(set(data["predicates"]) - set(predicates))
    if missing:
        raise GrammarError(f"IR needs lexer predicate(s) that were not supplied: {', '.join(missing)}")

    return LexerSpec(
        modes=MappingProxyType(modes),
        pegs=MappingProxyType({p["name"]: parse_peg_block(p["name"], p["source"]) for p in data["pegs"]}),
        channels=MappingProxyType(dict(data["channels"])),
        predicates=MappingProxyType(predicates),
    )


def _load_atn(data: Mapping[str, Any], rule_names: List[str]) -> ATN:
    states = tuple(
        ATNState(
            sid, rule, kind,
            tuple(Transition(k, target, label, follow, pred, negated)
                  for k, target, label, follow, pred, negated in trans),
            decision,
        )
        for sid, (rule, kind, decision, trans) in enumerate(data["states"])
    )
    return ATN(
        states=states,
        rule_start=tuple(data["rule_start"]),
        rule_stop=tuple(data["rule_stop"]),
        decisions=tuple(data["decisions"]),
        rule_names=tuple(rule_names),
    )


def _load_tables(data: Mapping[str, Any]) -> Tables:
    return Tables(
        decision_table=MappingProxyType({(d, t): alt for d, t, alt in data["entries"]}),
        decisions=tuple(
            DecisionInfo(i, state, rule, kind, tuple(frozenset(la) for la in looks), predicated)
            for i, (state, rule, kind, looks, predicated) in enumerate(data["decisions"])
        ),
        follow=MappingProxyType({r: frozenset(ids) for r, ids in data["follow"]}),
        conflicts=tuple((d, t, tuple(alts)) for d, t, alts in data["conflicts"]),
    )


def load_ir(data: Union[str, Mapping[str, Any]],
            *,
            predicates: Optional[Mapping[str, Callable[..., Any]]] = None,
            lexer_predicates: Optional[Mapping[str, Callable[..., Any]]] = None) -> GrammarPackage:
    """
    load_ir(data) -> GrammarPackage
    -------------------------------
    build_ir() 결과(dict 또는 JSON 문자열)에서 패키지를 복원한다.
    술어 함수는 이름으로 다시 연결하므로 빌드 때와 같은 이름으로 넘겨야 한다.
    """
    if isinstance(data, str):
        data = json.loads(data)
    if data.get("format") != IR_FORMAT or data.get("version") != IR_VERSION:
        raise GrammarError(
            f"Not an {IR_FORMAT} v{IR_VERSION} artifact "
            f"(format={data.get('format')!r}, version={data.get('version')!r})")

    symbols = data["symbols"]
    sym = SymbolTable()
    sym.freeze(symbols["terms"], symbols["rules"], symbols["start"])
    if list(sym.terms) != list(symbols["terms"]) or sym.terms[0] != EOF_NAME:
        raise GrammarError("IR symbol table is inconsistent: terminal ids do not match")

    registry = PredicateRegistry(predicates)
    registry.require(data["predicates"])

    package = GrammarPackage(
        name=data["name"],
        source="",
        lexer_spec=_load_lexer(data["lexer"], lexer_predicates),
        symbols=sym,
        atn=_load_atn(data["atn"], list(sym.rules)),
        tables=_load_tables(data["tables"]),
        predicates=registry,
        kinds=make_rule_kinds(sym.rules),
        literals=frozenset(data["literals"]),
        global_sync=frozenset(data["sync"]["global"]),
        rule_sync=MappingProxyType({r: frozenset(ids) for r, ids in data["sync"]["rules"]}),
        options=EngineOptions().merged(**data["options"]),
        token_ids=MappingProxyType(sym.token_ids),
        predicate_names=tuple(data["predicates"]),
        warnings=tuple(data.get("warnings", ())),
    )
    logger.debug("loaded IR %s", package.summary())
    return package


def load_ir_file(path: Union[str, Path], **kw) -> GrammarPackage:
    return load_ir(Path(path).read_text(encoding="utf-8"), **kw)


def write_ir_file(package: GrammarPackage, path: Union[str, Path], indent: Optional[int] = 2) -> None:
    Path(path).write_text(dump_ir(package, indent=indent), encoding="utf-8")
