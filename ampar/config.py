# ampar/config.py
"""엔진 튜닝 파라미터.

우선순위: 기본값 < 문법의 `%option name value;` < 호출 시 키워드 인자.
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace
from typing import Dict, Mapping

from .errors import GrammarError


@dataclass(frozen=True)
class EngineOptions:
    """
    EngineOptions
    =============
    - max_lookahead    : 모호성 시뮬레이션이 볼 수 있는 최대 토큰 수
    - max_steps        : 시뮬레이션 1회의 클로저 연산 상한(적대적 입력 대비)
    - max_mode_depth   : 렉서 모드 스택 최대 깊이(초과 시 InternalConsistencyError)
    - max_call_depth   : 시뮬레이션 중 규칙 호출 스택 최대 깊이
    - recover          : False면 첫 구문 오류에서 ParseError를 던진다
    - report_ambiguity : 정확한(문법 자체의) 모호성도 진단으로 남길지 여부
    - cache_predictions: 술어 없이 해소된 예측 결과를 세션 캐시에 저장할지 여부
    - strip_bom        : 입력 앞의 BOM 제거 여부
    """
    max_lookahead: int = 32
    max_steps: int = 20000
    max_mode_depth: int = 64
    max_call_depth: int = 4096
    recover: bool = True
    report_ambiguity: bool = False
    cache_predictions: bool = True
    strip_bom: bool = True

    def merged(self, **overrides) -> "EngineOptions":
        """None이 아닌 키워드만 덮어쓴 사본을 돌려준다. 정수 한도는 %option 과 같이 양수여야 한다."""
        kinds = {f.name: f.type for f in fields(self)}
        clean = {}
        for k, v in overrides.items():
            if v is None:
                continue
            if k not in kinds:
                raise TypeError(f"unknown engine option {k!r}")
            if kinds[k] in (int, "int"):
                if isinstance(v, bool) or not isinstance(v, int):
                    raise TypeError(f"engine option {k} expects an integer, got {v!r}")
                if v <= 0:
                    raise ValueError(f"engine option {k} must be positive, got {v}")
            clean[k] = v
        return replace(self, **clean) if clean else self

    @classmethod
    def from_grammar_options(cls, options: Mapping[str, str]) -> "EngineOptions":
        """문법의 `%option` 문자열 값을 타입에 맞게 해석한다."""
        kinds: Dict[str, type] = {f.name: f.type for f in fields(cls)}
        values = {}
        for name, raw in options.items():
            if name not in kinds:
                raise GrammarError(f"Unknown %option {name!r}")
            kind = kinds[name]
            if kind in (bool, "bool"):
                low = raw.lower()
                if low not in ("true", "false", "on", "off", "1", "0"):
                    raise GrammarError(f"%option {name} expects a boolean, got {raw!r}")
                values[name] = low in ("true", "on", "1")
            else:
                try:
                    values[name] = int(raw)
                except ValueError:
                    raise GrammarError(f"%option {name} expects an integer, got {raw!r}")
                if values[name] <= 0:
                    raise GrammarError(f"%option {name} must be positive")
        return cls(**values)
