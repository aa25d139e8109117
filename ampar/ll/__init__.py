# ampar/ll/__init__.py
"""LL(*) 계열 적응형 예측 파서.

- ATN 구성/분석 (atn, first_follow)
- 결정 테이블 (table)
- 의미 술어 (predicates)
- 예측 시뮬레이터와 세션 캐시 (simulator)
- 복구 전략 (recovery)과 ATN 인터프리터 (runtime)
"""

from .atn import ATN, ATNBuilder, ATNState, StateKind, Transition
from .first_follow import compute_first, compute_follow, look
from .predicates import BUILTIN_PREDICATES, PredicateContext, PredicateRegistry
from .recovery import ErrorStrategy
from .runtime import Parser
from .simulator import Prediction, PredictionCache, Simulator
from .symbols import SymbolTable
from .table import DecisionInfo, Tables, build_tables
