# ampar/grammar/loader.py
""".g 문법 파일 로더"""

from __future__ import annotations
from pathlib    import Path
from typing     import Union

from ..lex.chars import BOM


def normalize_newlines(text: str) -> str:
    """CRLF/CR → LF, 선두 BOM 제거."""
    if text.startswith(BOM):
        text = text[1:]
    return text.replace("\r\n", "\n").replace("\r", "\n")


def load_grammar_text(path: Union[str, Path]) -> str:
    """
    Load Grammar Text
    """
    return normalize_newlines(Path(path).read_text(encoding="utf-8"))
