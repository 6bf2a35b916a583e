"""Console reporting for the searchtype commands.

Summaries go to stdout and failures to stderr. Styling is applied per
stream, only when that stream is a terminal and ``NO_COLOR`` is unset.
"""

from __future__ import annotations

import os
import sys
from typing import TextIO

_BOLD = "1"
_DIM = "2"
_GREEN = "32"
_RED = "31"


def _paint(stream: TextIO, code: str, text: str) -> str:
    if os.environ.get("NO_COLOR") or not getattr(stream, "isatty", lambda: False)():
        return text
    return f"\033[{code}m{text}\033[0m"


def header(title: str) -> None:
    print(f"\n{_paint(sys.stdout, _BOLD, title)}")


def kv(key: str, value: object, indent: int = 2) -> None:
    label = _paint(sys.stdout, _DIM, f"{key}:")
    print(f"{' ' * indent}{label}  {value}")


def success(msg: str) -> None:
    print(f"  {_paint(sys.stdout, _GREEN, 'done:')} {msg}")


def error(msg: str) -> None:
    print(f"  {_paint(sys.stderr, _RED, 'error:')} {msg}", file=sys.stderr)


def failure(exc: BaseException) -> None:
    """Report *exc* and the sibling failures noted on it."""
    error(str(exc) or type(exc).__name__)
    for note in getattr(exc, "__notes__", []):
        print(f"    {_paint(sys.stderr, _DIM, note)}", file=sys.stderr)
