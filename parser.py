"""Module: turn program source text into machine memory.

Programs are a single line of comma-separated signed integers, e.g.
``1,9,10,3,2,3,11,0,99,30,40,50``.

This module contains:
- parse_program(text) -> list of ints
- load_program(path) -> list of ints read from a file
"""

from __future__ import annotations

# ruff: noqa: A005
import logging
import re
from pathlib import Path

_INT_RE = re.compile(r"^[-+]?\d+$")


class ProgramParseError(ValueError):
    """Raised when program text contains a token that is not an integer."""

    def __init__(self, token: str, index: int) -> None:
        super().__init__(f"invalid integer literal {token!r} at index {index}")
        self.token = token
        self.index = index


def parse_program(text: str) -> list[int]:
    """Parse comma-separated integers.

    Whitespace around the whole program and around each token is ignored,
    anything else that is not a decimal integer raises ProgramParseError.
    """
    memory: list[int] = []
    for index, raw in enumerate(text.strip().split(",")):
        tok = raw.strip()
        if not _INT_RE.fullmatch(tok):
            raise ProgramParseError(tok, index)
        memory.append(int(tok))
    logging.debug("Parsed program of %d cells", len(memory))
    return memory


def load_program(path: str | Path) -> list[int]:
    """Read and parse a program file."""
    p = Path(path)
    if not p.exists():
        err = f"Program file not found: {path}"
        raise FileNotFoundError(err)
    return parse_program(p.read_text(encoding="utf-8"))
