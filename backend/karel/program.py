"""Program loading: source preprocessing and the method index.

A program is nothing more than the flattened list of instruction lines of all
supplied sources (libraries first, main program last) plus a map from
procedure name to the index of the first line inside its `def` block. The
line index is the only addressing scheme the interpreter uses.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, Iterable, List

logger = logging.getLogger("karel.program")
logger.addHandler(logging.NullHandler())

COMMENT = "#"


def preprocess(sources: Iterable[str]) -> List[str]:
    """Strip comments, trim whitespace and drop empty lines across all sources.

    Order is preserved; nothing is reordered or deduplicated.
    """
    lines: List[str] = []
    for source in sources:
        for raw in source.splitlines():
            line = raw.split(COMMENT, 1)[0].strip()
            if line:
                lines.append(line)
    return lines


def index_methods(lines: List[str]):
    """Map every `def <name>` to the index of the line after it.

    Returns (methods, duplicates). When a name is defined twice the last
    definition wins and the name is listed in `duplicates`.
    """
    methods: Dict[str, int] = {}
    duplicates: List[str] = []
    for i, line in enumerate(lines):
        words = line.split()
        if len(words) < 2 or words[0] != "def":
            continue
        name = words[1]
        if name in methods:
            logger.warning("method '%s' redefined at line %d; last definition wins", name, i)
            duplicates.append(name)
        methods[name] = i + 1
        logger.debug("registered method %s at %d", name, i + 1)
    return methods, duplicates


class Program:
    """Immutable flattened program with its method index."""

    def __init__(self, lines: List[str]):
        self.lines = tuple(lines)
        methods, duplicates = index_methods(list(self.lines))
        self.methods = methods
        self.duplicates = duplicates

    def __len__(self) -> int:
        return len(self.lines)

    def __getitem__(self, index: int) -> str:
        return self.lines[index]


def load_program(sources: Iterable[str]) -> Program:
    return Program(preprocess(sources))


def read_source(path: str) -> str:
    """Read a source file, or stdin when `path` is `-`."""
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")
