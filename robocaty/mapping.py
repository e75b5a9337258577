"""
Mapping file parser.

One directive per line::

    r# MAIN.bTrig : DI_Start [1]     ADS symbol -> robot signal, BOOL
    w# MAIN.nCount : GO_Count [16]   robot signal -> ADS symbol, UINT16
    w# MAIN.fSpeed : AO_Speed [64]   any other width is a REAL

Blank lines and lines starting with ``#``, ``;`` or ``//`` are ignored.
Lines that do not match the grammar are skipped with a warning.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from typing import overload

from robocaty.errors import ConfigError
from robocaty.protocol.types import Direction, MappingDirective

logger = logging.getLogger(__name__)

_LINE_RE = re.compile(
    r"^(?P<dir>[rw])#\s*(?P<src>[^:]+?)\s*:\s*(?P<sig>[^\[]+?)\s*\[\s*(?P<bits>\d+)\s*\]$"
)
_COMMENT_PREFIXES = ("#", ";", "//")


def parse_line(line: str, line_no: int = 0) -> MappingDirective | None:
    """Parse a single line. Returns None for anything that is not a directive."""
    m = _LINE_RE.match(line.strip())
    if m is None:
        return None
    source_path = m.group("src").strip()
    target_signal = m.group("sig").strip()
    if not source_path or not target_signal:
        return None
    return MappingDirective(
        direction=Direction(m.group("dir")),
        source_path=source_path,
        target_signal=target_signal,
        width_bits=int(m.group("bits")),
        line_no=line_no,
    )


def parse_lines(lines: Iterable[str]) -> tuple[MappingDirective, ...]:
    """Parse mapping lines in order, skipping (and warning about) bad lines."""
    directives: list[MappingDirective] = []
    for line_no, raw in enumerate(lines, start=1):
        text = raw.strip()
        if not text or text.startswith(_COMMENT_PREFIXES):
            continue
        directive = parse_line(text, line_no)
        if directive is None:
            logger.warning("Skipping malformed mapping line %d: %r", line_no, text)
            continue
        directives.append(directive)
    return tuple(directives)


class MappingTable(Sequence[MappingDirective]):
    """Immutable, ordered list of transfer directives."""

    __slots__ = ("_directives", "source")

    def __init__(
        self, directives: Iterable[MappingDirective], source: Path | None = None
    ) -> None:
        self._directives: tuple[MappingDirective, ...] = tuple(directives)
        self.source = source

    @classmethod
    def load(cls, path: str | Path) -> "MappingTable":
        """
        Read and parse a mapping file.

        Raises:
            ConfigError: if the file is missing or yields no directives
        """
        p = Path(path)
        if not p.is_file():
            raise ConfigError(f"Configuration file not found: '{p.resolve()}'")
        text = p.read_text(encoding="utf-8-sig", errors="replace")
        table = cls(parse_lines(text.splitlines()), source=p)
        if not table:
            raise ConfigError(f"No valid mapping entries found in '{p.resolve()}'")
        logger.info("Loaded %d mapping entries from %s", len(table), p)
        return table

    @property
    def directives(self) -> tuple[MappingDirective, ...]:
        return self._directives

    @property
    def source_to_target(self) -> int:
        return sum(1 for d in self._directives if d.direction is Direction.SOURCE_TO_TARGET)

    @property
    def target_to_source(self) -> int:
        return len(self._directives) - self.source_to_target

    @overload
    def __getitem__(self, index: int) -> MappingDirective: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[MappingDirective, ...]: ...

    def __getitem__(self, index):
        return self._directives[index]

    def __len__(self) -> int:
        return len(self._directives)

    def __iter__(self) -> Iterator[MappingDirective]:
        return iter(self._directives)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MappingTable):
            return self._directives == other._directives
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._directives)

    def __repr__(self) -> str:
        return f"MappingTable({len(self._directives)} directives, source={self.source})"
