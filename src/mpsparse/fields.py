"""Tokenize data lines in fixed-column or free MPS format.

Fixed MPS puts fields at historical IBM card columns::

    Field:   1      2        3        4        5        6
    Columns: 2-3    5-12     15-22    25-36    40-47    50-61

Free MPS separates fields by runs of whitespace.  :class:`FormatDetector`
tries the fixed layout first and permanently switches a parse to free form as
soon as one line does not fit it.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from mpsparse.numeric import is_number

logger = logging.getLogger(__name__)

# 0-based, half-open slices of the six fixed fields
FIXED_SPANS = ((1, 3), (4, 12), (14, 22), (24, 36), (39, 47), (49, 61))

COMMENT_DELIMITERS = ("$", "*")

# One character per fixed field:
#   c  code (row type, bound kind, SOS type), required
#   n  name, required        N  name, optional
#   #  number, required      =  number, optional
#   .  must be blank
_SHAPES = {
    "ROWS": "cn....",
    "COLUMNS": ".nn#N=",
    "MARKER": ".nn.n.",
    "RHS": ".Nn#N=",
    "RANGES": ".Nn#N=",
    "BOUNDS": "cNn=..",
    "SOS": "cNN=..",
    "SOS_MEMBER": ".n#...",
    "SOS_MEMBER_IN_SET": ".nn#..",
    "USERCUTS": "cn....",
    "QUADOBJ": ".nn#..",
    "QCMATRIX": ".nn#..",
    "INDICATORS": "cnn#..",
}

# Sections whose second half-pair (fields 5 and 6) must come together.
_PAIRED = frozenset({"COLUMNS", "RHS", "RANGES"})


class Format(Enum):
    """Layout of data fields."""

    FIXED = "fixed"
    FREE = "free"


@dataclass(frozen=True, slots=True)
class Token:
    """A field of a data line with its 1-based starting column."""

    text: str
    column: int


def free_tokens(text: str, delimiters: Iterable[str] = COMMENT_DELIMITERS) -> list[Token]:
    """Split on whitespace, dropping an in-line comment.

    >>> [t.text for t in free_tokens("  XONE COST 1 $ cheap")]
    ['XONE', 'COST', '1']
    >>> [t.column for t in free_tokens("  XONE COST 1")]
    [3, 8, 13]
    """
    delimiters = tuple(delimiters)
    tokens = []
    start = None
    for index, char in enumerate(f"{text} "):
        if char.isspace():
            if start is not None:
                token = text[start:index]
                if token.startswith(delimiters):
                    break
                tokens.append(Token(token, start + 1))
                start = None
        elif start is None:
            start = index
    return tokens


def _shape(section: str, slots: list[str]) -> str:
    if section == "COLUMNS" and slots[2] == "'MARKER'":
        return _SHAPES["MARKER"]
    if section == "SOS" and not slots[0]:
        return _SHAPES["SOS_MEMBER_IN_SET" if slots[3] else "SOS_MEMBER"]
    return _SHAPES[section]


def _fits(kind: str, value: str) -> bool:
    if not value:
        return kind in ".N="
    if kind == ".":
        return False
    if any(char.isspace() for char in value):
        return False
    if kind in "#=":
        return is_number(value)
    return True


def fixed_tokens(
    text: str, section: str, delimiters: Iterable[str] = COMMENT_DELIMITERS
) -> list[Token] | None:
    """Extract fields at fixed offsets, or :data:`None` if the line does not fit.

    >>> [t.text for t in fixed_tokens(" UP BND1      XONE                 4", "BOUNDS")]
    ['UP', 'BND1', 'XONE', '4']
    >>> fixed_tokens("    XONE COST 1", "COLUMNS") is None
    True
    """
    delimiters = tuple(delimiters)
    if "\t" in text:
        return None
    slots: list[str] = []
    columns: list[int] = []
    cursor = 0
    commented = False
    for start, stop in FIXED_SPANS:
        gap = text[cursor:start]
        raw = text[start:stop]
        if commented:
            slots.append("")
        elif gap.strip():
            return None
        elif raw.strip().startswith(delimiters) and start > 1:
            commented = True
            slots.append("")
        else:
            slots.append(raw.strip())
        columns.append(start + len(raw) - len(raw.lstrip()) + 1)
        cursor = stop
    rest = text[cursor:].strip()
    if rest and not commented and not rest.startswith(delimiters):
        return None
    shape = _shape(section, slots)
    if not all(map(_fits, shape, slots)):
        return None
    if section in _PAIRED and shape != _SHAPES["MARKER"] and bool(slots[4]) != bool(slots[5]):
        return None
    return [Token(value, column) for value, column in zip(slots, columns, strict=True) if value]


@dataclass(slots=True)
class FormatDetector:
    """Per-parse format state.

    Starts in fixed mode unless told otherwise and falls back to free form the
    first time a line does not fit the fixed layout.  The fallback never
    reverts.
    """

    format: Format = Format.FIXED
    delimiters: tuple[str, ...] = COMMENT_DELIMITERS
    switched_at: int | None = field(default=None)

    def tokens(self, text: str, section: str, number: int = 0) -> list[Token]:
        """Tokenize one data line of `section`."""
        if self.format is Format.FIXED and section in _SHAPES:
            tokens = fixed_tokens(text, section, self.delimiters)
            if tokens is not None:
                return tokens
            logger.debug("line %d does not fit fixed columns, switching to free format", number)
            self.format = Format.FREE
            self.switched_at = number
        return free_tokens(text, self.delimiters)


def invalid_character(text: str) -> int | None:
    """Return the 1-based column of the first control character, if any.

    >>> invalid_character(" N  CO\\x00ST")
    7
    >>> invalid_character(" N  COST") is None
    True
    """
    for index, char in enumerate(text):
        if char != "\t" and not char.isprintable():
            return index + 1
    return None
