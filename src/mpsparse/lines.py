"""Split an MPS buffer into classified lines."""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

SECTIONS = frozenset(
    {
        "NAME",
        "OBJSENSE",
        "OBJSENS",
        "OBJNAME",
        "REFROW",
        "ROWS",
        "USERCUTS",
        "COLUMNS",
        "RHS",
        "RANGES",
        "BOUNDS",
        "SOS",
        "QSECTION",
        "QUADOBJ",
        "QMATRIX",
        "QCMATRIX",
        "CSECTION",
        "INDICATORS",
        "LAZYCONS",
        "BRANCH",
        "ENDATA",
    }
)

# Vendor extensions: recognised as headers so their data lines are skipped.
EXTENSIONS = frozenset({"GENCONS", "PWLOBJ", "PWLNAM", "PWLCON"})


class LineKind(Enum):
    """What the parser should do with a line."""

    HEADER = "header"
    DATA = "data"
    IGNORABLE = "ignorable"


@dataclass(frozen=True, slots=True)
class Line:
    """One physical line with its provenance.

    `number` is 1-based, `offset` is the character offset of the first
    character of the line in the buffer.  `keyword` and `argument` are only
    set on headers, e.g. ``NAME          AFIRO`` has keyword ``NAME`` and
    argument ``AFIRO``.
    """

    number: int
    offset: int
    text: str
    kind: LineKind
    keyword: str = ""
    argument: str = ""


def classify(number: int, offset: int, text: str) -> Line:
    """Tag a single line.

    >>> classify(1, 0, "* a comment").kind
    <LineKind.IGNORABLE: 'ignorable'>
    >>> classify(1, 0, "RHS").keyword
    'RHS'
    >>> classify(1, 0, " RHS       LIM1   5").kind
    <LineKind.DATA: 'data'>
    """
    if not text.strip() or text.startswith("*"):
        return Line(number, offset, text, LineKind.IGNORABLE)
    if not text[:1].isspace():
        keyword = text.split(maxsplit=1)[0]
        if keyword in SECTIONS or keyword in EXTENSIONS:
            argument = text[len(keyword) :].strip()  # noqa: E203
            return Line(number, offset, text, LineKind.HEADER, keyword, argument)
    return Line(number, offset, text, LineKind.DATA)


class LineStream:
    """Lazy, restartable view of `text` as :class:`Line` objects.

    Each call to :func:`iter` starts from the top of the buffer again.

    >>> stream = LineStream("NAME X\\nROWS\\n N  COST\\n")
    >>> [line.kind.value for line in stream]
    ['header', 'header', 'data']
    >>> len(list(stream))
    3
    """

    __slots__ = ("text",)

    def __init__(self, text: str) -> None:
        """Wrap an in-memory buffer."""
        self.text = text

    def __iter__(self) -> Iterator[Line]:
        """Yield lines without copying the whole buffer up front."""
        text = self.text
        start = 0
        number = 0
        while start < len(text):
            end = text.find("\n", start)
            if end < 0:
                end = len(text)
            number += 1
            yield classify(number, start, text[start:end].rstrip("\r"))
            start = end + 1
