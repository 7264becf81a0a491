"""Diagnostics with line/column provenance.

Every stage of the parser reports problems as :class:`Diagnostic` values
instead of raising, so a single pass can surface everything that is wrong
with a file.  Exceptions only appear at the edges, see :class:`MpsParseError`.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class ErrorKind(Enum):
    """Machine-discriminable category of a diagnostic."""

    LEXICAL = "lexical"
    NUMERIC = "numeric"
    STRUCTURAL = "structural"
    REFERENTIAL = "referential"
    CONSISTENCY = "consistency"


class Severity(Enum):
    """Errors block the model, warnings travel with it."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True, slots=True, order=True)
class Location:
    """Position inside the input buffer.

    `line` and `column` are 1-based, `offset` is the 0-based character offset
    of `column` from the start of the buffer.

    >>> str(Location(3, 15, 60))
    '3:15'
    """

    line: int
    column: int = 1
    offset: int = 0

    def __str__(self) -> str:
        """Render as ``line:column``."""
        return f"{self.line}:{self.column}"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A single problem found while parsing."""

    kind: ErrorKind
    message: str
    location: Location
    severity: Severity = Severity.ERROR

    @property
    def is_error(self) -> bool:
        """Whether this diagnostic prevents a model from being returned."""
        return self.severity is Severity.ERROR

    def __str__(self) -> str:
        """Render like a compiler message.

        >>> print(Diagnostic(ErrorKind.NUMERIC, "bad number", Location(2, 25)))
        2:25: error[numeric]: bad number
        """
        return (
            f"{self.location}: {self.severity.value}[{self.kind.value}]: "
            f"{self.message}"
        )


def ordered(diagnostics: Iterable[Diagnostic]) -> tuple[Diagnostic, ...]:
    """Sort by position, keeping discovery order for ties."""
    return tuple(sorted(diagnostics, key=lambda d: (d.location.line, d.location.column)))


class MpsParseError(ValueError):
    """Raised by :meth:`mpsparse.mps.ParseResult.unwrap` on a failed parse."""

    def __init__(self, diagnostics: Iterable[Diagnostic]) -> None:
        """Keep every diagnostic, not only the first one."""
        self.diagnostics = tuple(diagnostics)
        errors = [d for d in self.diagnostics if d.is_error]
        lines = "\n".join(map(str, self.diagnostics))
        super().__init__(f"{len(errors)} error(s) while parsing MPS input:\n{lines}")
