"""Per-section grammars turning data line tokens into typed records.

Every parser takes the :class:`ParseContext` of the running parse, the
:class:`~mpsparse.lines.Line` being parsed and its tokens.  A parser returns
a record, or :data:`None` after reporting why the line contributes nothing.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from mpsparse.errors import Diagnostic, ErrorKind, Location, Severity
from mpsparse.fields import FormatDetector, Token
from mpsparse.lines import Line
from mpsparse.model import BoundKind, BranchDirection, ConeType, ObjectiveSense
from mpsparse.numeric import is_number, parse_number

logger = logging.getLogger(__name__)

ROW_TYPES = frozenset("NLGE")
MARKER = "'MARKER'"
INTORG = "'INTORG'"
INTEND = "'INTEND'"
SOS_TYPES = {"S1": 1, "S2": 2}
SENSES = {
    "MIN": ObjectiveSense.MIN,
    "MINIMIZE": ObjectiveSense.MIN,
    "MAX": ObjectiveSense.MAX,
    "MAXIMIZE": ObjectiveSense.MAX,
}


@dataclass(slots=True)
class ParseContext:
    """Mutable state owned by a single parse invocation."""

    dtype: np.dtype
    detector: FormatDetector = field(default_factory=FormatDetector)
    tracing: bool = False
    diagnostics: list[Diagnostic] = field(default_factory=list)
    trace: list[str] = field(default_factory=list)

    def location(self, line: Line, token: Token | None = None) -> Location:
        """Position of `token`, or of the start of `line`."""
        column = token.column if token is not None else 1
        return Location(line.number, column, line.offset + column - 1)

    def report(
        self,
        kind: ErrorKind,
        message: str,
        location: Location,
        severity: Severity = Severity.ERROR,
    ) -> None:
        """Record a diagnostic."""
        diagnostic = Diagnostic(kind, message, location, severity)
        logger.debug("%s", diagnostic)
        self.diagnostics.append(diagnostic)

    def note(self, message: str, *args: object) -> None:
        """Append to the diagnostic trace when tracing is on."""
        if self.tracing:
            text = message % args if args else message
            logger.debug("%s", text)
            self.trace.append(text)

    def number(self, line: Line, token: Token) -> np.floating | None:
        """Parse `token` in the context dtype, reporting failures."""
        try:
            value = parse_number(token.text, self.dtype)
        except ValueError as error:
            self.report(ErrorKind.NUMERIC, str(error), self.location(line, token))
            return None
        self.note("%d:%d number %s -> %r", line.number, token.column, token.text, value)
        return value

    def integer(self, line: Line, token: Token) -> int | None:
        """Parse a priority or indicator value, reporting failures."""
        try:
            return int(token.text)
        except ValueError:
            self.report(
                ErrorKind.NUMERIC,
                f"{token.text!r} is not an integer",
                self.location(line, token),
            )
            return None

    def arity(self, line: Line, tokens: list[Token], expected: str) -> None:
        """Report a wrong number of fields."""
        if tokens and len(tokens) > 1:
            where = self.location(line, tokens[-1])
        else:
            where = self.location(line, tokens[0] if tokens else None)
        self.report(
            ErrorKind.LEXICAL,
            f"expected {expected}, found {len(tokens)} field(s)",
            where,
        )


@dataclass(frozen=True, slots=True)
class RowRecord:
    """``type name`` from ROWS."""

    type: str
    name: str
    location: Location


@dataclass(frozen=True, slots=True)
class Entry:
    """A ``name value`` pair with the position of the name."""

    name: str
    value: np.floating
    location: Location


@dataclass(frozen=True, slots=True)
class CoefficientRecord:
    """``column row value [row value]`` from COLUMNS."""

    column: str
    entries: tuple[Entry, ...]
    location: Location


@dataclass(frozen=True, slots=True)
class MarkerRecord:
    """``name 'MARKER' 'INTORG'|'INTEND'`` from COLUMNS."""

    name: str
    kind: str
    location: Location


@dataclass(frozen=True, slots=True)
class VectorRecord:
    """``[vector] row value [row value]`` from RHS or RANGES."""

    vector: str | None
    entries: tuple[Entry, ...]
    location: Location


@dataclass(frozen=True, slots=True)
class BoundRecord:
    """``kind [vector] column [value]`` from BOUNDS."""

    kind: BoundKind
    vector: str | None
    column: str
    value: np.floating | None
    location: Location


@dataclass(frozen=True, slots=True)
class SosSetRecord:
    """``S1|S2 [SOS] [name] [priority]`` opening a set in SOS."""

    type: int
    name: str | None
    priority: np.floating | None
    location: Location


@dataclass(frozen=True, slots=True)
class SosMemberRecord:
    """``[set] column weight`` inside a set in SOS."""

    set: str | None
    column: str
    weight: np.floating
    location: Location


@dataclass(frozen=True, slots=True)
class QuadraticRecord:
    """``column1 column2 value`` from QUADOBJ, QSECTION, QMATRIX or QCMATRIX."""

    column1: str
    column2: str
    value: np.floating
    location: Location


@dataclass(frozen=True, slots=True)
class IndicatorRecord:
    """``IF row column 0|1`` from INDICATORS."""

    row: str
    column: str
    value: int
    location: Location


@dataclass(frozen=True, slots=True)
class LazyRecord:
    """``[priority] row`` from LAZYCONS."""

    row: str
    priority: int | None
    location: Location


@dataclass(frozen=True, slots=True)
class ConeRecord:
    """``CSECTION name [parameter] QUAD|RQUAD`` header."""

    name: str
    type: ConeType
    parameter: np.floating | None
    location: Location


@dataclass(frozen=True, slots=True)
class ConeMemberRecord:
    """``column [coefficient]`` inside a CSECTION."""

    column: str
    coefficient: np.floating | None
    location: Location


@dataclass(frozen=True, slots=True)
class BranchRecord:
    """``[UP|DN|RD|CB] column priority`` from BRANCH."""

    column: str
    priority: int
    direction: BranchDirection
    location: Location


def rows_line(ctx: ParseContext, line: Line, tokens: list[Token]) -> RowRecord | None:
    """Parse a ROWS line."""
    if len(tokens) != 2:  # noqa: PLR2004
        ctx.arity(line, tokens, "row type and row name")
        return None
    kind, name = tokens
    if kind.text not in ROW_TYPES:
        ctx.report(
            ErrorKind.LEXICAL,
            f"invalid row type {kind.text!r}, expected one of N, L, G, E",
            ctx.location(line, kind),
        )
        return None
    return RowRecord(kind.text, name.text, ctx.location(line, name))


def _entries(ctx: ParseContext, line: Line, tokens: list[Token]) -> tuple[Entry, ...] | None:
    entries = []
    for name, text in zip(tokens[::2], tokens[1::2], strict=True):
        value = ctx.number(line, text)
        if value is None:
            return None
        entries.append(Entry(name.text, value, ctx.location(line, name)))
    return tuple(entries)


def _unterminated(ctx: ParseContext, line: Line, tokens: list[Token]) -> bool:
    for token in tokens:
        text = token.text
        if text.startswith("'") and (len(text) == 1 or not text.endswith("'")):
            ctx.report(
                ErrorKind.LEXICAL,
                f"unterminated quoted field {text!r}",
                ctx.location(line, token),
            )
            return True
    return False


def columns_line(
    ctx: ParseContext, line: Line, tokens: list[Token]
) -> CoefficientRecord | MarkerRecord | None:
    """Parse a COLUMNS line, coefficients or integrality marker."""
    if _unterminated(ctx, line, tokens):
        return None
    if len(tokens) > 1 and tokens[1].text == MARKER:
        if len(tokens) != 3:  # noqa: PLR2004
            ctx.arity(line, tokens, "marker name, 'MARKER' and 'INTORG' or 'INTEND'")
            return None
        kind = tokens[2]
        if kind.text not in {INTORG, INTEND}:
            ctx.report(
                ErrorKind.LEXICAL,
                f"unknown marker {kind.text}, expected 'INTORG' or 'INTEND'",
                ctx.location(line, kind),
            )
            return None
        return MarkerRecord(tokens[0].text, kind.text, ctx.location(line, tokens[0]))
    if len(tokens) not in {3, 5}:
        ctx.arity(line, tokens, "column name and one or two row/value pairs")
        return None
    entries = _entries(ctx, line, tokens[1:])
    if entries is None:
        return None
    return CoefficientRecord(tokens[0].text, entries, ctx.location(line, tokens[0]))


def vector_line(ctx: ParseContext, line: Line, tokens: list[Token]) -> VectorRecord | None:
    """Parse an RHS or RANGES line; the vector name is optional."""
    if not 2 <= len(tokens) <= 5:  # noqa: PLR2004
        ctx.arity(line, tokens, "optional vector name and one or two row/value pairs")
        return None
    vector = None
    if len(tokens) % 2:
        vector, *tokens = tokens
    entries = _entries(ctx, line, tokens)
    if entries is None:
        return None
    return VectorRecord(
        vector.text if vector is not None else None,
        entries,
        ctx.location(line, vector or tokens[0]),
    )


def _bound_layout(
    kind: BoundKind, tokens: list[Token]
) -> tuple[Token | None, Token, Token | None] | None:
    """Split ``[vector] column [value]`` for `kind`."""
    if len(tokens) == 3:  # noqa: PLR2004
        return tokens[0], tokens[1], tokens[2]
    if len(tokens) == 2:  # noqa: PLR2004
        if kind.needs_value or is_number(tokens[1].text):
            return None, tokens[0], tokens[1]
        return tokens[0], tokens[1], None
    if len(tokens) == 1 and not kind.needs_value:
        return None, tokens[0], None
    return None


def bounds_line(ctx: ParseContext, line: Line, tokens: list[Token]) -> BoundRecord | None:
    """Parse a BOUNDS line."""
    if not tokens:
        return None
    code, *rest = tokens
    try:
        kind = BoundKind(code.text)
    except ValueError:
        ctx.report(
            ErrorKind.LEXICAL,
            f"invalid bound type {code.text!r}",
            ctx.location(line, code),
        )
        return None
    layout = _bound_layout(kind, rest)
    if layout is None:
        expected = "a value" if kind.needs_value else "no value"
        ctx.arity(line, tokens, f"bound type, optional vector name, column name and {expected}")
        return None
    vector, column, text = layout
    value = None
    if text is not None and kind not in {BoundKind.FR, BoundKind.MI, BoundKind.PL}:
        value = ctx.number(line, text)
        if value is None:
            return None
    return BoundRecord(
        kind,
        vector.text if vector is not None else None,
        column.text,
        value,
        ctx.location(line, column),
    )


def _sos_header(tokens: list[Token], open_set: str | None) -> bool:
    """Tell a set header from a member of a set named ``S1`` or ``S2``.

    ``S1 SOS ...`` always opens a set.  Otherwise a line starting with the
    name of the open set is a member of it.
    """
    head = tokens[0].text
    if head not in SOS_TYPES:
        return False
    if len(tokens) > 1 and tokens[1].text == "SOS":
        return True
    return head != open_set and (len(tokens) == 1 or not is_number(tokens[1].text))


def sos_line(
    ctx: ParseContext, line: Line, tokens: list[Token], open_set: str | None = None
) -> SosSetRecord | SosMemberRecord | None:
    """Parse an SOS line, either a set header or a member of `open_set`."""
    if not tokens:
        return None
    head = tokens[0]
    if _sos_header(tokens, open_set):
        rest = tokens[1:]
        if rest and rest[0].text == "SOS":
            rest = rest[1:]
        if len(rest) > 2:  # noqa: PLR2004
            ctx.arity(line, tokens, "SOS type, optional set name and optional priority")
            return None
        priority = None
        if len(rest) == 2:  # noqa: PLR2004
            priority = ctx.number(line, rest[1])
            if priority is None:
                return None
        name = rest[0].text if rest else None
        return SosSetRecord(SOS_TYPES[head.text], name, priority, ctx.location(line, head))
    if len(tokens) not in {2, 3}:
        ctx.arity(line, tokens, "optional set name, column name and weight")
        return None
    *owner, column, weight = tokens
    value = ctx.number(line, weight)
    if value is None:
        return None
    return SosMemberRecord(
        owner[0].text if owner else None,
        column.text,
        value,
        ctx.location(line, column),
    )


def sense_token(ctx: ParseContext, line: Line, token: Token) -> ObjectiveSense | None:
    """Parse the optimization direction of OBJSENSE."""
    sense = SENSES.get(token.text.upper())
    if sense is None:
        ctx.report(
            ErrorKind.LEXICAL,
            f"invalid objective sense {token.text!r}, expected MIN or MAX",
            ctx.location(line, token),
        )
    return sense


def quadratic_line(
    ctx: ParseContext, line: Line, tokens: list[Token]
) -> QuadraticRecord | None:
    """Parse a quadratic term of the objective or of a QCMATRIX row."""
    if len(tokens) != 3:  # noqa: PLR2004
        ctx.arity(line, tokens, "two column names and a value")
        return None
    first, second, text = tokens
    value = ctx.number(line, text)
    if value is None:
        return None
    return QuadraticRecord(first.text, second.text, value, ctx.location(line, first))


def indicator_line(
    ctx: ParseContext, line: Line, tokens: list[Token]
) -> IndicatorRecord | None:
    """Parse an INDICATORS line."""
    if len(tokens) != 4:  # noqa: PLR2004
        ctx.arity(line, tokens, "IF, row name, column name and 0 or 1")
        return None
    keyword, row, column, text = tokens
    if keyword.text != "IF":
        ctx.report(
            ErrorKind.LEXICAL,
            f"expected IF, found {keyword.text!r}",
            ctx.location(line, keyword),
        )
        return None
    if text.text not in {"0", "1"}:
        ctx.report(
            ErrorKind.LEXICAL,
            f"indicator value must be 0 or 1, found {text.text!r}",
            ctx.location(line, text),
        )
        return None
    return IndicatorRecord(row.text, column.text, int(text.text), ctx.location(line, row))


def lazy_line(ctx: ParseContext, line: Line, tokens: list[Token]) -> LazyRecord | None:
    """Parse a LAZYCONS line."""
    if len(tokens) not in {1, 2}:
        ctx.arity(line, tokens, "optional priority and row name")
        return None
    *head, row = tokens
    priority = None
    if head:
        priority = ctx.integer(line, head[0])
        if priority is None:
            return None
    return LazyRecord(row.text, priority, ctx.location(line, row))


def cone_header(ctx: ParseContext, line: Line, tokens: list[Token]) -> ConeRecord | None:
    """Parse the arguments of a CSECTION header."""
    if len(tokens) not in {2, 3}:
        ctx.arity(line, tokens, "cone name, optional parameter and QUAD or RQUAD")
        return None
    name, *middle, kind = tokens
    try:
        cone = ConeType(kind.text)
    except ValueError:
        ctx.report(
            ErrorKind.LEXICAL,
            f"invalid cone type {kind.text!r}, expected QUAD or RQUAD",
            ctx.location(line, kind),
        )
        return None
    parameter = None
    if middle:
        parameter = ctx.number(line, middle[0])
        if parameter is None:
            return None
    return ConeRecord(name.text, cone, parameter, ctx.location(line, name))


def cone_line(ctx: ParseContext, line: Line, tokens: list[Token]) -> ConeMemberRecord | None:
    """Parse a cone member."""
    if len(tokens) not in {1, 2}:
        ctx.arity(line, tokens, "column name and optional coefficient")
        return None
    column, *rest = tokens
    coefficient = None
    if rest:
        coefficient = ctx.number(line, rest[0])
        if coefficient is None:
            return None
    return ConeMemberRecord(column.text, coefficient, ctx.location(line, column))


def branch_line(ctx: ParseContext, line: Line, tokens: list[Token]) -> BranchRecord | None:
    """Parse a BRANCH line."""
    if len(tokens) not in {2, 3}:
        ctx.arity(line, tokens, "optional direction, column name and priority")
        return None
    direction = BranchDirection.AUTO
    if len(tokens) == 3:  # noqa: PLR2004
        code, *tokens = tokens
        try:
            direction = BranchDirection(code.text)
        except ValueError:
            ctx.report(
                ErrorKind.LEXICAL,
                f"invalid branch direction {code.text!r}, expected UP, DN, RD or CB",
                ctx.location(line, code),
            )
            return None
    column, text = tokens
    priority = ctx.integer(line, text)
    if priority is None:
        return None
    if priority < 0:
        ctx.report(
            ErrorKind.NUMERIC,
            f"branch priority must not be negative, found {priority}",
            ctx.location(line, text),
        )
        return None
    return BranchRecord(column.text, priority, direction, ctx.location(line, column))
