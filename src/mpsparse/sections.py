"""Section state machine dispatching data lines to field parsers."""

from collections.abc import Callable
from enum import Enum

from mpsparse import grammar
from mpsparse.builder import ModelBuilder
from mpsparse.errors import ErrorKind, Location, Severity
from mpsparse.fields import Token, free_tokens, invalid_character
from mpsparse.grammar import MarkerRecord, ParseContext, SosSetRecord
from mpsparse.lines import EXTENSIONS, Line, LineKind


class State(Enum):
    """Position of the parser in the file."""

    HEADER = "HEADER"
    NAME = "NAME"
    OBJSENSE = "OBJSENSE"
    OBJNAME = "OBJNAME"
    REFROW = "REFROW"
    ROWS = "ROWS"
    USERCUTS = "USERCUTS"
    COLUMNS = "COLUMNS"
    RHS = "RHS"
    RANGES = "RANGES"
    BOUNDS = "BOUNDS"
    SOS = "SOS"
    QUADOBJ = "QUADOBJ"  # also QSECTION and QMATRIX
    QCMATRIX = "QCMATRIX"
    CSECTION = "CSECTION"
    INDICATORS = "INDICATORS"
    LAZYCONS = "LAZYCONS"
    BRANCH = "BRANCH"
    SKIPPED = "SKIPPED"
    DONE = "DONE"


_KEYWORDS = {
    "NAME": State.NAME,
    "OBJSENSE": State.OBJSENSE,
    "OBJSENS": State.OBJSENSE,
    "OBJNAME": State.OBJNAME,
    "REFROW": State.REFROW,
    "ROWS": State.ROWS,
    "USERCUTS": State.USERCUTS,
    "COLUMNS": State.COLUMNS,
    "RHS": State.RHS,
    "RANGES": State.RANGES,
    "BOUNDS": State.BOUNDS,
    "SOS": State.SOS,
    "QSECTION": State.QUADOBJ,
    "QUADOBJ": State.QUADOBJ,
    "QMATRIX": State.QUADOBJ,
    "QCMATRIX": State.QCMATRIX,
    "CSECTION": State.CSECTION,
    "INDICATORS": State.INDICATORS,
    "LAZYCONS": State.LAZYCONS,
    "BRANCH": State.BRANCH,
    "ENDATA": State.DONE,
}

_ORDER = (
    State.NAME,
    State.OBJSENSE,
    State.OBJNAME,
    State.REFROW,
    State.ROWS,
    State.USERCUTS,
    State.COLUMNS,
    State.RHS,
    State.RANGES,
    State.BOUNDS,
    State.SOS,
    State.QUADOBJ,
    State.QCMATRIX,
    State.CSECTION,
    State.INDICATORS,
    State.LAZYCONS,
    State.BRANCH,
)

_REQUIRES = {
    State.USERCUTS: State.ROWS,
    State.COLUMNS: State.ROWS,
    **dict.fromkeys(_ORDER[_ORDER.index(State.RHS) :], State.COLUMNS),  # noqa: E203
}

# One section per row or per cone.
_REPEATABLE = frozenset({State.QCMATRIX, State.CSECTION})

# Sections holding a single name or keyword, inline or on the next line.
_SINGLE = frozenset({State.OBJSENSE, State.OBJNAME, State.REFROW})


class SectionMachine:
    """Track the active section and feed its lines to the right parser.

    Structural problems are recorded and parsing carries on, so one pass
    reports as much as possible.
    """

    def __init__(self, ctx: ParseContext, builder: ModelBuilder) -> None:
        """Start in :attr:`State.HEADER`."""
        self.ctx = ctx
        self.builder = builder
        self.state = State.HEADER
        self.seen: set[State] = set()
        self.rank = -1
        self.end = Location(1)
        self._trailing = False
        self._parsers: dict[State, tuple[Callable, Callable]] = {
            State.ROWS: (grammar.rows_line, builder.add_row),
            State.COLUMNS: (grammar.columns_line, self._columns_record),
            State.RHS: (grammar.vector_line, builder.add_rhs),
            State.RANGES: (grammar.vector_line, builder.add_ranges),
            State.BOUNDS: (grammar.bounds_line, builder.add_bound),
            State.SOS: (self._sos_line, self._sos_record),
            State.USERCUTS: (grammar.rows_line, builder.add_user_cut),
            State.QUADOBJ: (grammar.quadratic_line, builder.add_quadratic),
            State.QCMATRIX: (grammar.quadratic_line, builder.add_quadratic_term),
            State.CSECTION: (grammar.cone_line, builder.add_cone_member),
            State.INDICATORS: (grammar.indicator_line, builder.add_indicator),
            State.LAZYCONS: (grammar.lazy_line, builder.add_lazy),
            State.BRANCH: (grammar.branch_line, builder.add_branch),
        }

    def feed(self, line: Line) -> None:
        """Consume one classified line."""
        self.end = Location(line.number + 1, 1, line.offset + len(line.text) + 1)
        if line.kind is LineKind.IGNORABLE:
            return
        if self.state is State.DONE:
            if not self._trailing:
                self._trailing = True
                self.ctx.report(
                    ErrorKind.STRUCTURAL,
                    "content after ENDATA ignored",
                    self.ctx.location(line),
                    Severity.WARNING,
                )
            return
        if line.kind is LineKind.HEADER:
            self._header(line)
        else:
            self._data(line)

    def finish(self) -> None:
        """Handle end of input."""
        if self.state is not State.DONE:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                "missing ENDATA",
                self.end,
                Severity.WARNING,
            )
            self._enter(State.DONE, self.end)

    def _enter(self, state: State, location: Location) -> None:
        self.ctx.note("line %d: %s -> %s", location.line, self.state.value, state.value)
        if self.state is State.COLUMNS:
            self.builder.end_columns()
        self.state = state
        if state is State.DONE and not self.seen & {State.ROWS, State.COLUMNS}:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                "no ROWS or COLUMNS section, the model is empty",
                location,
                Severity.WARNING,
            )

    def _header(self, line: Line) -> None:
        location = self.ctx.location(line)
        if line.keyword in EXTENSIONS:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"unsupported section {line.keyword} skipped",
                location,
                Severity.WARNING,
            )
            self._enter(State.SKIPPED, location)
            return
        state = _KEYWORDS[line.keyword]
        if state is State.DONE:
            self._enter(state, location)
            return
        if state in self.seen and state not in _REPEATABLE:
            self.ctx.report(
                ErrorKind.STRUCTURAL, f"section {line.keyword} repeated", location
            )
        required = _REQUIRES.get(state)
        if required is not None and required not in self.seen:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"section {line.keyword} before {required.value}",
                location,
            )
        rank = _ORDER.index(state)
        if rank < self.rank:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"section {line.keyword} out of order after {_ORDER[self.rank].value}",
                location,
                Severity.WARNING,
            )
        self.rank = max(self.rank, rank)
        self.seen.add(state)
        self._enter(state, location)
        self._argument(line, state)

    def _argument(self, line: Line, state: State) -> None:
        """Handle text after a header keyword, e.g. ``OBJSENSE MAX``."""
        tokens = free_tokens(line.text, self.ctx.detector.delimiters)[1:]
        if state is State.NAME:
            self.builder.name = line.argument
        elif state in _SINGLE:
            if tokens:
                self._single(line, tokens, state)
        elif state is State.QCMATRIX:
            if len(tokens) == 1:
                self.builder.open_quadratic_row(tokens[0].text, self.ctx.location(line, tokens[0]))
            else:
                self.ctx.arity(line, tokens, "the row name after QCMATRIX")
                self.state = State.SKIPPED
        elif state is State.CSECTION:
            record = grammar.cone_header(self.ctx, line, tokens)
            if record is None:
                self.state = State.SKIPPED
            else:
                self.builder.open_cone(record)
        else:
            if state is State.QUADOBJ:
                self.builder.open_quadratic(line.keyword)
            if tokens:
                self.ctx.note(
                    "line %d: ignoring %r after %s", line.number, line.argument, line.keyword
                )

    def _single(self, line: Line, tokens: list[Token], state: State) -> None:
        if len(tokens) != 1:
            self.ctx.arity(line, tokens, f"a single {state.value} value")
            return
        token = tokens[0]
        if state is State.OBJNAME:
            self.builder.objective_name = token.text, self.ctx.location(line, token)
            return
        if state is State.REFROW:
            self.builder.reference_row = token.text, self.ctx.location(line, token)
            return
        sense = grammar.sense_token(self.ctx, line, token)
        if sense is not None:
            self.builder.sense = sense

    def _data(self, line: Line) -> None:
        column = invalid_character(line.text)
        if column is not None:
            self.ctx.report(
                ErrorKind.LEXICAL,
                f"invalid character {line.text[column - 1]!r}",
                Location(line.number, column, line.offset + column - 1),
            )
            return
        state = self.state
        if state is State.HEADER:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                "data line outside of any section",
                self.ctx.location(line),
            )
            return
        if state is State.SKIPPED:
            return
        if state is State.NAME:
            if self.builder.name:
                self.ctx.report(
                    ErrorKind.STRUCTURAL,
                    "unexpected data line in NAME section",
                    self.ctx.location(line),
                )
            else:
                self.builder.name = line.text.strip()
            return
        if state in _SINGLE:
            self._single(line, free_tokens(line.text, self.ctx.detector.delimiters), state)
            return
        tokens = self.ctx.detector.tokens(line.text, state.value, line.number)
        if self.ctx.tracing:
            self.ctx.note(
                "line %d: %s %s fields %s",
                line.number,
                state.value,
                self.ctx.detector.format.value,
                ", ".join(f"{t.text}@{t.column}" for t in tokens),
            )
        parse, store = self._parsers[state]
        record = parse(self.ctx, line, tokens)
        if record is not None:
            store(record)

    def _columns_record(self, record: grammar.CoefficientRecord | MarkerRecord) -> None:
        if isinstance(record, MarkerRecord):
            self.builder.add_marker(record)
        else:
            self.builder.add_coefficients(record)

    def _sos_line(
        self, ctx: ParseContext, line: Line, tokens: list[Token]
    ) -> SosSetRecord | grammar.SosMemberRecord | None:
        return grammar.sos_line(ctx, line, tokens, self.builder.open_set)

    def _sos_record(self, record: SosSetRecord | grammar.SosMemberRecord) -> None:
        if isinstance(record, SosSetRecord):
            self.builder.open_sos(record)
        else:
            self.builder.add_sos_member(record)
