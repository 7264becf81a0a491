"""Accumulate parsed records into a :class:`~mpsparse.model.Model`."""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType

import numpy as np

from mpsparse.errors import ErrorKind, Location, Severity
from mpsparse.grammar import (
    INTORG,
    BoundRecord,
    BranchRecord,
    CoefficientRecord,
    ConeMemberRecord,
    ConeRecord,
    IndicatorRecord,
    LazyRecord,
    MarkerRecord,
    ParseContext,
    QuadraticRecord,
    RowRecord,
    SosMemberRecord,
    SosSetRecord,
    VectorRecord,
)
from mpsparse.model import (
    Bound,
    BoundKind,
    BranchPriority,
    Column,
    Cone,
    Indicator,
    LazyConstraint,
    Model,
    ObjectiveSense,
    QuadraticConstraint,
    QuadraticTerm,
    Row,
    RowType,
    SosSet,
    VariableType,
)

logger = logging.getLogger(__name__)

_ROW_TYPES = {
    "N": RowType.OBJECTIVE,
    "L": RowType.LESS_EQUAL,
    "G": RowType.GREATER_EQUAL,
    "E": RowType.EQUAL,
}


@dataclass(slots=True)
class _Vector:
    """Entries of the first RHS or RANGES vector of a file."""

    section: str
    name: str | None = None
    values: dict[str, np.floating] = field(default_factory=dict)
    locations: dict[str, Location] = field(default_factory=dict)
    ignored: set[str] = field(default_factory=set)

    def accepts(self, ctx: ParseContext, vector: str | None, location: Location) -> bool:
        key = vector or ""
        if self.name is None:
            self.name = key
            ctx.note("%s vector %r selected", self.section, key)
        if key == self.name:
            return True
        if key not in self.ignored:
            self.ignored.add(key)
            ctx.report(
                ErrorKind.STRUCTURAL,
                f"{self.section} vector {key!r} ignored, only {self.name!r} is used",
                location,
                Severity.WARNING,
            )
        return False


@dataclass(slots=True)
class _Sos:
    record: SosSetRecord
    name: str
    members: list[SosMemberRecord] = field(default_factory=list)


@dataclass(slots=True)
class _QuadraticRow:
    row: str
    location: Location
    terms: list[QuadraticRecord] = field(default_factory=list)


@dataclass(slots=True)
class _Cone:
    record: ConeRecord
    members: list[ConeMemberRecord] = field(default_factory=list)


class ModelBuilder:
    """Collect records of one parse, then validate and freeze them.

    Insertion enforces name uniqueness, sums repeated coefficients and tracks
    integrality markers.  Everything that needs the whole file, references
    across sections and bound consistency, waits for :meth:`finalize`.
    """

    def __init__(self, ctx: ParseContext) -> None:
        """Start an empty model for the parse owning `ctx`."""
        self.ctx = ctx
        self.zero = ctx.dtype.type(0)
        self.name = ""
        self.sense = ObjectiveSense.MIN
        self.objective_name: tuple[str, Location] | None = None
        self.rows: dict[str, RowRecord] = {}
        self.columns: dict[str, VariableType] = {}
        self.coefficients: dict[tuple[str, str], np.floating] = {}
        self.coefficient_locations: dict[tuple[str, str], Location] = {}
        self.rhs = _Vector("RHS")
        self.ranges = _Vector("RANGES")
        self.bound_name: str | None = None
        self.ignored_bounds: set[str] = set()
        self.bounds: list[BoundRecord] = []
        self.bound_keys: dict[tuple[str, BoundKind], BoundRecord] = {}
        self.sos: list[_Sos] = []
        self.reference_row: tuple[str, Location] | None = None
        self.user_cuts: list[str] = []
        self.quadratic: list[tuple[QuadraticRecord, bool]] = []
        self.quadratic_rows: list[_QuadraticRow] = []
        self.indicators: dict[str, IndicatorRecord] = {}
        self.lazy: dict[str, LazyRecord] = {}
        self.cones: list[_Cone] = []
        self.branches: dict[str, BranchRecord] = {}
        self._triangle = False
        self._current: str | None = None
        self._rejected = False
        self._marker: MarkerRecord | None = None

    def add_row(self, record: RowRecord) -> None:
        """Declare a row."""
        if record.name in self.rows:
            first = self.rows[record.name]
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"duplicate row {record.name!r}, first declared at line {first.location.line}",
                record.location,
            )
            return
        self.rows[record.name] = record

    def add_coefficients(self, record: CoefficientRecord) -> None:
        """Declare a column on first sight and add its coefficients."""
        if record.column != self._current:
            self._current = record.column
            self._rejected = record.column in self.columns
            if self._rejected:
                self.ctx.report(
                    ErrorKind.STRUCTURAL,
                    f"duplicate column {record.column!r}, its entries must be contiguous",
                    record.location,
                )
            else:
                integer = self._marker is not None
                self.columns[record.column] = (
                    VariableType.INTEGER if integer else VariableType.CONTINUOUS
                )
                self.ctx.note("column %r declared, integer=%s", record.column, integer)
        if self._rejected:
            return
        for entry in record.entries:
            key = entry.name, record.column
            if key in self.coefficients:
                self.coefficients[key] += entry.value
            else:
                self.coefficients[key] = entry.value
                self.coefficient_locations[key] = entry.location

    def add_marker(self, record: MarkerRecord) -> None:
        """Open or close a run of integer columns."""
        if record.kind == INTORG:
            if self._marker is not None:
                self.ctx.report(
                    ErrorKind.STRUCTURAL,
                    f"marker {record.name!r} opens an integer block inside "
                    f"{self._marker.name!r}",
                    record.location,
                )
                return
            self._marker = record
        elif self._marker is None:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"marker {record.name!r} closes an integer block that was never opened",
                record.location,
            )
            return
        else:
            if record.name != self._marker.name:
                self.ctx.report(
                    ErrorKind.STRUCTURAL,
                    f"marker {record.name!r} closes block opened by {self._marker.name!r}",
                    record.location,
                    Severity.WARNING,
                )
            self._marker = None
        self.ctx.note("marker %r %s", record.name, record.kind)

    def end_columns(self) -> None:
        """Warn about an integer block left open at the end of COLUMNS."""
        if self._marker is not None:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"integer block {self._marker.name!r} is never closed",
                self._marker.location,
                Severity.WARNING,
            )
            self._marker = None
        self._current = None

    def _add_vector(self, vector: _Vector, record: VectorRecord) -> None:
        if not vector.accepts(self.ctx, record.vector, record.location):
            return
        for entry in record.entries:
            if entry.name in vector.values:
                self.ctx.report(
                    ErrorKind.STRUCTURAL,
                    f"duplicate {vector.section} entry for row {entry.name!r}: "
                    f"found {vector.values[entry.name]} and {entry.value}",
                    entry.location,
                )
                continue
            vector.values[entry.name] = entry.value
            vector.locations[entry.name] = entry.location

    def add_rhs(self, record: VectorRecord) -> None:
        """Record right-hand sides of the first RHS vector."""
        self._add_vector(self.rhs, record)

    def add_ranges(self, record: VectorRecord) -> None:
        """Record ranges of the first RANGES vector."""
        self._add_vector(self.ranges, record)

    def add_bound(self, record: BoundRecord) -> None:
        """Queue a bound of the first BOUNDS vector."""
        key = record.vector or ""
        if self.bound_name is None:
            self.bound_name = key
        if key != self.bound_name:
            if key not in self.ignored_bounds:
                self.ignored_bounds.add(key)
                self.ctx.report(
                    ErrorKind.STRUCTURAL,
                    f"BOUNDS vector {key!r} ignored, only {self.bound_name!r} is used",
                    record.location,
                    Severity.WARNING,
                )
            return
        key = record.column, record.kind
        first = self.bound_keys.get(key)
        if first is not None:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"duplicate {record.kind.value} bound for column {record.column!r}, "
                f"first given at line {first.location.line}",
                record.location,
            )
            return
        self.bound_keys[key] = record
        self.bounds.append(record)

    def open_sos(self, record: SosSetRecord) -> None:
        """Start a new special ordered set."""
        name = record.name or f"SOS{len(self.sos) + 1}"
        if any(s.name == name for s in self.sos):
            self.ctx.report(
                ErrorKind.STRUCTURAL, f"duplicate SOS set {name!r}", record.location
            )
        self.sos.append(_Sos(record, name))

    def add_sos_member(self, record: SosMemberRecord) -> None:
        """Append a member to the set opened last."""
        if not self.sos:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"SOS member {record.column!r} outside of any set",
                record.location,
            )
            return
        current = self.sos[-1]
        if record.set is not None and record.set != current.name:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"SOS member {record.column!r} names set {record.set!r} "
                f"inside set {current.name!r}",
                record.location,
            )
            return
        current.members.append(record)

    @property
    def open_set(self) -> str | None:
        """Name of the SOS set members are added to."""
        return self.sos[-1].name if self.sos else None

    def add_user_cut(self, record: RowRecord) -> None:
        """Declare a user cut; it is a row like any other."""
        if record.type == "N":
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"user cut {record.name!r} must be an L, G or E row",
                record.location,
            )
            return
        if record.name not in self.rows:
            self.user_cuts.append(record.name)
        self.add_row(record)

    def open_quadratic(self, section: str) -> None:
        """QUADOBJ and QSECTION list each off-diagonal entry once, QMATRIX twice."""
        self._triangle = section != "QMATRIX"

    def add_quadratic(self, record: QuadraticRecord) -> None:
        """Add a quadratic objective term."""
        self.quadratic.append((record, self._triangle))

    def open_quadratic_row(self, row: str, location: Location) -> None:
        """Start the QCMATRIX of `row`."""
        if any(q.row == row for q in self.quadratic_rows):
            self.ctx.report(
                ErrorKind.STRUCTURAL, f"duplicate QCMATRIX for row {row!r}", location
            )
        self.quadratic_rows.append(_QuadraticRow(row, location))

    def add_quadratic_term(self, record: QuadraticRecord) -> None:
        """Add a term to the QCMATRIX opened last."""
        self.quadratic_rows[-1].terms.append(record)

    def add_indicator(self, record: IndicatorRecord) -> None:
        """Attach an indicator to a row, once per row."""
        if record.row in self.indicators:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"duplicate indicator for row {record.row!r}",
                record.location,
            )
            return
        self.indicators[record.row] = record

    def add_lazy(self, record: LazyRecord) -> None:
        """Mark a row as lazy, once per row."""
        if record.row in self.lazy:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"duplicate lazy constraint {record.row!r}",
                record.location,
            )
            return
        self.lazy[record.row] = record

    def open_cone(self, record: ConeRecord) -> None:
        """Start a CSECTION."""
        if any(c.record.name == record.name for c in self.cones):
            self.ctx.report(
                ErrorKind.STRUCTURAL, f"duplicate cone {record.name!r}", record.location
            )
        self.cones.append(_Cone(record))

    def add_cone_member(self, record: ConeMemberRecord) -> None:
        """Add a column to the cone opened last."""
        self.cones[-1].members.append(record)

    def add_branch(self, record: BranchRecord) -> None:
        """Record a branching priority, once per column."""
        if record.column in self.branches:
            self.ctx.report(
                ErrorKind.STRUCTURAL,
                f"duplicate branching priority for column {record.column!r}",
                record.location,
            )
            return
        self.branches[record.column] = record

    def _objective(self) -> str | None:
        declared = [name for name, row in self.rows.items() if row.type == "N"]
        if self.objective_name is None:
            return declared[0] if declared else None
        name, location = self.objective_name
        if name not in self.rows:
            self.ctx.report(
                ErrorKind.REFERENTIAL, f"objective row {name!r} is not declared", location
            )
        elif self.rows[name].type != "N":
            self.ctx.report(
                ErrorKind.STRUCTURAL, f"objective row {name!r} is not an N row", location
            )
        else:
            return name
        return declared[0] if declared else None

    def _rows(self, objective: str | None) -> tuple[Row, ...]:
        rows = []
        for name, record in self.rows.items():
            kind = _ROW_TYPES[record.type]
            if kind is RowType.OBJECTIVE and name != objective:
                kind = RowType.FREE
            rows.append(Row(name, kind))
        return tuple(rows)

    def _resolved(self, vector: _Vector) -> dict[str, np.floating]:
        values = {}
        for name, value in vector.values.items():
            location = vector.locations[name]
            if name not in self.rows:
                self.ctx.report(
                    ErrorKind.REFERENTIAL,
                    f"{vector.section} entry names undeclared row {name!r}",
                    location,
                )
            elif vector is self.ranges and self.rows[name].type == "N":
                self.ctx.report(
                    ErrorKind.STRUCTURAL,
                    f"range on N row {name!r} ignored",
                    location,
                    Severity.WARNING,
                )
            else:
                values[name] = value
        logger.debug("%s vector %r resolved %d rows", vector.section, vector.name, len(values))
        return values

    def _columns(self) -> tuple[tuple[Column, ...], tuple[Bound, ...]]:
        inf = self.ctx.dtype.type(np.inf)
        state = {
            name: {
                "type": kind,
                "lower": self.zero,
                "upper": inf,
                "semicontinuous": False,
            }
            for name, kind in self.columns.items()
        }
        last: dict[str, Location] = {}
        accepted = []
        for record in self.bounds:
            column = state.get(record.column)
            if column is None:
                self.ctx.report(
                    ErrorKind.REFERENTIAL,
                    f"{record.kind.value} bound names undeclared column {record.column!r}",
                    record.location,
                )
                continue
            _apply(column, record.kind, record.value, self.zero, inf)
            last[record.column] = record.location
            accepted.append(Bound(record.column, record.kind, record.value))
        for name, column in state.items():
            lower, upper = column["lower"], column["upper"]
            if np.isfinite(lower) and np.isfinite(upper) and lower > upper:
                self.ctx.report(
                    ErrorKind.CONSISTENCY,
                    f"column {name!r} has lower bound {lower} above upper bound {upper}",
                    last[name],
                )
        columns = tuple(Column(name, **column) for name, column in state.items())
        return columns, tuple(accepted)

    def _sos(self) -> tuple[SosSet, ...]:
        sets = []
        for sos in self.sos:
            members = []
            for member in sos.members:
                if member.column not in self.columns:
                    self.ctx.report(
                        ErrorKind.REFERENTIAL,
                        f"SOS set {sos.name!r} names undeclared column {member.column!r}",
                        member.location,
                    )
                    continue
                members.append((member.column, member.weight))
            if not sos.members:
                self.ctx.report(
                    ErrorKind.STRUCTURAL,
                    f"SOS set {sos.name!r} has no members",
                    sos.record.location,
                    Severity.WARNING,
                )
            sets.append(SosSet(sos.name, sos.record.type, tuple(members), sos.record.priority))
        return tuple(sets)

    def _known_row(self, name: str, location: Location, what: str) -> bool:
        """Check that `what` names a declared constraint row."""
        if name not in self.rows:
            self.ctx.report(
                ErrorKind.REFERENTIAL, f"{what} names undeclared row {name!r}", location
            )
            return False
        if self.rows[name].type == "N":
            self.ctx.report(
                ErrorKind.STRUCTURAL, f"{what} names N row {name!r}", location
            )
            return False
        return True

    def _known_columns(self, location: Location, what: str, *names: str) -> bool:
        known = True
        for name in dict.fromkeys(names):
            if name not in self.columns:
                self.ctx.report(
                    ErrorKind.REFERENTIAL,
                    f"{what} names undeclared column {name!r}",
                    location,
                )
                known = False
        return known

    def _quadratic_objective(self) -> tuple[QuadraticTerm, ...]:
        terms = []
        for record, triangle in self.quadratic:
            if not self._known_columns(
                record.location, "quadratic objective term", record.column1, record.column2
            ):
                continue
            terms.append(QuadraticTerm(record.column1, record.column2, record.value))
            if triangle and record.column1 != record.column2:
                terms.append(QuadraticTerm(record.column2, record.column1, record.value))
        return tuple(terms)

    def _quadratic_constraints(self) -> tuple[QuadraticConstraint, ...]:
        constraints = []
        for quadratic in self.quadratic_rows:
            if not self._known_row(quadratic.row, quadratic.location, "QCMATRIX"):
                continue
            terms = tuple(
                QuadraticTerm(t.column1, t.column2, t.value)
                for t in quadratic.terms
                if self._known_columns(
                    t.location, f"QCMATRIX of {quadratic.row!r}", t.column1, t.column2
                )
            )
            constraints.append(QuadraticConstraint(quadratic.row, terms))
        return tuple(constraints)

    def _indicators(self) -> tuple[Indicator, ...]:
        indicators = []
        for record in self.indicators.values():
            row = self._known_row(record.row, record.location, "indicator")
            column = self._known_columns(record.location, "indicator", record.column)
            if row and column:
                indicators.append(Indicator(record.row, record.column, record.value))
        return tuple(indicators)

    def _lazy_constraints(self) -> tuple[LazyConstraint, ...]:
        return tuple(
            LazyConstraint(record.row, record.priority)
            for record in self.lazy.values()
            if self._known_row(record.row, record.location, "lazy constraint")
        )

    def _cones(self) -> tuple[Cone, ...]:
        cones = []
        for cone in self.cones:
            what = f"cone {cone.record.name!r}"
            members = tuple(
                (m.column, m.coefficient)
                for m in cone.members
                if self._known_columns(m.location, what, m.column)
            )
            cones.append(Cone(cone.record.name, cone.record.type, members, cone.record.parameter))
        return tuple(cones)

    def _branch_priorities(self) -> tuple[BranchPriority, ...]:
        return tuple(
            BranchPriority(record.column, record.priority, record.direction)
            for record in self.branches.values()
            if self._known_columns(record.location, "branching priority", record.column)
        )

    def _reference_row(self) -> str | None:
        if self.reference_row is None:
            return None
        name, location = self.reference_row
        if name not in self.rows:
            self.ctx.report(
                ErrorKind.REFERENTIAL, f"reference row {name!r} is not declared", location
            )
            return None
        return name

    def finalize(self) -> Model:
        """Validate references and bounds, then freeze the model.

        Problems are appended to the context diagnostics; the returned model
        is only meaningful when none of them is an error.
        """
        objective = self._objective()
        coefficients = {}
        for key, value in self.coefficients.items():
            row, column = key
            if row not in self.rows:
                self.ctx.report(
                    ErrorKind.REFERENTIAL,
                    f"column {column!r} names undeclared row {row!r}",
                    self.coefficient_locations[key],
                )
                continue
            coefficients[key] = value
        rhs = self._resolved(self.rhs)
        ranges = self._resolved(self.ranges)
        columns, bounds = self._columns()
        offset = -rhs[objective] if objective in rhs else self.zero
        return Model(
            name=self.name,
            objective=objective,
            sense=self.sense,
            rows=self._rows(objective),
            columns=columns,
            coefficients=MappingProxyType(coefficients),
            rhs=MappingProxyType(rhs),
            rhs_name=self.rhs.name or None,
            ranges=MappingProxyType(ranges),
            range_name=self.ranges.name or None,
            bounds=bounds,
            bound_name=self.bound_name or None,
            sos=self._sos(),
            objective_offset=offset,
            reference_row=self._reference_row(),
            user_cuts=tuple(self.user_cuts),
            quadratic_objective=self._quadratic_objective(),
            quadratic_constraints=self._quadratic_constraints(),
            indicators=self._indicators(),
            lazy_constraints=self._lazy_constraints(),
            cones=self._cones(),
            branch_priorities=self._branch_priorities(),
            dtype=self.ctx.dtype,
        )


def _apply(
    column: dict,
    kind: BoundKind,
    value: np.floating | None,
    zero: np.floating,
    inf: np.floating,
) -> None:
    """Update resolved bounds of `column` with one BOUNDS entry."""
    if kind in {BoundKind.LO, BoundKind.LI}:
        column["lower"] = value
    elif kind in {BoundKind.UP, BoundKind.UI}:
        column["upper"] = value
    elif kind is BoundKind.FX:
        column["lower"] = column["upper"] = value
    elif kind is BoundKind.FR:
        column["lower"], column["upper"] = -inf, inf
    elif kind is BoundKind.MI:
        column["lower"] = -inf
    elif kind is BoundKind.PL:
        column["upper"] = inf
    elif kind is BoundKind.BV:
        column["lower"], column["upper"] = zero, zero + 1
    elif kind is BoundKind.SC:
        column["semicontinuous"] = True
        if value is not None:
            column["upper"] = value
    if kind in {BoundKind.BV, BoundKind.LI, BoundKind.UI}:
        column["type"] = VariableType.INTEGER
