"""Immutable problem model produced by :func:`mpsparse.mps.parse_mps`."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

import numpy as np
from scipy import sparse


class RowType(Enum):
    """Kind of a row.  ``FREE`` marks every N row but the objective."""

    OBJECTIVE = "N"
    LESS_EQUAL = "L"
    GREATER_EQUAL = "G"
    EQUAL = "E"
    FREE = "FREE"


class VariableType(Enum):
    """Domain of a column."""

    CONTINUOUS = "continuous"
    INTEGER = "integer"


class BoundKind(Enum):
    """Bound codes of the BOUNDS section."""

    LO = "LO"  # lower bound     :  l_j <= x_j <= inf
    UP = "UP"  # upper bound     :    0 <= x_j <= u_j
    FX = "FX"  # fixed variable  :  l_j == x_j == u_j
    FR = "FR"  # free variable   : -inf <= x_j <= inf
    MI = "MI"  # unbounded below : -inf <= x_j
    PL = "PL"  # unbounded above :         x_j <= inf
    BV = "BV"  # binary variable :  x_j in {0, 1}
    LI = "LI"  # lower integer   :  l_j <= x_j, x_j integer
    UI = "UI"  # upper integer   :  x_j <= u_j, x_j integer
    SC = "SC"  # semi-continuous :  x_j = 0 or l_j <= x_j <= u_j

    @property
    def needs_value(self) -> bool:
        """Whether the bound line must carry a number."""
        return self in _VALUED


_VALUED = frozenset({BoundKind.LO, BoundKind.UP, BoundKind.FX, BoundKind.LI, BoundKind.UI})


class ObjectiveSense(Enum):
    """Optimization direction from the OBJSENSE section."""

    MIN = "MIN"
    MAX = "MAX"


class ConeType(Enum):
    """Second-order cone of a CSECTION."""

    QUAD = "QUAD"  # x_1 >= ||(x_2, ..., x_n)||
    RQUAD = "RQUAD"  # 2 x_1 x_2 >= ||(x_3, ..., x_n)||^2


class BranchDirection(Enum):
    """Preferred first branch of a BRANCH entry."""

    UP = "UP"
    DOWN = "DN"
    ROUNDING = "RD"
    CLOSEST_BOUND = "CB"
    AUTO = ""


@dataclass(frozen=True, slots=True)
class Row:
    """A constraint or objective row."""

    name: str
    type: RowType


@dataclass(frozen=True, slots=True)
class Column:
    """A decision variable with its resolved bounds."""

    name: str
    type: VariableType = VariableType.CONTINUOUS
    lower: float = 0.0
    upper: float = np.inf
    semicontinuous: bool = False


@dataclass(frozen=True, slots=True)
class Bound:
    """One accepted BOUNDS entry; `value` is :data:`None` for FR, MI and PL."""

    column: str
    kind: BoundKind
    value: float | None = None


@dataclass(frozen=True, slots=True)
class SosSet:
    """Special ordered set of type 1 or 2."""

    name: str
    type: int
    members: tuple[tuple[str, float], ...] = ()
    priority: float | None = None


@dataclass(frozen=True, slots=True)
class QuadraticTerm:
    """``value * column1 * column2``."""

    column1: str
    column2: str
    value: float


@dataclass(frozen=True, slots=True)
class QuadraticConstraint:
    """Quadratic part ``x'Qx`` of a constraint row, from QCMATRIX."""

    row: str
    terms: tuple[QuadraticTerm, ...] = ()


@dataclass(frozen=True, slots=True)
class Indicator:
    """`row` is enforced only when binary `column` equals `value`."""

    row: str
    column: str
    value: int


@dataclass(frozen=True, slots=True)
class LazyConstraint:
    """A row the solver may leave out until it is violated."""

    row: str
    priority: int | None = None


@dataclass(frozen=True, slots=True)
class Cone:
    """Second-order cone over `members`; a member without coefficient uses 1."""

    name: str
    type: ConeType
    members: tuple[tuple[str, float | None], ...] = ()
    parameter: float | None = None


@dataclass(frozen=True, slots=True)
class BranchPriority:
    """Branching order hint for an integer column."""

    column: str
    priority: int
    direction: BranchDirection = BranchDirection.AUTO


def _frozen(mapping: Mapping | None = None) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(slots=True)
class CscBuilder:
    """Build CSC sparse array incrementally.

    :class:`scipy.sparse.csc_array` is made up of three :class:`numpy.array`
    which are not optimized for appending.  Simple python :class:`list` perform
    better.
    """

    indptr: list[int] = field(default_factory=list)
    indices: list[int] = field(default_factory=list)
    data: list[float] = field(default_factory=list)

    def insert(self, row: int, col: int, value: float) -> None:
        """Insert `value` at `(row, col)`; columns must arrive in order."""
        while col >= len(self.indptr):
            self.indptr.append(len(self.indices))
        self.indices.append(row)
        self.data.append(value)

    def build(self, shape: tuple[int, int], dtype: np.dtype) -> sparse.csc_array:
        """Close pending columns and hand the lists to scipy."""
        while len(self.indptr) <= shape[1]:
            self.indptr.append(len(self.indices))
        return sparse.csc_array(
            (np.asarray(self.data, dtype=dtype), self.indices, self.indptr), shape=shape
        )


@dataclass(frozen=True, slots=True)
class Model:
    """Parsed MPS problem.

    `coefficients` maps ``(row, column)`` to a value; the objective row is a
    row like any other.  `rhs`, `ranges` map row names to values of the
    first RHS and RANGES vectors in the file.  All values are numpy scalars
    of `dtype`.

    `quadratic_objective` always lists both ``(i, j)`` and ``(j, i)`` for an
    off-diagonal entry, whichever of QUADOBJ, QSECTION or QMATRIX declared
    it.  Rows named in `user_cuts` are also part of `rows`.
    """

    name: str = ""
    objective: str | None = None
    sense: ObjectiveSense = ObjectiveSense.MIN
    rows: tuple[Row, ...] = ()
    columns: tuple[Column, ...] = ()
    coefficients: Mapping[tuple[str, str], float] = field(default_factory=_frozen)
    rhs: Mapping[str, float] = field(default_factory=_frozen)
    rhs_name: str | None = None
    ranges: Mapping[str, float] = field(default_factory=_frozen)
    range_name: str | None = None
    bounds: tuple[Bound, ...] = ()
    bound_name: str | None = None
    sos: tuple[SosSet, ...] = ()
    objective_offset: float = 0.0
    reference_row: str | None = None
    user_cuts: tuple[str, ...] = ()
    quadratic_objective: tuple[QuadraticTerm, ...] = ()
    quadratic_constraints: tuple[QuadraticConstraint, ...] = ()
    indicators: tuple[Indicator, ...] = ()
    lazy_constraints: tuple[LazyConstraint, ...] = ()
    cones: tuple[Cone, ...] = ()
    branch_priorities: tuple[BranchPriority, ...] = ()
    dtype: np.dtype = field(default=np.dtype(np.float64))

    def row(self, name: str) -> Row:
        """Look up a row by name."""
        return self.rows[self._row_index()[name]]

    def column(self, name: str) -> Column:
        """Look up a column by name."""
        return self.columns[self._column_index()[name]]

    @property
    def integer_columns(self) -> tuple[str, ...]:
        """Names of integer columns in declaration order."""
        return tuple(c.name for c in self.columns if c.type is VariableType.INTEGER)

    def _row_index(self) -> dict[str, int]:
        return {row.name: i for i, row in enumerate(self.rows)}

    def _column_index(self) -> dict[str, int]:
        return {column.name: i for i, column in enumerate(self.columns)}

    def coefficient_matrix(self) -> sparse.csc_array:
        """Constraint matrix, objective row included, one row per :attr:`rows`."""
        rows = self._row_index()
        columns = self._column_index()
        builder = CscBuilder()
        for (row, column), value in self.coefficients.items():
            builder.insert(rows[row], columns[column], value)
        return builder.build((len(self.rows), len(self.columns)), self.dtype)

    def objective_vector(self) -> np.ndarray:
        """Dense objective coefficients, zeros if there is no objective row."""
        c = np.zeros(len(self.columns), dtype=self.dtype)
        if self.objective is None:
            return c
        columns = self._column_index()
        for (row, column), value in self.coefficients.items():
            if row == self.objective:
                c[columns[column]] = value
        return c

    def _square(self, terms: tuple[QuadraticTerm, ...]) -> sparse.csc_array:
        columns = self._column_index()
        n = len(self.columns)
        i = np.asarray([columns[t.column1] for t in terms], dtype=np.intp)
        j = np.asarray([columns[t.column2] for t in terms], dtype=np.intp)
        data = np.asarray([t.value for t in terms], dtype=self.dtype)
        return sparse.coo_array((data, (i, j)), shape=(n, n)).tocsc()

    def quadratic_objective_matrix(self) -> sparse.csc_array:
        """Symmetric Q of the objective ``c'x + 1/2 x'Qx``."""
        return self._square(self.quadratic_objective)

    def quadratic_constraint_matrix(self, row: str) -> sparse.csc_array:
        """Q of the QCMATRIX attached to `row`, empty if there is none."""
        for constraint in self.quadratic_constraints:
            if constraint.row == row:
                return self._square(constraint.terms)
        return self._square(())

    def column_bounds(self) -> tuple[np.ndarray, np.ndarray]:
        """Lower and upper bound vectors."""
        lower = np.array([c.lower for c in self.columns], dtype=self.dtype)
        upper = np.array([c.upper for c in self.columns], dtype=self.dtype)
        return lower, upper

    def row_limits(self) -> tuple[np.ndarray, np.ndarray]:
        """Activity limits ``L <= A x <= U`` from RHS and RANGES.

        With right-hand side b and range R (Maros, CTSM p.91):

        ========  ===========  ===========  ===========
        Row type  Sign of R    L            U
        ========  ===========  ===========  ===========
        L         + or -       b - abs(R)   b
        G         + or -       b            b + abs(R)
        E         +            b            b + abs(R)
        E         -            b - abs(R)   b
        E         0            b            b
        ========  ===========  ===========  ===========

        N rows, objective or free, are unbounded.
        """
        lower = np.full(len(self.rows), -np.inf, dtype=self.dtype)
        upper = np.full(len(self.rows), np.inf, dtype=self.dtype)
        zero = self.dtype.type(0)
        for i, row in enumerate(self.rows):
            b = self.rhs.get(row.name, zero)
            r = self.ranges.get(row.name)
            if row.type is RowType.LESS_EQUAL:
                upper[i] = b
                if r is not None:
                    lower[i] = b - abs(r)
            elif row.type is RowType.GREATER_EQUAL:
                lower[i] = b
                if r is not None:
                    upper[i] = b + abs(r)
            elif row.type is RowType.EQUAL:
                lower[i] = upper[i] = b
                if r is not None and r > 0:
                    upper[i] = b + abs(r)
                elif r is not None and r < 0:
                    lower[i] = b - abs(r)
        return lower, upper
