"""Test :mod:`mpsparse.grammar`."""

# ruff: noqa: S101

from collections.abc import Callable

import numpy as np
import pytest

from mpsparse import grammar
from mpsparse.errors import ErrorKind
from mpsparse.fields import free_tokens
from mpsparse.grammar import BoundRecord, ParseContext, SosMemberRecord, SosSetRecord
from mpsparse.lines import classify
from mpsparse.model import BoundKind, BranchDirection, ConeType


@pytest.fixture
def ctx() -> ParseContext:
    """Fresh double precision context."""
    return ParseContext(np.dtype(np.float64))


def _parse(ctx: ParseContext, parser: Callable, text: str) -> object:
    return parser(ctx, classify(7, 100, text), free_tokens(text))


def test_rows(ctx: ParseContext) -> None:
    """Row types are single letters."""
    record = _parse(ctx, grammar.rows_line, " G  LIM2")
    assert (record.type, record.name, record.location.column) == ("G", "LIM2", 5)
    assert _parse(ctx, grammar.rows_line, " X  LIM2") is None
    assert _parse(ctx, grammar.rows_line, " G") is None
    assert [d.kind for d in ctx.diagnostics] == [ErrorKind.LEXICAL, ErrorKind.LEXICAL]


def test_columns(ctx: ParseContext) -> None:
    """Coefficient pairs and markers."""
    record = _parse(ctx, grammar.columns_line, " x c1 1.5 c2 -2e1")
    assert record.column == "x"
    assert [(e.name, e.value) for e in record.entries] == [("c1", 1.5), ("c2", -20)]
    marker = _parse(ctx, grammar.columns_line, " M 'MARKER' 'INTEND'")
    assert (marker.name, marker.kind) == ("M", grammar.INTEND)
    assert not ctx.diagnostics


@pytest.mark.parametrize(
    ("text", "kind"),
    [
        (" x c1", ErrorKind.LEXICAL),
        (" x c1 1 c2", ErrorKind.LEXICAL),
        (" x c1 one", ErrorKind.NUMERIC),
        (" M 'MARKER' 'INTOR", ErrorKind.LEXICAL),
        (" M 'MARKER' 'BEGIN'", ErrorKind.LEXICAL),
    ],
)
def test_columns_errors(ctx: ParseContext, text: str, kind: ErrorKind) -> None:
    """Malformed lines contribute nothing."""
    assert _parse(ctx, grammar.columns_line, text) is None
    assert [d.kind for d in ctx.diagnostics] == [kind]
    assert ctx.diagnostics[0].location.line == 7


def test_vector(ctx: ParseContext) -> None:
    """The vector name is optional."""
    named = _parse(ctx, grammar.vector_line, " RHS1 LIM1 5 LIM2 10")
    assert named.vector == "RHS1"
    assert [e.name for e in named.entries] == ["LIM1", "LIM2"]
    unnamed = _parse(ctx, grammar.vector_line, " LIM1 5")
    assert unnamed.vector is None
    assert unnamed.location.column == 2


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        (" UP BND x 4", BoundRecord(BoundKind.UP, "BND", "x", 4.0, None)),
        (" UP x 4", BoundRecord(BoundKind.UP, None, "x", 4.0, None)),
        (" MI BND x", BoundRecord(BoundKind.MI, "BND", "x", None, None)),
        (" MI x", BoundRecord(BoundKind.MI, None, "x", None, None)),
        (" BV x 1", BoundRecord(BoundKind.BV, None, "x", 1.0, None)),
        (" FR BND x 3", BoundRecord(BoundKind.FR, "BND", "x", None, None)),
    ],
)
def test_bounds(ctx: ParseContext, text: str, expected: BoundRecord) -> None:
    """Vector name and value are told apart by position and shape."""
    record = _parse(ctx, grammar.bounds_line, text)
    assert (record.kind, record.vector, record.column, record.value) == (
        expected.kind,
        expected.vector,
        expected.column,
        expected.value,
    )


def test_bounds_errors(ctx: ParseContext) -> None:
    """Unknown codes and missing values."""
    assert _parse(ctx, grammar.bounds_line, " XX BND x 4") is None
    assert _parse(ctx, grammar.bounds_line, " LO x") is None
    assert [d.message.split()[0] for d in ctx.diagnostics] == ["invalid", "expected"]


def test_sos(ctx: ParseContext) -> None:
    """Set headers and members."""
    header = _parse(ctx, grammar.sos_line, " S2 SOS set 3")
    assert isinstance(header, SosSetRecord)
    assert (header.type, header.name, header.priority) == (2, "set", 3)
    member = _parse(ctx, grammar.sos_line, " S1 2")
    assert isinstance(member, SosMemberRecord)
    assert (member.set, member.column, member.weight) == (None, "S1", 2)


def test_sense(ctx: ParseContext) -> None:
    """Both abbreviations and long forms, any case."""
    line = classify(1, 0, "    maximize")
    (token,) = free_tokens(line.text)
    assert grammar.sense_token(ctx, line, token) is grammar.SENSES["MAX"]


def test_float32() -> None:
    """Values take the context dtype."""
    ctx = ParseContext(np.dtype(np.float32), tracing=True)
    record = _parse(ctx, grammar.columns_line, " x c1 0.1")
    assert isinstance(record.entries[0].value, np.float32)
    assert ctx.trace == ["7:7 number 0.1 -> np.float32(0.1)"]


def test_sos_open_set(ctx: ParseContext) -> None:
    """Inside a set named S1, ``S1 column weight`` is a member."""
    line = classify(7, 100, " S1 x 1")
    tokens = free_tokens(line.text)
    member = grammar.sos_line(ctx, line, tokens, open_set="S1")
    assert isinstance(member, SosMemberRecord)
    assert (member.set, member.column, member.weight) == ("S1", "x", 1)
    header = grammar.sos_line(ctx, line, tokens)
    assert isinstance(header, SosSetRecord)
    assert (header.name, header.priority) == ("x", 1)
    reopened = _parse(ctx, grammar.sos_line, " S1 SOS S1")
    assert isinstance(reopened, SosSetRecord)


def test_quadratic(ctx: ParseContext) -> None:
    """Quadratic terms name two columns."""
    record = _parse(ctx, grammar.quadratic_line, " x y 1.5")
    assert (record.column1, record.column2, record.value) == ("x", "y", 1.5)
    assert _parse(ctx, grammar.quadratic_line, " x 1.5") is None
    assert [d.kind for d in ctx.diagnostics] == [ErrorKind.LEXICAL]


@pytest.mark.parametrize(
    ("text", "kind"),
    [
        (" IF row x 2", ErrorKind.LEXICAL),
        (" ON row x 1", ErrorKind.LEXICAL),
        (" IF row x", ErrorKind.LEXICAL),
    ],
)
def test_indicator_errors(ctx: ParseContext, text: str, kind: ErrorKind) -> None:
    """Indicators need IF and a 0/1 value."""
    assert _parse(ctx, grammar.indicator_line, text) is None
    assert [d.kind for d in ctx.diagnostics] == [kind]


def test_indicator(ctx: ParseContext) -> None:
    """Value is kept as an int."""
    record = _parse(ctx, grammar.indicator_line, " IF row x 0")
    assert (record.row, record.column, record.value) == ("row", "x", 0)


def test_lazy(ctx: ParseContext) -> None:
    """Priority is an optional leading integer."""
    assert _parse(ctx, grammar.lazy_line, " c1").priority is None
    assert _parse(ctx, grammar.lazy_line, " 3 c1").priority == 3
    assert _parse(ctx, grammar.lazy_line, " 1.5 c1") is None
    assert [d.kind for d in ctx.diagnostics] == [ErrorKind.NUMERIC]


def test_cone(ctx: ParseContext) -> None:
    """CSECTION header and members."""
    line = classify(7, 100, "CSECTION k 0.0 RQUAD")
    header = grammar.cone_header(ctx, line, free_tokens(line.text)[1:])
    assert (header.name, header.type, header.parameter) == ("k", ConeType.RQUAD, 0)
    line = classify(7, 100, "CSECTION k CONE")
    assert grammar.cone_header(ctx, line, free_tokens(line.text)[1:]) is None
    member = _parse(ctx, grammar.cone_line, " x -1")
    assert (member.column, member.coefficient) == ("x", -1)
    assert _parse(ctx, grammar.cone_line, " x").coefficient is None
    assert [d.kind for d in ctx.diagnostics] == [ErrorKind.LEXICAL]


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        (" UP x 4", (BranchDirection.UP, "x", 4)),
        (" DN x 0", (BranchDirection.DOWN, "x", 0)),
        (" x 7", (BranchDirection.AUTO, "x", 7)),
    ],
)
def test_branch(ctx: ParseContext, text: str, expected: tuple) -> None:
    """Direction is optional."""
    record = _parse(ctx, grammar.branch_line, text)
    assert (record.direction, record.column, record.priority) == expected


def test_branch_errors(ctx: ParseContext) -> None:
    """Unknown directions and negative priorities."""
    assert _parse(ctx, grammar.branch_line, " XX x 4") is None
    assert _parse(ctx, grammar.branch_line, " x -1") is None
    assert _parse(ctx, grammar.branch_line, " x high") is None
    assert [d.kind for d in ctx.diagnostics] == [
        ErrorKind.LEXICAL,
        ErrorKind.NUMERIC,
        ErrorKind.NUMERIC,
    ]
