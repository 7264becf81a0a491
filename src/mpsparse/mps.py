"""Parse Mathematical Programming System problems."""

import logging
from dataclasses import dataclass, field

import numpy as np
import numpy.typing as npt

from mpsparse.builder import ModelBuilder
from mpsparse.errors import Diagnostic, MpsParseError, ordered
from mpsparse.fields import COMMENT_DELIMITERS, Format, FormatDetector
from mpsparse.grammar import ParseContext
from mpsparse.lines import LineStream
from mpsparse.model import Model
from mpsparse.numeric import resolve_dtype
from mpsparse.sections import SectionMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ParseOptions:
    """Knobs of a single parse.

    `format` set to :attr:`Format.FREE` skips fixed-column detection, the
    default tries fixed columns and falls back to free form.  With `trace`
    set, state transitions and token provenance land in
    :attr:`ParseResult.trace` and on the ``mpsparse`` loggers at DEBUG level.
    """

    format: Format | None = None
    trace: bool = False
    comment_delimiters: tuple[str, ...] = COMMENT_DELIMITERS


@dataclass(frozen=True, slots=True)
class ParseResult:
    """Model, if any, with every diagnostic sorted by position."""

    model: Model | None
    diagnostics: tuple[Diagnostic, ...] = ()
    trace: tuple[str, ...] = field(default=(), compare=False)

    @property
    def ok(self) -> bool:
        """Whether a model was produced."""
        return self.model is not None

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        """Diagnostics that prevented the model."""
        return tuple(d for d in self.diagnostics if d.is_error)

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        """Diagnostics that travel with the model."""
        return tuple(d for d in self.diagnostics if not d.is_error)

    def unwrap(self) -> Model:
        """Return the model or raise :class:`~mpsparse.errors.MpsParseError`."""
        if self.model is None:
            raise MpsParseError(self.diagnostics)
        return self.model


def parse_mps(
    text: str,
    dtype: npt.DTypeLike = np.float64,
    *,
    options: ParseOptions | None = None,
) -> ParseResult:
    """Parse fixed or free MPS `text` with values of floating `dtype`.

    Args:
        text: whole MPS file contents
        dtype: numpy floating type of every parsed value
        options: detection, comment and tracing settings

    Returns:
        :class:`ParseResult` whose model is :data:`None` if any error was found

    Raises:
        ValueError: if `dtype` is not a floating type

    >>> result = parse_mps("NAME T\\nROWS\\n N  COST\\nCOLUMNS\\n    X  COST  1\\nENDATA\\n")
    >>> result.ok, [c.name for c in result.model.columns]
    (True, ['X'])
    >>> result.model.coefficients[("COST", "X")]
    np.float64(1.0)
    """
    options = options or ParseOptions()
    detector = FormatDetector(delimiters=tuple(options.comment_delimiters))
    if options.format is Format.FREE:
        detector.format = Format.FREE
    ctx = ParseContext(resolve_dtype(dtype), detector, options.trace)
    builder = ModelBuilder(ctx)
    machine = SectionMachine(ctx, builder)
    for line in LineStream(text):
        machine.feed(line)
    machine.finish()
    model = builder.finalize()
    diagnostics = ordered(ctx.diagnostics)
    errors = sum(d.is_error for d in diagnostics)
    logger.debug(
        "parsed %r: %d rows, %d columns, %d coefficients, %s format, %d error(s), %d warning(s)",
        model.name,
        len(model.rows),
        len(model.columns),
        len(model.coefficients),
        detector.format.value,
        errors,
        len(diagnostics) - errors,
    )
    return ParseResult(None if errors else model, diagnostics, tuple(ctx.trace))
