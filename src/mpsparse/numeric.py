"""Parse textual MPS numbers into a caller-chosen floating dtype."""

import re

import numpy as np
import numpy.typing as npt

_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def resolve_dtype(dtype: npt.DTypeLike) -> np.dtype:
    """Check that `dtype` is an IEEE-754-like floating type.

    >>> resolve_dtype("float32")
    dtype('float32')
    >>> resolve_dtype(int)
    Traceback (most recent call last):
    ...
    ValueError: MPS values need a floating dtype, got int64

    """
    resolved = np.dtype(dtype)
    if not np.issubdtype(resolved, np.floating):
        msg = f"MPS values need a floating dtype, got {resolved}"
        raise ValueError(msg)
    return resolved


def is_number(token: str) -> bool:
    """Test for decimal or exponential notation.

    >>> is_number("-1.")
    True
    >>> is_number(".301")
    True
    >>> is_number("1e-3")
    True
    >>> is_number("nan")
    False
    >>> is_number("1_000")
    False
    """
    return _NUMBER.fullmatch(token) is not None


def parse_number(token: str, dtype: np.dtype) -> np.floating:
    """Convert `token` to a finite scalar of `dtype`.

    Args:
        token: text of a single numeric field
        dtype: floating dtype, see :func:`resolve_dtype`

    Returns:
        numpy scalar of `dtype`

    Raises:
        ValueError: if `token` is not a number or does not fit `dtype`

    >>> parse_number("2.5", np.dtype("float32"))
    np.float32(2.5)
    >>> parse_number("1e39", np.dtype("float32"))
    Traceback (most recent call last):
    ...
    ValueError: '1e39' is not finite as float32

    """
    if not is_number(token):
        msg = f"{token!r} is not a number"
        raise ValueError(msg)
    with np.errstate(over="ignore"):
        value = dtype.type(token)
    if not np.isfinite(value):
        msg = f"{token!r} is not finite as {dtype}"
        raise ValueError(msg)
    return value
