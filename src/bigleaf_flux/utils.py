"""
Utility functions shared by the surface-layer calculations.

This module provides helper functions for:
1. The missing-value sentinel and its detection
2. Broadcasting scalar and sequence inputs to a common shape
3. Lifting vectorised formulas to element-wise scalar/series evaluation
4. Column lookup on observation tables
"""

import functools
from typing import Any, Callable, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError

MISSING = pd.NA

Numeric = Union[float, np.ndarray, pd.Series]


def is_missing(value: Any) -> bool:
    """True for ``None``, ``pandas.NA`` and non-finite scalar values."""
    if value is None or value is pd.NA:
        return True
    try:
        return not np.isfinite(float(value))
    except (TypeError, ValueError):
        return True


def _is_scalar(value: Any) -> bool:
    return value is None or value is pd.NA or np.ndim(value) == 0


def as_float_array(value: Any) -> np.ndarray:
    """
    Convert *value* to a float ``ndarray`` with ``nan`` marking missing
    entries.

    ``None``, ``pandas.NA`` and infinite values are treated as missing.
    Scalars become 0-d arrays.
    """
    if value is None or value is pd.NA:
        return np.array(np.nan)
    if np.ndim(value) == 0:
        arr = np.array(np.nan if is_missing(value) else float(value))
    elif isinstance(value, np.ndarray) and value.dtype.kind in "biuf":
        arr = value.astype(float)
    else:
        series = value if isinstance(value, pd.Series) else pd.Series(value)
        arr = series.to_numpy(dtype=float, na_value=np.nan)
    return np.where(np.isfinite(arr), arr, np.nan)


def broadcast_inputs(
    *values: Any,
) -> Tuple[Tuple[np.ndarray, ...], bool, Optional[pd.Index]]:
    """
    Broadcast scalar and sequence inputs to a common one-dimensional shape.

    Returns
    -------
    arrays : tuple of ndarray
        Float arrays of the broadcast shape, ``nan`` where missing.
    is_scalar : bool
        True when every input was a scalar.
    index : pandas.Index or None
        Index of the first ``pandas.Series`` argument, if any.

    Raises
    ------
    ConfigurationError
        If the sequence inputs do not share the same length.
    """
    is_scalar = all(_is_scalar(v) for v in values)
    index = next((v.index for v in values if isinstance(v, pd.Series)), None)
    arrays = [as_float_array(v) for v in values]

    try:
        broadcast_shape = np.broadcast_shapes(*(a.shape for a in arrays))
    except ValueError as e:
        raise ConfigurationError(f"Input columns have unequal lengths: {e}") from None

    if len(broadcast_shape) > 1:
        raise ConfigurationError("Only scalars and one-dimensional sequences are supported")
    if index is not None and broadcast_shape and len(index) != broadcast_shape[0]:
        raise ConfigurationError("Input columns have unequal lengths")

    arrays = tuple(np.broadcast_to(a, broadcast_shape) for a in arrays)
    return arrays, is_scalar, index


def to_output(
    values: np.ndarray,
    is_scalar: bool,
    index: Optional[pd.Index] = None,
    name: Optional[str] = None,
) -> Union[float, "pd.NA", pd.Series]:
    """
    Convert a computed float array to the public result type.

    Non-finite entries become ``pandas.NA``. Scalar calls give a ``float``
    or ``pandas.NA``; sequence calls give a nullable ``Float64`` series.
    """
    values = np.asarray(values, dtype=float)
    mask = ~np.isfinite(values)
    if is_scalar:
        return MISSING if mask.item() else float(values.item())

    values = np.atleast_1d(values)
    mask = np.atleast_1d(mask)
    if index is None:
        index = pd.RangeIndex(len(values))
    data = pd.arrays.FloatingArray(np.where(mask, 0.0, values), mask)
    return pd.Series(data, index=index, name=name)


def elementwise(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Lift a vectorised numpy formula to element-wise evaluation.

    The positional arguments of *func* are the numeric inputs; they are
    broadcast to a common shape and any row with a missing input is
    masked before the result is converted by :func:`to_output`.
    Keyword arguments are passed through unchanged. Functions returning
    a tuple of arrays get each element converted.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        arrays, is_scalar, index = broadcast_inputs(*args)
        valid = np.all([~np.isnan(a) for a in arrays], axis=0) if arrays else True

        with np.errstate(all="ignore"):
            result = func(*arrays, **kwargs)

        if isinstance(result, tuple):
            return tuple(
                to_output(np.where(valid, r, np.nan), is_scalar, index) for r in result
            )
        return to_output(np.where(valid, result, np.nan), is_scalar, index)

    return wrapper


def get_column(data: Mapping[str, Any], name: str) -> Any:
    """
    Return column *name* of an observation table.

    Raises
    ------
    ConfigurationError
        If the column is absent; required columns are never defaulted.
    """
    try:
        columns = data.columns if isinstance(data, pd.DataFrame) else data.keys()
    except AttributeError:
        raise ConfigurationError(
            f"Observation data must be a DataFrame or mapping, got {type(data).__name__}"
        ) from None
    if name not in columns:
        raise ConfigurationError(f"Required column {name!r} is missing from the data")
    return data[name]


def table_length(data: Mapping[str, Any]) -> int:
    """Number of rows of a DataFrame or mapping of equal-length columns."""
    if isinstance(data, pd.DataFrame):
        return len(data)
    lengths = {len(v) for v in data.values() if np.ndim(v) > 0}
    if len(lengths) > 1:
        raise ConfigurationError("Input columns have unequal lengths")
    return lengths.pop() if lengths else 1


def table_index(data: Mapping[str, Any]) -> pd.Index:
    """Row index of the table: the DataFrame index or a range index."""
    if isinstance(data, pd.DataFrame):
        return data.index
    return pd.RangeIndex(table_length(data))
