import numpy as np

from .errors import InputShapeError, ParameterBoundsError

"""
Input validation helpers shared by the kinetic, relaxation and fitting modules.

Every public routine converts its array arguments through `as_1d_float_array`
and checks lengths and time ordering here, so that malformed input is rejected
at the component boundary with an `InputShapeError` before any numerical work
starts.
"""


def as_1d_float_array(values, name: str, allow_empty: bool = False) -> np.ndarray:
    """
    Converts `values` to a 1D float64 NumPy array.

    Args:
        values (array_like): Sequence of numbers (list, tuple or array).
        name (str): Argument name used in error messages.
        allow_empty (bool, optional): Accept zero-length input. Defaults to False.

    Returns:
        np.ndarray: 1D float array (a copy when a conversion was needed).

    Raises:
        InputShapeError: If the input is not one-dimensional, is empty, or
                         contains non-finite values.
    """
    try:
        arr = np.asarray(values, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InputShapeError(f"{name} must be a numeric sequence: {e}")

    if arr.ndim != 1:
        raise InputShapeError(f"{name} must be a 1D array, got {arr.ndim} dimensions.")
    if arr.size == 0 and not allow_empty:
        raise InputShapeError(f"{name} must not be empty.")
    if not np.all(np.isfinite(arr)):
        raise InputShapeError(f"{name} contains non-finite values.")
    return arr


def check_same_length(**arrays: np.ndarray) -> int:
    """
    Checks that all keyword arrays share one length and returns it.

    Raises:
        InputShapeError: If the lengths differ.
    """
    lengths = {name: len(arr) for name, arr in arrays.items()}
    if len(set(lengths.values())) > 1:
        details = ", ".join(f"{name}={n}" for name, n in lengths.items())
        raise InputShapeError(f"Input arrays must have the same length ({details}).")
    return next(iter(lengths.values()))


def check_strictly_increasing(t: np.ndarray, name: str = "t") -> None:
    """Raises InputShapeError unless `t` is strictly increasing."""
    if t.size > 1 and np.any(np.diff(t) <= 0):
        raise InputShapeError(f"Time vector '{name}' must be strictly increasing.")


def check_positive(name: str, value: float) -> float:
    """Returns `value` as float, raising ParameterBoundsError unless it is > 0 and finite."""
    value = float(value)
    if not np.isfinite(value) or value <= 0:
        raise ParameterBoundsError(f"{name} must be a positive finite number, got {value}.")
    return value


def check_non_negative(name: str, value: float) -> float:
    """Returns `value` as float, raising ParameterBoundsError unless it is >= 0 and finite."""
    value = float(value)
    if not np.isfinite(value) or value < 0:
        raise ParameterBoundsError(f"{name} must be a non-negative finite number, got {value}.")
    return value
