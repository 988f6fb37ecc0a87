"""Exception and warning types raised by the leakage-correction modules.

All errors derive from ``ValueError`` so callers that already guard numerical
routines with ``except ValueError`` keep working.
"""


class LeakageModelError(ValueError):
    """Base class for invalid inputs to the modeling and fitting routines."""


class InputShapeError(LeakageModelError):
    """
    Raised for malformed input arrays.

    Covers mismatched vector lengths, non-increasing time vectors, empty input,
    non-finite samples and samples outside the physical domain of a formula
    (e.g. a non-positive signal ratio passed to a logarithm).
    """


class ParameterBoundsError(LeakageModelError):
    """
    Raised for invalid parameter values or bounds.

    Covers any lower bound greater than its upper bound, an initial guess
    outside its bounds, and physically meaningless scalars such as ve <= 0 in
    the Tofts kernel or a non-positive repetition time.
    """


class ConvergenceWarning(UserWarning):
    """Emitted when the solver stops on its iteration cap without meeting tolerance."""
