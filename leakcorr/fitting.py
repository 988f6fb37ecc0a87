import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import numpy as np
from scipy.optimize import least_squares
from scipy.stats import t as student_t

from .errors import ConvergenceWarning, InputShapeError, ParameterBoundsError
from .validators import as_1d_float_array, check_same_length

"""
Bounded nonlinear least-squares fitting.

`fit_bounded_least_squares` is the single fitting routine behind both forward
models. The model is passed in as a plain callable following the
`scipy.optimize.curve_fit` convention, ``model(xdata, *params)``, so the DCE and
DSC stages only differ in the closure they supply.

The optimisation uses the Trust Region Reflective algorithm
(`scipy.optimize.least_squares`, method 'trf'), whose iterates stay strictly
inside the parameter box. A parameter whose lower and upper bound coincide is
held fixed at that value.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GoodnessOfFit:
    """
    Goodness-of-fit metrics of a least-squares fit.

    Attributes:
        sse (float): Sum of squared residuals.
        r_squared (float): Coefficient of determination. NaN when the measured
                           data have zero variance.
        adj_r_squared (float): Degrees-of-freedom adjusted R². NaN when dfe <= 0.
        rmse (float): Root-mean-square residual, sqrt(sse / n).
        standard_error (float): Residual standard error, sqrt(sse / dfe). NaN when
                                dfe <= 0.
        dfe (int): Residual degrees of freedom (samples minus free parameters).
        n_iterations (int): Solver iterations (Jacobian evaluations).
        n_function_evals (int): Model evaluations, excluding finite-difference steps.
    """
    sse: float
    r_squared: float
    adj_r_squared: float
    rmse: float
    standard_error: float
    dfe: int
    n_iterations: int
    n_function_evals: int


@dataclass(frozen=True)
class FitResult:
    """
    Outcome of one fit call. Created once and never modified.

    Attributes:
        parameters: Fitted parameters. A name -> value dict from the generic
                    solver; the modeling functions substitute
                    `KineticParameters` / `RelaxationParameters`.
        predicted (np.ndarray): Model prediction at the fitted parameters,
                                aligned with the measured curve (read-only).
        gof (GoodnessOfFit): Goodness-of-fit metrics.
        converged (bool): False when the function-evaluation cap was hit before
                          any tolerance was met. The best iterate is still returned.
        message (str): Termination message of the solver.
        confidence_intervals (dict): Parameter name -> (lower, upper) 95%
                                     confidence bounds. (nan, nan) for fixed
                                     parameters, when dfe <= 0 or when the
                                     Jacobian is rank deficient.
    """
    parameters: Any
    predicted: np.ndarray
    gof: GoodnessOfFit
    converged: bool
    message: str = ""
    confidence_intervals: dict = field(default_factory=dict)


def goodness_of_fit(measured: np.ndarray, predicted: np.ndarray, n_free_params: int,
                    n_iterations: int = 0, n_function_evals: int = 0) -> GoodnessOfFit:
    """Computes SSE, R², adjusted R², RMS residual, standard error and degrees of freedom."""
    residuals = predicted - measured
    n = measured.size
    sse = float(np.sum(residuals ** 2))
    sst = float(np.sum((measured - np.mean(measured)) ** 2))
    dfe = n - n_free_params

    r_squared = 1.0 - sse / sst if sst > 0 else np.nan
    if dfe > 0 and np.isfinite(r_squared):
        adj_r_squared = 1.0 - (1.0 - r_squared) * (n - 1) / dfe
    else:
        adj_r_squared = np.nan

    return GoodnessOfFit(
        sse=sse,
        r_squared=float(r_squared),
        adj_r_squared=float(adj_r_squared),
        rmse=float(np.sqrt(sse / n)),
        standard_error=float(np.sqrt(sse / dfe)) if dfe > 0 else np.nan,
        dfe=int(dfe),
        n_iterations=int(n_iterations),
        n_function_evals=int(n_function_evals),
    )


def confidence_intervals(params: np.ndarray, jacobian: np.ndarray, sse: float, dfe: int,
                         level: float = 0.95) -> list[tuple[float, float]]:
    """
    Student-t confidence bounds of least-squares parameter estimates.

    The covariance is inv(JᵀJ) * sse / dfe, with J the residual Jacobian at the
    solution (one column per parameter).

    Args:
        params (np.ndarray): Fitted parameter values.
        jacobian (np.ndarray): Residual Jacobian, shape (n_samples, n_params).
        sse (float): Sum of squared residuals at `params`.
        dfe (int): Residual degrees of freedom.
        level (float, optional): Confidence level. Defaults to 0.95.

    Returns:
        list[tuple[float, float]]: (lower, upper) per parameter; (nan, nan) for
                                   all parameters when dfe <= 0 or JᵀJ is singular.
    """
    params = np.asarray(params, dtype=np.float64)
    undefined = [(np.nan, np.nan)] * params.size
    if dfe <= 0:
        return undefined

    jtj = jacobian.T @ jacobian
    if not np.all(np.isfinite(jtj)) or np.linalg.matrix_rank(jacobian) < params.size:
        return undefined
    try:
        covariance = np.linalg.inv(jtj) * (sse / dfe)
    except np.linalg.LinAlgError:
        return undefined

    variances = np.diag(covariance)
    if np.any(variances < 0):
        return undefined
    half_width = student_t.ppf(0.5 + level / 2.0, dfe) * np.sqrt(variances)
    return [(float(p - h), float(p + h)) for p, h in zip(params, half_width)]


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, dtype=np.float64)
    arr.setflags(write=False)
    return arr


def fit_bounded_least_squares(model: Callable[..., np.ndarray], xdata: Any, ydata: Sequence[float],
                              lower: Sequence[float], upper: Sequence[float],
                              initial_guess: Sequence[float], param_names: Sequence[str] = None,
                              max_iterations: int = 1000, xtol: float = 1e-8, ftol: float = 1e-8,
                              gtol: float = 1e-8) -> FitResult:
    """
    Fits `model` to `ydata` by box-constrained nonlinear least squares.

    Args:
        model (callable): ``model(xdata, *params) -> np.ndarray`` returning one
                          prediction per element of `ydata`.
        xdata: Independent variables, passed through to `model` unchanged
               (e.g. a ``(cp, t)`` tuple).
        ydata (array_like): Measured values.
        lower (array_like): Lower bound per parameter.
        upper (array_like): Upper bound per parameter. Equal bounds fix a parameter.
        initial_guess (array_like): Starting point, inside [lower, upper].
        param_names (sequence of str, optional): Names used as keys of
                                                 `FitResult.parameters`.
                                                 Defaults to "p0", "p1", ...
        max_iterations (int, optional): Passed to `least_squares` as `max_nfev`,
                                        so it caps residual evaluations
                                        (finite-difference steps excluded),
                                        not Jacobian updates. Defaults to 1000.
        xtol, ftol, gtol (float, optional): Parameter-change, cost-change and
                                            gradient tolerances. Default 1e-8.

    Returns:
        FitResult: Parameters as a name -> value dict, the predicted curve,
                   goodness of fit, convergence flag and 95% confidence bounds.
                   The returned parameters never have a larger SSE than
                   `initial_guess`.

    Raises:
        InputShapeError: If `ydata` is empty or non-finite, the bound / guess /
                         name vectors differ in length, or the model output
                         does not match `ydata` (or is non-finite) at the
                         initial guess.
        ParameterBoundsError: If any lower bound exceeds its upper bound or the
                              initial guess lies outside the bounds.
        ValueError: If `max_iterations` < 1.
    """
    y = as_1d_float_array(ydata, "ydata")
    lb = as_1d_float_array(lower, "lower")
    ub = as_1d_float_array(upper, "upper")
    p0 = as_1d_float_array(initial_guess, "initial_guess")
    n_params = check_same_length(lower=lb, upper=ub, initial_guess=p0)

    if param_names is None:
        param_names = [f"p{i}" for i in range(n_params)]
    param_names = list(param_names)
    if len(param_names) != n_params:
        raise InputShapeError(f"Expected {n_params} parameter names, got {len(param_names)}.")

    inverted = [name for name, lo, hi in zip(param_names, lb, ub) if lo > hi]
    if inverted:
        raise ParameterBoundsError(f"Lower bound exceeds upper bound for parameter(s): {inverted}")
    outside = [name for name, lo, hi, x in zip(param_names, lb, ub, p0) if not (lo <= x <= hi)]
    if outside:
        raise ParameterBoundsError(f"Initial guess lies outside the bounds for parameter(s): {outside}")
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}.")

    free = lb < ub

    def full_params(free_values: np.ndarray) -> np.ndarray:
        p = p0.copy()
        p[free] = free_values
        return p

    def predict(p: np.ndarray) -> np.ndarray:
        return np.asarray(model(xdata, *p), dtype=np.float64)

    predicted_initial = predict(p0)
    if predicted_initial.shape != y.shape:
        raise InputShapeError(
            f"Model output shape {predicted_initial.shape} does not match data shape {y.shape}."
        )
    if not np.all(np.isfinite(predicted_initial)):
        raise InputShapeError("Model output is not finite at the initial guess.")
    initial_sse = float(np.sum((predicted_initial - y) ** 2))

    if not np.any(free):
        # Every parameter is fixed; nothing to optimise.
        logger.debug("All parameters fixed; evaluating model only.")
        return FitResult(
            parameters=dict(zip(param_names, p0.tolist())),
            predicted=_readonly(predicted_initial),
            gof=goodness_of_fit(y, predicted_initial, 0, 0, 1),
            converged=True,
            message="All parameters fixed by their bounds.",
            confidence_intervals={name: (np.nan, np.nan) for name in param_names},
        )

    def residuals(free_values: np.ndarray) -> np.ndarray:
        return predict(full_params(free_values)) - y

    logger.debug("Starting bounded fit of %s from %s", param_names, p0.tolist())
    result = least_squares(
        residuals, p0[free],
        bounds=(lb[free], ub[free]),
        method='trf',       # Trust Region Reflective, keeps iterates inside the box
        x_scale='jac',      # parameters span several orders of magnitude
        xtol=xtol, ftol=ftol, gtol=gtol,
        max_nfev=max_iterations,
    )

    p_fit = np.clip(full_params(result.x), lb, ub)
    predicted = predict(p_fit)
    sse = float(np.sum((predicted - y) ** 2))
    kept_initial = not np.isfinite(sse) or sse > initial_sse
    if kept_initial:
        # Keep whichever iterate has the lower objective.
        p_fit, predicted, sse = p0, predicted_initial, initial_sse

    converged = bool(result.status > 0)
    n_iterations = result.njev if result.njev is not None else result.nfev
    gof = goodness_of_fit(y, predicted, int(np.count_nonzero(free)), n_iterations, result.nfev)

    # Bounds exist for free parameters only; result.jac belongs to result.x.
    intervals = {name: (np.nan, np.nan) for name in param_names}
    if not kept_initial:
        free_names = [name for name, is_free in zip(param_names, free) if is_free]
        free_bounds = confidence_intervals(p_fit[free], result.jac, sse, gof.dfe)
        intervals.update(zip(free_names, free_bounds))

    if converged:
        logger.debug("Fit converged after %d iterations (SSE %.6g): %s",
                     gof.n_iterations, sse, result.message)
    else:
        msg = (f"Fit of {param_names} did not converge within {max_iterations} function evaluations; "
               f"returning best iterate (SSE {sse:.6g}).")
        warnings.warn(msg, ConvergenceWarning, stacklevel=2)

    return FitResult(
        parameters=dict(zip(param_names, p_fit.tolist())),
        predicted=_readonly(predicted),
        gof=gof,
        converged=converged,
        message=str(result.message),
        confidence_intervals=intervals,
    )
