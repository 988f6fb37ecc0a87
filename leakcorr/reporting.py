from dataclasses import asdict

import numpy as np

from .correction import LeakageCorrection
from .fitting import FitResult
from .modeling import KineticParameters, RelaxationParameters

"""
Human-readable summaries of fitted parameters and leakage-correction curves.

It includes utilities to:
- Format kinetic and relaxation parameters with their units.
- Format the goodness of fit and convergence state of a fit.
- Calculate descriptive statistics (mean, min, max, peak time) of a curve.
- Summarise the measured, leakage and corrected ΔR2* curves.
"""

PARAMETER_UNITS = {
    "ktrans": "1/s",
    "ve": "",
    "vc": "",
    "t10t": "s",
    "r2t": "1/(mM*s)",
}


def _format_parameters(title: str, params: dict) -> str:
    lines = [title]
    for name, value in params.items():
        unit = PARAMETER_UNITS.get(name, "")
        lines.append(f"  {name}: {value:.6g}" + (f" {unit}" if unit else ""))
    return "\n".join(lines)


def format_kinetic_parameters(kinetic: KineticParameters) -> str:
    """Formats Ktrans, vc and ve as a multi-line string."""
    return _format_parameters("DCE kinetic parameters:", asdict(kinetic))


def format_relaxation_parameters(relaxation: RelaxationParameters) -> str:
    """Formats T10t and r2t as a multi-line string."""
    return _format_parameters("DSC relaxation parameters:", asdict(relaxation))


def format_fit_result(fit: FitResult, fit_name: str = "Fit") -> str:
    """
    Formats the goodness of fit, convergence state and parameter confidence
    bounds of a fit.

    Args:
        fit (FitResult): Result returned by one of the fitting functions.
        fit_name (str, optional): Label used in the heading. Defaults to "Fit".

    Returns:
        str: A multi-line formatted string.
    """
    gof = fit.gof
    status = "converged" if fit.converged else "NOT converged (best iterate returned)"
    lines = [
        f"{fit_name} goodness of fit ({status}):",
        f"  SSE: {gof.sse:.6g}",
        f"  R^2: {gof.r_squared:.4f}",
        f"  Adjusted R^2: {gof.adj_r_squared:.4f}",
        f"  RMSE: {gof.rmse:.6g}",
        f"  Standard error: {gof.standard_error:.6g}",
        f"  DFE: {gof.dfe}",
        f"  Iterations: {gof.n_iterations} ({gof.n_function_evals} function evaluations)",
    ]
    if fit.confidence_intervals:
        lines.append("  95% confidence bounds:")
        for name, (lo, hi) in fit.confidence_intervals.items():
            lines.append(f"    {name}: [{lo:.6g}, {hi:.6g}]")
    if fit.message:
        lines.append(f"  Solver: {fit.message}")
    return "\n".join(lines)


def calculate_curve_statistics(values: np.ndarray, t: np.ndarray = None) -> dict:
    """
    Calculates basic statistics of a curve.

    Args:
        values (np.ndarray): Curve samples.
        t (np.ndarray, optional): Sample times. When given, "PeakTime" is the
                                  time of the maximum; otherwise its index.

    Returns:
        dict: {"N", "Mean", "Min", "Max", "PeakTime"}. Statistics are NaN for an
              empty curve.

    Raises:
        ValueError: If `t` is given with a different length than `values`.
    """
    values = np.asarray(values, dtype=np.float64)
    if t is not None and len(t) != len(values):
        raise ValueError("values and t must have the same length.")
    if values.size == 0:
        return {"N": 0, "Mean": np.nan, "Min": np.nan, "Max": np.nan, "PeakTime": np.nan}

    peak_index = int(np.argmax(values))
    return {
        "N": values.size,
        "Mean": float(np.mean(values)),
        "Min": float(np.min(values)),
        "Max": float(np.max(values)),
        "PeakTime": float(t[peak_index]) if t is not None else peak_index,
    }


def format_correction_summary(correction: LeakageCorrection, t: np.ndarray = None) -> str:
    """
    Summarises the four ΔR2* curves of a leakage correction (values in 1/s).

    Args:
        correction (LeakageCorrection): Output of `correct_leakage`.
        t (np.ndarray, optional): DSC sample times for the peak time column.

    Returns:
        str: One line of statistics per curve.
    """
    curves = {
        "Measured dR2*": correction.measured_delta_r2star,
        "T1 leakage term": correction.t1_leakage_term,
        "T2* leakage term": correction.t2star_leakage_term,
        "Corrected dR2*": correction.corrected_delta_r2star,
    }
    lines = ["Leakage correction (1/s):"]
    for name, values in curves.items():
        stats = calculate_curve_statistics(values, t)
        lines.append(
            f"  {name:<17} mean={stats['Mean']:.4f} min={stats['Min']:.4f} "
            f"max={stats['Max']:.4f} peak@{stats['PeakTime']:g}"
        )
    return "\n".join(lines)
