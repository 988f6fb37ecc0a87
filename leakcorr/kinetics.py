import numpy as np
from scipy.integrate import trapezoid

from .errors import ParameterBoundsError
from .validators import as_1d_float_array, check_same_length, check_strictly_increasing

"""
Extended Tofts tissue concentration kernel.

The leaked (extravascular extracellular) tissue concentration is the causal
convolution of the plasma concentration Cp with an exponential residue:

    C(t_k) = Ktrans * integral_0^{t_k} Cp(tau) * exp(-(Ktrans/ve) * (t_k - tau)) dtau

Two numerically equivalent evaluations are provided:

1.  **trapezoid** (reference): every output point re-integrates its full causal
    history with the trapezoidal rule over samples 0..k. O(N^2).
2.  **recursive**: the same trapezoid sum rewritten as a first-order recurrence,
    M_k = exp(-lambda*dt_k) * (M_{k-1} + dt_k/2 * Cp_{k-1}) + dt_k/2 * Cp_k. O(N).
    Agrees with the reference to floating-point rounding.

Unlike the `np.convolve` formulation, both variants accept non-uniform sampling.
"""

KERNEL_METHODS = ("trapezoid", "recursive")


def _validate_kernel_inputs(ktrans: float, ve: float, cp, t) -> tuple[float, float, np.ndarray, np.ndarray]:
    ktrans = float(ktrans)
    ve = float(ve)
    if not np.isfinite(ktrans) or ktrans < 0:
        raise ParameterBoundsError(f"Ktrans must be a non-negative finite number, got {ktrans}.")
    if not np.isfinite(ve) or ve <= 0:
        # Kernel rate is Ktrans/ve; ve = 0 leaves it undefined.
        raise ParameterBoundsError(f"ve must be strictly positive, got {ve}.")

    cp_arr = as_1d_float_array(cp, "cp")
    t_arr = as_1d_float_array(t, "t")
    check_same_length(cp=cp_arr, t=t_arr)
    check_strictly_increasing(t_arr)
    return ktrans, ve, cp_arr, t_arr


def _trapezoid_concentration(ktrans: float, kep: float, cp: np.ndarray, t: np.ndarray) -> np.ndarray:
    C = np.zeros_like(t)
    for k in range(1, len(t)):
        # Exponentially weighted plasma samples within the causal window 0..k
        weighted = cp[:k + 1] * np.exp(-kep * (t[k] - t[:k + 1]))
        C[k] = ktrans * trapezoid(weighted, t[:k + 1])
    return C


def _recursive_concentration(ktrans: float, kep: float, cp: np.ndarray, t: np.ndarray) -> np.ndarray:
    C = np.zeros_like(t)
    integral = 0.0
    for k in range(1, len(t)):
        dt = t[k] - t[k - 1]
        decay = np.exp(-kep * dt)
        integral = decay * (integral + 0.5 * dt * cp[k - 1]) + 0.5 * dt * cp[k]
        C[k] = ktrans * integral
    return C


def extended_tofts_concentration(ktrans: float, ve: float, cp, t, method: str = "trapezoid") -> np.ndarray:
    """
    Computes the leaked tissue concentration of the Extended Tofts model.

    Args:
        ktrans (float): Transfer constant from plasma to the EES (s^-1 when `t` is in s).
                        Must be >= 0; Ktrans = 0 yields an all-zero curve.
        ve (float): Extravascular extracellular volume fraction. Must be > 0.
        cp (array_like): Plasma concentration (AIF) samples, length N >= 1.
        t (array_like): Strictly increasing sample times, length N.
        method (str, optional): "trapezoid" (reference, O(N^2)) or "recursive"
                                (O(N) recurrence). Defaults to "trapezoid".

    Returns:
        np.ndarray: Tissue concentration at each time point. The first sample is
                    always 0 since its integration interval is empty. Output k
                    depends only on cp[:k+1] and t[:k+1].

    Raises:
        ParameterBoundsError: If ktrans < 0 or ve <= 0.
        InputShapeError: If cp/t are empty, of different lengths, or t is not
                         strictly increasing.
        ValueError: If `method` is unknown.
    """
    if method not in KERNEL_METHODS:
        raise ValueError(f"Unknown kernel method '{method}'. Expected one of {KERNEL_METHODS}.")

    ktrans, ve, cp_arr, t_arr = _validate_kernel_inputs(ktrans, ve, cp, t)
    kep = ktrans / ve

    if method == "recursive":
        return _recursive_concentration(ktrans, kep, cp_arr, t_arr)
    return _trapezoid_concentration(ktrans, kep, cp_arr, t_arr)
