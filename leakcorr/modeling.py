import logging
from dataclasses import dataclass, replace

import numpy as np

from .errors import InputShapeError, ParameterBoundsError
from .fitting import FitResult, fit_bounded_least_squares
from .kinetics import extended_tofts_concentration
from .protocol import DCEProtocol, DSCProtocol
from .relaxation import relaxation_rate, spgr_signal_fraction, t2star_weighting
from .validators import as_1d_float_array, check_same_length

"""
Signal-ratio forward models for DCE and DSC acquisitions and their fits.

Both models describe a voxel as a blood (vascular) compartment of volume
fraction vc and a tissue compartment of fraction 1 - vc. Contrast agent in
plasma shortens blood T1 (and T2* for DSC); agent leaked into the EES, given by
the Extended Tofts kernel, shortens tissue T1 and T2*. The measured quantity is
the post- to pre-contrast signal ratio, so M0 and sin(FA) cancel.

1.  **DCE**: T1-weighted spoiled gradient echo. Fits (Ktrans, vc, ve).
2.  **DSC**: T1/T2*-weighted gradient echo. Ktrans, ve and vc are taken from
    the DCE fit; fits the tissue T10 and tissue T2* relaxivity r2t.

The fits wrap the forward model in a closure over the independent variables
(Cp, t) and the protocol, and hand it to `fit_bounded_least_squares`.
"""

logger = logging.getLogger(__name__)

# --- Default fit settings ---
DCE_PARAM_NAMES = ("ktrans", "vc", "ve")
DCE_INITIAL_PARAMS = (0.001, 0.01, 0.01)
DCE_BOUNDS = ([0.0, 0.0, 0.0], [0.01, 1.0, 1.0])

DSC_PARAM_NAMES = ("t10t", "r2t")
DSC_INITIAL_PARAMS = (0.5, 30.0)
DSC_BOUNDS = ([0.0, 0.0], [5.0, 300.0])


@dataclass(frozen=True)
class KineticParameters:
    """
    Extended Tofts parameters estimated from DCE.

    Attributes:
        ktrans (float): Plasma-to-EES transfer constant (s^-1), >= 0.
        ve (float): Extravascular extracellular volume fraction, in (0, 1].
        vc (float): Vascular (blood plasma) volume fraction, in [0, 1].
    """
    ktrans: float
    ve: float
    vc: float

    def __post_init__(self):
        if not np.isfinite(self.ktrans) or self.ktrans < 0:
            raise ParameterBoundsError(f"ktrans must be >= 0, got {self.ktrans}.")
        if not np.isfinite(self.ve) or not (0.0 < self.ve <= 1.0):
            raise ParameterBoundsError(f"ve must lie in (0, 1], got {self.ve}.")
        if not np.isfinite(self.vc) or not (0.0 <= self.vc <= 1.0):
            raise ParameterBoundsError(f"vc must lie in [0, 1], got {self.vc}.")


@dataclass(frozen=True)
class RelaxationParameters:
    """
    Tissue relaxation parameters estimated from DSC.

    Attributes:
        t10t (float): Pre-contrast tissue T1 (s), > 0.
        r2t (float): Tissue T2* relaxivity (mM^-1 s^-1), >= 0.
    """
    t10t: float
    r2t: float

    def __post_init__(self):
        if not np.isfinite(self.t10t) or self.t10t <= 0:
            raise ParameterBoundsError(f"t10t must be > 0, got {self.t10t}.")
        if not np.isfinite(self.r2t) or self.r2t < 0:
            raise ParameterBoundsError(f"r2t must be >= 0, got {self.r2t}.")


def _check_vc(vc: float) -> float:
    vc = float(vc)
    if not np.isfinite(vc) or not (0.0 <= vc <= 1.0):
        raise ParameterBoundsError(f"vc must lie in [0, 1], got {vc}.")
    return vc


def _two_compartment_signal(vc: float, blood_signal: np.ndarray, tissue_signal: np.ndarray) -> np.ndarray:
    return vc * blood_signal + (1.0 - vc) * tissue_signal


# --- DCE Forward Model ---
def dce_signal_ratio(ktrans: float, vc: float, ve: float, cp, t, protocol: DCEProtocol,
                     method: str = "trapezoid") -> np.ndarray:
    """
    Predicts the DCE signal ratio S(t)/S(0) of a blood/tissue voxel.

    R1_blood(t)  = 1/T10_blood  + r1 * (1 - Hct) * Cp(t)
    R1_tissue(t) = 1/T10_tissue + r1 * C_tofts(t)
    ratio(t) = [vc*S(R1_blood) + (1-vc)*S(R1_tissue)] / (same at zero concentration)

    Args:
        ktrans (float): Transfer constant (s^-1).
        vc (float): Vascular volume fraction in [0, 1].
        ve (float): EES volume fraction, > 0.
        cp (array_like): Plasma concentration (AIF) in mM.
        t (array_like): Sample times (s), same length as `cp`.
        protocol (DCEProtocol): DCE acquisition scalars.
        method (str, optional): Tofts kernel variant. Defaults to "trapezoid".

    Returns:
        np.ndarray: Predicted signal ratio, one value per time point.

    Raises:
        ParameterBoundsError: If ktrans < 0, ve <= 0 or vc outside [0, 1].
        InputShapeError: If cp/t are malformed.
    """
    vc = _check_vc(vc)
    cp_arr = as_1d_float_array(cp, "cp")
    tissue_conc = extended_tofts_concentration(ktrans, ve, cp_arr, t, method=method)

    r1_blood_0 = 1.0 / protocol.t10_blood
    r1_tissue_0 = 1.0 / protocol.t10_tissue

    r1_blood = relaxation_rate(r1_blood_0, protocol.r1 * protocol.plasma_fraction, cp_arr)
    r1_tissue = relaxation_rate(r1_tissue_0, protocol.r1, tissue_conc)

    signal = _two_compartment_signal(
        vc,
        spgr_signal_fraction(r1_blood, protocol.tr, protocol.flip_angle),
        spgr_signal_fraction(r1_tissue, protocol.tr, protocol.flip_angle),
    )
    baseline = _two_compartment_signal(
        vc,
        spgr_signal_fraction(r1_blood_0, protocol.tr, protocol.flip_angle),
        spgr_signal_fraction(r1_tissue_0, protocol.tr, protocol.flip_angle),
    )
    return signal / baseline


def fit_dce_signal_ratio(signal_ratio, cp, t, protocol: DCEProtocol,
                         initial_params: tuple = DCE_INITIAL_PARAMS,
                         bounds_params: tuple = DCE_BOUNDS,
                         method: str = "trapezoid",
                         **solver_options) -> tuple[KineticParameters, FitResult]:
    """
    Fits the DCE signal-ratio model for (Ktrans, vc, ve).

    Args:
        signal_ratio (array_like): Measured DCE signal ratio.
        cp (array_like): Plasma concentration (AIF), same length.
        t (array_like): Sample times (s), same length.
        protocol (DCEProtocol): DCE acquisition scalars.
        initial_params (tuple, optional): Initial guess for [ktrans, vc, ve].
                                          Defaults to (0.001, 0.01, 0.01).
        bounds_params (tuple, optional): Bounds ([min_vals], [max_vals]) for
                                         [ktrans, vc, ve]. Defaults to
                                         ([0, 0, 0], [0.01, 1, 1]).
        method (str, optional): Tofts kernel variant. Defaults to "trapezoid".
        **solver_options: Passed to `fit_bounded_least_squares` (max_iterations,
                          xtol, ftol, gtol).

    Returns:
        tuple: (kinetic_parameters, fit_result)
            - kinetic_parameters (KineticParameters): Fitted values.
            - fit_result (FitResult): Predicted curve, goodness of fit and
              convergence flag; `parameters` holds the same KineticParameters.
              Non-convergence is reported here, not raised.

    Raises:
        InputShapeError: For mismatched or malformed input arrays.
        ParameterBoundsError: For inverted bounds or an out-of-bounds guess.
    """
    y = as_1d_float_array(signal_ratio, "signal_ratio")
    cp_arr = as_1d_float_array(cp, "cp")
    t_arr = as_1d_float_array(t, "t")
    check_same_length(signal_ratio=y, cp=cp_arr, t=t_arr)

    def objective_func(xdata, ktrans, vc, ve):
        cp_obj, t_obj = xdata
        return dce_signal_ratio(ktrans, vc, ve, cp_obj, t_obj, protocol, method=method)

    lower, upper = bounds_params
    fit = fit_bounded_least_squares(
        objective_func, (cp_arr, t_arr), y, lower, upper, initial_params,
        param_names=DCE_PARAM_NAMES, **solver_options
    )
    kinetic = KineticParameters(
        ktrans=fit.parameters["ktrans"], ve=fit.parameters["ve"], vc=fit.parameters["vc"]
    )
    logger.info("DCE fit: Ktrans=%.6g, vc=%.6g, ve=%.6g (R^2=%.4f, converged=%s)",
                kinetic.ktrans, kinetic.vc, kinetic.ve, fit.gof.r_squared, fit.converged)
    return kinetic, replace(fit, parameters=kinetic)


# --- DSC Forward Model ---
def residual_blood_concentration(cp: np.ndarray, tail_samples: int) -> float:
    """Mean plasma concentration over the last `tail_samples` samples (post-bolus steady state)."""
    cp = np.asarray(cp, dtype=np.float64)
    n = min(int(tail_samples), cp.size)
    return float(np.mean(cp[-n:]))


def _dsc_ratio(t10t: float, r2t: float, cp: np.ndarray, tissue_conc: np.ndarray, vc: float,
               protocol: DSCProtocol, ref_conc: float) -> np.ndarray:
    plasma = protocol.plasma_fraction

    r1_blood_0 = 1.0 / protocol.t10_blood + protocol.r1 * plasma * ref_conc
    r2_blood_0 = 1.0 / protocol.t2star_blood
    r1_tissue_0 = 1.0 / t10t
    r2_tissue_0 = 1.0 / protocol.t2star_tissue

    r1_blood = relaxation_rate(r1_blood_0, protocol.r1 * plasma, cp)
    r2_blood = relaxation_rate(r2_blood_0, protocol.r2_blood * plasma, cp)
    r1_tissue = relaxation_rate(r1_tissue_0, protocol.r1, tissue_conc)
    # Vascular agent is folded into the tissue T2* rate
    r2_tissue = relaxation_rate(r2_tissue_0, r2t, tissue_conc + vc * plasma * cp)

    def compartment_signal(r1, r2):
        return (spgr_signal_fraction(r1, protocol.tr, protocol.flip_angle)
                * t2star_weighting(r2, protocol.te))

    signal = _two_compartment_signal(
        vc, compartment_signal(r1_blood, r2_blood), compartment_signal(r1_tissue, r2_tissue)
    )
    baseline = _two_compartment_signal(
        vc, compartment_signal(r1_blood_0, r2_blood_0), compartment_signal(r1_tissue_0, r2_tissue_0)
    )
    return signal / baseline


def dsc_signal_ratio(t10t: float, r2t: float, cp, t, kinetic: KineticParameters,
                     protocol: DSCProtocol, method: str = "trapezoid") -> np.ndarray:
    """
    Predicts the DSC signal ratio S(t)/S(0) of a blood/tissue voxel.

    R1_blood(t)  = 1/T10_blood + r1*(1-Hct)*Cref + r1*(1-Hct)*Cp(t)
    R2*_blood(t) = 1/T2*_blood + r2_blood*(1-Hct)*Cp(t)
    R1_tissue(t) = 1/T10t + r1*C_tofts(t)
    R2*_tissue(t) = 1/T2*_tissue + r2t*(C_tofts(t) + vc*(1-Hct)*Cp(t))

    where Cref is the mean of the last `protocol.tail_samples` Cp samples.
    ratio(t) = [vc*S(R1_b)*E2(R2*_b) + (1-vc)*S(R1_t)*E2(R2*_t)] / (same at baseline)

    Args:
        t10t (float): Pre-contrast tissue T1 (s), > 0.
        r2t (float): Tissue T2* relaxivity (mM^-1 s^-1).
        cp (array_like): Plasma concentration (AIF) in mM.
        t (array_like): Sample times (s), same length as `cp`.
        kinetic (KineticParameters): Ktrans, ve, vc from the DCE fit.
        protocol (DSCProtocol): DSC acquisition scalars.
        method (str, optional): Tofts kernel variant. Defaults to "trapezoid".

    Returns:
        np.ndarray: Predicted signal ratio, one value per time point.

    Raises:
        ParameterBoundsError: If t10t <= 0.
        InputShapeError: If cp/t are malformed.
    """
    if not np.isfinite(t10t) or t10t <= 0:
        raise ParameterBoundsError(f"t10t must be > 0, got {t10t}.")
    cp_arr = as_1d_float_array(cp, "cp")
    tissue_conc = extended_tofts_concentration(kinetic.ktrans, kinetic.ve, cp_arr, t, method=method)
    ref_conc = residual_blood_concentration(cp_arr, protocol.tail_samples)
    return _dsc_ratio(t10t, r2t, cp_arr, tissue_conc, kinetic.vc, protocol, ref_conc)


def fit_dsc_signal_ratio(signal_ratio, cp, t, kinetic: KineticParameters, protocol: DSCProtocol,
                         initial_params: tuple = DSC_INITIAL_PARAMS,
                         bounds_params: tuple = DSC_BOUNDS,
                         method: str = "trapezoid",
                         **solver_options) -> tuple[RelaxationParameters, FitResult]:
    """
    Fits the DSC signal-ratio model for (T10t, r2t) with Ktrans, ve, vc fixed.

    The arrays must already be aligned to the DSC series; no resampling is done.

    Args:
        signal_ratio (array_like): Measured DSC signal ratio.
        cp (array_like): Plasma concentration (AIF) truncated to the DSC length.
        t (array_like): Sample times (s), same length.
        kinetic (KineticParameters): Parameters from `fit_dce_signal_ratio`.
        protocol (DSCProtocol): DSC acquisition scalars.
        initial_params (tuple, optional): Initial guess for [t10t, r2t].
                                          Defaults to (0.5, 30).
        bounds_params (tuple, optional): Bounds for [t10t, r2t].
                                         Defaults to ([0, 0], [5, 300]).
        method (str, optional): Tofts kernel variant. Defaults to "trapezoid".
        **solver_options: Passed to `fit_bounded_least_squares`.

    Returns:
        tuple: (relaxation_parameters, fit_result)

    Raises:
        InputShapeError: For mismatched or malformed input arrays.
        ParameterBoundsError: For inverted bounds, an out-of-bounds guess, or
                              a lower t10t bound that makes the start point 0.
    """
    y = as_1d_float_array(signal_ratio, "signal_ratio")
    cp_arr = as_1d_float_array(cp, "cp")
    t_arr = as_1d_float_array(t, "t")
    check_same_length(signal_ratio=y, cp=cp_arr, t=t_arr)

    # Ktrans and ve are fixed, so the leaked concentration is computed once.
    tissue_conc = extended_tofts_concentration(kinetic.ktrans, kinetic.ve, cp_arr, t_arr, method=method)
    ref_conc = residual_blood_concentration(cp_arr, protocol.tail_samples)

    def objective_func(xdata, t10t, r2t):
        cp_obj, conc_obj = xdata
        if t10t <= 0:
            raise ParameterBoundsError(f"t10t must be > 0, got {t10t}.")
        return _dsc_ratio(t10t, r2t, cp_obj, conc_obj, kinetic.vc, protocol, ref_conc)

    lower, upper = bounds_params
    fit = fit_bounded_least_squares(
        objective_func, (cp_arr, tissue_conc), y, lower, upper, initial_params,
        param_names=DSC_PARAM_NAMES, **solver_options
    )
    relaxation = RelaxationParameters(t10t=fit.parameters["t10t"], r2t=fit.parameters["r2t"])
    logger.info("DSC fit: T10t=%.6g s, r2t=%.6g (R^2=%.4f, converged=%s)",
                relaxation.t10t, relaxation.r2t, fit.gof.r_squared, fit.converged)
    return relaxation, replace(fit, parameters=relaxation)
