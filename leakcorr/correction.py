from dataclasses import dataclass

import numpy as np

from .errors import InputShapeError
from .protocol import R1_GADOLINIUM
from .validators import as_1d_float_array, check_non_negative, check_positive, check_same_length

"""
Leakage correction of the DSC ΔR2* curve.

Extravasated contrast agent contaminates the DSC signal in two opposing ways:
T1 shortening raises the signal (underestimating ΔR2*) and T2* shortening in the
EES lowers it (overestimating ΔR2*). With the leaked concentration C(t) from the
Extended Tofts kernel and the fitted tissue T10 and r2t:

    ΔR2*_meas(t) = -(1/TE) * ln(SR(t))
    T1 term(t)   = (1/TE) * ln[(1 - exp(-TR/T10t) * exp(-TR*r1*C(t))) / (1 - exp(-TR/T10t))]
    T2* term(t)  = r2t * C(t)
    ΔR2*_corr(t) = ΔR2*_meas(t) + T1 term(t) - T2* term(t)
"""


@dataclass(frozen=True)
class LeakageCorrection:
    """
    Curves produced by `correct_leakage`, all aligned with the DSC time vector (s^-1).

    Attributes:
        measured_delta_r2star (np.ndarray): ΔR2* derived from the measured signal ratio.
        t1_leakage_term (np.ndarray): T1-shortening contribution (added back).
        t2star_leakage_term (np.ndarray): T2*-shortening contribution (subtracted).
        corrected_delta_r2star (np.ndarray): Leakage-corrected ΔR2*.
    """
    measured_delta_r2star: np.ndarray
    t1_leakage_term: np.ndarray
    t2star_leakage_term: np.ndarray
    corrected_delta_r2star: np.ndarray


def delta_r2star(signal_ratio, te: float) -> np.ndarray:
    """
    Converts a DSC signal ratio to ΔR2* = -(1/TE) * ln(signal_ratio).

    Raises:
        InputShapeError: If any signal ratio sample is <= 0.
        ParameterBoundsError: If te <= 0.
    """
    te = check_positive("te", te)
    sr = as_1d_float_array(signal_ratio, "signal_ratio")
    if np.any(sr <= 0):
        raise InputShapeError("signal_ratio must be strictly positive to take its logarithm.")
    return (-1.0 / te) * np.log(sr)


def correct_leakage(signal_ratio, te: float, tr: float, t10t: float, r2t: float,
                    leaked_concentration, r1: float = R1_GADOLINIUM) -> LeakageCorrection:
    """
    Corrects a DSC ΔR2* curve for T1 and T2* leakage effects.

    Args:
        signal_ratio (array_like): Measured DSC signal ratio S(t)/S(0).
        te (float): DSC echo time (s).
        tr (float): DSC repetition time (s).
        t10t (float): Fitted pre-contrast tissue T1 (s).
        r2t (float): Fitted tissue T2* relaxivity (mM^-1 s^-1).
        leaked_concentration (array_like): Extended Tofts tissue concentration on
                                           the DSC time grid (mM), same length.
        r1 (float, optional): Longitudinal relaxivity (mM^-1 s^-1). Defaults to 4.5.

    Returns:
        LeakageCorrection: Measured ΔR2*, both leakage terms and the corrected ΔR2*.

    Raises:
        InputShapeError: For empty or mismatched arrays or a non-positive signal ratio.
        ParameterBoundsError: If te, tr or t10t <= 0, or r2t or r1 < 0.
    """
    te = check_positive("te", te)
    tr = check_positive("tr", tr)
    t10t = check_positive("t10t", t10t)
    r2t = check_non_negative("r2t", r2t)
    r1 = check_non_negative("r1", r1)
    sr = as_1d_float_array(signal_ratio, "signal_ratio")
    conc = as_1d_float_array(leaked_concentration, "leaked_concentration")
    check_same_length(signal_ratio=sr, leaked_concentration=conc)

    measured = delta_r2star(sr, te)

    E10 = np.exp(-tr / t10t)
    t1_term = (1.0 / te) * np.log((1.0 - E10 * np.exp(-tr * r1 * conc)) / (1.0 - E10))
    t2star_term = r2t * conc

    corrected = measured + t1_term - t2star_term
    return LeakageCorrection(
        measured_delta_r2star=measured,
        t1_leakage_term=t1_term,
        t2star_leakage_term=t2star_term,
        corrected_delta_r2star=corrected,
    )
