import logging
from dataclasses import dataclass

import numpy as np

from .correction import LeakageCorrection, correct_leakage
from .errors import InputShapeError
from .fitting import FitResult
from .kinetics import extended_tofts_concentration
from .modeling import (
    KineticParameters,
    RelaxationParameters,
    fit_dce_signal_ratio,
    fit_dsc_signal_ratio,
)
from .protocol import DCEProtocol, DSCProtocol
from .validators import as_1d_float_array, check_same_length, check_strictly_increasing

"""
End-to-end DCE-informed leakage correction of a DSC curve.

Stages, in order:
1.  Fit the DCE signal-ratio model -> Ktrans, vc, ve.
2.  Compute the leaked tissue concentration with the Extended Tofts kernel.
3.  Truncate AIF, time and leaked concentration to the DSC series length.
4.  Fit the DSC signal-ratio model with the DCE parameters fixed -> T10t, r2t.
5.  Correct the DSC ΔR2* curve.

Both series must share one temporal grid starting at the same time point; the
DSC series may be shorter. No resampling or interpolation is performed.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeakageCorrectionResult:
    """
    Everything a reporting or plotting collaborator needs from one run.

    Attributes:
        kinetic (KineticParameters): DCE-derived Ktrans, ve, vc.
        relaxation (RelaxationParameters): DSC-derived T10t, r2t.
        dce_fit (FitResult): DCE fit with predicted curve for overlay.
        dsc_fit (FitResult): DSC fit with predicted curve for overlay.
        leaked_concentration (np.ndarray): Leaked concentration over the full AIF.
        t_dsc (np.ndarray): Time vector truncated to the DSC length.
        correction (LeakageCorrection): Measured ΔR2*, leakage terms and corrected ΔR2*.
    """
    kinetic: KineticParameters
    relaxation: RelaxationParameters
    dce_fit: FitResult
    dsc_fit: FitResult
    leaked_concentration: np.ndarray
    t_dsc: np.ndarray
    correction: LeakageCorrection


def run_leakage_correction(dce_signal_ratio, dsc_signal_ratio, aif, t,
                           dce_protocol: DCEProtocol, dsc_protocol: DSCProtocol,
                           method: str = "trapezoid",
                           dce_fit_options: dict = None,
                           dsc_fit_options: dict = None) -> LeakageCorrectionResult:
    """
    Runs the DCE fit, DSC fit and leakage correction on one region's curves.

    Args:
        dce_signal_ratio (array_like): Measured DCE signal ratio, length N_dce.
        dsc_signal_ratio (array_like): Measured DSC signal ratio, length N_dsc.
        aif (array_like): Plasma concentration on the shared grid, length
                          >= max(N_dce, N_dsc).
        t (array_like): Sample times (s), same length as `aif`.
        dce_protocol (DCEProtocol): DCE acquisition scalars.
        dsc_protocol (DSCProtocol): DSC acquisition scalars.
        method (str, optional): Tofts kernel variant. Defaults to "trapezoid".
        dce_fit_options (dict, optional): Keyword arguments for `fit_dce_signal_ratio`
                                          (initial_params, bounds_params, solver options).
        dsc_fit_options (dict, optional): Keyword arguments for `fit_dsc_signal_ratio`.

    Returns:
        LeakageCorrectionResult: Parameters, fits and correction curves.

    Raises:
        InputShapeError: If the AIF is shorter than either signal series, the AIF
                         and time vector differ in length, or any array is
                         malformed.
        ParameterBoundsError: Propagated from the fitting stages.
    """
    dce_sr = as_1d_float_array(dce_signal_ratio, "dce_signal_ratio")
    dsc_sr = as_1d_float_array(dsc_signal_ratio, "dsc_signal_ratio")
    aif_arr = as_1d_float_array(aif, "aif")
    t_arr = as_1d_float_array(t, "t")
    check_same_length(aif=aif_arr, t=t_arr)
    check_strictly_increasing(t_arr)

    n_dce, n_dsc = len(dce_sr), len(dsc_sr)
    if len(aif_arr) < max(n_dce, n_dsc):
        raise InputShapeError(
            f"AIF has {len(aif_arr)} samples but the DCE/DSC series need {max(n_dce, n_dsc)}."
        )

    logger.info("Stage 1: fitting DCE signal ratio model (%d samples)...", n_dce)
    kinetic, dce_fit = fit_dce_signal_ratio(
        dce_sr, aif_arr[:n_dce], t_arr[:n_dce], dce_protocol, method=method, **(dce_fit_options or {})
    )
    if not dce_fit.converged:
        logger.warning("DCE fit did not converge; continuing with the best iterate %s.", kinetic)

    logger.info("Stage 2: computing leaked tissue concentration...")
    leaked = extended_tofts_concentration(kinetic.ktrans, kinetic.ve, aif_arr, t_arr, method=method)

    # Align every curve with the DSC series before the DSC stage.
    aif_dsc = aif_arr[:n_dsc]
    t_dsc = t_arr[:n_dsc]
    leaked_dsc = leaked[:n_dsc]

    logger.info("Stage 3: fitting DSC signal ratio model (%d samples)...", n_dsc)
    relaxation, dsc_fit = fit_dsc_signal_ratio(
        dsc_sr, aif_dsc, t_dsc, kinetic, dsc_protocol, method=method, **(dsc_fit_options or {})
    )
    if not dsc_fit.converged:
        logger.warning("DSC fit did not converge; continuing with the best iterate %s.", relaxation)

    logger.info("Stage 4: computing leakage correction...")
    correction = correct_leakage(
        dsc_sr, dsc_protocol.te, dsc_protocol.tr, relaxation.t10t, relaxation.r2t,
        leaked_dsc, r1=dsc_protocol.r1
    )

    return LeakageCorrectionResult(
        kinetic=kinetic,
        relaxation=relaxation,
        dce_fit=dce_fit,
        dsc_fit=dsc_fit,
        leaked_concentration=leaked,
        t_dsc=t_dsc,
        correction=correction,
    )
