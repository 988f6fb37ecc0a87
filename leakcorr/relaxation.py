import numpy as np

"""
Steady-state MR signal equations shared by the DCE and DSC forward models.

All functions are vectorised: rates and concentrations may be scalars or NumPy
arrays, and the result broadcasts accordingly. Times are in seconds, rates in
s^-1, flip angles in degrees.
"""


def spgr_signal_fraction(r1: np.ndarray, tr: float, flip_angle: float) -> np.ndarray:
    """
    Spoiled gradient echo steady-state signal fraction.

    S(R1) = (1 - exp(-TR*R1)) / (1 - cos(FA) * exp(-TR*R1))

    The sin(FA) and M0 factors are omitted; they cancel in every signal ratio.

    Args:
        r1 (np.ndarray): Longitudinal relaxation rate(s) R1 (s^-1).
        tr (float): Repetition time (s).
        flip_angle (float): Flip angle (degrees).

    Returns:
        np.ndarray: Signal fraction for each R1 value.
    """
    E1 = np.exp(-tr * np.asarray(r1, dtype=np.float64))
    return (1.0 - E1) / (1.0 - np.cos(np.deg2rad(flip_angle)) * E1)


def t2star_weighting(r2: np.ndarray, te: float) -> np.ndarray:
    """T2*-weighting factor E2(R2*) = exp(-TE * R2*)."""
    return np.exp(-te * np.asarray(r2, dtype=np.float64))


def relaxation_rate(baseline_rate: float, relaxivity: float, concentration: np.ndarray) -> np.ndarray:
    """
    Contrast-modulated relaxation rate R(t) = R_baseline + r * C(t).

    Used for R1 with the longitudinal relaxivity r1 and for R2* with the
    transverse relaxivity of the compartment.
    """
    return baseline_rate + relaxivity * np.asarray(concentration, dtype=np.float64)
