import numpy as np

from .protocol import reference_protocol

"""
Reference region-of-interest data from an enhancing glioma.

The curves come from a single patient examination: a DCE signal-ratio curve,
the arterial input function measured in the DCE series after inflow and
partial-volume correction (https://doi.org/10.1002/nbm.5225), and a DSC
signal-ratio curve manually time-aligned to the DCE series. Both modalities
are sampled at the same temporal resolution; the DSC series is shorter.
"""

TEMPORAL_RESOLUTION = 2.0  # s, shared by DCE and DSC

DCE_SIGNAL_RATIO = np.array([
    1.08,0.99,0.96,0.99,1.01,1.00,0.99,0.99,1.02,0.98,
    0.98,1.00,1.01,1.19,1.60,1.95,1.95,1.90,1.74,1.66,
    1.65,1.68,1.70,1.67,1.70,1.70,1.73,1.71,1.74,1.75,
    1.76,1.78,1.80,1.80,1.80,1.80,1.79,1.85,1.85,1.84,
    1.83,1.86,1.86,1.83,1.85,1.84,1.84,1.89,1.88,1.89,
    1.91,1.89,1.95,1.92,1.93,1.91,1.91,1.94,1.97,1.92,
    1.94,1.96,1.94,1.96,1.96,1.97,1.95,2.00,2.00,2.02,
    1.98,2.03,1.98,2.02,1.99,2.00,2.07,2.01,2.01,2.01,
    2.02,2.01,2.07,2.04,2.02,2.05,2.06,2.05,2.07,2.12,
    2.05,2.10,2.13,2.08,2.10,2.10,2.14,2.13,2.12,2.19
])
"""Measured DCE signal ratio in enhancing tumour (100 samples)."""

AIF = np.array([
    0, -0.04, -0.02, -0.01, 0.03, 0.03, 0.02, 0.04, -0.01, -0.02,
    -0.02, 0, 0.03, 2.14, 6.22, 8.56, 6.90, 4.54, 2.89, 1.87,
    1.59, 1.68, 1.88, 2.04, 2.05, 1.94, 1.90, 1.73, 1.76, 1.76,
    1.83, 1.79, 1.75, 1.79, 1.69, 1.61, 1.55, 1.48, 1.57, 1.55,
    1.47, 1.46, 1.40, 1.42, 1.38, 1.33, 1.32, 1.29, 1.28, 1.31,
    1.35, 1.39, 1.36, 1.35, 1.26, 1.19, 1.17, 1.17, 1.21, 1.18,
    1.17, 1.13, 1.12, 1.16, 1.14, 1.20, 1.15, 1.16, 1.13, 1.08,
    1.13, 1.14, 1.18, 1.12, 1.09, 1.13, 1.09, 1.11, 1.03, 1.05,
    1.03, 1.03, 1.05, 1.01, 0.96, 1.03, 1.00, 1.01, 1.04, 1.03,
    1.08, 1.02, 1.04, 1.05, 0.95, 0.92, 1.00, 1.01, 1.06, 1.01
])
"""Plasma concentration (mM) measured in the DCE series (100 samples)."""

DSC_SIGNAL_RATIO = np.array([
    1.00, 1.00, 1.00, 1.00, 1.00, 1.00, 1.00, 1.01, 1.00, 1.01,
    1.00, 1.00, 0.98, 0.88, 0.72, 0.62, 0.61, 0.65, 0.70, 0.76,
    0.81, 0.84, 0.85, 0.85, 0.86, 0.85, 0.85, 0.86, 0.85, 0.85,
    0.85, 0.86, 0.86, 0.87, 0.86, 0.87, 0.87, 0.87, 0.86, 0.86,
    0.86, 0.86, 0.86, 0.87
])
"""Measured DSC signal ratio in enhancing tumour, time-aligned to the DCE series (44 samples)."""


def time_vector(n_samples: int, temporal_resolution: float = TEMPORAL_RESOLUTION) -> np.ndarray:
    """Returns the sample times 0, dt, ..., (n_samples - 1) * dt in seconds."""
    return np.arange(n_samples, dtype=np.float64) * temporal_resolution


def load_reference_data() -> dict:
    """
    Returns copies of the reference curves together with their time vector.

    Returns:
        dict: Keys "dce_signal_ratio", "dsc_signal_ratio", "aif", "t" (the DCE
              time vector) and "temporal_resolution".
    """
    return {
        "dce_signal_ratio": DCE_SIGNAL_RATIO.copy(),
        "dsc_signal_ratio": DSC_SIGNAL_RATIO.copy(),
        "aif": AIF.copy(),
        "t": time_vector(len(DCE_SIGNAL_RATIO)),
        "temporal_resolution": TEMPORAL_RESOLUTION,
    }


def reference_protocols():
    """Returns the (DCEProtocol, DSCProtocol) of the reference acquisition."""
    return reference_protocol("dce"), reference_protocol("dsc")
