import json
import logging
from dataclasses import dataclass, fields, replace

import numpy as np

from .errors import ParameterBoundsError

"""
Acquisition protocol configuration for the DCE and DSC stages.

This module provides:
- Literature constants used by the forward models (blood T10, hematocrit,
  gadolinium relaxivities, baseline T2*).
- Immutable protocol dataclasses (`DCEProtocol`, `DSCProtocol`) validated on
  construction.
- Metadata describing every protocol field, with the reference glioma
  acquisition values as defaults.
- Loading of protocol overrides from a JSON file.
"""

logger = logging.getLogger(__name__)

# --- Literature constants ---
R1_GADOLINIUM = 4.5      # mM^-1 s^-1, longitudinal relaxivity
R2STAR_BLOOD = 6.0       # mM^-1 s^-1, transverse (T2*) relaxivity of blood
HEMATOCRIT = 0.45        # large-vessel hematocrit; plasma fraction is 1 - Hct
T10_BLOOD = 1.8          # s, pre-contrast blood T1
T2STAR_BLOOD = 0.02      # s, pre-contrast blood T2*
T2STAR_TISSUE = 0.02     # s, pre-contrast tissue T2*
TAIL_SAMPLES = 4         # AIF samples averaged for the residual blood concentration

# --- Protocol Field Metadata ---
PROTOCOL_METADATA = {
    "dce": [
        # Field name, Reference value, Description
        ('tr', 0.0027, "Repetition time of the DCE sequence (s)"),
        ('flip_angle', 25.0, "Flip angle of the DCE sequence (degrees)"),
        ('t10_tissue', 1.98, "Measured pre-contrast tissue T1 (s)"),
        ('r1', R1_GADOLINIUM, "Longitudinal relaxivity of the contrast agent (mM^-1 s^-1)"),
        ('hematocrit', HEMATOCRIT, "Hematocrit fraction"),
        ('t10_blood', T10_BLOOD, "Pre-contrast blood T1 (s)"),
    ],
    "dsc": [
        ('tr', 2.0, "Repetition time of the DSC sequence (s)"),
        ('te', 0.045, "Echo time of the DSC sequence (s)"),
        ('flip_angle', 90.0, "Flip angle of the DSC sequence (degrees)"),
        ('r1', R1_GADOLINIUM, "Longitudinal relaxivity of the contrast agent (mM^-1 s^-1)"),
        ('r2_blood', R2STAR_BLOOD, "T2* relaxivity of blood (mM^-1 s^-1)"),
        ('hematocrit', HEMATOCRIT, "Hematocrit fraction"),
        ('t10_blood', T10_BLOOD, "Pre-contrast blood T1 (s)"),
        ('t2star_blood', T2STAR_BLOOD, "Pre-contrast blood T2* (s)"),
        ('t2star_tissue', T2STAR_TISSUE, "Pre-contrast tissue T2* (s)"),
        ('tail_samples', TAIL_SAMPLES, "Number of trailing AIF samples averaged for residual blood concentration"),
    ],
}
"""Field metadata per modality: (name, reference_value, description).
The reference values reproduce the example glioma acquisition."""


def _require_positive(owner: str, **values) -> None:
    for name, value in values.items():
        if not np.isfinite(value) or value <= 0:
            raise ParameterBoundsError(f"{owner}.{name} must be a positive finite number, got {value}.")


def _require_fraction(owner: str, name: str, value: float) -> None:
    if not np.isfinite(value) or not (0.0 <= value < 1.0):
        raise ParameterBoundsError(f"{owner}.{name} must lie in [0, 1), got {value}.")


def _require_flip_angle(owner: str, value: float) -> None:
    if not np.isfinite(value) or not (0.0 < value <= 180.0):
        raise ParameterBoundsError(f"{owner}.flip_angle must lie in (0, 180] degrees, got {value}.")


@dataclass(frozen=True)
class DCEProtocol:
    """Scalars of a T1-weighted DCE acquisition. Times in seconds, angles in degrees."""
    tr: float
    flip_angle: float
    t10_tissue: float
    r1: float = R1_GADOLINIUM
    hematocrit: float = HEMATOCRIT
    t10_blood: float = T10_BLOOD

    def __post_init__(self):
        _require_positive("DCEProtocol", tr=self.tr, t10_tissue=self.t10_tissue,
                          r1=self.r1, t10_blood=self.t10_blood)
        _require_flip_angle("DCEProtocol", self.flip_angle)
        _require_fraction("DCEProtocol", "hematocrit", self.hematocrit)

    @property
    def plasma_fraction(self) -> float:
        return 1.0 - self.hematocrit


@dataclass(frozen=True)
class DSCProtocol:
    """Scalars of a T2*-weighted DSC acquisition. Times in seconds, angles in degrees."""
    tr: float
    te: float
    flip_angle: float
    r1: float = R1_GADOLINIUM
    r2_blood: float = R2STAR_BLOOD
    hematocrit: float = HEMATOCRIT
    t10_blood: float = T10_BLOOD
    t2star_blood: float = T2STAR_BLOOD
    t2star_tissue: float = T2STAR_TISSUE
    tail_samples: int = TAIL_SAMPLES

    def __post_init__(self):
        _require_positive("DSCProtocol", tr=self.tr, te=self.te, r1=self.r1,
                          t10_blood=self.t10_blood, t2star_blood=self.t2star_blood,
                          t2star_tissue=self.t2star_tissue)
        _require_flip_angle("DSCProtocol", self.flip_angle)
        _require_fraction("DSCProtocol", "hematocrit", self.hematocrit)
        if not np.isfinite(self.r2_blood) or self.r2_blood < 0:
            raise ParameterBoundsError(f"DSCProtocol.r2_blood must be non-negative, got {self.r2_blood}.")
        if int(self.tail_samples) != self.tail_samples or self.tail_samples < 1:
            raise ParameterBoundsError(f"DSCProtocol.tail_samples must be a positive integer, got {self.tail_samples}.")

    @property
    def plasma_fraction(self) -> float:
        return 1.0 - self.hematocrit


PROTOCOL_CLASSES = {"dce": DCEProtocol, "dsc": DSCProtocol}


def reference_protocol(modality: str) -> DCEProtocol | DSCProtocol:
    """
    Builds the protocol of the reference acquisition for "dce" or "dsc".

    Raises:
        ValueError: If `modality` is not "dce" or "dsc".
    """
    if modality not in PROTOCOL_METADATA:
        raise ValueError(f"Unknown modality '{modality}'. Expected one of {list(PROTOCOL_METADATA)}.")
    values = {name: default for name, default, _ in PROTOCOL_METADATA[modality]}
    return PROTOCOL_CLASSES[modality](**values)


def update_protocol(protocol: DCEProtocol | DSCProtocol, overrides: dict) -> DCEProtocol | DSCProtocol:
    """
    Returns a copy of `protocol` with `overrides` applied. None values are ignored.

    Raises:
        ValueError: If an override names a field the protocol does not have.
        ParameterBoundsError: If the resulting protocol is invalid.
    """
    valid_names = {f.name for f in fields(protocol)}
    changes = {}
    for name, value in overrides.items():
        if value is None:
            continue
        if name not in valid_names:
            raise ValueError(f"Unknown {type(protocol).__name__} field: '{name}'")
        changes[name] = value
    return replace(protocol, **changes) if changes else protocol


def load_protocol_config(filepath: str, dce_protocol: DCEProtocol = None,
                         dsc_protocol: DSCProtocol = None) -> tuple[DCEProtocol, DSCProtocol]:
    """
    Loads DCE/DSC protocol overrides from a JSON file.

    The file holds a JSON object with optional "dce" and "dsc" objects whose
    keys are protocol field names, e.g.::

        {"dce": {"tr": 0.0027, "flip_angle": 25, "t10_tissue": 1.98},
         "dsc": {"tr": 2.0, "te": 0.045, "flip_angle": 90}}

    Fields not present in the file keep the values of the base protocols.

    Args:
        filepath (str): Path to the JSON configuration file.
        dce_protocol (DCEProtocol, optional): Base DCE protocol. Defaults to the
                                              reference acquisition.
        dsc_protocol (DSCProtocol, optional): Base DSC protocol. Defaults to the
                                              reference acquisition.

    Returns:
        tuple[DCEProtocol, DSCProtocol]: The updated protocols.

    Raises:
        FileNotFoundError: If `filepath` does not exist.
        ValueError: If the file is not a JSON object, contains unknown sections or
                    fields, or holds non-numeric values.
        ParameterBoundsError: If a resulting protocol value is out of range.
    """
    dce_protocol = dce_protocol if dce_protocol is not None else reference_protocol("dce")
    dsc_protocol = dsc_protocol if dsc_protocol is not None else reference_protocol("dsc")

    try:
        with open(filepath, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise
    except json.JSONDecodeError as e:
        raise ValueError(f"Error decoding JSON from protocol file {filepath}: {e}")

    if not isinstance(data, dict):
        raise ValueError("Protocol file is not a valid JSON object.")

    unknown_sections = set(data) - set(PROTOCOL_METADATA)
    if unknown_sections:
        raise ValueError(f"Unknown section(s) in protocol file: {sorted(unknown_sections)}")

    protocols = {"dce": dce_protocol, "dsc": dsc_protocol}
    for section, overrides in data.items():
        if not isinstance(overrides, dict):
            raise ValueError(f"Protocol section '{section}' must be a JSON object.")
        for key, value in overrides.items():
            # bool is a subclass of int but never a valid protocol value
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"Protocol value '{section}.{key}' must be numeric, got {value!r}.")
        protocols[section] = update_protocol(protocols[section], overrides)

    logger.debug("Loaded protocol configuration from %s: %s", filepath, protocols)
    return protocols["dce"], protocols["dsc"]
