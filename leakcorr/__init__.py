"""DCE-informed leakage correction for DSC-MRI signal curves.

This package fits blood/tissue signal-ratio models to region-of-interest DCE
and DSC curves and uses the fitted parameters to remove contrast-agent leakage
effects from the DSC ΔR2* curve. It includes:
- The Extended Tofts concentration kernel (`kinetics`).
- Steady-state MR signal equations (`relaxation`).
- DCE and DSC forward models and their fits (`modeling`).
- A generic bounded nonlinear least-squares routine (`fitting`).
- The ΔR2* leakage correction (`correction`) and the end-to-end run (`pipeline`).
- Protocol configuration, reference example data and text reporting.
"""
