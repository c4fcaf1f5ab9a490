"""
CTRW Fractal Simulation Library

This package simulates anomalous diffusion on percolation clusters:
- Newman-Ziff site percolation on periodic square or honeycomb lattices
- Continuous-time random walks confined to occupied sites
- Ensemble/time-averaged MSD and ergodicity-breaking statistics
"""

from .simulator import CTRWConfig, CTRWSimulator, run_model
from .analysis import MSDStats, analyse_walks, fit_anomalous_exponent
from .utils import SimulationResult
from . import utils

__all__ = [
    # Simulator
    "CTRWSimulator",
    "run_model",
    # Configuration / results
    "CTRWConfig",
    "SimulationResult",
    "MSDStats",
    # Analysis
    "analyse_walks",
    "fit_anomalous_exponent",
    # Utilities
    "utils",
]
