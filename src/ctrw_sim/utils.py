# src/ctrw_sim/utils.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None  # type: ignore


@dataclass
class SimulationResult:
    """Common container for percolation + CTRW simulation outputs."""

    clusters: Optional[np.ndarray] = None
    lattice: Optional[np.ndarray] = None
    analysis: Optional[np.ndarray] = None
    walks: Optional[np.ndarray] = None
    meta: Optional[Dict[str, Any]] = None

    @property
    def has_walks(self) -> bool:
        return self.walks is not None and self.walks.size > 0


def make_rng(seed: int | None = None) -> np.random.Generator:
    """
    Construct a PCG64-backed Generator.

    A negative seed (or None) seeds from system entropy; anything else
    gives a reproducible stream.
    """
    if seed is None or seed < 0:
        return np.random.Generator(np.random.PCG64())
    return np.random.Generator(np.random.PCG64(seed))


def print_stage(label: str, elapsed: float, verbose: bool = True) -> None:
    """Print a fixed-width stage label followed by its wall-clock time."""
    if verbose:
        print(f"{label:<28}{elapsed:.6f} s")


def load_params(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """
    Load simulation parameters from JSON or TOML.
    """
    path = str(path)
    with open(path, "rb") as fh:
        data = fh.read()
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        return json.loads(data.decode("utf-8"))
    if suffix in {".toml", ".tml"}:
        if tomllib is None:
            raise RuntimeError("tomllib is unavailable; cannot parse TOML files")
        return tomllib.loads(data.decode("utf-8"))
    raise ValueError(f"Unsupported parameter file format: {suffix}")
