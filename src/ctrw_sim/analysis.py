"""
Mean-squared-displacement statistics for walker ensembles.

For a trajectory ``x`` of ``T`` points the time-averaged MSD at lag ``d``
over a window of length ``t`` is

    TAMSD(x, t, d) = 1/(t - d) * sum_{k < t - d} |x[k + d] - x[k]|^2

Per walker and lag ``j = 1 .. T-1`` we record:

- ensemble-average MSD contribution  ``|x[j] - x[0]|^2``
- time-average MSD                   ``TAMSD(x, T, j)``  (fixed window)
- ensemble-time-average MSD          ``TAMSD(x, j, 1)``  (window grows with j)

The ergodicity-breaking parameter is
``EB(j) = (<TAMSD^2> - <TAMSD>^2) / <TAMSD>^2 / j``.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numba import njit
from scipy.stats import linregress

from .parallel import parallel_for


@njit(cache=True, nogil=True)
def squared_dist(x1: float, x0: float, y1: float, y0: float) -> float:
    dx = x1 - x0
    dy = y1 - y0
    return dx * dx + dy * dy


@njit(cache=True, nogil=True)
def tamsd(walk: np.ndarray, t: int, delta: int) -> float:
    """Time-averaged MSD of a (2, T) trajectory at lag ``delta`` over the first ``t`` points."""
    diff = t - delta
    if diff <= 0:
        return np.nan
    total = 0.0
    for k in range(diff):
        total += squared_dist(
            walk[0, k + delta], walk[0, k], walk[1, k + delta], walk[1, k]
        )
    return total / diff


@njit(cache=True, nogil=True)
def _walker_msd(
    walk: np.ndarray, ea_row: np.ndarray, ta_row: np.ndarray, eata_row: np.ndarray
) -> None:
    n_steps = walk.shape[1]
    x0 = walk[0, 0]
    y0 = walk[1, 0]
    for j in range(1, n_steps):
        ea_row[j - 1] = squared_dist(walk[0, j], x0, walk[1, j], y0)
        ta_row[j - 1] = tamsd(walk, n_steps, j)
        eata_row[j - 1] = tamsd(walk, j, 1)


def zero_nonfinite(values: np.ndarray) -> np.ndarray:
    """Replace NaN/Inf entries with 0 in place."""
    values[~np.isfinite(values)] = 0.0
    return values


@dataclass
class MSDStats:
    """Per-lag ensemble statistics; row ``j - 1`` holds lag ``j``."""

    ea_msd: np.ndarray  # (n_steps - 1,)
    eata_msd: np.ndarray  # (n_steps - 1,)
    ergodicity: np.ndarray  # (n_steps - 1,)
    ta_msd: np.ndarray  # (n_steps - 1, n_walks)

    @property
    def lags(self) -> np.ndarray:
        return np.arange(1, self.ea_msd.shape[0] + 1)

    def table(self) -> np.ndarray:
        """Pack into ``[eaMSD, eataMSD, EB, taMSD_0 .. taMSD_{n-1}]`` columns."""
        n_lags, n_walks = self.ta_msd.shape
        out = np.empty((n_lags, 3 + n_walks), dtype=np.float64)
        out[:, 0] = self.ea_msd
        out[:, 1] = self.eata_msd
        out[:, 2] = self.ergodicity
        out[:, 3:] = self.ta_msd
        return out


def ergodicity_breaking(ta_msd: np.ndarray) -> np.ndarray:
    """
    Ergodicity-breaking parameter per lag from a (n_lags, n_walks) TAMSD table.

    Non-finite values (e.g. when every TAMSD at a lag is zero) are zeroed both
    before and after the division by the lag.
    """
    mean_ta = np.mean(ta_msd, axis=1)
    mean_ta_sq = mean_ta * mean_ta
    mean_sq_ta = np.mean(ta_msd * ta_msd, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        eb = (mean_sq_ta - mean_ta_sq) / mean_ta_sq
    zero_nonfinite(eb)
    eb /= np.arange(1, eb.shape[0] + 1, dtype=np.float64)
    return zero_nonfinite(eb)


def analyse_walks(coords: np.ndarray, n_jobs: int | None = -1) -> MSDStats:
    """
    MSD statistics for an ensemble of (n_walks, 2, n_steps) trajectories.

    Walkers are processed in parallel; each worker writes only its own rows.
    """
    coords = np.ascontiguousarray(coords, dtype=np.float64)
    n_walks, _, n_steps = coords.shape
    n_lags = max(n_steps - 1, 0)

    ea_all = np.zeros((n_walks, n_lags), dtype=np.float64)
    ta_all = np.zeros((n_walks, n_lags), dtype=np.float64)
    eata_all = np.zeros((n_walks, n_lags), dtype=np.float64)

    def _one(i: int) -> None:
        _walker_msd(coords[i], ea_all[i], ta_all[i], eata_all[i])

    parallel_for(_one, 0, n_walks, n_jobs)

    zero_nonfinite(ea_all)
    zero_nonfinite(ta_all)
    zero_nonfinite(eata_all)

    if n_walks == 0:
        empty = np.zeros(n_lags, dtype=np.float64)
        return MSDStats(empty, empty.copy(), empty.copy(), ta_all.T.copy())

    ea_msd = zero_nonfinite(ea_all.mean(axis=0))
    eata_msd = zero_nonfinite(eata_all.mean(axis=0))
    ta_msd = np.ascontiguousarray(ta_all.T)

    return MSDStats(
        ea_msd=ea_msd,
        eata_msd=eata_msd,
        ergodicity=ergodicity_breaking(ta_msd),
        ta_msd=ta_msd,
    )


def fit_anomalous_exponent(msd, lags=None, fit_range=None):
    """
    Fit MSD ~ t^alpha on a log-log scale.

    Args:
        msd: MSD values, one per lag.
        lags: Lag times (defaults to 1, 2, ...).
        fit_range: Optional (min_lag, max_lag) window, inclusive.

    Returns:
        (alpha, r_squared)

    Raises:
        ValueError: if fewer than two positive, finite points remain.
    """
    msd = np.asarray(msd, dtype=np.float64)
    lags = np.arange(1, msd.size + 1, dtype=np.float64) if lags is None else np.asarray(lags, dtype=np.float64)
    if lags.shape != msd.shape:
        raise ValueError(f"lags shape {lags.shape} does not match msd shape {msd.shape}")

    mask = np.isfinite(msd) & (msd > 0) & (lags > 0)
    if fit_range is not None:
        lo, hi = fit_range
        mask &= (lags >= lo) & (lags <= hi)
    if np.count_nonzero(mask) < 2:
        raise ValueError("Need at least two positive MSD points to fit an exponent")

    slope, intercept, r_value, p_value, std_err = linregress(
        np.log(lags[mask]), np.log(msd[mask])
    )
    return float(slope), float(r_value**2)


__all__ = [
    "squared_dist",
    "tamsd",
    "zero_nonfinite",
    "MSDStats",
    "ergodicity_breaking",
    "analyse_walks",
    "fit_anomalous_exponent",
]
