"""
Continuous-time random walks on percolation clusters.

Each walker:
1.  **Start:** picks a random occupied site (anywhere, or on the largest
    cluster) that has at least one occupied neighbour.
2.  **Discrete walk:** hops to a uniformly chosen occupied neighbour for
    ``sim_length`` steps, tagging every hop that crosses a periodic boundary.
3.  **Subordination:** draws Pareto-distributed arrival times
    ``t_k = sum(tau0 * exp(E_i))`` with ``E_i ~ Exp(beta)`` (or ``t_k = k``
    when ``beta == 0``) and resamples the walk onto integer physical times.
4.  **Unwrapping:** converts sites to plane coordinates, shifting by one unit
    cell for every boundary crossing so trajectories are unbounded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

import numpy as np
from numba import njit

from .lattice import Topology
from .percolation import empty_marker, largest_cluster_root

ALL_CLUSTERS = 0
LARGEST_CLUSTER = 1

WALK_TYPES = {"all": ALL_CLUSTERS, "largest": LARGEST_CLUSTER}

# Boundary crossing tags
NO_CROSSING = 0
CROSS_TOP = 1
CROSS_BOTTOM = 2
CROSS_RIGHT = 3
CROSS_LEFT = 4

MAX_START_ATTEMPTS = 1_000_000
START_BATCH = 1024


def walk_code(walk_type) -> int:
    """Map a walk-type name (or integer code) to its integer code."""
    if isinstance(walk_type, str):
        key = walk_type.strip().lower()
        if key not in WALK_TYPES:
            raise ValueError(
                f"Unknown walk type {walk_type!r}; expected one of {sorted(WALK_TYPES)}"
            )
        return WALK_TYPES[key]
    code = int(walk_type)
    if code not in (ALL_CLUSTERS, LARGEST_CLUSTER):
        raise ValueError(f"Unknown walk code {walk_type!r}")
    return code


def sim_length(n_steps: int, tau0: float) -> int:
    """Number of discrete hops needed to cover ``n_steps`` of physical time."""
    if tau0 >= 1.0:
        return int(n_steps)
    return int(round(n_steps / tau0))


@dataclass
class WalkSet:
    """Trajectories for an ensemble of walkers."""

    coords: np.ndarray  # (n_walks, 2, n_steps) unwrapped positions
    true_walks: np.ndarray  # (n_walks, n_steps) site index per physical step
    ctrw_times: List[np.ndarray] = field(default_factory=list)
    pinned: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=bool))


###############################################################################
# Start selection
###############################################################################


def start_candidates(forest: np.ndarray, clusters: np.ndarray, walk_type: int) -> np.ndarray:
    """Sites a walker may start from for the given walk type."""
    if walk_type == LARGEST_CLUSTER:
        root = largest_cluster_root(forest)
        if root < 0:
            return np.zeros(0, dtype=np.int64)
        return np.flatnonzero(clusters == root)
    return np.flatnonzero(forest != empty_marker(forest.shape[0]))


def has_occupied_neighbour(forest: np.ndarray, neighbours: np.ndarray) -> np.ndarray:
    """Per-site flag: at least one neighbour is occupied."""
    return (forest[neighbours] != empty_marker(forest.shape[0])).any(axis=1)


def find_start(
    candidates: np.ndarray,
    usable: np.ndarray,
    rng: np.random.Generator,
    max_attempts: int,
):
    """
    Draw candidates until one is usable or ``max_attempts`` draws are spent.

    Returns:
        (site, ok). When ``ok`` is False the last drawn site is returned and the
        walk should be pinned to it.
    """
    attempts = 0
    pos = int(candidates[0])
    while attempts < max_attempts:
        size = min(START_BATCH, max_attempts - attempts)
        picks = candidates[rng.integers(0, candidates.size, size=size)]
        hits = np.flatnonzero(usable[picks])
        if hits.size:
            return int(picks[hits[0]]), True
        attempts += size
        pos = int(picks[-1])
    return pos, False


###############################################################################
# Kernels
###############################################################################


@njit(cache=True)
def _walk_kernel(
    start: int,
    neighbours: np.ndarray,
    forest: np.ndarray,
    empty: int,
    first_row: np.ndarray,
    last_row: np.ndarray,
    boundary1: int,
    boundary2: int,
    draws: np.ndarray,
    walk: np.ndarray,
    tags: np.ndarray,
) -> None:
    """Nearest-neighbour walk over occupied sites, tagging periodic crossings."""
    arity = neighbours.shape[1]
    options = np.empty(arity, dtype=np.int64)
    pos = start
    walk[0] = pos
    tags[0] = NO_CROSSING

    for j in range(1, walk.shape[0]):
        last = pos
        k = 0
        for m in range(arity):
            nb = neighbours[last, m]
            if forest[nb] != empty:
                options[k] = nb
                k += 1
        if k == 0:
            walk[j] = last
            tags[j] = NO_CROSSING
            continue

        choice = int(draws[j] * k)
        if choice >= k:
            choice = k - 1
        pos = options[choice]
        walk[j] = pos

        if first_row[last] and last_row[pos]:
            tags[j] = CROSS_TOP
        elif last_row[last] and first_row[pos]:
            tags[j] = CROSS_BOTTOM
        elif last >= boundary2 and pos < boundary1:
            tags[j] = CROSS_RIGHT
        elif last < boundary1 and pos >= boundary2:
            tags[j] = CROSS_LEFT
        else:
            tags[j] = NO_CROSSING


@njit(cache=True)
def _subordinate_kernel(
    walk: np.ndarray,
    tags: np.ndarray,
    times: np.ndarray,
    coords: np.ndarray,
    unit_cell: np.ndarray,
    true_walk: np.ndarray,
    out: np.ndarray,
) -> None:
    """Resample a discrete walk onto physical steps and unwrap it."""
    n_steps = true_walk.shape[0]
    last = times.shape[0] - 1
    counter = 0
    nx = 0
    ny = 0
    for j in range(n_steps):
        while counter < last and j > times[counter]:
            counter += 1
            tag = tags[counter]
            if tag == CROSS_TOP:
                ny += 1
            elif tag == CROSS_BOTTOM:
                ny -= 1
            elif tag == CROSS_RIGHT:
                nx += 1
            elif tag == CROSS_LEFT:
                nx -= 1
        site = walk[counter]
        true_walk[j] = site
        out[0, j] = coords[site, 0] + nx * unit_cell[0]
        out[1, j] = coords[site, 1] + ny * unit_cell[1]


###############################################################################
# Waiting times
###############################################################################


def arrival_times(
    rng: np.random.Generator, length: int, beta: float, tau0: float
) -> np.ndarray:
    """
    Cumulative CTRW arrival times for ``length`` hops.

    With ``beta > 0`` the waiting times are ``tau0 * exp(E)`` for
    ``E ~ Exp(rate=beta)``, i.e. Pareto with tail exponent ``beta``.
    With ``beta == 0`` the times are simply ``1, 2, ..., length``.
    """
    if beta > 0.0:
        waits = rng.exponential(1.0 / beta, size=length)
        with np.errstate(over="ignore"):
            return np.cumsum(tau0 * np.exp(waits))
    return np.arange(1, length + 1, dtype=np.float64)


def truncate_times(times: np.ndarray, n_steps: int) -> np.ndarray:
    """Cut ``times`` at the first arrival at or after ``n_steps`` and pin it to ``n_steps``."""
    hits = np.flatnonzero(times >= n_steps)
    cut = int(hits[0]) if hits.size else times.size - 1
    out = np.array(times[: cut + 1], dtype=np.float64)
    out[cut] = float(n_steps)
    return out


###############################################################################
# Driver
###############################################################################


def simulate_walks(
    topology: Topology,
    forest: np.ndarray,
    clusters: np.ndarray,
    coords: np.ndarray,
    unit_cell: np.ndarray,
    n_walks: int,
    n_steps: int,
    beta: float,
    tau0: float,
    rng: np.random.Generator,
    walk_type: int = ALL_CLUSTERS,
) -> WalkSet:
    """
    Simulate ``n_walks`` independent CTRW trajectories of ``n_steps`` points.

    With no occupied start site at all every walker is pinned to a random
    site, giving motionless trajectories.
    """
    if n_walks <= 0 or n_steps <= 0:
        return WalkSet(
            coords=np.zeros((0, 2, 0), dtype=np.float64),
            true_walks=np.zeros((0, 0), dtype=np.int64),
        )

    n = topology.n_sites
    empty = empty_marker(n)
    length = sim_length(n_steps, tau0)

    candidates = start_candidates(forest, clusters, walk_code(walk_type))
    usable = has_occupied_neighbour(forest, topology.neighbours)
    max_attempts = min(n, MAX_START_ATTEMPTS)

    boundary1 = topology.grid_size
    boundary2 = n - boundary1

    walk = np.empty(length, dtype=np.int64)
    tags = np.empty(length, dtype=np.int64)
    out = np.empty((n_walks, 2, n_steps), dtype=np.float64)
    true_walks = np.empty((n_walks, n_steps), dtype=np.int64)
    pinned = np.zeros(n_walks, dtype=bool)
    times_all = []

    for i in range(n_walks):
        if candidates.size:
            start, ok = find_start(candidates, usable, rng, max_attempts)
        else:
            start, ok = int(rng.integers(0, n)), False
        if ok:
            draws = rng.random(length)
            _walk_kernel(
                start,
                topology.neighbours,
                forest,
                empty,
                topology.first_row,
                topology.last_row,
                boundary1,
                boundary2,
                draws,
                walk,
                tags,
            )
        else:
            walk.fill(start)
            tags.fill(NO_CROSSING)
            pinned[i] = True

        times = truncate_times(arrival_times(rng, length, beta, tau0), n_steps)
        times_all.append(times)
        _subordinate_kernel(walk, tags, times, coords, unit_cell, true_walks[i], out[i])

    return WalkSet(coords=out, true_walks=true_walks, ctrw_times=times_all, pinned=pinned)


def add_noise(coords: np.ndarray, noise: float, rng: np.random.Generator) -> np.ndarray:
    """Add i.i.d. N(0, noise**2) jitter to every coordinate in place."""
    if noise > 0.0:
        coords += rng.normal(0.0, noise, size=coords.shape)
    return coords


__all__ = [
    "ALL_CLUSTERS",
    "LARGEST_CLUSTER",
    "NO_CROSSING",
    "CROSS_TOP",
    "CROSS_BOTTOM",
    "CROSS_RIGHT",
    "CROSS_LEFT",
    "WalkSet",
    "walk_code",
    "sim_length",
    "start_candidates",
    "find_start",
    "arrival_times",
    "truncate_times",
    "simulate_walks",
    "add_noise",
]
