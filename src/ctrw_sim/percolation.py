"""
Newman-Ziff site percolation.

Sites are occupied one at a time in a random order and merged with their
occupied neighbours using a weighted union-find with path compression
(M. E. J. Newman and R. M. Ziff, Phys. Rev. E 64, 016706 (2001)).

Forest encoding (``forest``, int64, one slot per site):

- ``forest[s] == empty``  -> site is unoccupied (``empty = -N - 1``)
- ``forest[s] < 0``       -> site is a cluster root, size ``-forest[s]``
- ``forest[s] >= 0``      -> index of the parent site

Callers should go through ``find_root`` / ``is_occupied`` / ``cluster_sizes``
rather than reading the sign convention directly.
"""

from __future__ import annotations

import math

import numpy as np
from numba import njit

# Uniform words are drawn from [0, MAX_WORD] and scaled by PERM_CONSTANT,
# which is slightly below 1 / 2**32 so the product never reaches 1.
MAX_WORD = 4_294_967_294
PERM_CONSTANT = 2.3283064e-10


def empty_marker(n_sites: int) -> int:
    return -int(n_sites) - 1


###############################################################################
# Occupation order
###############################################################################


@njit(cache=True)
def _fisher_yates(words: np.ndarray) -> np.ndarray:
    n = words.shape[0]
    order = np.arange(n, dtype=np.int64)
    for i in range(n):
        j = i + np.int64((n - i) * PERM_CONSTANT * words[i])
        if j > n - 1:
            j = n - 1
        tmp = order[i]
        order[i] = order[j]
        order[j] = tmp
    return order


def permute(n_sites: int, rng: np.random.Generator) -> np.ndarray:
    """
    Uniform random permutation of ``range(n_sites)`` by in-place Fisher-Yates.

    Each swap target is ``i + floor((N - i) * PERM_CONSTANT * w)`` for a
    uniform word ``w``, which avoids the modulo bias of ``w % (N - i)``.
    """
    words = rng.integers(0, MAX_WORD, size=int(n_sites), endpoint=True, dtype=np.uint64)
    return _fisher_yates(words.astype(np.float64))


def occupied_count(threshold: float, n_sites: int) -> int:
    """Number of sites occupied for a given occupation fraction."""
    return max(0, int(math.floor(threshold * n_sites)) - 1)


###############################################################################
# Union-find
###############################################################################


@njit(cache=True)
def find_root(forest: np.ndarray, i: int) -> int:
    """Root of site ``i``, compressing the path so every visited site points at it."""
    root = i
    while forest[root] >= 0:
        root = forest[root]
    while forest[i] >= 0:
        parent = forest[i]
        forest[i] = root
        i = parent
    return root


@njit(cache=True)
def _percolate_kernel(
    forest: np.ndarray,
    occupation: np.ndarray,
    neighbours: np.ndarray,
    n_occupied: int,
    empty: int,
) -> int:
    """
    Occupy ``occupation[:n_occupied]`` in order, merging clusters as they touch.

    Returns the size of the largest cluster.
    """
    for s in range(forest.shape[0]):
        forest[s] = empty

    big = 0
    for i in range(n_occupied):
        s1 = occupation[i]
        r1 = s1
        forest[s1] = -1
        if big == 0:
            big = 1
        for k in range(neighbours.shape[1]):
            s2 = neighbours[s1, k]
            if forest[s2] == empty:
                continue
            r2 = find_root(forest, s2)
            if r2 == r1:
                continue
            # Weighted union: the larger cluster (more negative) absorbs the smaller
            if forest[r1] > forest[r2]:
                forest[r2] += forest[r1]
                forest[r1] = r2
                r1 = r2
            else:
                forest[r1] += forest[r2]
                forest[r2] = r1
            if -forest[r1] > big:
                big = -forest[r1]
    return big


def percolate(
    occupation: np.ndarray,
    neighbours: np.ndarray,
    n_occupied: int,
    forest: np.ndarray | None = None,
):
    """
    Run Newman-Ziff percolation for the first ``n_occupied`` sites of ``occupation``.

    Returns:
        (forest, largest_cluster_size)
    """
    n = int(neighbours.shape[0])
    if forest is None:
        forest = np.empty(n, dtype=np.int64)
    n_occupied = min(max(int(n_occupied), 0), n)
    big = _percolate_kernel(
        forest,
        np.ascontiguousarray(occupation, dtype=np.int64),
        np.ascontiguousarray(neighbours, dtype=np.int64),
        n_occupied,
        empty_marker(n),
    )
    return forest, int(big)


###############################################################################
# Cluster queries
###############################################################################


@njit(cache=True)
def _group_kernel(clusters: np.ndarray, empty: int) -> None:
    n = clusters.shape[0]
    for i in range(n):
        if clusters[i] != empty:
            find_root(clusters, i)
    # Every child now points straight at its root; label roots with themselves.
    for i in range(n):
        if clusters[i] != empty and clusters[i] < 0:
            clusters[i] = i


def group_clusters(forest: np.ndarray) -> np.ndarray:
    """
    Flatten the forest into direct cluster labels.

    Occupied sites hold the index of their cluster root, unoccupied sites keep
    the empty marker. The forest itself is left untouched.
    """
    clusters = np.array(forest, dtype=np.int64, copy=True)
    _group_kernel(clusters, empty_marker(clusters.shape[0]))
    return clusters


def is_occupied(forest: np.ndarray) -> np.ndarray:
    """Boolean mask of occupied sites."""
    return forest != empty_marker(forest.shape[0])


def cluster_sizes(forest: np.ndarray) -> dict[int, int]:
    """Map each cluster root to its size."""
    empty = empty_marker(forest.shape[0])
    roots = np.flatnonzero((forest < 0) & (forest != empty))
    return {int(r): int(-forest[r]) for r in roots}


def largest_cluster_root(forest: np.ndarray) -> int:
    """Root of the largest cluster (lowest index on ties), or -1 if nothing is occupied."""
    empty = empty_marker(forest.shape[0])
    sizes = np.where((forest < 0) & (forest != empty), -forest, 0)
    if not sizes.any():
        return -1
    return int(np.argmax(sizes))


__all__ = [
    "MAX_WORD",
    "PERM_CONSTANT",
    "empty_marker",
    "permute",
    "occupied_count",
    "find_root",
    "percolate",
    "group_clusters",
    "is_occupied",
    "cluster_sizes",
    "largest_cluster_root",
]
