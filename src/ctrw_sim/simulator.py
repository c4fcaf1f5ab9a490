"""
Anomalous diffusion on percolation clusters.

Pipeline (one ``CTRWSimulator.run()``):

1.  **Neighbours:** periodic neighbour table + boundary rows (square/honeycomb).
2.  **Permutation:** random occupation order (Fisher-Yates).
3.  **Percolation:** Newman-Ziff union-find up to ``threshold * N`` sites.
4.  **Lattice:** real-space site coordinates and the periodic unit cell.
5.  **Clusters:** flatten the union-find forest into root labels.
6.  **Walks:** CTRW walkers on occupied sites, unwrapped across boundaries.
7.  **Noise:** optional Gaussian jitter on trajectories.
8.  **Analysis:** ensemble/time-averaged MSD and ergodicity breaking.

Steps 6-8 only run when both ``n_walks`` and ``n_steps`` are positive.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional
import time

import numpy as np

from . import analysis, ctrw, lattice, percolation, utils


@dataclass
class CTRWConfig:
    """Lattice, percolation and walk parameters for one simulation."""

    grid_size: int = 64
    lattice_type: str | int = "square"
    threshold: float = 0.5
    walk_type: str | int = "all"
    n_walks: int = 0
    n_steps: int = 0
    beta: float = 0.0
    tau0: float = 1.0
    noise: float = 0.0
    random_seed: int = -1
    n_jobs: int = -1
    verbose: bool = False

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "CTRWConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(params) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")
        return cls(**params)

    def validate(self) -> None:
        """Raise ValueError for any out-of-range field."""
        if int(self.grid_size) < 1:
            raise ValueError(f"grid_size must be >= 1, got {self.grid_size}")
        lattice.lattice_code(self.lattice_type)
        ctrw.walk_code(self.walk_type)
        if not (0.0 < self.threshold <= 1.0):
            raise ValueError(f"threshold must be in (0, 1], got {self.threshold}")
        if self.n_walks < 0:
            raise ValueError(f"n_walks must be >= 0, got {self.n_walks}")
        if self.n_steps < 0:
            raise ValueError(f"n_steps must be >= 0, got {self.n_steps}")
        if self.beta < 0.0:
            raise ValueError(f"beta must be >= 0, got {self.beta}")
        if not self.tau0 > 0.0:
            raise ValueError(f"tau0 must be > 0, got {self.tau0}")
        if self.noise < 0.0:
            raise ValueError(f"noise must be >= 0, got {self.noise}")

    @property
    def include_walks(self) -> bool:
        return self.n_walks > 0 and self.n_steps > 0


class CTRWSimulator:
    """
    The Manager Class.

    Responsibilities:
    1. Validate the configuration and own the RNG stream.
    2. Allocate every array once, sized from the configuration.
    3. Drive the numba kernels stage by stage and hand back copies.
    """

    def __init__(
        self,
        config: CTRWConfig | Dict[str, Any] | None = None,
        *,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        if config is None:
            config = CTRWConfig()
        elif isinstance(config, dict):
            config = CTRWConfig.from_dict(config)
        config.validate()
        self.config = config

        self.grid_size = int(config.grid_size)
        self.lattice_type = lattice.lattice_code(config.lattice_type)
        self.walk_type = ctrw.walk_code(config.walk_type)
        self.include_walks = config.include_walks
        self.rng = rng if rng is not None else utils.make_rng(config.random_seed)

        self.n_sites = lattice.site_count(self.grid_size, self.lattice_type)
        self.empty = percolation.empty_marker(self.n_sites)
        self.n_occupied = percolation.occupied_count(config.threshold, self.n_sites)

        # Placeholders, filled stage by stage
        self.topology: Optional[lattice.Topology] = None
        self.occupation: Optional[np.ndarray] = None
        self.forest: Optional[np.ndarray] = None
        self.clusters: Optional[np.ndarray] = None
        self.lattice_coords: Optional[np.ndarray] = None
        self.unit_cell: Optional[np.ndarray] = None
        self.walk_set: Optional[ctrw.WalkSet] = None
        self.stats: Optional[analysis.MSDStats] = None
        self.largest_cluster = 0
        self.timings: Dict[str, float] = {}

        if self.include_walks:
            self.walks_coords = np.zeros(
                (config.n_walks, 2, config.n_steps), dtype=np.float64
            )
            self.analysis = np.zeros(
                (config.n_steps - 1, config.n_walks + 3), dtype=np.float64
            )
        else:
            self.walks_coords = np.zeros((0, 2, 0), dtype=np.float64)
            self.analysis = np.zeros((0, 0), dtype=np.float64)

    # ------------------------------------------------------------------ helpers
    def _stage(self, key: str, label: str, t0: float) -> None:
        elapsed = time.perf_counter() - t0
        self.timings[key] = elapsed
        utils.print_stage(label, elapsed, self.config.verbose)

    def _require(self, attr: str, stage: str) -> Any:
        value = getattr(self, attr)
        if value is None:
            raise RuntimeError(f"{stage}() must be called first")
        return value

    # ------------------------------------------------------------------ stages
    def find_neighbours(self) -> lattice.Topology:
        t0 = time.perf_counter()
        self.topology = lattice.build_topology(self.grid_size, self.lattice_type)
        self._stage("neighbours", "Searching neighbours...", t0)
        return self.topology

    def permute(self) -> np.ndarray:
        t0 = time.perf_counter()
        self.occupation = percolation.permute(self.n_sites, self.rng)
        self._stage("permute", "Randomizing occupations...", t0)
        return self.occupation

    def percolate(self) -> np.ndarray:
        topology = self._require("topology", "find_neighbours")
        occupation = self._require("occupation", "permute")
        t0 = time.perf_counter()
        self.forest, self.largest_cluster = percolation.percolate(
            occupation, topology.neighbours, self.n_occupied
        )
        self._stage("percolate", "Running percolation...", t0)
        return self.forest

    def build_lattice(self) -> np.ndarray:
        t0 = time.perf_counter()
        self.lattice_coords, self.unit_cell = lattice.build_coordinates(
            self.grid_size, self.lattice_type
        )
        self._stage("lattice", "Building lattice...", t0)
        return self.lattice_coords

    def group_clusters(self) -> np.ndarray:
        forest = self._require("forest", "percolate")
        t0 = time.perf_counter()
        self.clusters = percolation.group_clusters(forest)
        self._stage("clusters", "Grouping clusters...", t0)
        return self.clusters

    def random_walks(self) -> ctrw.WalkSet:
        topology = self._require("topology", "find_neighbours")
        forest = self._require("forest", "percolate")
        clusters = self._require("clusters", "group_clusters")
        coords = self._require("lattice_coords", "build_lattice")
        t0 = time.perf_counter()
        self.walk_set = ctrw.simulate_walks(
            topology,
            forest,
            clusters,
            coords,
            self.unit_cell,
            self.config.n_walks,
            self.config.n_steps,
            self.config.beta,
            self.config.tau0,
            self.rng,
            walk_type=self.walk_type,
        )
        self.walks_coords[...] = self.walk_set.coords
        self._stage("walks", "Simulating random walks...", t0)
        return self.walk_set

    def add_noise(self) -> None:
        if self.config.noise <= 0.0:
            return
        t0 = time.perf_counter()
        ctrw.add_noise(self.walks_coords, self.config.noise, self.rng)
        self._stage("noise", "Adding noise...", t0)

    def analyse_walks(self) -> analysis.MSDStats:
        self._require("walk_set", "random_walks")
        t0 = time.perf_counter()
        self.stats = analysis.analyse_walks(self.walks_coords, self.config.n_jobs)
        self.analysis[...] = self.stats.table()
        self._stage("analysis", "Analysing random walks...", t0)
        return self.stats

    # ------------------------------------------------------------------ public
    def run(self) -> utils.SimulationResult:
        """Runs the full pipeline and returns copies of the outputs."""
        if self.config.verbose:
            print(
                f"Running CTRW fractal: L={self.grid_size}, N={self.n_sites}, "
                f"threshold={self.config.threshold}, walks={self.config.n_walks}"
            )
        self.find_neighbours()
        self.permute()
        self.percolate()
        self.build_lattice()
        self.group_clusters()

        if self.include_walks:
            self.random_walks()
            self.add_noise()
            self.analyse_walks()

        return self.result()

    def result(self) -> utils.SimulationResult:
        clusters = self._require("clusters", "group_clusters")
        coords = self._require("lattice_coords", "build_lattice")
        meta = {
            "model": "ctrw_percolation",
            "config": asdict(self.config),
            "n_sites": int(self.n_sites),
            "neighbour_count": int(self.topology.arity),
            "n_occupied": int(self.n_occupied),
            "largest_cluster": int(self.largest_cluster),
            "unit_cell": self.unit_cell.copy(),
            "timings": dict(self.timings),
        }
        return utils.SimulationResult(
            clusters=clusters.copy(),
            lattice=coords.copy(),
            analysis=self.analysis.copy(),
            walks=self.walks,
            meta=meta,
        )

    @property
    def walks(self) -> np.ndarray:
        """Trajectories as a (2, n_steps, n_walks) array."""
        return np.ascontiguousarray(self.walks_coords.transpose(1, 2, 0))

    @property
    def true_walks(self) -> np.ndarray:
        walk_set = self._require("walk_set", "random_walks")
        return walk_set.true_walks.copy()

    @property
    def ctrw_times(self) -> list:
        walk_set = self._require("walk_set", "random_walks")
        return [t.copy() for t in walk_set.ctrw_times]

    def cluster_sizes(self) -> Dict[int, int]:
        return percolation.cluster_sizes(self._require("forest", "percolate"))

    def largest_cluster_root(self) -> int:
        return percolation.largest_cluster_root(self._require("forest", "percolate"))


def run_model(config: CTRWConfig | Dict[str, Any] | None = None) -> utils.SimulationResult:
    return CTRWSimulator(config).run()


__all__ = ["CTRWConfig", "CTRWSimulator", "run_model"]
