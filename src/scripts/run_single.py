#!/usr/bin/env python3
"""
Single CTRW Simulation Runner

A clean, standardized CLI for running one percolation + CTRW simulation and
printing a summary of the cluster structure and diffusion statistics.
"""

import argparse
import sys
import time
from pathlib import Path

import numpy as np

# Add src/ to path
SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ctrw_sim import CTRWConfig, CTRWSimulator, fit_anomalous_exponent, utils


def build_config(args: argparse.Namespace) -> CTRWConfig:
    """Merge an optional parameter file with explicit command-line flags."""
    params = utils.load_params(args.config) if args.config else {}
    for key in (
        "grid_size",
        "lattice_type",
        "threshold",
        "walk_type",
        "n_walks",
        "n_steps",
        "beta",
        "tau0",
        "noise",
        "random_seed",
        "n_jobs",
    ):
        value = getattr(args, key)
        if value is not None:
            params[key] = value
    params["verbose"] = not args.quiet
    return CTRWConfig.from_dict(params)


def summarize(sim: CTRWSimulator, result: utils.SimulationResult) -> None:
    meta = result.meta
    occupied = np.count_nonzero(result.clusters != sim.empty)
    print("\nSimulation completed successfully!")
    print(f"   Sites: {meta['n_sites']} ({occupied / meta['n_sites']:.3f} occupied)")
    print(f"   Clusters: {len(sim.cluster_sizes())}, largest: {meta['largest_cluster']}")

    if not result.has_walks or result.analysis.shape[0] == 0:
        print("   No random-walk statistics (needs n_walks > 0 and n_steps > 1)")
        return

    ea_msd = result.analysis[:, 0]
    ergodicity = result.analysis[:, 2]
    print(f"   Final ensemble MSD: {ea_msd[-1]:.4f}")
    try:
        alpha, r_squared = fit_anomalous_exponent(ea_msd)
        print(f"   Anomalous exponent: alpha={alpha:.4f} (R^2={r_squared:.4f})")
    except ValueError as exc:
        print(f"   Anomalous exponent: unavailable ({exc})")
    print(f"   Mean ergodicity breaking: {ergodicity.mean():.6f}")


def main():
    parser = argparse.ArgumentParser(
        description="Run a single CTRW-on-percolation simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None, help="JSON/TOML parameter file")
    parser.add_argument("--grid-size", dest="grid_size", type=int, default=None, help="Lattice side length")
    parser.add_argument(
        "--lattice-type",
        dest="lattice_type",
        choices=["square", "honeycomb"],
        default=None,
        help="Lattice geometry",
    )
    parser.add_argument("--threshold", type=float, default=None, help="Occupied fraction in (0, 1]")
    parser.add_argument(
        "--walk-type",
        dest="walk_type",
        choices=["all", "largest"],
        default=None,
        help="Start walkers on all clusters or only the largest",
    )
    parser.add_argument("--n-walks", dest="n_walks", type=int, default=None, help="Number of walkers")
    parser.add_argument("--n-steps", dest="n_steps", type=int, default=None, help="Steps per walker")
    parser.add_argument("--beta", type=float, default=None, help="CTRW tail exponent (0 = discrete time)")
    parser.add_argument("--tau0", type=float, default=None, help="Waiting-time scale")
    parser.add_argument("--noise", type=float, default=None, help="Gaussian localisation noise")
    parser.add_argument(
        "--seed",
        dest="random_seed",
        type=int,
        default=None,
        help="Random seed (negative = system entropy)",
    )
    parser.add_argument(
        "--jobs",
        dest="n_jobs",
        type=int,
        default=None,
        help="Worker threads (-1 = all cores, 0 = serial)",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress stage timings")

    args = parser.parse_args()

    try:
        config = build_config(args)
        sim = CTRWSimulator(config)
    except ValueError as exc:
        parser.error(str(exc))

    start_time = time.time()
    result = sim.run()
    elapsed_time = time.time() - start_time

    summarize(sim, result)
    print(f"   Time elapsed: {elapsed_time:.2f} seconds")
    return 0


if __name__ == "__main__":
    sys.exit(main())
