"""
Unit tests for the CTRW walk engine.
"""

import numpy as np
import pytest

from ctrw_sim import ctrw, lattice, percolation, utils


def _setup(grid_size=10, lattice_type="square", threshold=0.7, seed=1):
    topo = lattice.build_topology(grid_size, lattice_type)
    rng = utils.make_rng(seed)
    order = percolation.permute(topo.n_sites, rng)
    n_occ = percolation.occupied_count(threshold, topo.n_sites)
    forest, _ = percolation.percolate(order, topo.neighbours, n_occ)
    clusters = percolation.group_clusters(forest)
    coords, unit_cell = lattice.build_coordinates(grid_size, lattice_type)
    return topo, forest, clusters, coords, unit_cell, rng


def test_sim_length():
    assert ctrw.sim_length(100, 1.0) == 100
    assert ctrw.sim_length(100, 3.0) == 100
    assert ctrw.sim_length(100, 0.5) == 200
    assert ctrw.sim_length(10, 0.3) == 33


def test_walk_codes():
    assert ctrw.walk_code("all") == ctrw.ALL_CLUSTERS
    assert ctrw.walk_code("Largest") == ctrw.LARGEST_CLUSTER
    assert ctrw.walk_code(1) == ctrw.LARGEST_CLUSTER
    with pytest.raises(ValueError):
        ctrw.walk_code("some")


def test_discrete_time_has_no_subordination():
    times = ctrw.arrival_times(utils.make_rng(0), 25, beta=0.0, tau0=1.0)
    np.testing.assert_array_equal(times, np.arange(1, 26, dtype=float))


def test_pareto_arrival_times():
    times = ctrw.arrival_times(utils.make_rng(0), 500, beta=0.8, tau0=2.0)
    waits = np.diff(np.concatenate([[0.0], times]))
    assert np.all(waits >= 2.0 - 1e-9)
    # heavy tail: the largest wait dominates the typical one
    assert waits.max() > 20 * np.median(waits)


def test_truncate_times():
    times = np.array([0.5, 1.7, 4.2, 9.0, 12.5])
    out = ctrw.truncate_times(times, 8)
    np.testing.assert_array_equal(out, [0.5, 1.7, 4.2, 8.0])

    # no arrival reaches n_steps: the last one is pinned to it
    out = ctrw.truncate_times(np.array([1.0, 2.0, 3.0]), 10)
    np.testing.assert_array_equal(out, [1.0, 2.0, 10.0])

    out = ctrw.truncate_times(np.arange(1.0, 11.0), 10)
    np.testing.assert_array_equal(out, np.arange(1.0, 11.0))


def test_find_start_prefers_usable_site():
    candidates = np.array([4, 7, 9])
    usable = np.zeros(10, dtype=bool)
    usable[7] = True
    site, ok = ctrw.find_start(candidates, usable, utils.make_rng(0), 100)
    assert ok and site == 7

    site, ok = ctrw.find_start(candidates, np.zeros(10, dtype=bool), utils.make_rng(0), 50)
    assert not ok and site in candidates


@pytest.mark.parametrize("lattice_type, grid_size", [("square", 10), ("honeycomb", 5)])
@pytest.mark.parametrize("beta", [0.0, 0.9])
def test_walks_stay_on_occupied_sites(lattice_type, grid_size, beta):
    topo, forest, clusters, coords, unit_cell, rng = _setup(grid_size, lattice_type)
    walk_set = ctrw.simulate_walks(
        topo, forest, clusters, coords, unit_cell, 6, 80, beta, 1.0, rng
    )

    assert walk_set.coords.shape == (6, 2, 80)
    assert walk_set.true_walks.shape == (6, 80)
    assert np.all(percolation.is_occupied(forest)[walk_set.true_walks])

    for i in range(6):
        # each physical step moves at most one bond length after unwrapping
        step = np.hypot(*np.diff(walk_set.coords[i], axis=1))
        assert np.all(np.isclose(step, 0.0) | np.isclose(step, 1.0))

        # unwrapped positions differ from site positions by whole unit cells
        shift = (walk_set.coords[i].T - coords[walk_set.true_walks[i]]) / unit_cell
        np.testing.assert_allclose(shift, np.round(shift), atol=1e-9)

        times = walk_set.ctrw_times[i]
        assert times[-1] == 80.0
        assert np.all(times[:-1] < 80.0)


def test_discrete_walk_holds_first_site_once():
    topo, forest, clusters, coords, unit_cell, rng = _setup()
    walk_set = ctrw.simulate_walks(topo, forest, clusters, coords, unit_cell, 3, 40, 0.0, 1.0, rng)
    for i in range(3):
        sites = walk_set.true_walks[i]
        assert sites[0] == sites[1]
        np.testing.assert_array_equal(walk_set.ctrw_times[i], np.arange(1.0, 41.0))


def test_largest_cluster_walks():
    topo, forest, clusters, coords, unit_cell, rng = _setup(threshold=0.65, seed=4)
    walk_set = ctrw.simulate_walks(
        topo, forest, clusters, coords, unit_cell, 4, 50, 0.0, 1.0, rng,
        walk_type=ctrw.LARGEST_CLUSTER,
    )
    root = percolation.largest_cluster_root(forest)
    assert np.all(clusters[walk_set.true_walks] == root)


def test_isolated_sites_give_pinned_walks():
    topo = lattice.build_topology(4, "square")
    order = np.array([0, 10] + [s for s in range(16) if s not in (0, 10)])
    forest, _ = percolation.percolate(order, topo.neighbours, 2)
    clusters = percolation.group_clusters(forest)
    coords, unit_cell = lattice.build_coordinates(4, "square")

    walk_set = ctrw.simulate_walks(
        topo, forest, clusters, coords, unit_cell, 3, 20, 0.5, 1.0, utils.make_rng(0)
    )
    assert walk_set.pinned.all()
    for i in range(3):
        assert np.unique(walk_set.true_walks[i]).size == 1
        assert np.all(walk_set.coords[i] == walk_set.coords[i][:, :1])


@pytest.mark.parametrize("walk_type", [ctrw.ALL_CLUSTERS, ctrw.LARGEST_CLUSTER])
def test_no_occupied_sites_gives_pinned_walks(walk_type):
    topo = lattice.build_topology(3, "square")
    forest = np.full(9, percolation.empty_marker(9), dtype=np.int64)
    coords, unit_cell = lattice.build_coordinates(3, "square")
    walk_set = ctrw.simulate_walks(
        topo, forest, forest.copy(), coords, unit_cell, 4, 15, 0.5, 1.0, utils.make_rng(0),
        walk_type=walk_type,
    )

    assert walk_set.pinned.all()
    assert walk_set.coords.shape == (4, 2, 15)
    for i in range(4):
        sites = walk_set.true_walks[i]
        assert np.all(sites == sites[0]) and 0 <= sites[0] < 9
        np.testing.assert_array_equal(walk_set.coords[i].T, np.tile(coords[sites[0]], (15, 1)))


def _minimum_image(delta, unit_cell):
    return delta - unit_cell * np.round(delta / unit_cell)


@pytest.mark.parametrize("lattice_type, grid_size", [("square", 4), ("honeycomb", 3)])
def test_subordination_applies_every_crossing_within_a_step(lattice_type, grid_size):
    topo = lattice.build_topology(grid_size, lattice_type)
    coords, unit_cell = lattice.build_coordinates(grid_size, lattice_type)
    n = topo.n_sites
    forest = np.full(n, -1, dtype=np.int64)  # every site occupied
    rng = utils.make_rng(7)
    n_steps, beta, tau0 = 60, 0.3, 0.1
    length = ctrw.sim_length(n_steps, tau0)

    multi_hop_steps = 0
    for _ in range(10):
        walk = np.empty(length, dtype=np.int64)
        tags = np.empty(length, dtype=np.int64)
        ctrw._walk_kernel(
            0, topo.neighbours, forest, percolation.empty_marker(n),
            topo.first_row, topo.last_row, grid_size, n - grid_size,
            rng.random(length), walk, tags,
        )
        times = ctrw.truncate_times(ctrw.arrival_times(rng, length, beta, tau0), n_steps)
        true_walk = np.empty(n_steps, dtype=np.int64)
        out = np.empty((2, n_steps), dtype=np.float64)
        ctrw._subordinate_kernel(walk, tags, times, coords, unit_cell, true_walk, out)

        # hop k lands at walk[k]; unwrapped path is the running sum of unit bonds
        bonds = _minimum_image(coords[walk[1:]] - coords[walk[:-1]], unit_cell)
        path = coords[walk[0]] + np.vstack([np.zeros(2), np.cumsum(bonds, axis=0)])

        last = times.size - 1
        counters = np.minimum(np.searchsorted(times, np.arange(n_steps), side="left"), last)
        multi_hop_steps += np.count_nonzero(np.diff(counters) > 1)

        np.testing.assert_array_equal(true_walk, walk[counters])
        np.testing.assert_allclose(out.T, path[counters], atol=1e-9)

    assert multi_hop_steps > 0


def test_short_tau0_runs_longer_discrete_walk():
    topo, forest, clusters, coords, unit_cell, rng = _setup()
    walk_set = ctrw.simulate_walks(topo, forest, clusters, coords, unit_cell, 2, 30, 0.0, 0.5, rng)
    assert walk_set.coords.shape == (2, 2, 30)
    for times in walk_set.ctrw_times:
        assert times.size == 30


def test_add_noise():
    coords = np.zeros((50, 2, 40))
    ctrw.add_noise(coords, 0.0, utils.make_rng(0))
    assert np.all(coords == 0.0)

    ctrw.add_noise(coords, 0.5, utils.make_rng(0))
    assert coords.std() == pytest.approx(0.5, rel=0.05)
    assert abs(coords.mean()) < 0.05
