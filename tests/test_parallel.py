"""
Unit tests for the fork-join parallel helper.
"""

import threading

import numpy as np
import pytest

from ctrw_sim import parallel


def test_resolve_workers():
    assert parallel.resolve_workers(0) == 0
    assert parallel.resolve_workers(3) == 3
    assert parallel.resolve_workers(-1) >= 1
    assert parallel.resolve_workers(None) >= 1


@pytest.mark.parametrize("first, last, workers", [(0, 10, 3), (5, 6, 4), (0, 100, 8), (2, 9, 20)])
def test_partition_covers_range(first, last, workers):
    chunks = parallel.partition(first, last, workers)
    assert len(chunks) <= workers
    covered = [i for a, b in chunks for i in range(a, b)]
    assert covered == list(range(first, last))


def test_partition_empty_range():
    assert parallel.partition(4, 4, 2) == []


@pytest.mark.parametrize("n_jobs", [0, 1, 2, 4, -1])
def test_parallel_for_matches_serial(n_jobs):
    out = np.zeros(37)

    def work(i):
        out[i] = i * i

    parallel.parallel_for(work, 0, 37, n_jobs)
    np.testing.assert_array_equal(out, np.arange(37) ** 2)


def test_parallel_for_uses_threads():
    seen = set()
    lock = threading.Lock()

    def work(i):
        with lock:
            seen.add(threading.get_ident())

    parallel.parallel_for(work, 0, 64, n_jobs=4)
    assert threading.get_ident() not in seen


def test_serial_below_threshold():
    seen = []

    def work(i):
        seen.append(threading.get_ident())

    parallel.parallel_for(work, 0, 1, n_jobs=4)
    assert seen == [threading.get_ident()]


def test_worker_exceptions_propagate():
    def work(i):
        if i == 5:
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        parallel.parallel_for(work, 0, 10, n_jobs=3)
