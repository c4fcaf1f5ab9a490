"""
Fork-join helper for index-parallel loops.

The range ``[first, last)`` is split into contiguous chunks, one per worker
thread, and every worker is joined before returning. Workers share no mutable
state beyond whatever disjoint output slices the callback writes, so the
callback must only write to locations owned by its index. Threads only pay
off when the callback spends its time in GIL-free code (e.g. numba kernels
compiled with ``nogil=True``).
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Tuple


def resolve_workers(n_jobs: int | None) -> int:
    """
    Number of worker threads for ``n_jobs``.

    ``n_jobs < 0`` (or None) uses every available hardware thread, ``0`` forces
    serial execution, a positive value is taken as is.
    """
    if n_jobs is None or n_jobs < 0:
        return os.cpu_count() or 1
    return int(n_jobs)


def partition(first: int, last: int, n_workers: int) -> List[Tuple[int, int]]:
    """Static contiguous chunks covering ``[first, last)``, at most one per worker."""
    total = last - first
    if total <= 0:
        return []
    n_workers = max(1, min(n_workers, total))
    per_worker = (total + n_workers - 1) // n_workers
    chunks = []
    for w in range(n_workers):
        a = min(first + w * per_worker, last)
        b = min(a + per_worker, last)
        if a < b:
            chunks.append((a, b))
    return chunks


def _run_slice(func: Callable[[int], None], a: int, b: int) -> None:
    for index in range(a, b):
        func(index)


def parallel_for(
    func: Callable[[int], None],
    first: int,
    last: int,
    n_jobs: int | None = -1,
    threshold: int = 1,
) -> None:
    """
    Call ``func(i)`` for every ``i`` in ``[first, last)``.

    Runs serially when ``n_jobs == 0``, when only one worker is available, or
    when the range holds ``threshold`` indices or fewer. Otherwise a fresh pool
    of threads is spawned for this call and joined before returning. Any
    exception raised by a worker (including failure to start a thread) is
    re-raised here once every worker has finished.
    """
    n_workers = resolve_workers(n_jobs)

    if n_jobs == 0 or n_workers <= 1 or (last - first) <= threshold:
        _run_slice(func, first, last)
        return

    chunks = partition(first, last, n_workers)
    with ThreadPoolExecutor(max_workers=len(chunks)) as pool:
        futures = [pool.submit(_run_slice, func, a, b) for a, b in chunks]
    for fut in futures:
        fut.result()


__all__ = ["resolve_workers", "partition", "parallel_for"]
