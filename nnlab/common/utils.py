import os
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pandas as pd


def safe_indexing(input_feats, indices, axis=0):

    if indices is None:
        return np.asarray(input_feats)
    if isinstance(input_feats, pd.DataFrame):
        if axis == 0:
            return input_feats.iloc[indices].values
        elif axis == 1:
            return input_feats.iloc[:, indices].values
    elif isinstance(input_feats, pd.Series):
        return input_feats.iloc[indices].values
    elif isinstance(input_feats, (np.ndarray, list, tuple)):
        input_feats = np.asarray(input_feats)
        if axis == 0:
            return input_feats[indices]
        elif axis == 1:
            return input_feats[:, indices]
    raise TypeError(f"Input data must be a pandas DataFrame, Series, or a numpy ndarray. Got {type(input_feats)} instead.")


def check_random_state(random_state):
    """
    Turn ``random_state`` into a ``np.random.Generator``.

    None falls back to a fixed seed so runs are reproducible by default.
    """
    if isinstance(random_state, np.random.Generator):
        return random_state
    if random_state is None:
        return np.random.default_rng(42)
    return np.random.default_rng(random_state)


def _resolve_workers(n_items, n_jobs):
    if n_jobs is None or n_jobs == 1:
        return 1
    cpu = os.cpu_count() or 1
    if n_jobs < 0:
        return max(1, min(cpu, n_items))
    return max(1, min(n_jobs, n_items))


def parallel_for(n_items, handler, n_jobs=1):
    """
    Run ``handler(i)`` for every ``i`` in ``range(n_items)``.

    Handlers must only write to state owned by item ``i`` (one batch row),
    so no locking is needed. Returns once every handler has finished.

    Args:
        n_items (int): Number of items, usually the batch size
        handler (callable): Function called with the item index
        n_jobs (int): Number of worker threads; 1 runs sequentially, -1 uses all cores
    """
    workers = _resolve_workers(n_items, n_jobs)
    if workers == 1:
        for i in range(n_items):
            handler(i)
        return

    with ThreadPoolExecutor(max_workers=workers) as pool:
        # list() re-raises the first handler exception
        list(pool.map(handler, range(n_items)))
