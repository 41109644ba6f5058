"""
Population-wide removal of the secondary, stimulus-locked artifact.

Some setups leave a low-amplitude transient (e.g. amplifier recovery) right
after the blanking boundary that looks the same across many trials. Trials
are grouped by the shape of their residual and each large enough group has
its mean residual subtracted.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

import numpy as np
from sklearn.exceptions import ConvergenceWarning

from loglira.src.clustering import (
    ClusteringStrategy,
    ProgressCallback,
    consensus_cluster_count,
    consensus_matrix,
    default_strategies,
    fit_mixture,
    reduce_dimensions,
)
from loglira.src.config import RejectionConfig

logger = logging.getLogger(__name__)


@dataclass
class ResidualTable:
    """One fixed-width residual window per stimulus, following its blanking boundary."""

    rows: np.ndarray
    valid: np.ndarray
    starts: np.ndarray
    overrun: Set[int] = field(default_factory=set)

    @classmethod
    def empty(cls, n_trials: int, n_cols: int) -> "ResidualTable":
        return cls(
            rows=np.zeros((n_trials, n_cols)),
            valid=np.zeros(n_trials, dtype=bool),
            starts=np.zeros(n_trials, dtype=int),
        )

    @property
    def n_cols(self) -> int:
        return self.rows.shape[1]

    def add(self, trial: int, onset: int, residual: np.ndarray, blanking_length: int) -> bool:
        """
        Store ``residual[blanking_length:blanking_length + n_cols]`` for ``trial``.

        ``residual`` is raw data minus the reconstructed artifact over the
        trial segment. Windows that overrun the segment are recorded in
        ``overrun`` and left zero-filled.
        """
        window = residual[blanking_length:blanking_length + self.n_cols]
        if window.size < self.n_cols:
            self.overrun.add(trial)
            return False
        self.rows[trial] = window
        self.valid[trial] = True
        self.starts[trial] = onset + blanking_length
        return True


@dataclass
class SecondaryResult:
    labels: np.ndarray
    n_components: int = 0
    corrected: List[int] = field(default_factory=list)


def remove_secondary_artifact(
    output: np.ndarray,
    table: ResidualTable,
    config: RejectionConfig | None = None,
    strategies: Optional[Sequence[ClusteringStrategy]] = None,
    progress: Optional[ProgressCallback] = None,
) -> SecondaryResult:
    """
    Cluster residual rows and subtract each large cluster's mean from ``output``.

    ``output`` is modified in place. Labels are -1 for trials that were not
    clustered or whose cluster is smaller than ``config.min_cluster_size``.
    """
    config = config or RejectionConfig()
    strategies = [s for s in (strategies or default_strategies()) if s.config.enabled]
    labels = np.full(len(table.valid), -1, dtype=int)
    result = SecondaryResult(labels=labels)

    trials = np.flatnonzero(table.valid)
    if trials.size < max(config.min_cluster_size, 3):
        logger.info(
            "Only %d residual windows available (minimum cluster size %d); skipping secondary artifact removal.",
            trials.size,
            config.min_cluster_size,
        )
        return result

    rows = table.rows[trials]
    if not np.any(np.var(rows, axis=0) > 0):
        logger.info("Residual windows have no variance; skipping secondary artifact removal.")
        return result

    k_min, k_max = config.cluster_range
    k_values = range(k_min, min(k_max, trials.size - 1) + 1)
    random_state = np.random.RandomState(config.random_seed)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ConvergenceWarning)
        warnings.simplefilter("ignore", UserWarning)
        reduced = reduce_dimensions(rows, config.pca_variance, config.min_pca_components)
        if progress is not None:
            progress(0.0, "Reducing residual dimensions...")
        co_association = consensus_matrix(
            reduced, strategies, k_values, config.consensus_runs, random_state, progress
        )
        n_clusters = consensus_cluster_count(co_association, config.cophenetic_threshold)
        if progress is not None:
            progress(1.0, f"Fitting Gaussian mixture ({n_clusters} components)...")
        model = fit_mixture(reduced, n_clusters, config.random_seed, config.gmm_max_iter)

    if model is None:
        logger.warning("Gaussian mixture did not converge for any component count; secondary artifact removal disabled.")
        return result

    result.n_components = model.n_components
    assigned = model.predict(reduced)
    n_cols = table.n_cols
    for component in np.unique(assigned):
        members = trials[assigned == component]
        if members.size < config.min_cluster_size:
            logger.debug("Cluster %d has %d trials; left uncorrected.", component, members.size)
            continue
        mean_residual = table.rows[members].mean(axis=0)
        for trial in members:
            start = table.starts[trial]
            output[start:start + n_cols] -= mean_residual
        labels[members] = component
        result.corrected.extend(int(t) for t in members)

    result.corrected.sort()
    logger.info(
        "Secondary artifact removed from %d of %d trials (%d mixture components).",
        len(result.corrected),
        trials.size,
        result.n_components,
    )
    return result
