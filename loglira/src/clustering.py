"""
Consensus clustering of per-trial residuals.

Each clustering algorithm sits behind ``ClusteringStrategy.cluster`` so the
consensus step does not depend on which implementation produced the labels.
"""
from __future__ import annotations

import logging
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Sequence

import numpy as np
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import squareform
from sklearn.cluster import KMeans, SpectralClustering
from sklearn.decomposition import PCA
from sklearn.exceptions import ConvergenceWarning
from sklearn.mixture import GaussianMixture

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


@dataclass
class StrategyConfig:
    """Simple configuration container passed to every clustering strategy."""

    enabled: bool = True
    params: Dict[str, Any] = field(default_factory=dict)


class ClusteringStrategy(ABC):
    """Base type for every clustering algorithm used by the consensus step."""

    def __init__(self, name: str, config: StrategyConfig | None = None):
        self.name = name
        self.config = config or StrategyConfig()

    @abstractmethod
    def cluster(self, points: np.ndarray, k: int, random_state=None) -> np.ndarray:
        """Partition ``points`` into ``k`` groups and return one label per row."""


class KMeansStrategy(ClusteringStrategy):
    """Centroid-based clustering."""

    def __init__(self, config: StrategyConfig | None = None):
        super().__init__("kmeans", config)
        params = self.config.params
        self.n_init = params.get("n_init", 1) if params else 1

    def cluster(self, points: np.ndarray, k: int, random_state=None) -> np.ndarray:
        model = KMeans(n_clusters=k, n_init=self.n_init, random_state=random_state)
        return model.fit_predict(points)


class SpectralStrategy(ClusteringStrategy):
    """Graph/affinity-based clustering on a nearest-neighbour graph."""

    def __init__(self, config: StrategyConfig | None = None):
        super().__init__("spectral", config)
        params = self.config.params
        self.n_neighbors = params.get("n_neighbors", 10) if params else 10

    def cluster(self, points: np.ndarray, k: int, random_state=None) -> np.ndarray:
        model = SpectralClustering(
            n_clusters=k,
            affinity="nearest_neighbors",
            n_neighbors=min(self.n_neighbors, len(points) - 1),
            assign_labels="kmeans",
            random_state=random_state,
        )
        return model.fit_predict(points)


def default_strategies() -> list[ClusteringStrategy]:
    return [KMeansStrategy(), SpectralStrategy()]


def reduce_dimensions(rows: np.ndarray, variance: float = 0.7, min_components: int = 2) -> np.ndarray:
    """Project onto the fewest principal components reaching ``variance`` explained."""
    n_max = min(rows.shape)
    pca = PCA(n_components=n_max, svd_solver="full").fit(rows)
    cumulative = np.cumsum(pca.explained_variance_ratio_)
    n_components = int(np.searchsorted(cumulative, variance)) + 1
    n_components = min(max(n_components, min_components), n_max)
    return pca.transform(rows)[:, :n_components]


def consensus_matrix(
    points: np.ndarray,
    strategies: Sequence[ClusteringStrategy],
    k_values: Iterable[int],
    runs: int,
    random_state: np.random.RandomState,
    progress: Optional[ProgressCallback] = None,
) -> np.ndarray:
    """Fraction of clustering runs in which each pair of rows shared a label."""
    k_values = list(k_values)
    n = len(points)
    together = np.zeros((n, n), dtype=np.int32)
    total = 0
    for step, k in enumerate(k_values, start=1):
        for _ in range(runs):
            for strategy in strategies:
                labels = np.asarray(strategy.cluster(points, k, random_state))
                together += np.equal.outer(labels, labels)
                total += 1
        if progress is not None:
            progress(step / len(k_values), f"Consensus clustering (k={k})...")
    return together / max(total, 1)


def consensus_cluster_count(co_association: np.ndarray, threshold: float = 0.8) -> int:
    """Cut an average-linkage dendrogram of ``1 - co_association`` at ``threshold``."""
    if len(co_association) < 2:
        return len(co_association)
    distance = np.clip(1.0 - co_association, 0.0, 1.0)
    distance = (distance + distance.T) / 2
    np.fill_diagonal(distance, 0.0)
    tree = linkage(squareform(distance, checks=False), method="average")
    return int(fcluster(tree, t=threshold, criterion="distance").max())


def fit_mixture(points: np.ndarray, n_components: int, random_seed=None, max_iter: int = 100) -> Optional[GaussianMixture]:
    """
    Fit a Gaussian mixture, dropping one component after every failed fit.

    Returns None when no component count down to one converges.
    """
    for n in range(min(n_components, len(points)), 0, -1):
        model = GaussianMixture(n_components=n, max_iter=max_iter, random_state=random_seed)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            try:
                model.fit(points)
            except ValueError as exc:
                logger.debug("Gaussian mixture with %d components failed: %s", n, exc)
                continue
        if model.converged_:
            return model
        logger.debug("Gaussian mixture with %d components did not converge.", n)
    return None
