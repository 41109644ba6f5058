"""
Decide how far each stimulus artifact extends before the signal is back to baseline.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from loglira.src.utils import first_index, rolling_median


@dataclass(frozen=True)
class ArtifactExtent:
    """Number of samples after the onset that belong to the artifact."""

    n_samples: int
    reached_baseline: bool


def find_artifact_extent(
    data: np.ndarray,
    blanking_n: int,
    search_n: int,
    band: Tuple[float, float],
) -> ArtifactExtent:
    """
    Slide a ``search_n`` window forward from the blanking boundary until its
    median falls strictly inside ``band``.

    ``data`` spans the whole inter-stimulus interval. The extent is the
    matching offset plus the window length. The window must end before the
    interval does, so the samples right after the extent are still clean;
    without a match the artifact is assumed to last the full interval.
    """
    data = np.asarray(data, dtype=float)
    low, high = band
    # Drop the window ending exactly at the interval end.
    medians = rolling_median(data, search_n)[:-1]
    offset = first_index(medians, lambda m: (m > low) & (m < high), start=max(0, blanking_n))
    if offset is None:
        return ArtifactExtent(n_samples=data.size, reached_baseline=False)
    return ArtifactExtent(n_samples=offset + search_n, reached_baseline=True)


def has_artifact(
    data: np.ndarray,
    blanking_n: int,
    baseline: float,
    baseline_std: float,
    threshold: float = 3.0,
) -> bool:
    """
    True when the blanking window departs from baseline.

    The window must either spread more than ``threshold`` baseline standard
    deviations or have its mean shifted by more than that from the baseline.
    """
    window = np.asarray(data[:max(1, blanking_n)], dtype=float)
    if baseline_std <= 0:
        return bool(np.any(window != baseline))
    limit = threshold * baseline_std
    return bool(np.std(window) > limit or abs(np.mean(window) - baseline) > limit)
