"""
Pre-stimulus baseline statistics and inter-stimulus intervals.
"""
from __future__ import annotations

import logging
from typing import Sequence, Tuple

import numpy as np

from loglira.src.config import InvalidArgumentError
from loglira.src.utils import to_samples

logger = logging.getLogger(__name__)


def baseline_from_stim(
    signal: np.ndarray,
    stim: Sequence[int],
    sample_rate: float,
    duration: float = 10e-3,
    offset: float = 0.5e-3,
    percentiles: Sequence[float] = (25, 75),
) -> Tuple[float, np.ndarray]:
    """
    Median and percentiles of the pooled pre-stimulus windows.

    Parameters
    ----------
    signal : np.ndarray
        Full recording.
    stim : sequence of int
        Stimulus onset indices.
    sample_rate : float
        Sampling rate in Hz.
    duration : float
        Length of each baseline window, in seconds.
    offset : float
        Gap between the end of each window and the onset, in seconds.
    percentiles : sequence of float
        Percentile levels in [0, 100], typically ``(low, high)``.

    Returns
    -------
    (median, np.ndarray)
        The pooled median and the requested percentiles in the given order.
    """
    percentiles = np.asarray(percentiles, dtype=float)
    if percentiles.size == 0 or np.any((percentiles < 0) | (percentiles > 100)):
        raise InvalidArgumentError("Percentiles must lie in [0, 100].")

    values = pooled_baseline(signal, stim, sample_rate, duration, offset)
    return float(np.median(values)), np.percentile(values, percentiles)


def robust_std(x: np.ndarray) -> float:
    """Standard deviation estimated from the interquartile range."""
    q1, q3 = np.percentile(np.asarray(x, dtype=float), [25, 75])
    return float((q3 - q1) / 1.349)


def inter_stimulus_intervals(stim: Sequence[int], n_samples: int) -> np.ndarray:
    """Samples from each onset to the next one, or to the trace end for the last."""
    stim = np.asarray(stim, dtype=int)
    return np.diff(np.append(stim, n_samples))


def pooled_baseline(
    signal: np.ndarray,
    stim: Sequence[int],
    sample_rate: float,
    duration: float = 10e-3,
    offset: float = 0.5e-3,
) -> np.ndarray:
    """Concatenated pre-stimulus windows; parts before sample 0 are dropped."""
    signal = np.asarray(signal, dtype=float)
    n_window = max(1, to_samples(duration, sample_rate))
    n_offset = to_samples(offset, sample_rate)

    pooled = []
    for onset in stim:
        stop = int(onset) - n_offset
        start = max(0, stop - n_window)
        if stop > start:
            pooled.append(signal[start:stop])

    if not pooled:
        logger.warning("No pre-stimulus samples available; using the whole trace as baseline.")
        return signal
    return np.concatenate(pooled)
