"""
Artifact shape reconstruction from logarithmically distributed interpolation nodes.

Stimulation artifacts decay fastest right after the blanking boundary and
flatten over time, so nodes are dense near the boundary and sparse towards
the end of the trial. Each node value is the mean of a small neighbourhood,
which keeps spikes out of the reconstructed shape.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.interpolate import CubicSpline

from loglira.src.config import RejectionConfig
from loglira.src.peak import ArtifactPeak, find_artifact_peak
from loglira.src.utils import to_samples


@dataclass
class FittedArtifact:
    """Reconstructed artifact for one trial window."""

    artifact: np.ndarray
    blanking_length: Optional[int]
    peak: ArtifactPeak
    fully_blanked: bool = False

    @property
    def no_artifact(self) -> bool:
        return self.peak.empty


def sample_points(
    blanking_length: int,
    n_samples: int,
    sample_rate: float,
    node_fraction: float = 0.1,
    node_span: float = 50e-3,
    snap: str = "round",
) -> np.ndarray:
    """
    Log-spaced node indices from ``blanking_length`` to the end of the window.

    Nodes cover at most ``node_span`` seconds; the remainder of the window is
    filled with evenly spaced nodes at the largest node spacing.
    """
    span = n_samples - blanking_length
    if span <= 0:
        return np.empty(0, dtype=int)

    covered = min(span, max(1, to_samples(node_span, sample_rate)))
    n_nodes = max(2, int(round(covered * node_fraction)))
    offsets = np.logspace(0, np.log10(covered), n_nodes)
    offsets = np.floor(offsets) if snap == "floor" else np.round(offsets)
    nodes = blanking_length + np.unique(offsets.astype(int)) - 1
    nodes = nodes[nodes < n_samples]

    if nodes.size >= 2:
        step = int(np.max(np.diff(nodes)))
        n_extra = (n_samples - 1 - int(nodes[-1])) // step
        if n_extra > 0:
            nodes = np.concatenate((nodes, nodes[-1] + step * np.arange(1, n_extra + 1)))
    return nodes


def node_values(
    data: np.ndarray,
    nodes: np.ndarray,
    min_half_interval: int = 2,
    max_half_interval: int = 15,
) -> np.ndarray:
    """Mean of a neighbourhood around each node, bounded by half the gap to its neighbours."""
    n = data.size
    gaps = np.diff(np.concatenate(([-1], nodes, [n - 1])))
    values = np.empty(nodes.size, dtype=float)
    for i, node in enumerate(nodes):
        left, right = gaps[i] // 2, gaps[i + 1] // 2
        if left >= min_half_interval and right >= min_half_interval:
            start = max(0, node - min(max_half_interval, left))
            stop = min(n, node + min(max_half_interval, right) + 1)
            values[i] = data[start:stop].mean()
        else:
            values[i] = data[node]
    return values


def _with_anchors(data: np.ndarray, nodes: np.ndarray, values: np.ndarray, anchors) -> tuple:
    anchors = np.asarray(anchors, dtype=int)
    x = np.concatenate((anchors, nodes))
    y = np.concatenate((data[anchors], values))
    # np.unique keeps the first occurrence, so raw anchor values win over node means.
    x, keep = np.unique(x, return_index=True)
    return x, y[keep]


def _linear_shape(data: np.ndarray, blanking_length: int, sample_rate: float, config: RejectionConfig) -> np.ndarray:
    n = data.size
    nodes = sample_points(blanking_length, n, sample_rate, config.node_fraction, config.node_span)
    values = node_values(data, nodes, config.min_half_interval, config.max_half_interval)
    x, y = _with_anchors(data, nodes, values, [blanking_length, n - 1])
    return np.interp(np.arange(n), x, y)


def _spline_shape(data: np.ndarray, blanking_length: int, sample_rate: float, config: RejectionConfig) -> np.ndarray:
    n = data.size
    padding_n = min(to_samples(config.padding_duration, sample_rate), n - blanking_length)
    padded = np.concatenate((data, data[n - padding_n:][::-1]))
    m = padded.size

    nodes = sample_points(blanking_length, m, sample_rate, config.node_fraction, config.node_span, snap="floor")
    values = node_values(padded, nodes, config.min_half_interval, config.max_half_interval)
    x, y = _with_anchors(padded, nodes, values, [blanking_length, n - 1, m - 1])
    if x.size < 2:
        return np.full(n, y[0])
    return CubicSpline(x, y, bc_type="natural")(np.arange(m))[:n]


def fit_artifact(
    data,
    sample_rate: float,
    blanking_period: float = 1e-3,
    config: RejectionConfig | None = None,
    peak: ArtifactPeak | None = None,
) -> FittedArtifact:
    """
    Reconstruct the artifact shape of a trial window starting at the onset.

    The blanking region (configured blanking period, extended up to the peak
    and any clipped run containing it) is returned as raw data. When no peak
    is found the artifact is zero outside the blanking period and
    ``blanking_length`` is None. When the blanking region covers the whole
    window the raw data is returned with ``fully_blanked`` set.
    """
    config = config or RejectionConfig()
    data = np.asarray(data, dtype=float)
    blanking_n = to_samples(blanking_period, sample_rate)

    if peak is None:
        peak = find_artifact_peak(
            data,
            sample_rate,
            blanking_period,
            saturation_voltage=config.saturation_voltage,
            min_clipped_samples=config.min_clipped_samples,
            saturation_scale=config.saturation_scale,
            height_fraction=config.peak_height_fraction,
            min_clipped_peak_run=config.min_clipped_peak_run,
        )

    if peak.empty:
        artifact = np.zeros_like(data)
        artifact[:blanking_n] = data[:blanking_n]
        return FittedArtifact(artifact=artifact, blanking_length=None, peak=peak)

    blanking_length = max(blanking_n, peak.peak_idx + 1)
    if peak.is_clipped:
        blanking_length = max(blanking_length, int(peak.clipped_samples[-1]) + 1)

    if blanking_length >= data.size:
        return FittedArtifact(artifact=data.copy(), blanking_length=None, peak=peak, fully_blanked=True)

    if config.interpolation == "spline":
        artifact = _spline_shape(data, blanking_length, sample_rate, config)
    else:
        artifact = _linear_shape(data, blanking_length, sample_rate, config)

    artifact[:blanking_length] = data[:blanking_length]
    return FittedArtifact(artifact=artifact, blanking_length=blanking_length, peak=peak)
