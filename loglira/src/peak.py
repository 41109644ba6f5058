"""
Locate the end of the non-recoverable part of a stimulus artifact.

The peak is the last sample after which it becomes possible to recover data.
When the amplifier saturates, the clipped samples carry no shape information,
so the peak is pushed to the end of the clipped run that contains it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
from scipy.signal import find_peaks

from loglira.src.config import SaturationVoltage, saturation_band
from loglira.src.utils import contiguous_runs, local_extrema, to_samples


@dataclass(frozen=True)
class ClippedRun:
    """Inclusive run of samples beyond one saturation boundary."""

    start: int
    end: int
    sign: int

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __contains__(self, idx: int) -> bool:
        return self.start <= idx <= self.end


@dataclass
class ArtifactPeak:
    """Peak location, clipping state and polarity of one trial's artifact."""

    peak_idx: Optional[int] = None
    is_clipped: bool = False
    clipped_samples: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=int))
    polarity: int = 0
    clipped_runs: List[ClippedRun] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return self.peak_idx is None


def default_saturation_band(data: np.ndarray, margin: float = 0.95) -> Tuple[float, float]:
    limit = margin * float(np.max(np.abs(data)))
    return -limit, limit


def detect_clipping(data: np.ndarray, band: Tuple[float, float], min_clipped_samples: int = 2) -> List[ClippedRun]:
    """Maximal runs at/beyond each saturation boundary, at least ``min_clipped_samples`` long."""
    low, high = band
    if high <= low:
        return []
    runs = []
    for mask, sign in ((data <= low, -1), (data >= high, 1)):
        runs.extend(
            ClippedRun(start, end, sign)
            for start, end in contiguous_runs(mask)
            if end - start + 1 >= min_clipped_samples
        )
    return sorted(runs, key=lambda run: run.start)


def _latest_peak(x: np.ndarray, height_fraction: float) -> Optional[int]:
    # Reversed so the first qualifying peak is the one closest to the window end.
    top = float(np.max(x))
    threshold = top - (1.0 - height_fraction) * abs(top)
    pad = float(np.min(x)) - 1.0
    reversed_x = np.concatenate(([pad], x[::-1], [pad]))
    peaks, props = find_peaks(reversed_x, height=threshold, plateau_size=1)
    if peaks.size == 0:
        return None
    return x.size - int(props["left_edges"][0])


def _run_containing(runs: List[ClippedRun], idx: int, sign: Optional[int] = None) -> Optional[ClippedRun]:
    for run in runs:
        if idx in run and (sign is None or run.sign == sign):
            return run
    return None


def find_artifact_peak(
    data,
    sample_rate: float,
    blanking_period: float,
    saturation_voltage: SaturationVoltage = None,
    min_clipped_samples: int = 2,
    saturation_scale: float = 1e3,
    height_fraction: float = 0.975,
    min_clipped_peak_run: int = 3,
) -> ArtifactPeak:
    """
    Find the artifact peak within the blanking window of a trial.

    Parameters
    ----------
    data : array-like
        Trial window starting at the stimulus onset.
    sample_rate : float
        Sampling rate in Hz.
    blanking_period : float
        Blanking window in seconds; the peak is searched inside it. A window
        shorter than one sample still covers the onset sample.
    saturation_voltage : float or (float, float), optional
        Recording system operating range, in units that ``saturation_scale``
        converts to trace units (mV to µV by default). A scalar means a range
        symmetric around 0. Defaults to 95% of the window's absolute maximum.
    min_clipped_samples : int
        Minimum run of consecutive saturated samples to count as clipping.

    Returns
    -------
    ArtifactPeak
        Empty (``peak_idx is None``) when no discernible artifact is found.
    """
    data = np.asarray(data, dtype=float)
    if data.size == 0:
        return ArtifactPeak()

    band = saturation_band(saturation_voltage, saturation_scale) or default_saturation_band(data)
    runs = detect_clipping(data, band, min_clipped_samples)

    # The onset sample is always searched, even with a zero blanking period.
    n_blank = min(max(1, to_samples(blanking_period, sample_rate)), data.size)
    blank = data[:n_blank]
    extrema = local_extrema(data)
    max_idx = _latest_peak(blank, height_fraction)
    min_idx = _latest_peak(-blank, height_fraction)

    candidates = {}
    for idx, sign in ((min_idx, -1), (max_idx, 1)):
        if idx is None:
            continue
        # Clipping flattens the true extremum.
        if extrema[idx] or _run_containing(runs, idx, sign) is not None:
            candidates[sign] = idx

    if not candidates:
        return ArtifactPeak(clipped_runs=runs)

    if len(candidates) == 2:
        polarity = 1 if candidates[1] > candidates[-1] else -1
    else:
        polarity = next(iter(candidates))
    peak_idx = candidates[polarity]

    peak = ArtifactPeak(peak_idx=peak_idx, polarity=polarity, clipped_runs=runs)
    run = _run_containing(runs, peak_idx)
    if run is not None and len(run) >= min_clipped_peak_run:
        peak.is_clipped = True
        peak.clipped_samples = np.arange(run.start, run.end + 1)
        peak.peak_idx = run.end
    return peak
