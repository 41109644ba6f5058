import numpy as np
import pandas as pd
from scipy.signal import find_peaks

from typing import Callable, List, Optional, Tuple


## Helper functions
def to_samples(seconds, fs) -> int:
    return int(round(seconds * fs))

def to_ms(samples, fs):
    return samples / fs * 1000

def rolling_median(x: np.ndarray, window_samples: int) -> np.ndarray:
    """
    Median of every full window of ``window_samples`` consecutive samples.

    Element ``i`` of the result is the median of ``x[i:i + window_samples]``;
    the result has ``len(x) - window_samples + 1`` elements (none if the
    window does not fit).
    """
    window_samples = max(1, int(window_samples))
    if len(x) < window_samples:
        return np.empty(0, dtype=float)
    med = pd.Series(np.asarray(x, dtype=float)).rolling(window_samples).median()
    return med.to_numpy()[window_samples - 1:]

def contiguous_runs(mask: np.ndarray) -> List[Tuple[int, int]]:
    """Inclusive (start, end) pairs of every run of True values in ``mask``."""
    idx = np.flatnonzero(mask)
    if idx.size == 0:
        return []
    breaks = np.flatnonzero(np.diff(idx) != 1)
    starts = np.concatenate(([idx[0]], idx[breaks + 1]))
    ends = np.concatenate((idx[breaks], [idx[-1]]))
    return [(int(s), int(e)) for s, e in zip(starts, ends)]

def local_extrema(data: np.ndarray, include_first: bool = True) -> np.ndarray:
    """
    Boolean mask of local maxima and minima.

    Plateaus count once, at their centre. When ``include_first`` is set the
    first sample counts as an extremum if it differs from its successor, as a
    trial window starts at the stimulus onset.
    """
    data = np.asarray(data, dtype=float)
    mask = np.zeros(data.shape, dtype=bool)
    if data.size < 2:
        return mask
    maxima, _ = find_peaks(data)
    minima, _ = find_peaks(-data)
    mask[maxima] = True
    mask[minima] = True
    if include_first and data[0] != data[1]:
        mask[0] = True
    return mask

def first_index(values: np.ndarray, predicate: Callable[[np.ndarray], np.ndarray], start: int = 0) -> Optional[int]:
    """First index ``>= start`` where the vectorised ``predicate`` holds, else None."""
    values = np.asarray(values)
    if start >= values.size:
        return None
    hits = np.flatnonzero(predicate(values[start:]))
    return int(hits[0]) + start if hits.size else None
