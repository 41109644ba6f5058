"""
Stitch artifact-subtracted segments back into the output trace without steps.
"""
from __future__ import annotations

from typing import Optional

import numpy as np
from scipy.interpolate import CubicSpline, PchipInterpolator


def bridge(left, right, length: int, method: str = "linear") -> np.ndarray:
    """
    Smooth correction spanning a segment of ``length`` samples.

    ``left`` holds the finalised samples right before the segment and
    ``right`` the samples right after it. ``"linear"`` joins the means of the
    two windows, ``"pchip"`` and ``"spline"`` interpolate through every
    anchor sample. A missing side gives a flat correction at the other side's
    nearest sample.
    """
    left = np.asarray(left, dtype=float)
    right = np.asarray(right, dtype=float)
    if left.size == 0 and right.size == 0:
        return np.zeros(length)
    if right.size == 0:
        return np.full(length, left[-1])
    if left.size == 0:
        return np.full(length, right[0])

    x_left = np.arange(-left.size, 0)
    x_right = np.arange(length, length + right.size)
    query = np.arange(length)

    if method == "linear":
        return np.interp(query, [x_left.mean(), x_right.mean()], [left.mean(), right.mean()])

    x = np.concatenate((x_left, x_right))
    y = np.concatenate((left, right))
    if method == "pchip":
        return PchipInterpolator(x, y)(query)
    if method == "spline":
        return CubicSpline(x, y, bc_type="natural")(query)
    raise ValueError(f"Unknown correction method: {method!r}")


def correct_discontinuity(
    output: np.ndarray,
    onset: int,
    residual: np.ndarray,
    reached_baseline: bool,
    correction_n: int,
    method: str = "linear",
    end: Optional[int] = None,
) -> np.ndarray:
    """
    Write ``residual`` plus a bridge into ``output`` starting at ``onset``.

    Anchors are read from ``output``, so samples left of the segment must
    already be final. When the artifact never returned to baseline the right
    side is still contaminated and only the left anchor is used. ``end``
    bounds the right anchor window, normally at the next stimulus onset; an
    empty window gives a flat correction.
    """
    length = residual.size
    stop = onset + length
    limit = stop + correction_n if end is None else min(stop + correction_n, end)
    left = output[max(0, onset - correction_n):onset]
    right = output[stop:limit] if reached_baseline else output[:0]
    output[onset:stop] = residual + bridge(left, right, length, method)
    return output
