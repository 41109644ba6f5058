"""
Options structure shared by every stage of the artifact rejection pipeline.
"""
from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, fields, replace as dc_replace
from typing import Iterable, Optional, Sequence, Tuple, Union

SaturationVoltage = Union[float, Sequence[float], None]

INTERPOLATION_METHODS = ("linear", "spline")
CORRECTION_METHODS = ("linear", "pchip", "spline")
BLANK_FILLS = ("raw", "zero")

_REAL_FIELDS = (
    "blanking_period",
    "saturation_scale",
    "peak_height_fraction",
    "baseline_duration",
    "baseline_offset",
    "search_window",
    "presence_threshold",
    "node_fraction",
    "node_span",
    "padding_duration",
    "correction_window",
    "residual_duration",
    "pca_variance",
    "cophenetic_threshold",
)


class InvalidArgumentError(ValueError):
    """Raised when inputs or options are malformed. Nothing is processed."""


@dataclass(frozen=True)
class RejectionConfig:
    """Every recognised option of ``reject_artifacts`` with its default."""

    blanking_period: float = 1e-3
    saturation_voltage: SaturationVoltage = None
    saturation_scale: float = 1e3
    min_clipped_samples: int = 2
    min_clipped_peak_run: int = 3
    peak_height_fraction: float = 0.975

    baseline_duration: float = 10e-3
    baseline_offset: float = 0.5e-3
    baseline_percentiles: Tuple[float, float] = (25.0, 75.0)
    search_window: float = 3e-3
    presence_threshold: float = 3.0

    node_fraction: float = 0.1
    node_span: float = 50e-3
    min_half_interval: int = 2
    max_half_interval: int = 15
    interpolation: str = "linear"
    padding_duration: float = 1e-3

    correction_window: float = 0.2e-3
    correction_method: str = "linear"
    blank_fill: str = "raw"

    remove_secondary: bool = True
    residual_duration: float = 2e-3
    pca_variance: float = 0.7
    min_pca_components: int = 2
    cluster_range: Tuple[int, int] = (2, 10)
    consensus_runs: int = 5
    cophenetic_threshold: float = 0.8
    min_cluster_size: int = 50
    gmm_max_iter: int = 100
    random_seed: Optional[int] = 33

    def replace(self, **overrides) -> "RejectionConfig":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise InvalidArgumentError(f"Unknown option(s): {', '.join(unknown)}")
        return dc_replace(self, **overrides)

    def saturation_band(self) -> Optional[Tuple[float, float]]:
        """Saturation band in trace units, or None to derive it from the data."""
        return saturation_band(self.saturation_voltage, self.saturation_scale)

    def validate(self) -> "RejectionConfig":
        n = {name: _number(getattr(self, name), name) for name in _REAL_FIELDS}
        _require(n["blanking_period"] >= 0, "blanking_period must be >= 0")
        _require(n["saturation_scale"] > 0, "saturation_scale must be > 0")
        if self.saturation_voltage is not None:
            saturation_band(self.saturation_voltage, n["saturation_scale"])
        _require(_is_positive_int(self.min_clipped_samples), "min_clipped_samples must be a positive integer")
        _require(_is_positive_int(self.min_clipped_peak_run), "min_clipped_peak_run must be a positive integer")
        _require(0 < n["peak_height_fraction"] <= 1, "peak_height_fraction must be in (0, 1]")

        _require(n["baseline_duration"] > 0, "baseline_duration must be > 0")
        _require(n["baseline_offset"] >= 0, "baseline_offset must be >= 0")
        low, high = _pair(self.baseline_percentiles, "baseline_percentiles")
        low, high = _number(low, "baseline_percentiles"), _number(high, "baseline_percentiles")
        _require(0 <= low <= high <= 100, "baseline_percentiles must satisfy 0 <= low <= high <= 100")
        _require(n["search_window"] > 0, "search_window must be > 0")
        _require(n["presence_threshold"] > 0, "presence_threshold must be > 0")

        _require(0 < n["node_fraction"] <= 1, "node_fraction must be in (0, 1]")
        _require(n["node_span"] > 0, "node_span must be > 0")
        _require(_is_positive_int(self.min_half_interval), "min_half_interval must be a positive integer")
        _require(
            _is_positive_int(self.max_half_interval) and self.max_half_interval >= self.min_half_interval,
            "max_half_interval must be an integer >= min_half_interval",
        )
        _require(self.interpolation in INTERPOLATION_METHODS, f"interpolation must be one of {INTERPOLATION_METHODS}")
        _require(n["padding_duration"] >= 0, "padding_duration must be >= 0")

        _require(n["correction_window"] > 0, "correction_window must be > 0")
        _require(self.correction_method in CORRECTION_METHODS, f"correction_method must be one of {CORRECTION_METHODS}")
        _require(self.blank_fill in BLANK_FILLS, f"blank_fill must be one of {BLANK_FILLS}")

        _require(n["residual_duration"] > 0, "residual_duration must be > 0")
        _require(0 < n["pca_variance"] <= 1, "pca_variance must be in (0, 1]")
        _require(_is_positive_int(self.min_pca_components), "min_pca_components must be a positive integer")
        k_min, k_max = _pair(self.cluster_range, "cluster_range")
        _require(
            _is_positive_int(k_min) and _is_positive_int(k_max) and 2 <= k_min <= k_max,
            "cluster_range must hold integers with 2 <= low <= high",
        )
        _require(_is_positive_int(self.consensus_runs), "consensus_runs must be a positive integer")
        _require(0 < n["cophenetic_threshold"] <= 1, "cophenetic_threshold must be in (0, 1]")
        _require(_is_positive_int(self.min_cluster_size), "min_cluster_size must be a positive integer")
        _require(_is_positive_int(self.gmm_max_iter), "gmm_max_iter must be a positive integer")
        return self


def saturation_band(voltage: SaturationVoltage, scale: float = 1e3) -> Optional[Tuple[float, float]]:
    """Turn a scalar or [low, high] operating range into a scaled (low, high) band."""
    if voltage is None:
        return None
    if isinstance(voltage, (str, bytes)):
        raise InvalidArgumentError("saturation_voltage must be a scalar or a [low, high] pair")
    try:
        values = [float(voltage)]
    except TypeError:
        if not isinstance(voltage, Iterable):
            raise InvalidArgumentError("saturation_voltage must be a scalar or a [low, high] pair")
        values = [_number(v, "saturation_voltage") for v in voltage]
    except ValueError as exc:
        raise InvalidArgumentError("saturation_voltage must be a scalar or a [low, high] pair") from exc
    if len(values) == 1:
        values = [-abs(values[0]), abs(values[0])]
    if len(values) != 2 or not all(math.isfinite(v) for v in values):
        raise InvalidArgumentError("saturation_voltage must be a scalar or a [low, high] pair")
    low, high = min(values) * scale, max(values) * scale
    if low == high:
        raise InvalidArgumentError("saturation_voltage band must have a non-zero width")
    return low, high


def _number(value, name: str) -> float:
    if isinstance(value, (str, bytes, bool)):
        raise InvalidArgumentError(f"{name} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"{name} must be a number") from exc


def _pair(value, name: str) -> Tuple[float, float]:
    try:
        low, high = value
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"{name} must be a (low, high) pair") from exc
    return low, high


def _is_positive_int(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool) and value > 0


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidArgumentError(message)
