import logging

import numpy as np
import pytest

from loglira.src.baseline import baseline_from_stim, inter_stimulus_intervals, pooled_baseline, robust_std
from loglira.src.config import InvalidArgumentError

FS = 2000.0  # 10 ms -> 20 samples, 0.5 ms -> 1 sample


def test_baseline_pools_pre_stimulus_windows() -> None:
    signal = np.zeros(300)
    signal[79:99] = 1.0
    signal[179:199] = 3.0
    median, (low, high) = baseline_from_stim(signal, [100, 200], FS)
    assert median == pytest.approx(2.0)
    assert low == pytest.approx(1.0)
    assert high == pytest.approx(3.0)


def test_percentiles_are_returned_in_requested_order() -> None:
    signal = np.arange(400, dtype=float)
    _, values = baseline_from_stim(signal, [100, 300], FS, percentiles=(90, 10, 50))
    assert values[0] > values[2] > values[1]


@pytest.mark.parametrize("percentiles", [(-1, 50), (25, 101), ()])
def test_out_of_range_percentiles_raise(percentiles) -> None:
    with pytest.raises(InvalidArgumentError):
        baseline_from_stim(np.zeros(100), [50], FS, percentiles=percentiles)


def test_windows_before_first_sample_are_truncated() -> None:
    signal = np.arange(50, dtype=float)
    pooled = pooled_baseline(signal, [5], FS)
    np.testing.assert_array_equal(pooled, [0.0, 1.0, 2.0, 3.0])


def test_no_pre_stimulus_samples_falls_back_to_whole_trace(caplog) -> None:
    signal = np.arange(10, dtype=float)
    with caplog.at_level(logging.WARNING, logger="loglira.src.baseline"):
        pooled = pooled_baseline(signal, [0], FS)
    np.testing.assert_array_equal(pooled, signal)
    assert "whole trace" in caplog.text


def test_robust_std_estimates_gaussian_sigma() -> None:
    rng = np.random.default_rng(3)
    x = rng.normal(0.0, 5.0, 50_000)
    assert robust_std(x) == pytest.approx(5.0, rel=0.05)
    x[:100] = 1e6
    assert robust_std(x) == pytest.approx(5.0, rel=0.05)


def test_inter_stimulus_intervals_run_to_trace_end() -> None:
    np.testing.assert_array_equal(inter_stimulus_intervals([10, 30, 70], 100), [20, 40, 30])
