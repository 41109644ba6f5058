"""
End-to-end behaviour of ``reject_artifacts`` on synthetic recordings.

The reference recording is 100,000 samples at 30 kHz with 50 stimuli every
2,000 samples, each followed by a 2,000 µV exponential decay (1 ms time
constant) on top of σ = 5 µV Gaussian noise.
"""
import logging

import numpy as np
import pytest

from fixtures.signal_generators import NOISE_STD, SAMPLE_RATE, make_noise, make_stimulated_trace
from loglira import InvalidArgumentError, RejectionConfig, TrialState, logssar, reject_artifacts

LATE_START = 90  # 3 ms after the onset


@pytest.fixture(scope="module")
def recording():
    return make_stimulated_trace(seed=11)


@pytest.fixture(scope="module")
def processed(recording):
    trace, _, onsets = recording
    raw = trace.copy()
    result = reject_artifacts(trace, onsets, SAMPLE_RATE)
    return raw, result


def test_output_length_and_input_untouched(recording, processed) -> None:
    trace, _, _ = recording
    raw, result = processed
    assert result.signal.shape == raw.shape
    np.testing.assert_array_equal(trace, raw)


def test_samples_before_first_stimulus_are_identical(recording, processed) -> None:
    _, _, onsets = recording
    raw, result = processed
    np.testing.assert_array_equal(result.signal[:onsets[0]], raw[:onsets[0]])


def test_every_trial_is_fitted_with_early_peak(processed) -> None:
    _, result = processed
    assert result.skipped_trials == set()
    assert len(result.trials) == 50
    for trial in result.trials:
        assert trial.fit_state == TrialState.SHAPE_FITTED
        assert trial.state == TrialState.FINALIZED
        assert trial.reached_baseline
        assert 0 <= trial.peak_idx < 30
        assert trial.polarity != 0
        assert trial.blanking_length == 30


def test_late_residual_matches_baseline_noise(processed) -> None:
    _, result = processed
    stds = []
    for trial in result.trials:
        start, stop = trial.onset + LATE_START, trial.onset + trial.extent
        stds.append(np.std(result.signal[start:stop]))
    assert np.mean(stds) == pytest.approx(NOISE_STD, rel=0.2)


def test_artifact_is_removed(recording, processed) -> None:
    _, noise, _ = recording
    raw, result = processed
    assert np.sqrt(np.mean((raw - noise) ** 2)) > 100.0
    assert np.sqrt(np.mean((result.signal - noise) ** 2)) < 3 * NOISE_STD
    assert np.max(np.abs(result.signal)) < 100.0


def test_boundaries_are_continuous(processed) -> None:
    raw, result = processed
    for trial in result.trials:
        onset, stop = trial.onset, trial.onset + trial.extent
        step = abs(result.signal[onset] - result.signal[onset - 1])
        assert step < abs(raw[onset] - raw[onset - 1])
        if stop < raw.size:
            assert abs(result.signal[stop] - result.signal[stop - 1]) < 8 * NOISE_STD


def test_result_unpacks_and_tabulates(processed) -> None:
    _, result = processed
    signal, blanking_lengths, skipped = result
    assert signal is result.signal
    assert blanking_lengths == [30] * 50
    assert skipped == set()

    df = result.to_frame()
    assert len(df) == 50
    assert {"onset", "extent", "peak_idx", "blanking_length", "cluster", "state"} <= set(df.columns)
    assert df.attrs["sample_rate"] == SAMPLE_RATE
    assert df.attrs["n_stimuli"] == 50


def test_cluster_labels_cover_every_trial(processed) -> None:
    _, result = processed
    assert result.labels.shape == (50,)
    for label in set(result.labels.tolist()) - {-1}:
        assert np.sum(result.labels == label) >= RejectionConfig().min_cluster_size


def test_runs_are_deterministic(recording, processed) -> None:
    trace, _, onsets = recording
    _, first = processed
    second = reject_artifacts(trace, onsets, SAMPLE_RATE, random_seed=33)
    np.testing.assert_array_equal(first.signal, second.signal)
    np.testing.assert_array_equal(first.labels, second.labels)


def test_pure_noise_is_returned_unchanged() -> None:
    noise = make_noise(100_000, seed=21)
    onsets = np.arange(1000, 100_000, 2000)
    result = reject_artifacts(noise, onsets, SAMPLE_RATE)
    np.testing.assert_array_equal(result.signal, noise)
    assert result.skipped_trials == set()
    assert result.untouched_trials == set(range(50))

    again = reject_artifacts(result.signal, onsets, SAMPLE_RATE)
    np.testing.assert_array_equal(again.signal, noise)


def test_fully_clipped_trial_is_skipped(recording, caplog) -> None:
    trace, _, onsets = recording
    trace = trace.copy()
    trace[onsets[10]:onsets[11]] = 5000.0

    with caplog.at_level(logging.WARNING, logger="loglira.src.stim_artifact"):
        result = reject_artifacts(trace, onsets, SAMPLE_RATE, remove_secondary=False)

    record = result.trials[10]
    assert record.is_clipped
    assert (record.clipped_start, record.clipped_end) == (0, 1999)
    assert record.fit_state == TrialState.FULLY_SKIPPED
    assert result.skipped_trials == {10}
    assert result.blanking_lengths[10] is None
    np.testing.assert_array_equal(result.signal[onsets[10]:onsets[11]], 5000.0)
    assert "1 of 50 trials" in caplog.text


def test_skipped_trial_can_be_zeroed(recording) -> None:
    trace, _, onsets = recording
    trace = trace.copy()
    trace[onsets[3]:onsets[4]] = 5000.0
    result = reject_artifacts(trace, onsets, SAMPLE_RATE, remove_secondary=False, blank_fill="zero")
    np.testing.assert_array_equal(result.signal[onsets[3]:onsets[4]], 0.0)


def test_blanking_longer_than_interval_skips_trial() -> None:
    trace, _, _ = make_stimulated_trace(n_samples=6000, onsets=[1000, 1020, 3000], seed=2)
    result = reject_artifacts(trace, [1000, 1020, 3000], SAMPLE_RATE, remove_secondary=False)
    assert 0 in result.skipped_trials
    assert result.trials[0].fit_state == TrialState.FULLY_SKIPPED


def test_clipped_artifacts_are_bridged() -> None:
    trace, noise, onsets = make_stimulated_trace(n_samples=40_000, noise_std=1.0, seed=5)
    trace = np.clip(trace, -1500.0, 1500.0)
    result = reject_artifacts(trace, onsets, SAMPLE_RATE, saturation_voltage=1.5, remove_secondary=False)
    for record in result.trials:
        assert record.is_clipped
        assert record.peak_idx == record.clipped_end
        assert record.fit_state == TrialState.SHAPE_FITTED
    assert np.max(np.abs(result.signal - noise)) < 100.0


def test_progress_is_reported_after_every_trial(recording) -> None:
    trace, _, onsets = recording
    calls = []
    reject_artifacts(
        trace, onsets, SAMPLE_RATE, remove_secondary=False, progress=lambda f, label: calls.append((f, label))
    )
    assert len(calls) == 50
    assert calls[-1][0] == pytest.approx(1.0)
    assert all(label == "Removing artifacts..." for _, label in calls)


@pytest.mark.parametrize("tau_samples", [20.0, 24.0, 28.0])
def test_bridge_stops_at_next_stimulus(tau_samples) -> None:
    onsets = [1000, 1200, 2000]
    trace, noise, _ = make_stimulated_trace(n_samples=3000, onsets=onsets, tau_samples=tau_samples)
    result = reject_artifacts(trace, onsets, SAMPLE_RATE, remove_secondary=False)

    first = result.trials[0]
    assert first.fit_state == TrialState.SHAPE_FITTED
    assert first.extent <= first.isi
    if first.reached_baseline:
        assert first.extent < first.isi
    start = first.onset + first.blanking_length
    assert np.max(np.abs(result.signal[start:onsets[1]] - noise[start:onsets[1]])) < 50.0


def test_zero_blanking_period_still_removes_artifacts(recording) -> None:
    trace, noise, onsets = recording
    result = reject_artifacts(trace, onsets, SAMPLE_RATE, blanking_period=0.0)

    assert result.skipped_trials == set()
    assert result.blanking_lengths == [1] * 50
    for trial in result.trials:
        assert trial.fit_state == TrialState.SHAPE_FITTED
        assert trial.peak_idx == 0
    after_onset = np.ones(trace.size, dtype=bool)
    after_onset[:onsets[0] + 1] = False
    after_onset[onsets] = False
    assert np.max(np.abs(result.signal - noise)[after_onset]) < 100.0


def test_deviating_trial_without_peak_is_reported(caplog) -> None:
    signal = np.zeros(4000)
    onset = 2000
    signal[onset:onset + 2] = 500.0
    signal[onset + 2:onset + 61] = np.linspace(510.0, 1000.0, 59)
    signal[onset + 61:] = 1000.0 * np.exp(-np.arange(1, 4000 - onset - 60) / 20.0)

    with caplog.at_level(logging.WARNING, logger="loglira.src.stim_artifact"):
        result = reject_artifacts(signal, [onset], SAMPLE_RATE)

    record = result.trials[0]
    assert record.has_artifact
    assert record.peak_idx is None
    assert record.fit_state == TrialState.PURE_BLANKED
    np.testing.assert_array_equal(result.signal, signal)
    assert "1 of 1 trials deviate from baseline" in caplog.text


def test_logssar_alias() -> None:
    assert logssar is reject_artifacts


@pytest.mark.parametrize(
    "signal, stim, fs, options",
    [
        (np.zeros(1000), [100, 500], 0.0, {}),
        (np.zeros(1000), [100, 500], -30_000.0, {}),
        (np.zeros(1000), [100, 500], "fast", {}),
        (np.zeros(1000), [], 30_000.0, {}),
        (np.zeros(1000), [500, 100], 30_000.0, {}),
        (np.zeros(1000), [100, 100], 30_000.0, {}),
        (np.zeros(1000), [100, 1000], 30_000.0, {}),
        (np.zeros(1000), [100.5, 500], 30_000.0, {}),
        (np.zeros((2, 1000)), [100, 500], 30_000.0, {}),
        (np.full(1000, np.nan), [100, 500], 30_000.0, {}),
        (np.zeros(1000), [100, 500], 30_000.0, {"baseline_percentiles": (-5.0, 75.0)}),
        (np.zeros(1000), [100, 500], 30_000.0, {"min_clipped_samples": 0}),
        (np.zeros(1000), [100, 500], 30_000.0, {"not_an_option": 1}),
        (np.zeros(1000), [100, 500], 30_000.0, {"blanking_period": "1ms"}),
    ],
)
def test_malformed_inputs_raise_before_processing(signal, stim, fs, options) -> None:
    with pytest.raises(InvalidArgumentError):
        reject_artifacts(signal, stim, fs, **options)
