"""
Module for removing stimulation artifacts from electrophysiological recordings.

Each stimulus is handled in onset order: bound the artifact, find its peak,
reconstruct its decay from log-spaced nodes, subtract it and bridge the seams
into the already-corrected output. A final pass clusters the residuals left
right after the blanking boundary and removes the shared secondary artifact.

Trials whose blanking window does not depart from baseline, and trials where
no discernible peak is found, are left untouched: no reconstruction is
subtracted and no bridge is applied, so a recording without artifacts comes
back unchanged.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

import numpy as np

from loglira.src.baseline import baseline_from_stim, inter_stimulus_intervals, pooled_baseline, robust_std
from loglira.src.clustering import ClusteringStrategy
from loglira.src.config import InvalidArgumentError, RejectionConfig
from loglira.src.correction import correct_discontinuity
from loglira.src.extent import find_artifact_extent, has_artifact
from loglira.src.fit import fit_artifact
from loglira.src.peak import find_artifact_peak
from loglira.src.results import RejectionResult, TrialRecord, TrialState
from loglira.src.secondary import ResidualTable, remove_secondary_artifact
from loglira.src.utils import to_samples

logger = logging.getLogger(__name__)


def _validate_inputs(signal, stimulus_indices, sample_rate):
    signal = np.asarray(signal, dtype=float)
    if signal.ndim != 1 or signal.size == 0:
        raise InvalidArgumentError("signal must be a non-empty 1-D sequence")
    if not np.all(np.isfinite(signal)):
        raise InvalidArgumentError("signal must contain finite values only")

    try:
        sample_rate = float(sample_rate)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError("sample_rate must be a number") from exc
    if not np.isfinite(sample_rate) or sample_rate <= 0:
        raise InvalidArgumentError("sample_rate must be > 0")

    stim = np.asarray(stimulus_indices)
    if stim.ndim != 1 or stim.size == 0:
        raise InvalidArgumentError("stimulus_indices must be a non-empty 1-D sequence")
    if stim.dtype == bool or not np.issubdtype(stim.dtype, np.number) or np.any(stim != np.round(stim)):
        raise InvalidArgumentError("stimulus_indices must hold integer sample indices")
    stim = stim.astype(int)
    if stim[0] < 0 or stim[-1] >= signal.size:
        raise InvalidArgumentError("stimulus_indices must lie inside the signal")
    if np.any(np.diff(stim) <= 0):
        raise InvalidArgumentError("stimulus_indices must be strictly ascending")
    return signal, stim, sample_rate


def reject_artifacts(
    signal,
    stimulus_indices,
    sample_rate: float,
    blanking_period: Optional[float] = None,
    config: RejectionConfig | None = None,
    progress: Optional[Callable[[float, str], None]] = None,
    strategies: Optional[Sequence[ClusteringStrategy]] = None,
    **options,
) -> RejectionResult:
    """
    Remove every stimulus-locked artifact from a single-channel trace.

    Parameters
    ----------
    signal : array-like
        Voltage trace (µV-equivalent units). Not modified.
    stimulus_indices : array-like of int
        Strictly ascending 0-based onset indices.
    sample_rate : float
        Sampling rate in Hz.
    blanking_period : float, optional
        Seconds after each onset left as raw data; overrides
        ``config.blanking_period`` (1 ms by default).
    config : RejectionConfig, optional
        Full option set; ``options`` override individual fields, e.g.
        ``saturation_voltage``, ``min_clipped_samples`` or ``random_seed``.
    progress : callable, optional
        ``progress(fraction, label)``, called after every trial and every
        clustering step.
    strategies : sequence of ClusteringStrategy, optional
        Algorithms feeding the consensus clustering (k-means and spectral
        clustering by default).

    Returns
    -------
    RejectionResult
        Unpacks as ``signal, blanking_lengths, skipped_trials``.

    Raises
    ------
    InvalidArgumentError
        On malformed inputs or options, before any processing.
    """
    config = config or RejectionConfig()
    if blanking_period is not None:
        options["blanking_period"] = blanking_period
    if options:
        config = config.replace(**options)
    config.validate()
    signal, stim, fs = _validate_inputs(signal, stimulus_indices, sample_rate)

    output = signal.copy()
    blanking_n = to_samples(config.blanking_period, fs)
    search_n = max(1, to_samples(config.search_window, fs))
    correction_n = max(1, to_samples(config.correction_window, fs))
    residual_n = max(1, to_samples(config.residual_duration, fs))

    baseline, (lower_baseline, upper_baseline) = baseline_from_stim(
        signal, stim, fs, config.baseline_duration, config.baseline_offset, config.baseline_percentiles
    )
    baseline_std = robust_std(pooled_baseline(signal, stim, fs, config.baseline_duration, config.baseline_offset))
    isi = inter_stimulus_intervals(stim, signal.size)

    table = ResidualTable.empty(stim.size, residual_n)
    records = []
    skipped = set()
    unfitted = []

    for idx, (onset, interval) in enumerate(zip(stim, isi)):
        record = TrialRecord(trial=idx, onset=int(onset), isi=int(interval))
        records.append(record)
        window = signal[onset:onset + interval]

        extent = find_artifact_extent(window, blanking_n, search_n, (lower_baseline, upper_baseline))
        record.extent = extent.n_samples
        record.reached_baseline = extent.reached_baseline
        record.advance(TrialState.EXTENT_BOUNDED)
        data = window[:extent.n_samples]

        if blanking_n >= interval:
            logger.debug("Trial %d: blanking period covers the whole inter-stimulus interval.", idx)
            _skip_trial(output, record, config.blank_fill, skipped)
        elif not has_artifact(data, blanking_n, baseline, baseline_std, config.presence_threshold):
            logger.debug("Trial %d: no artifact detected; left untouched.", idx)
            record.has_artifact = False
            record.advance(TrialState.PURE_BLANKED)
        else:
            peak = find_artifact_peak(
                data,
                fs,
                config.blanking_period,
                saturation_voltage=config.saturation_voltage,
                min_clipped_samples=config.min_clipped_samples,
                saturation_scale=config.saturation_scale,
                height_fraction=config.peak_height_fraction,
                min_clipped_peak_run=config.min_clipped_peak_run,
            )
            record.peak_idx = peak.peak_idx
            record.polarity = peak.polarity
            record.is_clipped = peak.is_clipped
            if peak.is_clipped:
                record.clipped_start = int(peak.clipped_samples[0])
                record.clipped_end = int(peak.clipped_samples[-1])
            record.advance(TrialState.PEAK_LOCATED)

            fitted = fit_artifact(data, fs, config.blanking_period, config, peak=peak)
            if fitted.no_artifact:
                logger.debug("Trial %d: no discernible peak; left untouched.", idx)
                unfitted.append(idx)
                record.advance(TrialState.PURE_BLANKED)
            elif fitted.fully_blanked:
                logger.debug("Trial %d: artifact covers the whole window.", idx)
                _skip_trial(output, record, config.blank_fill, skipped)
            else:
                record.blanking_length = fitted.blanking_length
                record.advance(TrialState.SHAPE_FITTED)
                residual = data - fitted.artifact
                correct_discontinuity(
                    output,
                    int(onset),
                    residual,
                    extent.reached_baseline,
                    correction_n,
                    config.correction_method,
                    end=int(onset + interval),
                )
                record.advance(TrialState.DISCONTINUITY_CORRECTED)
                table.add(idx, int(onset), residual, fitted.blanking_length)

        if progress is not None:
            progress((idx + 1) / stim.size, "Removing artifacts...")

    if skipped:
        logger.warning(
            "%d of %d trials were blanked completely and skipped: %s",
            len(skipped),
            stim.size,
            sorted(skipped),
        )
    if unfitted:
        logger.warning(
            "%d of %d trials deviate from baseline but have no discernible peak and were left untouched: %s",
            len(unfitted),
            stim.size,
            unfitted,
        )
    if table.overrun:
        logger.warning(
            "%d trials have a residual window overrunning their segment and are excluded from secondary artifact removal.",
            len(table.overrun),
        )

    labels = np.full(stim.size, -1, dtype=int)
    if config.remove_secondary:
        secondary = remove_secondary_artifact(output, table, config, strategies=strategies, progress=progress)
        labels = secondary.labels
        for trial in secondary.corrected:
            records[trial].secondary_corrected = True

    for record, label in zip(records, labels):
        record.cluster = int(label)
        record.advance(TrialState.FINALIZED)

    metadata = {
        "sample_rate": fs,
        "n_stimuli": int(stim.size),
        "blanking_period": config.blanking_period,
        "baseline": baseline,
        "baseline_band": (float(lower_baseline), float(upper_baseline)),
        "n_skipped": len(skipped),
        "random_seed": config.random_seed,
    }
    return RejectionResult(
        signal=output,
        trials=records,
        skipped_trials=skipped,
        overrun_trials=set(table.overrun),
        labels=labels,
        metadata=metadata,
    )


def _skip_trial(output: np.ndarray, record: TrialRecord, blank_fill: str, skipped: set) -> None:
    if blank_fill == "zero":
        output[record.onset:record.onset + record.extent] = 0.0
    record.advance(TrialState.FULLY_SKIPPED)
    skipped.add(record.trial)


logssar = reject_artifacts
