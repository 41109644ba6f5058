from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

import matplotlib.pyplot as plt
import pandas as pd

from loglira.src.config import RejectionConfig
from loglira.src.plots import plot_residual_clusters, plot_trials
from loglira.src.read_write import Recording, load_stimuli, load_trace, write_result
from loglira.src.results import RejectionResult
from loglira.src.stim_artifact import reject_artifacts

logger = logging.getLogger(__name__)

RECORDING_SUFFIXES = (".abf", ".npy", ".csv")


@dataclass
class PipelineConfig:
    paths: Sequence[str]
    stimuli_path: str
    stim_units: str = "samples"
    sample_rate: Optional[float] = None
    rejection: RejectionConfig = field(default_factory=RejectionConfig)
    output_dir: str | None = None
    plots: bool = True
    summarize: bool = False


class Pipeline:
    """High-level orchestrator tying loaders, artifact rejection, plots, and exports together."""

    def __init__(self, config: PipelineConfig, progress_factory: Optional[Callable[[str], Callable]] = None):
        self.config = config
        self.progress_factory = progress_factory

    def run(self) -> pd.DataFrame:
        """Process every channel of every input and return one summary row per channel."""
        self.config.rejection.validate()
        summary_rows: List[dict] = []

        stimuli_file = Path(self.config.stimuli_path).resolve()
        for path in self._resolve_paths(self.config.paths):
            if path.resolve() == stimuli_file:
                continue
            base_dir = (
                Path(self.config.output_dir) / path.stem
                if self.config.output_dir
                else path.parent / path.stem
            )
            results_dir = base_dir / "results"
            plots_dir = base_dir / "plots"
            for folder in (results_dir, plots_dir):
                folder.mkdir(parents=True, exist_ok=True)

            logger.info("Processing %s", path.name)
            for recording in load_trace(path, sample_rate=self.config.sample_rate):
                result = self._process(recording)
                stem = f"{path.stem}_{recording.name}"
                trace_path, trials_path = write_result(recording.signal, result, results_dir, stem)
                if self.config.plots:
                    self._make_plots(recording, result, plots_dir, stem)

                summary_rows.append({
                    "file": path.stem,
                    "channel": recording.name,
                    "n_stimuli": len(result.trials),
                    "n_fitted": len(result.trials) - len(result.skipped_trials) - len(result.untouched_trials),
                    "n_untouched": len(result.untouched_trials),
                    "n_skipped": len(result.skipped_trials),
                    "n_secondary": sum(t.secondary_corrected for t in result.trials),
                    "trace_csv": str(trace_path),
                    "trials_csv": str(trials_path),
                })

        summary_df = pd.DataFrame(summary_rows)
        if self.config.summarize and not summary_df.empty:
            summary_dir = Path(self.config.output_dir) if self.config.output_dir else Path.cwd()
            summary_dir.mkdir(parents=True, exist_ok=True)
            summary_df.to_csv(summary_dir / "results_summary.csv", index=False)
        return summary_df

    def _process(self, recording: Recording) -> RejectionResult:
        stim = load_stimuli(
            self.config.stimuli_path,
            units=self.config.stim_units,
            sample_rate=recording.sample_rate,
        )
        progress = self.progress_factory(recording.name) if self.progress_factory else None
        return reject_artifacts(
            recording.signal,
            stim,
            recording.sample_rate,
            config=self.config.rejection,
            progress=progress,
        )

    def _make_plots(self, recording: Recording, result: RejectionResult, plots_dir: Path, stem: str) -> None:
        trials_path = plots_dir / f"{stem}_trials.png"
        clusters_path = plots_dir / f"{stem}_clusters.png"
        fig_trials = plot_trials(recording.signal, result, label=stem, savepath=str(trials_path))
        fig_clusters = plot_residual_clusters(
            recording.signal,
            result,
            window=self.config.rejection.residual_duration,
            savepath=str(clusters_path),
        )
        for fig in (fig_trials, fig_clusters):
            plt.close(fig)

    @staticmethod
    def _resolve_paths(paths: Iterable[str]) -> List[Path]:
        resolved: List[Path] = []
        for entry in paths:
            p = Path(entry)
            if p.is_dir():
                resolved.extend(sorted(f for f in p.iterdir() if f.suffix.lower() in RECORDING_SUFFIXES))
            else:
                resolved.append(p)
        return resolved
