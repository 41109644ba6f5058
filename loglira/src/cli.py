"""
Command line entry point for running stimulation artifact rejection.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import click
from tqdm import tqdm

from loglira.src.config import InvalidArgumentError, RejectionConfig
from loglira.src.pipeline import Pipeline, PipelineConfig


def _parse_saturation(_: click.Context, __: click.Option, value: str | None):
    if value is None:
        return None
    try:
        values = [float(item.strip()) for item in value.split(",") if item.strip()]
    except ValueError as exc:
        raise click.BadParameter("Provide one value or 'low,high' in mV, e.g. '5' or '-5,5'.") from exc
    if len(values) not in (1, 2):
        raise click.BadParameter("Provide one value or 'low,high' in mV.")
    return values[0] if len(values) == 1 else tuple(values)


class _TqdmProgress:
    """Adapts a tqdm bar to the ``progress(fraction, label)`` callback."""

    def __init__(self, name: str):
        self.bar = tqdm(total=100, desc=name, unit="%", leave=False)

    def __call__(self, fraction: float, label: str) -> None:
        self.bar.set_postfix_str(label)
        self.bar.n = int(round(fraction * 100))
        self.bar.refresh()


@dataclass
class RunnerOptions:
    paths: Sequence[Path]
    stimuli: Path
    stim_units: str
    sample_rate: Optional[float]
    blanking_period: float
    saturation_voltage: object
    min_clipped_samples: int
    seed: int
    secondary: bool
    plots: bool
    summarize: bool
    progress: bool
    output_dir: Path | None

    def build_pipeline(self) -> Pipeline:
        rejection = RejectionConfig(
            blanking_period=self.blanking_period,
            saturation_voltage=self.saturation_voltage,
            min_clipped_samples=self.min_clipped_samples,
            remove_secondary=self.secondary,
            random_seed=self.seed,
        )
        config = PipelineConfig(
            paths=[str(p) for p in self.paths],
            stimuli_path=str(self.stimuli),
            stim_units=self.stim_units,
            sample_rate=self.sample_rate,
            rejection=rejection,
            output_dir=str(self.output_dir) if self.output_dir else None,
            plots=self.plots,
            summarize=self.summarize,
        )
        return Pipeline(config, progress_factory=_TqdmProgress if self.progress else None)


@click.command(context_settings={"show_default": True})
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option(
    "--stimuli",
    "-s",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File with one stimulus onset per line (CSV/text or .npy).",
)
@click.option(
    "--stim-units",
    type=click.Choice(["samples", "seconds"]),
    default="samples",
    help="Units of the stimulus onsets.",
)
@click.option("--sample-rate", type=float, default=None, help="Sampling rate (Hz) for .npy/.csv inputs.")
@click.option("--blanking-period", default=1e-3, type=float, help="Blanking period after each onset (s).")
@click.option(
    "--saturation-voltage",
    default=None,
    callback=_parse_saturation,
    help="Recording system operating range in mV: 'v' or 'low,high'. Defaults to 95% of the data maximum.",
)
@click.option("--min-clipped-samples", default=2, type=int, help="Consecutive saturated samples that count as clipping.")
@click.option("--seed", default=33, type=int, help="Random seed for the residual clustering.")
@click.option("--secondary/--no-secondary", default=True, help="Remove the secondary artifact shared across trials.")
@click.option("--plots/--no-plots", default=True, help="Save trial and cluster plots.")
@click.option("--summarize/--no-summarize", default=False, help="Emit a combined results_summary.csv.")
@click.option("--progress/--no-progress", default=True, help="Show a progress bar per channel.")
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(path_type=Path),
    help="Optional directory to store per-recording outputs (defaults to alongside each input).",
)
@click.option("--verbose", "-v", count=True, help="-v for info, -vv for debug logging.")
def main(
    paths,
    stimuli,
    stim_units,
    sample_rate,
    blanking_period,
    saturation_voltage,
    min_clipped_samples,
    seed,
    secondary,
    plots,
    summarize,
    progress,
    output_dir,
    verbose,
):
    """Remove stimulation artifacts from every channel of the given recordings."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    options = RunnerOptions(
        paths=paths,
        stimuli=stimuli,
        stim_units=stim_units,
        sample_rate=sample_rate,
        blanking_period=blanking_period,
        saturation_voltage=saturation_voltage,
        min_clipped_samples=min_clipped_samples,
        seed=seed,
        secondary=secondary,
        plots=plots,
        summarize=summarize,
        progress=progress,
        output_dir=output_dir,
    )
    pipeline = options.build_pipeline()
    try:
        summary = pipeline.run()
    except InvalidArgumentError as exc:
        raise click.BadParameter(str(exc)) from exc
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    if not summary.empty:
        click.echo(summary.drop(columns=["trace_csv", "trials_csv"]).to_string(index=False))


if __name__ == "__main__":
    main()
