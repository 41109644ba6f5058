from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import ListedColormap, to_rgba
from matplotlib.ticker import FuncFormatter

from loglira.src.results import RejectionResult, TrialState

def extend_palette(base_colors, n):
    base = np.array(base_colors)
    idx = np.linspace(0, len(base)-1, n)
    return ListedColormap(np.array([base[int(round(i)) % len(base)] for i in idx]))

plt.style.use("seaborn-v0_8")

plt.rcParams.update({
    "axes.labelsize": 19,          # axis labels (x/y)
    "axes.titlesize": 21,          # individual subplot titles
    "xtick.labelsize": 16,         # tick labels
    "ytick.labelsize": 16,
    "legend.fontsize": 15,         # legend entries
    "legend.title_fontsize": 17,   # legend title
    "figure.titlesize": 23,        # global suptitle
})


def set_xaxis_ms(ax, xlim=None):
    """
    Format the x-axis to display milliseconds instead of seconds.

    Parameters
    ----------
    ax : matplotlib.axes.Axes
        The axes object to modify.
    xlim : tuple or None
        Optional (xmin, xmax) in seconds.
    """
    if xlim is None:
        xmin, xmax = ax.get_xlim()
    else:
        xmin, xmax = xlim

    ax.set_xlim(xmin, xmax)
    ax.set_xlabel("Time (ms)")
    ax.xaxis.set_major_formatter(FuncFormatter(lambda x, pos: f"{x * 1000:.0f}"))


def _epochs(signal: np.ndarray, onsets, n_before: int, n_after: int) -> np.ndarray:
    rows = []
    for onset in onsets:
        start, stop = onset - n_before, onset + n_after
        if start >= 0 and stop <= signal.size:
            rows.append(signal[start:stop])
    return np.array(rows).reshape(len(rows), n_before + n_after)


@dataclass
class PlotBase:
    figsize: tuple = (14, 7)
    savepath: Optional[str] = None
    show: bool = False

    def _finalize(self, fig):
        if self.savepath:
            Path(self.savepath).parent.mkdir(parents=True, exist_ok=True)
            fig.savefig(self.savepath, dpi=300, bbox_inches="tight")
        if self.show:
            plt.show()
        return fig


@dataclass
class TrialPlotter(PlotBase):
    window: tuple = (2e-3, 20e-3)
    label: Optional[str] = None
    max_traces: int = 50

    def render(self, raw: np.ndarray, result: RejectionResult):
        fs = result.metadata["sample_rate"]
        n_before = int(round(self.window[0] * fs))
        n_after = int(round(self.window[1] * fs))
        time = (np.arange(-n_before, n_after)) / fs

        fitted = [t.onset for t in result.trials if t.fit_state == TrialState.SHAPE_FITTED]
        skipped = [t.onset for t in result.trials if t.fit_state == TrialState.FULLY_SKIPPED]

        raw_epochs = _epochs(raw, fitted, n_before, n_after)
        clean_epochs = _epochs(result.signal, fitted, n_before, n_after)

        fig, (ax1, ax2) = plt.subplots(
            2,
            1,
            figsize=self.figsize,
            sharex=True,
            gridspec_kw={"height_ratios": [1, 1]},
        )

        raw_color = to_rgba("gray", alpha=0.3)
        clean_color = to_rgba("steelblue", alpha=0.3)
        for row in raw_epochs[:self.max_traces]:
            ax1.plot(time, row, color=raw_color, lw=0.8)
        for row in clean_epochs[:self.max_traces]:
            ax2.plot(time, row, color=clean_color, lw=0.8)

        if len(raw_epochs):
            ax1.plot(time, raw_epochs.mean(axis=0), color="black", lw=1.5, label="Mean")
            ax2.plot(time, clean_epochs.mean(axis=0), color="firebrick", lw=1.5, label="Mean")

        blanking = result.metadata.get("blanking_period", 0.0)
        for ax in (ax1, ax2):
            ax.axvline(0, color="k", lw=0.8, ls="--")
            ax.axvspan(0, blanking, color="gray", alpha=0.2, label="Blanking")

        title = self.label or "Stimulus-locked trials"
        if skipped:
            title += f" ({len(skipped)} skipped)"
        ax1.set_title(title)
        ax1.set_ylabel("Raw (µV)")
        ax2.set_ylabel("Corrected (µV)")
        ax1.legend(loc="best", frameon=False)
        ax2.legend(loc="best", frameon=False)

        set_xaxis_ms(ax2)
        plt.tight_layout()
        return self._finalize(fig)


@dataclass
class ResidualClusterPlotter(PlotBase):
    window: float = 2e-3

    def render(self, raw: np.ndarray, result: RejectionResult):
        fs = result.metadata["sample_rate"]
        n = int(round(self.window * fs))
        time = np.arange(n) / fs
        labels = result.labels if result.labels is not None else np.full(len(result.trials), -1)

        clusters = sorted(set(int(c) for c in labels) - {-1})
        cmap = extend_palette(plt.get_cmap("Set2").colors, max(len(clusters), 1))
        fig, ax = plt.subplots(figsize=self.figsize)

        for i, cluster in enumerate(clusters):
            starts = [
                t.onset + t.blanking_length
                for t, label in zip(result.trials, labels)
                if label == cluster and t.blanking_length is not None
            ]
            epochs = _epochs(raw, starts, 0, n)
            if len(epochs):
                ax.plot(time, epochs.mean(axis=0), color=cmap(i), lw=1.5, label=f"Cluster {cluster} (n={len(epochs)})")

        if not clusters:
            ax.text(0.5, 0.5, "No secondary artifact clusters", ha="center", va="center", transform=ax.transAxes)
        else:
            ax.legend(loc="best", frameon=False)
        ax.set_title("Mean post-blanking raw signal per cluster")
        ax.set_ylabel("Voltage (µV)")
        set_xaxis_ms(ax)
        plt.tight_layout()
        return self._finalize(fig)


def plot_trials(
    raw,
    result: RejectionResult,
    window: tuple = (2e-3, 20e-3),
    label: str | None = None,
    figsize=(14, 9),
    savepath: Optional[str] = None,
    show: bool = False,
):
    """Convenience wrapper to render raw vs corrected trials using the plotter class."""
    plotter = TrialPlotter(figsize=figsize, savepath=savepath, show=show, window=window, label=label)
    return plotter.render(np.asarray(raw, dtype=float), result)


def plot_residual_clusters(
    raw,
    result: RejectionResult,
    window: float = 2e-3,
    figsize=(12, 8),
    savepath: Optional[str] = None,
    show: bool = False,
):
    plotter = ResidualClusterPlotter(figsize=figsize, savepath=savepath, show=show, window=window)
    return plotter.render(np.asarray(raw, dtype=float), result)
