from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
import pyabf

from loglira.src.results import RejectionResult


@dataclass
class Recording:
    """One single-channel trace ready for artifact rejection."""

    name: str
    signal: np.ndarray
    sample_rate: float


def read_abf(abf_path: str):
    return pyabf.ABF(abf_path)

## Load ABF: every channel of every sweep is an independent trace
def load_abf_channels(abf_path: str) -> List[Recording]:
    abf = read_abf(abf_path)
    fs = float(abf.sampleRate)
    records = []
    for sweep in abf.sweepList:
        for channel in abf.channelList:
            abf.setSweep(sweep, channel=channel)
            name = f"ch{channel}_sweep{sweep}"
            records.append(Recording(name, abf.sweepY.astype(float), fs))
    return records

def load_trace(path: str | Path, sample_rate: Optional[float] = None) -> List[Recording]:
    """
    Load ``.abf``, ``.npy`` or ``.csv`` recordings.

    ``.npy`` holds one trace or a (channels, samples) array. ``.csv`` holds one
    column per channel; a ``time`` column (seconds) sets the sample rate when
    ``sample_rate`` is not given.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".abf":
        return load_abf_channels(str(path))

    if suffix == ".npy":
        data = np.atleast_2d(np.load(path))
        if sample_rate is None:
            raise ValueError(f"Sample rate required for {path.name}")
        return [Recording(f"ch{i}", row.astype(float), float(sample_rate)) for i, row in enumerate(data)]

    if suffix == ".csv":
        df = pd.read_csv(path, comment="#")
        if "time" in df.columns:
            if sample_rate is None:
                dt = np.median(np.diff(df["time"].to_numpy()))
                sample_rate = 1.0 / dt
            df = df.drop(columns=["time"])
        if sample_rate is None:
            raise ValueError(f"Sample rate required for {path.name}")
        return [Recording(str(col), df[col].to_numpy(dtype=float), float(sample_rate)) for col in df.columns]

    raise ValueError(f"Unsupported recording format: {path.suffix}")

def load_stimuli(path: str | Path, units: str = "samples", sample_rate: Optional[float] = None) -> np.ndarray:
    """Read stimulus onsets (first column of a CSV/text file, or a ``.npy`` array)."""
    path = Path(path)
    if path.suffix.lower() == ".npy":
        values = np.load(path).ravel().astype(float)
    else:
        col = pd.read_csv(path, header=None, comment="#").iloc[:, 0]
        values = pd.to_numeric(col, errors="coerce").dropna().to_numpy(dtype=float)

    if units == "seconds":
        if sample_rate is None:
            raise ValueError("Sample rate required to convert stimulus times to samples")
        return np.round(values * sample_rate).astype(int)
    if units != "samples":
        raise ValueError(f"Unknown stimulus units: {units}")
    return np.round(values).astype(int)

def tidy_result(raw: np.ndarray, result: RejectionResult) -> pd.DataFrame:
    fs = result.metadata.get("sample_rate")
    df = pd.DataFrame({
        "sample": np.arange(raw.size),
        "time": np.arange(raw.size) / fs,
        "raw": raw,
        "corrected": result.signal,
    })
    df.attrs.update(result.metadata)
    return df

def write_table(df: pd.DataFrame, path: Path) -> Path:
    """Write ``df`` as CSV preceded by its attrs as ``# key: value`` lines."""
    path.parent.mkdir(parents=True, exist_ok=True)
    attr_lines = [f"# {k}: {v}" for k, v in df.attrs.items()]
    with open(path, "w", encoding="utf-8") as f:
        if attr_lines:
            f.write("\n".join(attr_lines) + "\n")
        df.to_csv(f, index=False)
    return path

def write_result(raw: np.ndarray, result: RejectionResult, results_dir: Path, stem: str) -> Tuple[Path, Path]:
    trace_path = write_table(tidy_result(raw, result), results_dir / f"{stem}.csv")
    trials_path = write_table(result.to_frame(), results_dir / f"{stem}_trials.csv")
    return trace_path, trials_path
