from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

import numpy as np
import pandas as pd


class TrialState(str, Enum):
    UNPROCESSED = "unprocessed"
    EXTENT_BOUNDED = "extent_bounded"
    PEAK_LOCATED = "peak_located"
    SHAPE_FITTED = "shape_fitted"
    PURE_BLANKED = "pure_blanked"
    FULLY_SKIPPED = "fully_skipped"
    DISCONTINUITY_CORRECTED = "discontinuity_corrected"
    FINALIZED = "finalized"


@dataclass
class TrialRecord:
    """Bookkeeping for one stimulus; the working arrays never outlive the trial loop."""

    trial: int
    onset: int
    isi: int
    extent: int = 0
    reached_baseline: bool = False
    has_artifact: bool = True
    peak_idx: Optional[int] = None
    polarity: int = 0
    is_clipped: bool = False
    clipped_start: Optional[int] = None
    clipped_end: Optional[int] = None
    blanking_length: Optional[int] = None
    fit_state: TrialState = TrialState.UNPROCESSED
    state: TrialState = TrialState.UNPROCESSED
    cluster: int = -1
    secondary_corrected: bool = False

    def advance(self, state: TrialState) -> None:
        self.state = state
        if state in (TrialState.SHAPE_FITTED, TrialState.PURE_BLANKED, TrialState.FULLY_SKIPPED):
            self.fit_state = state


@dataclass
class RejectionResult:
    """
    Output of ``reject_artifacts``.

    Unpacks as ``signal, blanking_lengths, skipped_trials``.
    """

    signal: np.ndarray
    trials: List[TrialRecord]
    skipped_trials: Set[int] = field(default_factory=set)
    overrun_trials: Set[int] = field(default_factory=set)
    labels: Optional[np.ndarray] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __iter__(self):
        return iter((self.signal, self.blanking_lengths, self.skipped_trials))

    @property
    def blanking_lengths(self) -> List[Optional[int]]:
        return [t.blanking_length for t in self.trials]

    @property
    def untouched_trials(self) -> Set[int]:
        return {t.trial for t in self.trials if t.fit_state == TrialState.PURE_BLANKED}

    def to_frame(self) -> pd.DataFrame:
        """Per-trial table, one row per stimulus."""
        rows = []
        for t in self.trials:
            row = asdict(t)
            row["state"] = t.state.value
            row["fit_state"] = t.fit_state.value
            rows.append(row)
        df = pd.DataFrame(rows)
        df.attrs.update(self.metadata)
        return df
