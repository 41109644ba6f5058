"""
Top-level exports for the loglira package.
Expose artifact rejection and the file pipeline so callers can import directly from `loglira`.
"""

from .src import (
    ClusteringStrategy,
    InvalidArgumentError,
    KMeansStrategy,
    Pipeline,
    PipelineConfig,
    RejectionConfig,
    RejectionResult,
    SpectralStrategy,
    StrategyConfig,
    TrialRecord,
    TrialState,
    find_artifact_peak,
    fit_artifact,
    logssar,
    reject_artifacts,
)

__all__ = [
    "ClusteringStrategy",
    "InvalidArgumentError",
    "KMeansStrategy",
    "Pipeline",
    "PipelineConfig",
    "RejectionConfig",
    "RejectionResult",
    "SpectralStrategy",
    "StrategyConfig",
    "TrialRecord",
    "TrialState",
    "find_artifact_peak",
    "fit_artifact",
    "logssar",
    "reject_artifacts",
]
