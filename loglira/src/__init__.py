"""
Public exports for the artifact rejection subpackage.
"""

from loglira.src.clustering import ClusteringStrategy, KMeansStrategy, SpectralStrategy, StrategyConfig
from loglira.src.config import InvalidArgumentError, RejectionConfig
from loglira.src.fit import fit_artifact
from loglira.src.peak import find_artifact_peak
from loglira.src.pipeline import Pipeline, PipelineConfig
from loglira.src.results import RejectionResult, TrialRecord, TrialState
from loglira.src.stim_artifact import logssar, reject_artifacts

__all__ = [
    "ClusteringStrategy",
    "KMeansStrategy",
    "SpectralStrategy",
    "StrategyConfig",
    "InvalidArgumentError",
    "RejectionConfig",
    "fit_artifact",
    "find_artifact_peak",
    "Pipeline",
    "PipelineConfig",
    "RejectionResult",
    "TrialRecord",
    "TrialState",
    "logssar",
    "reject_artifacts",
]
