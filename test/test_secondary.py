import numpy as np

from loglira.src.clustering import KMeansStrategy, StrategyConfig
from loglira.src.config import RejectionConfig
from loglira.src.secondary import ResidualTable, remove_secondary_artifact

SEGMENT = 200
BLANKING = 10
N_COLS = 20


def _assemble(templates, noise_std=0.5, seed=0):
    """Output trace and residual table with one template-shaped residual per trial."""
    rng = np.random.default_rng(seed)
    n_trials = len(templates)
    output = np.zeros(n_trials * SEGMENT)
    table = ResidualTable.empty(n_trials, N_COLS)
    for trial, template in enumerate(templates):
        onset = trial * SEGMENT
        residual = np.zeros(100)
        residual[BLANKING:BLANKING + N_COLS] = template + rng.normal(0.0, noise_std, N_COLS)
        output[onset:onset + residual.size] = residual
        assert table.add(trial, onset, residual, BLANKING)
    return output, table


def _bump(sign: float) -> np.ndarray:
    return sign * 50.0 * np.hanning(N_COLS)


def test_residual_table_records_overruns() -> None:
    table = ResidualTable.empty(3, N_COLS)
    assert table.add(0, 0, np.ones(100), 30)
    assert not table.add(1, 200, np.ones(40), 30)
    assert table.valid.tolist() == [True, False, False]
    assert table.overrun == {1}
    assert table.starts[0] == 30
    np.testing.assert_array_equal(table.rows[1], 0.0)


def test_too_few_trials_skips_clustering() -> None:
    output, table = _assemble([_bump(1.0)] * 10)
    before = output.copy()
    result = remove_secondary_artifact(output, table, RejectionConfig())
    np.testing.assert_array_equal(output, before)
    assert np.all(result.labels == -1)
    assert result.corrected == []


def test_shared_secondary_artifacts_are_removed_per_cluster() -> None:
    templates = [_bump(1.0)] * 40 + [_bump(-1.0)] * 40
    output, table = _assemble(templates)
    config = RejectionConfig(min_cluster_size=20, cluster_range=(2, 2), consensus_runs=2)

    result = remove_secondary_artifact(output, table, config)

    assert result.corrected == list(range(80))
    assert result.n_components == 2
    assert len(set(result.labels[:40])) == 1
    assert len(set(result.labels[40:])) == 1
    assert result.labels[0] != result.labels[-1]
    for trial in range(80):
        start = trial * SEGMENT + BLANKING
        assert np.max(np.abs(output[start:start + N_COLS])) < 5.0


def test_small_clusters_are_never_corrected() -> None:
    templates = [_bump(1.0)] * 40 + [_bump(-1.0)] * 10
    output, table = _assemble(templates, seed=1)
    before = output.copy()
    config = RejectionConfig(min_cluster_size=20, cluster_range=(2, 3), consensus_runs=2)

    result = remove_secondary_artifact(output, table, config, strategies=[KMeansStrategy()])

    labels = result.labels
    for label in set(labels.tolist()) - {-1}:
        assert np.sum(labels == label) >= config.min_cluster_size
    for trial in np.flatnonzero(labels == -1):
        start = trial * SEGMENT
        np.testing.assert_array_equal(output[start:start + SEGMENT], before[start:start + SEGMENT])
    assert sorted(result.corrected) == np.flatnonzero(labels != -1).tolist()


def test_secondary_removal_is_deterministic() -> None:
    templates = [_bump(1.0)] * 30 + [_bump(-1.0)] * 30
    config = RejectionConfig(min_cluster_size=10, cluster_range=(2, 4), consensus_runs=2, random_seed=5)

    out_a, table_a = _assemble(templates, seed=3)
    out_b, table_b = _assemble(templates, seed=3)
    res_a = remove_secondary_artifact(out_a, table_a, config)
    res_b = remove_secondary_artifact(out_b, table_b, config)

    np.testing.assert_array_equal(out_a, out_b)
    np.testing.assert_array_equal(res_a.labels, res_b.labels)


def test_disabled_strategies_are_ignored() -> None:
    class _Unreachable(KMeansStrategy):
        def cluster(self, points, k, random_state=None):
            raise AssertionError("disabled strategy was called")

    disabled = _Unreachable(StrategyConfig(enabled=False))
    templates = [_bump(1.0)] * 30 + [_bump(-1.0)] * 30
    output, table = _assemble(templates)
    config = RejectionConfig(min_cluster_size=10, cluster_range=(2, 2), consensus_runs=1)
    result = remove_secondary_artifact(output, table, config, strategies=[disabled, KMeansStrategy()])
    assert result.n_components >= 1
