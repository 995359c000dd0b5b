"""
test_training.py
~~~~~~~~~~~~~~~~

Tests for the training loop and its early-stop rule.
"""

import numpy as np
import pytest

from digitnet.config import NetworkConfig
from digitnet.data_table import DataTable
from digitnet.errors import WeightLoadError, WeightPersistError
from digitnet.network import Network
from digitnet.training import TrainingLoop, TrainingState, build_network, train
from digitnet.weights import get_run_metadata, initialize_weights, load_weights, save_weights


@pytest.fixture
def network():
    return Network(NetworkConfig(hidden_nodes=5), rng=np.random.default_rng(0))


@pytest.mark.unit
class TestConvergenceRule:
    """Test the iteration floor and accuracy ratio threshold."""

    def test_default_thresholds(self, network, labeled_table):
        loop = TrainingLoop(network, labeled_table)
        assert loop.has_converged(60001, 0.99)
        assert not loop.has_converged(60000, 0.99)
        assert not loop.has_converged(60001, 1.0)

    def test_configurable_thresholds(self, labeled_table):
        config = NetworkConfig(hidden_nodes=5, min_iterations=10, accuracy_ratio_threshold=0.8)
        loop = TrainingLoop(Network(config), labeled_table)
        assert loop.has_converged(11, 0.79)
        assert not loop.has_converged(11, 0.9)
        assert not loop.has_converged(10, 0.5)

    def test_requires_labeled_table(self, network):
        with pytest.raises(ValueError):
            TrainingLoop(network, DataTable(np.zeros((3, 784))))

    def test_converges_past_floor(self, network, labeled_table, model_dir, monkeypatch):
        """A low ratio after the iteration floor persists and stops."""
        loop = TrainingLoop(network, labeled_table, run_id="scenario", model_dir=model_dir)
        monkeypatch.setattr(loop.metrics, 'accuracy_ratio', lambda: 0.5)
        loop.iteration = 60001

        assert loop.step() is False
        assert loop.state is TrainingState.CONVERGED

        w1, w2 = load_weights("scenario", model_dir)
        assert w1 == network.w1
        assert w2 == network.w2

    def test_does_not_converge_at_floor(self, network, labeled_table, model_dir, monkeypatch):
        """The same ratio at the floor itself keeps training."""
        loop = TrainingLoop(network, labeled_table, run_id="scenario", model_dir=model_dir)
        monkeypatch.setattr(loop.metrics, 'accuracy_ratio', lambda: 0.5)
        loop.iteration = 60000

        assert loop.step() is True
        assert loop.state is TrainingState.RUNNING
        assert loop.iteration == 60001

        with pytest.raises(WeightLoadError):
            load_weights("scenario", model_dir)

    def test_step_after_convergence_is_noop(self, network, labeled_table, model_dir, monkeypatch):
        loop = TrainingLoop(network, labeled_table, model_dir=model_dir)
        monkeypatch.setattr(loop.metrics, 'accuracy_ratio', lambda: 0.5)
        loop.iteration = 60001
        loop.step()

        assert loop.step() is False
        assert len(loop.metrics) == 1


@pytest.mark.integration
class TestTrainingRun:
    """Run complete (tiny) training loops."""

    def test_run_until_converged(self, labeled_table, model_dir):
        config = NetworkConfig(hidden_nodes=5, min_iterations=0, accuracy_ratio_threshold=2.0)
        loop = TrainingLoop(Network(config), labeled_table, run_id="fast", model_dir=model_dir)

        state = loop.run()

        assert state is TrainingState.CONVERGED
        assert loop.iteration == 1
        assert len(loop.metrics) == 2
        metadata = get_run_metadata("fast", model_dir)
        assert metadata['metadata']['state'] == 'converged'
        assert metadata['metadata']['config']['accuracy_ratio_threshold'] == 2.0

    def test_max_iterations(self, labeled_table, model_dir):
        config = NetworkConfig(hidden_nodes=5, min_iterations=10 ** 9,
                               max_iterations=50, log_every=10, seed=7)
        progress = []
        yields = []
        loop = TrainingLoop(
            Network(config),
            labeled_table,
            run_id="bounded",
            model_dir=model_dir,
            callback=progress.append,
            yield_func=lambda: yields.append(1)
        )

        state = loop.run()

        assert state is TrainingState.STOPPED
        assert loop.iteration == 50
        assert len(loop.metrics) == 50
        assert len(yields) == 49
        assert [p['iteration'] for p in progress[:-1]] == [0, 10, 20, 30, 40]
        assert progress[-1]['state'] == 'stopped'
        assert load_weights("bounded", model_dir)[0].shape == (785, 5)

    def test_seeded_runs_are_reproducible(self, labeled_table, model_dir):
        config = NetworkConfig(hidden_nodes=5, max_iterations=20, seed=3)

        first = train(labeled_table, config, run_id="a", model_dir=model_dir)
        second = train(labeled_table, NetworkConfig(hidden_nodes=5, max_iterations=20, seed=3),
                       run_id="b", model_dir=model_dir)

        assert first.w1 == second.w1
        assert first.w2 == second.w2

    def test_persist_failure_reports_stage(self, labeled_table, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("file in the way")
        config = NetworkConfig(hidden_nodes=5, max_iterations=1)
        loop = TrainingLoop(Network(config), labeled_table, model_dir=str(blocker))

        with pytest.raises(WeightPersistError) as exc_info:
            loop.run()
        assert exc_info.value.stage == 'persist'


@pytest.mark.unit
class TestBuildNetwork:
    """Test choosing between fresh and saved weights."""

    def test_fresh_weights(self, model_dir):
        net = build_network(NetworkConfig(hidden_nodes=3), model_dir=model_dir)
        assert net.hidden_nodes == 3

    def test_resume_loads_saved_weights(self, model_dir):
        w1, w2 = initialize_weights(784, 6)
        save_weights("resume", w1, w2, model_dir=model_dir)

        net = build_network(NetworkConfig(hidden_nodes=3), "resume", model_dir, resume=True)

        assert net.hidden_nodes == 6
        assert net.w1 == w1

    def test_resume_falls_back_to_fresh_weights(self, model_dir):
        net = build_network(NetworkConfig(hidden_nodes=3), "missing", model_dir, resume=True)
        assert net.hidden_nodes == 3
