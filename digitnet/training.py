"""
training.py
~~~~~~~~~~~

Stochastic training loop with an accuracy-trend early stop.

Each iteration draws one observation with replacement, runs forward and
backprop, and records the error and correctness. Training converges once the
iteration counter has passed ``min_iterations`` and the short-window
accuracy falls below ``accuracy_ratio_threshold`` times the long-window
accuracy, i.e. recent accuracy no longer beats the long-term trend. The
weights are persisted exactly once, at convergence.
"""

import enum
import time
import logging
from typing import Any, Callable, Dict, Optional

import numpy as np

from digitnet.config import NetworkConfig
from digitnet.data_table import DataTable
from digitnet.errors import WeightLoadError, failing_stage
from digitnet.metrics import MetricsTracker
from digitnet.network import Network
from digitnet.weights import load_weights, save_weights

logger = logging.getLogger(__name__)


class TrainingState(enum.Enum):
    RUNNING = 'running'
    CONVERGED = 'converged'
    STOPPED = 'stopped'  # max_iterations reached


class TrainingLoop:
    """
    Drives a Network over a DataTable until the early-stop rule fires.

    Args:
        network: Network whose weights are trained in place
        table: Labeled training data
        run_id: Identifier the weights are saved under
        model_dir: Directory of the weight database
        rng: Random generator for sampling
        callback: Called with a progress dict every ``log_every`` iterations
            and once more when training ends
        yield_func: Called after every iteration, e.g. to let other
            cooperative tasks run
    """

    def __init__(
        self,
        network: Network,
        table: DataTable,
        run_id: str = 'default',
        model_dir: str = 'models',
        rng: Optional[np.random.Generator] = None,
        callback: Optional[Callable[[Dict[str, Any]], None]] = None,
        yield_func: Optional[Callable[[], None]] = None
    ):
        if not table.labeled:
            raise ValueError("Training requires a labeled table")

        self.network = network
        self.config = network.config
        self.table = table
        self.run_id = run_id
        self.model_dir = model_dir
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.callback = callback
        self.yield_func = yield_func

        self.metrics = MetricsTracker(self.config.short_window, self.config.long_window)
        self.iteration = 0
        self.state = TrainingState.RUNNING
        self._start_time: Optional[float] = None

    def has_converged(self, iteration: int, ratio: float) -> bool:
        return (
            iteration > self.config.min_iterations
            and ratio < self.config.accuracy_ratio_threshold
        )

    def progress(self) -> Dict[str, Any]:
        elapsed = 0.0 if self._start_time is None else time.time() - self._start_time
        return {
            'iteration': self.iteration,
            'state': self.state.value,
            'elapsed_time': elapsed,
            **self.metrics.summary()
        }

    def step(self) -> bool:
        """
        Run one training iteration.

        Returns:
            True while training should continue
        """
        if self.state is not TrainingState.RUNNING:
            return False
        if self._start_time is None:
            self._start_time = time.time()

        self.network.train_step(self.table.sample(self.rng), self.metrics)
        ratio = self.metrics.accuracy_ratio()

        if self.iteration % self.config.log_every == 0:
            self._report()

        if self.has_converged(self.iteration, ratio):
            self.state = TrainingState.CONVERGED
            self.finish()
            return False

        self.iteration += 1

        max_iterations = self.config.max_iterations
        if max_iterations is not None and self.iteration >= max_iterations:
            logger.warning(
                f"Stopping after {self.iteration} iterations without converging"
            )
            self.state = TrainingState.STOPPED
            self.finish()
            return False

        return True

    def run(self) -> TrainingState:
        """Train until convergence (or ``max_iterations``) and persist the weights."""
        logger.info(
            f"Training run '{self.run_id}': hidden_nodes={self.network.hidden_nodes}, "
            f"hidden_func={self.config.hidden_func}, alpha={self.config.alpha}"
        )
        while self.step():
            if self.yield_func is not None:
                self.yield_func()
        return self.state

    def finish(self) -> None:
        """Persist the weights and report the final metrics."""
        summary = self.progress()
        with failing_stage('persist'):
            save_weights(
                self.run_id,
                self.network.w1,
                self.network.w2,
                model_dir=self.model_dir,
                metadata={
                    'config': self.config.to_dict(),
                    'iterations': self.iteration,
                    'state': self.state.value,
                    'accuracy': summary['avg_accuracy_long'],
                }
            )
        logger.info(
            f"Training {self.state.value} after {self.iteration} iterations; "
            f"total training time was {summary['elapsed_time']:.0f} sec"
        )
        if self.callback is not None:
            self.callback(summary)

    def _report(self) -> None:
        summary = self.metrics.summary()
        logger.info(
            f"Iteration {self.iteration}: "
            f"avg error ({self.config.short_window})={summary['avg_error_short']:.4f}, "
            f"avg error ({self.config.long_window})={summary['avg_error_long']:.4f}, "
            f"avg accuracy ({self.config.short_window})={summary['avg_accuracy_short']:.4f}, "
            f"avg accuracy ({self.config.long_window})={summary['avg_accuracy_long']:.4f}, "
            f"ratio={summary['accuracy_ratio']:.4f}"
        )
        if self.callback is not None:
            self.callback(self.progress())


def build_network(
    config: NetworkConfig,
    run_id: str = 'default',
    model_dir: str = 'models',
    resume: bool = False
) -> Network:
    """
    Network to train: the saved weights of ``run_id`` when resuming and
    available, fresh random weights otherwise.
    """
    if resume:
        try:
            w1, w2 = load_weights(run_id, model_dir)
        except WeightLoadError as e:
            logger.info(f"Starting from fresh weights: {e}")
        else:
            logger.info(f"Resuming training of run '{run_id}'")
            return Network(config, w1, w2)
    return Network(config, rng=np.random.default_rng(config.seed))


def train(
    table: DataTable,
    config: Optional[NetworkConfig] = None,
    run_id: str = 'default',
    model_dir: str = 'models',
    resume: bool = False,
    **kwargs
) -> Network:
    """
    Train a network on ``table`` and persist it under ``run_id``.

    Extra keyword arguments go to TrainingLoop.
    """
    config = config or NetworkConfig()
    network = build_network(config, run_id, model_dir, resume)
    TrainingLoop(network, table, run_id=run_id, model_dir=model_dir, **kwargs).run()
    return network
