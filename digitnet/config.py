"""
config.py
~~~~~~~~~

Hyperparameters, filesystem locations and logging setup.
"""

import os
import logging
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Optional

from digitnet.activations import resolve_activations
from digitnet.errors import ConfigurationError

IMG_AREA = 784  # 28x28 image
IMG_SIDE = 28
DIGITS_COUNT = 10

MODES = ('train', 'eval')


def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # In production, silence noisy third-party logs but keep our logs visible
    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('digitnet').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


@dataclass
class NetworkConfig:
    """
    Training and inference hyperparameters.

    ``min_iterations`` and ``accuracy_ratio_threshold`` drive the early stop:
    training ends once the iteration counter exceeds ``min_iterations`` and
    the short-window accuracy divided by the long-window accuracy drops
    below the threshold. ``max_iterations`` is an optional hard bound.
    """

    mode: str = 'train'
    alpha: float = 0.05
    hidden_func: str = 'tanh'
    output_func: str = 'softmax'
    hidden_nodes: int = 300
    min_iterations: int = 60000
    accuracy_ratio_threshold: float = 1.0
    short_window: int = 1000
    long_window: int = 5000
    max_iterations: Optional[int] = None
    log_every: int = 1000
    seed: Optional[int] = None

    def validate(self) -> 'NetworkConfig':
        """
        Check every field, raising ConfigurationError on the first problem.

        Returns:
            self, so calls can be chained
        """
        if self.mode not in MODES:
            raise ConfigurationError(
                f"mode must be one of {', '.join(MODES)}, got '{self.mode}'"
            )
        resolve_activations(self.hidden_func, self.output_func)

        if not isinstance(self.alpha, (int, float)) or self.alpha <= 0:
            raise ConfigurationError(
                f"alpha must be a positive number, got {self.alpha}"
            )
        if not isinstance(self.hidden_nodes, int) or self.hidden_nodes < 1:
            raise ConfigurationError(
                f"hidden_nodes must be a positive integer, got {self.hidden_nodes}"
            )
        if self.min_iterations < 0:
            raise ConfigurationError(
                f"min_iterations must be non-negative, got {self.min_iterations}"
            )
        if self.accuracy_ratio_threshold <= 0:
            raise ConfigurationError(
                "accuracy_ratio_threshold must be positive, "
                f"got {self.accuracy_ratio_threshold}"
            )
        if self.short_window < 1 or self.long_window < 1:
            raise ConfigurationError("running average windows must be >= 1")
        if self.max_iterations is not None and self.max_iterations < 1:
            raise ConfigurationError(
                f"max_iterations must be positive, got {self.max_iterations}"
            )
        if self.log_every < 1:
            raise ConfigurationError(
                f"log_every must be positive, got {self.log_every}"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NetworkConfig':
        """Build a config from a mapping; unknown keys raise ConfigurationError."""
        names = {f.name for f in fields(cls)}
        unknown = set(data) - names
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration field(s): {', '.join(sorted(unknown))}"
            )
        return cls(**data)


@dataclass
class DataPaths:
    """Locations of datasets, caches and outputs under one data directory."""

    data_dir: str = 'data'
    model_dir: str = 'models'

    @classmethod
    def from_env(cls) -> 'DataPaths':
        return cls(
            data_dir=os.getenv('DIGITNET_DATA_DIR', 'data'),
            model_dir=os.getenv('DIGITNET_MODEL_DIR', 'models'),
        )

    @property
    def train_csv(self) -> str:
        return os.path.join(self.data_dir, 'mnist_digits', 'train.csv')

    @property
    def train_cache(self) -> str:
        return os.path.join(self.data_dir, 'train.npz')

    @property
    def eval_csv(self) -> str:
        return os.path.join(self.data_dir, 'manual_test_set.csv')

    @property
    def submission_csv(self) -> str:
        return os.path.join(self.data_dir, 'submission.csv')

    @property
    def mosaic_png(self) -> str:
        return os.path.join(self.data_dir, 'images', 'mnist.png')
