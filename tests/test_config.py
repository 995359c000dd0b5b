"""
test_config.py
~~~~~~~~~~~~~~

Unit tests for hyperparameter configuration and data paths.
"""

import os

import pytest

from digitnet.config import DataPaths, NetworkConfig
from digitnet.errors import ConfigurationError


@pytest.mark.unit
class TestNetworkConfig:

    def test_from_dict_round_trip(self):
        config = NetworkConfig(hidden_nodes=12, alpha=0.1, seed=3)
        assert NetworkConfig.from_dict(config.to_dict()) == config

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ConfigurationError) as exc_info:
            NetworkConfig.from_dict({'hidden_nodes': 12, 'momentum': 0.9})
        assert 'momentum' in str(exc_info.value)
        assert exc_info.value.stage == 'config'

    @pytest.mark.parametrize('overrides', [
        {'alpha': 0},
        {'hidden_nodes': 0},
        {'mode': 'predict'},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ConfigurationError):
            NetworkConfig(**overrides).validate()


@pytest.mark.unit
class TestDataPaths:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('DIGITNET_DATA_DIR', '/tmp/digits')
        monkeypatch.setenv('DIGITNET_MODEL_DIR', '/tmp/models')
        paths = DataPaths.from_env()

        assert paths.model_dir == '/tmp/models'
        assert paths.train_csv == os.path.join('/tmp/digits', 'mnist_digits', 'train.csv')
        assert paths.train_cache == os.path.join('/tmp/digits', 'train.npz')
