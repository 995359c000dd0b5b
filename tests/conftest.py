"""
conftest.py
~~~~~~~~~~~

Shared fixtures: small synthetic digit tables and temporary directories.
"""

import os

import numpy as np
import pytest

from digitnet.config import IMG_AREA
from digitnet.data_table import DataTable


def _random_digits(n, seed):
    rng = np.random.default_rng(seed)
    labels = rng.integers(0, 10, size=n)
    features = rng.integers(0, 256, size=(n, IMG_AREA))
    return labels, features


@pytest.fixture
def write_digits_csv():
    """Return a function writing n random digits to a CSV file."""
    def _write(path, n=10, seed=0, labeled=True, header=None):
        if header is None:
            header = labeled
        labels, features = _random_digits(n, seed)
        directory = os.path.dirname(str(path))
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, 'w') as f:
            if header:
                columns = ['label'] if labeled else []
                columns += [f'pixel{i}' for i in range(IMG_AREA)]
                f.write(','.join(columns) + '\n')
            for label, row in zip(labels, features):
                values = ([int(label)] if labeled else []) + [int(v) for v in row]
                f.write(','.join(str(v) for v in values) + '\n')
        return labels, features
    return _write


@pytest.fixture
def labeled_table():
    """A 20-row labeled table of random digits."""
    labels, features = _random_digits(20, seed=1)
    return DataTable(features, labels)


@pytest.fixture
def model_dir(tmp_path):
    """Create a temporary directory for weight storage."""
    directory = tmp_path / "test_models"
    directory.mkdir()
    return str(directory)
