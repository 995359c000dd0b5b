"""
test_activations.py
~~~~~~~~~~~~~~~~~~~

Unit tests for activation functions and their selection.
"""

import numpy as np
import pytest

from digitnet.activations import (
    Activation,
    resolve_activations,
    sigmoid,
    softmax,
    tanh,
)
from digitnet.errors import ConfigurationError
from digitnet.matrix import Matrix


@pytest.mark.unit
class TestActivationFunctions:
    """Test the elementwise functions against their formulas."""

    def test_sigmoid(self):
        x = np.array([[-2.0, 0.0, 3.0]])
        assert np.allclose(sigmoid(x), 1.0 / (1.0 + np.exp(-x)))
        assert sigmoid(np.array([[0.0]]))[0, 0] == 0.5

    def test_tanh(self):
        x = np.array([[-1.5, 0.0, 0.7]])
        expected = (np.exp(x) - np.exp(-x)) / (np.exp(x) + np.exp(-x))
        assert np.allclose(tanh(x), expected)

    def test_softmax_is_distribution(self):
        x = np.array([[1.0, 2.0, 3.0, -4.0]])
        result = softmax(x)
        assert np.all(result >= 0)
        assert abs(result.sum() - 1.0) < 1e-12
        assert np.allclose(result, np.exp(x) / np.exp(x).sum())

    def test_softmax_large_logits(self):
        result = softmax(np.array([[1000.0, 1000.0]]))
        assert np.allclose(result, [[0.5, 0.5]])

    def test_sigmoid_derivative(self):
        z = Matrix([[-1.0, 0.0, 2.0]])
        s = sigmoid(z.values)
        assert np.allclose(Activation.SIGMOID.derivative(z).values, s * (1 - s))

    def test_tanh_derivative(self):
        z = Matrix([[-1.0, 0.0, 2.0]])
        t = np.tanh(z.values)
        assert np.allclose(Activation.TANH.derivative(z).values, (1 - t) * (1 + t))
        assert Activation.TANH.derivative(Matrix([[0.0]])).values[0, 0] == 1.0

    def test_softmax_has_no_derivative(self):
        with pytest.raises(ConfigurationError):
            Activation.SOFTMAX.derivative(Matrix([[0.0, 1.0]]))


@pytest.mark.unit
class TestActivationSelection:
    """Test name lookup and hidden/output validation."""

    def test_from_name(self):
        assert Activation.from_name('tanh') is Activation.TANH
        assert Activation.from_name('Sigmoid') is Activation.SIGMOID
        assert Activation.from_name(Activation.SOFTMAX) is Activation.SOFTMAX

    def test_unknown_name(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Activation.from_name('relu')
        assert "relu" in str(exc_info.value)
        assert exc_info.value.stage == 'config'

    def test_resolve_default_pair(self):
        assert resolve_activations('tanh', 'softmax') == (
            Activation.TANH, Activation.SOFTMAX
        )

    def test_softmax_rejected_for_hidden_layer(self):
        with pytest.raises(ConfigurationError):
            resolve_activations('softmax', 'softmax')

    def test_output_must_be_softmax(self):
        with pytest.raises(ConfigurationError):
            resolve_activations('tanh', 'sigmoid')
