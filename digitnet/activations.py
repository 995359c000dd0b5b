"""
activations.py
~~~~~~~~~~~~~~

Elementwise activation functions and their derivatives.

Activations are selected from a closed enumeration when the network is
configured, so an unknown name or an invalid hidden/output combination is
rejected before any training iteration runs.
"""

import enum
from typing import Tuple

import numpy as np

from digitnet.errors import ConfigurationError, ShapeMismatch
from digitnet.matrix import Matrix


def sigmoid(z: np.ndarray) -> np.ndarray:
    """Sigmoid activation: f(x) = 1 / (1 + e^(-x)); range (0,1)"""
    return 1.0 / (1.0 + np.exp(-z))


def tanh(z: np.ndarray) -> np.ndarray:
    """Hyperbolic tangent; range (-1,1)"""
    return np.tanh(z)


def softmax(z: np.ndarray) -> np.ndarray:
    """
    Softmax over a single row.

    The row maximum is subtracted before exponentiating, which leaves the
    result unchanged and keeps large logits from overflowing.
    """
    if z.ndim != 2 or z.shape[0] != 1:
        raise ShapeMismatch(f"softmax expects a single row, got {z.shape}")
    e = np.exp(z - np.max(z, axis=1, keepdims=True))
    return e / np.sum(e, axis=1, keepdims=True)


def sigmoid_derivative(z: np.ndarray) -> np.ndarray:
    s = sigmoid(z)
    return s * (1.0 - s)


def tanh_derivative(z: np.ndarray) -> np.ndarray:
    t = np.tanh(z)
    return (1.0 - t) * (1.0 + t)


class Activation(enum.Enum):
    SIGMOID = 'sigmoid'
    TANH = 'tanh'
    SOFTMAX = 'softmax'

    @classmethod
    def from_name(cls, name) -> 'Activation':
        """
        Look up an activation by name.

        Args:
            name: Activation name (case-insensitive) or an Activation

        Returns:
            The matching Activation

        Raises:
            ConfigurationError: If the name is not a known activation
        """
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            known = ', '.join(a.value for a in cls)
            raise ConfigurationError(
                f"Unknown activation function '{name}' (expected one of: {known})"
            ) from None

    def apply(self, m: Matrix) -> Matrix:
        return m.map(_FUNCTIONS[self])

    def derivative(self, m: Matrix) -> Matrix:
        if self not in _DERIVATIVES:
            raise ConfigurationError(
                f"Activation '{self.value}' has no elementwise derivative"
            )
        return m.map(_DERIVATIVES[self])


_FUNCTIONS = {
    Activation.SIGMOID: sigmoid,
    Activation.TANH: tanh,
    Activation.SOFTMAX: softmax,
}

_DERIVATIVES = {
    Activation.SIGMOID: sigmoid_derivative,
    Activation.TANH: tanh_derivative,
}

HIDDEN_ACTIVATIONS = frozenset(_DERIVATIVES)


def resolve_activations(hidden, output) -> Tuple[Activation, Activation]:
    """
    Resolve and validate the hidden and output activation pair.

    The hidden layer needs an elementwise derivative for backprop, so softmax
    is not allowed there. The output error signal is the softmax/cross-entropy
    gradient, so the output layer must be softmax.

    Raises:
        ConfigurationError: On unknown names or an invalid combination
    """
    hidden_func = Activation.from_name(hidden)
    output_func = Activation.from_name(output)

    if hidden_func not in HIDDEN_ACTIVATIONS:
        raise ConfigurationError(
            f"'{hidden_func.value}' cannot be used as the hidden layer function"
        )
    if output_func is not Activation.SOFTMAX:
        raise ConfigurationError(
            f"Output layer must use softmax, got '{output_func.value}'"
        )
    return hidden_func, output_func
