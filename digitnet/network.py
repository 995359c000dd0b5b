"""
network.py
~~~~~~~~~~

Forward propagation and backpropagation for a network with one hidden layer.

Layer activations are row vectors. The input row is scaled to [0, 1] and
both the input and hidden rows get a trailing bias unit of 1.0, so the last
row of each weight matrix holds that layer's biases.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from digitnet.activations import Activation, resolve_activations
from digitnet.config import DIGITS_COUNT, IMG_AREA, NetworkConfig
from digitnet.data_table import Observation
from digitnet.errors import ShapeMismatch, failing_stage
from digitnet.matrix import Matrix
from digitnet.metrics import MetricsTracker
from digitnet.weights import initialize_weights

logger = logging.getLogger(__name__)

HIDDEN_LEARNING_RATE_FACTOR = 0.1


@dataclass(frozen=True)
class ForwardState:
    """Layer values of one forward pass, consumed by backprop."""

    a1: Matrix            # 1 x (inputs + 1), bias last
    a2_with_bias: Matrix  # 1 x (hidden + 1), bias last
    z2: Matrix            # 1 x hidden
    z3: Matrix            # 1 x outputs
    a3: Matrix            # 1 x outputs, sums to 1

    @property
    def prediction(self) -> int:
        return self.a3.argmax()


def forward(
    features: Sequence[float],
    w1: Matrix,
    w2: Matrix,
    hidden_func: Activation,
    output_func: Activation = Activation.SOFTMAX
) -> ForwardState:
    """
    Propagate one observation through the network.

    Args:
        features: Raw pixel intensities in [0, 255]
        w1: Input-to-hidden weights, (inputs + 1) x hidden
        w2: Hidden-to-output weights, (hidden + 1) x outputs
        hidden_func: Hidden layer activation
        output_func: Output layer activation

    Returns:
        ForwardState with every intermediate layer

    Raises:
        ShapeMismatch: If features and weights do not line up
    """
    a1 = Matrix.row(features).scale(1.0 / 255.0).with_bias()
    z2 = a1.matmul(w1)
    a2 = hidden_func.apply(z2)
    a2_with_bias = a2.with_bias()
    z3 = a2_with_bias.matmul(w2)
    a3 = output_func.apply(z3)
    return ForwardState(a1=a1, a2_with_bias=a2_with_bias, z2=z2, z3=z3, a3=a3)


def predict(
    features: Sequence[float],
    w1: Matrix,
    w2: Matrix,
    hidden_func: Activation,
    output_func: Activation = Activation.SOFTMAX
) -> int:
    """Most probable digit; ties go to the lowest index."""
    return forward(features, w1, w2, hidden_func, output_func).prediction


def one_hot(label: int, classes: int = DIGITS_COUNT) -> Matrix:
    """1 x classes row with 1.0 at ``label``."""
    if label is None or not 0 <= label < classes:
        raise ValueError(f"Label must be in [0, {classes - 1}], got {label}")
    y = Matrix.zeros(1, classes)
    y.values[0, label] = 1.0
    return y


def backprop(
    state: ForwardState,
    label: int,
    w1: Matrix,
    w2: Matrix,
    alpha: float,
    hidden_func: Activation,
    tracker: Optional[MetricsTracker] = None
) -> None:
    """
    Update ``w1`` and ``w2`` in place from one forward pass and its label.

    With a softmax output and cross-entropy loss the output error is simply
    a3 - y. The hidden error excludes the bias row of W2 since no error flows
    into the bias unit. The hidden layer learns at a tenth of the output
    layer's rate.

    Args:
        state: Result of ``forward`` for this observation
        label: True digit
        w1: Input-to-hidden weights, updated in place
        w2: Hidden-to-output weights, updated in place
        alpha: Learning rate
        hidden_func: Activation used for the hidden layer
        tracker: Receives the iteration's error and correctness
    """
    y = one_hot(label, state.a3.cols)
    d3 = state.a3.subtract(y)

    if tracker is not None:
        tracker.record(d3.abs_sum(), state.prediction == label)

    hidden_nodes = state.z2.cols
    d2 = (
        w2.matmul(d3.transpose())
        .slice_rows(0, hidden_nodes)
        .elementwise_multiply(hidden_func.derivative(state.z2.transpose()))
    )

    grad1 = d2.matmul(state.a1)
    grad2 = d3.transpose().matmul(state.a2_with_bias)

    w1.subtract_in_place(grad1.transpose().scale(alpha * HIDDEN_LEARNING_RATE_FACTOR))
    w2.subtract_in_place(grad2.transpose().scale(alpha))


class Network:
    """
    Digit classifier with one hidden layer.

    Owns the weight matrices and the activation pair resolved from its
    config. ``train_step`` mutates the weights; ``classify`` and
    ``feedforward`` never do.
    """

    def __init__(
        self,
        config: Optional[NetworkConfig] = None,
        w1: Optional[Matrix] = None,
        w2: Optional[Matrix] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Args:
            config: Hyperparameters; validated here
            w1, w2: Existing weights. When given, their hidden dimension
                replaces ``config.hidden_nodes``
            rng: Random generator used for fresh weights
        """
        self.config = (config or NetworkConfig()).validate()
        self.hidden_func, self.output_func = resolve_activations(
            self.config.hidden_func, self.config.output_func
        )

        if (w1 is None) != (w2 is None):
            raise ValueError("w1 and w2 must be given together")

        if w1 is None:
            w1, w2 = initialize_weights(
                IMG_AREA, self.config.hidden_nodes, DIGITS_COUNT, rng=rng
            )
        else:
            if w1.rows != IMG_AREA + 1 or w2.rows != w1.cols + 1:
                raise ShapeMismatch(
                    f"Weights {w1.shape} and {w2.shape} do not fit a "
                    f"{IMG_AREA}-input network"
                )
            if w1.cols != self.config.hidden_nodes:
                logger.warning(
                    f"Configured hidden_nodes={self.config.hidden_nodes} "
                    f"overridden by loaded weights ({w1.cols})"
                )
                self.config.hidden_nodes = w1.cols

        self.w1 = w1
        self.w2 = w2

    @property
    def hidden_nodes(self) -> int:
        return self.w1.cols

    def forward(self, observation: Observation) -> ForwardState:
        with failing_stage('forward'):
            return forward(
                observation.features, self.w1, self.w2,
                self.hidden_func, self.output_func
            )

    def feedforward(self, features: Sequence[float]) -> np.ndarray:
        """Output distribution over the digits for raw pixel intensities."""
        with failing_stage('forward'):
            state = forward(features, self.w1, self.w2,
                            self.hidden_func, self.output_func)
        return state.a3.values[0]

    def classify(self, observation: Observation) -> int:
        return self.forward(observation).prediction

    def train_step(self, observation: Observation, tracker: MetricsTracker) -> ForwardState:
        """Run one forward pass and backprop update on a labeled observation."""
        if not observation.labeled:
            raise ValueError("Cannot train on an unlabeled observation")
        state = self.forward(observation)
        with failing_stage('backprop'):
            backprop(
                state, observation.label, self.w1, self.w2,
                self.config.alpha, self.hidden_func, tracker
            )
        return state

