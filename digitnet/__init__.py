"""
digitnet package
~~~~~~~~~~~~~~~~

Single-hidden-layer neural network for 28x28 handwritten digit recognition.
Contains the matrix and activation primitives, the forward/backprop engine,
the training loop with its convergence heuristic, weight persistence,
dataset loading, image helpers, the command line interface and API server.
"""

__version__ = "1.0.0"
