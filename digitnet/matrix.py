"""
matrix.py
~~~~~~~~~

Two-dimensional matrix with explicit, shape-checked operations.

Every operation validates its operands and raises ShapeMismatch instead of
letting numpy broadcast. Values are stored as a float64 numpy array.
"""

from typing import Callable, Iterable, Optional, Sequence, Tuple

import numpy as np

from digitnet.errors import ShapeMismatch


class Matrix:
    """
    Fixed-shape 2D container of floats.

    All arithmetic returns a new Matrix except ``subtract_in_place``, which
    is used for the weight update.
    """

    __slots__ = ('values',)

    def __init__(self, values):
        array = np.array(values, dtype=np.float64)
        if array.ndim != 2:
            raise ShapeMismatch(
                f"Matrix requires 2 dimensions, got shape {array.shape}"
            )
        self.values = array

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def zeros(cls, rows: int, cols: int) -> 'Matrix':
        return cls(np.zeros((rows, cols)))

    @classmethod
    def row(cls, values: Iterable[float]) -> 'Matrix':
        """Build a 1xN row vector."""
        if not isinstance(values, np.ndarray):
            values = list(values)
        return cls(np.asarray(values, dtype=np.float64).reshape(1, -1))

    @classmethod
    def uniform(
        cls,
        rows: int,
        cols: int,
        low: float,
        high: float,
        rng: Optional[np.random.Generator] = None
    ) -> 'Matrix':
        rng = rng if rng is not None else np.random.default_rng()
        return cls(rng.uniform(low, high, size=(rows, cols)))

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    @property
    def rows(self) -> int:
        return self.values.shape[0]

    @property
    def cols(self) -> int:
        return self.values.shape[1]

    def _require_same_shape(self, other: 'Matrix', operation: str) -> None:
        if self.shape != other.shape:
            raise ShapeMismatch(
                f"Cannot {operation} matrices of shape {self.shape} "
                f"and {other.shape}"
            )

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def add(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'add')
        return Matrix(self.values + other.values)

    def subtract(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'subtract')
        return Matrix(self.values - other.values)

    def subtract_in_place(self, other: 'Matrix') -> None:
        """Subtract ``other`` from this matrix, mutating it."""
        self._require_same_shape(other, 'subtract')
        self.values -= other.values

    def elementwise_multiply(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'multiply')
        return Matrix(self.values * other.values)

    def matmul(self, other: 'Matrix') -> 'Matrix':
        if self.cols != other.rows:
            raise ShapeMismatch(
                f"Cannot multiply {self.shape} by {other.shape}: "
                f"inner dimensions {self.cols} and {other.rows} differ"
            )
        return Matrix(self.values @ other.values)

    def scale(self, factor: float) -> 'Matrix':
        return Matrix(self.values * factor)

    def transpose(self) -> 'Matrix':
        return Matrix(self.values.T)

    def map(self, func: Callable[[np.ndarray], np.ndarray]) -> 'Matrix':
        """Apply a vectorised elementwise function."""
        result = func(self.values)
        if result.shape != self.shape:
            raise ShapeMismatch(
                f"Elementwise function changed shape {self.shape} "
                f"to {result.shape}"
            )
        return Matrix(result)

    # ------------------------------------------------------------------
    # Row helpers
    # ------------------------------------------------------------------

    def slice_rows(self, start: int, stop: int) -> 'Matrix':
        if not 0 <= start < stop <= self.rows:
            raise ShapeMismatch(
                f"Row range [{start}, {stop}) outside matrix with "
                f"{self.rows} rows"
            )
        return Matrix(self.values[start:stop])

    def with_bias(self) -> 'Matrix':
        """Return this 1xN row extended to 1x(N+1) with a trailing 1.0."""
        if self.rows != 1:
            raise ShapeMismatch(
                f"Bias can only be appended to a row vector, got {self.shape}"
            )
        return Matrix(np.append(self.values, [[1.0]], axis=1))

    def argmax(self) -> int:
        """Index of the first maximum of a row vector."""
        if self.rows != 1:
            raise ShapeMismatch(
                f"argmax requires a row vector, got {self.shape}"
            )
        return int(np.argmax(self.values[0]))

    def abs_sum(self) -> float:
        return float(np.abs(self.values).sum())

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def flat(self) -> Sequence[float]:
        """Row-major values as a 1D array."""
        return self.values.ravel(order='C')

    def copy(self) -> 'Matrix':
        return Matrix(self.values.copy())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and bool(
            np.array_equal(self.values, other.values)
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"Matrix(shape={self.shape})"
