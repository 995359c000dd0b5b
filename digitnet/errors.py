"""
errors.py
~~~~~~~~~

Exception hierarchy shared by every stage of the digit network.

Each error carries the ``stage`` it was raised in (``load``, ``forward``,
``backprop``, ``persist`` or ``config``) so callers can report where a run
failed without parsing messages.
"""

from contextlib import contextmanager
from typing import Generator, Optional


class DigitNetError(Exception):
    """Base class for all digit network errors."""

    default_stage: Optional[str] = None

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage or self.default_stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage:
            return f"[{self.stage}] {message}"
        return message


class ConfigurationError(DigitNetError):
    """Invalid hyperparameters or activation selection."""

    default_stage = 'config'


class ShapeMismatch(DigitNetError):
    """Matrix operation attempted with incompatible dimensions."""


class DataLoadError(DigitNetError):
    """Persisted dataset is missing or corrupt."""

    default_stage = 'load'


class WeightLoadError(DigitNetError):
    """Persisted weights are missing or corrupt."""

    default_stage = 'load'


class WeightPersistError(DigitNetError):
    """Weights could not be written to the store."""

    default_stage = 'persist'


@contextmanager
def failing_stage(stage: str) -> Generator[None, None, None]:
    """
    Tag any DigitNetError escaping the block with ``stage``.

    Errors that already know their stage keep it.
    """
    try:
        yield
    except DigitNetError as e:
        if e.stage is None:
            e.stage = stage
        raise
