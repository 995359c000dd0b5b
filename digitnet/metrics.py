"""
metrics.py
~~~~~~~~~~

Rolling error and accuracy histories for the training loop.
"""

from typing import Dict, List, Sequence


def running_average(window: int, history: Sequence[float]) -> float:
    """
    Arithmetic mean of the last ``window`` values of ``history``.

    Uses the whole history while it is shorter than the window. An empty
    history averages to 0.0.
    """
    count = min(window, len(history))
    if count == 0:
        return 0.0
    return float(sum(history[-count:])) / count


class MetricsTracker:
    """
    Append-only error and classification histories.

    ``error_history`` holds the summed absolute output error of every
    iteration, ``classification_history`` holds 1.0 for a correct
    prediction and 0.0 otherwise.
    """

    def __init__(self, short_window: int = 1000, long_window: int = 5000):
        self.short_window = short_window
        self.long_window = long_window
        self.error_history: List[float] = []
        self.classification_history: List[float] = []

    def __len__(self) -> int:
        return len(self.error_history)

    def record(self, error: float, correct: bool) -> None:
        self.error_history.append(float(error))
        self.classification_history.append(1.0 if correct else 0.0)

    def average_error(self, window: int) -> float:
        return running_average(window, self.error_history)

    def average_accuracy(self, window: int) -> float:
        return running_average(window, self.classification_history)

    def accuracy_ratio(self) -> float:
        """
        Short-window accuracy over long-window accuracy.

        While nothing has been classified correctly both averages are zero;
        the ratio is reported as 1.0 so it never signals convergence.
        """
        long_term = self.average_accuracy(self.long_window)
        if long_term == 0.0:
            return 1.0
        return self.average_accuracy(self.short_window) / long_term

    def summary(self) -> Dict[str, float]:
        return {
            'avg_error_short': self.average_error(self.short_window),
            'avg_error_long': self.average_error(self.long_window),
            'avg_accuracy_short': self.average_accuracy(self.short_window),
            'avg_accuracy_long': self.average_accuracy(self.long_window),
            'accuracy_ratio': self.accuracy_ratio(),
        }
