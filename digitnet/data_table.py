"""
data_table.py
~~~~~~~~~~~~~

Tabular digit datasets: CSV ingestion, compressed NPZ caching and random
sampling of observations.

A labeled CSV has a header row and the digit label in one column (column 0
by default); the remaining 784 columns are pixel intensities in [0, 255].
A labelless CSV (e.g. handmade test images) has no header and no label.
"""

import os
import zipfile
import logging
from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np

from digitnet.config import DIGITS_COUNT, IMG_AREA
from digitnet.errors import DataLoadError, ShapeMismatch

logger = logging.getLogger(__name__)

UNLABELED = -1  # label stored in caches for labelless tables


@dataclass(frozen=True, eq=False)
class Observation:
    """
    One image: an optional digit label and its 784 pixel intensities.

    ``label`` is None for unlabeled images. ``features`` is a read-only
    int64 array.
    """

    label: Optional[int]
    features: np.ndarray

    def __post_init__(self):
        features = np.array(self.features, dtype=np.int64)
        if features.shape != (IMG_AREA,):
            raise ShapeMismatch(
                f"Observation needs {IMG_AREA} features, got shape {features.shape}"
            )
        if features.min() < 0 or features.max() > 255:
            raise ValueError("Pixel intensities must lie in [0, 255]")
        features.setflags(write=False)
        object.__setattr__(self, 'features', features)

        if self.label is not None:
            label = int(self.label)
            if not 0 <= label < DIGITS_COUNT:
                raise ValueError(f"Label must be in [0, {DIGITS_COUNT - 1}], got {label}")
            object.__setattr__(self, 'label', label)

    @property
    def labeled(self) -> bool:
        return self.label is not None


class DataTable:
    """
    In-memory dataset of observations.

    Features are kept as one (n, 784) uint8 array; Observations are built on
    access.
    """

    def __init__(self, features: np.ndarray, labels: Optional[np.ndarray] = None):
        features = np.asarray(features)
        if features.ndim != 2 or features.shape[1] != IMG_AREA:
            raise DataLoadError(
                f"Expected a table with {IMG_AREA} feature columns, "
                f"got shape {features.shape}"
            )
        if features.size and (features.min() < 0 or features.max() > 255):
            raise DataLoadError("Pixel intensities must lie in [0, 255]")
        self.features = features.astype(np.uint8)

        if labels is not None:
            labels = np.asarray(labels, dtype=np.int64).reshape(-1)
            if labels.shape[0] != self.features.shape[0]:
                raise DataLoadError(
                    f"{labels.shape[0]} labels for {self.features.shape[0]} rows"
                )
            if labels.size and (labels.min() < 0 or labels.max() >= DIGITS_COUNT):
                raise DataLoadError(
                    f"Labels must be in [0, {DIGITS_COUNT - 1}]"
                )
        self.labels = labels

    @property
    def labeled(self) -> bool:
        return self.labels is not None

    def __len__(self) -> int:
        return self.features.shape[0]

    def observation(self, index: int) -> Observation:
        label = int(self.labels[index]) if self.labeled else None
        return Observation(label, self.features[index])

    def __iter__(self) -> Iterator[Observation]:
        for index in range(len(self)):
            yield self.observation(index)

    @property
    def observations(self):
        """All observations, in file order."""
        return list(self)

    def sample(self, rng: Optional[np.random.Generator] = None) -> Observation:
        """Draw one observation uniformly at random, with replacement."""
        if len(self) == 0:
            raise ValueError("Cannot sample from an empty table")
        rng = rng if rng is not None else np.random.default_rng()
        return self.observation(int(rng.integers(len(self))))

    # ------------------------------------------------------------------
    # Loading and caching
    # ------------------------------------------------------------------

    @classmethod
    def from_csv(
        cls,
        path: str,
        label_index: Optional[int] = 0,
        has_header: Optional[bool] = None
    ) -> 'DataTable':
        """
        Read a table from CSV.

        Args:
            path: CSV file
            label_index: Column holding the label, or None for labelless data
            has_header: Skip the first row; defaults to True for labeled data

        Raises:
            DataLoadError: If the file is missing or malformed
        """
        if has_header is None:
            has_header = label_index is not None

        logger.info(f"Reading digits from {path}")
        try:
            data = np.loadtxt(
                path,
                delimiter=',',
                dtype=np.int64,
                skiprows=1 if has_header else 0,
                ndmin=2
            )
        except OSError as e:
            raise DataLoadError(f"Could not read {path}: {e}") from e
        except ValueError as e:
            raise DataLoadError(f"Malformed CSV {path}: {e}") from e

        if label_index is None:
            return cls(data)

        if not 0 <= label_index < data.shape[1]:
            raise DataLoadError(
                f"Label column {label_index} outside table with {data.shape[1]} columns"
            )
        labels = data[:, label_index]
        features = np.delete(data, label_index, axis=1)
        return cls(features, labels)

    def persist(self, path: str) -> None:
        """Write the table to a compressed NPZ file."""
        directory = os.path.dirname(path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)

        labels = self.labels if self.labeled else np.full(len(self), UNLABELED)
        np.savez_compressed(
            path,
            features=self.features,
            labels=labels,
            labeled=np.array(self.labeled)
        )
        logger.info(f"Persisted {len(self)} observations to {path}")

    @classmethod
    def load(cls, path: str) -> 'DataTable':
        """
        Load a table persisted with ``persist``.

        Raises:
            DataLoadError: If the file is missing or corrupt
        """
        try:
            with np.load(path) as data:
                features = data['features']
                labels = data['labels'] if bool(data['labeled']) else None
        except (OSError, ValueError, KeyError, EOFError, zipfile.BadZipFile) as e:
            raise DataLoadError(f"Could not load dataset cache {path}: {e}") from e

        table = cls(features, labels)
        logger.info(f"Loaded {len(table)} observations from {path}")
        return table

    @classmethod
    def load_or_build(
        cls,
        cache_path: str,
        csv_path: str,
        label_index: Optional[int] = 0
    ) -> 'DataTable':
        """
        Load the cached table, rebuilding it from CSV when the cache is unusable.

        A cache that cannot be written is logged and skipped; the table
        built from CSV is returned either way.

        Raises:
            DataLoadError: If the CSV cannot be read either
        """
        try:
            return cls.load(cache_path)
        except DataLoadError as e:
            logger.info(f"Dataset cache unavailable ({e}); reading from CSV")

        table = cls.from_csv(csv_path, label_index=label_index)
        try:
            table.persist(cache_path)
        except OSError as e:
            logger.warning(f"Could not write dataset cache {cache_path}: {e}")
        return table
