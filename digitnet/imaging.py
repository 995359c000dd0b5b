"""
imaging.py
~~~~~~~~~~

Conversions between 784-value feature vectors and images.

- Tile random samples of a table into one PNG mosaic, keeping the sampled
  rows as a labelless CSV test set
- Turn a hand-drawn 28x28 PNG into a labelless table
- Render a single digit as a base64 PNG for the API
"""

import base64
import csv
import os
import logging
from io import BytesIO
from typing import Optional

import numpy as np

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from digitnet.config import IMG_SIDE
from digitnet.data_table import DataTable
from digitnet.errors import ShapeMismatch

logger = logging.getLogger(__name__)


def _ensure_parent(path: str) -> None:
    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory)


def _write_rows(path: str, rows) -> None:
    _ensure_parent(path)
    with open(path, 'w', newline='') as f:
        writer = csv.writer(f)
        for row in rows:
            writer.writerow([int(v) for v in row])


def features_to_image(features) -> np.ndarray:
    """Reshape 784 intensities into a 28x28 array, row by row."""
    return np.asarray(features).reshape(IMG_SIDE, IMG_SIDE)


def build_mosaic(
    table: DataTable,
    wide: int,
    high: int,
    image_path: Optional[str],
    csv_path: str,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Sample ``wide * high`` digits and tile them into one grayscale image.

    The sampled feature rows are written to ``csv_path`` without labels so
    they can be fed to eval mode.

    Args:
        table: Source of the digits
        wide: Digits per mosaic row
        high: Digits per mosaic column
        image_path: PNG destination, or None to skip saving the image
        csv_path: Destination of the sampled feature rows
        rng: Random generator for sampling

    Returns:
        The mosaic as a (high * 28, wide * 28) uint8 array
    """
    if wide < 1 or high < 1:
        raise ValueError("Mosaic needs at least one digit in each direction")

    mosaic = np.zeros((high * IMG_SIDE, wide * IMG_SIDE), dtype=np.uint8)
    samples = []
    for i in range(wide):
        for j in range(high):
            features = table.sample(rng).features
            samples.append(features)
            mosaic[j * IMG_SIDE:(j + 1) * IMG_SIDE,
                   i * IMG_SIDE:(i + 1) * IMG_SIDE] = features_to_image(features)

    if image_path is not None:
        _ensure_parent(image_path)
        plt.imsave(image_path, mosaic, cmap='gray', vmin=0, vmax=255)
        logger.info(f"Saved {wide}x{high} digit mosaic to {image_path}")

    _write_rows(csv_path, samples)
    logger.info(f"Wrote {len(samples)} sampled digits to {csv_path}")
    return mosaic


def load_handmade(png_path: str, csv_path: str) -> DataTable:
    """
    Convert a hand-drawn 28x28 PNG into a one-row labelless table.

    The image is converted to 0-255 grayscale; only pixels at full
    intensity are kept, everything else becomes 0.

    Raises:
        ShapeMismatch: If the image is not 28x28
    """
    image = plt.imread(png_path)
    if image.ndim == 3:
        image = image[..., :3].mean(axis=2)
    if image.shape != (IMG_SIDE, IMG_SIDE):
        raise ShapeMismatch(
            f"Handmade digit must be {IMG_SIDE}x{IMG_SIDE}, got {image.shape}"
        )

    # PNGs are read as floats in [0, 1]
    if np.issubdtype(image.dtype, np.floating):
        image = np.rint(image * 255)
    pixels = np.where(image.astype(np.int64) == 255, 255, 0).ravel()

    _write_rows(csv_path, [pixels])
    return DataTable.from_csv(csv_path, label_index=None)


def create_digit_image(features, predicted: int, actual: Optional[int] = None) -> str:
    """
    Create a base64-encoded PNG image of a digit.

    Args:
        features: 784-element array representing the 28x28 digit image
        predicted: The digit the network predicted (0-9)
        actual: The correct digit, if known

    Returns:
        Base64-encoded PNG image string
    """
    fig = plt.figure(figsize=(3, 3))
    plt.imshow(features_to_image(features), cmap='gray', vmin=0, vmax=255)
    if actual is None:
        plt.title(f"Predicted: {predicted}")
    else:
        plt.title(f"Predicted: {predicted} | Actual: {actual}")
    plt.axis('off')

    # Save image to a bytes buffer instead of a file
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close(fig)

    return img_base64
