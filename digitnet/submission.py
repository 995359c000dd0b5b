"""
submission.py
~~~~~~~~~~~~~

Classify unlabeled images with trained weights and write the predictions
as an ``ImageID,Digit`` CSV with 1-indexed ids.
"""

import csv
import os
import logging
from typing import List, Optional

from digitnet.config import DIGITS_COUNT, IMG_AREA, NetworkConfig
from digitnet.data_table import DataTable
from digitnet.network import Network
from digitnet.weights import load_weights

logger = logging.getLogger(__name__)

SUBMISSION_HEADER = ('ImageID', 'Digit')


def load_trained_network(
    run_id: str = 'default',
    model_dir: str = 'models',
    config: Optional[NetworkConfig] = None
) -> Network:
    """
    Network built from saved weights.

    The hidden layer size is taken from the weights, whatever the config says.

    Raises:
        WeightLoadError: If there are no usable weights for ``run_id``,
            including weights that do not fit a 784-input, 10-digit network
    """
    w1, w2 = load_weights(run_id, model_dir, IMG_AREA, DIGITS_COUNT)
    config = config or NetworkConfig(mode='eval')
    return Network(config, w1, w2)


def create_submission(network: Network, table: DataTable, output_path: str) -> List[int]:
    """
    Classify every observation of ``table`` and write the CSV.

    Args:
        network: Trained network
        table: Observations to classify, labeled or not
        output_path: Destination CSV

    Returns:
        The predicted digits, in table order
    """
    directory = os.path.dirname(output_path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory)

    logger.info(f"Creating submission for {len(table)} images")
    predictions = []
    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(SUBMISSION_HEADER)
        for i, observation in enumerate(table, start=1):
            digit = network.classify(observation)
            predictions.append(digit)
            writer.writerow([i, digit])
            if i % 100 == 0:
                logger.debug(f"Classified {i} images")

    logger.info(f"Wrote {len(predictions)} predictions to {output_path}")
    return predictions
