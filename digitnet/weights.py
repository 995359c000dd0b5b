"""
weights.py
~~~~~~~~~~

Weight initialization and SQLite-based persistence of the two weight
matrices.

Each matrix is stored as its shape plus its row-major float64 values, so a
save followed by a load reproduces the matrices exactly.
"""

import sqlite3
import json
import math
import os
import logging
from typing import Optional, List, Dict, Any, Generator, Tuple
from contextlib import contextmanager

import numpy as np

from digitnet.config import DIGITS_COUNT, IMG_AREA
from digitnet.errors import WeightLoadError, WeightPersistError
from digitnet.matrix import Matrix

# Configure module logger
logger = logging.getLogger(__name__)

LAYER_NAMES = ('w1', 'w2')

_HEADER_DTYPE = np.dtype('<i8')
_VALUE_DTYPE = np.dtype('<f8')


def initialize_weights(
    input_dim: int,
    hidden_dim: int,
    output_dim: int = DIGITS_COUNT,
    rng: Optional[np.random.Generator] = None
) -> Tuple[Matrix, Matrix]:
    """
    Create fresh input-to-hidden and hidden-to-output weights.

    Entries are drawn uniformly from [-0.5, 0.5] and scaled down by the
    fan-in of their layer. Without the scaling the first iterations work on
    large hidden-layer sums and the activations saturate.

    Args:
        input_dim: Number of input features (784 for digits)
        hidden_dim: Number of hidden nodes
        output_dim: Number of output classes
        rng: Optional numpy Generator for reproducible draws

    Returns:
        (W1, W2) with shapes (input_dim + 1, hidden_dim) and
        (hidden_dim + 1, output_dim); the last row of each holds the biases
    """
    rng = rng if rng is not None else np.random.default_rng()

    init_factor_1 = 0.01 / math.sqrt(input_dim + 1)
    init_factor_2 = 0.01 / math.sqrt(hidden_dim)

    w1 = Matrix.uniform(input_dim + 1, hidden_dim, -0.5, 0.5, rng)
    w2 = Matrix.uniform(hidden_dim + 1, output_dim, -0.5, 0.5, rng)
    return w1.scale(init_factor_1), w2.scale(init_factor_2)


def encode_matrix(matrix: Matrix) -> bytes:
    """Encode one matrix as (rows, cols) int64 followed by row-major float64s."""
    header = np.array(matrix.shape, dtype=_HEADER_DTYPE).tobytes()
    return header + np.ascontiguousarray(matrix.flat(), dtype=_VALUE_DTYPE).tobytes()


def _decode_matrix(data: bytes, offset: int) -> Tuple[Matrix, int]:
    header_size = 2 * _HEADER_DTYPE.itemsize
    if len(data) - offset < header_size:
        raise WeightLoadError("Truncated weight data: missing matrix shape")

    rows, cols = np.frombuffer(data, dtype=_HEADER_DTYPE, count=2, offset=offset)
    rows, cols = int(rows), int(cols)
    if rows < 1 or cols < 1:
        raise WeightLoadError(f"Invalid matrix shape ({rows}, {cols})")

    offset += header_size
    value_size = rows * cols * _VALUE_DTYPE.itemsize
    if len(data) - offset < value_size:
        raise WeightLoadError(
            f"Truncated weight data: expected {rows * cols} values"
        )

    values = np.frombuffer(data, dtype=_VALUE_DTYPE, count=rows * cols, offset=offset)
    return Matrix(values.reshape(rows, cols)), offset + value_size


def decode_matrix(data: bytes) -> Matrix:
    """
    Decode a single matrix produced by encode_matrix.

    Raises:
        WeightLoadError: If the data is truncated or has trailing bytes
    """
    matrix, offset = _decode_matrix(data, 0)
    if offset != len(data):
        raise WeightLoadError(
            f"Unexpected {len(data) - offset} trailing bytes in matrix data"
        )
    return matrix


def encode_weights(w1: Matrix, w2: Matrix) -> bytes:
    """Encode both weight matrices into a single byte string."""
    return encode_matrix(w1) + encode_matrix(w2)


def decode_weights(data: bytes) -> Tuple[Matrix, Matrix]:
    """
    Decode bytes produced by encode_weights.

    Raises:
        WeightLoadError: If the data is truncated, has trailing bytes or the
            matrices do not chain (W2 must have hidden_dim + 1 rows)
    """
    w1, offset = _decode_matrix(data, 0)
    w2, offset = _decode_matrix(data, offset)
    if offset != len(data):
        raise WeightLoadError(
            f"Unexpected {len(data) - offset} trailing bytes in weight data"
        )
    _check_chained(w1, w2)
    return w1, w2


def _check_chained(w1: Matrix, w2: Matrix) -> None:
    if w2.rows != w1.cols + 1:
        raise WeightLoadError(
            f"Weight shapes {w1.shape} and {w2.shape} do not chain: "
            f"expected {w1.cols + 1} rows in the second matrix"
        )


def _check_dimensions(w1: Matrix, w2: Matrix, input_dim: int, output_dim: int) -> None:
    if w1.rows != input_dim + 1 or w2.cols != output_dim:
        raise WeightLoadError(
            f"Weight shapes {w1.shape} and {w2.shape} do not fit a "
            f"{input_dim}-input, {output_dim}-output network"
        )


class WeightDatabase:
    """
    Manages SQLite database for trained weight persistence.

    The database stores:
    - Run metadata (hyperparameters, iterations, accuracy)
    - One row per weight matrix, encoded with encode_matrix
    """

    def __init__(self, db_path: str = 'models/weights.db'):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Enable column access by name
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS runs (
                    run_id TEXT PRIMARY KEY,
                    hidden_nodes INTEGER NOT NULL,
                    metadata TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS weights (
                    run_id TEXT NOT NULL,
                    layer TEXT NOT NULL,
                    data BLOB NOT NULL,
                    PRIMARY KEY (run_id, layer)
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_runs_created_at
                ON runs(created_at DESC)
            ''')

    def save_weights_to_db(
        self,
        run_id: str,
        w1: Matrix,
        w2: Matrix,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Save both weight matrices under ``run_id``, replacing any previous run.

        Args:
            run_id: Unique identifier for the training run
            w1: Input-to-hidden weights
            w2: Hidden-to-output weights
            metadata: JSON-serializable run information

        Raises:
            WeightPersistError: If the matrices do not chain
        """
        try:
            _check_chained(w1, w2)
        except WeightLoadError as e:
            raise WeightPersistError(str(e)) from None

        metadata_json = json.dumps(metadata or {})

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT OR REPLACE INTO runs
                (run_id, hidden_nodes, metadata, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ''', (run_id, w1.cols, metadata_json))

            for layer, matrix in zip(LAYER_NAMES, (w1, w2)):
                cursor.execute('''
                    INSERT OR REPLACE INTO weights
                    (run_id, layer, data)
                    VALUES (?, ?, ?)
                ''', (run_id, layer, encode_matrix(matrix)))

        logger.info(
            f"Saved weights for run '{run_id}' with shapes "
            f"{w1.shape} and {w2.shape}"
        )

    def load_weights_from_db(self, run_id: str) -> Tuple[Matrix, Matrix]:
        """
        Load both weight matrices for a run.

        Args:
            run_id: Unique identifier of the run

        Returns:
            (W1, W2)

        Raises:
            WeightLoadError: If the run is missing or its rows are malformed
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT layer, data FROM weights WHERE run_id = ?',
                (run_id,)
            )
            rows = {row['layer']: row for row in cursor.fetchall()}

        if not rows:
            raise WeightLoadError(f"No weights saved for run '{run_id}'")

        matrices = []
        for layer in LAYER_NAMES:
            if layer not in rows:
                raise WeightLoadError(
                    f"Run '{run_id}' is missing weight matrix '{layer}'"
                )
            try:
                matrices.append(decode_matrix(rows[layer]['data']))
            except WeightLoadError as e:
                raise WeightLoadError(
                    f"Weight matrix '{layer}' of run '{run_id}': {e}"
                ) from e

        w1, w2 = matrices
        _check_chained(w1, w2)
        logger.info(f"Loaded weights for run '{run_id}'")
        return w1, w2

    def list_runs_from_db(self) -> List[Dict[str, Any]]:
        """
        List all runs with metadata.

        Returns:
            List of run metadata dictionaries, newest first
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    run_id,
                    hidden_nodes,
                    metadata,
                    created_at,
                    updated_at
                FROM runs
                ORDER BY created_at DESC
            ''')

            runs = [self._row_to_metadata(row) for row in cursor.fetchall()]

        logger.debug(f"Listed {len(runs)} runs")
        return runs

    def get_run_metadata_from_db(self, run_id: str) -> Optional[Dict[str, Any]]:
        """
        Get run metadata without loading the weights.

        Args:
            run_id: Unique identifier of the run

        Returns:
            Metadata dictionary or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    run_id,
                    hidden_nodes,
                    metadata,
                    created_at,
                    updated_at
                FROM runs
                WHERE run_id = ?
            ''', (run_id,))
            row = cursor.fetchone()

        if row is None:
            logger.warning(f"Metadata for run '{run_id}' not found")
            return None
        return self._row_to_metadata(row)

    def delete_run_from_db(self, run_id: str) -> bool:
        """
        Delete a run and its weights.

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM weights WHERE run_id = ?', (run_id,))
            cursor.execute('DELETE FROM runs WHERE run_id = ?', (run_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted run '{run_id}'")
        else:
            logger.warning(f"Could not delete run '{run_id}': not found")
        return deleted

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            'run_id': row['run_id'],
            'hidden_nodes': row['hidden_nodes'],
            'metadata': json.loads(row['metadata']),
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }


def _db_for(model_dir: str) -> WeightDatabase:
    return WeightDatabase(db_path=os.path.join(model_dir, 'weights.db'))


def save_weights(
    run_id: str,
    w1: Matrix,
    w2: Matrix,
    model_dir: str = 'models',
    metadata: Optional[Dict[str, Any]] = None
) -> None:
    """
    Persist trained weights to the SQLite database.

    Args:
        run_id: A unique identifier for the run
        w1: Input-to-hidden weights
        w2: Hidden-to-output weights
        model_dir: Directory for the database file
        metadata: Hyperparameters and training results to store alongside

    Raises:
        WeightPersistError: If the weights could not be written

    Example:
        >>> w1, w2 = initialize_weights(784, 300)
        >>> save_weights("default", w1, w2, metadata={'alpha': 0.05})
    """
    if not run_id or not isinstance(run_id, str):
        raise WeightPersistError("Invalid run_id: must be a non-empty string")

    try:
        _db_for(model_dir).save_weights_to_db(run_id, w1, w2, metadata)
    except WeightPersistError:
        raise
    except (TypeError, ValueError) as e:
        logger.error(f"Serialization error saving run '{run_id}': {e}")
        raise WeightPersistError(f"Could not serialize run '{run_id}': {e}") from e
    except (sqlite3.Error, OSError) as e:
        logger.error(f"Database error saving run '{run_id}': {e}")
        raise WeightPersistError(f"Could not save run '{run_id}': {e}") from e


def load_weights(
    run_id: str,
    model_dir: str = 'models',
    input_dim: int = IMG_AREA,
    output_dim: int = DIGITS_COUNT
) -> Tuple[Matrix, Matrix]:
    """
    Load trained weights from the SQLite database.

    Training callers fall back to ``initialize_weights`` on failure;
    inference has nothing to classify with and treats it as fatal.

    Args:
        run_id: The unique identifier of the run to load
        model_dir: Directory where the database is stored
        input_dim: Number of input features the weights must accept
        output_dim: Number of output classes the weights must produce

    Returns:
        (W1, W2)

    Raises:
        WeightLoadError: If the database or the run is absent or malformed,
            or the weights do not fit ``input_dim`` and ``output_dim``
    """
    if not run_id or not isinstance(run_id, str):
        raise WeightLoadError("Invalid run_id: must be a non-empty string")

    db_path = os.path.join(model_dir, 'weights.db')
    if not os.path.exists(db_path):
        raise WeightLoadError(f"Weight database not found: {db_path}")

    try:
        w1, w2 = _db_for(model_dir).load_weights_from_db(run_id)
        _check_dimensions(w1, w2, input_dim, output_dim)
        return w1, w2
    except WeightLoadError as e:
        logger.error(f"Could not load run '{run_id}': {e}")
        raise
    except sqlite3.Error as e:
        logger.error(f"Database error loading run '{run_id}': {e}")
        raise WeightLoadError(f"Could not read run '{run_id}': {e}") from e


def list_saved_runs(model_dir: str = 'models') -> List[Dict[str, Any]]:
    """
    List all saved runs with their metadata.

    Returns:
        list: Metadata dictionaries, empty if the database can't be read
    """
    try:
        return _db_for(model_dir).list_runs_from_db()
    except sqlite3.Error as e:
        logger.error(f"Database error listing runs: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing runs: {e}")
        return []


def get_run_metadata(run_id: str, model_dir: str = 'models') -> Optional[Dict[str, Any]]:
    """Metadata for one run, or None if not found or unreadable."""
    try:
        return _db_for(model_dir).get_run_metadata_from_db(run_id)
    except (sqlite3.Error, json.JSONDecodeError) as e:
        logger.error(f"Error getting metadata for run '{run_id}': {e}")
        return None


def delete_run(run_id: str, model_dir: str = 'models') -> bool:
    """
    Delete a saved run.

    Returns:
        bool: True if deletion was successful, False otherwise
    """
    try:
        return _db_for(model_dir).delete_run_from_db(run_id)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting run '{run_id}': {e}")
        return False
