"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for digit network
training.

This module provides endpoints for:
- Starting training runs with real-time progress updates via WebSockets
- Listing, inspecting and deleting saved weights
- Classifying submitted 28x28 digits with saved weights

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for background training tasks
- SQLite (digitnet.weights) for weight persistence
"""

import os
import sys
import uuid
import logging
from typing import Dict, Any, Optional

import gevent
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

from digitnet.config import DataPaths, NetworkConfig, configure_logging
from digitnet.data_table import DataTable, Observation
from digitnet.errors import ConfigurationError, ShapeMismatch, WeightLoadError
from digitnet.imaging import create_digit_image
from digitnet.network import Network
from digitnet.submission import load_trained_network
from digitnet.training import TrainingLoop, build_network
from digitnet.weights import delete_run, get_run_metadata, list_saved_runs

configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin

is_production = os.getenv('FLASK_ENV') == 'production'

# SocketIO enables real-time communication (WebSockets) for training updates
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

paths = DataPaths.from_env()

# Networks loaded from the weight database: {run_id: Network}
active_networks: Dict[str, Network] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}

# Training table - loaded on first use and shared by all jobs
_training_table: Optional[DataTable] = None


def get_training_table() -> DataTable:
    """Load the training data once, rebuilding the cache from CSV if needed."""
    global _training_table
    if _training_table is None:
        logger.info("Loading training data...")
        _training_table = DataTable.load_or_build(paths.train_cache, paths.train_csv)
    return _training_table


def get_network(run_id: str) -> Network:
    """
    Network for ``run_id``, loading its weights on first use.

    Raises:
        WeightLoadError: If the run has no usable weights
    """
    if run_id not in active_networks:
        active_networks[run_id] = load_trained_network(run_id, paths.model_dir)
    return active_networks[run_id]


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """
    Return server status and statistics.

    Counts saved runs and training jobs that are currently in progress
    (status='pending' or 'training').
    """
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in active_statuses
    )

    return jsonify({
        'status': 'online',
        'saved_runs': len(list_saved_runs(paths.model_dir)),
        'training_jobs': active_training
    }), 200


@app.route('/api/training', methods=['POST'])
def start_training():
    """
    Start a training run in the background.

    Request body (all optional):
        {
            'run_id': 'my_run',
            'resume': false,
            'config': {'alpha': 0.05, 'hidden_nodes': 300, ...}
        }

    Returns:
        JSON with job_id, run_id, and status
    """
    data = request.get_json(silent=True) or {}
    run_id = data.get('run_id') or str(uuid.uuid4())
    resume = bool(data.get('resume', False))

    overrides = data.get('config', {})
    if not isinstance(overrides, dict):
        return jsonify({'error': 'config must be an object'}), 400

    try:
        config = NetworkConfig.from_dict({**overrides, 'mode': 'train'}).validate()
    except (ConfigurationError, TypeError) as e:
        logger.warning(f"Invalid training configuration: {e}")
        return jsonify({'error': str(e)}), 400

    job_id = str(uuid.uuid4())
    training_jobs[job_id] = {
        'run_id': run_id,
        'status': 'pending',
        'iteration': 0
    }

    logger.info(
        f"Created training job {job_id} for run {run_id}: "
        f"hidden_nodes={config.hidden_nodes}, hidden_func={config.hidden_func}, "
        f"alpha={config.alpha}"
    )

    # Run training in background so we can return immediately
    socketio.start_background_task(train_task, job_id, run_id, config, resume)

    return jsonify({
        'job_id': job_id,
        'run_id': run_id,
        'status': 'training_started'
    }), 202


def train_task(job_id: str, run_id: str, config: NetworkConfig, resume: bool) -> None:
    """
    Background task that trains a network.

    Sends progress updates via WebSocket as training progresses.
    """
    def on_progress(data: Dict[str, Any]) -> None:
        """Called every log_every iterations and at the end of training."""
        training_jobs[job_id].update(data)
        if data['state'] == 'running':
            training_jobs[job_id]['status'] = 'training'

        socketio.emit('training_update', {'job_id': job_id, 'run_id': run_id, **data})

        # Let gevent send the message immediately
        gevent.sleep(0)

    def yield_to_other_tasks() -> None:
        gevent.sleep(0)

    try:
        logger.info(f"Starting training for job {job_id}")

        network = build_network(config, run_id, paths.model_dir, resume)
        loop = TrainingLoop(
            network,
            get_training_table(),
            run_id=run_id,
            model_dir=paths.model_dir,
            callback=on_progress,
            yield_func=yield_to_other_tasks
        )
        state = loop.run()

        # Newly saved weights replace any cached copy
        active_networks[run_id] = network

        training_jobs[job_id]['status'] = 'completed'
        training_jobs[job_id]['state'] = state.value

        logger.info(
            f"Training completed for job {job_id} after {loop.iteration} iterations"
        )
        socketio.emit('training_complete', {
            'job_id': job_id,
            'run_id': run_id,
            'status': 'completed',
            'state': state.value,
            'iterations': loop.iteration,
            'accuracy': loop.metrics.average_accuracy(config.long_window)
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)
        stage = getattr(e, 'stage', None)
        training_jobs[job_id]['stage'] = stage

        socketio.emit('training_error', {
            'job_id': job_id,
            'run_id': run_id,
            'status': 'failed',
            'stage': stage,
            'error': str(e)
        })
        gevent.sleep(0)


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id not in training_jobs:
        logger.warning(f"Status requested for non-existent job: {job_id}")
        return jsonify({'error': 'Training job not found'}), 404
    return jsonify(training_jobs[job_id]), 200


@app.route('/api/runs', methods=['GET'])
def list_runs():
    """List all saved runs."""
    return jsonify({'runs': list_saved_runs(paths.model_dir)}), 200


@app.route('/api/runs/<run_id>', methods=['GET'])
def get_run(run_id: str):
    """Metadata of one saved run."""
    metadata = get_run_metadata(run_id, paths.model_dir)
    if metadata is None:
        return jsonify({'error': 'Run not found'}), 404
    return jsonify(metadata), 200


@app.route('/api/runs/<run_id>', methods=['DELETE'])
def delete_run_endpoint(run_id: str):
    """Delete a run from both memory and disk."""
    deleted_from_memory = active_networks.pop(run_id, None) is not None
    deleted_from_disk = delete_run(run_id, paths.model_dir)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent run: {run_id}")
        return jsonify({'error': 'Run not found'}), 404

    logger.info(f"Deleted run {run_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'run_id': run_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/runs/<run_id>/classify', methods=['POST'])
def classify(run_id: str):
    """
    Classify one digit.

    Request body:
        {'pixels': [784 intensities in 0..255], 'label': 3 (optional)}

    Returns:
        JSON with the predicted digit, output distribution and a PNG preview
    """
    data = request.get_json(silent=True) or {}
    pixels = data.get('pixels')
    label = data.get('label')

    if not isinstance(pixels, list):
        return jsonify({'error': 'pixels must be a list of 784 intensities'}), 400

    try:
        observation = Observation(label, pixels)
    except (ShapeMismatch, ValueError, TypeError) as e:
        return jsonify({'error': f'Invalid digit: {e}'}), 400

    try:
        network = get_network(run_id)
    except WeightLoadError as e:
        logger.warning(f"Classification requested for unusable run {run_id}: {e}")
        return jsonify({'error': 'Run not found'}), 404

    output = network.feedforward(observation.features)
    predicted = int(output.argmax())

    return jsonify({
        'run_id': run_id,
        'predicted_digit': predicted,
        'actual_digit': observation.label,
        'network_output': [float(p) for p in output],
        'image_data': create_digit_image(observation.features, predicted, observation.label)
    }), 200


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    logger.info(f"Starting server at http://localhost:{port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_production,
            use_reloader=False
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise
