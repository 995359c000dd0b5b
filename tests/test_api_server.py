"""
test_api_server.py
~~~~~~~~~~~~~~~~~~

Tests for the REST API, using the Flask test client.
"""

import numpy as np
import pytest

from digitnet import api_server
from digitnet.config import DataPaths
from digitnet.weights import initialize_weights, save_weights


@pytest.fixture
def paths(tmp_path, write_digits_csv, monkeypatch):
    """Point the server at temporary data and model directories."""
    paths = DataPaths(data_dir=str(tmp_path / "data"), model_dir=str(tmp_path / "models"))
    write_digits_csv(paths.train_csv, n=15, seed=4)
    monkeypatch.setattr(api_server, 'paths', paths)
    monkeypatch.setattr(api_server, '_training_table', None)
    api_server.active_networks.clear()
    api_server.training_jobs.clear()
    return paths


@pytest.fixture
def client(paths):
    api_server.app.config['TESTING'] = True
    with api_server.app.test_client() as client:
        yield client


@pytest.fixture
def emitted(monkeypatch):
    """Run background tasks synchronously and record SocketIO events."""
    events = []
    monkeypatch.setattr(api_server.socketio, 'start_background_task',
                        lambda func, *args: func(*args))
    monkeypatch.setattr(api_server.socketio, 'emit',
                        lambda event, data: events.append((event, data)))
    return events


@pytest.fixture
def saved_run(paths):
    w1, w2 = initialize_weights(784, 6, rng=np.random.default_rng(0))
    save_weights("saved", w1, w2, model_dir=paths.model_dir)
    return "saved"


@pytest.mark.unit
class TestStatus:

    def test_status(self, client):
        response = client.get('/api/status')
        data = response.get_json()

        assert response.status_code == 200
        assert data['status'] == 'online'
        assert data['saved_runs'] == 0
        assert data['training_jobs'] == 0


@pytest.mark.unit
class TestRuns:

    def test_list_runs(self, client, saved_run):
        response = client.get('/api/runs')
        assert response.status_code == 200
        assert [run['run_id'] for run in response.get_json()['runs']] == [saved_run]

    def test_get_run(self, client, saved_run):
        response = client.get(f'/api/runs/{saved_run}')
        assert response.status_code == 200
        assert response.get_json()['hidden_nodes'] == 6

    def test_get_missing_run(self, client):
        assert client.get('/api/runs/missing').status_code == 404

    def test_delete_run(self, client, saved_run):
        response = client.delete(f'/api/runs/{saved_run}')
        assert response.status_code == 200
        assert response.get_json()['deleted_from_disk'] is True
        assert client.get(f'/api/runs/{saved_run}').status_code == 404

    def test_delete_missing_run(self, client):
        assert client.delete('/api/runs/missing').status_code == 404


@pytest.mark.unit
class TestClassify:

    def test_classify(self, client, saved_run):
        response = client.post(f'/api/runs/{saved_run}/classify',
                               json={'pixels': [0] * 783 + [255], 'label': 2})
        data = response.get_json()

        assert response.status_code == 200
        assert 0 <= data['predicted_digit'] <= 9
        assert data['actual_digit'] == 2
        assert len(data['network_output']) == 10
        assert abs(sum(data['network_output']) - 1.0) < 1e-6
        assert data['predicted_digit'] == int(np.argmax(data['network_output']))
        assert data['image_data']

    def test_classify_caches_network(self, client, saved_run):
        client.post(f'/api/runs/{saved_run}/classify', json={'pixels': [0] * 784})
        assert saved_run in api_server.active_networks

    def test_classify_missing_run(self, client, paths):
        response = client.post('/api/runs/missing/classify', json={'pixels': [0] * 784})
        assert response.status_code == 404

    @pytest.mark.parametrize('body', [
        {},
        {'pixels': 'abc'},
        {'pixels': [0] * 10},
        {'pixels': [300] * 784},
        {'pixels': [0] * 784, 'label': 12},
    ])
    def test_classify_invalid_digit(self, client, saved_run, body):
        response = client.post(f'/api/runs/{saved_run}/classify', json=body)
        assert response.status_code == 400


@pytest.mark.integration
class TestTraining:

    def test_invalid_config(self, client, emitted):
        response = client.post('/api/training', json={'config': {'hidden_func': 'softmax'}})
        assert response.status_code == 400
        assert emitted == []

    def test_unknown_config_field(self, client, emitted):
        response = client.post('/api/training', json={'config': {'momentum': 0.9}})
        assert response.status_code == 400

    def test_training_job_completes(self, client, emitted):
        response = client.post('/api/training', json={
            'run_id': 'api_run',
            'config': {
                'hidden_nodes': 5,
                'min_iterations': 0,
                'accuracy_ratio_threshold': 2.0,
                'log_every': 1
            }
        })

        assert response.status_code == 202
        job_id = response.get_json()['job_id']

        status = client.get(f'/api/training/{job_id}').get_json()
        assert status['status'] == 'completed'
        assert status['state'] == 'converged'

        events = [event for event, _ in emitted]
        assert 'training_update' in events
        assert events[-1] == 'training_complete'

        runs = client.get('/api/runs').get_json()['runs']
        assert [run['run_id'] for run in runs] == ['api_run']

        classified = client.post('/api/runs/api_run/classify', json={'pixels': [0] * 784})
        assert classified.status_code == 200

    def test_training_job_failure(self, client, emitted, paths):
        import os
        os.remove(paths.train_csv)

        response = client.post('/api/training', json={'config': {'hidden_nodes': 5}})
        job_id = response.get_json()['job_id']

        status = client.get(f'/api/training/{job_id}').get_json()
        assert status['status'] == 'failed'
        assert status['stage'] == 'load'
        assert emitted[-1][0] == 'training_error'

    def test_unknown_job(self, client):
        assert client.get('/api/training/nope').status_code == 404
