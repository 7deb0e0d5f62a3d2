"""
Tests for the Flask app and the status API.
"""

import numpy as np
import pytest
from unittest.mock import MagicMock

from app import create_app
from engines.facial_recognition.gallery import Gallery
from services.app_state import AppState
from services.recognition_service import RecognitionService


@pytest.fixture
def service(test_config):
    detector = MagicMock()
    detector.get_stats.return_value = {'available': False}
    return RecognitionService(test_config, state=AppState(), detector=detector, camera=MagicMock())


@pytest.fixture
def client(test_config, service):
    app = create_app(test_config, recognition=service, autostart=False)
    app.testing = True
    return app.test_client()


class TestStatusApi:
    def test_status(self, client, service):
        service.state.set_model_loaded('detector')
        service.state.set_detected_faces(2)
        resp = client.get('/api/status')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['models']['detector'] is True
        assert data['models']['landmark'] is False
        assert data['detected_faces'] == 2

    def test_gallery_not_built(self, client):
        assert client.get('/api/gallery').status_code == 503

    def test_gallery(self, client, service):
        service.gallery = Gallery({'Virat': [np.ones(512, dtype=np.float32)], 'Messi': []})
        data = client.get('/api/gallery').get_json()
        assert data['gallery']['labels'] == [
            {'label': 'Virat', 'descriptors': 1},
            {'label': 'Messi', 'descriptors': 0},
        ]

    def test_stats(self, client):
        data = client.get('/api/stats').get_json()
        assert data['stats']['loop']['running'] is False

    def test_frame_not_ready(self, client):
        assert client.get('/api/stream/frame.jpg').status_code == 503

    def test_frame(self, client, service):
        service._on_frame(np.zeros((24, 32, 3), dtype=np.uint8))
        resp = client.get('/api/stream/frame.jpg')
        assert resp.status_code == 200
        assert resp.mimetype == 'image/jpeg'
        assert resp.data[:2] == b'\xff\xd8'

    def test_health(self, client, service):
        assert client.get('/health').get_json()['status'] == 'healthy'
        service.state.set_error('Failed to load face detection models')
        resp = client.get('/health')
        assert resp.status_code == 503
        assert resp.get_json()['error'] == 'Failed to load face detection models'

    def test_dashboard(self, client):
        resp = client.get('/')
        assert resp.status_code == 200
        assert b'Detected Faces' in resp.data

    def test_not_found(self, client):
        resp = client.get('/api/nope')
        assert resp.status_code == 404
        assert resp.get_json() == {'error': 'Not found'}

    def test_socketio_status_on_connect(self, test_config, service):
        app = create_app(test_config, recognition=service, autostart=False)
        sio_client = app.socketio.test_client(app, namespace='/stream')
        received = sio_client.get_received('/stream')
        assert received[0]['name'] == 'status'
        assert received[0]['args'][0]['models']['detector'] is False
        sio_client.disconnect(namespace='/stream')
