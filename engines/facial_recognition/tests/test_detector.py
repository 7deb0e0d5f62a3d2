"""
Tests for FaceDetector engine module.
"""

from types import SimpleNamespace

import numpy as np
import pytest
from unittest.mock import MagicMock, patch

from engines.facial_recognition import detector as detector_module
from engines.facial_recognition.detector import (
    FaceDetector, DetectedFace, BoundingBox, LOAD_ORDER,
)
from engines.facial_recognition.exceptions import ModelLoadError


def _raw_face(x1, y1, x2, y2, score=0.9, dim=512, landmarks=True):
    emb = np.random.randn(dim).astype(np.float32)
    emb /= np.linalg.norm(emb)
    return SimpleNamespace(
        bbox=np.array([x1, y1, x2, y2], dtype=np.float32),
        normed_embedding=emb,
        landmark_2d_106=np.ones((106, 2), dtype=np.float32) if landmarks else None,
        kps=np.ones((5, 2), dtype=np.float32),
        det_score=score,
    )


def _loaded_detector(raw_faces):
    detector = FaceDetector()
    detector.app = MagicMock()
    detector.app.get.return_value = raw_faces
    for name in LOAD_ORDER:
        detector._loaded[name] = True
    return detector


class TestBoundingBox:
    def test_properties(self):
        bbox = BoundingBox(x=10, y=20, width=100, height=100)
        assert bbox.right == 110
        assert bbox.bottom == 120
        assert bbox.area == 10000

    def test_from_xyxy(self):
        bbox = BoundingBox.from_xyxy(5, 10, 50, 60)
        assert (bbox.x, bbox.y, bbox.width, bbox.height) == (5, 10, 45, 50)

    def test_scale(self):
        bbox = BoundingBox(x=10, y=20, width=30, height=40).scale(2.0, 0.5)
        assert (bbox.x, bbox.y, bbox.width, bbox.height) == (20, 10, 60, 20)

    def test_to_dict(self):
        d = BoundingBox(x=5, y=10, width=45, height=50).to_dict()
        assert d == {'x': 5, 'y': 10, 'width': 45, 'height': 50}


class TestDetectedFace:
    def test_resized_scales_box_and_landmarks(self):
        face = DetectedFace(
            bbox=BoundingBox(10, 10, 20, 20),
            descriptor=np.zeros(512, dtype=np.float32),
            landmarks=np.array([[10, 10], [20, 30]], dtype=np.float32),
            det_score=0.95,
        )
        resized = face.resized(2.0, 3.0)
        assert resized.bbox.to_dict() == {'x': 20, 'y': 30, 'width': 40, 'height': 60}
        np.testing.assert_allclose(resized.landmarks, [[20, 30], [40, 90]])
        # descriptor is unaffected by display size
        assert resized.descriptor is face.descriptor

    def test_to_dict(self):
        face = DetectedFace(bbox=BoundingBox(0, 0, 100, 100),
                            descriptor=np.zeros(512), det_score=0.95)
        d = face.to_dict()
        assert d['det_score'] == 0.95
        assert d['num_landmarks'] == 0
        assert 'box' in d


class TestFaceDetector:
    def test_not_loaded_raises(self):
        detector = FaceDetector()
        assert detector.available is False
        with pytest.raises(ModelLoadError):
            detector.detect_all(np.zeros((100, 100, 3), dtype=np.uint8))

    def test_load_without_insightface(self):
        with patch.object(detector_module, 'INSIGHTFACE_AVAILABLE', False):
            with pytest.raises(ModelLoadError, match='not installed'):
                FaceDetector().load()

    def test_load_reports_each_model(self):
        app = MagicMock()
        app.models = {'detection': object(), 'recognition': object(), 'landmark_2d_106': object()}
        detector = FaceDetector()
        loaded = []
        with patch.object(detector_module, 'INSIGHTFACE_AVAILABLE', True), \
                patch.object(FaceDetector, '_init_model', return_value=app):
            detector.load(on_model_loaded=loaded.append)
        assert loaded == ['detector', 'descriptor', 'landmark']
        assert detector.available is True
        assert detector.model_status == {'detector': True, 'descriptor': True, 'landmark': True}

    def test_load_missing_model_is_fatal(self):
        app = MagicMock()
        app.models = {'detection': object(), 'recognition': object()}
        detector = FaceDetector()
        loaded = []
        with patch.object(detector_module, 'INSIGHTFACE_AVAILABLE', True), \
                patch.object(FaceDetector, '_init_model', return_value=app):
            with pytest.raises(ModelLoadError, match='landmark'):
                detector.load(on_model_loaded=loaded.append)
        assert loaded == ['detector', 'descriptor']
        assert detector.available is False

    def test_load_no_provider(self):
        with patch.object(detector_module, 'INSIGHTFACE_AVAILABLE', True), \
                patch.object(FaceDetector, '_init_model', return_value=None):
            with pytest.raises(ModelLoadError):
                FaceDetector().load()

    def test_detect_all_converts_faces(self):
        detector = _loaded_detector([_raw_face(0, 0, 50, 60), _raw_face(100, 100, 120, 130)])
        faces = detector.detect_all(np.zeros((200, 200, 3), dtype=np.uint8))
        assert len(faces) == 2
        assert faces[0].bbox.to_dict() == {'x': 0, 'y': 0, 'width': 50, 'height': 60}
        assert faces[0].descriptor.shape == (512,)
        assert faces[0].descriptor.dtype == np.float32
        assert faces[0].landmarks.shape == (106, 2)

    def test_detect_all_falls_back_to_keypoints(self):
        detector = _loaded_detector([_raw_face(0, 0, 50, 50, landmarks=False)])
        faces = detector.detect_all(np.zeros((100, 100, 3), dtype=np.uint8))
        assert faces[0].landmarks.shape == (5, 2)

    def test_detect_all_propagates_model_errors(self):
        detector = _loaded_detector([])
        detector.app.get.side_effect = RuntimeError('onnx failure')
        with pytest.raises(RuntimeError, match='onnx'):
            detector.detect_all(np.zeros((100, 100, 3), dtype=np.uint8))

    def test_detect_single_picks_largest(self):
        detector = _loaded_detector([_raw_face(0, 0, 50, 50), _raw_face(0, 0, 200, 200)])
        face = detector.detect_single(np.zeros((200, 200, 3), dtype=np.uint8))
        assert face.bbox.area == 200 * 200

    def test_detect_single_no_face(self):
        detector = _loaded_detector([])
        assert detector.detect_single(np.zeros((100, 100, 3), dtype=np.uint8)) is None

    def test_stats(self):
        detector = FaceDetector(model_name='buffalo_l', gpu_id=0, det_size=(640, 640))
        stats = detector.get_stats()
        assert stats['available'] is False
        assert stats['model'] == 'buffalo_l'
        assert stats['models'] == {'detector': False, 'descriptor': False, 'landmark': False}
