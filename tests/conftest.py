"""Shared fixtures for service and API tests."""

from types import SimpleNamespace

import pytest


@pytest.fixture
def test_config(tmp_path):
    return SimpleNamespace(
        SECRET_KEY='test',
        AUTOSTART=False,
        MODEL_NAME='buffalo_l',
        MODEL_ROOT=str(tmp_path / 'models'),
        GPU_ID=0,
        DET_SIZE=(320, 320),
        DESCRIPTOR_DIM=512,
        CAMERA_INDEX=0,
        FRAME_WIDTH=640,
        FRAME_HEIGHT=480,
        CAMERA_FPS=30,
        DISPLAY_WIDTH=320,
        DISPLAY_HEIGHT=240,
        REFRESH_RATE_HZ=100,
        JPEG_QUALITY=70,
        LABELS_DIR=str(tmp_path / 'labels'),
        FACE_LABELS=['Virat', 'Messi', 'Prakash'],
        IMAGES_PER_LABEL=2,
        MATCH_DISTANCE_THRESHOLD=1.0,
        MATCH_METRIC='euclidean',
        MATCH_AGGREGATE='min',
        DETECTION_TIMEOUT_SEC=0,
    )
