"""
Configuration Management for FaceWatch
Loads environment variables and provides configuration settings
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _csv(value):
    return [item.strip() for item in value.split(',') if item.strip()]


def _size(value):
    width, height = value.lower().split('x')
    return int(width), int(height)


class Config:
    """Application configuration"""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')

    # Server
    HOST = os.getenv('HOST', '0.0.0.0')
    PORT = int(os.getenv('PORT', 5000))
    AUTOSTART = os.getenv('AUTOSTART', 'true').lower() in ('1', 'true', 'yes')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')

    # Camera
    CAMERA_INDEX = int(os.getenv('CAMERA_INDEX', 0))
    FRAME_WIDTH = int(os.getenv('FRAME_WIDTH', 640))
    FRAME_HEIGHT = int(os.getenv('FRAME_HEIGHT', 480))
    CAMERA_FPS = int(os.getenv('CAMERA_FPS', 30))

    # Display (canvas the boxes are drawn on)
    DISPLAY_WIDTH = int(os.getenv('DISPLAY_WIDTH', 640))
    DISPLAY_HEIGHT = int(os.getenv('DISPLAY_HEIGHT', 480))
    REFRESH_RATE_HZ = float(os.getenv('REFRESH_RATE_HZ', 30))
    JPEG_QUALITY = int(os.getenv('JPEG_QUALITY', 75))

    # Models (InsightFace model pack)
    MODEL_NAME = os.getenv('MODEL_NAME', 'buffalo_l')
    MODEL_ROOT = os.getenv('MODEL_ROOT', '~/.insightface')
    GPU_ID = int(os.getenv('GPU_ID', 0))
    DET_SIZE = _size(os.getenv('DET_SIZE', '640x640'))
    DESCRIPTOR_DIM = int(os.getenv('DESCRIPTOR_DIM', 512))

    # Reference gallery: {LABELS_DIR}/{label}/{index}.png
    LABELS_DIR = os.getenv('LABELS_DIR', 'labels')
    FACE_LABELS = _csv(os.getenv('FACE_LABELS', 'Virat,Messi,Prakash'))
    IMAGES_PER_LABEL = int(os.getenv('IMAGES_PER_LABEL', 2))

    # Matching
    MATCH_DISTANCE_THRESHOLD = float(os.getenv('MATCH_DISTANCE_THRESHOLD', 1.0))
    MATCH_METRIC = os.getenv('MATCH_METRIC', 'euclidean')
    MATCH_AGGREGATE = os.getenv('MATCH_AGGREGATE', 'min')

    # Frame loop (0 = no timeout on a detection call)
    DETECTION_TIMEOUT_SEC = float(os.getenv('DETECTION_TIMEOUT_SEC', 0))
