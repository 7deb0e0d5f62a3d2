"""
Facial Recognition Engine
Provides model loading, face detection, the reference gallery and matching
on top of InsightFace Buffalo_L.

Usage:
    from engines.facial_recognition import FaceDetector, GalleryBuilder, FaceMatcher

    detector = FaceDetector(gpu_id=0)
    detector.load()
    gallery  = GalleryBuilder(detector, 'labels', ['Virat', 'Messi']).build()
    matcher  = FaceMatcher(gallery, threshold=1.0)
"""

from engines.facial_recognition.detector import FaceDetector, DetectedFace, BoundingBox
from engines.facial_recognition.exceptions import (
    FaceRecognitionError, ModelLoadError, CameraError, DescriptorError,
)
from engines.facial_recognition.gallery import Gallery, GalleryBuilder
from engines.facial_recognition.matcher import FaceMatcher, MatchResult, UNKNOWN_LABEL

__all__ = [
    'FaceDetector', 'DetectedFace', 'BoundingBox',
    'FaceRecognitionError', 'ModelLoadError', 'CameraError', 'DescriptorError',
    'Gallery', 'GalleryBuilder',
    'FaceMatcher', 'MatchResult', 'UNKNOWN_LABEL',
]
