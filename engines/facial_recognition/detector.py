"""
Face Detector - InsightFace model provider.
Loads the detector, landmark and descriptor models and turns frames into
structured DetectedFace objects.
GPU-accelerated via ONNX Runtime CUDA provider with CPU fallback.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np

from engines.facial_recognition.exceptions import ModelLoadError

logger = logging.getLogger(__name__)

# Lazy import - InsightFace may not be installed in all environments
try:
    from insightface.app import FaceAnalysis
    INSIGHTFACE_AVAILABLE = True
except ImportError:
    INSIGHTFACE_AVAILABLE = False
    logger.warning("InsightFace not installed - face detection unavailable")


# Public model name → InsightFace task name inside the model pack
MODEL_TASKS = {
    'detector': 'detection',
    'descriptor': 'recognition',
    'landmark': 'landmark_2d_106',
}
# Order in which model status is reported to the dashboard
LOAD_ORDER = ('detector', 'descriptor', 'landmark')


@dataclass
class BoundingBox:
    """Axis-aligned bounding box in pixel coordinates of the frame it came from."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> 'BoundingBox':
        return cls(x=float(x1), y=float(y1), width=float(x2 - x1), height=float(y2 - y1))

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def scale(self, sx: float, sy: float) -> 'BoundingBox':
        """Return a copy rescaled by sx horizontally and sy vertically."""
        return BoundingBox(x=self.x * sx, y=self.y * sy,
                           width=self.width * sx, height=self.height * sy)

    def to_dict(self) -> dict:
        return {
            'x': round(self.x, 1),
            'y': round(self.y, 1),
            'width': round(self.width, 1),
            'height': round(self.height, 1),
        }


@dataclass
class DetectedFace:
    """A face detected in a frame. Lives for a single tick."""
    bbox: BoundingBox
    descriptor: np.ndarray                      # fixed-length float32 vector
    landmarks: Optional[np.ndarray] = None      # (N, 2) points, frame coordinates
    det_score: float = 0.0

    def resized(self, sx: float, sy: float) -> 'DetectedFace':
        """Rescale box and landmarks to another display size."""
        landmarks = None
        if self.landmarks is not None:
            landmarks = self.landmarks * np.array([sx, sy], dtype=np.float32)
        return DetectedFace(
            bbox=self.bbox.scale(sx, sy),
            descriptor=self.descriptor,
            landmarks=landmarks,
            det_score=self.det_score,
        )

    def to_dict(self) -> dict:
        return {
            'box': self.bbox.to_dict(),
            'det_score': round(self.det_score, 3),
            'num_landmarks': 0 if self.landmarks is None else int(len(self.landmarks)),
        }


class FaceDetector:
    """
    Model provider around an InsightFace model pack.

    Responsibilities:
        - Load detector, descriptor and landmark models (GPU first, CPU fallback)
        - Report per-model load status as each model becomes usable
        - detect_all: every face in a frame with landmarks and descriptor
        - detect_single: the most prominent face in a reference image

    Does NOT handle matching - see FaceMatcher.
    """

    def __init__(self, model_name: str = 'buffalo_l', model_root: str = '~/.insightface',
                 gpu_id: int = 0, det_size: tuple = (640, 640)):
        self.model_name = model_name
        self.model_root = model_root
        self.gpu_id = gpu_id
        self.det_size = det_size
        self.app = None
        self._loaded: Dict[str, bool] = {name: False for name in LOAD_ORDER}

    @property
    def available(self) -> bool:
        return self.app is not None and all(self._loaded.values())

    @property
    def model_status(self) -> Dict[str, bool]:
        return dict(self._loaded)

    def load(self, on_model_loaded: Optional[Callable[[str], None]] = None) -> None:
        """
        Load all three models.

        Args:
            on_model_loaded: called with the public model name ('detector',
                'descriptor', 'landmark') once that model is ready.

        Raises:
            ModelLoadError: InsightFace is missing, no execution provider worked,
                or the model pack lacks one of the required models.
        """
        if not INSIGHTFACE_AVAILABLE:
            raise ModelLoadError("InsightFace is not installed")

        self.app = self._init_model()
        if self.app is None:
            raise ModelLoadError(f"Could not initialize model pack '{self.model_name}'")

        for name in LOAD_ORDER:
            task = MODEL_TASKS[name]
            if task not in self.app.models:
                raise ModelLoadError(
                    f"Model pack '{self.model_name}' has no {name} model ({task})"
                )
            self._loaded[name] = True
            logger.info(f"FaceDetector: {name} model ready ({task})")
            if on_model_loaded is not None:
                on_model_loaded(name)

    def _init_model(self):
        """Initialize InsightFace - tries GPU first, falls back to CPU."""
        provider_options = [
            ['CUDAExecutionProvider', 'CPUExecutionProvider'],
            ['CPUExecutionProvider'],
        ]
        for providers in provider_options:
            try:
                app = FaceAnalysis(
                    name=self.model_name,
                    root=self.model_root,
                    allowed_modules=list(MODEL_TASKS.values()),
                    providers=providers,
                )
                app.prepare(ctx_id=self.gpu_id, det_size=self.det_size)

                # Log which provider is actually active
                active_providers = []
                for model in app.models.values():
                    if hasattr(model, 'session'):
                        active_providers = model.session.get_providers()
                        break
                logger.info(
                    f"FaceDetector: {self.model_name} loaded with {providers} "
                    f"(active: {active_providers})"
                )
                return app
            except Exception as e:
                logger.warning(f"FaceDetector init failed with {providers}: {e}")
        logger.error("FaceDetector: could not initialize with any provider")
        return None

    def _require_loaded(self):
        if not self.available:
            raise ModelLoadError("Face models are not loaded")

    @staticmethod
    def _to_detected(face) -> DetectedFace:
        x1, y1, x2, y2 = (float(v) for v in face.bbox[:4])
        landmarks = face.landmark_2d_106
        if landmarks is None:
            landmarks = face.kps
        return DetectedFace(
            bbox=BoundingBox.from_xyxy(x1, y1, x2, y2),
            descriptor=np.asarray(face.normed_embedding, dtype=np.float32),
            landmarks=None if landmarks is None else np.asarray(landmarks, dtype=np.float32),
            det_score=float(face.det_score) if face.det_score is not None else 0.0,
        )

    def detect_all(self, frame: np.ndarray) -> List[DetectedFace]:
        """
        Detect all faces in a BGR frame, with landmarks and descriptors.

        Errors from the model propagate to the caller.
        """
        self._require_loaded()
        return [self._to_detected(face) for face in self.app.get(frame)]

    def detect_single(self, image: np.ndarray) -> Optional[DetectedFace]:
        """
        Detect the most prominent face in a BGR image.

        Returns:
            The largest DetectedFace by box area, or None if no face was found.
        """
        faces = self.detect_all(image)
        if not faces:
            return None
        return max(faces, key=lambda f: f.bbox.area)

    def get_stats(self) -> dict:
        return {
            'available': self.available,
            'model': self.model_name,
            'models': self.model_status,
            'gpu_id': self.gpu_id,
            'det_size': list(self.det_size),
        }
