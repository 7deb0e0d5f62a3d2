"""
Recognition Service - startup sequence and ownership of the frame loop.

Startup order: models → camera → reference gallery → frame loop.
Any failure before the loop starts is fatal: it becomes a blocking error on
the AppState and detection never starts. Nothing is retried.
"""

import logging
import threading

from engines.facial_recognition.detector import FaceDetector
from engines.facial_recognition.exceptions import CameraError, ModelLoadError
from engines.facial_recognition.gallery import GalleryBuilder
from engines.facial_recognition.matcher import FaceMatcher
from services.app_state import AppState
from services.camera import Camera
from services.canvas import Canvas, encode_jpeg
from services.frame_loop import FrameLoop

logger = logging.getLogger(__name__)

MODEL_ERROR_MESSAGE = "Failed to load face detection models"
INIT_ERROR_MESSAGE = "Failed to initialize face detection"


class RecognitionService:
    """Wires detector, camera, gallery, matcher and frame loop together."""

    def __init__(self, config, state=None, detector=None, camera=None, publisher=None):
        """
        Args:
            config: Config-like object (see config.Config)
            state: AppState shared with the status surface
            detector: FaceDetector (built from config if omitted)
            camera: Camera (built from config if omitted)
            publisher: called with (jpeg_bytes, state_snapshot) after every processed tick
        """
        self.config = config
        self.state = state or AppState()
        self.detector = detector or FaceDetector(
            model_name=config.MODEL_NAME,
            model_root=config.MODEL_ROOT,
            gpu_id=config.GPU_ID,
            det_size=tuple(config.DET_SIZE),
        )
        self.camera = camera or Camera(
            index=config.CAMERA_INDEX,
            width=config.FRAME_WIDTH,
            height=config.FRAME_HEIGHT,
            fps=config.CAMERA_FPS,
        )
        self.publisher = publisher
        self.gallery = None
        self.matcher = None
        self.loop = None

        self._frame_lock = threading.Lock()
        self._latest_jpeg = None
        self._init_thread = None
        self._stopping = threading.Event()
        self._lifecycle_lock = threading.Lock()

    # ---------- Startup ----------

    def _load_models(self) -> bool:
        self.state.set_loading(True)
        try:
            self.detector.load(on_model_loaded=self.state.set_model_loaded)
            logger.info("Models loaded successfully")
            return True
        except ModelLoadError as e:
            logger.error(f"Error loading models: {e}")
            self.state.set_error(MODEL_ERROR_MESSAGE)
            return False
        finally:
            self.state.set_loading(False)

    def _start_camera(self) -> bool:
        try:
            self.camera.start()
            return True
        except CameraError as e:
            logger.error(f"Error accessing webcam: {e}")
            self.state.set_error(str(e))
            return False

    def _setup_detection(self):
        cfg = self.config
        builder = GalleryBuilder(
            self.detector,
            labels_dir=cfg.LABELS_DIR,
            labels=cfg.FACE_LABELS,
            images_per_label=cfg.IMAGES_PER_LABEL,
            descriptor_dim=cfg.DESCRIPTOR_DIM,
        )
        self.gallery = builder.build()
        self.state.set_gallery(self.gallery.to_dict())

        self.matcher = FaceMatcher(
            self.gallery,
            threshold=cfg.MATCH_DISTANCE_THRESHOLD,
            metric=cfg.MATCH_METRIC,
            aggregate=cfg.MATCH_AGGREGATE,
        )
        canvas = Canvas(cfg.DISPLAY_WIDTH, cfg.DISPLAY_HEIGHT)
        self.loop = FrameLoop(
            self.camera, self.detector, self.matcher, canvas, self.state,
            refresh_rate_hz=cfg.REFRESH_RATE_HZ,
            detection_timeout=cfg.DETECTION_TIMEOUT_SEC,
            on_frame=self._on_frame,
        )

    def _cancelled(self, stage: str) -> bool:
        if not self._stopping.is_set():
            return False
        logger.info(f"Startup cancelled after {stage}")
        return True

    def initialize(self) -> bool:
        """
        Run the whole startup sequence synchronously.

        stop() may be called from another thread at any point; the sequence
        then bails out at the next stage boundary and never starts the loop.

        Returns:
            True if the frame loop is running, False if startup failed
            or was cancelled (a failure reason is on state.error).
        """
        if not self._load_models():
            return False
        if self._cancelled('model load'):
            return False
        if not self._start_camera():
            return False
        if self._cancelled('camera start'):
            self.camera.release()
            return False
        try:
            self._setup_detection()
        except Exception as e:
            logger.error(f"Error in face detection setup: {e}", exc_info=True)
            self.state.set_error(INIT_ERROR_MESSAGE)
            self.camera.release()
            return False

        with self._lifecycle_lock:
            if self._cancelled('gallery build'):
                self.camera.release()
                return False
            self.loop.start()
        return True

    def start(self):
        """Run initialize() on a background thread so the web server stays responsive."""
        if self._init_thread is not None and self._init_thread.is_alive():
            return
        self._stopping.clear()
        self._init_thread = threading.Thread(target=self.initialize, name='recognition-init', daemon=True)
        self._init_thread.start()

    def stop(self, timeout: float = 10.0):
        """Cancel a startup in progress, stop the frame loop and release the camera."""
        with self._lifecycle_lock:
            self._stopping.set()

        init_thread = self._init_thread
        if init_thread is not None and init_thread is not threading.current_thread():
            init_thread.join(timeout)
            if init_thread.is_alive():
                logger.warning(f"Startup still busy after {timeout:.1f}s - it will stop at the next stage")

        if self.loop is not None:
            self.loop.stop()
        else:
            self.camera.release()
            self.state.set_running(False)

    # ---------- Frames ----------

    def _on_frame(self, image):
        jpeg = encode_jpeg(image, self.config.JPEG_QUALITY)
        with self._frame_lock:
            self._latest_jpeg = jpeg
        if self.publisher is not None:
            self.publisher(jpeg, self.state.snapshot())

    @property
    def latest_jpeg(self):
        with self._frame_lock:
            return self._latest_jpeg

    def get_stats(self) -> dict:
        return {
            'detector': self.detector.get_stats(),
            'matcher': self.matcher.get_stats() if self.matcher else None,
            'loop': {
                'running': bool(self.loop and self.loop.running),
                'status': self.loop.status if self.loop else 'idle',
                'ticks': self.loop.tick_count if self.loop else 0,
                'processed': self.loop.processed_count if self.loop else 0,
            },
        }
