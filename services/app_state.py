"""Application State - shared status for the frame loop and the dashboard"""
import copy
import logging
import time
from threading import Lock

logger = logging.getLogger(__name__)

MODEL_NAMES = ('detector', 'descriptor', 'landmark')


class AppState:
    """
    Explicit application state, passed to the frame loop and the status surface.

    Writers go through the setters; readers take a snapshot() copy.
    Model flags only move from False to True.
    """

    def __init__(self):
        self._lock = Lock()
        self.models = {name: False for name in MODEL_NAMES}
        self.loading = True
        self.error = None            # blocking error shown as an overlay
        self.transient_error = None  # last per-tick failure, cleared on success
        self.running = False
        self.detected_faces = 0
        self.processing_time_ms = 0.0
        self.fps = 0
        self.ticks = 0
        self.gallery = {}
        self.updated_at = time.time()

    def _touch(self):
        self.updated_at = time.time()

    def set_model_loaded(self, name):
        if name not in self.models:
            raise KeyError(f"Unknown model: {name}")
        with self._lock:
            self.models[name] = True
            self._touch()

    def set_loading(self, loading):
        with self._lock:
            self.loading = bool(loading)
            self._touch()

    def set_error(self, message):
        logger.error(f"Blocking error: {message}")
        with self._lock:
            self.error = message
            self._touch()

    def set_transient_error(self, message):
        with self._lock:
            self.transient_error = message
            self._touch()

    def set_running(self, running):
        with self._lock:
            self.running = bool(running)
            self._touch()

    def set_gallery(self, summary):
        with self._lock:
            self.gallery = dict(summary)
            self._touch()

    def set_detected_faces(self, count):
        with self._lock:
            self.detected_faces = int(count)
            self._touch()

    def set_timing(self, processing_time_ms, fps):
        with self._lock:
            self.processing_time_ms = float(processing_time_ms)
            self.fps = int(fps)
            self.ticks += 1
            self._touch()

    def snapshot(self):
        """Consistent copy of the state for JSON / Socket.IO."""
        with self._lock:
            return {
                'models': dict(self.models),
                'loading': self.loading,
                'error': self.error,
                'transient_error': self.transient_error,
                'running': self.running,
                'detected_faces': self.detected_faces,
                'processing_time_ms': round(self.processing_time_ms, 1),
                'fps': self.fps,
                'ticks': self.ticks,
                'gallery': copy.deepcopy(self.gallery),
                'updated_at': self.updated_at,
            }
