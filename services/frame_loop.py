"""
Frame Loop - per-frame acquire / detect / match / draw cycle.

Runs on its own thread, one tick at a time, paced by a refresh clock.
Each tick reads the newest camera frame, detects every face, matches each
descriptor against the gallery, redraws the canvas from scratch and publishes
timing metrics to the shared AppState.

Usage:
    loop = FrameLoop(camera, detector, matcher, canvas, state, refresh_rate_hz=30)
    loop.start()
    ...
    loop.stop()
"""

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from engines.facial_recognition.exceptions import FaceRecognitionError

logger = logging.getLogger(__name__)


class DetectionTimeout(FaceRecognitionError):
    """A detection call took longer than the configured timeout."""


class RefreshClock:
    """
    Fixed-rate pacing signal standing in for the display refresh.

    wait() blocks until the next refresh boundary. If a tick overran, missed
    boundaries are skipped rather than replayed. Setting the stop event wakes
    the waiter immediately.
    """

    def __init__(self, rate_hz: float = 30.0, stop_event: threading.Event = None):
        self.period = 1.0 / rate_hz if rate_hz and rate_hz > 0 else 0.0
        self.stop_event = stop_event or threading.Event()
        self._next = None

    def wait(self) -> bool:
        """Block until the next refresh. Returns False once stopped."""
        now = time.monotonic()
        if self._next is None:
            self._next = now
        self._next += self.period
        delay = self._next - now
        if delay < 0 and self.period > 0:
            missed = math.ceil(-delay / self.period)
            self._next += missed * self.period
            delay = self._next - now
        return not self.stop_event.wait(max(delay, 0.0))


class FrameLoop:
    """
    Owns the camera and the canvas while running.

    States: idle (between ticks or camera not ready) → detecting → idle …,
    and stopped once stop() has been called.

    Per-tick failures are caught, logged and surfaced as a transient error on
    the AppState; the loop always reschedules.
    """

    IDLE = 'idle'
    DETECTING = 'detecting'
    STOPPED = 'stopped'

    def __init__(self, camera, detector, matcher, canvas, state,
                 refresh_rate_hz: float = 30.0, detection_timeout: float = 0.0,
                 on_frame=None, summary_every: int = 100):
        self.camera = camera
        self.detector = detector
        self.matcher = matcher
        self.canvas = canvas
        self.state = state
        self.refresh_rate_hz = refresh_rate_hz
        self.detection_timeout = detection_timeout
        self.on_frame = on_frame
        self.summary_every = summary_every

        self.status = self.IDLE
        self.tick_count = 0
        self.processed_count = 0
        self.last_results = []

        self._stop = threading.Event()
        self._thread = None
        self._lifecycle_lock = threading.Lock()
        self._exited = True
        self._release_on_exit = False
        self._executor = None
        self._pending = None
        self._has_transient_error = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ---------- Detection ----------

    def _detection_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def _detect(self, frame):
        if not self.detection_timeout or self.detection_timeout <= 0:
            return self.detector.detect_all(frame)

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='face-detect')
        self._pending = self._executor.submit(self.detector.detect_all, frame)
        try:
            return self._pending.result(timeout=self.detection_timeout)
        except FutureTimeout:
            raise DetectionTimeout(f"Detection timed out after {self.detection_timeout:.1f}s") from None

    def _report_error(self, error: Exception):
        message = str(error) or error.__class__.__name__
        logger.error(f"Frame processing error: {message}", exc_info=not isinstance(error, DetectionTimeout))
        self.state.set_transient_error(message)
        self._has_transient_error = True

    # ---------- Tick ----------

    def tick(self) -> bool:
        """
        Run one tick.

        Returns:
            True if a frame was processed, False if the body was skipped
            (camera not ready, previous detection still running, or an error).
        """
        frame = self.camera.read()
        if frame is None:
            logger.debug("Camera not ready - skipping tick")
            return False

        if self._detection_pending():
            logger.debug("Previous detection still running - skipping tick")
            return False

        self.status = self.DETECTING
        start = time.perf_counter()
        try:
            detections = self._detect(frame)
            self.state.set_detected_faces(len(detections))

            frame_h, frame_w = frame.shape[:2]
            sx = self.canvas.width / frame_w
            sy = self.canvas.height / frame_h
            resized = [d.resized(sx, sy) for d in detections]

            self.canvas.clear()
            results = [self.matcher.match(d.descriptor) for d in resized]
            for detection, result in zip(resized, results):
                self.canvas.draw_box(detection.bbox, str(result))
        except Exception as e:
            self._report_error(e)
            return False
        finally:
            self.status = self.IDLE

        elapsed_ms = (time.perf_counter() - start) * 1000
        fps = round(1000 / elapsed_ms) if elapsed_ms > 0 else 0
        self.state.set_timing(elapsed_ms, fps)
        if self._has_transient_error:
            self.state.set_transient_error(None)
            self._has_transient_error = False

        self.last_results = list(zip(resized, results))
        self.processed_count += 1
        logger.debug(f"Tick: {len(detections)} faces in {elapsed_ms:.1f}ms")

        if self.summary_every and self.processed_count % self.summary_every == 0:
            recognized = sum(1 for r in results if r.matched)
            logger.info(
                f"Processed {self.processed_count} frames "
                f"(ticks: {self.tick_count}, last: {elapsed_ms:.0f}ms, "
                f"faces: {len(detections)}, recognized: {recognized})"
            )

        if self.on_frame is not None:
            try:
                self.on_frame(self.canvas.render(frame))
            except Exception as e:
                logger.warning(f"Frame publish error: {e}")
        return True

    # ---------- Lifecycle ----------

    def _finish(self):
        self._thread = None
        self.camera.release()
        self.status = self.STOPPED
        self.state.set_running(False)
        logger.info(f"Frame loop stopped after {self.tick_count} ticks")

    def run(self, max_ticks: int = None):
        """Tick until stopped (or max_ticks reached), waiting for the refresh clock between ticks."""
        stop_event = self._stop
        clock = RefreshClock(self.refresh_rate_hz, stop_event)
        try:
            while not stop_event.is_set():
                try:
                    self.tick()
                except Exception as e:
                    # camera read or state errors outside the detection block
                    self._report_error(e)
                self.tick_count += 1
                if max_ticks is not None and self.tick_count >= max_ticks:
                    break
                if not clock.wait():
                    break
            self.status = self.STOPPED if stop_event.is_set() else self.IDLE
        finally:
            with self._lifecycle_lock:
                self._exited = True
                if self._release_on_exit:
                    self._release_on_exit = False
                    self._finish()

    def start(self):
        """Start ticking on a background thread. No-op while a previous thread is still alive."""
        with self._lifecycle_lock:
            if self._thread is not None and not self._exited:
                if self._stop.is_set():
                    logger.warning("Frame loop thread has not exited yet - not starting another")
                return
            # one stop event per run
            self._stop = threading.Event()
            self._exited = False
            self._release_on_exit = False
            self.status = self.IDLE
            self._thread = threading.Thread(target=self.run, name='frame-loop', daemon=True)
            self._thread.start()
        self.state.set_running(True)
        logger.info(f"Frame loop started ({self.refresh_rate_hz} Hz refresh)")

    def stop(self, timeout: float = 5.0):
        """
        Stop ticking, release the camera and cancel queued detection work. Idempotent.

        If the loop thread is still inside a tick after `timeout`, the camera
        is released by that thread once the tick returns.
        """
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
            self._pending = None

        with self._lifecycle_lock:
            if thread is not None and not self._exited:
                self._release_on_exit = True
                logger.warning(
                    f"Frame loop still busy after {timeout:.1f}s - "
                    f"camera will be released when the current tick returns"
                )
                return
            self._finish()
