"""Camera Service - live frames from the host's capture device"""
import logging

import cv2

from engines.facial_recognition.exceptions import CameraError

logger = logging.getLogger(__name__)

CAMERA_ERROR_MESSAGE = "Failed to access webcam. Please make sure you have granted camera permissions."


class Camera:
    """OpenCV VideoCapture wrapper. The frame loop is its only reader."""

    def __init__(self, index=0, width=640, height=480, fps=30):
        self.index = index
        self.width = width
        self.height = height
        self.fps = fps
        self.cap = None

    @property
    def is_open(self):
        return self.cap is not None and self.cap.isOpened()

    def start(self):
        """Open the capture device. Raises CameraError if it is denied or missing."""
        logger.info(f"Opening camera {self.index}...")

        # Try V4L2 backend (Linux)
        cap = cv2.VideoCapture(self.index, cv2.CAP_V4L2)
        if not cap.isOpened():
            cap.release()
            cap = cv2.VideoCapture(self.index)

        if not cap.isOpened():
            cap.release()
            raise CameraError(CAMERA_ERROR_MESSAGE)

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)  # always hand out the newest frame

        self.cap = cap
        actual = (
            int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            int(cap.get(cv2.CAP_PROP_FPS)),
        )
        logger.info(f"Camera ready: {actual[0]}x{actual[1]} @ {actual[2]}fps")

    def read(self):
        """Current frame (BGR ndarray), or None if the camera is not ready yet."""
        if not self.is_open:
            return None
        ret, frame = self.cap.read()
        if not ret or frame is None:
            return None
        return frame

    def release(self):
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            logger.info(f"Camera {self.index} released")
