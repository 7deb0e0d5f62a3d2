"""
Canvas - display-size overlay the frame loop draws boxes and labels onto.
The overlay is composited over the (rescaled) camera frame for the browser.
"""
from typing import List, Optional, Tuple

import cv2
import numpy as np

from engines.facial_recognition.detector import BoundingBox

BOX_COLOR = (0, 255, 0)          # BGR, #00ff00
FONT_COLOR = (255, 255, 255)
LABEL_ALPHA = 0.8                # label background #00ff00cc
FONT = cv2.FONT_HERSHEY_SIMPLEX


class Canvas:
    """
    Drawing surface of a fixed display size.

    Keeps a BGR overlay plus a per-pixel alpha mask. clear() wipes both, so
    nothing drawn on one tick survives into the next.
    """

    def __init__(self, width: int, height: int, line_width: int = 2,
                 font_scale: float = 0.5, padding: int = 3):
        self.line_width = line_width
        self.font_scale = font_scale
        self.padding = padding
        self.boxes: List[Tuple[BoundingBox, Optional[str]]] = []
        self.match_dimensions(width, height)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def match_dimensions(self, width: int, height: int) -> None:
        """Resize the surface. Drops anything drawn so far."""
        self.width = int(width)
        self.height = int(height)
        self.overlay = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        self.alpha = np.zeros((self.height, self.width), dtype=np.float32)
        self.boxes = []

    def clear(self) -> None:
        self.overlay[:] = 0
        self.alpha[:] = 0.0
        self.boxes = []

    @property
    def is_blank(self) -> bool:
        return not self.boxes and not self.alpha.any()

    def _clip(self, x: float, y: float) -> Tuple[int, int]:
        return (int(min(max(round(x), 0), self.width - 1)),
                int(min(max(round(y), 0), self.height - 1)))

    def draw_box(self, box: BoundingBox, label: Optional[str] = None) -> None:
        """Draw a bounding box and, if given, a filled label field under its bottom-left corner."""
        p1 = self._clip(box.x, box.y)
        p2 = self._clip(box.right, box.bottom)
        cv2.rectangle(self.overlay, p1, p2, BOX_COLOR, self.line_width)
        cv2.rectangle(self.alpha, p1, p2, 1.0, self.line_width)

        if label:
            (tw, th), baseline = cv2.getTextSize(label, FONT, self.font_scale, 1)
            field_w = tw + 2 * self.padding
            field_h = th + baseline + 2 * self.padding

            lx = p1[0]
            ly = p2[1]
            if ly + field_h > self.height:
                # no room below the box: put the label inside its bottom edge
                ly = max(p2[1] - field_h, 0)
            lx = min(lx, max(self.width - field_w, 0))

            cv2.rectangle(self.overlay, (lx, ly), (lx + field_w, ly + field_h), BOX_COLOR, -1)
            cv2.rectangle(self.alpha, (lx, ly), (lx + field_w, ly + field_h), LABEL_ALPHA, -1)

            org = (lx + self.padding, ly + self.padding + th)
            cv2.putText(self.overlay, label, org, FONT, self.font_scale, FONT_COLOR, 1, cv2.LINE_AA)
            cv2.putText(self.alpha, label, org, FONT, self.font_scale, 1.0, 1, cv2.LINE_AA)

        self.boxes.append((box, label))

    def render(self, frame: np.ndarray) -> np.ndarray:
        """Composite the overlay over a frame rescaled to the display size."""
        if frame.shape[1] != self.width or frame.shape[0] != self.height:
            base = cv2.resize(frame, (self.width, self.height))
        else:
            base = frame.copy()
        a = self.alpha[..., None]
        out = base.astype(np.float32) * (1.0 - a) + self.overlay.astype(np.float32) * a
        return out.astype(np.uint8)


def encode_jpeg(image: np.ndarray, quality: int = 80) -> bytes:
    ok, buffer = cv2.imencode('.jpg', image, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()
