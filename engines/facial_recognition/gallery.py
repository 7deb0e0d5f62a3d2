"""
Reference Gallery - labelled descriptors for the known identities.
Built once at startup from `{labels_dir}/{label}/{index}.png` reference images,
read-only afterwards.
"""

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import cv2
import numpy as np

from engines.facial_recognition.detector import FaceDetector
from engines.facial_recognition.exceptions import DescriptorError

logger = logging.getLogger(__name__)


class Gallery:
    """
    Immutable mapping of identity label → descriptors, in configured label order.

    Labels whose reference images all failed are kept with an empty tuple.
    """

    def __init__(self, entries: Mapping[str, Iterable[np.ndarray]], descriptor_dim: Optional[int] = None):
        frozen: Dict[str, Tuple[np.ndarray, ...]] = {}
        for label, descriptors in entries.items():
            vectors = []
            for descriptor in descriptors:
                vec = np.array(descriptor, dtype=np.float32).reshape(-1)
                if descriptor_dim is None:
                    descriptor_dim = int(vec.shape[0])
                if vec.shape != (descriptor_dim,):
                    raise DescriptorError(
                        f"Descriptor for '{label}' has {vec.shape[0]} values, expected {descriptor_dim}"
                    )
                vec.setflags(write=False)
                vectors.append(vec)
            frozen[str(label)] = tuple(vectors)
        self._entries = MappingProxyType(frozen)
        self.descriptor_dim = descriptor_dim

    @property
    def entries(self) -> Mapping[str, Tuple[np.ndarray, ...]]:
        return self._entries

    @property
    def labels(self) -> List[str]:
        return list(self._entries.keys())

    @property
    def descriptor_count(self) -> int:
        return sum(len(v) for v in self._entries.values())

    @property
    def is_empty(self) -> bool:
        return self.descriptor_count == 0

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, label: str) -> Tuple[np.ndarray, ...]:
        return self._entries[label]

    def items(self):
        return self._entries.items()

    def to_dict(self) -> dict:
        return {
            'labels': [{'label': label, 'descriptors': len(vectors)}
                       for label, vectors in self._entries.items()],
            'descriptor_dim': self.descriptor_dim,
            'total': self.descriptor_count,
        }


class GalleryBuilder:
    """
    Builds the reference Gallery from images on disk.

    Responsibilities:
        - Walk labels in order and indices 1..images_per_label
        - Single-face detection + descriptor for each reference image
        - Skip (and log) images that are missing, unreadable or faceless

    A failure on one image never aborts the others; nothing is retried.
    """

    def __init__(self, detector: FaceDetector, labels_dir, labels: Sequence[str],
                 images_per_label: int = 2, descriptor_dim: Optional[int] = None):
        self.detector = detector
        self.labels_dir = Path(labels_dir)
        self.labels = list(labels)
        self.images_per_label = images_per_label
        self.descriptor_dim = descriptor_dim
        self.errors: List[str] = []

    def image_path(self, label: str, index: int) -> Path:
        return self.labels_dir / label / f"{index}.png"

    def _describe(self, label: str, index: int) -> Optional[np.ndarray]:
        path = self.image_path(label, index)
        image = cv2.imread(str(path))
        if image is None:
            self.errors.append(f"{label}/{index}: could not read {path}")
            logger.warning(f"Gallery: could not read reference image {path}")
            return None

        try:
            face = self.detector.detect_single(image)
        except Exception as e:
            self.errors.append(f"{label}/{index}: {e}")
            logger.warning(f"Gallery: detection failed for {path}: {e}")
            return None

        if face is None:
            self.errors.append(f"{label}/{index}: no face detected")
            logger.warning(f"Gallery: no face detected in {path}")
            return None

        descriptor = np.asarray(face.descriptor, dtype=np.float32).reshape(-1)
        if self.descriptor_dim is not None and descriptor.shape[0] != self.descriptor_dim:
            self.errors.append(f"{label}/{index}: descriptor has {descriptor.shape[0]} values")
            logger.warning(
                f"Gallery: {path} gave a {descriptor.shape[0]}-d descriptor, "
                f"expected {self.descriptor_dim}"
            )
            return None
        return descriptor

    def build(self) -> Gallery:
        """Describe every reference image and return the resulting Gallery."""
        self.errors = []
        entries: Dict[str, List[np.ndarray]] = {}

        for label in self.labels:
            descriptors = []
            for index in range(1, self.images_per_label + 1):
                descriptor = self._describe(label, index)
                if descriptor is not None:
                    descriptors.append(descriptor)
            entries[label] = descriptors
            logger.info(f"Gallery: {label} → {len(descriptors)}/{self.images_per_label} reference faces")

        gallery = Gallery(entries, descriptor_dim=self.descriptor_dim)
        logger.info(
            f"Gallery built: {gallery.descriptor_count} descriptors for {len(gallery)} labels"
            f" ({len(self.errors)} images skipped)"
        )
        return gallery
