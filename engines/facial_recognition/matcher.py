"""
Face Matcher - nearest-label search over the reference gallery.
Finds the identity whose reference descriptors are closest to a query
descriptor, subject to a maximum-distance acceptance threshold.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from engines.facial_recognition.exceptions import DescriptorError
from engines.facial_recognition.gallery import Gallery

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = 'unknown'

METRICS = ('euclidean', 'cosine')
AGGREGATES = ('min', 'mean')


@dataclass(frozen=True)
class MatchResult:
    """Best label for one detection (or 'unknown') and its distance."""
    label: str = UNKNOWN_LABEL
    distance: float = math.inf

    @property
    def matched(self) -> bool:
        return self.label != UNKNOWN_LABEL

    def __str__(self) -> str:
        if math.isinf(self.distance):
            return self.label
        return f"{self.label} ({self.distance:.2f})"

    def to_dict(self) -> dict:
        return {
            'label': self.label,
            'distance': None if math.isinf(self.distance) else round(self.distance, 4),
            'matched': self.matched,
        }


def descriptor_distance(a: np.ndarray, b: np.ndarray, metric: str = 'euclidean') -> np.ndarray:
    """
    Distance from query `a` (D,) to each row of `b` (N, D). Lower is closer.

    euclidean: L2 distance. cosine: 1 - cosine similarity.
    """
    if metric == 'euclidean':
        return np.linalg.norm(b - a, axis=1)
    if metric == 'cosine':
        a_norm = np.linalg.norm(a) + 1e-8
        b_norm = np.linalg.norm(b, axis=1) + 1e-8
        return 1.0 - (b @ a) / (b_norm * a_norm)
    raise ValueError(f"metric must be one of {METRICS}, got '{metric}'")


class FaceMatcher:
    """
    Matches descriptors against a Gallery.

    Labels are scored by the minimum (or mean) distance over their reference
    descriptors. The lowest score wins; it is accepted only if strictly below
    the threshold. Labels are visited in gallery order and only a strictly
    smaller score replaces the best, so exact ties go to the earlier label.

    Stateless after construction; safe to call from any thread.
    """

    def __init__(self, gallery: Gallery, threshold: float = 1.0,
                 metric: str = 'euclidean', aggregate: str = 'min'):
        if metric not in METRICS:
            raise ValueError(f"metric must be one of {METRICS}, got '{metric}'")
        if aggregate not in AGGREGATES:
            raise ValueError(f"aggregate must be one of {AGGREGATES}, got '{aggregate}'")
        self.gallery = gallery
        self.threshold = float(threshold)
        self.metric = metric
        self.aggregate = aggregate

        # label → (K, D) matrix, empty labels left out
        self._matrices: List[Tuple[str, np.ndarray]] = [
            (label, np.stack(vectors).astype(np.float32))
            for label, vectors in gallery.items() if vectors
        ]

    @property
    def known_count(self) -> int:
        return len(self._matrices)

    def _query(self, descriptor) -> np.ndarray:
        query = np.asarray(descriptor, dtype=np.float32).reshape(-1)
        dim = self.gallery.descriptor_dim
        if dim is not None and query.shape != (dim,):
            raise DescriptorError(f"Expected {dim}-d descriptor, got shape {query.shape}")
        return query

    def _score(self, query: np.ndarray, matrix: np.ndarray) -> float:
        distances = descriptor_distance(query, matrix, self.metric)
        if self.aggregate == 'mean':
            return float(np.mean(distances))
        return float(np.min(distances))

    def match(self, descriptor) -> MatchResult:
        """
        Find the best matching label for a query descriptor.

        Returns:
            MatchResult with the label and distance if the distance is below
            the threshold, otherwise MatchResult('unknown', distance).
            An empty gallery always yields MatchResult('unknown', inf).
        """
        query = self._query(descriptor)
        if not self._matrices:
            return MatchResult()

        best_label = None
        best_distance = math.inf
        for label, matrix in self._matrices:
            distance = self._score(query, matrix)
            if distance < best_distance:
                best_distance = distance
                best_label = label
        logger.debug(f"FaceMatcher: closest {best_label} at {best_distance:.3f}")

        if best_label is not None and best_distance < self.threshold:
            return MatchResult(label=best_label, distance=best_distance)
        return MatchResult(label=UNKNOWN_LABEL, distance=best_distance)

    def match_all(self, descriptor) -> List[Tuple[str, float]]:
        """
        Every non-empty label with its score, closest first (for debugging/analysis).
        """
        query = self._query(descriptor)
        scores = [(label, self._score(query, matrix)) for label, matrix in self._matrices]
        scores.sort(key=lambda x: x[1])
        return scores

    def get_stats(self) -> dict:
        return {
            'known_labels': self.known_count,
            'threshold': self.threshold,
            'metric': self.metric,
            'aggregate': self.aggregate,
        }
