"""
Exceptions raised by the facial recognition engine and the services built on it.
"""


class FaceRecognitionError(Exception):
    """Base class for all FaceWatch recognition errors."""


class ModelLoadError(FaceRecognitionError):
    """One of the detector / landmark / descriptor models could not be loaded."""


class CameraError(FaceRecognitionError):
    """The camera could not be opened or is not available."""


class DescriptorError(FaceRecognitionError, ValueError):
    """A descriptor vector has the wrong shape for the loaded model."""
