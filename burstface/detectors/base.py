"""Collaborator contracts for face detection."""

from __future__ import annotations

from typing import List, Protocol

import numpy as np

from burstface.types import DetectedFace


class DetectionError(RuntimeError):
    """Raised by detectors when a photo cannot be analyzed."""


class FaceDetector(Protocol):
    def detect(self, image: np.ndarray) -> List[DetectedFace]:
        """Return faces in emission order; raise DetectionError on failure."""
        ...
