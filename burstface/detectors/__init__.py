"""Face detector adapters."""

from burstface.detectors.base import DetectionError, FaceDetector

__all__ = ["DetectionError", "FaceDetector"]
