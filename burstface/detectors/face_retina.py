"""RetinaFace detection with 68-point landmarks via InsightFace."""

from __future__ import annotations

import logging
import os
import platform
from typing import List, Optional, Sequence, Tuple

import numpy as np

from burstface.detectors.base import DetectionError
from burstface.types import BBox, DetectedFace, FaceAngle, FaceLandmarks, Point

LOGGER = logging.getLogger("burstface.detectors.face")

# Index ranges of the 68-point annotation scheme
JAW = range(0, 17)
RIGHT_EYE = range(36, 42)
LEFT_EYE = range(42, 48)
OUTER_LIPS = range(48, 60)
INNER_LIPS = range(60, 68)


def _default_providers() -> Tuple[str, ...]:
    """Choose default ONNX providers for RetinaFace."""
    system = platform.system()
    machine = platform.machine().lower()
    if system == "Darwin" and machine in {"arm64", "aarch64"}:
        return ("CoreMLExecutionProvider", "CPUExecutionProvider")
    return ("CPUExecutionProvider",)


def regions_from_68(points: np.ndarray, bbox_px: Sequence[float]) -> Optional[FaceLandmarks]:
    """Split 68 pixel landmarks into face-box-relative, y-up regions."""
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[0] < 68:
        return None
    x1, y1, x2, y2 = [float(v) for v in bbox_px]
    width = x2 - x1
    height = y2 - y1
    if width <= 0 or height <= 0:
        return None

    def region(indices: range) -> List[Point]:
        return [
            ((float(pts[i, 0]) - x1) / width, 1.0 - (float(pts[i, 1]) - y1) / height)
            for i in indices
        ]

    return FaceLandmarks(
        left_eye=region(LEFT_EYE),
        right_eye=region(RIGHT_EYE),
        outer_lips=region(OUTER_LIPS),
        inner_lips=region(INNER_LIPS),
        face_contour=region(JAW),
    )


def normalize_bbox(bbox_px: Sequence[float], image_shape: Tuple[int, ...]) -> BBox:
    height, width = image_shape[:2]
    x1, y1, x2, y2 = [float(v) for v in bbox_px]
    return (
        float(np.clip(x1 / width, 0.0, 1.0)),
        float(np.clip(y1 / height, 0.0, 1.0)),
        float(np.clip(x2 / width, 0.0, 1.0)),
        float(np.clip(y2 / height, 0.0, 1.0)),
    )


def normalize_points(points: np.ndarray, image_shape: Tuple[int, ...]) -> Tuple[Point, ...]:
    height, width = image_shape[:2]
    return tuple((float(x) / width, float(y) / height) for x, y in points)


class RetinaFaceDetector:
    """Wrapper around InsightFace RetinaFace plus the 3D 68-point landmark model."""

    def __init__(
        self,
        providers: Optional[Sequence[str]] = None,
        det_size: Tuple[int, int] = (640, 640),
        det_thresh: float = 0.45,
        with_landmarks: bool = True,
    ) -> None:
        os.environ.setdefault("OMP_NUM_THREADS", "2")
        os.environ.setdefault("MKL_NUM_THREADS", "2")
        os.environ.setdefault("ORT_INTRA_OP_NUM_THREADS", "2")
        try:
            from insightface.app import FaceAnalysis
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "insightface is required for RetinaFaceDetector. "
                "Install it via `pip install burstface-analyzer[models]`."
            ) from exc

        self.det_size = det_size
        self.det_thresh = det_thresh
        provider_list: Tuple[str, ...]
        if providers is None:
            provider_list = _default_providers()
        else:
            provider_list = tuple(providers)
        self.providers = provider_list
        modules = ["detection", "landmark_3d_68"] if with_landmarks else ["detection"]
        self.app = FaceAnalysis(name="buffalo_l", allowed_modules=modules, providers=list(provider_list))
        self.app.prepare(ctx_id=0, det_size=self.det_size)
        LOGGER.info(
            "Loaded RetinaFace detector det_size=%s det_thresh=%.2f providers=%s modules=%s",
            det_size,
            det_thresh,
            provider_list,
            modules,
        )

    def detect(self, image: np.ndarray) -> List[DetectedFace]:
        """Run RetinaFace on an image and return faces in detector order."""
        try:
            faces = self.app.get(image)
        except Exception as exc:
            raise DetectionError(f"RetinaFace failed on image of shape {image.shape}") from exc
        detected: List[DetectedFace] = []
        for face in faces:
            score = float(face.det_score)
            if score < self.det_thresh:
                continue
            bbox_px = [float(v) for v in face.bbox]
            landmarks = None
            points = getattr(face, "landmark_3d_68", None)
            if points is not None:
                landmarks = regions_from_68(np.asarray(points)[:, :2], bbox_px)
            keypoints = None
            kps = getattr(face, "kps", None)
            if kps is not None:
                keypoints = normalize_points(np.asarray(kps)[:, :2], image.shape)
            pose = None
            raw_pose = getattr(face, "pose", None)
            if raw_pose is not None:
                pitch, yaw, roll = [float(v) for v in raw_pose]
                pose = FaceAngle(pitch=pitch, yaw=yaw, roll=roll)
            detected.append(
                DetectedFace(
                    bbox=normalize_bbox(bbox_px, image.shape),
                    landmarks=landmarks,
                    capture_quality=score,
                    pose=pose,
                    face_index=len(detected),
                    keypoints=keypoints,
                )
            )
        return detected
