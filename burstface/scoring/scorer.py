"""Composite per-face quality scoring."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from burstface.config import AnalysisConfig
from burstface.imaging import crop_face, laplacian_response
from burstface.signals.eyes import detect_eye_state
from burstface.signals.expression import analyze_expression
from burstface.types import DetectedFace, FaceAngle, FaceQualityRecord, Photo, bbox_area, clamp01

LOGGER = logging.getLogger("burstface.scoring")

EdgeFilter = Callable[[np.ndarray], Optional[float]]


class FaceScorer:
    """Combines eye state, expression, sharpness, pose and capture quality."""

    def __init__(self, config: Optional[AnalysisConfig] = None, edge_filter: Optional[EdgeFilter] = laplacian_response) -> None:
        self.config = config or AnalysisConfig()
        self.edge_filter = edge_filter

    def estimate_sharpness(self, detected: DetectedFace, image: Optional[np.ndarray] = None) -> float:
        cfg = self.config.scoring
        sharpness = cfg.sharpness_base
        area = bbox_area(detected.bbox)
        for lower_bound, bonus in cfg.sharpness_area_bands:
            if area > lower_bound:
                sharpness += bonus
                break
        if image is not None and self.edge_filter is not None:
            response = self.edge_filter(crop_face(image, detected.bbox))
            if response is not None:
                sharpness += cfg.edge_bonus
        return min(1.0, sharpness)

    def composite(
        self,
        capture_quality: float,
        both_eyes_open: bool,
        expression_quality: float,
        sharpness: float,
        pose: FaceAngle,
    ) -> float:
        cfg = self.config.scoring
        eye_score = 1.0 if both_eyes_open else 0.0
        pose_score = 1.0 if pose.is_optimal else cfg.non_optimal_pose_score
        total = (
            capture_quality * cfg.capture_weight
            + eye_score * cfg.eyes_weight
            + expression_quality * cfg.expression_weight
            + sharpness * cfg.sharpness_weight
            + pose_score * cfg.pose_weight
        )
        return clamp01(total)

    def score_face(self, photo: Photo, detected: DetectedFace, image: Optional[np.ndarray] = None) -> FaceQualityRecord:
        eye_state = detect_eye_state(detected.landmarks, self.config.eyes)
        expression = analyze_expression(detected.landmarks, self.config.expression)
        pose = detected.pose or FaceAngle()
        capture = clamp01(detected.capture_quality)
        sharpness = self.estimate_sharpness(detected, image)
        score = self.composite(capture, eye_state.both_open, expression.overall_quality, sharpness, pose)
        LOGGER.debug(
            "Scored face %s#%d capture=%.2f eyes=%s expr=%.2f sharp=%.2f optimal_pose=%s -> %.3f",
            photo.photo_id,
            detected.face_index,
            capture,
            eye_state.both_open,
            expression.overall_quality,
            sharpness,
            pose.is_optimal,
            score,
        )
        return FaceQualityRecord(
            photo=photo,
            face_index=detected.face_index,
            bbox=detected.bbox,
            eye_state=eye_state,
            expression=expression,
            pose=pose,
            sharpness=sharpness,
            capture_quality=capture,
            score=score,
            keypoints=detected.keypoints,
        )

    def score_faces(
        self,
        photo: Photo,
        detections: Sequence[DetectedFace],
        image: Optional[np.ndarray] = None,
    ) -> List[FaceQualityRecord]:
        return [self.score_face(photo, detected, image) for detected in detections]
