"""Smile intensity and naturalness from lip, cheek and eye-crease landmark signals."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from burstface.config import ExpressionConfig
from burstface.signals.landmarks import contour_region_quality, eye_region_quality, lip_region_quality
from burstface.types import ExpressionQuality, FaceLandmarks, Point, clamp01

LOGGER = logging.getLogger("burstface.signals.expression")


@dataclass(frozen=True)
class LipSignal:
    curvature: float
    symmetry: float
    width: float
    openness: float
    quality: float


@dataclass(frozen=True)
class CheekSignal:
    elevation: float
    definition: float
    quality: float


@dataclass(frozen=True)
class EyeCreaseSignal:
    creasing: float
    symmetry: float
    quality: float


def _side_symmetry(left: float, right: float) -> Optional[float]:
    largest = max(left, right)
    if largest <= 0:
        return None
    return 1.0 - abs(left - right) / largest


def lip_curvature(points: Sequence[Point]) -> float:
    """Corner elevation relative to the mouth centre; positive for a smile."""
    left_corner, right_corner = points[0], points[6]
    mouth_center_y = (points[3][1] + points[9][1]) / 2.0
    corner_y = (left_corner[1] + right_corner[1]) / 2.0
    measurements = [max(0.0, (corner_y - mouth_center_y) * 40.0)]
    if len(points) >= 16:
        measurements.append(max(0.0, (left_corner[1] - points[1][1]) * 30.0))
        measurements.append(max(0.0, (right_corner[1] - points[5][1]) * 30.0))
    return min(1.0, float(np.mean(measurements)))


def lip_symmetry(points: Sequence[Point]) -> float:
    center_x = points[3][0]
    primary = _side_symmetry(abs(points[0][0] - center_x), abs(points[6][0] - center_x))
    measurements: List[float] = [1.0 if primary is None else primary]
    if len(points) >= 16:
        upper = _side_symmetry(abs(points[1][0] - center_x), abs(points[5][0] - center_x))
        if upper is not None:
            measurements.append(upper)
        lower_x = points[9][0]
        lower = _side_symmetry(abs(points[11][0] - lower_x), abs(points[7][0] - lower_x))
        if lower is not None:
            measurements.append(lower)
    return clamp01(float(np.mean(measurements)))


def lip_openness(points: Sequence[Point], inner: Optional[Sequence[Point]] = None) -> float:
    """Vertical mouth opening; inner lips run corner, upper lip, corner, lower lip."""
    openness = abs(points[3][1] - points[9][1])
    if inner is not None and len(inner) >= 6:
        count = len(inner)
        upper, lower = inner[count // 4], inner[(3 * count) // 4]
        openness = (openness + abs(upper[1] - lower[1])) / 2.0
    return min(1.0, openness * 30.0)


def analyze_lips(landmarks: FaceLandmarks) -> LipSignal:
    points = landmarks.outer_lips
    if not points:
        return LipSignal(0.5, 0.5, 0.5, 0.5, 0.0)
    if len(points) < 12:
        return LipSignal(0.5, 0.5, 0.5, 0.5, 0.3)
    return LipSignal(
        curvature=lip_curvature(points),
        symmetry=lip_symmetry(points),
        width=min(1.0, abs(points[6][0] - points[0][0]) * 15.0),
        openness=lip_openness(points, landmarks.inner_lips),
        quality=lip_region_quality(points),
    )


def _turning_angle(p1: Point, p2: Point, p3: Point) -> float:
    v1x, v1y = p2[0] - p1[0], p2[1] - p1[1]
    v2x, v2y = p3[0] - p2[0], p3[1] - p2[1]
    dot = v1x * v2x + v1y * v2y
    det = v1x * v2y - v1y * v2x
    return abs(math.atan2(det, dot)) / math.pi


def cheek_definition(points: Sequence[Point]) -> float:
    if len(points) < 15:
        return 0.5
    angles = [_turning_angle(points[i], points[i + 1], points[i + 2]) for i in range(0, len(points) - 2, 2)]
    return min(1.0, float(np.mean(angles)) * 2.0)


def cheek_elevation(points: Sequence[Point]) -> float:
    count = len(points)
    left = points[int(count * 0.3)]
    right = points[int(count * 0.7)]
    jaw_y = points[int(count * 0.5)][1]
    return clamp01((jaw_y - (left[1] + right[1]) / 2.0) * 5.0)


def analyze_cheeks(landmarks: FaceLandmarks) -> CheekSignal:
    points = landmarks.face_contour
    if not points:
        return CheekSignal(0.5, 0.5, 0.0)
    if len(points) < 10:
        return CheekSignal(0.5, 0.5, 0.3)
    return CheekSignal(
        elevation=cheek_elevation(points),
        definition=cheek_definition(points),
        quality=contour_region_quality(points),
    )


def eye_creasing(points: Sequence[Point]) -> float:
    """Vertical compression of one eye; squinting reads as creasing."""
    if len(points) < 6:
        return 0.5
    return clamp01(1.0 - abs(points[2][1] - points[4][1]) * 20.0)


def analyze_eye_creasing(landmarks: FaceLandmarks) -> EyeCreaseSignal:
    if not landmarks.left_eye or not landmarks.right_eye:
        return EyeCreaseSignal(0.5, 0.5, 0.0)
    left = eye_creasing(landmarks.left_eye)
    right = eye_creasing(landmarks.right_eye)
    return EyeCreaseSignal(
        creasing=(left + right) / 2.0,
        symmetry=1.0 - abs(left - right),
        quality=min(eye_region_quality(landmarks.left_eye), eye_region_quality(landmarks.right_eye)),
    )


def _intensity_agreement(values: Sequence[float]) -> float:
    mean = float(np.mean(values))
    deviation = float(np.mean([abs(v - mean) for v in values]))
    return max(0.0, 1.0 - deviation * 2.0)


def fuse_expression(
    lips: LipSignal,
    cheeks: CheekSignal,
    eyes: EyeCreaseSignal,
    config: Optional[ExpressionConfig] = None,
) -> ExpressionQuality:
    config = config or ExpressionConfig()
    avg_quality = (lips.quality + cheeks.quality + eyes.quality) / 3.0

    weighted = (
        lips.curvature * config.lip_weight
        + eyes.creasing * config.eye_weight
        + cheeks.elevation * config.cheek_weight
    )
    intensity = clamp01(weighted * (0.5 + avg_quality * 0.5))

    naturalness = (
        eyes.creasing * config.crease_weight
        + lips.symmetry * config.lip_symmetry_weight
        + cheeks.definition * config.cheek_definition_weight
    )
    low, high = config.coordination_range
    if lips.curvature > config.posed_curvature and eyes.creasing < config.posed_crease:
        naturalness *= config.posed_penalty
    elif lips.curvature > 0 and low <= eyes.creasing / lips.curvature <= high:
        naturalness *= config.coordination_bonus
    naturalness = clamp01(naturalness)

    agreement = _intensity_agreement([lips.curvature, cheeks.elevation, eyes.creasing])
    symmetry = (lips.symmetry + eyes.symmetry) / 2.0
    confidence = clamp01(avg_quality * 0.4 + agreement * 0.3 + symmetry * 0.3)
    return ExpressionQuality(intensity=intensity, naturalness=naturalness, confidence=confidence)


def analyze_expression(
    landmarks: Optional[FaceLandmarks],
    config: Optional[ExpressionConfig] = None,
) -> ExpressionQuality:
    if landmarks is None:
        return ExpressionQuality(intensity=0.5, naturalness=0.5, confidence=0.0)
    lips = analyze_lips(landmarks)
    cheeks = analyze_cheeks(landmarks)
    eyes = analyze_eye_creasing(landmarks)
    quality = fuse_expression(lips, cheeks, eyes, config)
    LOGGER.debug(
        "Expression lip=%.2f width=%.2f open=%.2f cheek=%.2f crease=%.2f -> intensity=%.2f naturalness=%.2f",
        lips.curvature,
        lips.width,
        lips.openness,
        cheeks.elevation,
        eyes.creasing,
        quality.intensity,
        quality.naturalness,
    )
    return quality
