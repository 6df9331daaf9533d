"""Eye-openness detection from eye landmarks using the eye aspect ratio (EAR)."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from burstface.config import EyeConfig
from burstface.types import EyeState, FaceLandmarks, Point, point_distance

LOGGER = logging.getLogger("burstface.signals.eyes")


def eye_aspect_ratio(points: Optional[Sequence[Point]], config: Optional[EyeConfig] = None) -> float:
    """Vertical lid gap over eye width, from the extreme points of one eye.

    The corners are the points with minimum and maximum x. The two highest and
    two lowest points are each ordered by x and paired outer-with-outer and
    inner-with-inner, so the ratio does not depend on the landmark ordering.
    """
    config = config or EyeConfig()
    if not points or len(points) < config.min_points:
        return config.neutral_ear

    outer = min(points, key=lambda p: p[0])
    inner = max(points, key=lambda p: p[0])
    top = sorted(sorted(points, key=lambda p: p[1], reverse=True)[:2], key=lambda p: p[0])
    bottom = sorted(sorted(points, key=lambda p: p[1])[:2], key=lambda p: p[0])

    horizontal = point_distance(outer, inner)
    if horizontal <= config.min_horizontal_distance:
        return config.neutral_ear
    vertical_outer = point_distance(top[0], bottom[0])
    vertical_inner = point_distance(top[1], bottom[1])
    return (vertical_outer + vertical_inner) / (2.0 * horizontal)


def adaptive_threshold(average_ear: float, config: Optional[EyeConfig] = None) -> float:
    """Pick the open/closed cut-off from the face's own average EAR."""
    config = config or EyeConfig()
    for lower_bound, threshold in config.threshold_bands:
        if average_ear > lower_bound:
            return threshold
    return config.threshold_floor


def detect_eye_state(landmarks: Optional[FaceLandmarks], config: Optional[EyeConfig] = None) -> EyeState:
    config = config or EyeConfig()
    if landmarks is None or not landmarks.left_eye or not landmarks.right_eye:
        return EyeState(left_open=True, right_open=True, confidence=0.0)

    left_ear = eye_aspect_ratio(landmarks.left_eye, config)
    right_ear = eye_aspect_ratio(landmarks.right_eye, config)
    average = (left_ear + right_ear) / 2.0
    threshold = adaptive_threshold(average, config)
    state = EyeState(
        left_open=left_ear > threshold,
        right_open=right_ear > threshold,
        confidence=min(1.0, average / threshold),
    )
    LOGGER.debug(
        "EAR left=%.3f right=%.3f threshold=%.2f -> open=(%s, %s)",
        left_ear,
        right_ear,
        threshold,
        state.left_open,
        state.right_open,
    )
    return state
